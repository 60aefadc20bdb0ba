"""
Core API for day-chained logs.

- log(): stamp → append to own day chain
- log_with_asset(): upload → log with asset URL
- list_day() / get(): reconstruct a day across all writers
"""

import logging
from pathlib import Path
from typing import Optional

from .backend import Backend, create_backend
from .chain import ChainWriter
from .config import GlossConfig, get_default_store_path, load_or_create_config
from .logging_config import configure_ops_log
from .protocol import Identity
from .timeline import TimelineReconstructor, filter_entries
from .types import (
    LogEntry,
    ReconstructionReport,
    local_day,
    parse_entry_key,
    utc_now_ms,
    validate_day,
)

logger = logging.getLogger(__name__)


class Gloss:
    """
    Client for a gloss store.

    Composes the writer (own chains only) and the reconstructor (every
    controller's chains) over one versioned KV store.
    """

    def __init__(
        self,
        store_path: Optional[Path] = None,
        *,
        config: Optional[GlossConfig] = None,
        backend: Optional[Backend] = None,
    ) -> None:
        """
        Args:
            store_path: Store directory (default: GLOSS_STORE_PATH or ~/.gloss)
            config: Pre-loaded configuration (skips loading from disk)
            backend: Pre-built storage collaborators (skips the factory)
        """
        if config is None:
            path = Path(store_path).expanduser() if store_path else get_default_store_path()
            config = load_or_create_config(path)
        self._config = config
        self._backend = backend or create_backend(config)
        self._ops_handler = configure_ops_log(config.path) if self._backend.is_local else None

        self._identity = Identity(config.controller)
        self._writer = ChainWriter(self._backend.store, self._identity)
        self._timeline = TimelineReconstructor(
            self._backend.store,
            strict_identity=config.strict_identity,
        )

    @property
    def config(self) -> GlossConfig:
        return self._config

    @property
    def identity(self) -> Identity:
        return self._identity

    def today(self) -> str:
        """Today's day key in the site timezone."""
        return local_day(self._config.timezone)

    # -------------------------------------------------------------------------
    # Write
    # -------------------------------------------------------------------------

    def append(self, day: str, entry: LogEntry) -> None:
        """Append a prepared entry to the caller's chain for day."""
        self._writer.append(day, entry)

    def log(
        self,
        text: str,
        *,
        tags: Optional[list[str]] = None,
        assets: Optional[list[str]] = None,
    ) -> LogEntry:
        """
        Log a message now, under today's day key.

        Returns:
            The stored entry, attributed to this writer
        """
        at = utc_now_ms()
        entry = LogEntry(
            key=local_day(self._config.timezone, at),
            at=at,
            text=text,
            tags=tags or (),
            assets=assets or (),
        )
        self._writer.append(entry.key, entry)
        return entry.with_controller(self._identity.controller)

    def log_with_asset(
        self,
        text: str,
        data: bytes,
        mime_type: str,
        *,
        tags: Optional[list[str]] = None,
        retention_minutes: Optional[int] = None,
    ) -> LogEntry:
        """Upload data, then log text with the uploaded URL as its asset."""
        retention = retention_minutes or self._config.assets.retention_minutes
        result = self._backend.uploader.upload(
            data, mime_type, retention_minutes=retention,
        )
        logger.info("Uploaded %d bytes -> %s", len(data), result.url)
        return self.log(text, tags=tags, assets=[result.url])

    def remove_entry(self, log_key: str) -> Optional[LogEntry]:
        """Retract one of this writer's entries. None if not found."""
        day = parse_entry_key(log_key)
        return self._writer.retract(day, log_key.strip())

    def remove_day(self, day: str) -> int:
        """Retract all of this writer's entries for day; returns the count."""
        validate_day(day)
        return self._writer.retract_day(day)

    def update_entry_by_key(
        self,
        log_key: str,
        text: str,
        *,
        tags: Optional[list[str]] = None,
    ) -> Optional[LogEntry]:
        """Change the text (and optionally tags) of one of this writer's entries."""
        day = parse_entry_key(log_key)
        updated = self._writer.update(day, log_key.strip(), text, tags)
        return updated.with_controller(self._identity.controller) if updated else None

    # -------------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------------

    def reconstruct(self, day: str) -> ReconstructionReport:
        """Timeline for day plus any versions that had to be skipped."""
        return self._timeline.reconstruct(day)

    def list_day(
        self,
        day: str,
        *,
        tags: Optional[list[str]] = None,
        controller: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[LogEntry]:
        """All writers' entries for day, deduplicated and time-ordered."""
        entries = self._timeline.list_day(day)
        return filter_entries(entries, tags=tags, controller=controller, limit=limit)

    def list_today(
        self,
        *,
        tags: Optional[list[str]] = None,
        controller: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[LogEntry]:
        return self.list_day(self.today(), tags=tags, controller=controller, limit=limit)

    def get(self, key: str) -> list[LogEntry]:
        """All entries for a day key (alias of list_day without filters)."""
        return self._timeline.get(key)

    def get_log_history(self, log_key: str) -> list[LogEntry]:
        """Every version of one of this writer's entries, newest first."""
        day = parse_entry_key(log_key)
        return self._timeline.entry_history(
            day, log_key.strip(), controller=self._identity.controller,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close storage and detach the ops log."""
        self._backend.store.close()
        self._backend.uploader.close()
        if self._ops_handler is not None:
            logging.getLogger("gloss").removeHandler(self._ops_handler)
            self._ops_handler.close()
            self._ops_handler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
