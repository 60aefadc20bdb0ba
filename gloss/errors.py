"""
Exceptions and error logging for gloss.

The exception tree separates storage failures (StorageError and its
transport subclass StorageUnavailable) from bad stored data
(CorruptSnapshot) and asset upload failures (UploadError). The CLI
records tracebacks with log_exception() and prints one clean line.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

ERROR_LOG_FILENAME = "gloss-errors.log"


class GlossError(Exception):
    """Base class for gloss errors."""


class StorageError(GlossError):
    """The versioned key-value store rejected or failed an operation."""


class StorageUnavailable(StorageError):
    """Transport or connectivity failure talking to the store."""


class CorruptSnapshot(GlossError):
    """A stored day-chain value could not be decoded."""

    def __init__(self, key: str, controller: Optional[str], reason: str):
        self.key = key
        self.controller = controller
        self.reason = reason
        who = f" ({controller[:8]}...)" if controller else ""
        super().__init__(f"Corrupt snapshot for {key}{who}: {reason}")


class UploadError(GlossError):
    """Blob upload failed."""


def _error_log_path(store_path: Optional[Path] = None) -> Path:
    """gloss-errors.log in the store directory (--store, GLOSS_STORE_PATH or ~/.gloss)."""
    if store_path is None:
        env = os.environ.get("GLOSS_STORE_PATH")
        store_path = Path(env).expanduser() if env else Path.home() / ".gloss"
    return Path(store_path) / ERROR_LOG_FILENAME


def log_exception(
    exc: BaseException,
    context: str = "",
    store_path: Optional[Path] = None,
) -> Path:
    """
    Append a failure record to the store's error log.

    Each record is a header line ``[<utc time>] <context>: <ExcType>``
    followed by the full traceback. The file is created owner-only since
    tracebacks can include API URLs and keys. Failing to write the log
    never masks the original error.

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path(store_path)
    stamp = datetime.now(timezone.utc).isoformat(timespec="seconds")
    header = f"[{stamp}] {context or 'gloss'}: {type(exc).__name__}"
    body = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a", encoding="utf-8") as f:
            f.write(f"{header}\n{body}\n")
    except OSError:
        pass
    return log_path
