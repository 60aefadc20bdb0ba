"""
Chain writer: append-by-rewrite of one controller's day chain.

Each write reads the caller's own current snapshot for the day, applies
one change, and stores the full updated snapshot as a new version. The
store keeps the previous snapshot in that controller's history.
"""

import logging
from dataclasses import replace
from typing import Optional

from .errors import CorruptSnapshot
from .protocol import Identity, VersionedKVStore
from .types import (
    DayChain,
    Decoded,
    LogEntry,
    decode_chain,
    encode_chain,
    entry_key,
    parse_timestamp,
    validate_day,
)

logger = logging.getLogger(__name__)


def _with_entry(chain: DayChain, entry: LogEntry) -> DayChain:
    """Append entry, reviving its identity if the chain had retracted it.

    A revived identity leaves the tombstone list, and older copies with
    that identity are dropped so only the new serialization stays live.
    """
    ref = entry.identity
    if ref in chain.retracted:
        chain = replace(
            chain,
            logs=tuple(log for log in chain.logs if log.identity != ref),
            retracted=tuple(r for r in chain.retracted if r != ref),
        )
    return chain.appended(entry)


class ChainWriter:
    """
    Writes to the caller's own day chains.

    The identity is explicit: every read is scoped to it and every write
    is attributed to it. Other controllers' chains are never touched.
    """

    def __init__(self, store: VersionedKVStore, identity: Identity):
        self._store = store
        self._identity = identity

    @property
    def identity(self) -> Identity:
        return self._identity

    def current(self, day: str) -> Optional[DayChain]:
        """
        The caller's current snapshot for day, or None on first append.

        Raises:
            CorruptSnapshot: the stored value cannot be decoded
            StorageError: the store failed
        """
        results = self._store.get(day, controller=self._identity.controller)
        raw = next((r.value for r in results if r.value is not None), None)
        if raw is None:
            return None
        decoded = decode_chain(raw)
        if not isinstance(decoded, Decoded):
            raise CorruptSnapshot(day, self._identity.controller, decoded.reason)
        return decoded.chain

    def _write(self, chain: DayChain) -> None:
        self._store.set(chain.key, encode_chain(chain), self._identity)

    def append(self, day: str, entry: LogEntry) -> None:
        """
        Append entry to the caller's chain for day.

        Writes exactly one new version. A corrupt existing snapshot aborts
        the append so prior entries are never replaced by a fresh chain.

        Raises:
            ValueError: entry.key does not match day, or entry.at / entry.text
                would not decode
            CorruptSnapshot: existing snapshot cannot be decoded
            StorageError: the store failed
        """
        validate_day(day)
        if entry.key != day:
            raise ValueError(f"Entry key {entry.key!r} does not match day {day!r}")
        parse_timestamp(entry.at)
        if not isinstance(entry.text, str):
            raise ValueError(f"Entry text must be a string: {entry.text!r}")

        chain = self.current(day) or DayChain(key=day)
        updated = _with_entry(chain, entry)
        self._write(updated)
        logger.info("Appended %s (%d entries)", entry_key(entry), len(updated.logs))

    def _find_live(self, chain: DayChain, log_key: str) -> Optional[LogEntry]:
        for log in chain.live():
            if entry_key(log) == log_key:
                return log
        return None

    def retract(self, day: str, log_key: str) -> Optional[LogEntry]:
        """
        Retract one of the caller's live entries.

        Returns:
            The retracted entry, or None if the caller has no live entry
            with that key (nothing is written)
        """
        chain = self.current(day)
        if chain is None:
            return None
        target = self._find_live(chain, log_key)
        if target is None:
            return None
        self._write(replace(chain, retracted=chain.retracted + (target.identity,)))
        logger.info("Retracted %s", log_key)
        return target

    def update(
        self,
        day: str,
        log_key: str,
        text: str,
        tags: Optional[list[str]] = None,
    ) -> Optional[LogEntry]:
        """
        Replace the text (and optionally tags) of one live entry.

        The old identity is retracted and a new entry with the same
        timestamp and assets is appended, in a single new version.
        Tags are kept when not given.
        """
        chain = self.current(day)
        if chain is None:
            return None
        target = self._find_live(chain, log_key)
        if target is None:
            return None
        updated = replace(
            target,
            text=text,
            tags=target.tags if tags is None else tuple(tags),
        )
        if updated.identity == target.identity:
            # Same text: a retraction would also hide the new copy
            new_chain = replace(
                chain,
                logs=tuple(updated if log is target else log for log in chain.logs),
            )
        else:
            new_chain = _with_entry(
                replace(chain, retracted=chain.retracted + (target.identity,)),
                updated,
            )
        self._write(new_chain)
        logger.info("Updated %s", log_key)
        return updated

    def retract_day(self, day: str) -> int:
        """
        Retract every live entry in the caller's chain for day.

        Returns:
            Number of entries retracted (0 writes nothing)
        """
        chain = self.current(day)
        if chain is None:
            return 0
        live = chain.live()
        if not live:
            return 0
        refs = tuple(dict.fromkeys(log.identity for log in live))
        self._write(replace(chain, retracted=chain.retracted + refs))
        logger.info("Retracted %d entries for %s", len(live), day)
        return len(live)
