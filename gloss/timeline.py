"""
Timeline reconstruction across every controller's day chain.

Each stored version of a chain is a cumulative snapshot, so reading the
full history of a day key yields heavily overlapping entry sets: an entry
appended at version k shows up in versions k..N of its controller's
chain. Reconstruction flattens all of them, stamps the controller from
the store's attribution, drops duplicates by identity and sorts by time.

Reads never write and never fail on bad data; undecodable versions are
skipped and reported.
"""

import logging
from typing import Iterable, Optional

from .protocol import KVResult, VersionedKVStore
from .types import (
    Decoded,
    EntryRef,
    LogEntry,
    ReconstructionReport,
    SkippedVersion,
    decode_chain,
    entry_key,
    validate_day,
)

logger = logging.getLogger(__name__)


def _sort_key(entry: LogEntry):
    # Ties on time break by text, then controller
    return (entry.timestamp, entry.text, entry.controller or "")


class TimelineReconstructor:
    """
    Merge, dedup and order all controllers' entries for a day.

    Args:
        store: Versioned KV store to read from
        strict_identity: Dedup on (controller, at, text) instead of
            (at, text), so identical entries from different controllers
            are both kept
    """

    def __init__(self, store: VersionedKVStore, *, strict_identity: bool = False):
        self._store = store
        self._strict_identity = strict_identity

    def _dedup_key(self, entry: LogEntry) -> tuple:
        if self._strict_identity:
            return (entry.controller, entry.at, entry.text)
        return (entry.at, entry.text)

    def _versions(
        self,
        day: str,
        results: Iterable[KVResult],
        report: ReconstructionReport,
    ) -> Iterable[tuple[str, int, list[LogEntry], tuple[EntryRef, ...]]]:
        """Yield (controller, version, stamped logs, retracted) per decodable value.

        Values are visited current-first within each controller.
        """
        for result in results:
            for version, raw in enumerate(result.values_newest_first()):
                decoded = decode_chain(raw)
                if not isinstance(decoded, Decoded):
                    logger.warning(
                        "Skipping undecodable version %d of %s (%s): %s",
                        version, day, result.controller[:8], decoded.reason,
                    )
                    report.skipped.append(
                        SkippedVersion(result.controller, version, decoded.reason)
                    )
                    continue
                chain = decoded.chain
                if chain.key != day:
                    logger.debug(
                        "Snapshot key %s stored under %s (%s)",
                        chain.key, day, result.controller[:8],
                    )
                # Store attribution overrides anything in the payload
                stamped = [log.with_controller(result.controller) for log in chain.logs]
                yield result.controller, version, stamped, chain.retracted

    def reconstruct(self, day: str) -> ReconstructionReport:
        """
        Build the timeline for day and report skipped versions.

        Raises:
            ValueError: day is not YYYY-MM-DD
            StorageError: the store failed
        """
        validate_day(day)
        report = ReconstructionReport(day=day)
        results = self._store.get(day, history=True)
        if not results:
            return report

        collected: list[LogEntry] = []
        retracted: dict[str, set[EntryRef]] = {}
        for controller, _version, logs, refs in self._versions(day, results, report):
            # Tombstones are cumulative; the newest decoded version is authoritative
            if controller not in retracted:
                retracted[controller] = set(refs)
            collected.extend(logs)

        seen: set[tuple] = set()
        unique: list[LogEntry] = []
        for entry in collected:
            # Retractions only apply to the retracting controller's entries
            if entry.identity in retracted.get(entry.controller, ()):
                continue
            k = self._dedup_key(entry)
            if k in seen:
                continue
            seen.add(k)
            unique.append(entry)

        unique.sort(key=_sort_key)
        report.entries = unique

        logger.debug(
            "Reconstructed %s: %d entries from %d values (%d skipped)",
            day, len(unique), len(collected), len(report.skipped),
        )
        return report

    def list_day(self, day: str) -> list[LogEntry]:
        """Deduplicated, time-ordered entries for day; [] when none."""
        return self.reconstruct(day).entries

    def get(self, key: str) -> list[LogEntry]:
        """Alias of list_day: every record is keyed by day."""
        return self.list_day(key)

    def entry_history(
        self,
        day: str,
        log_key: str,
        *,
        controller: Optional[str] = None,
    ) -> list[LogEntry]:
        """
        Every distinct serialization of one entry, newest first.

        An entry's log key is derived from its timestamp, which updates
        keep, so all edits of an entry share the key. Versions are walked
        newest-first per controller; repeated copies from snapshot overlap
        are collapsed.

        Args:
            day: Day key
            log_key: Entry key (YYYY-MM-DD/HHMMSS-mmm)
            controller: Restrict to one controller's chain
        """
        validate_day(day)
        report = ReconstructionReport(day=day)
        results = self._store.get(day, controller=controller, history=True)

        history: list[LogEntry] = []
        seen: set[LogEntry] = set()
        for _controller, _version, logs, _refs in self._versions(day, results, report):
            for log in reversed(logs):
                if entry_key(log) != log_key or log in seen:
                    continue
                seen.add(log)
                history.append(log)
        return history


def filter_entries(
    entries: list[LogEntry],
    *,
    tags: Optional[list[str]] = None,
    controller: Optional[str] = None,
    limit: Optional[int] = None,
) -> list[LogEntry]:
    """
    Filter a reconstructed timeline.

    Args:
        tags: Keep entries carrying any of these tags
        controller: Keep entries whose controller starts with this
        limit: Keep the first N (chronologically)
    """
    result = entries
    if tags:
        wanted = set(tags)
        result = [e for e in result if wanted.intersection(e.tags)]
    if controller:
        result = [e for e in result if (e.controller or "").startswith(controller)]
    if limit is not None and limit > 0:
        result = result[:limit]
    return result
