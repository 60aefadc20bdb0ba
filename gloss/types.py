"""
Data types for day-chained logs.
"""

import json
import re
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Any, Optional, Union
from zoneinfo import ZoneInfo

# Canonical timestamp: millisecond resolution, UTC, 'Z' suffix
_TS_FORMAT = "%Y-%m-%dT%H:%M:%S"

_DAY_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')

# Entry key: YYYY-MM-DD/HHMMSS-mmm
_ENTRY_KEY_RE = re.compile(r'^(\d{4}-\d{2}-\d{2})/(\d{2})(\d{2})(\d{2})-(\d{3})$')

MAX_TAG_LENGTH = 64


def format_timestamp(dt: datetime) -> str:
    """Format a datetime in the canonical form: YYYY-MM-DDTHH:MM:SS.mmmZ."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return f"{dt.strftime(_TS_FORMAT)}.{dt.microsecond // 1000:03d}Z"


def utc_now_ms() -> str:
    """Current UTC timestamp in canonical format.

    All entry timestamps are produced here. Millisecond resolution keeps
    two appends from the same controller distinct in practice.
    """
    return format_timestamp(datetime.now(timezone.utc))


def parse_timestamp(ts: str) -> datetime:
    """Parse a stored timestamp string to a timezone-aware UTC datetime.

    Accepts the canonical format as well as other ISO-8601 forms
    ('+00:00' offsets, no fraction, naive values treated as UTC).
    """
    if not isinstance(ts, str) or not ts:
        raise ValueError(f"Invalid timestamp: {ts!r}")
    dt = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def validate_day(day: str) -> str:
    """Validate a day key (fixed-width YYYY-MM-DD, real calendar date)."""
    if not isinstance(day, str) or not _DAY_RE.match(day):
        raise ValueError(f"Day must be YYYY-MM-DD: {day!r}")
    try:
        date.fromisoformat(day)
    except ValueError:
        raise ValueError(f"Not a calendar date: {day!r}") from None
    return day


def local_day(tz_name: str, ts: Optional[str] = None) -> str:
    """Day key for a timestamp (default: now) in the given IANA timezone."""
    dt = parse_timestamp(ts) if ts else datetime.now(timezone.utc)
    return dt.astimezone(ZoneInfo(tz_name)).strftime("%Y-%m-%d")


def normalize_tags(tags) -> tuple[str, ...]:
    """Strip, drop blanks and duplicates; first occurrence wins."""
    if not tags:
        return ()
    seen: list[str] = []
    for t in tags:
        t = str(t).strip()[:MAX_TAG_LENGTH]
        if t and t not in seen:
            seen.append(t)
    return tuple(seen)


def parse_tags_csv(csv: Optional[str]) -> list[str]:
    """Parse a comma-separated tag list ("auth, infra") into clean tags."""
    if not csv:
        return []
    return list(normalize_tags(csv.split(",")))


@dataclass(frozen=True)
class EntryRef:
    """Dedup identity of a logical entry."""
    at: str
    text: str

    def to_dict(self) -> dict:
        return {"at": self.at, "text": self.text}


@dataclass(frozen=True)
class LogEntry:
    """
    One atomic log record.

    Attributes:
        key: Day identifier (YYYY-MM-DD); unique per day-chain only
        at: Canonical UTC timestamp, primary ordering key
        text: Free-form message
        tags: Short labels
        assets: Content references (URLs), display order
        controller: Writer identity, attached on read from the store's
            per-version attribution; never written by the writer
    """
    key: str
    at: str
    text: str
    tags: tuple[str, ...] = ()
    assets: tuple[str, ...] = ()
    controller: Optional[str] = None

    def __post_init__(self):
        # Accept lists from callers; store tuples so entries stay hashable
        object.__setattr__(self, "tags", normalize_tags(self.tags))
        object.__setattr__(self, "assets", tuple(self.assets or ()))

    @property
    def identity(self) -> EntryRef:
        return EntryRef(self.at, self.text)

    @property
    def timestamp(self) -> datetime:
        return parse_timestamp(self.at)

    def with_controller(self, controller: Optional[str]) -> "LogEntry":
        return replace(self, controller=controller)

    def to_dict(self) -> dict:
        """Payload form; the controller is attribution, not content."""
        return {
            "key": self.key,
            "at": self.at,
            "text": self.text,
            "tags": list(self.tags),
            "assets": list(self.assets),
        }

    def __str__(self) -> str:
        return f"{self.at} {self.text[:60]}"


@dataclass(frozen=True)
class DayChain:
    """
    One controller's cumulative snapshot of entries for one day.

    Every stored version holds all entries appended so far, in append
    order, plus the identities this controller has retracted.
    """
    key: str
    logs: tuple[LogEntry, ...] = ()
    retracted: tuple[EntryRef, ...] = ()

    def appended(self, entry: LogEntry) -> "DayChain":
        return replace(self, logs=self.logs + (entry.with_controller(None),))

    def live(self) -> list[LogEntry]:
        """Entries not retracted by this chain."""
        gone = set(self.retracted)
        return [log for log in self.logs if log.identity not in gone]

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "key": self.key,
            "logs": [log.to_dict() for log in self.logs],
        }
        if self.retracted:
            d["retracted"] = [r.to_dict() for r in self.retracted]
        return d


# ---------------------------------------------------------------------------
# Snapshot codec
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Decoded:
    """Successful decode of a stored value."""
    chain: DayChain
    ok: bool = field(default=True, init=False)


@dataclass(frozen=True)
class Corrupt:
    """Failed decode of a stored value."""
    reason: str
    ok: bool = field(default=False, init=False)


DecodeResult = Union[Decoded, Corrupt]


def encode_chain(chain: DayChain) -> str:
    """Serialize a DayChain for storage."""
    return json.dumps(chain.to_dict(), ensure_ascii=False, separators=(",", ":"))


def _str_list(value: Any, what: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{what} must be a list of strings")
    return value


def _decode_entry(d: Any, index: int) -> LogEntry:
    if not isinstance(d, dict):
        raise ValueError(f"logs[{index}] is not an object")
    for name in ("key", "at", "text"):
        if not isinstance(d.get(name), str):
            raise ValueError(f"logs[{index}].{name} missing or not a string")
    parse_timestamp(d["at"])
    return LogEntry(
        key=d["key"],
        at=d["at"],
        text=d["text"],
        tags=_str_list(d.get("tags"), f"logs[{index}].tags"),
        assets=_str_list(d.get("assets"), f"logs[{index}].assets"),
    )


def _decode_ref(d: Any, index: int) -> EntryRef:
    if not isinstance(d, dict) or not isinstance(d.get("at"), str) \
            or not isinstance(d.get("text"), str):
        raise ValueError(f"retracted[{index}] is not an {{at, text}} object")
    return EntryRef(d["at"], d["text"])


def decode_chain(raw: Optional[str]) -> DecodeResult:
    """
    Decode a stored value as a DayChain.

    Never raises for bad data; returns Corrupt with the reason instead.
    Any controller field in the payload is discarded.
    """
    if raw is None:
        return Corrupt("no value")
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        return Corrupt(f"invalid JSON: {e}")
    if not isinstance(data, dict):
        return Corrupt("snapshot is not an object")
    if not isinstance(data.get("key"), str):
        return Corrupt("snapshot key missing")
    logs = data.get("logs")
    if not isinstance(logs, list):
        return Corrupt("snapshot logs missing")
    retracted = data.get("retracted", [])
    if not isinstance(retracted, list):
        return Corrupt("snapshot retracted is not a list")
    try:
        entries = tuple(_decode_entry(d, i) for i, d in enumerate(logs))
        refs = tuple(_decode_ref(d, i) for i, d in enumerate(retracted))
    except ValueError as e:
        return Corrupt(str(e))
    return Decoded(DayChain(key=data["key"], logs=entries, retracted=refs))


# ---------------------------------------------------------------------------
# Entry keys
# ---------------------------------------------------------------------------


def entry_key(entry: LogEntry) -> str:
    """Short per-entry key: YYYY-MM-DD/HHMMSS-mmm (UTC time of day)."""
    dt = entry.timestamp
    return f"{entry.key}/{dt.strftime('%H%M%S')}-{dt.microsecond // 1000:03d}"


def parse_entry_key(log_key: str) -> str:
    """
    Validate an entry key and return its day.

    Entries are matched by recomputing entry_key(), since the time part
    is UTC while the day key follows the writer's site timezone.
    """
    m = _ENTRY_KEY_RE.match(log_key.strip())
    if not m:
        raise ValueError(
            f"Invalid log key: {log_key!r} (expected YYYY-MM-DD/HHMMSS-mmm)"
        )
    return validate_day(m.group(1))


@dataclass(frozen=True)
class SkippedVersion:
    """A stored value the reconstructor could not decode."""
    controller: Optional[str]
    version: int              # 0 = current, 1 = previous, ...
    reason: str


@dataclass
class ReconstructionReport:
    """Timeline for a day plus what was skipped while building it."""
    day: str
    entries: list[LogEntry] = field(default_factory=list)
    skipped: list[SkippedVersion] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.skipped)
