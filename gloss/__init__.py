"""
gloss: build. log. ship.

Day-chained developer logs over a versioned key-value store. Every writer
("controller") appends to its own chain for the day; any reader merges all
writers' chains into one deduplicated, time-ordered timeline.

Quick Start:
    from gloss import Gloss

    gl = Gloss()  # uses ~/.gloss/
    gl.log("fixed the auth redirect", tags=["auth"])
    for entry in gl.list_today():
        print(entry.at, entry.controller, entry.text)

CLI Usage:
    gloss log "shipped release" -t release
    gloss today
    gloss list 2025-10-06 --tags infra

Environment Variables:
    GLOSS_STORE_PATH    - Override default store location
    GLOSS_API_URL       - Use a hosted KV service instead of the local store
    GLOSS_API_KEY       - Bearer token for the hosted service
    UHRP_URL            - Upload snapped files to this storage service
"""

from .api import Gloss
from .chain import ChainWriter
from .errors import CorruptSnapshot, GlossError, StorageError, StorageUnavailable, UploadError
from .protocol import Identity, KVResult, UploadResult
from .timeline import TimelineReconstructor, filter_entries
from .types import DayChain, EntryRef, LogEntry, ReconstructionReport

__version__ = "0.1.0"
__all__ = [
    "Gloss",
    "ChainWriter",
    "TimelineReconstructor",
    "filter_entries",
    "Identity",
    "KVResult",
    "UploadResult",
    "LogEntry",
    "DayChain",
    "EntryRef",
    "ReconstructionReport",
    "GlossError",
    "StorageError",
    "StorageUnavailable",
    "CorruptSnapshot",
    "UploadError",
]
