"""
Protocol definitions for the storage collaborators gloss depends on.

- VersionedKVStore: per-controller versioned key-value storage
  (SQLite locally, HTTP service remotely)
- BlobUploader: content storage for snapped files
"""

from dataclasses import dataclass
from typing import Literal, Optional, Protocol, runtime_checkable

HistoryOrder = Literal["newest-first", "oldest-first"]


@dataclass(frozen=True)
class Identity:
    """The writer identity a store scopes writes to."""
    controller: str

    def __str__(self) -> str:
        return self.controller


@dataclass(frozen=True)
class KVResult:
    """
    One controller's view of a key.

    Attributes:
        key: The key queried
        controller: Identity that wrote these values
        value: Current value
        history: Prior (superseded) values, ordered per history_order;
            empty unless history was requested
        history_order: How the backend ordered history
    """
    key: str
    controller: str
    value: Optional[str]
    history: tuple[str, ...] = ()
    history_order: HistoryOrder = "newest-first"

    def values_newest_first(self) -> list[str]:
        """Current value followed by history, newest first."""
        history = list(self.history)
        if self.history_order == "oldest-first":
            history.reverse()
        values = [self.value] if self.value is not None else []
        return values + history


@dataclass(frozen=True)
class UploadResult:
    url: str
    published: bool = True


@runtime_checkable
class VersionedKVStore(Protocol):
    """
    Versioned key-value storage with per-controller write isolation.

    Implemented by:
    - LocalKVStore (SQLite)
    - RemoteKVStore (HTTP)
    """

    def set(self, key: str, value: str, identity: Identity) -> None: ...

    def get(
        self,
        key: str,
        *,
        controller: Optional[str] = None,
        history: bool = False,
    ) -> list[KVResult]: ...

    def close(self) -> None: ...


@runtime_checkable
class BlobUploader(Protocol):
    """
    Content storage for uploaded files.

    Implemented by:
    - LocalBlobUploader (content-addressed files in the store directory)
    - HttpBlobUploader (HTTP storage service)
    """

    def upload(
        self,
        data: bytes,
        mime_type: str,
        *,
        retention_minutes: int,
    ) -> UploadResult: ...

    def close(self) -> None: ...
