"""
Shared pytest fixtures for gloss tests.

Provides an in-memory versioned KV store for injecting raw values,
history orderings and failures, plus SQLite-backed stores in tmp_path.
"""

from pathlib import Path
from typing import Optional

import pytest

from gloss.errors import StorageUnavailable
from gloss.kv_store import LocalKVStore
from gloss.protocol import Identity, KVResult, UploadResult
from gloss.types import LogEntry

ALICE = Identity("02" + "a" * 64)
BOB = Identity("03" + "b" * 64)

DAY = "2025-10-06"


class MemoryKVStore:
    """
    In-memory versioned KV store.

    Versions are kept oldest-first per (key, controller); history_order
    controls how get() reports them, to exercise normalization.
    """

    def __init__(self, history_order: str = "newest-first"):
        self.history_order = history_order
        self.versions: dict[tuple[str, str], list[str]] = {}
        self.set_calls = 0
        self.get_calls: list[dict] = []
        self.fail = False

    def set(self, key: str, value: str, identity: Identity) -> None:
        if self.fail:
            raise StorageUnavailable("memory store down")
        self.set_calls += 1
        self.versions.setdefault((key, identity.controller), []).append(value)

    def put_raw(self, key: str, controller: str, value: str) -> None:
        """Append a raw (possibly corrupt) version, bypassing set()."""
        self.versions.setdefault((key, controller), []).append(value)

    def get(
        self,
        key: str,
        *,
        controller: Optional[str] = None,
        history: bool = False,
    ) -> list[KVResult]:
        if self.fail:
            raise StorageUnavailable("memory store down")
        self.get_calls.append({"key": key, "controller": controller, "history": history})
        results = []
        for (k, ctrl), values in sorted(self.versions.items()):
            if k != key or (controller is not None and ctrl != controller):
                continue
            prior = values[:-1]
            if self.history_order == "newest-first":
                prior = list(reversed(prior))
            results.append(KVResult(
                key=key,
                controller=ctrl,
                value=values[-1],
                history=tuple(prior) if history else (),
                history_order=self.history_order,
            ))
        return results

    def close(self) -> None:
        pass


class MockUploader:
    """Records uploads and returns a fake content URL."""

    def __init__(self):
        self.uploads: list[tuple[bytes, str, int]] = []

    def upload(self, data: bytes, mime_type: str, *, retention_minutes: int) -> UploadResult:
        self.uploads.append((data, mime_type, retention_minutes))
        return UploadResult(url=f"uhrp://blob{len(self.uploads)}", published=True)

    def close(self) -> None:
        pass


def make_entry(at: str, text: str, tags=(), assets=(), day: str = DAY) -> LogEntry:
    return LogEntry(key=day, at=at, text=text, tags=tags, assets=assets)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep user environment out of config loading."""
    for name in (
        "GLOSS_STORE_PATH", "GLOSS_SITE_TITLE", "GLOSS_CONTROLLER",
        "GLOSS_API_URL", "GLOSS_API_KEY", "GLOSS_VERBOSE",
        "UHRP_URL", "UHRP_RETENTION_MIN", "TZ",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def memory_store():
    return MemoryKVStore()


@pytest.fixture
def local_store(tmp_path: Path):
    store = LocalKVStore(tmp_path / "chains.db")
    yield store
    store.close()
