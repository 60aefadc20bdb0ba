"""
Pluggable storage backend factory.

Creates the versioned KV store and asset uploader from configuration.
Built-in backends are "local" (SQLite) and "remote" (HTTP). Others
register via the ``gloss.backends`` entry point group.

External backend packages provide a factory function::

    def create_backend(config: GlossConfig) -> Backend:
        ...

and register it in their pyproject.toml::

    [project.entry-points."gloss.backends"]
    my-backend = "my_package.backend:create_backend"
"""

from typing import NamedTuple

from .config import GlossConfig
from .protocol import BlobUploader, VersionedKVStore


class Backend(NamedTuple):
    """Storage collaborators returned by the factory."""
    store: VersionedKVStore
    uploader: BlobUploader
    is_local: bool  # True for filesystem-backed stores


def create_uploader(config: GlossConfig) -> BlobUploader:
    """Asset uploader named by [assets] uploader."""
    from .uploader import HttpBlobUploader, LocalBlobUploader

    if config.assets.uploader == "http":
        return HttpBlobUploader(config.assets.storage_url)
    return LocalBlobUploader(config.path / "assets")


def create_backend(config: GlossConfig) -> Backend:
    """
    Create storage backends from configuration.

    For ``backend = "local"`` (default), creates a SQLite LocalKVStore in
    the store directory. For ``"remote"``, an HTTP RemoteKVStore from the
    [remote] section. Other names load via the ``gloss.backends`` entry
    point group.
    """
    if config.backend == "local":
        from .kv_store import LocalKVStore
        return Backend(
            store=LocalKVStore(config.path / "chains.db"),
            uploader=create_uploader(config),
            is_local=True,
        )
    if config.backend == "remote":
        from .remote import RemoteKVStore
        if config.remote is None:
            raise ValueError("backend = 'remote' requires a [remote] api_url")
        return Backend(
            store=RemoteKVStore(config.remote.api_url, config.remote.api_key),
            uploader=create_uploader(config),
            is_local=False,
        )
    return _load_backend(config.backend, config)


def _load_backend(name: str, config: GlossConfig) -> Backend:
    """Load a backend by entry point name."""
    from importlib.metadata import entry_points

    eps = entry_points(group="gloss.backends")
    for ep in eps:
        if ep.name == name:
            factory = ep.load()
            return factory(config)

    available = [ep.name for ep in eps]
    if available:
        raise ValueError(
            f"Unknown backend: {name!r}. Available: {available}"
        )
    raise ValueError(
        f"Unknown backend: {name!r}. No backends registered. "
        f"Use 'local' or 'remote', or install a backend package."
    )
