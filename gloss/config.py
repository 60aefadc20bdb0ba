"""
Configuration management for gloss stores.

The configuration is stored as a TOML file in the store directory.
It names the writer identity, the storage backend and the asset uploader.
Environment variables override file values at load time and are never
written back.
"""

import os
import secrets
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import tomli_w


CONFIG_FILENAME = "gloss.toml"
CONFIG_VERSION = 1

DEFAULT_SITE_TITLE = "notes"
DEFAULT_TIMEZONE = "America/Los_Angeles"
DEFAULT_UHRP_URL = "https://nanostore.babbage.systems"
DEFAULT_RETENTION_MINUTES = 60 * 24 * 30


def get_default_store_path() -> Path:
    """Store directory: GLOSS_STORE_PATH or ~/.gloss."""
    env = os.environ.get("GLOSS_STORE_PATH")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".gloss"


def new_controller_key() -> str:
    """Random 33-byte hex identity for a new store."""
    return "02" + secrets.token_hex(32)


@dataclass
class RemoteConfig:
    """Hosted KV service connection."""
    api_url: str
    api_key: Optional[str] = None


@dataclass
class AssetConfig:
    """Where snapped files go."""
    uploader: str = "local"       # "local" or "http"
    storage_url: str = DEFAULT_UHRP_URL
    retention_minutes: int = DEFAULT_RETENTION_MINUTES


@dataclass
class GlossConfig:
    """Complete store configuration."""
    path: Path
    controller: str = field(default_factory=new_controller_key)
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    site_title: str = DEFAULT_SITE_TITLE
    timezone: str = DEFAULT_TIMEZONE

    backend: str = "local"
    remote: Optional[RemoteConfig] = None
    assets: AssetConfig = field(default_factory=AssetConfig)

    strict_identity: bool = False

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def _validate_timezone(name: str) -> str:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone: {name!r}") from None
    return name


def apply_env_overrides(config: GlossConfig) -> GlossConfig:
    """
    Apply environment overrides in place.

    GLOSS_SITE_TITLE, TZ, UHRP_URL, UHRP_RETENTION_MIN, GLOSS_CONTROLLER,
    GLOSS_API_URL / GLOSS_API_KEY (switches backend to remote).
    """
    env = os.environ
    if env.get("GLOSS_SITE_TITLE"):
        config.site_title = env["GLOSS_SITE_TITLE"]
    if env.get("TZ"):
        try:
            config.timezone = _validate_timezone(env["TZ"])
        except ValueError:
            pass  # POSIX TZ strings like "UTC0" are not IANA names
    if env.get("UHRP_URL"):
        config.assets.storage_url = env["UHRP_URL"]
        config.assets.uploader = "http"
    if env.get("UHRP_RETENTION_MIN"):
        try:
            config.assets.retention_minutes = int(env["UHRP_RETENTION_MIN"])
        except ValueError:
            raise ValueError(
                f"UHRP_RETENTION_MIN must be an integer: {env['UHRP_RETENTION_MIN']!r}"
            ) from None
    if env.get("GLOSS_CONTROLLER"):
        config.controller = env["GLOSS_CONTROLLER"]
    if env.get("GLOSS_API_URL"):
        config.remote = RemoteConfig(
            api_url=env["GLOSS_API_URL"],
            api_key=env.get("GLOSS_API_KEY") or None,
        )
        config.backend = "remote"
    return config


def load_config(store_path: Path) -> GlossConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid config {config_path}: {e}") from e

    store = data.get("store", {})
    version = store.get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    controller = data.get("identity", {}).get("controller")
    if not controller:
        raise ValueError(f"Config has no [identity] controller: {config_path}")

    site = data.get("site", {})
    remote_section = data.get("remote")
    remote = None
    if remote_section and remote_section.get("api_url"):
        remote = RemoteConfig(
            api_url=remote_section["api_url"],
            api_key=remote_section.get("api_key"),
        )

    assets_section = data.get("assets", {})
    assets = AssetConfig(
        uploader=assets_section.get("uploader", "local"),
        storage_url=assets_section.get("storage_url", DEFAULT_UHRP_URL),
        retention_minutes=int(assets_section.get("retention_minutes", DEFAULT_RETENTION_MINUTES)),
    )
    if assets.uploader not in ("local", "http"):
        raise ValueError(f"Unknown asset uploader: {assets.uploader!r}")

    return GlossConfig(
        path=store_path,
        controller=controller,
        version=version,
        created=store.get("created", ""),
        site_title=site.get("title", DEFAULT_SITE_TITLE),
        timezone=_validate_timezone(site.get("timezone", DEFAULT_TIMEZONE)),
        backend=data.get("backend", {}).get("name", "local"),
        remote=remote,
        assets=assets,
        strict_identity=bool(data.get("timeline", {}).get("strict_identity", False)),
    )


def save_config(config: GlossConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    data: dict[str, Any] = {
        "store": {
            "version": config.version,
            "created": config.created,
        },
        "identity": {"controller": config.controller},
        "site": {
            "title": config.site_title,
            "timezone": config.timezone,
        },
        "backend": {"name": config.backend},
        "assets": {
            "uploader": config.assets.uploader,
            "storage_url": config.assets.storage_url,
            "retention_minutes": config.assets.retention_minutes,
        },
        "timeline": {"strict_identity": config.strict_identity},
    }
    if config.remote:
        remote = {"api_url": config.remote.api_url}
        if config.remote.api_key:
            remote["api_key"] = config.remote.api_key
        data["remote"] = remote

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> GlossConfig:
    """
    Load existing config or create a new one with a fresh identity,
    then apply environment overrides.

    This is the main entry point for config management.
    """
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        config = load_config(store_path)
    else:
        config = GlossConfig(path=store_path)
        save_config(config)
    return apply_env_overrides(config)
