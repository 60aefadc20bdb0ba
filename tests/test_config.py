"""Tests for store configuration loading, saving and env overrides."""

from pathlib import Path

import pytest

from gloss.config import (
    CONFIG_FILENAME,
    AssetConfig,
    GlossConfig,
    RemoteConfig,
    apply_env_overrides,
    get_default_store_path,
    load_config,
    load_or_create_config,
    new_controller_key,
    save_config,
)


def test_new_controller_key_shape():
    key = new_controller_key()
    assert key.startswith("02")
    assert len(key) == 66
    assert key != new_controller_key()


def test_default_store_path(monkeypatch, tmp_path):
    assert get_default_store_path() == Path.home() / ".gloss"
    monkeypatch.setenv("GLOSS_STORE_PATH", str(tmp_path))
    assert get_default_store_path() == tmp_path


class TestRoundTrip:

    def test_save_and_load(self, tmp_path: Path):
        config = GlossConfig(
            path=tmp_path,
            site_title="build log",
            timezone="Europe/Berlin",
            backend="remote",
            remote=RemoteConfig(api_url="https://kv.example.com", api_key="secret"),
            assets=AssetConfig(uploader="http", retention_minutes=90),
            strict_identity=True,
        )
        save_config(config)

        loaded = load_config(tmp_path)
        assert loaded.controller == config.controller
        assert loaded.site_title == "build log"
        assert loaded.timezone == "Europe/Berlin"
        assert loaded.backend == "remote"
        assert loaded.remote == RemoteConfig("https://kv.example.com", "secret")
        assert loaded.assets.uploader == "http"
        assert loaded.assets.retention_minutes == 90
        assert loaded.strict_identity is True

    def test_load_or_create_is_stable(self, tmp_path: Path):
        first = load_or_create_config(tmp_path)
        assert (tmp_path / CONFIG_FILENAME).exists()
        second = load_or_create_config(tmp_path)
        assert first.controller == second.controller


class TestInvalidConfig:

    def _write(self, path: Path, text: str) -> None:
        (path / CONFIG_FILENAME).write_text(text)

    def test_missing(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path)

    def test_newer_version(self, tmp_path: Path):
        self._write(tmp_path, '[store]\nversion = 99\n[identity]\ncontroller = "02aa"\n')
        with pytest.raises(ValueError, match="newer"):
            load_config(tmp_path)

    def test_missing_controller(self, tmp_path: Path):
        self._write(tmp_path, "[store]\nversion = 1\n")
        with pytest.raises(ValueError, match="controller"):
            load_config(tmp_path)

    def test_bad_timezone(self, tmp_path: Path):
        self._write(tmp_path, '[identity]\ncontroller = "02aa"\n[site]\ntimezone = "Mars/Olympus"\n')
        with pytest.raises(ValueError, match="timezone"):
            load_config(tmp_path)

    def test_unknown_uploader(self, tmp_path: Path):
        self._write(tmp_path, '[identity]\ncontroller = "02aa"\n[assets]\nuploader = "ftp"\n')
        with pytest.raises(ValueError, match="uploader"):
            load_config(tmp_path)

    def test_broken_toml(self, tmp_path: Path):
        self._write(tmp_path, "[identity\n")
        with pytest.raises(ValueError, match="Invalid config"):
            load_config(tmp_path)


class TestEnvOverrides:

    def test_site_and_timezone(self, monkeypatch, tmp_path):
        monkeypatch.setenv("GLOSS_SITE_TITLE", "shipping")
        monkeypatch.setenv("TZ", "Asia/Tokyo")
        config = apply_env_overrides(GlossConfig(path=tmp_path))
        assert config.site_title == "shipping"
        assert config.timezone == "Asia/Tokyo"

    def test_posix_tz_string_ignored(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TZ", "not/a_zone")
        config = apply_env_overrides(GlossConfig(path=tmp_path))
        assert config.timezone == "America/Los_Angeles"

    def test_uhrp_switches_uploader(self, monkeypatch, tmp_path):
        monkeypatch.setenv("UHRP_URL", "https://blobs.example.com")
        monkeypatch.setenv("UHRP_RETENTION_MIN", "15")
        config = apply_env_overrides(GlossConfig(path=tmp_path))
        assert config.assets.uploader == "http"
        assert config.assets.storage_url == "https://blobs.example.com"
        assert config.assets.retention_minutes == 15

    def test_bad_retention(self, monkeypatch, tmp_path):
        monkeypatch.setenv("UHRP_RETENTION_MIN", "forever")
        with pytest.raises(ValueError, match="UHRP_RETENTION_MIN"):
            apply_env_overrides(GlossConfig(path=tmp_path))

    def test_api_url_switches_backend(self, monkeypatch, tmp_path):
        monkeypatch.setenv("GLOSS_API_URL", "https://kv.example.com")
        monkeypatch.setenv("GLOSS_API_KEY", "k")
        monkeypatch.setenv("GLOSS_CONTROLLER", "03cc")
        config = apply_env_overrides(GlossConfig(path=tmp_path))
        assert config.backend == "remote"
        assert config.remote == RemoteConfig("https://kv.example.com", "k")
        assert config.controller == "03cc"

    def test_overrides_not_persisted(self, monkeypatch, tmp_path):
        load_or_create_config(tmp_path)
        monkeypatch.setenv("GLOSS_SITE_TITLE", "temporary")
        assert load_or_create_config(tmp_path).site_title == "temporary"
        assert load_config(tmp_path).site_title == "notes"
