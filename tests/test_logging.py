"""Tests for the ops log and the CLI error log."""

import logging
import stat
from pathlib import Path

from gloss.errors import StorageUnavailable, log_exception
from gloss.logging_config import configure_ops_log


def _raise_and_log(store: Path) -> Path:
    try:
        raise StorageUnavailable("kv down")
    except StorageUnavailable as e:
        return log_exception(e, context="gloss list", store_path=store)


class TestErrorLog:

    def test_record_in_store_dir(self, tmp_path: Path):
        path = _raise_and_log(tmp_path)

        assert path == tmp_path / "gloss-errors.log"
        text = path.read_text()
        assert "gloss list: StorageUnavailable" in text
        assert "kv down" in text
        assert "Traceback" in text
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_records_append(self, tmp_path: Path):
        _raise_and_log(tmp_path)
        path = _raise_and_log(tmp_path)
        assert path.read_text().count("StorageUnavailable: kv down") == 2

    def test_env_store_path(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("GLOSS_STORE_PATH", str(tmp_path / "env"))
        path = log_exception(ValueError("bad"))
        assert path == tmp_path / "env" / "gloss-errors.log"
        assert "gloss: ValueError" in path.read_text()

    def test_unwritable_location_does_not_raise(self, tmp_path: Path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        path = log_exception(ValueError("bad"), store_path=blocker / "store")
        assert not path.exists()


def test_ops_log_records_module_name(tmp_path: Path):
    handler = configure_ops_log(tmp_path)
    try:
        logging.getLogger("gloss.chain").info("Appended %s", "2025-10-06/100000-000")
        handler.flush()
    finally:
        logging.getLogger("gloss").removeHandler(handler)
        handler.close()

    line = (tmp_path / "gloss-ops.log").read_text().strip()
    assert "INFO" in line
    assert "gloss.chain Appended 2025-10-06/100000-000" in line
