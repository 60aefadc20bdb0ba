"""Tests for blob uploaders."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest

from gloss.errors import UploadError
from gloss.protocol import BlobUploader
from gloss.uploader import HttpBlobUploader, LocalBlobUploader, guess_mime_type

from tests.test_remote import FakeResponse


def test_guess_mime_type():
    assert guess_mime_type(Path("shot.png")) == "image/png"
    assert guess_mime_type(Path("notes")) == "application/octet-stream"


class TestLocalBlobUploader:

    def test_content_addressed(self, tmp_path: Path):
        uploader = LocalBlobUploader(tmp_path / "assets")
        first = uploader.upload(b"\x89PNG", "image/png")
        second = uploader.upload(b"\x89PNG", "image/png")

        assert first.url == second.url
        assert first.url.startswith("file://")
        assert first.url.endswith(".png")
        assert len(list((tmp_path / "assets").iterdir())) == 1

    def test_satisfies_protocol(self, tmp_path: Path):
        assert isinstance(LocalBlobUploader(tmp_path), BlobUploader)

    def test_unwritable_root(self, tmp_path: Path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        uploader = LocalBlobUploader(blocker / "assets")
        with pytest.raises(UploadError):
            uploader.upload(b"x", "text/plain")


@pytest.fixture
def http_uploader():
    with patch("gloss.uploader.httpx.Client") as MockClient:
        client_instance = MagicMock()
        MockClient.return_value = client_instance
        yield HttpBlobUploader("https://storage.example.com"), client_instance


class TestHttpBlobUploader:

    def test_posts_multipart(self, http_uploader):
        uploader, http = http_uploader
        http.post.return_value = FakeResponse(json_data={
            "uhrpURL": "uhrp://abc", "published": True,
        })

        result = uploader.upload(b"data", "image/png", retention_minutes=60)

        assert result.url == "uhrp://abc"
        assert result.published
        args, kwargs = http.post.call_args
        assert args == ("/upload",)
        assert kwargs["files"]["file"][1] == b"data"
        assert kwargs["data"] == {"retentionPeriod": "60"}

    def test_rejects_plain_http(self):
        with pytest.raises(ValueError):
            HttpBlobUploader("http://storage.example.com")

    def test_http_error(self, http_uploader):
        uploader, http = http_uploader
        http.post.return_value = FakeResponse(status_code=500, text="boom")
        with pytest.raises(UploadError, match="500"):
            uploader.upload(b"x", "text/plain", retention_minutes=1)

    def test_transport_error(self, http_uploader):
        uploader, http = http_uploader
        http.post.side_effect = httpx.ConnectError("down")
        with pytest.raises(UploadError, match="Upload failed"):
            uploader.upload(b"x", "text/plain", retention_minutes=1)

    def test_missing_url(self, http_uploader):
        uploader, http = http_uploader
        http.post.return_value = FakeResponse(json_data={"published": False})
        with pytest.raises(UploadError, match="no URL"):
            uploader.upload(b"x", "text/plain", retention_minutes=1)
