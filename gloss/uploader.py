"""
Blob uploaders for snapped files.

LocalBlobUploader keeps content-addressed copies in the store directory.
HttpBlobUploader posts to a storage service and returns its public URL.
"""

from __future__ import annotations

import hashlib
import logging
import mimetypes
from pathlib import Path

import httpx

from .errors import UploadError
from .protocol import UploadResult
from .remote import DEFAULT_TIMEOUT, require_https

logger = logging.getLogger(__name__)


def guess_mime_type(path: Path) -> str:
    """MIME type from the file name, octet-stream when unknown."""
    mime, _ = mimetypes.guess_type(path.name)
    return mime or "application/octet-stream"


class LocalBlobUploader:
    """Content-addressed file storage: <root>/<sha256><ext>."""

    def __init__(self, root: Path):
        self._root = root

    def upload(
        self,
        data: bytes,
        mime_type: str,
        *,
        retention_minutes: int = 0,
    ) -> UploadResult:
        digest = hashlib.sha256(data).hexdigest()
        ext = mimetypes.guess_extension(mime_type) or ""
        target = self._root / f"{digest}{ext}"
        try:
            self._root.mkdir(parents=True, exist_ok=True)
            if not target.exists():
                target.write_bytes(data)
        except OSError as e:
            raise UploadError(f"Failed to store asset: {e}") from e
        logger.info("Stored asset %s (%d bytes)", target.name, len(data))
        # Retention is not enforced for local files
        return UploadResult(url=target.resolve().as_uri(), published=True)

    def close(self) -> None:
        pass


class HttpBlobUploader:
    """HTTP client for a blob storage service.

    POST /upload (multipart: file, retentionPeriod) -> {"url", "published"}
    """

    def __init__(self, storage_url: str, *, timeout: float = DEFAULT_TIMEOUT):
        self._storage_url = require_https(storage_url, "Storage")
        self._client = httpx.Client(base_url=self._storage_url, timeout=timeout)

    def upload(
        self,
        data: bytes,
        mime_type: str,
        *,
        retention_minutes: int,
    ) -> UploadResult:
        try:
            resp = self._client.post(
                "/upload",
                files={"file": ("blob", data, mime_type)},
                data={"retentionPeriod": str(retention_minutes)},
            )
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as e:
            raise UploadError(
                f"Upload rejected: {e.response.status_code} {e.response.text}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise UploadError(f"Upload failed: {e}") from e

        if not isinstance(body, dict):
            raise UploadError("Upload response is not an object")
        url = body.get("url") or body.get("uhrpURL")
        if not url:
            raise UploadError("Upload response has no URL")
        return UploadResult(url=str(url), published=bool(body.get("published", True)))

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()
