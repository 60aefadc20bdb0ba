"""
HTTP client for a hosted versioned key-value service.

Endpoints:
    PUT /v1/kv/{key}                 body {"value": ...}, header X-Controller
    GET /v1/kv/{key}?controller=&history=true
        -> {"results": [{"controller", "value", "history", "history_order"}]}

Transport retry lives here; callers see one StorageUnavailable when the
service cannot be reached after MAX_RETRIES attempts.
"""

from __future__ import annotations

import logging
import time
from typing import Optional
from urllib.parse import quote

import httpx

from .errors import StorageError, StorageUnavailable
from .protocol import Identity, KVResult

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_BACKOFF_BASE = 1.0  # seconds

DEFAULT_TIMEOUT = 30.0


def require_https(api_url: str, what: str) -> str:
    """Refuse non-HTTPS URLs for remote hosts (credentials would leak)."""
    api_url = api_url.rstrip("/")
    if not api_url.startswith("https://"):
        from urllib.parse import urlparse
        host = urlparse(api_url).hostname or ""
        if host not in ("localhost", "127.0.0.1", "::1"):
            raise ValueError(
                f"{what} URL must use HTTPS (got {api_url}). "
                "Use HTTPS to protect API credentials, or use localhost for local development."
            )
    return api_url


class RemoteKVStore:
    """HTTP client for the versioned KV service."""

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str] = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._api_url = require_https(api_url, "KV store")

        headers: dict[str, str] = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self._client = httpx.Client(
            base_url=self._api_url,
            headers=headers,
            timeout=timeout,
        )

    @staticmethod
    def _path(key: str) -> str:
        return f"/v1/kv/{quote(key, safe='')}"

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send a request, retrying transient failures.

        Retries 5xx, 429, timeouts and connection errors with exponential
        backoff. 4xx responses other than 429 and 404 raise StorageError
        immediately.
        """
        last_error: Exception | None = None
        for attempt in range(MAX_RETRIES):
            try:
                resp = self._client.request(method, path, **kwargs)
                if resp.status_code == 429:
                    retry_after = _retry_after(resp, attempt)
                    logger.info("Rate limited, retrying after %.1fs", retry_after)
                    last_error = StorageUnavailable("rate limited")
                    time.sleep(retry_after)
                    continue
                if resp.status_code == 404:
                    return resp
                resp.raise_for_status()
                return resp
            except httpx.HTTPStatusError as e:
                if e.response.status_code < 500:
                    raise StorageError(
                        f"KV request rejected: {e.response.status_code} {e.response.text}"
                    ) from e
                last_error = e
            except (httpx.TimeoutException, httpx.TransportError) as e:
                last_error = e

            if attempt < MAX_RETRIES - 1:
                delay = RETRY_BACKOFF_BASE * (2 ** attempt)
                logger.info(
                    "KV %s attempt %d failed, retrying in %.1fs: %s",
                    method, attempt + 1, delay, last_error,
                )
                time.sleep(delay)

        raise StorageUnavailable(
            f"KV store unreachable after {MAX_RETRIES} attempts: {last_error}"
        ) from last_error

    def set(self, key: str, value: str, identity: Identity) -> None:
        """PUT /v1/kv/{key} as identity."""
        resp = self._request(
            "PUT",
            self._path(key),
            json={"value": value},
            headers={"X-Controller": identity.controller},
        )
        if resp.status_code == 404:
            raise StorageError(f"KV service has no endpoint for {key}")

    def get(
        self,
        key: str,
        *,
        controller: Optional[str] = None,
        history: bool = False,
    ) -> list[KVResult]:
        """GET /v1/kv/{key} -> one KVResult per controller."""
        params: dict[str, str] = {"history": "true" if history else "false"}
        if controller is not None:
            params["controller"] = controller
        resp = self._request("GET", self._path(key), params=params)
        if resp.status_code == 404:
            return []
        try:
            data = resp.json()
            rows = data.get("results", [])
            return [_parse_result(key, row) for row in rows]
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise StorageError(f"Malformed KV response for {key}: {e}") from e

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()


def _retry_after(resp: httpx.Response, attempt: int) -> float:
    """Seconds to wait after a 429, capped at 60.

    Retry-After may also be an HTTP date; anything that is not a number
    of seconds falls back to the regular backoff delay.
    """
    try:
        seconds = float(resp.headers.get("Retry-After", "5"))
    except ValueError:
        seconds = RETRY_BACKOFF_BASE * (2 ** attempt)
    return min(max(seconds, 0.0), 60.0)


def _parse_result(key: str, row: dict) -> KVResult:
    controller = row.get("controller")
    if not isinstance(controller, str) or not controller:
        raise ValueError(f"result has no controller: {controller!r}")
    value = row.get("value")
    if value is not None and not isinstance(value, str):
        raise ValueError("result value is not a string")
    order = row.get("history_order", "oldest-first")
    if order not in ("newest-first", "oldest-first"):
        raise ValueError(f"unknown history_order {order!r}")
    history = row.get("history") or []
    if not isinstance(history, list) or not all(isinstance(h, str) for h in history):
        raise ValueError("result history is not a list of strings")
    return KVResult(
        key=key,
        controller=controller,
        value=row.get("value"),
        history=tuple(history),
        history_order=order,
    )
