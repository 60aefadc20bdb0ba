"""Tests for gloss.remote, the HTTP client for the versioned KV service."""

from unittest.mock import MagicMock, patch

import httpx
import pytest

from gloss.errors import StorageError, StorageUnavailable
from gloss.remote import RemoteKVStore

from tests.conftest import ALICE


class FakeResponse:
    """Minimal httpx.Response stand-in."""

    def __init__(self, status_code=200, json_data=None, text="", headers=None):
        self.status_code = status_code
        self._json = json_data if json_data is not None else {}
        self.text = text
        self.headers = headers or {}

    def json(self):
        if isinstance(self._json, Exception):
            raise self._json
        return self._json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise httpx.HTTPStatusError(
                f"{self.status_code}",
                request=httpx.Request("GET", "http://test"),
                response=self,
            )


@pytest.fixture
def mock_client():
    """RemoteKVStore with a mocked httpx.Client."""
    with patch("gloss.remote.httpx.Client") as MockClient:
        client_instance = MagicMock()
        MockClient.return_value = client_instance
        store = RemoteKVStore("https://kv.example.com", "test-key")
        yield store, client_instance, MockClient


class TestHTTPSEnforcement:
    def test_allows_https(self):
        with patch("gloss.remote.httpx.Client"):
            store = RemoteKVStore("https://kv.example.com/")
            assert store._api_url == "https://kv.example.com"

    def test_allows_localhost(self):
        with patch("gloss.remote.httpx.Client"):
            store = RemoteKVStore("http://localhost:8080")
            assert store._api_url == "http://localhost:8080"

    def test_rejects_plain_http(self):
        with pytest.raises(ValueError, match="must use HTTPS"):
            RemoteKVStore("http://kv.example.com")

    def test_bearer_header(self, mock_client):
        _store, _http, MockClient = mock_client
        headers = MockClient.call_args[1]["headers"]
        assert headers["Authorization"] == "Bearer test-key"


class TestSet:
    def test_put_with_controller_header(self, mock_client):
        store, http, _ = mock_client
        http.request.return_value = FakeResponse(status_code=204)

        store.set("2025-10-06", '{"key":"2025-10-06","logs":[]}', ALICE)

        args, kwargs = http.request.call_args
        assert args == ("PUT", "/v1/kv/2025-10-06")
        assert kwargs["json"] == {"value": '{"key":"2025-10-06","logs":[]}'}
        assert kwargs["headers"] == {"X-Controller": ALICE.controller}

    def test_key_is_path_escaped(self, mock_client):
        store, http, _ = mock_client
        http.request.return_value = FakeResponse(status_code=204)
        store.set("entry/2025-10-06", "v", ALICE)
        assert http.request.call_args[0][1] == "/v1/kv/entry%2F2025-10-06"

    def test_4xx_is_storage_error_without_retry(self, mock_client):
        store, http, _ = mock_client
        http.request.return_value = FakeResponse(status_code=403, text="forbidden")

        with pytest.raises(StorageError, match="403"):
            store.set("k", "v", ALICE)
        assert http.request.call_count == 1

    def test_retries_5xx_then_succeeds(self, mock_client):
        store, http, _ = mock_client
        http.request.side_effect = [
            FakeResponse(status_code=503),
            FakeResponse(status_code=204),
        ]
        with patch("gloss.remote.time.sleep"):
            store.set("k", "v", ALICE)
        assert http.request.call_count == 2

    def test_connection_errors_become_unavailable(self, mock_client):
        store, http, _ = mock_client
        http.request.side_effect = httpx.ConnectError("down")

        with patch("gloss.remote.time.sleep") as sleep:
            with pytest.raises(StorageUnavailable, match="after 3 attempts"):
                store.set("k", "v", ALICE)
        assert http.request.call_count == 3
        assert sleep.call_count == 2

    def test_rate_limit_honors_retry_after(self, mock_client):
        store, http, _ = mock_client
        http.request.side_effect = [
            FakeResponse(status_code=429, headers={"Retry-After": "2"}),
            FakeResponse(status_code=204),
        ]
        with patch("gloss.remote.time.sleep") as sleep:
            store.set("k", "v", ALICE)
        sleep.assert_called_once_with(2.0)

    def test_rate_limit_with_http_date_uses_backoff(self, mock_client):
        store, http, _ = mock_client
        http.request.side_effect = [
            FakeResponse(status_code=429, headers={"Retry-After": "Wed, 21 Oct 2026 07:28:00 GMT"}),
            FakeResponse(status_code=204),
        ]
        with patch("gloss.remote.time.sleep") as sleep:
            store.set("k", "v", ALICE)
        sleep.assert_called_once_with(1.0)


class TestGet:
    def test_parses_results(self, mock_client):
        store, http, _ = mock_client
        http.request.return_value = FakeResponse(json_data={"results": [
            {"controller": "02aa", "value": "v3", "history": ["v1", "v2"],
             "history_order": "oldest-first"},
            {"controller": "03bb", "value": "b1"},
        ]})

        results = store.get("2025-10-06", history=True)

        args, kwargs = http.request.call_args
        assert args == ("GET", "/v1/kv/2025-10-06")
        assert kwargs["params"] == {"history": "true"}
        assert [r.controller for r in results] == ["02aa", "03bb"]
        assert results[0].values_newest_first() == ["v3", "v2", "v1"]
        assert results[1].history == ()

    def test_controller_param(self, mock_client):
        store, http, _ = mock_client
        http.request.return_value = FakeResponse(json_data={"results": []})
        store.get("k", controller="02aa")
        assert http.request.call_args[1]["params"] == {"history": "false", "controller": "02aa"}

    def test_404_is_empty(self, mock_client):
        store, http, _ = mock_client
        http.request.return_value = FakeResponse(status_code=404)
        assert store.get("2099-01-01", history=True) == []

    def test_malformed_response(self, mock_client):
        store, http, _ = mock_client
        http.request.return_value = FakeResponse(json_data={"results": [{"value": "x"}]})
        with pytest.raises(StorageError, match="Malformed"):
            store.get("k")

    @pytest.mark.parametrize("row", [
        {"controller": None, "value": "x"},
        {"controller": 42, "value": "x"},
        {"controller": "02aa", "value": 7},
        {"controller": "02aa", "value": "x", "history": "v1"},
    ])
    def test_malformed_rows_rejected(self, mock_client, row):
        store, http, _ = mock_client
        http.request.return_value = FakeResponse(json_data={"results": [row]})
        with pytest.raises(StorageError, match="Malformed"):
            store.get("k", history=True)

    def test_unknown_history_order_rejected(self, mock_client):
        store, http, _ = mock_client
        http.request.return_value = FakeResponse(json_data={"results": [
            {"controller": "c", "value": "v", "history_order": "sideways"},
        ]})
        with pytest.raises(StorageError):
            store.get("k")

    def test_timeout_becomes_unavailable(self, mock_client):
        store, http, _ = mock_client
        http.request.side_effect = httpx.ReadTimeout("slow")
        with patch("gloss.remote.time.sleep"):
            with pytest.raises(StorageUnavailable):
                store.get("k")


def test_close(mock_client):
    store, http, _ = mock_client
    store.close()
    http.close.assert_called_once()
