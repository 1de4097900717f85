"""
Unit tests for JsonHttpClient.
"""

import pytest
import requests

from analytics_pipeline.core.http_client import (
    HttpRequestError,
    JsonHttpClient,
    RetryableHttpError,
    RetryConfig,
    TimeoutConfig,
)


class FakeResponse:
    def __init__(self, status_code, content=b"", payload=None):
        self.status_code = status_code
        self.content = content
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


@pytest.fixture
def fast_retry():
    return RetryConfig(max_attempts=3, multiplier=0, max_wait=0)


def scripted(monkeypatch, client, outcomes):
    calls = []

    def fake_request(**kwargs):
        calls.append(kwargs)
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(client.session, "request", fake_request)
    return calls


@pytest.mark.unit
class TestJsonHttpClient:
    """Tests for JsonHttpClient"""

    def test_url_for(self):
        client = JsonHttpClient("http://svc/api/")
        assert client.url_for("tokens/u1") == "http://svc/api/tokens/u1"
        assert client.url_for("/insert") == "http://svc/api/insert"
        assert client.url_for("") == "http://svc/api"

    def test_get_json_passes_timeouts(self, monkeypatch):
        client = JsonHttpClient("http://svc", timeout=TimeoutConfig(connect=1, read=2))
        calls = scripted(monkeypatch, client, [FakeResponse(200, b"{}", {"ok": True})])

        assert client.get_json("status", params={"q": "1"}) == {"ok": True}
        assert calls[0]["method"] == "GET"
        assert calls[0]["params"] == {"q": "1"}
        assert calls[0]["timeout"] == (1, 2)

    def test_empty_body_returns_none(self, monkeypatch):
        client = JsonHttpClient("http://svc")
        scripted(monkeypatch, client, [FakeResponse(204)])
        assert client.post_json("insert", {}) is None

    def test_retries_connection_errors(self, monkeypatch, fast_retry):
        client = JsonHttpClient("http://svc", retry=fast_retry)
        calls = scripted(
            monkeypatch,
            client,
            [requests.ConnectionError("refused"), FakeResponse(502), FakeResponse(200, b"[]", [])],
        )

        assert client.get_json("x") == []
        assert len(calls) == 3

    def test_exhausted_retries_reraise(self, monkeypatch, fast_retry):
        client = JsonHttpClient("http://svc", retry=fast_retry)
        calls = scripted(monkeypatch, client, [FakeResponse(503)] * 3)

        with pytest.raises(RetryableHttpError) as exc_info:
            client.get_json("x")

        assert exc_info.value.status_code == 503
        assert len(calls) == 3

    def test_client_errors_not_retried(self, monkeypatch, fast_retry):
        client = JsonHttpClient("http://svc", retry=fast_retry)
        calls = scripted(monkeypatch, client, [FakeResponse(404)])

        with pytest.raises(HttpRequestError) as exc_info:
            client.get_json("x")

        assert not isinstance(exc_info.value, RetryableHttpError)
        assert exc_info.value.status_code == 404
        assert len(calls) == 1

    def test_invalid_json(self, monkeypatch):
        client = JsonHttpClient("http://svc")
        scripted(monkeypatch, client, [FakeResponse(200, b"<html>")])

        with pytest.raises(HttpRequestError, match="Invalid JSON"):
            client.get_json("x")
