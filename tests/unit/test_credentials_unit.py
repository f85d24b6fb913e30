from __future__ import annotations

import base64
import threading
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import pytest
from ado_gateway import credentials
from ado_gateway.config import settings

pytestmark = pytest.mark.unit


class DummyResponse:
    def __init__(self, status_code: int, payload: Any = None, *, invalid_json: bool = False):
        self.status_code = status_code
        self._payload = payload
        self._invalid_json = invalid_json

    def json(self):
        if self._invalid_json:
            raise ValueError("invalid json")
        return self._payload


def _expires_on(minutes: int) -> str:
    moment = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    return str(int(moment.timestamp()))


def test_pat_takes_precedence_and_uses_basic_scheme(monkeypatch):
    monkeypatch.setattr(settings, "ado_pat", "secret-pat")

    def fail_get(*_args, **_kwargs):
        raise AssertionError("identity endpoints must not be called")

    monkeypatch.setattr(credentials.httpx, "get", fail_get)
    token = credentials.acquire_access_token()

    assert token.source == "pat"
    assert token.scheme == "Basic"
    assert base64.b64decode(token.value).decode("utf-8") == ":secret-pat"
    assert token.authorization_header.startswith("Basic ")


def test_app_service_identity_used_when_configured(monkeypatch):
    monkeypatch.setattr(settings, "identity_endpoint", "http://localhost:42356/msi/token")
    monkeypatch.setattr(settings, "identity_header", "header-secret")
    monkeypatch.setattr(settings, "managed_identity_client_id", "client-123")
    captured: dict[str, Any] = {}

    def fake_get(url, params, headers, timeout):
        captured.update(url=url, params=params, headers=headers, timeout=timeout)
        return DummyResponse(200, {"access_token": "msi-token", "expires_on": _expires_on(60)})

    monkeypatch.setattr(credentials.httpx, "get", fake_get)
    token = credentials.acquire_access_token()

    assert token.source == "app_service_identity"
    assert token.authorization_header == "Bearer msi-token"
    assert captured["url"] == "http://localhost:42356/msi/token"
    assert captured["headers"] == {"X-IDENTITY-HEADER": "header-secret"}
    assert captured["params"]["api-version"] == "2019-08-01"
    assert captured["params"]["resource"] == settings.ado_token_resource
    assert captured["params"]["client_id"] == "client-123"


def test_falls_back_to_imds_when_app_service_identity_fails(monkeypatch):
    monkeypatch.setattr(settings, "identity_endpoint", "http://localhost:42356/msi/token")
    monkeypatch.setattr(settings, "identity_header", "header-secret")
    monkeypatch.setattr(settings, "managed_identity_client_id", None)
    calls: list[str] = []

    def fake_get(url, params, headers, timeout):
        calls.append(url)
        if url == settings.imds_endpoint:
            assert headers == {"Metadata": "true"}
            assert params["api-version"] == "2018-02-01"
            return DummyResponse(200, {"access_token": "imds-token", "expires_in": "3600"})
        return DummyResponse(500, {})

    monkeypatch.setattr(credentials.httpx, "get", fake_get)
    token = credentials.acquire_access_token()

    assert calls == ["http://localhost:42356/msi/token", settings.imds_endpoint]
    assert token.source == "imds"
    assert token.value == "imds-token"
    assert token.expires_at is not None


def test_raises_when_no_source_produces_a_token(monkeypatch):
    def fake_get(*_args, **_kwargs):
        raise httpx.ConnectError("no route to host")

    monkeypatch.setattr(credentials.httpx, "get", fake_get)
    with pytest.raises(credentials.TokenUnavailableError) as exc_info:
        credentials.acquire_access_token()
    assert "imds endpoint unreachable" in exc_info.value.reason


@pytest.mark.parametrize(
    ("response", "reason"),
    [
        (DummyResponse(400, {}), "returned status 400"),
        (DummyResponse(200, invalid_json=True), "Failed to parse"),
        (DummyResponse(200, {"token_type": "Bearer"}), "did not include an access token"),
    ],
)
def test_imds_failure_reasons(monkeypatch, response, reason):
    monkeypatch.setattr(credentials.httpx, "get", lambda *_a, **_k: response)
    with pytest.raises(credentials.TokenUnavailableError) as exc_info:
        credentials.acquire_access_token()
    assert reason in exc_info.value.reason


def test_bearer_tokens_are_cached_until_close_to_expiry(monkeypatch):
    issued: list[str] = []

    def fake_get(url, params, headers, timeout):
        issued.append(url)
        return DummyResponse(200, {"access_token": f"token-{len(issued)}", "expires_on": _expires_on(30)})

    monkeypatch.setattr(credentials.httpx, "get", fake_get)
    first = credentials.acquire_access_token()
    second = credentials.acquire_access_token()
    assert first is second
    assert len(issued) == 1

    credentials.reset_token_cache()
    third = credentials.acquire_access_token()
    assert third.value == "token-2"


def test_expiring_tokens_are_refreshed(monkeypatch):
    expiries = iter([_expires_on(0), _expires_on(60)])

    def fake_get(url, params, headers, timeout):
        return DummyResponse(200, {"access_token": "t", "expires_on": next(expiries)})

    monkeypatch.setattr(credentials.httpx, "get", fake_get)
    first = credentials.acquire_access_token()
    second = credentials.acquire_access_token()
    assert first is not second
    assert second.expires_at > first.expires_at


def test_access_token_freshness_margin():
    now = datetime.now(timezone.utc)
    token = credentials.AccessToken(
        value="v", scheme="Bearer", source="imds", expires_at=now + timedelta(seconds=90)
    )
    assert token.is_fresh(now, 60) is True
    assert token.is_fresh(now, 120) is False
    assert credentials.AccessToken(value="v", scheme="Basic", source="pat").is_fresh(now, 10**6)


def test_concurrent_lookups_do_not_queue_behind_each_other(monkeypatch):
    workers = 4
    # Every worker must be inside the identity request at once for this to pass.
    inside_request = threading.Barrier(workers, timeout=5)
    calls: list[str] = []

    def slow_get(url, params, headers, timeout):
        calls.append(url)
        inside_request.wait()
        raise httpx.ConnectTimeout("timed out")

    monkeypatch.setattr(credentials.httpx, "get", slow_get)
    reasons: list[str] = []

    def worker():
        try:
            credentials.acquire_access_token()
        except credentials.TokenUnavailableError as exc:
            reasons.append(exc.reason)

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert len(calls) == workers
    assert len(reasons) == workers
    assert all("imds endpoint unreachable" in reason for reason in reasons)
    assert not inside_request.broken


def test_failed_lookups_are_remembered_briefly(monkeypatch):
    monkeypatch.setattr(credentials.settings, "token_failure_cache_seconds", 30)
    calls: list[str] = []

    def unreachable(url, params, headers, timeout):
        calls.append(url)
        raise httpx.ConnectError("no route to host")

    monkeypatch.setattr(credentials.httpx, "get", unreachable)
    for _ in range(3):
        with pytest.raises(credentials.TokenUnavailableError) as exc_info:
            credentials.acquire_access_token()
        assert "imds endpoint unreachable" in exc_info.value.reason
    assert len(calls) == 1

    later = datetime.now(timezone.utc) + timedelta(seconds=31)
    monkeypatch.setattr(credentials, "_now_utc", lambda: later)
    with pytest.raises(credentials.TokenUnavailableError):
        credentials.acquire_access_token()
    assert len(calls) == 2


def test_reset_forgets_remembered_failure(monkeypatch):
    replies = iter(
        [
            DummyResponse(500, {}),
            DummyResponse(200, {"access_token": "fresh", "expires_in": "3600"}),
        ]
    )
    monkeypatch.setattr(credentials.httpx, "get", lambda *_a, **_k: next(replies))

    with pytest.raises(credentials.TokenUnavailableError):
        credentials.acquire_access_token()

    credentials.reset_token_cache()
    assert credentials.acquire_access_token().value == "fresh"
