from __future__ import annotations

from typing import Any

import pytest
from ado_gateway import credentials
from ado_gateway.ado_client import get_ado_client
from ado_gateway.config import settings
from ado_gateway.domain_selection import DomainSelection
from ado_gateway.main import create_app
from fastapi.testclient import TestClient


class FakeAdoClient:
    """Records calls and replays canned payloads keyed by (method, path)."""

    organization = "contoso"

    def __init__(self, responses: dict[tuple[str, str], Any] | None = None):
        self.responses = responses or {}
        self.calls: list[dict[str, Any]] = []
        self.error: Exception | None = None

    def _reply(self, method: str, path: str, **kwargs: Any) -> Any:
        self.calls.append({"method": method, "path": path, **kwargs})
        if self.error is not None:
            raise self.error
        return self.responses.get((method, path), {"value": []})

    def get(self, path, *, project=None, params=None):
        return self._reply("GET", path, project=project, params=params)

    def post(self, path, body, *, project=None, params=None):
        return self._reply("POST", path, project=project, params=params, body=body)

    def post_patch_document(self, path, document, *, project=None):
        return self._reply("POST", path, project=project, document=document)

    def patch_document(self, path, document, *, project=None):
        return self._reply("PATCH", path, project=project, document=document)

    def release_get(self, path, *, project, params=None):
        return self._reply("RELEASE", path, project=project, params=params)


@pytest.fixture(autouse=True)
def gateway_settings(monkeypatch):
    monkeypatch.setattr(settings, "ado_organization", "contoso")
    monkeypatch.setattr(settings, "ado_pat", None)
    monkeypatch.setattr(settings, "identity_endpoint", None)
    monkeypatch.setattr(settings, "identity_header", None)
    monkeypatch.setattr(settings, "mock_fallback_enabled", True)
    monkeypatch.setattr(settings, "rate_limit_enabled", False)
    monkeypatch.setattr(settings, "metrics_enabled", False)
    credentials.reset_token_cache()
    yield
    credentials.reset_token_cache()


@pytest.fixture
def fake_ado() -> FakeAdoClient:
    return FakeAdoClient()


@pytest.fixture
def make_client(fake_ado):
    def _make(selection: DomainSelection | None = None) -> TestClient:
        app = create_app(selection or DomainSelection.all())
        app.dependency_overrides[get_ado_client] = lambda: fake_ado
        return TestClient(app, raise_server_exceptions=False)

    return _make


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()
