from __future__ import annotations

import logging
from typing import Any, Callable
from urllib.parse import quote

import httpx
from fastapi import status

from .config import settings
from .credentials import AccessToken, acquire_access_token
from .observability import record_upstream_call

logger = logging.getLogger(__name__)

_JSON_PATCH_MEDIA_TYPE = "application/json-patch+json"


class AzureDevOpsError(Exception):
    """An upstream Azure DevOps call failed."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "ado_request_failed"

    def __init__(self, message: str, *, upstream_status: int | None = None):
        super().__init__(message)
        self.message = message
        self.upstream_status = upstream_status


class AzureDevOpsNotFoundError(AzureDevOpsError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "ado_not_found"


class AzureDevOpsAuthError(AzureDevOpsError):
    error_code = "ado_auth_failed"


class AzureDevOpsUnavailableError(AzureDevOpsError):
    error_code = "ado_unreachable"


class OrganizationNotConfiguredError(AzureDevOpsError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "ado_organization_not_configured"


def quote_segment(value: str | int) -> str:
    return quote(str(value), safe="")


def _upstream_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return f"Azure DevOps request failed with status {response.status_code}"


class AzureDevOpsClient:
    def __init__(
        self,
        organization: str | None = None,
        token_provider: Callable[[], AccessToken] = acquire_access_token,
    ):
        organization = organization or settings.ado_organization
        if not organization:
            raise OrganizationNotConfiguredError(
                "Azure DevOps organization is not configured"
            )
        self.organization = organization
        self._token_provider = token_provider

    def _url(self, base_url: str, path: str, project: str | None) -> str:
        parts = [base_url.rstrip("/"), quote_segment(self.organization)]
        if project:
            parts.append(quote_segment(project))
        parts.append("_apis")
        parts.append(path.lstrip("/"))
        return "/".join(parts)

    def _request(
        self,
        method: str,
        path: str,
        *,
        project: str | None = None,
        params: dict[str, Any] | None = None,
        json: Any = None,
        content_type: str = "application/json",
        base_url: str | None = None,
    ) -> Any:
        token = self._token_provider()
        url = self._url(base_url or settings.ado_base_url, path, project)
        query = {
            key: value for key, value in (params or {}).items() if value is not None
        }
        query.setdefault("api-version", settings.ado_api_version)
        headers = {
            "Authorization": token.authorization_header,
            "Accept": "application/json",
            "User-Agent": settings.ado_user_agent,
        }
        if json is not None:
            headers["Content-Type"] = content_type

        try:
            response = httpx.request(
                method,
                url,
                params=query,
                json=json,
                headers=headers,
                timeout=settings.ado_request_timeout_seconds,
            )
        except httpx.HTTPError as exc:
            record_upstream_call(method, None)
            logger.warning("Azure DevOps %s %s failed: %s", method, url, exc)
            raise AzureDevOpsUnavailableError("Could not reach Azure DevOps") from exc

        record_upstream_call(method, response.status_code)
        if response.status_code == status.HTTP_404_NOT_FOUND:
            raise AzureDevOpsNotFoundError(
                _upstream_message(response), upstream_status=response.status_code
            )
        if response.status_code in {
            status.HTTP_401_UNAUTHORIZED,
            status.HTTP_403_FORBIDDEN,
        }:
            logger.warning(
                "Azure DevOps rejected %s credential with status %s",
                token.source,
                response.status_code,
            )
            raise AzureDevOpsAuthError(
                "Azure DevOps rejected the gateway credential",
                upstream_status=response.status_code,
            )
        if response.status_code >= 400:
            logger.warning(
                "Azure DevOps %s %s returned %s", method, url, response.status_code
            )
            raise AzureDevOpsError(
                _upstream_message(response), upstream_status=response.status_code
            )

        try:
            return response.json()
        except ValueError as exc:
            raise AzureDevOpsError(
                "Azure DevOps returned a non-JSON response",
                upstream_status=response.status_code,
            ) from exc

    def get(self, path: str, *, project: str | None = None, params=None) -> Any:
        return self._request("GET", path, project=project, params=params)

    def post(
        self, path: str, body: Any, *, project: str | None = None, params=None
    ) -> Any:
        return self._request("POST", path, project=project, params=params, json=body)

    def post_patch_document(
        self, path: str, document: list[dict[str, Any]], *, project: str | None = None
    ) -> Any:
        return self._request(
            "POST",
            path,
            project=project,
            json=document,
            content_type=_JSON_PATCH_MEDIA_TYPE,
        )

    def patch_document(
        self, path: str, document: list[dict[str, Any]], *, project: str | None = None
    ) -> Any:
        return self._request(
            "PATCH",
            path,
            project=project,
            json=document,
            content_type=_JSON_PATCH_MEDIA_TYPE,
        )

    def release_get(self, path: str, *, project: str, params=None) -> Any:
        return self._request(
            "GET",
            path,
            project=project,
            params=params,
            base_url=settings.ado_release_base_url,
        )


def values(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, dict):
        items = payload.get("value")
        if isinstance(items, list):
            return [item for item in items if isinstance(item, dict)]
    return []


def get_ado_client() -> AzureDevOpsClient:
    return AzureDevOpsClient()
