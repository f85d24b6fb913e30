from __future__ import annotations

import base64
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from .config import settings

logger = logging.getLogger(__name__)

_APP_SERVICE_API_VERSION = "2019-08-01"
_IMDS_API_VERSION = "2018-02-01"


class TokenUnavailableError(Exception):
    """No credential source produced an Azure DevOps token."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


@dataclass(frozen=True)
class AccessToken:
    value: str
    scheme: str
    source: str
    expires_at: datetime | None = None

    @property
    def authorization_header(self) -> str:
        return f"{self.scheme} {self.value}"

    def is_fresh(self, now: datetime, margin_seconds: int) -> bool:
        if self.expires_at is None:
            return True
        return now + timedelta(seconds=margin_seconds) < self.expires_at


_cache_lock = threading.Lock()
_cached_token: AccessToken | None = None
# (retry_after, reason) of the last failed lookup
_cached_failure: tuple[datetime, str] | None = None


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def reset_token_cache() -> None:
    global _cached_token, _cached_failure
    with _cache_lock:
        _cached_token = None
        _cached_failure = None


def _pat_token(pat: str) -> AccessToken:
    encoded = base64.b64encode(f":{pat}".encode("utf-8")).decode("ascii")
    return AccessToken(value=encoded, scheme="Basic", source="pat")


def _expiry_from_payload(payload: dict[str, Any], now: datetime) -> datetime:
    expires_on = payload.get("expires_on")
    if expires_on is not None:
        try:
            return datetime.fromtimestamp(int(expires_on), tz=timezone.utc)
        except (TypeError, ValueError):
            pass
    expires_in = payload.get("expires_in")
    try:
        return now + timedelta(seconds=int(expires_in))
    except (TypeError, ValueError):
        return now + timedelta(minutes=5)


def _request_identity_token(
    url: str, *, params: dict[str, str], headers: dict[str, str], source: str
) -> AccessToken:
    try:
        response = httpx.get(
            url,
            params=params,
            headers=headers,
            timeout=settings.token_timeout_seconds,
        )
    except httpx.HTTPError as exc:
        raise TokenUnavailableError(f"{source} endpoint unreachable: {exc}") from exc

    if response.status_code != 200:
        raise TokenUnavailableError(
            f"{source} endpoint returned status {response.status_code}"
        )

    try:
        payload = response.json()
    except ValueError as exc:
        raise TokenUnavailableError(f"Failed to parse {source} token response") from exc

    access_token = payload.get("access_token") if isinstance(payload, dict) else None
    if not isinstance(access_token, str) or not access_token:
        raise TokenUnavailableError(f"{source} response did not include an access token")

    return AccessToken(
        value=access_token,
        scheme="Bearer",
        source=source,
        expires_at=_expiry_from_payload(payload, _now_utc()),
    )


def _app_service_token() -> AccessToken:
    params = {
        "resource": settings.ado_token_resource,
        "api-version": _APP_SERVICE_API_VERSION,
    }
    if settings.managed_identity_client_id:
        params["client_id"] = settings.managed_identity_client_id
    return _request_identity_token(
        str(settings.identity_endpoint),
        params=params,
        headers={"X-IDENTITY-HEADER": str(settings.identity_header)},
        source="app_service_identity",
    )


def _imds_token() -> AccessToken:
    params = {
        "resource": settings.ado_token_resource,
        "api-version": _IMDS_API_VERSION,
    }
    if settings.managed_identity_client_id:
        params["client_id"] = settings.managed_identity_client_id
    return _request_identity_token(
        settings.imds_endpoint,
        params=params,
        headers={"Metadata": "true"},
        source="imds",
    )


def _acquire_uncached() -> AccessToken:
    if settings.ado_pat:
        return _pat_token(settings.ado_pat)

    reason = "No credential source configured"
    if settings.identity_endpoint and settings.identity_header:
        try:
            return _app_service_token()
        except TokenUnavailableError as exc:
            logger.info("App Service managed identity unavailable: %s", exc.reason)
            reason = exc.reason

    try:
        return _imds_token()
    except TokenUnavailableError as exc:
        logger.info("Instance metadata identity unavailable: %s", exc.reason)
        reason = exc.reason

    raise TokenUnavailableError(reason)


def _cached_result(now: datetime) -> AccessToken | None:
    with _cache_lock:
        if _cached_token is not None and _cached_token.is_fresh(
            now, settings.token_refresh_margin_seconds
        ):
            return _cached_token
        if _cached_failure is not None and now < _cached_failure[0]:
            raise TokenUnavailableError(_cached_failure[1])
    return None


def acquire_access_token() -> AccessToken:
    """Return a usable token, reaching the identity endpoints only on a cache miss.

    Lookups run outside the lock so concurrent callers never queue behind a
    slow endpoint. A failed lookup is remembered for
    ``token_failure_cache_seconds`` and re-raised without new requests.
    """
    global _cached_token, _cached_failure
    cached = _cached_result(_now_utc())
    if cached is not None:
        return cached

    try:
        token = _acquire_uncached()
    except TokenUnavailableError as exc:
        retry_after = _now_utc() + timedelta(seconds=settings.token_failure_cache_seconds)
        with _cache_lock:
            _cached_failure = (retry_after, exc.reason)
        raise

    with _cache_lock:
        _cached_token = token
        _cached_failure = None
    logger.info("Acquired Azure DevOps credential from %s", token.source)
    return token
