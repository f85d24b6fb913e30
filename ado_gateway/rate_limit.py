from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, cast

from fastapi import Depends, HTTPException, Request, Response, status
from redis import Redis
from redis.exceptions import RedisError

from .config import settings
from .domain_selection import Domain
from .redis_client import get_redis_client

logger = logging.getLogger(__name__)

_GATEWAY_SCOPE = "gateway"

_RATE_LIMIT_LUA = """
local current = redis.call("INCR", KEYS[1])
if current == 1 then
  redis.call("EXPIRE", KEYS[1], ARGV[1])
end
local ttl = redis.call("TTL", KEYS[1])
return {current, ttl}
"""


@dataclass(frozen=True)
class RateLimitPolicy:
    name: str
    limit: int
    window_seconds: int


def _load_policies() -> dict[str, RateLimitPolicy]:
    return {
        "api_read": RateLimitPolicy(
            "api_read",
            settings.rate_limit_read_limit,
            settings.rate_limit_read_window_seconds,
        ),
        "api_write": RateLimitPolicy(
            "api_write",
            settings.rate_limit_write_limit,
            settings.rate_limit_write_window_seconds,
        ),
    }


def _client_ip(request: Request) -> str:
    xff = request.headers.get("x-forwarded-for")
    if xff and settings.trust_proxy_headers:
        return xff.split(",")[0].strip()
    if request.client is None:
        return "unknown"
    return request.client.host


def _principal_for_request(request: Request) -> str:
    return f"ip:{_client_ip(request)}"


def build_rate_limit_key(
    policy: RateLimitPolicy,
    principal: str,
    now_seconds: float | None = None,
    domain: Domain | None = None,
) -> str:
    """Bucket key per policy, domain and window; the principal is hashed."""
    epoch_seconds = int(now_seconds or time.time())
    window_bucket = epoch_seconds // policy.window_seconds
    principal_hash = hashlib.sha256(principal.encode("utf-8")).hexdigest()[:16]
    scope = domain.value if domain is not None else _GATEWAY_SCOPE
    return f"rl:{policy.name}:{scope}:{window_bucket}:{principal_hash}"


class RedisRateLimiter:
    def __init__(self, redis_factory: Callable[[], Redis] = get_redis_client):
        self._redis_factory = redis_factory

    def check(
        self, policy: RateLimitPolicy, principal: str, domain: Domain | None = None
    ) -> tuple[bool, int, int]:
        key = build_rate_limit_key(policy, principal, domain=domain)
        redis_client = self._redis_factory()
        raw_result = redis_client.eval(  # type: ignore[arg-type]
            _RATE_LIMIT_LUA, 1, key, str(policy.window_seconds)
        )
        result = cast(list[Any], raw_result)
        count = int(result[0])
        ttl = max(int(result[1]), 0)
        remaining = max(policy.limit - count, 0)
        allowed = count <= policy.limit
        return allowed, remaining, ttl


_rate_limiter = RedisRateLimiter()


def _should_rate_limit() -> bool:
    return settings.enable_optional_rate_limiting and settings.rate_limit_enabled


def rate_limit_dependency(policy_name: str, domain: Domain | None = None):
    """Per-route limiter; requests are counted in one bucket per domain."""
    policies = _load_policies()
    if policy_name not in policies:
        raise ValueError(f"Unknown rate limit policy: {policy_name}")
    policy = policies[policy_name]

    scope = domain.value if domain is not None else _GATEWAY_SCOPE

    def _dependency(request: Request, response: Response) -> None:
        if not _should_rate_limit():
            return

        principal = _principal_for_request(request)
        try:
            allowed, remaining, retry_after = _rate_limiter.check(
                policy, principal, domain
            )
        except RedisError:
            if settings.rate_limit_fail_open:
                logger.warning("Rate limiting backend unavailable; allowing request")
                return
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail={
                    "detail": "Rate limiting backend is unavailable",
                    "error_code": "rate_limit_backend_unavailable",
                },
            )

        response.headers["X-RateLimit-Limit"] = str(policy.limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Reset"] = str(retry_after)
        response.headers["X-RateLimit-Scope"] = scope
        if not allowed:
            logger.info(
                "Rate limit %s exceeded for %s on %s",
                policy.name,
                principal,
                scope,
            )
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={
                    "detail": "Rate limit exceeded",
                    "error_code": "rate_limit_exceeded",
                },
                headers={"Retry-After": str(max(retry_after, 1))},
            )

    return Depends(_dependency)
