from __future__ import annotations

import logging
from functools import lru_cache

from redis import Redis
from redis.exceptions import RedisError

from .config import settings

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_redis_client() -> Redis:
    return Redis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_timeout=settings.redis_socket_timeout_seconds,
        socket_connect_timeout=settings.redis_socket_timeout_seconds,
    )


def reset_redis_client() -> None:
    get_redis_client.cache_clear()


def ping_redis() -> bool:
    try:
        return bool(get_redis_client().ping())
    except RedisError as exc:
        logger.warning("Redis ping failed: %s", exc)
        return False
