from __future__ import annotations

import logging

from .config import settings
from .credentials import TokenUnavailableError, acquire_access_token
from .redis_client import ping_redis

logger = logging.getLogger(__name__)


def azure_devops_ready() -> bool:
    if not settings.ado_organization:
        return False
    try:
        acquire_access_token()
    except TokenUnavailableError as exc:
        logger.info("Azure DevOps credential not ready: %s", exc.reason)
        return settings.mock_fallback_enabled
    return True


def redis_ready() -> bool:
    if not settings.redis_health_required:
        return True
    return ping_redis()


def readiness_state() -> tuple[bool, dict[str, bool]]:
    checks = {
        "azure_devops": azure_devops_ready(),
        "redis": redis_ready(),
    }
    return all(checks.values()), checks
