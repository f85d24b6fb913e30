import logging
from typing import Any

from fastapi import APIRouter, Depends

from ... import mock_data, schemas
from ...ado_client import AzureDevOpsClient, get_ado_client, quote_segment, values
from ...config import settings
from ...credentials import TokenUnavailableError
from ...domain_selection import Domain
from ...rate_limit import rate_limit_dependency
from ...utils import as_text, listing, single

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["Core"])


def to_project(item: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": as_text(item.get("id")),
        "name": as_text(item.get("name")),
        "description": item.get("description"),
        "url": item.get("url"),
        "state": item.get("state"),
        "visibility": item.get("visibility"),
        "last_update_time": as_text(item.get("lastUpdateTime")),
    }


def to_team(item: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": as_text(item.get("id")),
        "name": as_text(item.get("name")),
        "description": item.get("description"),
        "url": item.get("url"),
    }


@router.get("/", response_model=schemas.Envelope[list[schemas.Project]])
def list_projects(
    _: None = rate_limit_dependency("api_read", Domain.CORE),
    client: AzureDevOpsClient = Depends(get_ado_client),
):
    try:
        payload = client.get("projects")
    except TokenUnavailableError as exc:
        if not settings.mock_fallback_enabled:
            raise
        logger.info("Serving mock projects: %s", exc.reason)
        return listing(
            mock_data.mock_projects(), message=mock_data.fallback_message(exc.reason)
        )

    projects = [to_project(item) for item in values(payload)]
    logger.info("Returned %d projects from %s", len(projects), client.organization)
    return listing(projects)


@router.get("/{project}", response_model=schemas.Envelope[schemas.ProjectDetail])
def get_project(
    project: str,
    _: None = rate_limit_dependency("api_read", Domain.CORE),
    client: AzureDevOpsClient = Depends(get_ado_client),
):
    payload = client.get(
        f"projects/{quote_segment(project)}",
        params={"includeCapabilities": "true"},
    )
    detail = to_project(payload)
    detail["capabilities"] = payload.get("capabilities")
    return single(detail)


@router.get("/{project}/teams", response_model=schemas.Envelope[list[schemas.Team]])
def list_teams(
    project: str,
    _: None = rate_limit_dependency("api_read", Domain.CORE),
    client: AzureDevOpsClient = Depends(get_ado_client),
):
    payload = client.get(f"projects/{quote_segment(project)}/teams")
    return listing([to_team(item) for item in values(payload)])
