from typing import Annotated, Any, Literal, Optional

from fastapi import APIRouter, Depends, Query

from ... import schemas
from ...ado_client import AzureDevOpsClient, get_ado_client, values
from ...domain_selection import Domain
from ...rate_limit import rate_limit_dependency
from ...utils import as_text, display_name, link_href, listing

router = APIRouter(prefix="/projects/{project}", tags=["Builds"])

BuildStatus = Literal[
    "all", "cancelling", "completed", "inProgress", "notStarted", "postponed"
]


def to_build(item: dict[str, Any]) -> dict[str, Any]:
    definition = item.get("definition") or {}
    return {
        "id": item.get("id"),
        "build_number": as_text(item.get("buildNumber")),
        "status": item.get("status"),
        "result": item.get("result"),
        "definition": definition.get("name"),
        "source_branch": item.get("sourceBranch"),
        "source_version": item.get("sourceVersion"),
        "start_time": as_text(item.get("startTime")),
        "finish_time": as_text(item.get("finishTime")),
        "requested_for": display_name(item.get("requestedFor")),
        "url": link_href(item, "web"),
    }


def to_pipeline(item: dict[str, Any]) -> dict[str, Any]:
    repository = item.get("repository") or {}
    return {
        "id": item.get("id"),
        "name": as_text(item.get("name")),
        "type": item.get("type"),
        "path": item.get("path"),
        "repository": repository.get("name"),
        "created_date": as_text(item.get("createdDate")),
        "url": link_href(item, "web"),
    }


@router.get("/builds", response_model=schemas.Envelope[list[schemas.Build]])
def list_builds(
    project: str,
    top: Annotated[int, Query(ge=1, le=500)] = 50,
    status: Optional[BuildStatus] = None,
    definition: Optional[int] = None,
    _: None = rate_limit_dependency("api_read", Domain.BUILDS),
    client: AzureDevOpsClient = Depends(get_ado_client),
):
    payload = client.get(
        "build/builds",
        project=project,
        params={
            "$top": top,
            "statusFilter": status,
            "definitions": definition,
        },
    )
    return listing([to_build(item) for item in values(payload)])


@router.get("/pipelines", response_model=schemas.Envelope[list[schemas.Pipeline]])
def list_pipelines(
    project: str,
    _: None = rate_limit_dependency("api_read", Domain.BUILDS),
    client: AzureDevOpsClient = Depends(get_ado_client),
):
    payload = client.get(
        "build/definitions",
        project=project,
        params={"includeAllProperties": "true"},
    )
    return listing([to_pipeline(item) for item in values(payload)])
