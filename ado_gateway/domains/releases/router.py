from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query

from ... import schemas
from ...ado_client import AzureDevOpsClient, get_ado_client, values
from ...domain_selection import Domain
from ...rate_limit import rate_limit_dependency
from ...utils import as_text, display_name, link_href, listing

router = APIRouter(prefix="/projects/{project}", tags=["Releases"])


def to_release(item: dict[str, Any]) -> dict[str, Any]:
    definition = item.get("releaseDefinition") or {}
    return {
        "id": item.get("id"),
        "name": as_text(item.get("name")),
        "status": item.get("status"),
        "release_definition": definition.get("name"),
        "created_on": as_text(item.get("createdOn")),
        "created_by": display_name(item.get("createdBy")),
        "url": link_href(item, "web"),
    }


def to_release_definition(item: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": item.get("id"),
        "name": as_text(item.get("name")),
        "path": item.get("path"),
        "created_on": as_text(item.get("createdOn")),
        "url": link_href(item, "web"),
    }


@router.get("/releases", response_model=schemas.Envelope[list[schemas.Release]])
def list_releases(
    project: str,
    top: Annotated[int, Query(ge=1, le=500)] = 50,
    _: None = rate_limit_dependency("api_read", Domain.RELEASES),
    client: AzureDevOpsClient = Depends(get_ado_client),
):
    payload = client.release_get(
        "release/releases", project=project, params={"$top": top}
    )
    return listing([to_release(item) for item in values(payload)])


@router.get(
    "/release-definitions",
    response_model=schemas.Envelope[list[schemas.ReleaseDefinition]],
)
def list_release_definitions(
    project: str,
    _: None = rate_limit_dependency("api_read", Domain.RELEASES),
    client: AzureDevOpsClient = Depends(get_ado_client),
):
    payload = client.release_get("release/definitions", project=project)
    return listing([to_release_definition(item) for item in values(payload)])
