from typing import Any, Literal

from fastapi import APIRouter, Depends

from ... import schemas
from ...ado_client import AzureDevOpsClient, get_ado_client, quote_segment, values
from ...domain_selection import Domain
from ...rate_limit import rate_limit_dependency
from ...utils import as_text, display_name, link_href, listing

router = APIRouter(prefix="/projects/{project}/repositories", tags=["Repositories"])

_BRANCH_PREFIX = "refs/heads/"


def _strip_branch_prefix(ref_name: Any) -> str | None:
    if not isinstance(ref_name, str):
        return None
    if ref_name.startswith(_BRANCH_PREFIX):
        return ref_name[len(_BRANCH_PREFIX):]
    return ref_name


def to_repository(item: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": as_text(item.get("id")),
        "name": as_text(item.get("name")),
        "url": item.get("url"),
        "default_branch": _strip_branch_prefix(item.get("defaultBranch")),
        "size": item.get("size"),
        "web_url": item.get("webUrl"),
    }


def to_branch(item: dict[str, Any]) -> dict[str, Any]:
    return {
        "name": _strip_branch_prefix(item.get("name")) or "",
        "object_id": item.get("objectId"),
        "url": item.get("url"),
    }


def to_pull_request(item: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": item.get("pullRequestId"),
        "title": item.get("title"),
        "description": item.get("description"),
        "status": item.get("status"),
        "created_by": display_name(item.get("createdBy")),
        "source_branch": _strip_branch_prefix(item.get("sourceRefName")),
        "target_branch": _strip_branch_prefix(item.get("targetRefName")),
        "creation_date": as_text(item.get("creationDate")),
        "url": link_href(item, "web"),
    }


@router.get("/", response_model=schemas.Envelope[list[schemas.Repository]])
def list_repositories(
    project: str,
    _: None = rate_limit_dependency("api_read", Domain.REPOSITORIES),
    client: AzureDevOpsClient = Depends(get_ado_client),
):
    payload = client.get("git/repositories", project=project)
    return listing([to_repository(item) for item in values(payload)])


@router.get("/{repo}/branches", response_model=schemas.Envelope[list[schemas.Branch]])
def list_branches(
    project: str,
    repo: str,
    _: None = rate_limit_dependency("api_read", Domain.REPOSITORIES),
    client: AzureDevOpsClient = Depends(get_ado_client),
):
    payload = client.get(
        f"git/repositories/{quote_segment(repo)}/refs",
        project=project,
        params={"filter": "heads/"},
    )
    return listing([to_branch(item) for item in values(payload)])


@router.get(
    "/{repo}/pullrequests",
    response_model=schemas.Envelope[list[schemas.PullRequest]],
)
def list_pull_requests(
    project: str,
    repo: str,
    status: Literal["active", "abandoned", "completed", "all"] = "active",
    _: None = rate_limit_dependency("api_read", Domain.REPOSITORIES),
    client: AzureDevOpsClient = Depends(get_ado_client),
):
    payload = client.get(
        f"git/repositories/{quote_segment(repo)}/pullrequests",
        project=project,
        params={"searchCriteria.status": status},
    )
    return listing([to_pull_request(item) for item in values(payload)])
