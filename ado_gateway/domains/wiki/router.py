from typing import Any

from fastapi import APIRouter, Depends

from ... import schemas
from ...ado_client import AzureDevOpsClient, get_ado_client, quote_segment, values
from ...domain_selection import Domain
from ...rate_limit import rate_limit_dependency
from ...utils import as_text, link_href, listing, single

router = APIRouter(prefix="/projects/{project}/wikis", tags=["Wiki"])


def to_wiki(item: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": as_text(item.get("id")),
        "name": as_text(item.get("name")),
        "type": item.get("type"),
        "url": item.get("url"),
        "remote_url": item.get("remoteUrl"),
    }


def to_wiki_page(item: dict[str, Any]) -> dict[str, Any]:
    return {
        "path": as_text(item.get("path")) or "/",
        "content": item.get("content"),
        "git_item_path": item.get("gitItemPath"),
        "url": item.get("remoteUrl") or link_href(item, "self"),
    }


@router.get("/", response_model=schemas.Envelope[list[schemas.Wiki]])
def list_wikis(
    project: str,
    _: None = rate_limit_dependency("api_read", Domain.WIKI),
    client: AzureDevOpsClient = Depends(get_ado_client),
):
    payload = client.get("wiki/wikis", project=project)
    return listing([to_wiki(item) for item in values(payload)])


@router.get("/{wiki}/pages", response_model=schemas.Envelope[schemas.WikiPage])
def get_wiki_page(
    project: str,
    wiki: str,
    path: str = "/",
    _: None = rate_limit_dependency("api_read", Domain.WIKI),
    client: AzureDevOpsClient = Depends(get_ado_client),
):
    payload = client.get(
        f"wiki/wikis/{quote_segment(wiki)}/pages",
        project=project,
        params={"path": path, "includeContent": "true"},
    )
    return single(to_wiki_page(payload))
