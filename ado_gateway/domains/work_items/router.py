import logging
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ... import mock_data, schemas
from ...ado_client import AzureDevOpsClient, get_ado_client, quote_segment, values
from ...config import settings
from ...credentials import TokenUnavailableError
from ...domain_selection import Domain
from ...rate_limit import rate_limit_dependency
from ...utils import as_text, display_name, link_href, listing, single

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Work Items"])

# Upstream limit for a single work item batch read.
_MAX_BATCH = 200

_UPDATABLE_FIELDS = {
    "title": "System.Title",
    "description": "System.Description",
    "state": "System.State",
    "assigned_to": "System.AssignedTo",
    "tags": "System.Tags",
}


def wiql_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def build_wiql(
    project: str,
    *,
    assigned_to: str | None = None,
    state: str | None = None,
    work_item_type: str | None = None,
) -> str:
    clauses = [f"[System.TeamProject] = {wiql_literal(project)}"]
    if assigned_to:
        clauses.append(f"[System.AssignedTo] = {wiql_literal(assigned_to)}")
    if state:
        clauses.append(f"[System.State] = {wiql_literal(state)}")
    if work_item_type:
        clauses.append(f"[System.WorkItemType] = {wiql_literal(work_item_type)}")
    return (
        "SELECT [System.Id], [System.Title], [System.State], "
        "[System.WorkItemType], [System.AssignedTo], [System.CreatedDate] "
        "FROM WorkItems "
        f"WHERE {' AND '.join(clauses)} "
        "ORDER BY [System.ChangedDate] DESC"
    )


def to_work_item(item: dict[str, Any]) -> dict[str, Any]:
    fields = item.get("fields") or {}
    return {
        "id": item.get("id"),
        "title": fields.get("System.Title"),
        "description": fields.get("System.Description"),
        "state": fields.get("System.State"),
        "type": fields.get("System.WorkItemType"),
        "assigned_to": display_name(fields.get("System.AssignedTo")),
        "created_by": display_name(fields.get("System.CreatedBy")),
        "created_date": as_text(fields.get("System.CreatedDate")),
        "changed_date": as_text(fields.get("System.ChangedDate")),
        "tags": fields.get("System.Tags"),
        "url": link_href(item, "html"),
    }


def build_patch_document(changes: dict[str, Any], *, op: str) -> list[dict[str, Any]]:
    return [
        {"op": op, "path": f"/fields/{_UPDATABLE_FIELDS[name]}", "value": value}
        for name, value in changes.items()
        if name in _UPDATABLE_FIELDS and value is not None
    ]


@router.get(
    "/projects/{project}/workitems",
    response_model=schemas.Envelope[list[schemas.WorkItem]],
)
def list_work_items(
    project: str,
    assigned_to: Optional[str] = None,
    state: Optional[str] = None,
    type: Optional[str] = None,
    limit: Annotated[int, Query(ge=1, le=_MAX_BATCH)] = 100,
    _: None = rate_limit_dependency("api_read", Domain.WORK_ITEMS),
    client: AzureDevOpsClient = Depends(get_ado_client),
):
    query = build_wiql(
        project, assigned_to=assigned_to, state=state, work_item_type=type
    )
    result = client.post(
        "wit/wiql", {"query": query}, project=project, params={"$top": limit}
    )
    refs = result.get("workItems") if isinstance(result, dict) else None
    ids = [ref["id"] for ref in (refs or []) if isinstance(ref, dict) and "id" in ref]
    if not ids:
        return listing([])

    payload = client.get(
        "wit/workitems",
        params={"ids": ",".join(str(i) for i in ids[:limit]), "$expand": "links"},
    )
    return listing([to_work_item(item) for item in values(payload)])


@router.get("/workitems/{id}", response_model=schemas.Envelope[schemas.WorkItem])
def get_work_item(
    id: int,
    _: None = rate_limit_dependency("api_read", Domain.WORK_ITEMS),
    client: AzureDevOpsClient = Depends(get_ado_client),
):
    try:
        payload = client.get(f"wit/workitems/{id}", params={"$expand": "all"})
    except TokenUnavailableError as exc:
        if not settings.mock_fallback_enabled:
            raise
        logger.info("Serving mock work item %s: %s", id, exc.reason)
        return single(
            mock_data.mock_work_item(id), message=mock_data.fallback_message(exc.reason)
        )
    return single(to_work_item(payload))


@router.post(
    "/workitems",
    status_code=status.HTTP_201_CREATED,
    response_model=schemas.Envelope[schemas.WorkItem],
)
def create_work_item(
    work_item: schemas.WorkItemCreate,
    _: None = rate_limit_dependency("api_write", Domain.WORK_ITEMS),
    client: AzureDevOpsClient = Depends(get_ado_client),
):
    document = build_patch_document(
        work_item.model_dump(exclude={"project", "type"}), op="add"
    )
    try:
        payload = client.post_patch_document(
            f"wit/workitems/${quote_segment(work_item.type)}",
            document,
            project=work_item.project,
        )
    except TokenUnavailableError as exc:
        if not settings.mock_fallback_enabled:
            raise
        logger.info("Returning mock created work item: %s", exc.reason)
        return single(
            mock_data.mock_created_work_item(
                work_item.project, work_item.type, work_item.title
            ),
            message=mock_data.fallback_message(exc.reason),
        )
    created = to_work_item(payload)
    logger.info("Created work item %s in %s", created["id"], work_item.project)
    return single(created)


@router.patch("/workitems/{id}", response_model=schemas.Envelope[schemas.WorkItem])
def update_work_item(
    id: int,
    changes: schemas.WorkItemUpdate,
    _: None = rate_limit_dependency("api_write", Domain.WORK_ITEMS),
    client: AzureDevOpsClient = Depends(get_ado_client),
):
    document = build_patch_document(changes.model_dump(), op="replace")
    if not document:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "detail": "At least one field must be provided",
                "error_code": "work_item_update_empty",
            },
        )
    payload = client.patch_document(f"wit/workitems/{id}", document)
    return single(to_work_item(payload))
