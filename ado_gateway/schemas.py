from typing import Annotated, Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: T
    count: Optional[int] = None
    message: Optional[str] = None


class Project(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    url: Optional[str] = None
    state: Optional[str] = None
    visibility: Optional[str] = None
    last_update_time: Optional[str] = None


class ProjectDetail(Project):
    capabilities: Optional[dict[str, Any]] = None


class Team(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    url: Optional[str] = None


class WorkItem(BaseModel):
    id: int
    title: Optional[str] = None
    description: Optional[str] = None
    state: Optional[str] = None
    type: Optional[str] = None
    assigned_to: Optional[str] = None
    created_by: Optional[str] = None
    created_date: Optional[str] = None
    changed_date: Optional[str] = None
    tags: Optional[str] = None
    url: Optional[str] = None


class WorkItemCreate(BaseModel):
    project: Annotated[str, Field(min_length=1)]
    type: Annotated[str, Field(min_length=1)]
    title: Annotated[str, Field(min_length=1, max_length=255)]
    description: Optional[str] = None
    assigned_to: Optional[str] = None
    tags: Optional[str] = None


class WorkItemUpdate(BaseModel):
    title: Optional[Annotated[str, Field(min_length=1, max_length=255)]] = None
    description: Optional[str] = None
    state: Optional[str] = None
    assigned_to: Optional[str] = None
    tags: Optional[str] = None


class Repository(BaseModel):
    id: str
    name: str
    url: Optional[str] = None
    default_branch: Optional[str] = None
    size: Optional[int] = None
    web_url: Optional[str] = None


class Branch(BaseModel):
    name: str
    object_id: Optional[str] = None
    url: Optional[str] = None


class PullRequest(BaseModel):
    id: int
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    created_by: Optional[str] = None
    source_branch: Optional[str] = None
    target_branch: Optional[str] = None
    creation_date: Optional[str] = None
    url: Optional[str] = None


class Build(BaseModel):
    id: int
    build_number: Optional[str] = None
    status: Optional[str] = None
    result: Optional[str] = None
    definition: Optional[str] = None
    source_branch: Optional[str] = None
    source_version: Optional[str] = None
    start_time: Optional[str] = None
    finish_time: Optional[str] = None
    requested_for: Optional[str] = None
    url: Optional[str] = None


class Pipeline(BaseModel):
    id: int
    name: str
    type: Optional[str] = None
    path: Optional[str] = None
    repository: Optional[str] = None
    created_date: Optional[str] = None
    url: Optional[str] = None


class Release(BaseModel):
    id: int
    name: str
    status: Optional[str] = None
    release_definition: Optional[str] = None
    created_on: Optional[str] = None
    created_by: Optional[str] = None
    url: Optional[str] = None


class ReleaseDefinition(BaseModel):
    id: int
    name: str
    path: Optional[str] = None
    created_on: Optional[str] = None
    url: Optional[str] = None


class Wiki(BaseModel):
    id: str
    name: str
    type: Optional[str] = None
    url: Optional[str] = None
    remote_url: Optional[str] = None


class WikiPage(BaseModel):
    path: str
    content: Optional[str] = None
    git_item_path: Optional[str] = None
    url: Optional[str] = None


class DomainsOut(BaseModel):
    enabled: list[str]
    available: list[str]
    rejected: list[str]
    mounted: list[str]
