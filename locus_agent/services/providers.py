"""
Domain provider contracts.

The assistant never persists tasks, sprints or documents itself. It is handed
a `LocusProvider` bundling three narrow providers and only talks to them
through the methods below. `services/memory.py` and `services/locus_api.py`
are the two implementations shipped with the service.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProviderError(Exception):
    """A domain provider could not complete the request."""


class NotFoundError(ProviderError):
    pass


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class TaskStatus(str, Enum):
    BACKLOG = "BACKLOG"
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    IN_REVIEW = "IN_REVIEW"
    DONE = "DONE"


class TaskPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class SprintStatus(str, Enum):
    PLANNED = "PLANNED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class AcceptanceItem(_Model):
    id: str
    text: str
    done: bool = False


class Task(_Model):
    id: str
    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.BACKLOG
    priority: TaskPriority = TaskPriority.MEDIUM
    labels: list[str] = Field(default_factory=list)
    sprint_id: str | None = None
    acceptance_checklist: list[AcceptanceItem] = Field(default_factory=list)
    doc_ids: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)


class CreateTask(_Model):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    status: TaskStatus = TaskStatus.BACKLOG
    priority: TaskPriority = TaskPriority.MEDIUM
    labels: list[str] = Field(default_factory=list)
    sprint_id: str | None = None
    acceptance_checklist: list[AcceptanceItem] = Field(default_factory=list)
    doc_ids: list[str] = Field(default_factory=list)


class UpdateTask(_Model):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    labels: list[str] | None = None
    sprint_id: str | None = None
    acceptance_checklist: list[AcceptanceItem] | None = None
    doc_ids: list[str] | None = None


# ---------------------------------------------------------------------------
# Sprints
# ---------------------------------------------------------------------------


class Sprint(_Model):
    id: str
    name: str
    status: SprintStatus = SprintStatus.PLANNED
    goal: str = ""
    start_date: datetime | None = None
    end_date: datetime | None = None
    mindmap: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class CreateSprint(_Model):
    name: str = Field(..., min_length=1, max_length=100)
    goal: str = ""
    start_date: datetime | None = None
    end_date: datetime | None = None


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class Doc(_Model):
    id: str
    title: str
    content: str = ""
    doc_type: str = "GENERAL"
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class CreateDoc(_Model):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = ""
    doc_type: str = "GENERAL"


class UpdateDoc(_Model):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    content: str | None = None
    doc_type: str | None = None


# ---------------------------------------------------------------------------
# Provider protocols
# ---------------------------------------------------------------------------


class TaskProvider(Protocol):
    async def create(self, workspace_id: str, data: CreateTask) -> Task: ...

    async def update(self, task_id: str, workspace_id: str, data: UpdateTask) -> Task: ...

    async def batch_update(
        self, task_ids: list[str], workspace_id: str, data: UpdateTask
    ) -> list[Task]: ...

    async def list(self, workspace_id: str) -> list[Task]: ...

    async def get_by_id(self, task_id: str, workspace_id: str) -> Task: ...


class SprintProvider(Protocol):
    async def create(self, workspace_id: str, data: CreateSprint) -> Sprint: ...

    async def list(self, workspace_id: str) -> list[Sprint]: ...

    async def get_by_id(self, sprint_id: str, workspace_id: str) -> Sprint: ...

    async def plan(self, workspace_id: str, sprint_id: str) -> Sprint: ...


class DocProvider(Protocol):
    async def create(self, workspace_id: str, data: CreateDoc) -> Doc: ...

    async def update(self, doc_id: str, workspace_id: str, data: UpdateDoc) -> Doc: ...

    async def list(self, workspace_id: str) -> list[Doc]: ...

    async def get_by_id(self, doc_id: str, workspace_id: str) -> Doc: ...


class LocusProvider(Protocol):
    tasks: TaskProvider
    sprints: SprintProvider
    docs: DocProvider
