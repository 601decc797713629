"""
In-memory domain providers.

Used for local development when LOCUS_API_URL is not set, by the chat REPL
script and by the test-suite. Records are scoped per workspace.
"""
from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timezone

from locus_agent.services.providers import (
    CreateDoc,
    CreateSprint,
    CreateTask,
    Doc,
    NotFoundError,
    Sprint,
    Task,
    TaskPriority,
    UpdateDoc,
    UpdateTask,
)

_PRIORITY_ORDER = {
    TaskPriority.CRITICAL: 0,
    TaskPriority.HIGH: 1,
    TaskPriority.MEDIUM: 2,
    TaskPriority.LOW: 3,
}


def _new_id() -> str:
    return str(uuid.uuid4())


class InMemoryTaskProvider:
    def __init__(self) -> None:
        self._tasks: dict[str, dict[str, Task]] = defaultdict(dict)

    async def create(self, workspace_id: str, data: CreateTask) -> Task:
        task = Task(id=_new_id(), **data.model_dump())
        self._tasks[workspace_id][task.id] = task
        return task

    async def update(self, task_id: str, workspace_id: str, data: UpdateTask) -> Task:
        task = await self.get_by_id(task_id, workspace_id)
        updated = Task.model_validate({**task.model_dump(), **data.model_dump(exclude_unset=True)})
        self._tasks[workspace_id][task_id] = updated
        return updated

    async def batch_update(
        self, task_ids: list[str], workspace_id: str, data: UpdateTask
    ) -> list[Task]:
        return [await self.update(task_id, workspace_id, data) for task_id in task_ids]

    async def list(self, workspace_id: str) -> list[Task]:
        return sorted(self._tasks[workspace_id].values(), key=lambda t: t.created_at)

    async def get_by_id(self, task_id: str, workspace_id: str) -> Task:
        task = self._tasks[workspace_id].get(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        return task


class InMemorySprintProvider:
    def __init__(self, tasks: InMemoryTaskProvider) -> None:
        self._sprints: dict[str, dict[str, Sprint]] = defaultdict(dict)
        self._task_store = tasks

    async def create(self, workspace_id: str, data: CreateSprint) -> Sprint:
        sprint = Sprint(id=_new_id(), **data.model_dump())
        self._sprints[workspace_id][sprint.id] = sprint
        return sprint

    async def list(self, workspace_id: str) -> list[Sprint]:
        return sorted(self._sprints[workspace_id].values(), key=lambda s: s.created_at)

    async def get_by_id(self, sprint_id: str, workspace_id: str) -> Sprint:
        sprint = self._sprints[workspace_id].get(sprint_id)
        if sprint is None:
            raise NotFoundError(f"Sprint {sprint_id} not found")
        return sprint

    async def plan(self, workspace_id: str, sprint_id: str) -> Sprint:
        """Order the sprint's tasks by priority and store the plan as a mindmap."""
        sprint = await self.get_by_id(sprint_id, workspace_id)
        tasks = [t for t in await self._task_store.list(workspace_id) if t.sprint_id == sprint_id]
        if len(tasks) <= 1:
            return sprint
        ordered = sorted(tasks, key=lambda t: (_PRIORITY_ORDER[t.priority], t.created_at))
        lines = [f"# {sprint.name}"]
        lines += [f"{i}. [{t.priority.value}] {t.title}" for i, t in enumerate(ordered, start=1)]
        planned = sprint.model_copy(update={"mindmap": "\n".join(lines)})
        self._sprints[workspace_id][sprint_id] = planned
        return planned


class InMemoryDocProvider:
    def __init__(self) -> None:
        self._docs: dict[str, dict[str, Doc]] = defaultdict(dict)

    async def create(self, workspace_id: str, data: CreateDoc) -> Doc:
        doc = Doc(id=_new_id(), **data.model_dump())
        self._docs[workspace_id][doc.id] = doc
        return doc

    async def update(self, doc_id: str, workspace_id: str, data: UpdateDoc) -> Doc:
        doc = await self.get_by_id(doc_id, workspace_id)
        changes = data.model_dump(exclude_unset=True)
        changes["updated_at"] = datetime.now(timezone.utc)
        updated = Doc.model_validate({**doc.model_dump(), **changes})
        self._docs[workspace_id][doc_id] = updated
        return updated

    async def list(self, workspace_id: str) -> list[Doc]:
        return sorted(self._docs[workspace_id].values(), key=lambda d: d.created_at)

    async def get_by_id(self, doc_id: str, workspace_id: str) -> Doc:
        doc = self._docs[workspace_id].get(doc_id)
        if doc is None:
            raise NotFoundError(f"Document {doc_id} not found")
        return doc


class InMemoryLocusProvider:
    def __init__(self) -> None:
        self.tasks = InMemoryTaskProvider()
        self.sprints = InMemorySprintProvider(self.tasks)
        self.docs = InMemoryDocProvider()
