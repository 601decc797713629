"""
Agent tools.

Every tool wraps one domain-provider operation and returns a JSON string
with at least {"success": bool, "error"?: str} plus type-specific fields:
a single created id (taskId / docId / sprintId) or typed lists
(tasks / documents / sprints). The tool executor turns those fields into
artifacts.

Provider failures are reported in the JSON payload, never raised, so one
failing tool does not end the turn.
"""
from __future__ import annotations

import functools
import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime
from typing import Any

from langchain_core.tools import BaseTool, StructuredTool
from pydantic import BaseModel, Field

from locus_agent.graph.compiler import DocumentCompilationError, DocumentCompiler, persist_compiled_tasks
from locus_agent.services.providers import (
    AcceptanceItem,
    CreateDoc,
    CreateSprint,
    CreateTask,
    Doc,
    LocusProvider,
    Sprint,
    SprintStatus,
    Task,
    TaskPriority,
    TaskStatus,
    UpdateDoc,
    UpdateTask,
)

logger = logging.getLogger(__name__)

TASK_TOOLS = ("create_task", "update_task", "batch_update_tasks", "list_tasks")
DOC_TOOLS = ("create_document", "update_document", "read_document", "list_documents")
SPRINT_TOOLS = ("create_sprint", "list_sprints", "plan_sprint")
COMPILER_TOOLS = ("compile_document_to_tasks",)
READ_ONLY_TOOLS = ("list_tasks", "list_documents", "read_document", "list_sprints")
ALL_TOOLS = TASK_TOOLS + DOC_TOOLS + SPRINT_TOOLS + COMPILER_TOOLS

# batch_update_tasks accepts these instead of a sprint id
_SPRINT_ALIASES = {"active", "next"}


# ---------------------------------------------------------------------------
# Argument schemas
# ---------------------------------------------------------------------------


class CreateTaskArgs(BaseModel):
    title: str = Field(..., description="Clear, action-oriented task title")
    description: str = Field("", description="Detailed markdown description with context and implementation notes")
    priority: TaskPriority = Field(TaskPriority.MEDIUM, description="LOW, MEDIUM, HIGH or CRITICAL")
    status: TaskStatus = Field(TaskStatus.BACKLOG, description="Initial status")
    labels: list[str] = Field(default_factory=list)
    sprint_id: str | None = Field(None, description="ID of the sprint to put the task in")
    acceptance_checklist: list[AcceptanceItem] = Field(
        default_factory=list,
        description='Array of {"id": "1", "text": "Testable criterion", "done": false}',
    )
    doc_ids: list[str] = Field(default_factory=list, description="IDs of documents this task is derived from")


class UpdateTaskArgs(BaseModel):
    task_id: str = Field(..., description="The ID of the task to update")
    title: str | None = None
    description: str | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    sprint_id: str | None = None
    acceptance_checklist: list[AcceptanceItem] | None = None


class BatchUpdateTasksArgs(BaseModel):
    task_ids: list[str] = Field(..., description="List of task IDs to update")
    sprint_id: str | None = Field(
        None,
        description="Sprint ID, or 'active' / 'next' to target the active (or planned) sprint automatically",
    )
    status: TaskStatus | None = None
    priority: TaskPriority | None = None


class ListTasksArgs(BaseModel):
    status: str | None = Field(None, description="Status to filter by (e.g. 'BACKLOG', 'TODO', 'IN_PROGRESS')")
    search: str | None = Field(None, description="Search term to filter tasks by title or description")


class CreateDocumentArgs(BaseModel):
    title: str = Field(..., description="Document title")
    content: str = Field("", description="Full markdown content")
    doc_type: str = Field("GENERAL", description="Document type label, e.g. PRD, TECHNICAL, GENERAL")


class UpdateDocumentArgs(BaseModel):
    doc_id: str = Field(..., description="The ID of the document to update")
    title: str | None = None
    content: str | None = Field(None, description="Replacement markdown content")


class DocumentIdArgs(BaseModel):
    doc_id: str = Field(..., description="The ID of the document")


class ListDocumentsArgs(BaseModel):
    search: str | None = Field(None, description="Search term to filter documents by title")


class CreateSprintArgs(BaseModel):
    name: str = Field(..., description="Sprint name")
    goal: str = Field("", description="What the sprint should achieve")
    start_date: datetime | None = None
    end_date: datetime | None = None


class NoArgs(BaseModel):
    pass


class SprintIdArgs(BaseModel):
    sprint_id: str = Field(..., description="The ID of the sprint")


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def _ok(**fields: Any) -> str:
    return json.dumps({"success": True, **fields}, default=str)


def _given(kwargs: dict[str, Any]) -> dict[str, Any]:
    """Arguments the model actually supplied. Unset schema fields arrive as None."""
    return {k: v for k, v in kwargs.items() if v is not None}


def _task_json(t: Task) -> dict:
    return {
        "id": t.id,
        "title": t.title,
        "status": t.status.value,
        "priority": t.priority.value,
        "description": t.description,
        "sprintId": t.sprint_id,
    }


def _doc_json(d: Doc) -> dict:
    return {"id": d.id, "title": d.title, "docType": d.doc_type, "content": d.content}


def _sprint_json(s: Sprint) -> dict:
    return {
        "id": s.id,
        "name": s.name,
        "status": s.status.value,
        "goal": s.goal,
        "startDate": s.start_date,
        "endDate": s.end_date,
    }


def _reports_failure(
    default_error: str,
) -> Callable[[Callable[..., Awaitable[str]]], Callable[..., Awaitable[str]]]:
    """Turn exceptions raised by a tool body into a {"success": false} payload."""

    def decorator(fn: Callable[..., Awaitable[str]]) -> Callable[..., Awaitable[str]]:
        @functools.wraps(fn)
        async def wrapper(**kwargs: Any) -> str:
            try:
                return await fn(**kwargs)
            except Exception as exc:
                logger.warning("Tool %s failed: %s", fn.__name__, exc)
                return json.dumps({"success": False, "error": str(exc) or default_error})

        return wrapper

    return decorator


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class ToolRegistry:
    """Builds the LangChain tools bound to one workspace."""

    def __init__(
        self,
        provider: LocusProvider,
        workspace_id: str,
        compiler: DocumentCompiler | None = None,
    ) -> None:
        self.provider = provider
        self.workspace_id = workspace_id
        self.compiler = compiler
        self._tools: dict[str, BaseTool] = {t.name: t for t in self._build()}

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def get_tools(self, names: Iterable[str] | None = None) -> list[BaseTool]:
        """Tools in the requested order; names that are not available are skipped."""
        if names is None:
            return list(self._tools.values())
        return [self._tools[n] for n in names if n in self._tools]

    # -- tasks ---------------------------------------------------------------

    async def _resolve_sprint_alias(self, alias: str) -> tuple[str, bool]:
        sprints = await self.provider.sprints.list(self.workspace_id)
        target = next((s for s in sprints if s.status == SprintStatus.ACTIVE), None) or next(
            (s for s in sprints if s.status == SprintStatus.PLANNED), None
        )
        if target is not None:
            return target.id, False
        created = await self.provider.sprints.create(
            self.workspace_id, CreateSprint(name=f"Sprint {len(sprints) + 1}")
        )
        return created.id, True

    def _build(self) -> list[BaseTool]:
        ws = self.workspace_id
        provider = self.provider

        @_reports_failure("Failed to create task")
        async def create_task(**kwargs: Any) -> str:
            task = await provider.tasks.create(ws, CreateTask.model_validate(_given(kwargs)))
            return _ok(
                message=f'Created task "{task.title}"',
                taskId=task.id,
                title=task.title,
                description=task.description,
                status=task.status.value,
            )

        @_reports_failure("Failed to update task")
        async def update_task(task_id: str, **kwargs: Any) -> str:
            task = await provider.tasks.update(task_id, ws, UpdateTask.model_validate(_given(kwargs)))
            return _ok(
                message=f'Updated task "{task.title}"',
                taskId=task.id,
                title=task.title,
                description=task.description,
                status=task.status.value,
            )

        @_reports_failure("Failed to batch update tasks")
        async def batch_update_tasks(task_ids: list[str], **kwargs: Any) -> str:
            sprint_id = kwargs.get("sprint_id")
            sprint_created = False
            if isinstance(sprint_id, str) and sprint_id.lower() in _SPRINT_ALIASES:
                sprint_id, sprint_created = await self._resolve_sprint_alias(sprint_id.lower())
                kwargs["sprint_id"] = sprint_id
            tasks = await provider.tasks.batch_update(task_ids, ws, UpdateTask.model_validate(_given(kwargs)))
            message = f"Successfully updated {len(task_ids)} tasks"
            if sprint_id:
                message += f" to sprint (ID: {sprint_id})"
            if sprint_created:
                message += ". Created a new sprint as none existed"
            return _ok(
                message=message + ".",
                resolvedSprintId=sprint_id,
                sprintCreated=sprint_created,
                tasks=[_task_json(t) for t in tasks],
                hint="If you moved tasks to a sprint, consider running 'plan_sprint' to optimize the schedule.",
            )

        @_reports_failure("Failed to list tasks")
        async def list_tasks(status: str | None = None, search: str | None = None) -> str:
            tasks = await provider.tasks.list(ws)
            warning = ""
            if status:
                filtered = [t for t in tasks if t.status.value.lower() == status.lower()]
                if filtered:
                    tasks = filtered
                else:
                    warning = f"No tasks found with status '{status}'. Showing all tasks."
                    if status.upper() == TaskStatus.BACKLOG.value:
                        todo = [t for t in tasks if t.status == TaskStatus.TODO]
                        if todo:
                            tasks = todo
                            warning = "No 'BACKLOG' tasks found, but found 'TODO' tasks. Showing those."
            if search:
                needle = search.lower()
                tasks = [t for t in tasks if needle in t.title.lower() or needle in t.description.lower()]
            payload: dict[str, Any] = {"count": len(tasks), "tasks": [_task_json(t) for t in tasks]}
            if warning:
                payload["warning"] = warning
            return _ok(**payload)

        # -- documents -------------------------------------------------------

        @_reports_failure("Failed to create document")
        async def create_document(**kwargs: Any) -> str:
            doc = await provider.docs.create(ws, CreateDoc.model_validate(_given(kwargs)))
            return _ok(message=f'Created document "{doc.title}"', docId=doc.id, title=doc.title, content=doc.content)

        @_reports_failure("Failed to update document")
        async def update_document(doc_id: str, **kwargs: Any) -> str:
            doc = await provider.docs.update(doc_id, ws, UpdateDoc.model_validate(_given(kwargs)))
            return _ok(message=f'Updated document "{doc.title}"', docId=doc.id, title=doc.title, content=doc.content)

        @_reports_failure("Failed to read document")
        async def read_document(doc_id: str) -> str:
            doc = await provider.docs.get_by_id(doc_id, ws)
            return _ok(document=_doc_json(doc))

        @_reports_failure("Failed to list documents")
        async def list_documents(search: str | None = None) -> str:
            docs = await provider.docs.list(ws)
            if search:
                docs = [d for d in docs if search.lower() in d.title.lower()]
            return _ok(count=len(docs), documents=[_doc_json(d) for d in docs])

        # -- sprints ---------------------------------------------------------

        @_reports_failure("Failed to create sprint")
        async def create_sprint(**kwargs: Any) -> str:
            sprint = await provider.sprints.create(ws, CreateSprint.model_validate(_given(kwargs)))
            return _ok(message=f'Created sprint "{sprint.name}"', sprintId=sprint.id, **_sprint_json(sprint))

        @_reports_failure("Failed to list sprints")
        async def list_sprints() -> str:
            sprints = await provider.sprints.list(ws)
            return _ok(count=len(sprints), sprints=[_sprint_json(s) for s in sprints])

        @_reports_failure("Failed to plan sprint")
        async def plan_sprint(sprint_id: str) -> str:
            sprint = await provider.sprints.plan(ws, sprint_id)
            return _ok(
                message=f'Planned sprint "{sprint.name}"',
                sprintId=sprint.id,
                mindmap=sprint.mindmap,
                **_sprint_json(sprint),
            )

        # -- compiler --------------------------------------------------------

        @_reports_failure("Failed to compile document")
        async def compile_document_to_tasks(doc_id: str) -> str:
            doc = await provider.docs.get_by_id(doc_id, ws)
            try:
                result = await self.compiler.compile(doc.content, doc.doc_type)
            except DocumentCompilationError as exc:
                return json.dumps(
                    {"success": False, "error": str(exc), "rawOutput": exc.raw_output[:1000]}
                )
            created = await persist_compiled_tasks(result, provider.tasks, ws, doc_id=doc.id)
            return _ok(
                message=f'Compiled "{doc.title}" into {len(created)} tasks',
                tasks=[_task_json(t) for t in created],
                warnings=result.warnings,
            )

        tools = [
            StructuredTool.from_function(
                coroutine=create_task,
                name="create_task",
                description=(
                    "Create a new task in the workspace. Provide a professional, detailed description "
                    "and a comprehensive acceptance checklist. If this task is derived from a document, "
                    "link it using 'doc_ids'."
                ),
                args_schema=CreateTaskArgs,
            ),
            StructuredTool.from_function(
                coroutine=update_task,
                name="update_task",
                description="Update an existing task's title, description, status, priority, sprint or checklist.",
                args_schema=UpdateTaskArgs,
            ),
            StructuredTool.from_function(
                coroutine=batch_update_tasks,
                name="batch_update_tasks",
                description=(
                    "Update multiple tasks at once. To move tasks into the current sprint set "
                    "sprint_id='active' (or 'next'); the system finds the active or planned sprint, "
                    "or creates one if none exists."
                ),
                args_schema=BatchUpdateTasksArgs,
            ),
            StructuredTool.from_function(
                coroutine=list_tasks,
                name="list_tasks",
                description="List tasks in the workspace. Can be filtered by status and a search term.",
                args_schema=ListTasksArgs,
            ),
            StructuredTool.from_function(
                coroutine=create_document,
                name="create_document",
                description="Create a new markdown document in the workspace.",
                args_schema=CreateDocumentArgs,
            ),
            StructuredTool.from_function(
                coroutine=update_document,
                name="update_document",
                description="Update the title or content of an existing document.",
                args_schema=UpdateDocumentArgs,
            ),
            StructuredTool.from_function(
                coroutine=read_document,
                name="read_document",
                description="Read the full content of a document by ID.",
                args_schema=DocumentIdArgs,
            ),
            StructuredTool.from_function(
                coroutine=list_documents,
                name="list_documents",
                description="List documents in the workspace, optionally filtered by title.",
                args_schema=ListDocumentsArgs,
            ),
            StructuredTool.from_function(
                coroutine=create_sprint,
                name="create_sprint",
                description="Create a new sprint with an optional goal and dates.",
                args_schema=CreateSprintArgs,
            ),
            StructuredTool.from_function(
                coroutine=list_sprints,
                name="list_sprints",
                description="List all sprints in the workspace with their status and dates.",
                args_schema=NoArgs,
            ),
            StructuredTool.from_function(
                coroutine=plan_sprint,
                name="plan_sprint",
                description="Order the tasks of a sprint into an execution plan.",
                args_schema=SprintIdArgs,
            ),
        ]
        if self.compiler is not None:
            tools.append(
                StructuredTool.from_function(
                    coroutine=compile_document_to_tasks,
                    name="compile_document_to_tasks",
                    description=(
                        "Decompose a document into engineering tasks and create them. "
                        "Requires the exact document ID."
                    ),
                    args_schema=DocumentIdArgs,
                )
            )
        return tools
