"""
Document compiler: decomposes a document into engineering tasks with one
model call.

Unlike the other structured outputs, a compilation that cannot be parsed is
an error: there is no safe partial task list to fall back to.
"""
from __future__ import annotations

import json
import logging
from typing import Literal

from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from locus_agent.graph.extract import content_to_text, strip_code_fences
from locus_agent.graph.llm import ModelProvider
from locus_agent.graph.prompts import build_compiler_prompt
from locus_agent.services.providers import AcceptanceItem, CreateTask, Task, TaskPriority, TaskProvider

logger = logging.getLogger(__name__)


class DocumentCompilationError(Exception):
    """The model output could not be turned into a task list."""

    def __init__(self, message: str, raw_output: str) -> None:
        super().__init__(message)
        self.raw_output = raw_output


class CompiledTask(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    title: str = Field(..., min_length=1)
    description: str = ""
    acceptance_criteria: list[str] = Field(default_factory=list)
    estimated_complexity: Literal["low", "medium", "high"] = "medium"
    dependencies: list[str] = Field(default_factory=list)

    @field_validator("estimated_complexity", mode="before")
    @classmethod
    def normalize_complexity(cls, v: object) -> object:
        return v.strip().lower() if isinstance(v, str) else v


class CompilationResult(BaseModel):
    tasks: list[CompiledTask] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


def complexity_to_priority(complexity: str) -> TaskPriority:
    if complexity == "high":
        return TaskPriority.HIGH
    if complexity == "low":
        return TaskPriority.LOW
    return TaskPriority.MEDIUM


def format_task_description(task: CompiledTask) -> str:
    """Description with the acceptance criteria appended as a checklist."""
    if not task.acceptance_criteria:
        return task.description
    checklist = "\n".join(f"- [ ] {c}" for c in task.acceptance_criteria)
    return f"{task.description}\n\n### Acceptance Checklist\n{checklist}".strip()


class DocumentCompiler:
    def __init__(self, model: ModelProvider) -> None:
        self.model = model

    async def compile(self, content: str, doc_type: str = "GENERAL") -> CompilationResult:
        messages = [
            SystemMessage(content=build_compiler_prompt(doc_type)),
            HumanMessage(content=f"Document ({doc_type}):\n\n{content}"),
        ]
        response = await self.model.invoke(messages)
        raw = content_to_text(response.content)

        try:
            result = CompilationResult.model_validate(json.loads(strip_code_fences(raw)))
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.error("Document compilation produced unparseable output: %s", exc)
            raise DocumentCompilationError(f"Failed to parse compiler output: {exc}", raw) from exc

        logger.info(
            "Compiled %s document into %d tasks (%d warnings)",
            doc_type,
            len(result.tasks),
            len(result.warnings),
        )
        return result


async def persist_compiled_tasks(
    result: CompilationResult,
    tasks: TaskProvider,
    workspace_id: str,
    doc_id: str | None = None,
) -> list[Task]:
    """Create one task per compiled task, in order."""
    created: list[Task] = []
    for compiled in result.tasks:
        data = CreateTask(
            title=compiled.title[:200],
            description=format_task_description(compiled),
            priority=complexity_to_priority(compiled.estimated_complexity),
            acceptance_checklist=[
                AcceptanceItem(id=str(i), text=c) for i, c in enumerate(compiled.acceptance_criteria, start=1)
            ],
            doc_ids=[doc_id] if doc_id else [],
        )
        created.append(await tasks.create(workspace_id, data))
    return created
