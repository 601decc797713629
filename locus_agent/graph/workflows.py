"""
Conversation workflows.

A workflow handles one turn for the intents and mode it supports:

  - InterviewWorkflow: one structured call that grows the project manifest
    and asks the next clarifying question.
  - ToolCallingWorkflow subclasses: a bounded LangGraph tool loop with a
    purpose-scoped tool set and workflow instructions.
  - ExecutionWorkflow: the unconditional fallback, with every tool.

Workflows mutate the `AgentState` they are given. The Agent hands them a
working copy and commits it only when the turn succeeds.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from langchain_core.tools import BaseTool

from locus_agent.graph.executor import ToolExecutor, dedupe_actions
from locus_agent.graph.extract import content_to_text, extract_suggestions, parse_json_payload
from locus_agent.graph.graph import run_tool_loop
from locus_agent.graph.llm import ModelProvider
from locus_agent.graph.manifest import apply_manifest_updates, merge_missing_info, refresh_completeness
from locus_agent.graph.prompts import WORKFLOW_INSTRUCTIONS, build_interview_prompt, build_messages, build_system_prompt
from locus_agent.graph.state import (
    AgentMode,
    AgentResponse,
    AgentState,
    Artifact,
    CreatedEntity,
    Intent,
    SuggestedAction,
    WorkflowState,
)
from locus_agent.graph.tools import (
    ALL_TOOLS,
    COMPILER_TOOLS,
    DOC_TOOLS,
    READ_ONLY_TOOLS,
    SPRINT_TOOLS,
    TASK_TOOLS,
    ToolRegistry,
)

logger = logging.getLogger(__name__)

# Rolling window of entity ids shown to the model
MAX_CREATED_ENTITIES = 20


@dataclass
class WorkflowContext:
    """Collaborators shared by every workflow of one agent."""

    model: ModelProvider
    registry: ToolRegistry | None = None
    executor: ToolExecutor = field(default_factory=ToolExecutor)
    history_window: int = 5
    max_steps: int = 5


def record_created_entities(state: AgentState, created: Sequence[Artifact]) -> None:
    if not created:
        return
    if state.workflow is None:
        state.workflow = WorkflowState()
    known = {e.id for e in state.workflow.created_entities}
    for artifact in created:
        if artifact.id in known:
            continue
        state.workflow.created_entities.append(
            CreatedEntity(id=artifact.id, type=artifact.type, title=artifact.title)
        )
        known.add(artifact.id)
    state.workflow.created_entities = state.workflow.created_entities[-MAX_CREATED_ENTITIES:]


def record_pending_actions(state: AgentState, actions: Sequence[SuggestedAction]) -> None:
    """Actions offered to the user that still need a click, e.g. starting a sprint."""
    labels = [a.label for a in actions if a.type != "chat_suggestion"]
    if state.workflow is None:
        if not labels:
            return
        state.workflow = WorkflowState()
    state.workflow.pending_actions = labels


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class BaseWorkflow:
    name: str = ""
    mode: AgentMode = AgentMode.IDLE
    intent: Intent | None = None
    # Accept an UNKNOWN intent while the conversation is already in `mode`
    sticky: bool = True
    is_fallback: bool = False

    def supports(self, intent: Intent, mode: AgentMode) -> bool:
        if self.is_fallback:
            return True
        if intent == self.intent:
            return True
        return self.sticky and intent == Intent.UNKNOWN and mode == self.mode

    async def execute(self, state: AgentState, user_input: str, ctx: WorkflowContext) -> AgentResponse:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


# ---------------------------------------------------------------------------
# Interview
# ---------------------------------------------------------------------------


def _quick_replies(raw: Any) -> list[SuggestedAction]:
    if not isinstance(raw, list):
        return []
    actions = []
    for item in raw:
        if isinstance(item, dict) and isinstance(item.get("label"), str):
            text = item.get("text") if isinstance(item.get("text"), str) else item["label"]
            actions.append(SuggestedAction(label=item["label"], payload={"text": text}))
        elif isinstance(item, str) and item.strip():
            actions.append(SuggestedAction(label=item.strip(), payload={"text": item.strip()}))
    return actions


class InterviewWorkflow(BaseWorkflow):
    name = "Interview"
    mode = AgentMode.INTERVIEW
    intent = Intent.INTERVIEW

    async def execute(self, state: AgentState, user_input: str, ctx: WorkflowContext) -> AgentResponse:
        history = state.history[-ctx.history_window:] if ctx.history_window else state.history
        messages = build_messages(history, user_input, build_interview_prompt(state))
        response = await ctx.model.invoke(messages)
        text = content_to_text(response.content)

        payload = parse_json_payload(text)
        if not isinstance(payload, dict) or not isinstance(payload.get("reply"), str):
            logger.warning("Interview output was not the expected JSON; returning raw text")
            content, actions = extract_suggestions(text)
            return AgentResponse(content=content, suggested_actions=actions)

        updates = payload.get("manifest_updates")
        if isinstance(updates, dict) and updates:
            state.manifest, changed = apply_manifest_updates(state.manifest, updates)
            if changed:
                logger.info("Interview updated manifest fields: %s", ", ".join(changed))

        reported = payload.get("missing_info")
        state.missing_info = merge_missing_info(
            state.missing_info,
            state.manifest,
            reported if isinstance(reported, list) else None,
        )
        refresh_completeness(state)

        reply, inline_actions = extract_suggestions(payload["reply"])
        return AgentResponse(
            content=reply,
            suggested_actions=dedupe_actions(_quick_replies(payload.get("suggested_actions")) + inline_actions),
        )


# ---------------------------------------------------------------------------
# Tool-calling workflows
# ---------------------------------------------------------------------------


class ToolCallingWorkflow(BaseWorkflow):
    tool_names: Sequence[str] = ()
    max_steps: int | None = None

    def instructions(self) -> str:
        return WORKFLOW_INSTRUCTIONS.get(self.name, "")

    def select_tools(self, ctx: WorkflowContext) -> list[BaseTool]:
        if ctx.registry is None:
            return []
        return ctx.registry.get_tools(self.tool_names)

    async def execute(self, state: AgentState, user_input: str, ctx: WorkflowContext) -> AgentResponse:
        tools = self.select_tools(ctx)
        max_steps = min(self.max_steps, ctx.max_steps) if self.max_steps else ctx.max_steps
        history = state.history[-ctx.history_window:] if ctx.history_window else state.history

        result = await run_tool_loop(
            ctx.model,
            build_system_prompt(state, self.instructions()),
            build_messages(history, user_input),
            tools,
            max_steps,
            ctx.executor,
        )
        logger.info(
            "%s workflow finished after %d step(s) with %d artifact(s)",
            self.name,
            result.steps,
            len(result.artifacts),
        )
        record_created_entities(state, result.created)
        record_pending_actions(state, result.suggested_actions)
        return AgentResponse(
            content=result.content,
            artifacts=result.artifacts,
            suggested_actions=result.suggested_actions,
        )


class QueryWorkflow(ToolCallingWorkflow):
    name = "Query"
    mode = AgentMode.QUERY
    intent = Intent.QUERY
    tool_names = READ_ONLY_TOOLS


class IdeaWorkflow(ToolCallingWorkflow):
    name = "Idea"
    mode = AgentMode.IDEA
    intent = Intent.IDEA
    tool_names = READ_ONLY_TOOLS + ("create_document", "create_task")


class ProductDocumentingWorkflow(ToolCallingWorkflow):
    name = "Product Documenting"
    mode = AgentMode.DOCUMENTING
    intent = Intent.PRODUCT_DOCUMENTING
    tool_names = DOC_TOOLS + TASK_TOOLS + SPRINT_TOOLS


class TechnicalDocumentingWorkflow(ToolCallingWorkflow):
    name = "Technical Documenting"
    mode = AgentMode.DOCUMENTING
    intent = Intent.TECHNICAL_DOCUMENTING
    tool_names = DOC_TOOLS + TASK_TOOLS + SPRINT_TOOLS


class CompilingWorkflow(ToolCallingWorkflow):
    name = "Compiling"
    mode = AgentMode.COMPILING
    intent = Intent.COMPILING
    tool_names = ("list_documents", "read_document") + COMPILER_TOOLS + SPRINT_TOOLS + (
        "list_tasks",
        "batch_update_tasks",
    )


class TaskCreationWorkflow(ToolCallingWorkflow):
    name = "Task Creation"
    mode = AgentMode.EXECUTING
    intent = Intent.CREATE_TASK
    # Follow-ups in EXECUTING mode belong to the general execution workflow
    sticky = False
    max_steps = 3
    tool_names = ("create_task", "update_task", "list_tasks", "list_documents", "read_document")


class PlanningWorkflow(ToolCallingWorkflow):
    name = "Planning"
    mode = AgentMode.PLANNING
    intent = Intent.PLANNING
    tool_names = SPRINT_TOOLS + ("list_tasks", "batch_update_tasks", "update_task")


class AnalysisWorkflow(ToolCallingWorkflow):
    name = "Analysis"
    mode = AgentMode.ANALYZING
    intent = Intent.ANALYZING
    tool_names = READ_ONLY_TOOLS


class ExecutionWorkflow(ToolCallingWorkflow):
    name = "Execution"
    mode = AgentMode.EXECUTING
    is_fallback = True
    tool_names = ALL_TOOLS


def default_workflows() -> list[BaseWorkflow]:
    """The standard registry order. The fallback comes last."""
    return [
        InterviewWorkflow(),
        QueryWorkflow(),
        IdeaWorkflow(),
        ProductDocumentingWorkflow(),
        TechnicalDocumentingWorkflow(),
        CompilingWorkflow(),
        TaskCreationWorkflow(),
        PlanningWorkflow(),
        AnalysisWorkflow(),
        ExecutionWorkflow(),
    ]
