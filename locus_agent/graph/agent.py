"""
LocusAgent: the turn-taking façade over the workflow engine.

One agent owns one conversation's `AgentState`. Every turn runs on a deep
copy of that state and the copy replaces the committed state only when the
turn finishes. A failed, cancelled or timed-out turn leaves the previous
state exactly as it was.

Turns on one agent must not overlap; a second concurrent call raises
`ConcurrentTurnError` instead of queueing. The HTTP layer serializes
requests per session before they reach the agent.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Sequence
from typing import Any

from pydantic import ValidationError

from locus_agent.config import settings
from locus_agent.graph.compiler import DocumentCompiler
from locus_agent.graph.engine import DispatchResult, WorkflowEngine
from locus_agent.graph.executor import ToolExecutor
from locus_agent.graph.intent import IntentClassifier
from locus_agent.graph.llm import ModelProvider
from locus_agent.graph.manifest import ManifestUpdater, compute_missing_info, refresh_completeness, validate_and_repair
from locus_agent.graph.state import (
    REQUIRED_MANIFEST_FIELDS,
    AgentResponse,
    AgentState,
    ChatMessage,
    Intent,
    IntentDetection,
    PendingExecution,
)
from locus_agent.graph.tools import ToolRegistry
from locus_agent.graph.workflows import BaseWorkflow, InterviewWorkflow, WorkflowContext, default_workflows
from locus_agent.services.providers import LocusProvider

logger = logging.getLogger(__name__)


class PendingExecutionNotFoundError(Exception):
    def __init__(self, execution_id: str) -> None:
        super().__init__(f"No pending execution with id {execution_id!r}")
        self.execution_id = execution_id


class ConcurrentTurnError(Exception):
    """A turn was started while another turn on the same agent was in flight."""


def load_state(snapshot: AgentState | dict[str, Any] | None) -> AgentState:
    """
    Build a consistent AgentState from a fresh start or a stored snapshot.

    The manifest is validated and repaired field by field. missing_info is
    computed from the manifest when the snapshot does not carry it, and the
    completeness score is always re-derived from missing_info.
    """
    if snapshot is None:
        state = AgentState()
        state.missing_info = compute_missing_info(state.manifest)
        refresh_completeness(state)
        return state

    if isinstance(snapshot, AgentState):
        raw = snapshot.model_dump()
        has_missing_info = "missing_info" in snapshot.model_fields_set
    else:
        raw = dict(snapshot)
        has_missing_info = "missing_info" in raw or "missingInfo" in raw

    manifest, _ = validate_and_repair(raw.pop("manifest", None))
    try:
        state = AgentState.model_validate({**raw, "manifest": manifest})
    except ValidationError as exc:
        logger.warning("Discarding invalid state snapshot, keeping its manifest: %s", exc)
        state = AgentState(manifest=manifest)
        has_missing_info = False

    if has_missing_info:
        state.missing_info = [f for f in REQUIRED_MANIFEST_FIELDS if f in state.missing_info]
    else:
        state.missing_info = compute_missing_info(state.manifest)
    refresh_completeness(state)
    return state


class LocusAgent:
    def __init__(
        self,
        model: ModelProvider,
        provider: LocusProvider | None = None,
        workspace_id: str = "default",
        initial_state: AgentState | dict[str, Any] | None = None,
        *,
        workflows: Sequence[BaseWorkflow] | None = None,
        max_steps: int | None = None,
        history_window: int | None = None,
        confidence_threshold: float | None = None,
        turn_timeout: float | None = None,
        passive_updates: bool | None = None,
    ) -> None:
        self.model = model
        self.provider = provider
        self.workspace_id = workspace_id
        self.history_window = history_window if history_window is not None else settings.history_window
        self.turn_timeout = turn_timeout if turn_timeout is not None else settings.agent_timeout_seconds
        self.passive_updates = (
            passive_updates if passive_updates is not None else settings.passive_manifest_updates
        )

        registry = None
        if provider is not None:
            registry = ToolRegistry(provider, workspace_id, compiler=DocumentCompiler(model))

        context = WorkflowContext(
            model=model,
            registry=registry,
            executor=ToolExecutor(),
            history_window=self.history_window,
            max_steps=max_steps if max_steps is not None else settings.max_tool_steps,
        )
        classifier = IntentClassifier(
            model,
            history_window=self.history_window,
            confidence_threshold=(
                confidence_threshold
                if confidence_threshold is not None
                else settings.intent_confidence_threshold
            ),
        )
        self.engine = WorkflowEngine(workflows or default_workflows(), classifier, context)
        self.manifest_updater = ManifestUpdater(model, history_window=self.history_window)

        self._state = load_state(initial_state)
        self._turn_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_state(self) -> AgentState:
        """Snapshot of the committed state. Mutating it does not affect the agent."""
        return self._state.model_copy(deep=True)

    async def handle_message(self, user_input: str) -> AgentResponse:
        return await self._run_turn(user_input)

    async def detect_intent(self, user_input: str) -> IntentDetection:
        """
        First half of the confirm-then-execute flow: classify the input and
        park it as a pending execution. Nothing else about the state changes.
        """
        async with self._exclusive_turn():
            async with asyncio.timeout(self.turn_timeout):
                intent = await self.engine.classify(self._state, user_input)
            execution_id = str(uuid.uuid4())
            state = self._state.model_copy(deep=True)
            state.pending_execution = PendingExecution(
                intent=intent, original_input=user_input, execution_id=execution_id
            )
            self._state = state
        return IntentDetection(intent=intent, execution_id=execution_id)

    async def execute_pending(self, execution_id: str) -> AgentResponse:
        pending = self._state.pending_execution
        if pending is None or pending.execution_id != execution_id:
            raise PendingExecutionNotFoundError(execution_id)
        return await self._run_turn(pending.original_input, intent=pending.intent)

    # ------------------------------------------------------------------
    # Turn mechanics
    # ------------------------------------------------------------------

    def _exclusive_turn(self) -> asyncio.Lock:
        if self._turn_lock.locked():
            raise ConcurrentTurnError("A turn is already in progress for this conversation")
        return self._turn_lock

    async def _run_turn(self, user_input: str, intent: Intent | None = None) -> AgentResponse:
        async with self._exclusive_turn():
            working = self._state.model_copy(deep=True)
            # A new turn supersedes any parked execution
            working.pending_execution = None

            async with asyncio.timeout(self.turn_timeout):
                result = await self.engine.execute(working, user_input, intent)
                if self.passive_updates and not isinstance(result.workflow, InterviewWorkflow):
                    await self.manifest_updater.update(working, user_input)

            self._append_exchange(working, user_input, result)
            self._state = working
            return result.response

    def _append_exchange(self, state: AgentState, user_input: str, result: DispatchResult) -> None:
        response = result.response
        state.history.append(ChatMessage(role="user", content=user_input))
        state.history.append(
            ChatMessage(
                role="assistant",
                content=response.content,
                artifacts=list(response.artifacts) or None,
                suggested_actions=list(response.suggested_actions) or None,
            )
        )
