"""
Workflow engine.

A small state machine over `AgentMode`. Each turn:

  classify intent (unless one is forced) → pick the first registered
  workflow whose `supports(intent, mode)` is true → run it →
  state.mode = workflow.mode

The registry is checked when the engine is built: it must end with exactly
one fallback workflow, so selection always finds a handler.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from locus_agent.graph.intent import IntentClassifier
from locus_agent.graph.prompts import summarize_manifest
from locus_agent.graph.state import AgentMode, AgentResponse, AgentState, Intent, WorkflowState
from locus_agent.graph.workflows import BaseWorkflow, WorkflowContext

logger = logging.getLogger(__name__)


class WorkflowRegistrationError(Exception):
    """The workflow registry is not a valid dispatch table."""


class NoWorkflowMatchedError(Exception):
    def __init__(self, intent: Intent, mode: AgentMode) -> None:
        super().__init__(f"No workflow supports intent {intent.value} in mode {mode.value}")
        self.intent = intent
        self.mode = mode


@dataclass
class DispatchResult:
    response: AgentResponse
    workflow: BaseWorkflow
    intent: Intent


def validate_registry(workflows: Sequence[BaseWorkflow]) -> None:
    if not workflows:
        raise WorkflowRegistrationError("At least one workflow must be registered")
    fallbacks = [w for w in workflows if w.is_fallback]
    if len(fallbacks) != 1:
        raise WorkflowRegistrationError(
            f"Exactly one fallback workflow is required, found {len(fallbacks)}"
        )
    if not workflows[-1].is_fallback:
        raise WorkflowRegistrationError(
            f"The fallback workflow {fallbacks[0].name!r} must be registered last"
        )
    names = [w.name for w in workflows]
    if len(set(names)) != len(names):
        raise WorkflowRegistrationError(f"Duplicate workflow names in registry: {names}")


class WorkflowEngine:
    def __init__(
        self,
        workflows: Sequence[BaseWorkflow],
        classifier: IntentClassifier,
        context: WorkflowContext,
    ) -> None:
        validate_registry(workflows)
        self.workflows = tuple(workflows)
        self.classifier = classifier
        self.context = context

    def select(self, intent: Intent, mode: AgentMode) -> BaseWorkflow:
        """First workflow in registry order that supports (intent, mode)."""
        for workflow in self.workflows:
            if workflow.supports(intent, mode):
                return workflow
        raise NoWorkflowMatchedError(intent, mode)

    async def classify(self, state: AgentState, user_input: str) -> Intent:
        result = await self.classifier.classify(state, user_input)
        logger.info(
            "Classified intent %s (confidence %.2f): %s",
            result.intent.value,
            result.confidence,
            result.reasoning,
        )
        return result.intent

    async def execute(
        self,
        state: AgentState,
        user_input: str,
        intent: Intent | None = None,
    ) -> DispatchResult:
        """Run one turn against `state`, which is mutated in place."""
        if intent is None:
            intent = await self.classify(state, user_input)

        workflow = self.select(intent, state.mode)
        logger.info("Dispatching %s in mode %s to %s workflow", intent.value, state.mode.value, workflow.name)

        if state.workflow is None:
            state.workflow = WorkflowState()
        state.workflow.current_intent = intent

        response = await workflow.execute(state, user_input, self.context)

        state.mode = workflow.mode
        state.workflow.manifest_summary = summarize_manifest(state.manifest)
        return DispatchResult(response=response, workflow=workflow, intent=intent)
