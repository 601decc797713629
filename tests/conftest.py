"""Shared test doubles: a scripted model provider and domain providers."""

from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from typing import Any

import pytest
from langchain_core.messages import AIMessage, BaseMessage
from langchain_core.tools import BaseTool

from locus_agent.graph.state import ProjectManifest, ProjectPhase
from locus_agent.services.memory import InMemoryLocusProvider
from locus_agent.services.providers import ProviderError

Reply = AIMessage | str | Exception | Callable[[Sequence[BaseMessage]], AIMessage]


class ScriptedModelProvider:
    """Model double that returns queued replies in order and records each call."""

    def __init__(self, replies: Sequence[Reply] = (), supports_tools: bool = True, default: Reply | None = None):
        self.replies: list[Reply] = list(replies)
        self.supports_tools = supports_tools
        self.default = default
        self.calls: list[dict[str, Any]] = []

    def queue(self, *replies: Reply) -> None:
        self.replies.extend(replies)

    async def invoke(self, messages: Sequence[BaseMessage], tools: Sequence[BaseTool] | None = None) -> AIMessage:
        self.calls.append({"messages": list(messages), "tools": [t.name for t in tools or []]})
        if self.replies:
            reply = self.replies.pop(0)
        elif self.default is not None:
            reply = self.default
        else:
            raise AssertionError(f"Unexpected model call #{len(self.calls)}")

        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, str):
            return AIMessage(content=reply)
        if callable(reply):
            return reply(messages)
        # Fresh message each call: LangGraph's add_messages merges messages by id
        return reply.model_copy(update={"id": None})


def tool_calls(*calls: tuple[str, dict]) -> AIMessage:
    """AIMessage requesting the given (name, args) tool calls."""
    return AIMessage(
        content="",
        tool_calls=[
            {"name": name, "args": args, "id": f"call_{i}", "type": "tool_call"}
            for i, (name, args) in enumerate(calls, start=1)
        ],
    )


def intent_reply(intent: str, confidence: float = 0.9) -> str:
    return json.dumps({"intent": intent, "confidence": confidence, "reasoning": "test"})


class _FailingProvider:
    def __getattr__(self, name: str):
        async def fail(*args: Any, **kwargs: Any):
            raise ProviderError("backend unavailable")

        return fail


class FailingLocusProvider:
    """Every domain call raises ProviderError."""

    def __init__(self) -> None:
        self.tasks = _FailingProvider()
        self.sprints = _FailingProvider()
        self.docs = _FailingProvider()


@pytest.fixture
def model() -> ScriptedModelProvider:
    return ScriptedModelProvider()


@pytest.fixture
def provider() -> InMemoryLocusProvider:
    return InMemoryLocusProvider()


@pytest.fixture
def full_manifest() -> ProjectManifest:
    return ProjectManifest(
        name="Recipe Box",
        mission="Help home cooks plan meals",
        target_users=["home cooks"],
        tech_stack=["FastAPI", "React"],
        phase=ProjectPhase.MVP_BUILD,
        features=["recipe import", "meal planner"],
        competitors=["Paprika"],
        brand_voice="Warm and practical",
        success_metrics=["weekly active planners"],
    )
