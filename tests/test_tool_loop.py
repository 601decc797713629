"""The bounded model → tools → model loop."""

from __future__ import annotations

import pytest
from conftest import FailingLocusProvider, ScriptedModelProvider, tool_calls
from langchain_core.messages import AIMessage, HumanMessage, ToolMessage

from locus_agent.graph.graph import EXECUTION_LIMIT_MESSAGE, run_tool_loop
from locus_agent.graph.llm import _patch_dangling_tool_calls
from locus_agent.graph.tools import ToolRegistry

PROMPT = "You are a test assistant."


def _input(text: str = "do the thing"):
    return [HumanMessage(content=text)]


class TestToolLoop:
    @pytest.mark.asyncio
    async def test_no_tool_calls_exits_after_one_invocation(self, provider):
        model = ScriptedModelProvider(["All good, nothing to do."])
        registry = ToolRegistry(provider, "ws")

        result = await run_tool_loop(model, PROMPT, _input(), registry.get_tools(), max_steps=5)

        assert len(model.calls) == 1
        assert result.steps == 1
        assert result.content == "All good, nothing to do."
        assert result.artifacts == []
        assert await provider.tasks.list("ws") == []

    @pytest.mark.asyncio
    async def test_system_prompt_and_tools_are_sent(self, provider):
        model = ScriptedModelProvider(["ok"])
        tools = ToolRegistry(provider, "ws").get_tools(["list_tasks"])

        await run_tool_loop(model, PROMPT, _input(), tools, max_steps=3)

        call = model.calls[0]
        assert call["messages"][0].content == PROMPT
        assert call["tools"] == ["list_tasks"]

    @pytest.mark.asyncio
    async def test_tool_round_then_answer(self, provider):
        model = ScriptedModelProvider(
            [
                tool_calls(("create_task", {"title": "Write tests"})),
                'Created it. <suggestions>[{"label": "More", "text": "Create another"}]</suggestions>',
            ]
        )
        registry = ToolRegistry(provider, "ws")

        result = await run_tool_loop(model, PROMPT, _input(), registry.get_tools(), max_steps=5)

        assert len(model.calls) == 2
        assert result.content == "Created it."
        assert [a.title for a in result.artifacts] == ["Write tests"]
        assert [a.title for a in result.created] == ["Write tests"]
        assert {a.type for a in result.suggested_actions} == {"start_sprint", "chat_suggestion"}

        observation = model.calls[1]["messages"][-1]
        assert isinstance(observation, HumanMessage)
        assert observation.content.startswith("Tool Execution Result:")
        assert result.artifacts[0].id in observation.content

    @pytest.mark.asyncio
    async def test_terminates_within_max_steps(self, provider):
        model = ScriptedModelProvider(default=tool_calls(("list_tasks", {})))
        registry = ToolRegistry(provider, "ws")

        result = await run_tool_loop(model, PROMPT, _input(), registry.get_tools(), max_steps=3)

        assert len(model.calls) == 3
        assert result.limit_reached is True
        assert result.content == EXECUTION_LIMIT_MESSAGE

    @pytest.mark.asyncio
    async def test_single_step_budget(self, provider):
        model = ScriptedModelProvider(default=tool_calls(("create_task", {"title": "A"})))
        registry = ToolRegistry(provider, "ws")

        result = await run_tool_loop(model, PROMPT, _input(), registry.get_tools(), max_steps=1)

        assert len(model.calls) == 1
        assert result.limit_reached is True
        # the tools requested on the last step still ran
        assert len(result.artifacts) == 1

    @pytest.mark.asyncio
    async def test_failing_provider_turn_completes(self):
        model = ScriptedModelProvider(
            [tool_calls(("create_task", {"title": "A"})), "Sorry, the task service is down."]
        )
        registry = ToolRegistry(FailingLocusProvider(), "ws")

        result = await run_tool_loop(model, PROMPT, _input(), registry.get_tools(), max_steps=5)

        assert result.content == "Sorry, the task service is down."
        assert result.artifacts == []
        observation = model.calls[1]["messages"][-1].content
        assert "Tool create_task failed: backend unavailable" in observation


class TestPatchDanglingToolCalls:
    def test_unanswered_tool_calls_get_acknowledged(self):
        ai = tool_calls(("list_tasks", {}), ("list_sprints", {}))
        messages = [HumanMessage(content="hi"), ai, HumanMessage(content="Tool Execution Result: ...")]

        patched = _patch_dangling_tool_calls(messages)

        acks = [m for m in patched if isinstance(m, ToolMessage)]
        assert [m.tool_call_id for m in acks] == ["call_1", "call_2"]
        assert patched[2:4] == acks
        assert patched[-1] is messages[-1]

    def test_answered_calls_left_alone(self):
        ai = tool_calls(("list_tasks", {}))
        answered = ToolMessage(content="[]", tool_call_id="call_1", name="list_tasks")

        patched = _patch_dangling_tool_calls([ai, answered, AIMessage(content="done")])

        assert len(patched) == 3
