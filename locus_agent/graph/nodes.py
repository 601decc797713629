"""
LangGraph node functions for the tool-calling loop.

Graph topology:
  START → agent → routing:
    "tools" → tools → routing:
        "agent" → agent (loop)
        "end"   → END   (step budget spent)
    "end"   → END       (no tool calls)

The nodes are built per turn by `make_agent_node` / `make_tools_node` so each
workflow can bind its own model, system prompt and tool set.
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Literal

from langchain_core.messages import AIMessage, SystemMessage
from langchain_core.tools import BaseTool

from locus_agent.graph.executor import ToolExecutor
from locus_agent.graph.llm import ModelProvider
from locus_agent.graph.prompts import build_observation_message
from locus_agent.graph.state import ToolLoopState

logger = logging.getLogger(__name__)

Node = Callable[[ToolLoopState], Awaitable[dict]]


def make_agent_node(model: ModelProvider, system_prompt: str, tools: Sequence[BaseTool]) -> Node:
    async def agent_node(state: ToolLoopState) -> dict:
        """Call the model with the system prompt, the transcript and the tool specs."""
        messages = [SystemMessage(content=system_prompt)] + list(state["messages"])
        response: AIMessage = await model.invoke(messages, tools=tools or None)
        step = state["steps"] + 1
        logger.info("Tool loop step %d: %d tool call(s)", step, len(response.tool_calls))
        return {"messages": [response], "steps": step}

    return agent_node


def make_tools_node(executor: ToolExecutor, tools: Sequence[BaseTool]) -> Node:
    async def tools_node(state: ToolLoopState) -> dict:
        """
        Execute the tool calls of the last AI message and report all results
        back in one observation turn.
        """
        last_msg: AIMessage = state["messages"][-1]
        outcome = await executor.execute_calls(last_msg.tool_calls, tools)
        return {
            "messages": [build_observation_message(outcome.observations)],
            "artifacts": outcome.artifacts,
            "suggested_actions": outcome.suggested_actions,
            "created": outcome.created,
        }

    return tools_node


def should_continue(state: ToolLoopState) -> Literal["tools", "end"]:
    """Route after the agent node: run tools while the model keeps asking for them."""
    last_msg = state["messages"][-1]
    if isinstance(last_msg, AIMessage) and last_msg.tool_calls:
        return "tools"
    return "end"


def make_budget_check(max_steps: int) -> Callable[[ToolLoopState], Literal["agent", "end"]]:
    def within_budget(state: ToolLoopState) -> Literal["agent", "end"]:
        """Route after the tools node: stop once max_steps model calls were made."""
        if state["steps"] >= max_steps:
            logger.warning("Tool loop hit its limit of %d steps", max_steps)
            return "end"
        return "agent"

    return within_budget
