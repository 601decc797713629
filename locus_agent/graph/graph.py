"""
Compiled LangGraph tool loop.

build_tool_loop(...) → compiled graph for one workflow turn.
run_tool_loop(...) runs it and folds the final graph state into a
`ToolLoopResult`. Nothing is checkpointed: the loop lives for one turn and
the conversation state is owned by the Agent.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from langchain_core.messages import AIMessage, BaseMessage
from langchain_core.tools import BaseTool
from langgraph.graph import END, START, StateGraph

from locus_agent.graph.executor import ToolExecutor, dedupe_actions, dedupe_artifacts
from locus_agent.graph.extract import extract_suggestions
from locus_agent.graph.llm import ModelProvider
from locus_agent.graph.nodes import make_agent_node, make_budget_check, make_tools_node, should_continue
from locus_agent.graph.state import Artifact, SuggestedAction, ToolLoopState

logger = logging.getLogger(__name__)

EXECUTION_LIMIT_MESSAGE = "Execution limit reached."


@dataclass
class ToolLoopResult:
    content: str
    artifacts: list[Artifact] = field(default_factory=list)
    suggested_actions: list[SuggestedAction] = field(default_factory=list)
    created: list[Artifact] = field(default_factory=list)
    steps: int = 0
    limit_reached: bool = False


def build_tool_loop(
    model: ModelProvider,
    system_prompt: str,
    tools: Sequence[BaseTool],
    max_steps: int,
    executor: ToolExecutor | None = None,
):
    builder = StateGraph(ToolLoopState)

    builder.add_node("agent", make_agent_node(model, system_prompt, tools))
    builder.add_node("tools", make_tools_node(executor or ToolExecutor(), tools))

    builder.add_edge(START, "agent")
    builder.add_conditional_edges(
        "agent",
        should_continue,
        {"tools": "tools", "end": END},
    )
    builder.add_conditional_edges(
        "tools",
        make_budget_check(max_steps),
        {"agent": "agent", "end": END},
    )

    return builder.compile()


async def run_tool_loop(
    model: ModelProvider,
    system_prompt: str,
    messages: Sequence[BaseMessage],
    tools: Sequence[BaseTool],
    max_steps: int,
    executor: ToolExecutor | None = None,
) -> ToolLoopResult:
    graph = build_tool_loop(model, system_prompt, tools, max_steps, executor)
    final = await graph.ainvoke(
        {
            "messages": list(messages),
            "steps": 0,
            "artifacts": [],
            "suggested_actions": [],
            "created": [],
        },
        # agent + tools per step, plus START/END bookkeeping
        config={"recursion_limit": 2 * max_steps + 5},
    )

    artifacts = dedupe_artifacts(final["artifacts"])
    created = dedupe_artifacts(final["created"])
    last_msg = final["messages"][-1]

    if not isinstance(last_msg, AIMessage):
        return ToolLoopResult(
            content=EXECUTION_LIMIT_MESSAGE,
            artifacts=artifacts,
            suggested_actions=dedupe_actions(final["suggested_actions"]),
            created=created,
            steps=final["steps"],
            limit_reached=True,
        )

    content, suggestions = extract_suggestions(last_msg.content)
    return ToolLoopResult(
        content=content,
        artifacts=artifacts,
        suggested_actions=dedupe_actions(list(final["suggested_actions"]) + suggestions),
        created=created,
        steps=final["steps"],
    )
