"""
Tool executor.

Runs the tool calls of one model response against the active tool set and
turns the results into:
  - observations: short strings fed back to the model
  - artifacts: typed records of tasks / documents / sprints the turn touched
  - suggested actions: follow-ups derived from what was produced

A failing call never aborts the batch; it becomes a failure observation.
"""
from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from langchain_core.messages import ToolCall
from langchain_core.tools import BaseTool

from locus_agent.graph.state import Artifact, SuggestedAction

logger = logging.getLogger(__name__)

# Tool output echoed back to the model, so it can reuse real ids
MAX_OBSERVATION_CHARS = 4000

CREATING_TOOLS = ("create_task", "create_document", "create_sprint", "compile_document_to_tasks")


@dataclass
class ToolExecutionResult:
    observations: list[str] = field(default_factory=list)
    artifacts: list[Artifact] = field(default_factory=list)
    suggested_actions: list[SuggestedAction] = field(default_factory=list)
    created: list[Artifact] = field(default_factory=list)


def dedupe_artifacts(artifacts: Iterable[Artifact]) -> list[Artifact]:
    """One artifact per id. A later artifact replaces an earlier one in place."""
    by_id: dict[str, Artifact] = {}
    for artifact in artifacts:
        by_id[artifact.id] = artifact
    return list(by_id.values())


def dedupe_actions(actions: Iterable[SuggestedAction]) -> list[SuggestedAction]:
    seen: set[tuple[str, str]] = set()
    result = []
    for action in actions:
        key = (action.type, action.label)
        if key not in seen:
            seen.add(key)
            result.append(action)
    return result


def _truncate(text: str, limit: int = MAX_OBSERVATION_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + f"\n... [truncated {len(text) - limit} chars]"


def _sprint_content(data: dict[str, Any]) -> str:
    lines = [f"Sprint: {data.get('name') or 'New Sprint'}"]
    start, end = data.get("startDate"), data.get("endDate")
    if start or end:
        lines.append(f"Dates: {start or '?'} to {end or '?'}")
    if data.get("goal"):
        lines.append(f"Goal: {data['goal']}")
    if data.get("status"):
        lines.append(f"Status: {data['status']}")
    return "\n".join(lines)


def _task_artifact(data: dict[str, Any], args: dict[str, Any], task_id: str | None = None) -> Artifact:
    return Artifact(
        id=task_id or str(data["id"]),
        type="task",
        title=data.get("title") or args.get("title") or "New Task",
        content=data.get("description") or args.get("description") or "",
        metadata={k: data[k] for k in ("status", "priority", "sprintId") if data.get(k)} or None,
    )


def _doc_artifact(data: dict[str, Any], args: dict[str, Any], doc_id: str | None = None) -> Artifact:
    return Artifact(
        id=doc_id or str(data["id"]),
        type="document",
        title=data.get("title") or args.get("title") or "New Document",
        content=data.get("content") or args.get("content") or "",
        metadata={"docType": data["docType"]} if data.get("docType") else None,
    )


def _sprint_artifact(data: dict[str, Any], args: dict[str, Any], sprint_id: str | None = None) -> Artifact:
    merged = {**args, **{k: v for k, v in data.items() if v}}
    if "start_date" in args and "startDate" not in merged:
        merged["startDate"] = args["start_date"]
    if "end_date" in args and "endDate" not in merged:
        merged["endDate"] = args["end_date"]
    return Artifact(
        id=sprint_id or str(data["id"]),
        type="sprint",
        title=merged.get("name") or "New Sprint",
        content=_sprint_content(merged),
        metadata={"status": data["status"]} if data.get("status") else None,
    )


def extract_artifacts(result: dict[str, Any], args: dict[str, Any]) -> list[Artifact]:
    """Map a successful tool result onto artifacts."""
    artifacts: list[Artifact] = []

    if result.get("taskId"):
        artifacts.append(_task_artifact(result, args, task_id=str(result["taskId"])))
    elif result.get("docId"):
        artifacts.append(_doc_artifact(result, args, doc_id=str(result["docId"])))
    elif result.get("sprintId"):
        artifacts.append(_sprint_artifact(result, args, sprint_id=str(result["sprintId"])))

    if isinstance(result.get("tasks"), list):
        artifacts += [_task_artifact(t, {}) for t in result["tasks"] if isinstance(t, dict) and t.get("id")]
    elif isinstance(result.get("documents"), list):
        artifacts += [_doc_artifact(d, {}) for d in result["documents"] if isinstance(d, dict) and d.get("id")]
    elif isinstance(result.get("sprints"), list):
        artifacts += [_sprint_artifact(s, {}) for s in result["sprints"] if isinstance(s, dict) and s.get("id")]

    return artifacts


def start_sprint_action(task_ids: Sequence[str]) -> SuggestedAction:
    return SuggestedAction(
        label="Start Sprint with these tasks",
        type="start_sprint",
        payload={"taskIds": list(task_ids)},
    )


class ToolExecutor:
    async def execute_calls(
        self,
        tool_calls: Sequence[ToolCall | dict],
        tools: Sequence[BaseTool],
    ) -> ToolExecutionResult:
        """Execute the calls sequentially, in the order the model issued them."""
        by_name = {t.name: t for t in tools}
        outcome = ToolExecutionResult()
        created_task_ids: list[str] = []

        for call in tool_calls:
            name = call.get("name", "")
            args = call.get("args") or {}
            tool = by_name.get(name)

            if tool is None:
                logger.warning("Model requested unknown tool %r", name)
                outcome.observations.append(f"Tool {name} failed: tool not found in the current workflow.")
                continue

            logger.info("Executing tool %s", name)
            try:
                raw = await tool.ainvoke(args)
            except Exception as exc:
                logger.exception("Tool %s raised: %s", name, exc)
                outcome.observations.append(f"Tool {name} failed: {exc}")
                continue

            text = raw if isinstance(raw, str) else json.dumps(raw, default=str)
            try:
                result = json.loads(text)
            except json.JSONDecodeError:
                outcome.observations.append(f"Tool {name} executed successfully. Result:\n{_truncate(text)}")
                continue

            if not isinstance(result, dict):
                outcome.observations.append(f"Tool {name} executed successfully. Result:\n{_truncate(text)}")
                continue

            if result.get("success") is False:
                error = result.get("error") or "unknown error"
                logger.warning("Tool %s reported failure: %s", name, error)
                outcome.observations.append(f"Tool {name} failed: {error}")
                continue

            artifacts = extract_artifacts(result, args)
            outcome.artifacts += artifacts
            if name in CREATING_TOOLS:
                outcome.created += artifacts
                created_task_ids += [a.id for a in artifacts if a.type == "task"]
            outcome.observations.append(f"Tool {name} executed successfully. Result:\n{_truncate(text)}")

        outcome.artifacts = dedupe_artifacts(outcome.artifacts)
        outcome.created = dedupe_artifacts(outcome.created)
        if created_task_ids:
            outcome.suggested_actions.append(start_sprint_action(list(dict.fromkeys(created_task_ids))))
        return outcome
