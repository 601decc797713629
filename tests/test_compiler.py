"""Document compilation into tasks."""

from __future__ import annotations

import json

import pytest
from conftest import ScriptedModelProvider

from locus_agent.graph.compiler import (
    CompilationResult,
    DocumentCompilationError,
    DocumentCompiler,
    complexity_to_priority,
    persist_compiled_tasks,
)
from locus_agent.services.memory import InMemoryTaskProvider
from locus_agent.services.providers import TaskPriority

PRD = """\
# Meal planner PRD

## Requirement: Import recipes
Users paste a URL and the recipe is imported.

## Requirement: Weekly plan
Users drag recipes into a weekly calendar.
"""

TWO_TASKS = {
    "tasks": [
        {
            "title": "Recipe URL import",
            "description": "Parse recipe pages into structured recipes.",
            "acceptanceCriteria": ["Imports schema.org recipes", "Shows an error for unsupported sites"],
            "estimatedComplexity": "high",
            "dependencies": [],
        },
        {
            "title": "Weekly plan calendar",
            "description": "Drag-and-drop weekly planner.",
            "acceptanceCriteria": ["Recipes can be dropped onto a day"],
            "estimatedComplexity": "Low",
            "dependencies": ["Recipe URL import"],
        },
    ],
    "warnings": [],
}


class TestDocumentCompiler:
    @pytest.mark.asyncio
    async def test_two_requirements_become_two_tasks(self):
        model = ScriptedModelProvider([json.dumps(TWO_TASKS)])

        result = await DocumentCompiler(model).compile(PRD, "PRD")

        assert [t.title for t in result.tasks] == ["Recipe URL import", "Weekly plan calendar"]
        assert result.tasks[1].estimated_complexity == "low"
        assert result.tasks[1].dependencies == ["Recipe URL import"]
        assert "PRD" in model.calls[0]["messages"][0].content

    @pytest.mark.asyncio
    async def test_fenced_output_is_unwrapped(self):
        model = ScriptedModelProvider([f"```json\n{json.dumps(TWO_TASKS)}\n```\n"])

        result = await DocumentCompiler(model).compile(PRD)

        assert len(result.tasks) == 2

    @pytest.mark.asyncio
    async def test_code_block_inside_description_is_kept(self):
        output = {
            "tasks": [
                {
                    "title": "Add parser",
                    "description": "Implement:\n```python\nparse(x)\n```",
                    "acceptanceCriteria": ["parse() handles empty input"],
                }
            ],
            "warnings": [],
        }

        for raw in (json.dumps(output), f"```json\n{json.dumps(output, indent=2)}\n```"):
            result = await DocumentCompiler(ScriptedModelProvider([raw])).compile(PRD)

            assert result.tasks[0].description == "Implement:\n```python\nparse(x)\n```"

    @pytest.mark.asyncio
    async def test_unparseable_output_raises_with_raw_text(self):
        model = ScriptedModelProvider(["Here are your tasks: 1. import 2. calendar"])

        with pytest.raises(DocumentCompilationError) as exc_info:
            await DocumentCompiler(model).compile(PRD)

        assert exc_info.value.raw_output == "Here are your tasks: 1. import 2. calendar"

    @pytest.mark.asyncio
    async def test_invalid_shape_raises(self):
        bad = {"tasks": [{"title": "x", "estimatedComplexity": "enormous"}]}
        model = ScriptedModelProvider([json.dumps(bad)])

        with pytest.raises(DocumentCompilationError):
            await DocumentCompiler(model).compile(PRD)


class TestPersistCompiledTasks:
    def test_complexity_to_priority(self):
        assert complexity_to_priority("high") == TaskPriority.HIGH
        assert complexity_to_priority("low") == TaskPriority.LOW
        assert complexity_to_priority("medium") == TaskPriority.MEDIUM

    @pytest.mark.asyncio
    async def test_tasks_created_with_priority_and_checklist(self):
        tasks = InMemoryTaskProvider()
        result = CompilationResult.model_validate(TWO_TASKS)

        created = await persist_compiled_tasks(result, tasks, "ws-1", doc_id="doc-1")

        assert [t.priority for t in created] == [TaskPriority.HIGH, TaskPriority.LOW]
        first = created[0]
        assert "### Acceptance Checklist" in first.description
        assert "- [ ] Imports schema.org recipes" in first.description
        assert [i.text for i in first.acceptance_checklist] == [
            "Imports schema.org recipes",
            "Shows an error for unsupported sites",
        ]
        assert [i.id for i in first.acceptance_checklist] == ["1", "2"]
        assert first.doc_ids == ["doc-1"]
        assert len(await tasks.list("ws-1")) == 2
