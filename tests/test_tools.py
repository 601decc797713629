"""Agent tools against the in-memory domain providers."""

from __future__ import annotations

import json

import pytest
from conftest import FailingLocusProvider, ScriptedModelProvider

from locus_agent.graph.compiler import DocumentCompiler
from locus_agent.graph.tools import ALL_TOOLS, READ_ONLY_TOOLS, ToolRegistry
from locus_agent.services.providers import CreateDoc, CreateSprint, CreateTask, SprintStatus, TaskPriority, TaskStatus

WS = "ws-1"


def _tool(registry: ToolRegistry, name: str):
    (tool,) = registry.get_tools([name])
    return tool


async def _call(registry: ToolRegistry, name: str, args: dict) -> dict:
    return json.loads(await _tool(registry, name).ainvoke(args))


class TestRegistry:
    def test_compiler_tool_requires_compiler(self, provider):
        registry = ToolRegistry(provider, WS)

        assert "compile_document_to_tasks" not in registry.names
        assert len(registry.names) == len(ALL_TOOLS) - 1

    def test_get_tools_preserves_requested_order(self, provider):
        registry = ToolRegistry(provider, WS)

        assert [t.name for t in registry.get_tools(READ_ONLY_TOOLS)] == list(READ_ONLY_TOOLS)

    def test_unavailable_names_are_skipped(self, provider):
        registry = ToolRegistry(provider, WS)

        assert registry.get_tools(["compile_document_to_tasks", "list_tasks"])[0].name == "list_tasks"


class TestTaskTools:
    @pytest.mark.asyncio
    async def test_create_task(self, provider):
        registry = ToolRegistry(provider, WS)

        result = await _call(
            registry,
            "create_task",
            {
                "title": "Add login",
                "description": "OAuth login",
                "priority": "HIGH",
                "acceptance_checklist": [{"id": "1", "text": "Google login works", "done": False}],
            },
        )

        assert result["success"] is True
        task = await provider.tasks.get_by_id(result["taskId"], WS)
        assert task.title == "Add login"
        assert task.acceptance_checklist[0].text == "Google login works"

    @pytest.mark.asyncio
    async def test_update_missing_task_reports_failure(self, provider):
        registry = ToolRegistry(provider, WS)

        result = await _call(registry, "update_task", {"task_id": "nope", "status": "DONE"})

        assert result["success"] is False
        assert "not found" in result["error"]

    @pytest.mark.asyncio
    async def test_status_only_update_keeps_other_fields(self, provider):
        registry = ToolRegistry(provider, WS)
        task = await provider.tasks.create(
            WS, CreateTask(title="Add login", description="OAuth login", priority=TaskPriority.HIGH)
        )

        result = await _call(registry, "update_task", {"task_id": task.id, "status": "IN_PROGRESS"})

        assert result["success"] is True
        assert result["status"] == "IN_PROGRESS"
        stored = await provider.tasks.get_by_id(task.id, WS)
        assert stored.title == "Add login"
        assert stored.description == "OAuth login"
        assert stored.priority == TaskPriority.HIGH

    @pytest.mark.asyncio
    async def test_batch_status_update_keeps_titles(self, provider):
        registry = ToolRegistry(provider, WS)
        a = await provider.tasks.create(WS, CreateTask(title="A"))
        b = await provider.tasks.create(WS, CreateTask(title="B"))

        result = await _call(registry, "batch_update_tasks", {"task_ids": [a.id, b.id], "status": "DONE"})

        assert result["success"] is True
        assert result["resolvedSprintId"] is None
        assert [(t["title"], t["status"]) for t in result["tasks"]] == [("A", "DONE"), ("B", "DONE")]

    @pytest.mark.asyncio
    async def test_batch_update_to_active_sprint_creates_one_when_none_exist(self, provider):
        registry = ToolRegistry(provider, WS)
        a = await provider.tasks.create(WS, CreateTask(title="A"))
        b = await provider.tasks.create(WS, CreateTask(title="B"))

        result = await _call(registry, "batch_update_tasks", {"task_ids": [a.id, b.id], "sprint_id": "active"})

        assert result["success"] is True
        assert result["sprintCreated"] is True
        sprints = await provider.sprints.list(WS)
        assert [s.name for s in sprints] == ["Sprint 1"]
        assert result["resolvedSprintId"] == sprints[0].id
        assert {t.sprint_id for t in await provider.tasks.list(WS)} == {sprints[0].id}

    @pytest.mark.asyncio
    async def test_batch_update_next_prefers_existing_planned_sprint(self, provider):
        registry = ToolRegistry(provider, WS)
        planned = await provider.sprints.create(WS, CreateSprint(name="Sprint 7"))
        task = await provider.tasks.create(WS, CreateTask(title="A"))

        result = await _call(registry, "batch_update_tasks", {"task_ids": [task.id], "sprint_id": "next"})

        assert planned.status == SprintStatus.PLANNED
        assert result["resolvedSprintId"] == planned.id
        assert result["sprintCreated"] is False

    @pytest.mark.asyncio
    async def test_list_tasks_backlog_falls_back_to_todo(self, provider):
        registry = ToolRegistry(provider, WS)
        await provider.tasks.create(WS, CreateTask(title="Ready", status=TaskStatus.TODO))
        await provider.tasks.create(WS, CreateTask(title="Doing", status=TaskStatus.IN_PROGRESS))

        result = await _call(registry, "list_tasks", {"status": "BACKLOG"})

        assert [t["title"] for t in result["tasks"]] == ["Ready"]
        assert "TODO" in result["warning"]

    @pytest.mark.asyncio
    async def test_list_tasks_search(self, provider):
        registry = ToolRegistry(provider, WS)
        await provider.tasks.create(WS, CreateTask(title="Login page"))
        await provider.tasks.create(WS, CreateTask(title="Billing", description="Stripe login webhooks"))
        await provider.tasks.create(WS, CreateTask(title="Dark mode"))

        result = await _call(registry, "list_tasks", {"search": "LOGIN"})

        assert result["count"] == 2


class TestDocAndSprintTools:
    @pytest.mark.asyncio
    async def test_create_and_read_document(self, provider):
        registry = ToolRegistry(provider, WS)

        created = await _call(registry, "create_document", {"title": "PRD", "content": "# PRD", "doc_type": "PRD"})
        read = await _call(registry, "read_document", {"doc_id": created["docId"]})

        assert read["document"]["content"] == "# PRD"
        assert read["document"]["docType"] == "PRD"

    @pytest.mark.asyncio
    async def test_content_only_document_update_keeps_title(self, provider):
        registry = ToolRegistry(provider, WS)
        doc = await provider.docs.create(WS, CreateDoc(title="PRD", content="v1", doc_type="PRD"))

        result = await _call(registry, "update_document", {"doc_id": doc.id, "content": "v2"})

        assert result["success"] is True
        stored = await provider.docs.get_by_id(doc.id, WS)
        assert (stored.title, stored.content, stored.doc_type) == ("PRD", "v2", "PRD")

    @pytest.mark.asyncio
    async def test_create_and_list_sprints(self, provider):
        registry = ToolRegistry(provider, WS)

        created = await _call(registry, "create_sprint", {"name": "Sprint 1", "goal": "Ship MVP"})
        listed = await _call(registry, "list_sprints", {})

        assert created["sprintId"] == listed["sprints"][0]["id"]
        assert listed["sprints"][0]["goal"] == "Ship MVP"

    @pytest.mark.asyncio
    async def test_compile_document_to_tasks(self, provider):
        model = ScriptedModelProvider(
            [json.dumps({"tasks": [{"title": "Import", "estimatedComplexity": "high"}], "warnings": ["vague"]})]
        )
        registry = ToolRegistry(provider, WS, compiler=DocumentCompiler(model))
        doc = await provider.docs.create(WS, CreateDoc(title="PRD", content="## Requirement: Import"))

        result = await _call(registry, "compile_document_to_tasks", {"doc_id": doc.id})

        assert result["success"] is True
        assert result["warnings"] == ["vague"]
        (task,) = await provider.tasks.list(WS)
        assert task.doc_ids == [doc.id]
        assert result["tasks"][0]["id"] == task.id

    @pytest.mark.asyncio
    async def test_compile_failure_reported_not_raised(self, provider):
        registry = ToolRegistry(provider, WS, compiler=DocumentCompiler(ScriptedModelProvider(["no json"])))
        doc = await provider.docs.create(WS, CreateDoc(title="PRD"))

        result = await _call(registry, "compile_document_to_tasks", {"doc_id": doc.id})

        assert result["success"] is False
        assert result["rawOutput"] == "no json"


class TestFailingProvider:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("name", "args"),
        [
            ("create_task", {"title": "x"}),
            ("list_tasks", {}),
            ("create_document", {"title": "x"}),
            ("list_sprints", {}),
            ("plan_sprint", {"sprint_id": "s"}),
        ],
    )
    async def test_errors_become_failure_payloads(self, name, args):
        registry = ToolRegistry(FailingLocusProvider(), WS)

        result = await _call(registry, name, args)

        assert result == {"success": False, "error": "backend unavailable"}
