"""
Locus REST API providers.

Implements the three domain providers on top of the Locus API
(`/workspaces/{workspaceId}/tasks|sprints|docs`). Authentication uses the
workspace API key as a bearer token. HTTP failures are raised as
`ProviderError` so tools can report them to the model.
"""
from __future__ import annotations

import logging
from typing import Any

import httpx

from locus_agent.services.providers import (
    CreateDoc,
    CreateSprint,
    CreateTask,
    Doc,
    NotFoundError,
    ProviderError,
    Sprint,
    Task,
    UpdateDoc,
    UpdateTask,
)

logger = logging.getLogger(__name__)


class LocusApiClient:
    """Thin async wrapper around the Locus REST API."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"), headers=headers, timeout=timeout, transport=transport
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def request(self, method: str, path: str, json: Any = None) -> dict:
        try:
            r = await self._client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            logger.warning("Locus API %s %s failed: %s", method, path, exc)
            raise ProviderError(f"Locus API unreachable: {exc}") from exc

        if r.status_code == 404:
            raise NotFoundError(f"{path} not found")
        if r.status_code >= 400:
            logger.warning("Locus API %s %s → %s body=%s", method, path, r.status_code, r.text[:500])
            raise ProviderError(f"Locus API returned {r.status_code} for {method} {path}")
        return r.json() if r.content else {}


def _body(model: Any) -> dict:
    return model.model_dump(mode="json", by_alias=True, exclude_unset=True)


class ApiTaskProvider:
    def __init__(self, client: LocusApiClient) -> None:
        self._client = client

    async def create(self, workspace_id: str, data: CreateTask) -> Task:
        payload = data.model_dump(mode="json", by_alias=True)
        res = await self._client.request("POST", f"/workspaces/{workspace_id}/tasks", payload)
        return Task.model_validate(res["task"])

    async def update(self, task_id: str, workspace_id: str, data: UpdateTask) -> Task:
        res = await self._client.request(
            "PATCH", f"/workspaces/{workspace_id}/tasks/{task_id}", _body(data)
        )
        return Task.model_validate(res["task"])

    async def batch_update(
        self, task_ids: list[str], workspace_id: str, data: UpdateTask
    ) -> list[Task]:
        res = await self._client.request(
            "PATCH",
            f"/workspaces/{workspace_id}/tasks/batch",
            {"ids": task_ids, "updates": _body(data)},
        )
        return [Task.model_validate(t) for t in res.get("tasks", [])]

    async def list(self, workspace_id: str) -> list[Task]:
        res = await self._client.request("GET", f"/workspaces/{workspace_id}/tasks")
        return [Task.model_validate(t) for t in res.get("tasks", [])]

    async def get_by_id(self, task_id: str, workspace_id: str) -> Task:
        res = await self._client.request("GET", f"/workspaces/{workspace_id}/tasks/{task_id}")
        return Task.model_validate(res["task"])


class ApiSprintProvider:
    def __init__(self, client: LocusApiClient) -> None:
        self._client = client

    async def create(self, workspace_id: str, data: CreateSprint) -> Sprint:
        payload = data.model_dump(mode="json", by_alias=True, exclude_none=True)
        res = await self._client.request("POST", f"/workspaces/{workspace_id}/sprints", payload)
        return Sprint.model_validate(res["sprint"])

    async def list(self, workspace_id: str) -> list[Sprint]:
        res = await self._client.request("GET", f"/workspaces/{workspace_id}/sprints")
        return [Sprint.model_validate(s) for s in res.get("sprints", [])]

    async def get_by_id(self, sprint_id: str, workspace_id: str) -> Sprint:
        res = await self._client.request("GET", f"/workspaces/{workspace_id}/sprints/{sprint_id}")
        return Sprint.model_validate(res["sprint"])

    async def plan(self, workspace_id: str, sprint_id: str) -> Sprint:
        res = await self._client.request(
            "POST", f"/workspaces/{workspace_id}/sprints/{sprint_id}/trigger-ai-planning"
        )
        return Sprint.model_validate(res["sprint"])


class ApiDocProvider:
    def __init__(self, client: LocusApiClient) -> None:
        self._client = client

    async def create(self, workspace_id: str, data: CreateDoc) -> Doc:
        payload = data.model_dump(mode="json", by_alias=True)
        res = await self._client.request("POST", f"/workspaces/{workspace_id}/docs", payload)
        return Doc.model_validate(res["doc"])

    async def update(self, doc_id: str, workspace_id: str, data: UpdateDoc) -> Doc:
        res = await self._client.request(
            "PATCH", f"/workspaces/{workspace_id}/docs/{doc_id}", _body(data)
        )
        return Doc.model_validate(res["doc"])

    async def list(self, workspace_id: str) -> list[Doc]:
        res = await self._client.request("GET", f"/workspaces/{workspace_id}/docs")
        return [Doc.model_validate(d) for d in res.get("docs", [])]

    async def get_by_id(self, doc_id: str, workspace_id: str) -> Doc:
        res = await self._client.request("GET", f"/workspaces/{workspace_id}/docs/{doc_id}")
        return Doc.model_validate(res["doc"])


class ApiLocusProvider:
    def __init__(self, client: LocusApiClient) -> None:
        self.client = client
        self.tasks = ApiTaskProvider(client)
        self.sprints = ApiSprintProvider(client)
        self.docs = ApiDocProvider(client)
