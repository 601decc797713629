"""
Session endpoints: the HTTP face of LocusAgent.

POST /session/start    → create a session with a fresh (or supplied) state
POST /session/message  → run one agent turn, return the response + new state
POST /session/intent   → classify a message and park it as a pending execution
POST /session/execute  → run a parked execution
POST /session/get      → fetch session + state
POST /session/reset    → delete a session
GET  /models           → list available LLM models

Turns for one session are serialized with a per-session lock; the total
number of turns running at once is capped by a global semaphore.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TypeVar

from fastapi import APIRouter, HTTPException, Request

from locus_agent import database as db
from locus_agent.config import settings
from locus_agent.graph.agent import ConcurrentTurnError, LocusAgent, PendingExecutionNotFoundError, load_state
from locus_agent.graph.engine import NoWorkflowMatchedError
from locus_agent.graph.llm import MODEL_REGISTRY, get_model_provider
from locus_agent.graph.state import AgentState
from locus_agent.schemas.api import (
    ExecuteRequest,
    GetSessionRequest,
    IntentResponse,
    ModelInfo,
    ModelsResponse,
    ResetSessionRequest,
    SendMessageRequest,
    Session,
    SessionWithState,
    StartSessionRequest,
    TurnResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


# Limit concurrent agent runs to prevent resource exhaustion
_agent_semaphore: asyncio.Semaphore | None = None

_session_locks: dict[str, asyncio.Lock] = {}
# Requests holding or waiting on each session lock; the lock is dropped at zero
_session_lock_users: dict[str, int] = {}


def _get_semaphore() -> asyncio.Semaphore:
    global _agent_semaphore
    if _agent_semaphore is None:
        _agent_semaphore = asyncio.Semaphore(settings.max_concurrent_agent_runs)
    return _agent_semaphore


@asynccontextmanager
async def _session_lock(session_id: str):
    lock = _session_locks.setdefault(session_id, asyncio.Lock())
    _session_lock_users[session_id] = _session_lock_users.get(session_id, 0) + 1
    try:
        async with lock:
            yield
    finally:
        _session_lock_users[session_id] -= 1
        if _session_lock_users[session_id] == 0:
            del _session_lock_users[session_id]
            del _session_locks[session_id]


def _dump_state(state: AgentState) -> dict:
    return state.model_dump(mode="json", by_alias=True)


def _db_row_to_session(row: dict) -> Session:
    return Session(
        id=row["id"],
        workspaceId=row["workspace_id"],
        model=row.get("model") or settings.llm_model,
        createdAt=str(row.get("created_at", "")),
        updatedAt=str(row.get("updated_at", "")),
    )


async def _require_session(session_id: str) -> dict:
    row = await db.get_session(session_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return row


def _build_agent(request: Request, row: dict, model_id: str | None = None) -> LocusAgent:
    model_id = model_id or row.get("model") or settings.llm_model
    try:
        model = get_model_provider(model_id)
    except ValueError as exc:
        logger.error("Model provider for %s unavailable: %s", model_id, exc)
        raise HTTPException(status_code=503, detail=str(exc))
    return LocusAgent(
        model,
        provider=request.app.state.provider,
        workspace_id=row["workspace_id"],
        initial_state=row["state"],
        turn_timeout=settings.agent_timeout_seconds,
    )


async def _run_exclusive(session_id: str, call: Callable[[], Awaitable[T]]) -> T:
    """Run one agent call under the session lock and the global semaphore."""
    async with _session_lock(session_id), _get_semaphore():
        try:
            return await call()
        except TimeoutError:
            logger.error(
                "Agent timed out after %ds for session %s",
                settings.agent_timeout_seconds, session_id,
            )
            raise HTTPException(
                status_code=504,
                detail=f"Agent timed out after {settings.agent_timeout_seconds}s. Please try again.",
            )
        except ConcurrentTurnError as exc:
            raise HTTPException(status_code=409, detail=str(exc))
        except PendingExecutionNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        except NoWorkflowMatchedError as exc:
            logger.error("Dispatch failed for session %s: %s", session_id, exc)
            raise HTTPException(status_code=500, detail=str(exc))


# ---------------------------------------------------------------------------
# GET /models
# ---------------------------------------------------------------------------


@router.get("/models", response_model=ModelsResponse)
async def list_models():
    """Return all available LLM models."""
    models = [
        ModelInfo(id=mid, label=entry["label"], provider=entry["provider"])
        for mid, entry in MODEL_REGISTRY.items()
    ]
    return ModelsResponse(models=models)


# ---------------------------------------------------------------------------
# POST /session/start
# ---------------------------------------------------------------------------


@router.post("/session/start", response_model=SessionWithState)
async def start_session(body: StartSessionRequest):
    session_id = f"session-{uuid.uuid4().hex}"
    state = load_state(body.state)

    row = await db.create_session(
        session_id=session_id,
        workspace_id=body.workspaceId,
        model=body.model,
        state=_dump_state(state),
    )
    logger.info("Started session %s for workspace %s", session_id, body.workspaceId)
    return SessionWithState(session=_db_row_to_session(row), state=state)


# ---------------------------------------------------------------------------
# POST /session/message
# ---------------------------------------------------------------------------


@router.post("/session/message", response_model=TurnResponse)
async def send_message(body: SendMessageRequest, request: Request):
    async def turn() -> TurnResponse:
        row = await _require_session(body.sessionId)
        agent = _build_agent(request, row, body.model)
        response = await agent.handle_message(body.content)
        state = agent.get_state()
        await db.update_session(body.sessionId, state=_dump_state(state), model=body.model)
        return TurnResponse(sessionId=body.sessionId, response=response, state=state)

    return await _run_exclusive(body.sessionId, turn)


# ---------------------------------------------------------------------------
# POST /session/intent  +  POST /session/execute
# ---------------------------------------------------------------------------


@router.post("/session/intent", response_model=IntentResponse)
async def detect_intent(body: SendMessageRequest, request: Request):
    async def detect() -> IntentResponse:
        row = await _require_session(body.sessionId)
        agent = _build_agent(request, row, body.model)
        detection = await agent.detect_intent(body.content)
        await db.update_session(body.sessionId, state=_dump_state(agent.get_state()))
        return IntentResponse(
            sessionId=body.sessionId,
            intent=detection.intent,
            executionId=detection.execution_id,
        )

    return await _run_exclusive(body.sessionId, detect)


@router.post("/session/execute", response_model=TurnResponse)
async def execute_pending(body: ExecuteRequest, request: Request):
    async def execute() -> TurnResponse:
        row = await _require_session(body.sessionId)
        agent = _build_agent(request, row, body.model)
        response = await agent.execute_pending(body.executionId)
        state = agent.get_state()
        await db.update_session(body.sessionId, state=_dump_state(state))
        return TurnResponse(sessionId=body.sessionId, response=response, state=state)

    return await _run_exclusive(body.sessionId, execute)


# ---------------------------------------------------------------------------
# POST /session/get
# ---------------------------------------------------------------------------


@router.post("/session/get", response_model=SessionWithState)
async def get_session(body: GetSessionRequest):
    row = await _require_session(body.sessionId)
    return SessionWithState(session=_db_row_to_session(row), state=load_state(row["state"]))


# ---------------------------------------------------------------------------
# POST /session/reset
# ---------------------------------------------------------------------------


@router.post("/session/reset")
async def reset_session(body: ResetSessionRequest):
    """Delete a session so the conversation can be started fresh."""
    async with _session_lock(body.sessionId):
        deleted = await db.delete_session(body.sessionId)
    if not deleted:
        raise HTTPException(status_code=404, detail="Session not found")
    logger.info("Reset session %s", body.sessionId)
    return {"status": "reset"}
