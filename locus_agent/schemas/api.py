"""
Pydantic models for the HTTP API.
Field names are camelCase to match what the Locus web client sends and reads.
"""
from __future__ import annotations

from pydantic import BaseModel, Field

from locus_agent.graph.state import AgentResponse, AgentState, Intent

# ---------------------------------------------------------------------------
# Shared types
# ---------------------------------------------------------------------------


class Session(BaseModel):
    id: str
    workspaceId: str
    model: str
    createdAt: str
    updatedAt: str


class SessionWithState(BaseModel):
    session: Session
    state: AgentState


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class StartSessionRequest(BaseModel):
    workspaceId: str = Field(..., max_length=200)
    model: str = Field(default="claude-sonnet-4-6", max_length=100)
    # Optional snapshot to resume a conversation stored elsewhere
    state: dict | None = None


class SendMessageRequest(BaseModel):
    sessionId: str = Field(..., max_length=200)
    content: str = Field(..., min_length=1, max_length=50000)
    model: str | None = Field(default=None, max_length=100)


class ExecuteRequest(BaseModel):
    sessionId: str = Field(..., max_length=200)
    executionId: str = Field(..., max_length=200)
    model: str | None = Field(default=None, max_length=100)


class GetSessionRequest(BaseModel):
    sessionId: str = Field(..., max_length=200)


class ResetSessionRequest(BaseModel):
    sessionId: str = Field(..., max_length=200)


# ---------------------------------------------------------------------------
# Response bodies
# ---------------------------------------------------------------------------


class TurnResponse(BaseModel):
    sessionId: str
    response: AgentResponse
    state: AgentState


class IntentResponse(BaseModel):
    sessionId: str
    intent: Intent
    executionId: str


class ModelInfo(BaseModel):
    id: str
    label: str
    provider: str


class ModelsResponse(BaseModel):
    models: list[ModelInfo]
