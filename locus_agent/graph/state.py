"""
Conversation state for the Locus assistant.

`AgentState` is the per-conversation record owned by one `LocusAgent`.
The models serialize with camelCase aliases so snapshots match the shape the
web client stores; Python code uses the snake_case attribute names.

`ToolLoopState` is the transient LangGraph state of a single tool-calling
loop and never outlives the turn that created it.
"""
from __future__ import annotations

import operator
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal

from langgraph.graph.message import add_messages
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing_extensions import TypedDict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AgentMode(str, Enum):
    IDLE = "IDLE"
    INTERVIEW = "INTERVIEW"
    PLANNING = "PLANNING"
    QUERY = "QUERY"
    IDEA = "IDEA"
    DOCUMENTING = "DOCUMENTING"
    COMPILING = "COMPILING"
    EXECUTING = "EXECUTING"
    ANALYZING = "ANALYZING"


class Intent(str, Enum):
    INTERVIEW = "INTERVIEW"
    QUERY = "QUERY"
    IDEA = "IDEA"
    PRODUCT_DOCUMENTING = "PRODUCT_DOCUMENTING"
    TECHNICAL_DOCUMENTING = "TECHNICAL_DOCUMENTING"
    COMPILING = "COMPILING"
    CREATE_TASK = "CREATE_TASK"
    PLANNING = "PLANNING"
    ANALYZING = "ANALYZING"
    UNKNOWN = "UNKNOWN"


# Used when the classifier output cannot be understood
DEFAULT_INTENT = Intent.QUERY


class ProjectPhase(str, Enum):
    PLANNING = "PLANNING"
    MVP_BUILD = "MVP_BUILD"
    SCALING = "SCALING"
    MAINTENANCE = "MAINTENANCE"


class RepositoryContext(_Model):
    summary: str = ""
    file_structure: str = ""
    dependencies: dict[str, str] = Field(default_factory=dict)
    frameworks: list[str] = Field(default_factory=list)
    config_files: list[str] = Field(default_factory=list)
    last_analysis: str = ""


class ProjectManifest(_Model):
    name: str = ""
    mission: str = ""
    target_users: list[str] = Field(default_factory=list)
    tech_stack: list[str] = Field(default_factory=list)
    phase: ProjectPhase = ProjectPhase.PLANNING
    features: list[str] = Field(default_factory=list)
    competitors: list[str] = Field(default_factory=list)
    brand_voice: str = ""
    success_metrics: list[str] = Field(default_factory=list)
    completeness_score: int = Field(default=0, ge=0, le=100)
    repository_state: RepositoryContext | None = None


REQUIRED_MANIFEST_FIELDS: tuple[str, ...] = (
    "name",
    "mission",
    "target_users",
    "tech_stack",
    "phase",
    "features",
    "competitors",
    "brand_voice",
    "success_metrics",
)


class SuggestedAction(_Model):
    label: str
    type: str = "chat_suggestion"
    payload: dict[str, Any] = Field(default_factory=dict)


class Artifact(_Model):
    id: str
    type: Literal["task", "document", "sprint"]
    title: str
    content: str = ""
    metadata: dict[str, Any] | None = None


class ChatMessage(_Model):
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)
    artifacts: list[Artifact] | None = None
    suggested_actions: list[SuggestedAction] | None = None


class CreatedEntity(_Model):
    id: str
    type: Literal["task", "document", "sprint"]
    title: str
    created_at: datetime = Field(default_factory=_utcnow)


class WorkflowState(_Model):
    current_intent: Intent | None = None
    created_entities: list[CreatedEntity] = Field(default_factory=list)
    pending_actions: list[str] = Field(default_factory=list)
    manifest_summary: str = ""


class PendingExecution(_Model):
    intent: Intent
    original_input: str
    execution_id: str


class AgentState(_Model):
    mode: AgentMode = AgentMode.IDLE
    scratchpad: list[str] = Field(default_factory=list)
    missing_info: list[str] = Field(default_factory=list)
    history: list[ChatMessage] = Field(default_factory=list)
    manifest: ProjectManifest = Field(default_factory=ProjectManifest)
    workflow: WorkflowState | None = None
    pending_execution: PendingExecution | None = None


class AgentResponse(_Model):
    content: str
    artifacts: list[Artifact] = Field(default_factory=list)
    suggested_actions: list[SuggestedAction] = Field(default_factory=list)


class IntentResult(_Model):
    intent: Intent
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    reasoning: str = ""


class IntentDetection(_Model):
    intent: Intent
    execution_id: str


class ToolLoopState(TypedDict):
    # Transcript of this loop; LangGraph appends each node's messages
    messages: Annotated[list, add_messages]

    # Model invocations made so far
    steps: int

    # Accumulated across rounds; deduplicated when the loop ends
    artifacts: Annotated[list[Artifact], operator.add]
    suggested_actions: Annotated[list[SuggestedAction], operator.add]

    # Entities created (not merely read) by tool calls in this loop
    created: Annotated[list[Artifact], operator.add]
