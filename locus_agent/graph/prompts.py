"""
Context builder. Prompts and message sequences are assembled fresh each turn
from the conversation state; nothing here has side effects.
"""
from __future__ import annotations

import json
from collections.abc import Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from locus_agent.graph.state import (
    REQUIRED_MANIFEST_FIELDS,
    AgentState,
    ChatMessage,
    Intent,
    ProjectManifest,
)

_FIELD_LABELS = {
    "name": "Project Name",
    "mission": "Mission & Vision",
    "target_users": "Target Users",
    "tech_stack": "Tech Stack",
    "phase": "Current Phase",
    "features": "Features",
    "competitors": "Competitors",
    "brand_voice": "Brand Voice",
    "success_metrics": "Success Metrics",
}

_STANDARDS_OF_WORK = """\
## Your Standards
- When creating tasks, NEVER provide one-line descriptions.
- Every task MUST have a detailed description that explains the technical requirements, implementation steps, and context.
- Every task MUST include a clear 'Acceptance Checklist' with specific, testable criteria.
- Use the Tech Stack and Features listed below to inform the technical depth of your work.
- Maintain a highly professional, proactive, and expert tone.
- ALWAYS USE RICH MARKDOWN for your responses: headings (###), bold text, bullet points and code blocks where appropriate.
- NEVER include raw IDs, JSON snippets, or technical "observation" strings in your text responses.
- NEVER invent IDs. Only use IDs returned by tools or listed under "Current Workflow State"."""

SUGGESTIONS_INSTRUCTIONS = """\
## Suggested Replies
When it helps the user continue, end your answer with up to 3 quick replies in this exact format:
<suggestions>[{"label": "Short button label", "text": "Full message the user would send"}]</suggestions>"""

_INTENT_DESCRIPTIONS = {
    Intent.INTERVIEW: "The user is describing their project, or answering questions about its mission, users, stack, features, competitors, voice or metrics.",
    Intent.QUERY: "The user asks a question about existing tasks, documents, sprints or the project.",
    Intent.IDEA: "The user is brainstorming or exploring a new idea or feature.",
    Intent.PRODUCT_DOCUMENTING: "The user wants a product document written or edited (PRD, user stories, roadmap).",
    Intent.TECHNICAL_DOCUMENTING: "The user wants a technical document written or edited (architecture, API design, data model).",
    Intent.COMPILING: "The user wants an existing document turned into engineering tasks or a sprint.",
    Intent.CREATE_TASK: "The user wants one specific task or bug created.",
    Intent.PLANNING: "The user wants to plan, create or reorganize sprints, or move tasks between sprints.",
    Intent.ANALYZING: "The user wants an analysis of progress, project health or the repository.",
    Intent.UNKNOWN: "The message is ambiguous or a short follow-up that only makes sense in the ongoing conversation.",
}

WORKFLOW_INSTRUCTIONS: dict[str, str] = {
    "Query": (
        "You are in Query mode. Answer the user's question using the read-only tools. "
        "Look up tasks, documents or sprints before answering; never guess their contents."
    ),
    "Idea": (
        "You are in Idea mode. Help the user explore and sharpen the idea: challenge assumptions, "
        "relate it to the mission, features and competitors in the manifest, and propose next steps. "
        "If the user asks to capture the idea, create a document (or a task) for it."
    ),
    "Product Documenting": (
        "You are in Product Documenting mode. Draft or refine product documents (PRDs, user stories, "
        "roadmaps) with create_document / update_document. Structure documents with one "
        "'## Requirement' section per requirement so they can later be compiled into tasks. "
        "Do not compile documents into tasks in this mode."
    ),
    "Technical Documenting": (
        "You are in Technical Documenting mode. Draft or refine technical documents (architecture, "
        "API contracts, data models) grounded in the Tech Stack. Use create_document / update_document. "
        "Do not compile documents into tasks in this mode."
    ),
    "Compiling": (
        "You are in Compiling mode. Your task is to transform existing documents into a fully planned "
        "Sprint with tasks.\n\n"
        "SEQUENCE OF OPERATIONS:\n"
        '1. Check "Current Workflow State" above.\n'
        "   - IF the document you want to compile is listed there, use its ID directly.\n"
        "   - IF NOT, call 'list_documents' to find the ID.\n"
        "2. Call 'compile_document_to_tasks' with the EXACT doc_id.\n"
        "3. Review the created tasks (they will appear in the output).\n"
        "4. (Optional) Create a Sprint and move the created task IDs into it.\n\n"
        "NEVER guess IDs or use titles as IDs."
    ),
    "Task Creation": (
        "You are a Senior Technical Lead responsible for creating high-quality engineering tasks.\n"
        "1. Analyze the user's request to create a task or fix a bug.\n"
        "2. If the request is vague, infer the necessary technical details (acceptance criteria, priority).\n"
        "3. Call 'create_task' with a clear, action-oriented title, a detailed description, a priority "
        "(LOW, MEDIUM, HIGH or CRITICAL) and an acceptance_checklist array of {id, text, done} objects.\n"
        "4. Confirm the creation to the user.\n"
        'Always create a REAL task in the system. Do not just say "I will create it". Call the tool.'
    ),
    "Planning": (
        "You are in Planning mode. Organize work into sprints: list existing sprints and tasks, create "
        "sprints when needed, and move tasks with batch_update_tasks (sprint_id 'active' or 'next' "
        "targets the current sprint automatically). After moving tasks, run plan_sprint."
    ),
    "Analysis": (
        "You are in Analysis mode. Review progress and project health: task status distribution, "
        "sprint progress, documentation coverage and, if present, the repository snapshot. "
        "Report risks and concrete recommendations. Do not modify anything in this mode."
    ),
    "Execution": (
        "Use the available tools to carry out the user's request end to end, then summarize what was done."
    ),
}


def _score_bar(score: int) -> str:
    """Render a small text-based progress bar for the system prompt."""
    filled = score // 10
    empty = 10 - filled
    return f"[{'=' * filled}{'.' * empty}]"


def _format_value(value: object) -> str:
    if isinstance(value, list):
        return ", ".join(str(v) for v in value) if value else ""
    if hasattr(value, "value"):
        return str(value.value)
    return str(value or "")


def format_history(history: Sequence[ChatMessage], window: int | None = None) -> str:
    messages = list(history)[-window:] if window else list(history)
    if not messages:
        return "(no previous messages)"
    return "\n".join(f"{m.role}: {m.content}" for m in messages)


def build_messages(
    history: Sequence[ChatMessage],
    user_input: str,
    system_prompt: str | None = None,
) -> list[BaseMessage]:
    """Role-tagged transcript: optional system prompt, history, then the new input."""
    messages: list[BaseMessage] = []
    if system_prompt:
        messages.append(SystemMessage(content=system_prompt))
    for msg in history:
        if msg.role == "user":
            messages.append(HumanMessage(content=msg.content))
        else:
            messages.append(AIMessage(content=msg.content))
    messages.append(HumanMessage(content=user_input))
    return messages


def summarize_manifest(manifest: ProjectManifest) -> str:
    """One-line condensed manifest, used in workflow state and classifier prompts."""
    parts = []
    for field in REQUIRED_MANIFEST_FIELDS:
        value = _format_value(getattr(manifest, field))
        if value:
            parts.append(f"{_FIELD_LABELS[field]}: {value}")
    parts.append(f"Completeness: {manifest.completeness_score}%")
    return " | ".join(parts)


def build_project_context(state: AgentState) -> str:
    m = state.manifest
    lines = ["## Project Knowledge (MANIFEST)"]
    for field in REQUIRED_MANIFEST_FIELDS:
        value = _format_value(getattr(m, field)) or "Not yet defined"
        lines.append(f"- {_FIELD_LABELS[field]}: {value}")
    lines.append(f"- Completeness: {_score_bar(m.completeness_score)} {m.completeness_score}%")
    if state.missing_info:
        missing = ", ".join(_FIELD_LABELS.get(f, f) for f in state.missing_info)
        lines.append(f"- Still missing: {missing}")
    if m.repository_state and m.repository_state.summary:
        lines.append(f"- Repository: {m.repository_state.summary}")
        if m.repository_state.frameworks:
            lines.append(f"- Frameworks: {', '.join(m.repository_state.frameworks)}")

    return (
        "You are Locus AI, a Senior Project Manager and Lead Architect.\n"
        "Your goal is to ensure this project is planned and executed with the highest "
        "professional standards.\n\n"
        f"{_STANDARDS_OF_WORK}\n\n"
        + "\n".join(lines)
        + "\n\nUse this knowledge to act as the true owner of this project. When drafting documents "
        "or tasks, be creative and thorough."
    )


def build_workflow_state_block(state: AgentState) -> str:
    """Entities created earlier in this session, so the model reuses real IDs."""
    workflow = state.workflow
    if workflow is None or not workflow.created_entities:
        return ""
    lines = ["## Current Workflow State", "Entities created in this session (use these exact IDs):"]
    for entity in workflow.created_entities:
        lines.append(f"- {entity.type} \"{entity.title}\" (ID: {entity.id})")
    if workflow.pending_actions:
        lines.append("Pending actions:")
        lines += [f"- {a}" for a in workflow.pending_actions]
    return "\n".join(lines)


def build_system_prompt(state: AgentState, instructions: str = "") -> str:
    blocks = [build_project_context(state)]
    workflow_block = build_workflow_state_block(state)
    if workflow_block:
        blocks.append(workflow_block)
    if instructions:
        blocks.append(instructions)
    blocks.append(SUGGESTIONS_INSTRUCTIONS)
    return "\n\n".join(blocks)


def build_observation_message(observations: Sequence[str]) -> HumanMessage:
    text = "\n\n".join(observations) if observations else "No tools were executed."
    return HumanMessage(
        content=f"Tool Execution Result:\n{text}\n\nContinue executing if needed, or answer the user."
    )


def build_intent_prompt(state: AgentState) -> str:
    options = "\n".join(f"- {intent.value}: {desc}" for intent, desc in _INTENT_DESCRIPTIONS.items())
    return f"""You classify the intent of the latest user message in a project-management assistant.

## Current Mode
{state.mode.value}

## Project
{summarize_manifest(state.manifest)}

## Intents
{options}

Respond with ONLY a JSON object, no prose:
{{"intent": "<one of the intents above>", "confidence": <number between 0 and 1>, "reasoning": "<one sentence>"}}"""


def build_interview_prompt(state: AgentState) -> str:
    manifest_json = state.manifest.model_dump_json(exclude={"completeness_score", "repository_state"})
    missing = ", ".join(state.missing_info) or "none"
    fields = ", ".join(REQUIRED_MANIFEST_FIELDS)
    return f"""You are Locus AI, interviewing the user to build a complete project manifest.

## Current Manifest
{manifest_json}

## Fields Still Missing
{missing}

## Rules
- Extract every fact the user stated and merge it into the manifest fields ({fields}).
- List fields (target_users, tech_stack, features, competitors, success_metrics) must be arrays of strings.
- phase is one of PLANNING, MVP_BUILD, SCALING, MAINTENANCE.
- A field counts as complete only when it is specific and useful, not merely non-empty.
- Ask ONE focused follow-up question about the most important missing field.
- Offer 0-3 quick replies the user could click.

Respond with ONLY a JSON object, no prose:
{{
  "manifest_updates": {{"<field>": <value>}},
  "missing_info": ["<fields that are still incomplete>"],
  "reply": "<your message to the user, in markdown>",
  "suggested_actions": [{{"label": "<short label>", "text": "<full reply>"}}]
}}"""


def build_manifest_updater_prompt(manifest: ProjectManifest) -> str:
    manifest_json = manifest.model_dump_json(exclude={"completeness_score", "repository_state"})
    return f"""You maintain a project manifest. Read the conversation and extract ONLY new or changed facts about the project.

## Current Manifest
{manifest_json}

Allowed fields: {", ".join(REQUIRED_MANIFEST_FIELDS)}.
List fields must be complete arrays (existing items plus new ones).
If nothing changed, return {{}}.

Respond with ONLY a JSON object containing the changed fields."""


def build_compiler_prompt(doc_type: str) -> str:
    return f"""You are a Lead Engineer decomposing a {doc_type} document into engineering tasks.

## Rules
- Create one task per distinct requirement. Do not merge unrelated requirements.
- Every task needs a detailed description and at least one testable acceptance criterion.
- estimated_complexity is one of "low", "medium", "high".
- dependencies lists titles of other tasks in this output that must be done first.
- Put anything ambiguous or contradictory in the document into warnings.

Respond with ONLY a JSON object:
{json.dumps({
    "tasks": [{
        "title": "...",
        "description": "...",
        "acceptance_criteria": ["..."],
        "estimated_complexity": "medium",
        "dependencies": [],
    }],
    "warnings": [],
}, indent=2)}"""
