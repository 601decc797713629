"""
Project manifest bookkeeping.

The manifest is the assistant's structured picture of the project. Its
`completeness_score` is derived from `AgentState.missing_info`:

    score = round(100 * (required - |missing_info|) / required), clamped to 0..100

A field leaves `missing_info` once it is judged complete and does not come
back within the same conversation.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Any

from langchain_core.exceptions import OutputParserException
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.output_parsers import JsonOutputParser
from pydantic import ValidationError

from locus_agent.graph.extract import content_to_text
from locus_agent.graph.llm import ModelProvider
from locus_agent.graph.prompts import build_manifest_updater_prompt, format_history
from locus_agent.graph.state import (
    REQUIRED_MANIFEST_FIELDS,
    AgentState,
    ChatMessage,
    ProjectManifest,
    ProjectPhase,
)

logger = logging.getLogger(__name__)

# Derived or structural fields the model may not write
_READ_ONLY_FIELDS = {"completeness_score", "repository_state"}

# camelCase alias -> attribute name, plus the attribute names themselves
_FIELD_NAMES: dict[str, str] = {}
for _name, _field in ProjectManifest.model_fields.items():
    _FIELD_NAMES[_name] = _name
    if _field.alias:
        _FIELD_NAMES[_field.alias] = _name


def normalize_field_name(key: str) -> str | None:
    return _FIELD_NAMES.get(key)


def is_field_empty(manifest: ProjectManifest, field: str) -> bool:
    value = getattr(manifest, field, None)
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return value is None


def compute_missing_info(manifest: ProjectManifest) -> list[str]:
    """Required fields that are currently empty, in canonical order."""
    return [f for f in REQUIRED_MANIFEST_FIELDS if is_field_empty(manifest, f)]


def completeness_score(missing_info: Iterable[str]) -> int:
    required = len(REQUIRED_MANIFEST_FIELDS)
    missing = {f for f in missing_info if f in REQUIRED_MANIFEST_FIELDS}
    score = round(100 * (required - len(missing)) / required)
    return max(0, min(100, score))


def refresh_completeness(state: AgentState) -> None:
    state.manifest.completeness_score = completeness_score(state.missing_info)


def merge_missing_info(
    previous: Sequence[str],
    manifest: ProjectManifest,
    reported: Iterable[str] | None = None,
) -> list[str]:
    """
    Recompute missing_info after the manifest changed.

    Only fields already missing can stay missing. A previously-missing field
    stays missing while it is empty, or while the model still reports it as
    incomplete (`reported`, when given).
    """
    still_reported: set[str] | None = None
    if reported is not None:
        still_reported = {n for n in (normalize_field_name(r) for r in reported) if n}

    result = []
    for field in REQUIRED_MANIFEST_FIELDS:
        if field not in previous:
            continue
        if is_field_empty(manifest, field) or (still_reported is not None and field in still_reported):
            result.append(field)
    return result


_PHASE_ALIASES = {"BUILD": ProjectPhase.MVP_BUILD, "MVP": ProjectPhase.MVP_BUILD}


def _coerce(field: str, value: Any) -> Any:
    if field == "phase" and isinstance(value, str):
        key = value.strip().upper().replace(" ", "_")
        return _PHASE_ALIASES.get(key, key)
    annotation = ProjectManifest.model_fields[field].annotation
    if annotation == list[str]:
        if isinstance(value, str):
            return [value.strip()] if value.strip() else []
        if isinstance(value, list):
            return [str(v).strip() for v in value if str(v).strip()]
    if isinstance(value, str):
        return value.strip()
    return value


def apply_manifest_updates(
    manifest: ProjectManifest, updates: dict[str, Any]
) -> tuple[ProjectManifest, list[str]]:
    """
    Merge model-proposed updates into a copy of the manifest.

    Keys may be snake_case or camelCase. Unknown keys, read-only keys, nulls
    and values that fail validation are dropped. Returns (manifest, changed
    field names).
    """
    current = manifest.model_dump()
    changed: list[str] = []
    for key, value in (updates or {}).items():
        field = normalize_field_name(key)
        if field is None or field in _READ_ONLY_FIELDS or value is None:
            continue
        candidate = {**current, field: _coerce(field, value)}
        try:
            ProjectManifest.model_validate(candidate)
        except ValidationError:
            logger.warning("Dropping invalid manifest update for %s: %r", field, value)
            continue
        if candidate[field] != current[field]:
            current = candidate
            changed.append(field)
    return ProjectManifest.model_validate(current), changed


def validate_and_repair(raw: dict[str, Any] | None) -> tuple[ProjectManifest, list[str]]:
    """
    Rebuild a manifest from a stored snapshot, resetting fields that are
    missing or malformed. Returns (manifest, repaired field names).
    """
    if not raw:
        return ProjectManifest(), list(REQUIRED_MANIFEST_FIELDS)

    defaults = ProjectManifest().model_dump()
    repaired: list[str] = []
    clean: dict[str, Any] = {}
    for key, value in raw.items():
        field = normalize_field_name(key)
        if field is not None:
            clean[field] = value

    for field in ProjectManifest.model_fields:
        if field not in clean or clean[field] is None:
            if field in REQUIRED_MANIFEST_FIELDS:
                repaired.append(field)
            clean[field] = defaults[field]
            continue
        try:
            ProjectManifest.model_validate({**defaults, field: clean[field]})
        except ValidationError:
            if field == "completeness_score" and isinstance(clean[field], (int, float)):
                clean[field] = max(0, min(100, int(clean[field])))
            elif field == "phase":
                clean[field] = ProjectPhase.PLANNING
            else:
                clean[field] = defaults[field]
            repaired.append(field)

    if repaired:
        logger.warning("Manifest repaired fields: %s", ", ".join(repaired))
    return ProjectManifest.model_validate(clean), repaired


class ManifestUpdater:
    """Best-effort extraction of manifest facts from ordinary conversation turns."""

    def __init__(self, model: ModelProvider, history_window: int = 5) -> None:
        self.model = model
        self.history_window = history_window
        self._parser = JsonOutputParser()

    async def extract_updates(
        self, manifest: ProjectManifest, history: Sequence[ChatMessage], user_input: str
    ) -> dict[str, Any]:
        messages = [
            SystemMessage(content=build_manifest_updater_prompt(manifest)),
            HumanMessage(
                content=(
                    f"Recent conversation:\n{format_history(history, self.history_window)}\n\n"
                    f"Latest user message:\n{user_input}"
                )
            ),
        ]
        try:
            response = await self.model.invoke(messages)
            updates = self._parser.parse(content_to_text(response.content))
        except OutputParserException as exc:
            logger.warning("Manifest updater returned unparseable output: %s", exc)
            return {}
        except Exception:
            logger.warning("Manifest updater failed", exc_info=True)
            return {}
        if not isinstance(updates, dict):
            return {}
        return updates

    async def update(self, state: AgentState, user_input: str) -> list[str]:
        """Merge extracted facts into `state`. Returns the changed fields."""
        updates = await self.extract_updates(state.manifest, state.history, user_input)
        if not updates:
            return []
        state.manifest, changed = apply_manifest_updates(state.manifest, updates)
        if changed:
            logger.info("Passive manifest update: %s", ", ".join(changed))
            state.missing_info = merge_missing_info(state.missing_info, state.manifest)
        refresh_completeness(state)
        return changed
