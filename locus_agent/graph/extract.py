"""
Lenient parsers for structured output embedded in model text.

None of these raise on malformed input: callers get the raw text back and
no structured output. The document compiler is the one caller that treats a
parse failure as fatal, and it does so itself.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any

from locus_agent.graph.state import SuggestedAction

logger = logging.getLogger(__name__)

_SUGGESTIONS_RE = re.compile(r"<suggestions>([\s\S]*?)</suggestions>")
# Only a fence wrapping the whole text; fences inside JSON strings stay put
_FENCE_RE = re.compile(r"```[\w-]*[ \t]*\n?([\s\S]*)```")


def content_to_text(content: Any) -> str:
    """Flatten LangChain message content (str or list of blocks) to plain text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type", "text") == "text":
                parts.append(str(block.get("text", "")))
        return "".join(parts)
    if content is None:
        return ""
    return str(content)


def extract_suggestions(content: Any) -> tuple[str, list[SuggestedAction]]:
    """
    Pull the `<suggestions>[{"label": ..., "text": ...}]</suggestions>` block
    out of assistant text.

    Returns (clean_content, actions). If the block is missing or its payload
    is not a JSON array of label/text objects, the text comes back unchanged
    with no actions.
    """
    text = content_to_text(content)
    match = _SUGGESTIONS_RE.search(text)
    if not match:
        return text, []

    try:
        items = json.loads(match.group(1))
    except json.JSONDecodeError as exc:
        logger.warning("Failed to parse suggested actions: %s", exc)
        return text, []

    if not isinstance(items, list) or not all(
        isinstance(i, dict) and isinstance(i.get("label"), str) and isinstance(i.get("text"), str)
        for i in items
    ):
        logger.warning("Suggested actions block has an unexpected shape")
        return text, []

    actions = [
        SuggestedAction(label=i["label"], type="chat_suggestion", payload={"text": i["text"]})
        for i in items
    ]
    clean = (text[: match.start()] + text[match.end():]).strip()
    return clean, actions


def strip_code_fences(text: str) -> str:
    """Unwrap a ```json fence around the whole text (if any) and trim whitespace."""
    text = text.strip()
    match = _FENCE_RE.fullmatch(text)
    if match:
        return match.group(1).strip()
    return text


def parse_json_payload(text: Any) -> Any | None:
    """Best-effort JSON parse of a tool result. Returns None when it isn't JSON."""
    if not isinstance(text, str):
        return text if isinstance(text, (dict, list)) else None
    try:
        return json.loads(strip_code_fences(text))
    except (json.JSONDecodeError, TypeError):
        return None
