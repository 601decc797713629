"""
Intent classifier.

One model call per turn. Classification is best-effort: whatever the model
returns, the caller always gets an `IntentResult`.
"""
from __future__ import annotations

import logging

from langchain_core.exceptions import OutputParserException
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.output_parsers import JsonOutputParser
from pydantic import ValidationError

from locus_agent.graph.extract import content_to_text
from locus_agent.graph.llm import ModelProvider
from locus_agent.graph.prompts import build_intent_prompt, format_history
from locus_agent.graph.state import DEFAULT_INTENT, AgentState, Intent, IntentResult

logger = logging.getLogger(__name__)


class IntentClassifier:
    def __init__(
        self,
        model: ModelProvider,
        history_window: int = 5,
        confidence_threshold: float = 0.4,
        default_intent: Intent = DEFAULT_INTENT,
    ) -> None:
        self.model = model
        self.history_window = history_window
        self.confidence_threshold = confidence_threshold
        self.default_intent = default_intent
        self._parser = JsonOutputParser()

    def _fallback(self, reason: str) -> IntentResult:
        return IntentResult(intent=self.default_intent, confidence=0.0, reasoning=reason)

    async def classify(self, state: AgentState, user_input: str) -> IntentResult:
        messages = [
            SystemMessage(content=build_intent_prompt(state)),
            HumanMessage(
                content=(
                    f"Recent conversation:\n{format_history(state.history, self.history_window)}\n\n"
                    f"New message:\n{user_input}"
                )
            ),
        ]
        try:
            response = await self.model.invoke(messages)
        except Exception as exc:
            logger.warning("Intent classification call failed: %s", exc)
            return self._fallback(f"classification failed: {exc}")

        try:
            raw = self._parser.parse(content_to_text(response.content))
            if isinstance(raw, dict):
                if isinstance(raw.get("intent"), str):
                    raw["intent"] = raw["intent"].strip().upper()
                raw.setdefault("confidence", 1.0)
                # Some models answer on a 0-100 scale
                if isinstance(raw["confidence"], (int, float)) and 1 < raw["confidence"] <= 100:
                    raw["confidence"] = raw["confidence"] / 100
            result = IntentResult.model_validate(raw)
        except (OutputParserException, ValidationError) as exc:
            logger.warning("Unparseable intent output, defaulting to %s: %s", self.default_intent.value, exc)
            return self._fallback("unparseable classifier output")

        if result.intent != Intent.UNKNOWN and result.confidence < self.confidence_threshold:
            logger.info(
                "Low-confidence intent %s (%.2f) treated as UNKNOWN",
                result.intent.value,
                result.confidence,
            )
            result = IntentResult(
                intent=Intent.UNKNOWN, confidence=result.confidence, reasoning=result.reasoning
            )
        return result
