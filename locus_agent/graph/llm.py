"""
Model provider.

`ChatModelProvider` wraps a LangChain chat model behind the single call the
workflows need: `invoke(messages, tools) -> AIMessage`. Whether the model can
bind tools is resolved once, when the provider is built.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any, Protocol

from langchain_anthropic import ChatAnthropic
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, ToolMessage
from langchain_core.tools import BaseTool
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_openai import ChatOpenAI

from locus_agent.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Model registry & factory
# ---------------------------------------------------------------------------

MODEL_REGISTRY: dict[str, dict[str, str]] = {
    "claude-sonnet-4-6": {
        "provider": "anthropic",
        "model": "claude-sonnet-4-6",
        "label": "Claude Sonnet 4.6",
    },
    "claude-haiku-4-5": {
        "provider": "anthropic",
        "model": "claude-haiku-4-5-20251001",
        "label": "Claude Haiku 4.5",
    },
    "gpt-4o": {
        "provider": "openai_compatible",
        "model": "gpt-4o",
        "label": "GPT-4o",
    },
    "gemini-2.5-flash": {
        "provider": "google",
        "model": "gemini-2.5-flash",
        "label": "Gemini 2.5 Flash",
    },
}


class ModelProvider(Protocol):
    supports_tools: bool

    async def invoke(
        self,
        messages: Sequence[BaseMessage],
        tools: Sequence[BaseTool] | None = None,
    ) -> AIMessage: ...


def _supports_tool_binding(model: Any) -> bool:
    bind_tools = getattr(type(model), "bind_tools", None)
    return bind_tools is not None and bind_tools is not BaseChatModel.bind_tools


def _patch_dangling_tool_calls(messages: Sequence[BaseMessage]) -> list[BaseMessage]:
    """
    Insert synthetic ToolMessage responses for any tool_use blocks that were
    never followed by a tool_result. The tool loop reports results in a single
    observation turn instead, and providers reject a transcript with
    unanswered tool calls.
    """
    result: list[BaseMessage] = []
    for i, msg in enumerate(messages):
        result.append(msg)
        if not isinstance(msg, AIMessage) or not msg.tool_calls:
            continue
        covered: set[str] = set()
        j = i + 1
        while j < len(messages) and isinstance(messages[j], ToolMessage):
            covered.add(messages[j].tool_call_id)
            j += 1
        for tc in msg.tool_calls:
            if tc["id"] not in covered:
                result.append(
                    ToolMessage(content="acknowledged", tool_call_id=tc["id"], name=tc["name"])
                )
    return result


class ChatModelProvider:
    """Single-call interface over a LangChain chat model."""

    def __init__(self, model: BaseChatModel, request_timeout: float | None = None) -> None:
        self.model = model
        self.request_timeout = request_timeout
        self.supports_tools = _supports_tool_binding(model)
        if not self.supports_tools:
            logger.info("%s does not support tool binding; tools will be ignored", type(model).__name__)

    async def invoke(
        self,
        messages: Sequence[BaseMessage],
        tools: Sequence[BaseTool] | None = None,
    ) -> AIMessage:
        runnable: Any = self.model
        if tools and self.supports_tools:
            runnable = self.model.bind_tools(list(tools))

        async with asyncio.timeout(self.request_timeout):
            response = await runnable.ainvoke(_patch_dangling_tool_calls(messages))

        if isinstance(response, AIMessage):
            return response
        return AIMessage(content=getattr(response, "content", str(response)))


def create_chat_model(model_id: str | None = None) -> BaseChatModel:
    """Build a LangChain chat model for a registry id or a raw model name."""
    model_id = model_id or settings.llm_model
    entry = MODEL_REGISTRY.get(model_id) or {"provider": settings.llm_provider, "model": model_id}
    provider = entry["provider"]

    if provider == "anthropic":
        if not settings.anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY is missing. Set a valid API key in .env")
        return ChatAnthropic(
            model=entry["model"],
            anthropic_api_key=settings.anthropic_api_key,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )
    if provider == "openai_compatible":
        if not settings.openai_api_key:
            raise ValueError("OPENAI_API_KEY is missing. Set a valid API key in .env")
        return ChatOpenAI(
            model=entry["model"],
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url or None,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )
    if provider == "google":
        if not settings.google_api_key:
            raise ValueError("GOOGLE_API_KEY is missing. Set a valid API key in .env")
        return ChatGoogleGenerativeAI(
            model=entry["model"],
            google_api_key=settings.google_api_key,
            temperature=settings.llm_temperature,
            max_output_tokens=settings.llm_max_tokens,
        )
    raise ValueError(f"Unknown provider: {provider}")


# Cache providers so we don't re-create clients on every turn
_provider_cache: dict[str, ChatModelProvider] = {}


def get_model_provider(model_id: str | None = None) -> ChatModelProvider:
    model_id = model_id or settings.llm_model
    if model_id not in _provider_cache:
        _provider_cache[model_id] = ChatModelProvider(
            create_chat_model(model_id),
            request_timeout=settings.llm_request_timeout_seconds,
        )
    return _provider_cache[model_id]
