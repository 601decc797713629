"""ChatModelProvider and the model factory."""

from __future__ import annotations

from typing import Any

import pytest
from conftest import tool_calls
from langchain_anthropic import ChatAnthropic
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, HumanMessage, ToolMessage
from langchain_core.outputs import ChatGeneration, ChatResult

from locus_agent.config import settings
from locus_agent.graph.llm import ChatModelProvider, create_chat_model
from locus_agent.graph.tools import ToolRegistry


class EchoChatModel(BaseChatModel):
    """Replies with the number of messages it received. Cannot bind tools."""

    seen: list[Any] = []

    @property
    def _llm_type(self) -> str:
        return "echo"

    def _generate(self, messages, stop=None, run_manager=None, **kwargs) -> ChatResult:
        self.seen.append(list(messages))
        reply = AIMessage(content=f"{len(messages)} messages")
        return ChatResult(generations=[ChatGeneration(message=reply)])


class ToolAwareChatModel(EchoChatModel):
    bound: list[str] = []

    def bind_tools(self, tools, **kwargs):
        self.bound.extend(t.name for t in tools)
        return self


class TestChatModelProvider:
    def test_tool_support_detection(self):
        assert ChatModelProvider(EchoChatModel(seen=[])).supports_tools is False
        assert ChatModelProvider(ToolAwareChatModel(seen=[], bound=[])).supports_tools is True

    @pytest.mark.asyncio
    async def test_invoke_returns_ai_message(self):
        provider = ChatModelProvider(EchoChatModel(seen=[]))

        response = await provider.invoke([HumanMessage(content="hi")])

        assert isinstance(response, AIMessage)
        assert response.content == "1 messages"

    @pytest.mark.asyncio
    async def test_tools_ignored_without_binding_support(self, provider):
        tools = ToolRegistry(provider, "ws").get_tools(["list_tasks"])

        response = await ChatModelProvider(EchoChatModel(seen=[])).invoke([HumanMessage(content="hi")], tools)

        assert response.content == "1 messages"

    @pytest.mark.asyncio
    async def test_tools_bound_when_supported(self, provider):
        model = ToolAwareChatModel(seen=[], bound=[])
        tools = ToolRegistry(provider, "ws").get_tools(["list_tasks", "create_task"])

        await ChatModelProvider(model).invoke([HumanMessage(content="hi")], tools)

        assert model.bound == ["list_tasks", "create_task"]

    @pytest.mark.asyncio
    async def test_dangling_tool_calls_patched_before_sending(self):
        model = EchoChatModel(seen=[])
        transcript = [
            HumanMessage(content="hi"),
            tool_calls(("list_tasks", {})),
            HumanMessage(content="Tool Execution Result: ..."),
        ]

        response = await ChatModelProvider(model).invoke(transcript)

        assert response.content == "4 messages"
        assert isinstance(model.seen[0][2], ToolMessage)


class TestCreateChatModel:
    def test_missing_key_raises(self, monkeypatch):
        monkeypatch.setattr(settings, "anthropic_api_key", "")

        with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
            create_chat_model("claude-sonnet-4-6")

    def test_registry_id_resolves_provider(self, monkeypatch):
        monkeypatch.setattr(settings, "anthropic_api_key", "sk-test")

        model = create_chat_model("claude-haiku-4-5")

        assert isinstance(model, ChatAnthropic)
        assert model.model == "claude-haiku-4-5-20251001"

    def test_unknown_provider(self, monkeypatch):
        monkeypatch.setattr(settings, "llm_provider", "carrier-pigeon")

        with pytest.raises(ValueError, match="Unknown provider"):
            create_chat_model("some-local-model")
