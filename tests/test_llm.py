"""Tests for src.core.llm — provider translation and error mapping."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import httpx
import openai
import pytest

from src.config import settings
from src.core import llm
from src.core.llm import (
    LLMAuthError,
    LLMRateLimitError,
    LLMUpstreamError,
    ModelReply,
    ToolCall,
    _chat_openai_compatible,
    _ProviderConfig,
    _select_provider,
    _to_anthropic,
)

CFG = _ProviderConfig(model="test-model", base_url="https://llm.example.com/v1", max_tokens=256, timeout=5.0)
REQUEST = httpx.Request("POST", "https://llm.example.com/v1/chat/completions")


def _status_error(cls, status, message):
    return cls(message, response=httpx.Response(status, request=REQUEST), body=None)


def _completion(content=None, tool_calls=None):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


# ---------------------------------------------------------------------------
# Reply types
# ---------------------------------------------------------------------------


class TestModelReply:
    def test_text_only(self):
        assert ModelReply(text="hi").to_message() == {"role": "assistant", "content": "hi"}

    def test_tool_calls_use_openai_shape(self):
        reply = ModelReply(tool_calls=[ToolCall(id="c1", name="manage_notes", arguments='{"action": "list"}')])
        assert reply.to_message() == {
            "role": "assistant",
            "content": None,
            "tool_calls": [{
                "id": "c1",
                "type": "function",
                "function": {"name": "manage_notes", "arguments": '{"action": "list"}'},
            }],
        }


# ---------------------------------------------------------------------------
# Anthropic translation
# ---------------------------------------------------------------------------


class TestToAnthropic:
    def test_system_is_lifted_out(self):
        system, converted = _to_anthropic([
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "hello"},
        ])
        assert system == "be brief"
        assert converted == [{"role": "user", "content": "hello"}]

    def test_tool_round_trip(self):
        _, converted = _to_anthropic([
            {"role": "user", "content": "add two tasks"},
            ModelReply(tool_calls=[
                ToolCall(id="c1", name="manage_tasks", arguments='{"action": "create", "title": "a"}'),
                ToolCall(id="c2", name="manage_tasks", arguments="not json"),
            ]).to_message(),
            {"role": "tool", "tool_call_id": "c1", "content": '{"success": true}'},
            {"role": "tool", "tool_call_id": "c2", "content": '{"success": false}'},
        ])

        assistant = converted[1]
        assert assistant["role"] == "assistant"
        assert [b["id"] for b in assistant["content"]] == ["c1", "c2"]
        assert assistant["content"][0]["input"] == {"action": "create", "title": "a"}
        assert assistant["content"][1]["input"] == {}

        # Both results travel in one user turn
        assert len(converted) == 3
        assert [b["tool_use_id"] for b in converted[2]["content"]] == ["c1", "c2"]


# ---------------------------------------------------------------------------
# OpenAI-compatible provider
# ---------------------------------------------------------------------------


class TestOpenAICompatible:
    @pytest.mark.asyncio
    async def test_parses_tool_calls(self):
        call = SimpleNamespace(id="c1", function=SimpleNamespace(name="manage_tasks", arguments='{"action": "list"}'))
        with patch("openai.AsyncOpenAI") as client_cls:
            client_cls.return_value.chat.completions.create = AsyncMock(
                return_value=_completion(tool_calls=[call])
            )
            reply = await _chat_openai_compatible("key", CFG, [{"role": "user", "content": "hi"}], [], "auto")

        assert reply.text == ""
        assert reply.tool_calls == [ToolCall(id="c1", name="manage_tasks", arguments='{"action": "list"}')]
        kwargs = client_cls.call_args.kwargs
        assert kwargs["api_key"] == "key"
        assert kwargs["base_url"] == "https://llm.example.com/v1"

    @pytest.mark.asyncio
    async def test_parses_text(self):
        with patch("openai.AsyncOpenAI") as client_cls:
            client_cls.return_value.chat.completions.create = AsyncMock(return_value=_completion(content="Done"))
            reply = await _chat_openai_compatible("key", CFG, [], [], "auto")
        assert reply.text == "Done"
        assert reply.tool_calls == []

    @pytest.mark.asyncio
    async def test_client_closed_after_each_call(self):
        with patch("openai.AsyncOpenAI") as client_cls:
            client = client_cls.return_value
            client.chat.completions.create = AsyncMock(return_value=_completion(content="Done"))
            await _chat_openai_compatible("key", CFG, [], [], "auto")
            client.__aexit__.assert_awaited_once()

            client.chat.completions.create = AsyncMock(side_effect=openai.APIConnectionError(request=REQUEST))
            with pytest.raises(LLMUpstreamError):
                await _chat_openai_compatible("key", CFG, [], [], "auto")
            assert client.__aexit__.await_count == 2

    @pytest.mark.asyncio
    async def test_anthropic_client_closed(self):
        block = SimpleNamespace(type="text", text="Hi")
        with patch("anthropic.AsyncAnthropic") as client_cls:
            client = client_cls.return_value
            client.messages.create = AsyncMock(return_value=SimpleNamespace(content=[block]))
            reply = await llm._chat_anthropic("key", CFG, [{"role": "user", "content": "hi"}], [], "auto")
        assert reply.text == "Hi"
        client.__aexit__.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_empty_choices(self):
        with patch("openai.AsyncOpenAI") as client_cls:
            client_cls.return_value.chat.completions.create = AsyncMock(return_value=SimpleNamespace(choices=[]))
            with pytest.raises(LLMUpstreamError):
                await _chat_openai_compatible("key", CFG, [], [], "auto")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("exc,expected", [
        (_status_error(openai.AuthenticationError, 401, "invalid key"), LLMAuthError),
        (_status_error(openai.PermissionDeniedError, 403, "no access"), LLMAuthError),
        (_status_error(openai.BadRequestError, 400, "API_KEY_INVALID"), LLMAuthError),
        (_status_error(openai.RateLimitError, 429, "slow down"), LLMRateLimitError),
        (_status_error(openai.BadRequestError, 400, "bad schema"), LLMUpstreamError),
        (_status_error(openai.InternalServerError, 500, "boom"), LLMUpstreamError),
        (openai.APIConnectionError(request=REQUEST), LLMUpstreamError),
    ])
    async def test_error_mapping(self, exc, expected):
        with patch("openai.AsyncOpenAI") as client_cls:
            client_cls.return_value.chat.completions.create = AsyncMock(side_effect=exc)
            with pytest.raises(expected):
                await _chat_openai_compatible("key", CFG, [], [], "auto")


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


class TestSelectProvider:
    def test_openrouter_defaults(self):
        with patch.object(settings, "LLM_PROVIDER", "openrouter"), \
             patch.object(settings, "LLM_MODEL", ""), \
             patch.object(settings, "LLM_BASE_URL", ""):
            fn, cfg = _select_provider()
        assert fn is _chat_openai_compatible
        assert cfg.base_url == "https://openrouter.ai/api/v1"
        assert cfg.model == "deepseek/deepseek-chat"

    def test_model_override(self):
        with patch.object(settings, "LLM_PROVIDER", "anthropic"), \
             patch.object(settings, "LLM_MODEL", "claude-custom"):
            fn, cfg = _select_provider()
        assert fn is llm._chat_anthropic
        assert cfg.model == "claude-custom"

    def test_unknown_provider(self):
        with patch.object(settings, "LLM_PROVIDER", "carrier-pigeon"):
            with pytest.raises(ValueError, match="carrier-pigeon"):
                _select_provider()

    @pytest.mark.asyncio
    async def test_chat_with_tools_forwards_key(self, monkeypatch):
        provider = AsyncMock(return_value=ModelReply(text="ok"))
        monkeypatch.setattr(llm, "_provider_fn", provider)
        monkeypatch.setattr(llm, "_config", CFG)

        reply = await llm.chat_with_tools("user-key", [{"role": "user", "content": "hi"}], [])

        assert reply.text == "ok"
        provider.assert_awaited_once_with("user-key", CFG, [{"role": "user", "content": "hi"}], [], "auto")
