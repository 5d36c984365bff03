"""
LifeOS Assistant — LLM Provider Abstraction.

Single public function `chat_with_tools()` that routes to the configured
provider. Provider is selected at startup via the LLM_PROVIDER env var;
the API key is supplied per call because every user brings their own.
Supports: gemini (default), openai, openrouter, anthropic.

Messages use the OpenAI chat shape throughout (system / user / assistant
with tool_calls / tool with tool_call_id); non-OpenAI providers translate
at their edge.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class LLMError(Exception):
    """Raised when the inference endpoint cannot produce a reply."""


class LLMAuthError(LLMError):
    """The API key was rejected (invalid, revoked, or lacking access)."""


class LLMRateLimitError(LLMError):
    """The provider throttled the request."""


class LLMUpstreamError(LLMError):
    """Timeouts, connection failures, server errors, malformed responses."""


# ---------------------------------------------------------------------------
# Reply types
# ---------------------------------------------------------------------------


@dataclass
class ToolCall:
    id: str            # correlation id echoed back on the tool result
    name: str
    arguments: str     # raw JSON text as emitted by the model


@dataclass
class ModelReply:
    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)

    def to_message(self) -> dict:
        """The assistant message to append to history before tool results."""
        message: dict = {"role": "assistant", "content": self.text or None}
        if self.tool_calls:
            message["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.name, "arguments": tc.arguments},
                }
                for tc in self.tool_calls
            ]
        return message


@dataclass
class _ProviderConfig:
    model: str
    base_url: str
    max_tokens: int
    timeout: float


_ProviderFn = Callable[[str, _ProviderConfig, list[dict], list[dict], str], Awaitable[ModelReply]]

# ---------------------------------------------------------------------------
# Provider implementations
# ---------------------------------------------------------------------------


async def _chat_openai_compatible(
    api_key: str, cfg: _ProviderConfig, messages: list[dict], tools: list[dict], tool_choice: str,
) -> ModelReply:
    import openai

    client = openai.AsyncOpenAI(
        api_key=api_key,
        base_url=cfg.base_url or None,
        timeout=cfg.timeout,
        max_retries=0,
    )
    try:
        async with client:
            response = await client.chat.completions.create(
                model=cfg.model,
                max_tokens=cfg.max_tokens,
                messages=messages,
                tools=tools,
                tool_choice=tool_choice,
            )
    except (openai.AuthenticationError, openai.PermissionDeniedError) as exc:
        raise LLMAuthError(str(exc)) from exc
    except openai.RateLimitError as exc:
        raise LLMRateLimitError(str(exc)) from exc
    except openai.BadRequestError as exc:
        # Gemini's OpenAI-compatible endpoint reports bad keys as 400s
        if "API_KEY_INVALID" in str(exc) or "API key not valid" in str(exc):
            raise LLMAuthError(str(exc)) from exc
        raise LLMUpstreamError(str(exc)) from exc
    except (openai.APITimeoutError, openai.APIConnectionError) as exc:
        raise LLMUpstreamError(f"Inference endpoint unreachable: {exc}") from exc
    except openai.APIError as exc:
        raise LLMUpstreamError(str(exc)) from exc

    if not getattr(response, "choices", None):
        raise LLMUpstreamError("No choices in inference response")

    message = response.choices[0].message
    calls = [
        ToolCall(
            id=tc.id,
            name=tc.function.name,
            arguments=tc.function.arguments or "",
        )
        for tc in (message.tool_calls or [])
    ]
    return ModelReply(text=message.content or "", tool_calls=calls)


def _to_anthropic(messages: list[dict]) -> tuple[str, list[dict]]:
    """Translate OpenAI-shaped history into (system, anthropic messages)."""
    system_parts: list[str] = []
    converted: list[dict] = []

    for msg in messages:
        role = msg["role"]
        if role == "system":
            system_parts.append(msg["content"])
        elif role == "tool":
            block = {
                "type": "tool_result",
                "tool_use_id": msg["tool_call_id"],
                "content": msg["content"],
            }
            # Consecutive tool results share one user turn
            if converted and converted[-1]["role"] == "user" and isinstance(converted[-1]["content"], list):
                converted[-1]["content"].append(block)
            else:
                converted.append({"role": "user", "content": [block]})
        elif role == "assistant" and msg.get("tool_calls"):
            blocks: list[dict] = []
            if msg.get("content"):
                blocks.append({"type": "text", "text": msg["content"]})
            for tc in msg["tool_calls"]:
                try:
                    tool_input = json.loads(tc["function"]["arguments"] or "{}")
                except json.JSONDecodeError:
                    tool_input = {}
                blocks.append({
                    "type": "tool_use",
                    "id": tc["id"],
                    "name": tc["function"]["name"],
                    "input": tool_input if isinstance(tool_input, dict) else {},
                })
            converted.append({"role": "assistant", "content": blocks})
        else:
            converted.append({"role": role, "content": msg.get("content") or ""})

    return "\n\n".join(system_parts), converted


async def _chat_anthropic(
    api_key: str, cfg: _ProviderConfig, messages: list[dict], tools: list[dict], tool_choice: str,
) -> ModelReply:
    import anthropic

    system, converted = _to_anthropic(messages)
    client = anthropic.AsyncAnthropic(
        api_key=api_key,
        base_url=cfg.base_url or None,
        timeout=cfg.timeout,
        max_retries=0,
    )
    try:
        async with client:
            response = await client.messages.create(
                model=cfg.model,
                max_tokens=cfg.max_tokens,
                system=system,
                messages=converted,
                tools=[
                    {
                        "name": t["function"]["name"],
                        "description": t["function"]["description"],
                        "input_schema": t["function"]["parameters"],
                    }
                    for t in tools
                ],
                tool_choice={"type": tool_choice},
            )
    except (anthropic.AuthenticationError, anthropic.PermissionDeniedError) as exc:
        raise LLMAuthError(str(exc)) from exc
    except anthropic.RateLimitError as exc:
        raise LLMRateLimitError(str(exc)) from exc
    except (anthropic.APITimeoutError, anthropic.APIConnectionError) as exc:
        raise LLMUpstreamError(f"Inference endpoint unreachable: {exc}") from exc
    except anthropic.APIError as exc:
        raise LLMUpstreamError(str(exc)) from exc

    text_parts: list[str] = []
    calls: list[ToolCall] = []
    for block in response.content:
        if block.type == "text":
            text_parts.append(block.text)
        elif block.type == "tool_use":
            calls.append(ToolCall(id=block.id, name=block.name, arguments=json.dumps(block.input)))
    return ModelReply(text="".join(text_parts), tool_calls=calls)


# ---------------------------------------------------------------------------
# Provider selection (runs once at first call)
# ---------------------------------------------------------------------------

_PROVIDERS: dict[str, tuple[_ProviderFn, str, str]] = {
    "gemini":     (_chat_openai_compatible, "gemini-2.0-flash",
                   "https://generativelanguage.googleapis.com/v1beta/openai/"),
    "openai":     (_chat_openai_compatible, "gpt-4o-mini", ""),
    "openrouter": (_chat_openai_compatible, "deepseek/deepseek-chat",
                   "https://openrouter.ai/api/v1"),
    "anthropic":  (_chat_anthropic,         "claude-haiku-4-5-20251001", ""),
}


def _select_provider() -> tuple[_ProviderFn, _ProviderConfig]:
    """Read settings and return (provider_fn, provider config)."""
    from src.config import settings

    provider_name = settings.LLM_PROVIDER.lower()
    if provider_name not in _PROVIDERS:
        raise ValueError(
            f"Unknown LLM_PROVIDER={provider_name!r}. "
            f"Supported: {', '.join(_PROVIDERS)}"
        )

    fn, default_model, default_base_url = _PROVIDERS[provider_name]
    cfg = _ProviderConfig(
        model=settings.LLM_MODEL or default_model,
        base_url=settings.LLM_BASE_URL or default_base_url,
        max_tokens=settings.LLM_MAX_TOKENS,
        timeout=settings.LLM_TIMEOUT_SECONDS,
    )

    logger.info("LLM provider: %s, model: %s", provider_name, cfg.model)
    return fn, cfg


# Lazy singleton — populated on first call to chat_with_tools()
_provider_fn: _ProviderFn | None = None
_config: _ProviderConfig | None = None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def chat_with_tools(
    api_key: str,
    messages: list[dict],
    tools: list[dict],
    tool_choice: str = "auto",
) -> ModelReply:
    """Send the conversation plus tool catalog and return the model's reply.

    Raises LLMAuthError / LLMRateLimitError / LLMUpstreamError; callers
    decide how each surfaces to the user.
    """
    global _provider_fn, _config

    if _provider_fn is None or _config is None:
        _provider_fn, _config = _select_provider()

    return await _provider_fn(api_key, _config, messages, tools, tool_choice)
