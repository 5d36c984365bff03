"""
LifeOS Assistant — Orchestration Loop.

Drives one user message to completion: build the prompt, ask the model,
run whatever tools it requests against the user's data, replay the
results, and repeat until the model answers in plain text or the
iteration ceiling is hit.

Transports (HTTP, Telegram) call `Assistant.handle_user_message` and
render either the AssistantReply or the AssistantError it raises.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import defaultdict
from typing import TYPE_CHECKING

from src.core import llm
from src.core.assembler import ActionLogEntry, AssistantReply, assemble_reply
from src.core.catalog import TOOL_CHOICE, TOOLS
from src.core.handlers.base import today
from src.core.handlers.dispatch import execute_tool

if TYPE_CHECKING:
    from src.data.db import ProfileDB
    from src.ports.store_port import Store

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors surfaced to the user (turn aborted)
# ---------------------------------------------------------------------------


class AssistantError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class MissingCredentialError(AssistantError):
    status_code = 400


class InvalidCredentialError(AssistantError):
    status_code = 401


class RateLimitedError(AssistantError):
    status_code = 429


class UpstreamFailureError(AssistantError):
    status_code = 502


MISSING_KEY_MESSAGE = "Please add your LLM API key in Settings → AI Integration."
INVALID_KEY_MESSAGE = "Invalid LLM API key. Please check your key in Settings."
RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again in a moment."


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

_SYSTEM_PROMPT = """\
You are an AI assistant for LifeOS, a personal life management application.
Today is {today}.

Tools and what they manage:
- manage_tasks: tasks (create, update, delete, complete, list)
- manage_projects: projects (create, update, delete, list)
- manage_notes: notes (create, update, delete, list)
- manage_habits: habits (create, update, delete, list, toggle_today)
- manage_transactions: income and expenses
- manage_courses / manage_lessons: learning courses and their lessons
- manage_movies_series: movies and series watchlist
- manage_books_podcasts: books and podcasts
- manage_clients: clients
- manage_focus_sessions: focus and break timers
- get_summary / get_schedule: overviews and what is due
- search_project / search_course: find the id of a project or course by name

Rules:
1. Finish multi-step requests in this same turn. When asked to create a course
   with lessons, create the course, take the id from its result, then create
   every lesson with that course_id before answering. Do not ask the user to
   continue.
2. Never invent ids. Before linking a task or transaction to a project, or a
   lesson to a course, the user named, call search_project or search_course
   (or use the id returned by a create in this turn). If nothing is found, say
   so instead of creating a record with a guessed reference. If several
   match, ask the user which one they mean.
3. Dates use YYYY-MM-DD; resolve words like "tomorrow" against today's date.
4. Be concise and confirm what you did. When listing items, summarize them.
5. Answer in the same language as the user's message.
"""


def build_system_prompt() -> str:
    return _SYSTEM_PROMPT.format(today=today().isoformat())


def valid_history(history: list | None, limit: int) -> list[dict]:
    """The last `limit` well-formed user/assistant turns, in order."""
    turns = [
        {"role": h["role"], "content": h["content"]}
        for h in history or []
        if isinstance(h, dict)
        and h.get("role") in ("user", "assistant")
        and isinstance(h.get("content"), str)
        and h["content"].strip()
    ]
    return turns[-limit:] if limit > 0 else []


def parse_arguments(raw: str | None) -> dict:
    """Tool-call arguments as a dict; malformed JSON becomes {}."""
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Malformed tool arguments, treating as empty: %.200s", raw)
        return {}
    return parsed if isinstance(parsed, dict) else {}


# ---------------------------------------------------------------------------
# Loop
# ---------------------------------------------------------------------------


class Assistant:
    """Runs the tool-calling loop for one message at a time per user."""

    def __init__(
        self,
        store: Store,
        profiles: ProfileDB,
        max_iterations: int | None = None,
        max_history: int | None = None,
        timeout: float | None = None,
    ) -> None:
        from src.config import settings

        self._store = store
        self._profiles = profiles
        self._max_iterations = max_iterations or settings.MAX_TOOL_ITERATIONS
        self._max_history = settings.MAX_HISTORY_MESSAGES if max_history is None else max_history
        self._timeout = timeout or settings.LLM_TIMEOUT_SECONDS
        # A second message from the same user waits for the first
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        # Messages per user holding or waiting on its lock
        self._in_flight: defaultdict[str, int] = defaultdict(int)

    async def handle_user_message(
        self, user_id: str, message: str, history: list | None = None,
    ) -> AssistantReply:
        lock = self._locks[user_id]
        self._in_flight[user_id] += 1
        try:
            if lock.locked():
                logger.info("User %s has a message in flight; queuing", user_id)
            async with lock:
                return await self._run(user_id, message, history)
        finally:
            self._in_flight[user_id] -= 1
            if not self._in_flight[user_id]:
                del self._in_flight[user_id]
                del self._locks[user_id]

    async def _call_model(self, api_key: str, messages: list[dict]) -> llm.ModelReply:
        try:
            return await asyncio.wait_for(
                llm.chat_with_tools(api_key, messages, TOOLS, tool_choice=TOOL_CHOICE),
                timeout=self._timeout,
            )
        except llm.LLMAuthError as exc:
            logger.error("Inference credential rejected: %s", exc)
            raise InvalidCredentialError(INVALID_KEY_MESSAGE) from exc
        except llm.LLMRateLimitError as exc:
            logger.error("Inference rate limited: %s", exc)
            raise RateLimitedError(RATE_LIMIT_MESSAGE) from exc
        except llm.LLMUpstreamError as exc:
            logger.error("Inference endpoint failed: %s", exc)
            raise UpstreamFailureError(f"AI service error: {exc}") from exc
        except asyncio.TimeoutError as exc:
            logger.error("Inference call exceeded %.0fs", self._timeout)
            raise UpstreamFailureError("AI service error: the request timed out") from exc

    async def _run(self, user_id: str, message: str, history: list | None) -> AssistantReply:
        profile = self._profiles.get_profile(user_id)
        if profile is None or not profile.has_llm_key:
            raise MissingCredentialError(MISSING_KEY_MESSAGE)

        messages: list[dict] = [{"role": "system", "content": build_system_prompt()}]
        messages.extend(valid_history(history, self._max_history))
        messages.append({"role": "user", "content": message})

        actions: list[ActionLogEntry] = []
        final_text = ""

        for iteration in range(1, self._max_iterations + 1):
            reply = await self._call_model(profile.llm_api_key, messages)

            if not reply.tool_calls:
                final_text = reply.text
                break

            logger.info(
                "Iteration %d: %d tool call(s): %s",
                iteration, len(reply.tool_calls), [c.name for c in reply.tool_calls],
            )
            messages.append(reply.to_message())

            # Sequential: a later call may use an id returned by an earlier one
            for call in reply.tool_calls:
                args = parse_arguments(call.arguments)
                result = execute_tool(self._store, user_id, call.name, args)
                actions.append(ActionLogEntry(
                    tool=call.name,
                    arguments=args,
                    success=result.success,
                    message=result.message,
                    data=result.data,
                ))
                messages.append({
                    "role": "tool",
                    "tool_call_id": call.id,
                    "content": json.dumps(result.to_dict(), ensure_ascii=False, default=str),
                })
        else:
            logger.warning(
                "Iteration ceiling (%d) reached for user %s with %d action(s)",
                self._max_iterations, user_id, len(actions),
            )

        return assemble_reply(final_text, actions)
