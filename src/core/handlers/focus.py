"""
Focus session handler (manage_focus_sessions).

At most one session per user may be running (end_time null). The handler
checks first so it can answer with a clear message; the store's partial
unique index rejects whatever slips past a concurrent start.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Literal

from src.core.handlers.base import ToolArgs, ToolResult, fail, ok, utcnow
from src.ports.store_port import StoreConflictError

if TYPE_CHECKING:
    from src.ports.store_port import Store

logger = logging.getLogger(__name__)

_TABLE = "focus_sessions"
_ALREADY_ACTIVE = "A focus session is already active"


class FocusArgs(ToolArgs):
    action: Literal["start", "stop", "current", "list"]
    task_id: str | None = None
    session_type: Literal["focus", "break"] | None = None


def _active_session(store: Store, user_id: str) -> dict | None:
    rows = store.select(_TABLE, user_id, filters={"end_time__isnull": True}, limit=1)
    return rows[0] if rows else None


def _minutes(seconds: int) -> str:
    return f"{seconds // 60} min {seconds % 60} s" if seconds % 60 else f"{seconds // 60} min"


class FocusSessionHandler:
    """Start, stop, and inspect focus/break timers."""

    args_model = FocusArgs

    def handle(self, store: Store, user_id: str, args: dict) -> ToolResult:
        params = self.args_model.model_validate(args)
        return getattr(self, f"_{params.action}")(store, user_id, params)

    def _start(self, store: Store, user_id: str, params: FocusArgs) -> ToolResult:
        if _active_session(store, user_id) is not None:
            return fail(_ALREADY_ACTIVE)

        if params.task_id and store.get("tasks", user_id, params.task_id) is None:
            return fail(f"Task not found: {params.task_id}")

        values = {
            "task_id": params.task_id or None,
            "session_type": params.session_type or "focus",
            "start_time": utcnow().isoformat(),
        }
        try:
            row = store.insert(_TABLE, user_id, values)
        except StoreConflictError:
            logger.warning("Concurrent focus start rejected for user %s", user_id)
            return fail(_ALREADY_ACTIVE)

        logger.info("Focus session started: %s (%s)", row["id"], row["session_type"])
        return ok(f"Started {row['session_type']} session", row)

    def _stop(self, store: Store, user_id: str, params: FocusArgs) -> ToolResult:
        active = _active_session(store, user_id)
        if active is None:
            return fail("No active session")

        end = utcnow()
        duration = max(0, int((end - datetime.fromisoformat(active["start_time"])).total_seconds()))
        row = store.update(
            _TABLE, user_id, active["id"],
            {"end_time": end.isoformat(), "duration": duration, "completed": True},
        )
        if row is None:
            return fail("No active session")

        logger.info("Focus session stopped: %s after %ds", row["id"], duration)
        return ok(f"Stopped {row['session_type']} session after {_minutes(duration)}", row)

    def _current(self, store: Store, user_id: str, params: FocusArgs) -> ToolResult:
        active = _active_session(store, user_id)
        if active is None:
            return ok("No active session")
        elapsed = int((utcnow() - datetime.fromisoformat(active["start_time"])).total_seconds())
        return ok(
            f"{active['session_type'].capitalize()} session running for {_minutes(max(0, elapsed))}",
            active,
        )

    def _list(self, store: Store, user_id: str, params: FocusArgs) -> ToolResult:
        filters = {"session_type": params.session_type} if params.session_type else None
        rows = store.select(_TABLE, user_id, filters=filters, order_by=["-start_time"], limit=20)
        return ok(f"Found {len(rows)} sessions", rows)
