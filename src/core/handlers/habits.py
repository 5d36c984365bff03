"""Habit handler (manage_habits), including today's completion toggle."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

from src.core.handlers.base import EntityHandler, ToolArgs, ToolResult, fail, ok, today

if TYPE_CHECKING:
    from src.ports.store_port import Store

logger = logging.getLogger(__name__)


class HabitArgs(ToolArgs):
    action: Literal["create", "update", "delete", "list", "toggle_today"]
    habit_id: str | None = None
    name: str | None = None
    description: str | None = None
    frequency: Literal["daily", "weekly", "monthly"] | None = None
    color: str | None = None
    icon: str | None = None


class HabitHandler(EntityHandler):
    table = "habits"
    entity = "Habit"
    plural = "habits"
    id_field = "habit_id"
    args_model = HabitArgs
    name_field = "name"
    defaults = {"frequency": "daily", "color": "#0EA5E9", "icon": "⭐"}
    list_filters = ("frequency",)

    def _before_delete(self, store: Store, user_id: str, row: dict) -> None:
        removed = store.delete_where("habit_completions", user_id, {"habit_id": row["id"]})
        logger.debug("Removed %d completions of habit %s", removed, row["id"])

    def _list(self, store: Store, user_id: str, params: HabitArgs) -> ToolResult:
        result = super()._list(store, user_id, params)
        done = {
            c["habit_id"]
            for c in store.select(
                "habit_completions", user_id,
                filters={"completed_date": today().isoformat()},
            )
        }
        for habit in result.data:
            habit["completed_today"] = habit["id"] in done
        return result

    def _toggle_today(self, store: Store, user_id: str, params: HabitArgs) -> ToolResult:
        if not params.habit_id:
            return fail("Habit ID is required to toggle")

        habit = store.get(self.table, user_id, params.habit_id)
        if habit is None:
            return fail("Habit not found")

        key = {"habit_id": habit["id"], "completed_date": today().isoformat()}
        if store.delete_where("habit_completions", user_id, key):
            logger.info("Habit %s unmarked for %s", habit["id"], key["completed_date"])
            return ok("Habit marked as incomplete for today", {"habit_id": habit["id"], "completed": False})

        store.insert("habit_completions", user_id, key)
        logger.info("Habit %s marked done for %s", habit["id"], key["completed_date"])
        return ok(
            f'Habit "{habit["name"]}" marked as complete for today! 🎉',
            {"habit_id": habit["id"], "completed": True},
        )
