"""
Cross-entity read handlers (get_summary, get_schedule).

Read-only views over several tables at once: counts and money totals
for a period, and what falls due in a date window.
"""

from __future__ import annotations

import calendar
from collections import defaultdict
from datetime import date, timedelta
from typing import TYPE_CHECKING, Literal

from pydantic import Field

from src.core.handlers.base import DateStr, ToolArgs, ToolResult, ok, today

if TYPE_CHECKING:
    from src.ports.store_port import Store


class SummaryArgs(ToolArgs):
    type: Literal["tasks", "projects", "habits", "transactions", "all"] = "all"
    period: Literal["today", "week", "month"] = "month"


class ScheduleArgs(ToolArgs):
    start_date: DateStr | None = None
    days: int = Field(default=7, ge=1, le=31)


def _month_before(day: date) -> date:
    year, month = (day.year, day.month - 1) if day.month > 1 else (day.year - 1, 12)
    return day.replace(year=year, month=month, day=min(day.day, calendar.monthrange(year, month)[1]))


def period_start(period: str, day: date) -> date:
    """First day covered by a summary period ending on `day`."""
    if period == "today":
        return day
    if period == "week":
        return day - timedelta(days=7)
    return _month_before(day)


class SummaryHandler:
    def handle(self, store: Store, user_id: str, args: dict) -> ToolResult:
        params = SummaryArgs.model_validate(args)
        since = period_start(params.period, today()).isoformat()
        wanted = {"tasks", "projects", "habits", "transactions"} if params.type == "all" else {params.type}
        summary: dict = {}

        if "tasks" in wanted:
            tasks = store.select("tasks", user_id, filters={"created_at__gte": since})
            completed = sum(1 for t in tasks if t["status"] == "completed")
            summary["tasks"] = {
                "total": len(tasks),
                "completed": completed,
                "pending": len(tasks) - completed,
            }

        if "projects" in wanted:
            projects = store.select("projects", user_id)
            summary["projects"] = {
                "total": len(projects),
                "in_progress": sum(1 for p in projects if p["status"] == "in-progress"),
                "completed": sum(1 for p in projects if p["status"] == "completed"),
            }

        if "habits" in wanted:
            habits = store.select("habits", user_id)
            completions = store.select(
                "habit_completions", user_id, filters={"completed_date__gte": since},
            )
            summary["habits"] = {
                "total": len(habits),
                "completions_in_period": len(completions),
            }

        if "transactions" in wanted:
            rows = store.select("transactions", user_id, filters={"date__gte": since})
            income = sum(r["amount"] for r in rows if r["type"] == "income")
            expenses = sum(r["amount"] for r in rows if r["type"] == "expense")
            summary["transactions"] = {
                "count": len(rows),
                "income": income,
                "expenses": expenses,
                "net": income - expenses,
            }

        return ok(f"Summary for {params.period} (since {since})", summary)


class ScheduleHandler:
    def handle(self, store: Store, user_id: str, args: dict) -> ToolResult:
        params = ScheduleArgs.model_validate(args)
        start = date.fromisoformat(params.start_date) if params.start_date else today()
        end = start + timedelta(days=params.days - 1)
        window = {"gte": start.isoformat(), "lte": end.isoformat()}

        def due(column: str) -> dict:
            return {f"{column}__gte": window["gte"], f"{column}__lte": window["lte"]}

        items: list[dict] = []
        for task in store.select("tasks", user_id, filters={**due("due_date"), "status__ne": "completed"}):
            items.append({"kind": "task", "id": task["id"], "title": task["title"],
                          "date": task["due_date"], "priority": task["priority"]})
        for project in store.select("projects", user_id, filters=due("due_date")):
            if project["status"] in ("completed", "cancelled"):
                continue
            items.append({"kind": "project", "id": project["id"], "title": project["title"],
                          "date": project["due_date"], "status": project["status"]})
        for course in store.select("courses", user_id, filters={**due("target_date"), "status__ne": "completed"}):
            items.append({"kind": "course", "id": course["id"], "title": course["title"],
                          "date": course["target_date"], "status": course["status"]})

        by_day: dict[str, list[dict]] = defaultdict(list)
        for item in sorted(items, key=lambda i: (i["date"], i["kind"], i["title"])):
            by_day[item["date"]].append(item)

        span = f"{window['gte']} to {window['lte']}"
        if not items:
            return ok(f"Nothing due from {span}", {})
        return ok(f"{len(items)} items due from {span}", dict(by_day))
