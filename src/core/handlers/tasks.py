"""Task and project handlers (manage_tasks, manage_projects)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

from pydantic import Field

from src.core.handlers.base import (
    DateStr,
    EntityHandler,
    ToolArgs,
    ToolResult,
    fail,
    ok,
    utcnow,
)

if TYPE_CHECKING:
    from src.ports.store_port import Store

logger = logging.getLogger(__name__)

Priority = Literal["low", "medium", "high"]


class TaskArgs(ToolArgs):
    action: Literal["create", "update", "delete", "list", "complete"]
    task_id: str | None = None
    title: str | None = None
    description: str | None = None
    status: Literal["todo", "in-progress", "completed"] | None = None
    priority: Priority | None = None
    due_date: DateStr | None = None
    project_id: str | None = None
    parent_task_id: str | None = None
    estimated_time: float | None = Field(default=None, ge=0)


class ProjectArgs(ToolArgs):
    action: Literal["create", "update", "delete", "list"]
    project_id: str | None = None
    title: str | None = None
    description: str | None = None
    status: Literal["new", "in-progress", "completed", "on-hold", "cancelled"] | None = None
    priority: Priority | None = None
    due_date: DateStr | None = None
    budget: float | None = Field(default=None, ge=0)
    category: str | None = None


class TaskHandler(EntityHandler):
    table = "tasks"
    entity = "Task"
    plural = "tasks"
    id_field = "task_id"
    args_model = TaskArgs
    defaults = {"status": "todo", "priority": "medium"}
    references = {
        "project_id": ("projects", "Project"),
        "parent_task_id": ("tasks", "Parent task"),
    }
    list_filters = ("status", "priority", "project_id")
    list_limit = 20

    def _prepare_insert(self, store: Store, user_id: str, values: dict) -> dict:
        if values.get("status") == "completed":
            values["completed_at"] = utcnow().isoformat()
        return values

    def _prepare_patch(self, patch: dict) -> dict:
        if "status" in patch:
            patch["completed_at"] = utcnow().isoformat() if patch["status"] == "completed" else None
        return patch

    def _complete(self, store: Store, user_id: str, params: TaskArgs) -> ToolResult:
        if not params.task_id:
            return fail("Task ID is required to complete")

        row = store.update(
            self.table, user_id, params.task_id,
            {"status": "completed", "completed_at": utcnow().isoformat()},
        )
        if row is None:
            return fail("Task not found")
        logger.info("Task completed: %s", params.task_id)
        return ok(f'Completed task: "{row["title"]}"', row)


class ProjectHandler(EntityHandler):
    table = "projects"
    entity = "Project"
    plural = "projects"
    id_field = "project_id"
    args_model = ProjectArgs
    defaults = {"status": "new", "priority": "medium", "category": "General"}
    list_filters = ("status", "priority", "category")
    list_limit = 20
    announce_id = True

