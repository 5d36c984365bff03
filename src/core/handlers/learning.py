"""
Course and lesson handlers (manage_courses, manage_lessons).

A lesson always belongs to a course the same user owns: the course id is
checked before any insert, and deleting a course removes its lessons first.
"""

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


class CourseArgs(ToolArgs):
    action: Literal["create", "update", "delete", "list"]
    course_id: str | None = None
    title: str | None = None
    platform: str | None = None
    instructor: str | None = None
    status: Literal["not-started", "in-progress", "completed"] | None = None
    notes: str | None = None
    target_date: DateStr | None = None


class LessonArgs(ToolArgs):
    action: Literal["create", "update", "delete", "list", "complete"]
    lesson_id: str | None = None
    course_id: str | None = None
    title: str | None = None
    description: str | None = None
    duration_minutes: float | None = Field(default=None, ge=0)
    section: str | None = None
    is_completed: bool | None = None


class CourseHandler(EntityHandler):
    table = "courses"
    entity = "Course"
    plural = "courses"
    id_field = "course_id"
    args_model = CourseArgs
    defaults = {"status": "not-started"}
    list_filters = ("status", "platform")
    announce_id = True

    def _before_delete(self, store: Store, user_id: str, row: dict) -> None:
        removed = store.delete_where("lessons", user_id, {"course_id": row["id"]})
        logger.info("Deleted %d lessons of course %s", removed, row["id"])


class LessonHandler(EntityHandler):
    table = "lessons"
    entity = "Lesson"
    plural = "lessons"
    id_field = "lesson_id"
    args_model = LessonArgs
    required = ("title", "course_id")
    defaults = {"duration_minutes": 0, "is_completed": False}
    references = {"course_id": ("courses", "Course")}
    list_order = ["sort_order"]

    def _missing_message(self) -> str:
        return "Title and course ID are required to create a lesson"

    def _prepare_insert(self, store: Store, user_id: str, values: dict) -> dict:
        last = store.select(
            self.table, user_id,
            filters={"course_id": values["course_id"]}, order_by=["-sort_order"], limit=1,
        )
        values["sort_order"] = last[0]["sort_order"] + 1 if last else 0
        if values.get("is_completed"):
            values["completed_at"] = utcnow().isoformat()
        return values

    def _prepare_patch(self, patch: dict) -> dict:
        if "is_completed" in patch:
            patch["completed_at"] = utcnow().isoformat() if patch["is_completed"] else None
        return patch

    def _created_message(self, row: dict) -> str:
        return f'Created lesson: "{row["title"]}" in course {row["course_id"]}'

    def _list(self, store: Store, user_id: str, params: LessonArgs) -> ToolResult:
        if not params.course_id:
            return fail("Course ID is required to list lessons")
        rows = store.select(
            self.table, user_id,
            filters={"course_id": params.course_id}, order_by=self.list_order,
        )
        return ok(self._list_message(rows), rows)

    def _complete(self, store: Store, user_id: str, params: LessonArgs) -> ToolResult:
        if not params.lesson_id:
            return fail("Lesson ID is required to complete")

        row = store.update(
            self.table, user_id, params.lesson_id,
            {"is_completed": True, "completed_at": utcnow().isoformat()},
        )
        if row is None:
            return fail("Lesson not found")
        logger.info("Lesson completed: %s", params.lesson_id)
        return ok(f'Completed lesson: "{row["title"]}" 🎉', row)
