"""
LifeOS Assistant — Tool dispatch.

Maps every catalog tool name to exactly one handler and turns whatever a
handler raises into a failed ToolResult, so a bad call never aborts the
conversation.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from pydantic import ValidationError

from src.core.handlers.base import ToolResult, fail
from src.core.handlers.finance import TransactionHandler
from src.core.handlers.focus import FocusSessionHandler
from src.core.handlers.habits import HabitHandler
from src.core.handlers.learning import CourseHandler, LessonHandler
from src.core.handlers.media import BookPodcastHandler, ClientHandler, MovieSeriesHandler
from src.core.handlers.notes import NoteHandler
from src.core.handlers.overview import ScheduleHandler, SummaryHandler
from src.core.handlers.resolvers import ResolverHandler
from src.core.handlers.tasks import ProjectHandler, TaskHandler
from src.ports.store_port import StoreConflictError, StoreError

if TYPE_CHECKING:
    from src.ports.store_port import Store

logger = logging.getLogger(__name__)


class ToolHandler(Protocol):
    def handle(self, store: Store, user_id: str, args: dict) -> ToolResult: ...


HANDLERS: dict[str, ToolHandler] = {
    "manage_tasks": TaskHandler(),
    "manage_projects": ProjectHandler(),
    "manage_notes": NoteHandler(),
    "manage_habits": HabitHandler(),
    "manage_transactions": TransactionHandler(),
    "manage_courses": CourseHandler(),
    "manage_lessons": LessonHandler(),
    "manage_movies_series": MovieSeriesHandler(),
    "manage_books_podcasts": BookPodcastHandler(),
    "manage_clients": ClientHandler(),
    "manage_focus_sessions": FocusSessionHandler(),
    "get_summary": SummaryHandler(),
    "get_schedule": ScheduleHandler(),
    "search_project": ResolverHandler("projects", "project", "manage_projects"),
    "search_course": ResolverHandler("courses", "course", "manage_courses"),
}


def describe_validation_error(exc: ValidationError) -> str:
    """First problem in a pydantic error, phrased for the model."""
    error = exc.errors()[0]
    field = ".".join(str(part) for part in error["loc"]) or "arguments"
    if error["type"] == "missing":
        return f"Missing required field '{field}'"
    return f"Invalid value for '{field}': {error['msg']}"


def execute_tool(store: Store, user_id: str, name: str, args: dict) -> ToolResult:
    """Run one tool call for user_id. Never raises."""
    handler = HANDLERS.get(name)
    if handler is None:
        logger.warning("Unknown tool requested: %s", name)
        return fail(f"Unknown tool: {name}")

    logger.info("Tool call: %s %s", name, args)
    try:
        result = handler.handle(store, user_id, args)
    except ValidationError as exc:
        result = fail(describe_validation_error(exc))
    except StoreConflictError as exc:
        result = fail(f"Conflicting record: {exc}")
    except StoreError as exc:
        logger.error("Store failure in %s: %s", name, exc)
        result = fail(f"Storage error: {exc}")
    except Exception:
        logger.exception("Unexpected error in tool %s", name)
        result = fail(f"Unexpected error while running {name}")

    if not result.success:
        logger.warning("Tool %s failed: %s", name, result.message)
    return result
