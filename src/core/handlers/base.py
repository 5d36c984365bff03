"""
LifeOS Assistant — Entity handler base.

Every tool the model can call lands on a handler with the same contract:
``handle(store, user_id, args) -> ToolResult``. Arguments arrive as loose
JSON and are validated by a per-tool pydantic model before anything
touches the store. Problems the model can react to (missing fields,
unknown ids) come back as ``ToolResult(success=False)``; they are never
raised to the orchestration loop.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Annotated, Any, ClassVar
from zoneinfo import ZoneInfo

from pydantic import AfterValidator, BaseModel, ConfigDict

if TYPE_CHECKING:
    from src.ports.store_port import Store

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------


@dataclass
class ToolResult:
    success: bool
    message: str
    data: Any = None

    def to_dict(self) -> dict:
        """JSON-ready payload replayed to the model as the tool message."""
        payload: dict = {"success": self.success, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        return payload


def ok(message: str, data: Any = None) -> ToolResult:
    return ToolResult(success=True, message=message, data=data)


def fail(message: str) -> ToolResult:
    return ToolResult(success=False, message=message)


# ---------------------------------------------------------------------------
# Clock helpers (patched in tests)
# ---------------------------------------------------------------------------


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def today() -> date:
    """The user's calendar date, per the configured TIMEZONE."""
    from src.config import settings

    return datetime.now(ZoneInfo(settings.TIMEZONE)).date()


# ---------------------------------------------------------------------------
# Argument models
# ---------------------------------------------------------------------------


def _check_date(value: str) -> str:
    try:
        date.fromisoformat(value)
    except ValueError:
        raise ValueError("expected a date in YYYY-MM-DD format") from None
    return value


DateStr = Annotated[str, AfterValidator(_check_date)]


class ToolArgs(BaseModel):
    """Base for every tool's arguments. Unknown keys are dropped."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


# ---------------------------------------------------------------------------
# Generic CRUD handler
# ---------------------------------------------------------------------------


class EntityHandler:
    """Create / update / delete / list over one user-scoped table.

    Subclasses declare the table and labels, and add entity actions as
    ``_<action>`` methods; ``handle`` dispatches on ``args.action``.
    """

    table: ClassVar[str]
    entity: ClassVar[str]                 # "Task", used in messages
    plural: ClassVar[str]                 # "tasks"
    id_field: ClassVar[str]               # "task_id"
    args_model: ClassVar[type[ToolArgs]]
    name_field: ClassVar[str | None] = "title"
    required: ClassVar[tuple[str, ...]] = ()
    defaults: ClassVar[dict[str, Any]] = {}
    # arg field -> (table, label) it must resolve to for this user
    references: ClassVar[dict[str, tuple[str, str]]] = {}
    list_filters: ClassVar[tuple[str, ...]] = ()
    list_order: ClassVar[list[str]] = ["-created_at"]
    list_limit: ClassVar[int | None] = None
    announce_id: ClassVar[bool] = False

    def handle(self, store: Store, user_id: str, args: dict) -> ToolResult:
        params = self.args_model.model_validate(args)
        method = getattr(self, f"_{params.action}", None)
        if method is None:
            return fail(f"Unknown action: {params.action}")
        return method(store, user_id, params)

    # -- hooks ---------------------------------------------------------------

    def _missing_message(self) -> str:
        field = (self.required or (self.name_field,))[0]
        return f"{field.replace('_', ' ').capitalize()} is required to create a {self.entity.lower()}"

    def _created_message(self, row: dict) -> str:
        message = f'Created {self.entity.lower()}: "{row[self.name_field]}"'
        if self.announce_id:
            message += f" (id: {row['id']})"
        return message

    def _updated_message(self, row: dict) -> str:
        return f'Updated {self.entity.lower()}: "{row[self.name_field]}"'

    def _list_message(self, rows: list[dict]) -> str:
        return f"Found {len(rows)} {self.plural}"

    def _prepare_insert(self, store: Store, user_id: str, values: dict) -> dict:
        return values

    def _prepare_patch(self, patch: dict) -> dict:
        return patch

    def _before_delete(self, store: Store, user_id: str, row: dict) -> None:
        pass

    # -- shared steps --------------------------------------------------------

    def _supplied(self, params: ToolArgs) -> dict:
        return params.model_dump(exclude={"action", self.id_field}, exclude_none=True)

    def _fields(self, params: ToolArgs) -> dict:
        """Explicitly supplied, non-null entity columns; blank references count as absent."""
        return {
            field: value
            for field, value in self._supplied(params).items()
            if not (field in self.references and value == "")
        }

    def _check_references(self, store: Store, user_id: str, values: dict) -> ToolResult | None:
        for field, (table, label) in self.references.items():
            ref_id = values.get(field)
            if ref_id and store.get(table, user_id, ref_id) is None:
                return fail(f"{label} not found: {ref_id}")
        return None

    def _row_id(self, params: ToolArgs) -> str | None:
        return getattr(params, self.id_field, None)

    # -- actions -------------------------------------------------------------

    def _create(self, store: Store, user_id: str, params: ToolArgs) -> ToolResult:
        values = self._fields(params)
        required = self.required or (self.name_field,)
        if any(values.get(field) in (None, "") for field in required):
            return fail(self._missing_message())

        problem = self._check_references(store, user_id, values)
        if problem:
            return problem

        values = self._prepare_insert(store, user_id, {**self.defaults, **values})
        row = store.insert(self.table, user_id, values)
        logger.info("%s created: %s", self.entity, row["id"])
        return ok(self._created_message(row), row)

    def _update(self, store: Store, user_id: str, params: ToolArgs) -> ToolResult:
        row_id = self._row_id(params)
        if not row_id:
            return fail(f"{self.entity} ID is required to update")

        supplied = self._supplied(params)
        for field in (self.name_field, *self.required):
            if field and supplied.get(field) == "":
                return fail(f"{field.replace('_', ' ').capitalize()} cannot be empty")
        patch = self._fields(params)
        if not patch:
            return fail("No fields to update")

        problem = self._check_references(store, user_id, patch)
        if problem:
            return problem

        row = store.update(self.table, user_id, row_id, self._prepare_patch(patch))
        if row is None:
            return fail(f"{self.entity} not found")
        logger.info("%s updated: %s (%s)", self.entity, row_id, ", ".join(patch))
        return ok(self._updated_message(row), row)

    def _delete(self, store: Store, user_id: str, params: ToolArgs) -> ToolResult:
        row_id = self._row_id(params)
        if not row_id:
            return fail(f"{self.entity} ID is required to delete")

        row = store.get(self.table, user_id, row_id)
        if row is None:
            return fail(f"{self.entity} not found")

        self._before_delete(store, user_id, row)
        store.delete(self.table, user_id, row_id)
        logger.info("%s deleted: %s", self.entity, row_id)
        return ok(f"{self.entity} deleted successfully")

    def _list(self, store: Store, user_id: str, params: ToolArgs) -> ToolResult:
        filters = {
            field: getattr(params, field)
            for field in self.list_filters
            if getattr(params, field, None) is not None
        }
        rows = store.select(
            self.table, user_id,
            filters=filters, order_by=self.list_order, limit=self.list_limit,
        )
        return ok(self._list_message(rows), rows)
