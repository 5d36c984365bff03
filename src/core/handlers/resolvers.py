"""
Name → id resolvers (search_project, search_course).

Used by the model before it links a task, transaction, or lesson to a
parent the user named. A resolver never picks among several candidates:
it returns them all, exact title matches first, and leaves the choice to
the model or the user.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field

from src.core.handlers.base import ToolArgs, ToolResult, fail, ok

if TYPE_CHECKING:
    from src.ports.store_port import Store

MAX_CANDIDATES = 5


class SearchArgs(ToolArgs):
    query: str = Field(min_length=1)


class ResolverHandler:
    def __init__(self, table: str, entity: str, list_tool: str) -> None:
        self.table = table
        self.entity = entity              # "project"
        self.list_tool = list_tool        # "manage_projects"

    def handle(self, store: Store, user_id: str, args: dict) -> ToolResult:
        query = SearchArgs.model_validate(args).query
        rows = store.select(
            self.table, user_id,
            filters={"title__ilike": query}, order_by=["-created_at"],
        )

        if not rows:
            return fail(
                f'No {self.entity} found matching "{query}". '
                f'Use {self.list_tool} with action "list" to see all {self.entity}s.'
            )

        if len(rows) == 1:
            row = rows[0]
            return ok(f'Found {self.entity}: "{row["title"]}" (id: {row["id"]})', row)

        # Stable sort keeps newest-first within each group; cap after sorting
        exact = query.casefold()
        rows.sort(key=lambda r: r["title"].casefold() != exact)
        rows = rows[:MAX_CANDIDATES]
        listing = "; ".join(f'"{r["title"]}" (id: {r["id"]})' for r in rows)
        message = f'Found {len(rows)} {self.entity}s matching "{query}": {listing}.'
        if rows[0]["title"].casefold() == exact:
            message += f' "{rows[0]["title"]}" matches the name exactly.'
        message += f" Confirm which {self.entity} is meant before using its id."
        return ok(message, rows)
