"""Store port — abstract interface for the user-scoped data store.

Core modules depend on this protocol, never on a specific database.
Every call takes the owning user id; implementations must filter and
write within that scope regardless of the identifiers supplied.

Filter keys are either a bare column name (equality) or
``column__op`` where op is one of: eq, ne, gte, lte, ilike, isnull.
Order keys are column names, prefixed with ``-`` for descending.
"""

from __future__ import annotations

from typing import Any, Protocol


class StoreError(Exception):
    """Raised when any store operation fails."""


class StoreConflictError(StoreError):
    """Raised when a write violates a uniqueness constraint."""


class Store(Protocol):
    """Abstract CRUD interface used by the entity handlers."""

    def select(
        self,
        table: str,
        user_id: str,
        *,
        filters: dict[str, Any] | None = None,
        order_by: list[str] | None = None,
        limit: int | None = None,
    ) -> list[dict]: ...

    def get(self, table: str, user_id: str, row_id: str) -> dict | None: ...

    def insert(self, table: str, user_id: str, values: dict[str, Any]) -> dict: ...

    def update(
        self, table: str, user_id: str, row_id: str, patch: dict[str, Any]
    ) -> dict | None: ...

    def delete(self, table: str, user_id: str, row_id: str) -> bool: ...

    def delete_where(
        self, table: str, user_id: str, filters: dict[str, Any]
    ) -> int: ...
