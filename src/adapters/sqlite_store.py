"""SQLite store adapter — implements the Store port.

One table per entity family, every row owned by a user_id. Identifiers
are UUID4 strings and timestamps are ISO-8601 UTC, mirroring what a hosted
backend-as-a-service would hand back.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from src.ports.store_port import StoreConflictError, StoreError

logger = logging.getLogger(__name__)

_COMMON = """
    id          TEXT PRIMARY KEY,
    user_id     TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
"""

_TABLES: dict[str, str] = {
    "tasks": """
        title           TEXT NOT NULL,
        description     TEXT NOT NULL DEFAULT '',
        status          TEXT NOT NULL DEFAULT 'todo',
        priority        TEXT NOT NULL DEFAULT 'medium',
        due_date        TEXT,
        project_id      TEXT,
        parent_task_id  TEXT,
        estimated_time  REAL,
        completed_at    TEXT
    """,
    "projects": """
        title        TEXT NOT NULL,
        description  TEXT NOT NULL DEFAULT '',
        status       TEXT NOT NULL DEFAULT 'new',
        priority     TEXT NOT NULL DEFAULT 'medium',
        due_date     TEXT,
        budget       REAL,
        category     TEXT NOT NULL DEFAULT 'General'
    """,
    "notes": """
        title      TEXT NOT NULL,
        content    TEXT NOT NULL DEFAULT '',
        folder     TEXT NOT NULL DEFAULT 'General',
        is_pinned  INTEGER NOT NULL DEFAULT 0
    """,
    "habits": """
        name         TEXT NOT NULL,
        description  TEXT NOT NULL DEFAULT '',
        frequency    TEXT NOT NULL DEFAULT 'daily',
        color        TEXT,
        icon         TEXT
    """,
    "habit_completions": """
        habit_id        TEXT NOT NULL,
        completed_date  TEXT NOT NULL
    """,
    "transactions": """
        type         TEXT NOT NULL,
        amount       REAL NOT NULL,
        category     TEXT NOT NULL,
        description  TEXT NOT NULL DEFAULT '',
        date         TEXT NOT NULL,
        currency     TEXT NOT NULL DEFAULT 'USD',
        project_id   TEXT
    """,
    "courses": """
        title        TEXT NOT NULL,
        platform     TEXT,
        instructor   TEXT,
        status       TEXT NOT NULL DEFAULT 'not-started',
        notes        TEXT NOT NULL DEFAULT '',
        target_date  TEXT
    """,
    "lessons": """
        course_id         TEXT NOT NULL,
        title             TEXT NOT NULL,
        description       TEXT,
        duration_minutes  REAL NOT NULL DEFAULT 0,
        section           TEXT,
        sort_order        INTEGER NOT NULL DEFAULT 0,
        is_completed      INTEGER NOT NULL DEFAULT 0,
        completed_at      TEXT
    """,
    "movies_series": """
        name         TEXT NOT NULL,
        type         TEXT NOT NULL DEFAULT 'movie',
        status       TEXT NOT NULL DEFAULT 'to-watch',
        description  TEXT NOT NULL DEFAULT ''
    """,
    "books_podcasts": """
        name    TEXT NOT NULL,
        type    TEXT NOT NULL DEFAULT 'book',
        status  TEXT NOT NULL DEFAULT 'to-consume',
        url     TEXT
    """,
    "clients": """
        name     TEXT NOT NULL,
        email    TEXT,
        phone    TEXT,
        company  TEXT,
        status   TEXT NOT NULL DEFAULT 'lead',
        notes    TEXT NOT NULL DEFAULT ''
    """,
    "focus_sessions": """
        task_id       TEXT,
        session_type  TEXT NOT NULL DEFAULT 'focus',
        start_time    TEXT NOT NULL,
        end_time      TEXT,
        duration      INTEGER,
        completed     INTEGER NOT NULL DEFAULT 0
    """,
}

_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_lessons_course ON lessons (user_id, course_id)",
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_habit_completion_day "
    "ON habit_completions (habit_id, completed_date)",
    # At most one running focus session per user
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_focus_one_active "
    "ON focus_sessions (user_id) WHERE end_time IS NULL",
]

_BOOL_COLUMNS = {"is_pinned", "is_completed", "completed"}

_OPERATORS = {
    "eq": "{col} = ?",
    "ne": "{col} != ?",
    "gte": "{col} >= ?",
    "lte": "{col} <= ?",
    "ilike": "LOWER({col}) LIKE LOWER(?) ESCAPE '\\'",
}


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _escape_like(value: str) -> str:
    """Make LIKE wildcards in user text match literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SQLiteStore:
    """SQLite-backed, user-scoped storage for every LifeOS entity."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._columns: dict[str, set[str]] = {}
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create every entity table if it doesn't exist."""
        with self._connect() as conn:
            for table, body in _TABLES.items():
                conn.execute(f"CREATE TABLE IF NOT EXISTS {table} ({_COMMON}, {body})")
                self._columns[table] = {
                    row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()
                }
            for statement in _INDEXES:
                conn.execute(statement)
        logger.debug("Store initialized at %s (%d tables)", self._db_path, len(_TABLES))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_table(self, table: str) -> set[str]:
        columns = self._columns.get(table)
        if columns is None:
            raise StoreError(f"Unknown table: {table}")
        return columns

    @staticmethod
    def _check_column(table: str, column: str, columns: set[str]) -> None:
        if column not in columns:
            raise StoreError(f"Unknown column {column!r} on {table}")

    @staticmethod
    def _row_to_dict(row: sqlite3.Row) -> dict:
        data = dict(row)
        for key in _BOOL_COLUMNS.intersection(data):
            data[key] = bool(data[key])
        return data

    @staticmethod
    def _to_sql_value(value: Any) -> Any:
        if isinstance(value, bool):
            return int(value)
        return value

    def _where(
        self, table: str, user_id: str, filters: dict[str, Any] | None,
    ) -> tuple[str, list]:
        columns = self._check_table(table)
        conditions = ["user_id = ?"]
        params: list = [user_id]
        for key, value in (filters or {}).items():
            column, _, op = key.partition("__")
            op = op or "eq"
            self._check_column(table, column, columns)
            if op == "isnull":
                conditions.append(f"{column} IS NULL" if value else f"{column} IS NOT NULL")
                continue
            if op == "eq" and value is None:
                conditions.append(f"{column} IS NULL")
                continue
            template = _OPERATORS.get(op)
            if template is None:
                raise StoreError(f"Unknown filter operator: {op}")
            if op == "ilike":
                value = f"%{_escape_like(str(value))}%"
            conditions.append(template.format(col=column))
            params.append(self._to_sql_value(value))
        return " AND ".join(conditions), params

    # ------------------------------------------------------------------
    # Store port
    # ------------------------------------------------------------------

    def select(
        self,
        table: str,
        user_id: str,
        *,
        filters: dict[str, Any] | None = None,
        order_by: list[str] | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        """Return the caller's rows matching filters, ordered and capped."""
        where, params = self._where(table, user_id, filters)
        columns = self._columns[table]

        order_terms: list[str] = []
        newest_first = True
        for i, key in enumerate(order_by or ["-created_at"]):
            descending = key.startswith("-")
            column = key.lstrip("-")
            self._check_column(table, column, columns)
            order_terms.append(f"{column} {'DESC' if descending else 'ASC'}")
            if i == 0:
                newest_first = descending
        # Same-timestamp rows keep insertion order
        order_terms.append("rowid DESC" if newest_first else "rowid ASC")

        query = f"SELECT * FROM {table} WHERE {where} ORDER BY {', '.join(order_terms)}"
        if limit is not None:
            query += " LIMIT ?"
            params.append(int(limit))

        try:
            with self._connect() as conn:
                rows = conn.execute(query, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to read {table}: {exc}") from exc
        return [self._row_to_dict(r) for r in rows]

    def get(self, table: str, user_id: str, row_id: str) -> dict | None:
        """Fetch a single owned row by id."""
        rows = self.select(table, user_id, filters={"id": row_id}, limit=1)
        return rows[0] if rows else None

    def insert(self, table: str, user_id: str, values: dict[str, Any]) -> dict:
        """Insert a row owned by user_id and return it as stored."""
        columns = self._check_table(table)
        now = _utcnow()
        record = {k: v for k, v in values.items() if k not in ("id", "user_id")}
        for column in record:
            self._check_column(table, column, columns)
        record.update(id=str(uuid.uuid4()), user_id=user_id, created_at=now, updated_at=now)

        names = ", ".join(record)
        placeholders = ", ".join("?" for _ in record)
        try:
            with self._connect() as conn:
                conn.execute(
                    f"INSERT INTO {table} ({names}) VALUES ({placeholders})",
                    [self._to_sql_value(v) for v in record.values()],
                )
                row = conn.execute(
                    f"SELECT * FROM {table} WHERE id = ?", (record["id"],)
                ).fetchone()
        except sqlite3.IntegrityError as exc:
            raise StoreConflictError(f"Conflict writing {table}: {exc}") from exc
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to write {table}: {exc}") from exc

        logger.debug("Inserted %s row %s for user %s", table, record["id"], user_id)
        return self._row_to_dict(row)

    def update(
        self, table: str, user_id: str, row_id: str, patch: dict[str, Any],
    ) -> dict | None:
        """Apply a sparse patch to one owned row. None if no owned row matched."""
        columns = self._check_table(table)
        fields = {k: v for k, v in patch.items() if k not in ("id", "user_id", "created_at")}
        for column in fields:
            self._check_column(table, column, columns)
        fields["updated_at"] = _utcnow()

        assignments = ", ".join(f"{column} = ?" for column in fields)
        params = [self._to_sql_value(v) for v in fields.values()] + [row_id, user_id]
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    f"UPDATE {table} SET {assignments} WHERE id = ? AND user_id = ?",
                    params,
                )
                if cursor.rowcount == 0:
                    return None
                row = conn.execute(
                    f"SELECT * FROM {table} WHERE id = ? AND user_id = ?", (row_id, user_id),
                ).fetchone()
        except sqlite3.IntegrityError as exc:
            raise StoreConflictError(f"Conflict writing {table}: {exc}") from exc
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to update {table}: {exc}") from exc
        return self._row_to_dict(row)

    def delete(self, table: str, user_id: str, row_id: str) -> bool:
        """Delete one owned row. False if nothing matched."""
        return self.delete_where(table, user_id, {"id": row_id}) > 0

    def delete_where(self, table: str, user_id: str, filters: dict[str, Any]) -> int:
        """Delete every owned row matching filters; returns the count."""
        if not filters:
            raise StoreError("Refusing to delete without filters")
        where, params = self._where(table, user_id, filters)
        try:
            with self._connect() as conn:
                cursor = conn.execute(f"DELETE FROM {table} WHERE {where}", params)
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to delete from {table}: {exc}") from exc
        return cursor.rowcount
