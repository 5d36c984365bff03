"""
LifeOS Assistant — Profile Database.

Profiles live next to the entity tables in the same SQLite file. They are
read at the transport boundary (API token or Telegram chat → user) and
never touched by the tool handlers.
"""

from __future__ import annotations

import logging
import secrets
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path

from src.data.models import Profile

logger = logging.getLogger(__name__)


class ProfileDB:
    """SQLite-backed storage for user profiles."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create the profiles table if it doesn't exist, and migrate schema."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS profiles (
                    id                  TEXT PRIMARY KEY,
                    display_name        TEXT NOT NULL,
                    api_token           TEXT NOT NULL UNIQUE,
                    llm_api_key         TEXT,
                    telegram_chat_id    TEXT,
                    created_at          TEXT NOT NULL
                )
            """)
            # Migrate existing DBs: add new columns if missing
            existing_cols = {
                row[1] for row in conn.execute("PRAGMA table_info(profiles)").fetchall()
            }
            if "telegram_bot_token" not in existing_cols:
                conn.execute("ALTER TABLE profiles ADD COLUMN telegram_bot_token TEXT")
        logger.debug("Profiles table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_profile(row: sqlite3.Row) -> Profile:
        return Profile(
            id=row["id"],
            display_name=row["display_name"],
            api_token=row["api_token"],
            llm_api_key=row["llm_api_key"],
            telegram_chat_id=row["telegram_chat_id"],
            telegram_bot_token=row["telegram_bot_token"],
            created_at=row["created_at"],
        )

    def add_profile(
        self,
        display_name: str,
        llm_api_key: str | None = None,
        telegram_chat_id: str | None = None,
        telegram_bot_token: str | None = None,
        profile_id: str | None = None,
    ) -> Profile:
        """Register a new profile with a freshly generated API token."""
        profile = Profile(
            id=profile_id or str(uuid.uuid4()),
            display_name=display_name,
            api_token=secrets.token_urlsafe(32),
            llm_api_key=llm_api_key,
            telegram_chat_id=str(telegram_chat_id) if telegram_chat_id is not None else None,
            telegram_bot_token=telegram_bot_token,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO profiles
                    (id, display_name, api_token, llm_api_key,
                     telegram_chat_id, telegram_bot_token, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    profile.id, profile.display_name, profile.api_token,
                    profile.llm_api_key, profile.telegram_chat_id,
                    profile.telegram_bot_token, profile.created_at,
                ),
            )
        logger.info("Profile registered: %s '%s'", profile.id, display_name)
        return profile

    def _fetch_one(self, column: str, value: str) -> Profile | None:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT * FROM profiles WHERE {column} = ?", (value,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_profile(row)

    def get_profile(self, profile_id: str) -> Profile | None:
        """Fetch a profile by user id."""
        return self._fetch_one("id", profile_id)

    def get_by_api_token(self, api_token: str) -> Profile | None:
        """Resolve the bearer token sent to POST /chat."""
        if not api_token:
            return None
        return self._fetch_one("api_token", api_token)

    def get_by_telegram_chat(self, chat_id: int | str) -> Profile | None:
        """Map a Telegram chat id to its profile."""
        return self._fetch_one("telegram_chat_id", str(chat_id))

    def set_llm_api_key(self, profile_id: str, api_key: str | None) -> None:
        """Store (or clear) a user's inference credential."""
        with self._connect() as conn:
            conn.execute(
                "UPDATE profiles SET llm_api_key = ? WHERE id = ?",
                (api_key, profile_id),
            )
        logger.info("LLM API key %s for profile %s", "set" if api_key else "cleared", profile_id)

    def link_telegram(
        self, profile_id: str, chat_id: int | str, bot_token: str | None = None,
    ) -> None:
        """Attach a Telegram chat (and optionally a bot token) to a profile."""
        with self._connect() as conn:
            conn.execute(
                "UPDATE profiles SET telegram_chat_id = ?, "
                "telegram_bot_token = COALESCE(?, telegram_bot_token) WHERE id = ?",
                (str(chat_id), bot_token, profile_id),
            )
        logger.info("Telegram chat %s linked to profile %s", chat_id, profile_id)

    def list_profiles(self) -> list[Profile]:
        """Return all registered profiles."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM profiles ORDER BY created_at, rowid"
            ).fetchall()
        return [self._row_to_profile(r) for r in rows]
