"""Shared test fixtures and configuration.

Sets up fake environment variables so src.config doesn't sys.exit(),
and provides common fixtures like a temp store and a registered profile.
"""

import os
import tempfile

# Patch env vars BEFORE any src imports
os.environ.setdefault("LLM_PROVIDER", "gemini")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("PUBLIC_BASE_URL", "https://lifeos.example.com")
os.environ.setdefault("TIMEZONE", "UTC")
os.environ.setdefault("DATABASE_PATH", os.path.join(tempfile.gettempdir(), "lifeos-tests.db"))

import pytest


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_lifeos.db")


@pytest.fixture
def store(tmp_db_path):
    """Return a SQLiteStore backed by a temp file."""
    from src.adapters.sqlite_store import SQLiteStore
    return SQLiteStore(db_path=tmp_db_path)


@pytest.fixture
def profile_db(tmp_db_path):
    """Return a ProfileDB sharing the store's temp file."""
    from src.data.db import ProfileDB
    return ProfileDB(db_path=tmp_db_path)


@pytest.fixture
def profile(profile_db):
    """A registered user with an inference key and a linked Telegram chat."""
    return profile_db.add_profile(
        "Dana",
        llm_api_key="user-llm-key",
        telegram_chat_id="4242",
        telegram_bot_token="profile-bot-token",
    )


@pytest.fixture
def user_id(profile):
    return profile.id

