"""
LifeOS Assistant — Data Models.

Profiles are the one record the boundary needs before the assistant loop
starts: they map a transport identity (API token, Telegram chat) to a
user id and hold that user's inference credential.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Profile:
    """A registered LifeOS user."""

    id: str                                # user identity scoping every row
    display_name: str
    api_token: str                         # bearer token for POST /chat
    llm_api_key: str | None = None         # per-user inference credential
    telegram_chat_id: str | None = None
    telegram_bot_token: str | None = None
    created_at: str = ""

    @property
    def has_llm_key(self) -> bool:
        return bool(self.llm_api_key and self.llm_api_key.strip())
