"""
LifeOS Assistant — Centralized configuration.

Loads all settings from .env and validates them at startup.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)

SUPPORTED_PROVIDERS = ("gemini", "openai", "openrouter", "anthropic")


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # SQLite
    DATABASE_PATH: str = "data/lifeos.db"

    # LLM: the API key is per user and lives in the profile
    LLM_PROVIDER: str = "gemini"
    LLM_MODEL: str = ""          # empty → smart default per provider
    LLM_BASE_URL: str = ""       # empty → provider default endpoint
    LLM_TIMEOUT_SECONDS: float = 60.0
    LLM_MAX_TOKENS: int = 1024

    # Orchestration loop
    MAX_TOOL_ITERATIONS: int = 10
    MAX_HISTORY_MESSAGES: int = 20

    # "Today" for habits, transactions and summaries
    TIMEZONE: str = "UTC"

    # Telegram (optional; fallback when a profile has no bot token)
    TELEGRAM_BOT_TOKEN: str = ""
    PUBLIC_BASE_URL: str = ""

    # HTTP server
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    @field_validator("LLM_PROVIDER", mode="before")
    @classmethod
    def normalize_provider(cls, v: str) -> str:
        return (v or "gemini").strip().lower()

    @field_validator("MAX_TOOL_ITERATIONS", "MAX_HISTORY_MESSAGES", "LLM_MAX_TOKENS", "API_PORT", mode="before")
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)

    @field_validator("LLM_TIMEOUT_SECONDS", mode="before")
    @classmethod
    def parse_float(cls, v: str | float) -> float:
        return float(v)

    @field_validator("PUBLIC_BASE_URL", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return (v or "").rstrip("/")


def _load_settings() -> Settings:
    """Load settings from environment, validating the keys the loop depends on."""
    provider = os.getenv("LLM_PROVIDER", "gemini").strip().lower()
    if provider not in SUPPORTED_PROVIDERS:
        print(
            f"ERROR: LLM_PROVIDER={provider!r} is not supported "
            f"(choose one of: {', '.join(SUPPORTED_PROVIDERS)})",
            file=sys.stderr,
        )
        sys.exit(1)

    max_iterations = os.getenv("MAX_TOOL_ITERATIONS", "10")
    if not max_iterations.strip().isdigit() or int(max_iterations) < 1:
        print("ERROR: MAX_TOOL_ITERATIONS must be a positive integer", file=sys.stderr)
        sys.exit(1)

    return Settings(
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/lifeos.db"),
        LLM_PROVIDER=provider,
        LLM_MODEL=os.getenv("LLM_MODEL", ""),
        LLM_BASE_URL=os.getenv("LLM_BASE_URL", ""),
        LLM_TIMEOUT_SECONDS=os.getenv("LLM_TIMEOUT_SECONDS", "60"),
        LLM_MAX_TOKENS=os.getenv("LLM_MAX_TOKENS", "1024"),
        MAX_TOOL_ITERATIONS=max_iterations,
        MAX_HISTORY_MESSAGES=os.getenv("MAX_HISTORY_MESSAGES", "20"),
        TIMEZONE=os.getenv("TIMEZONE", "UTC"),
        TELEGRAM_BOT_TOKEN=os.getenv("TELEGRAM_BOT_TOKEN", ""),
        PUBLIC_BASE_URL=os.getenv("PUBLIC_BASE_URL", ""),
        API_HOST=os.getenv("API_HOST", "0.0.0.0"),
        API_PORT=os.getenv("API_PORT", "8000"),
    )


# Singleton — imported by all other modules as:
#   from src.config import settings
settings = _load_settings()
