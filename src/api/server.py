"""
LifeOS Assistant — HTTP API.

POST /chat          authenticated chat turn (Bearer <api_token>)
POST /telegram-bot  Telegram webhook, plus the setup_webhook admin action
GET  /health        liveness and catalog version
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from src.bot.telegram_webhook import WEBHOOK_PATH, TelegramWebhook, setup_webhook
from src.core.assistant import AssistantError
from src.core.catalog import CATALOG_VERSION
from src.data.models import Profile

if TYPE_CHECKING:
    from src.core.assistant import Assistant
    from src.data.db import ProfileDB

logger = logging.getLogger(__name__)

auth_scheme = HTTPBearer(auto_error=False)


class ChatBody(BaseModel):
    message: str | None = None
    # Loose on purpose: malformed entries are dropped by the loop
    conversationHistory: list[Any] = Field(default_factory=list)


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message, "code": status})


def create_app(assistant: Assistant, profiles: ProfileDB) -> FastAPI:
    app = FastAPI(title="LifeOS Assistant API", version=CATALOG_VERSION)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    telegram = TelegramWebhook(assistant, profiles)

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ())[1:]) or "body"
        return _error(400, f"Invalid request body: {field}")

    def current_profile(
        credentials: HTTPAuthorizationCredentials | None = Depends(auth_scheme),
    ) -> Profile | None:
        if credentials is None:
            return None
        return profiles.get_by_api_token(credentials.credentials)

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok", "catalog_version": CATALOG_VERSION}

    @app.post("/chat")
    async def chat(body: ChatBody, profile: Profile | None = Depends(current_profile)):
        if profile is None:
            return JSONResponse(status_code=401, content={"error": "Unauthorized"})

        message = (body.message or "").strip()
        if not message:
            return _error(400, "Message is required")

        try:
            result = await assistant.handle_user_message(
                profile.id, message, body.conversationHistory,
            )
        except AssistantError as exc:
            return _error(exc.status_code, exc.message)
        except Exception:
            logger.exception("Chat turn failed for profile %s", profile.id)
            return _error(500, "Internal server error")

        return {"response": result.reply, "actions": result.actions_as_dicts()}

    @app.post(WEBHOOK_PATH)
    async def telegram_bot(request: Request):
        try:
            payload = await request.json()
        except json.JSONDecodeError:
            return JSONResponse(status_code=400, content={"ok": False, "error": "Invalid JSON"})
        if not isinstance(payload, dict):
            return {"ok": True}

        if payload.get("action") == "setup_webhook":
            return await setup_webhook(payload.get("bot_token"))

        try:
            await telegram.handle_update(payload)
        except Exception as exc:
            # Non-2xx makes Telegram redeliver the update
            logger.exception("Telegram update failed")
            return {"ok": True, "error": str(exc)}
        return {"ok": True}

    return app
