"""
LifeOS Assistant — Telegram Webhook.

Telegram is a second way into the same assistant loop: an update arrives
on POST /telegram-bot, its chat is mapped to a profile, and the reply goes
back through the Bot API.

Security-first: chats not linked to a profile are silently ignored.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from telegram import Bot, Update
from telegram.error import TelegramError

from src.adapters.telegram_notifier import TelegramNotifier
from src.config import settings
from src.core.assistant import AssistantError, MissingCredentialError

if TYPE_CHECKING:
    from src.core.assistant import Assistant
    from src.data.db import ProfileDB
    from src.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/telegram-bot"


async def setup_webhook(bot_token: str | None, base_url: str | None = None) -> dict[str, Any]:
    """Point the bot's webhook at this service. Returns a JSON-ready outcome."""
    if not bot_token:
        return {"success": False, "error": "Bot token required"}

    base_url = (base_url if base_url is not None else settings.PUBLIC_BASE_URL).rstrip("/")
    if not base_url:
        return {"success": False, "error": "PUBLIC_BASE_URL is not configured"}

    url = f"{base_url}{WEBHOOK_PATH}"
    try:
        async with Bot(token=bot_token) as bot:
            registered = await bot.set_webhook(url=url)
    except TelegramError as exc:
        logger.error("Webhook registration failed: %s", exc)
        return {"success": False, "error": str(exc)}

    logger.info("Telegram webhook set to %s (ok=%s)", url, registered)
    return {"success": bool(registered), "url": url}


class TelegramWebhook:
    """Turns Telegram updates into assistant turns."""

    def __init__(self, assistant: Assistant, profiles: ProfileDB) -> None:
        self._assistant = assistant
        self._profiles = profiles

    async def handle_update(self, payload: dict) -> None:
        update = Update.de_json(payload, None)
        message = update.message if update else None
        if message is None or not message.text:
            logger.debug("Ignoring update without text")
            return

        chat_id = message.chat.id
        profile = self._profiles.get_by_telegram_chat(chat_id)
        if profile is None:
            logger.info("Ignoring message from unlinked chat %s", chat_id)
            return

        bot_token = profile.telegram_bot_token or settings.TELEGRAM_BOT_TOKEN

        # Telegram carries no history; each message is its own conversation
        try:
            reply = await self._assistant.handle_user_message(profile.id, message.text, [])
            text = reply.reply
        except MissingCredentialError as exc:
            text = f"⚠️ {exc.message}"
        except AssistantError as exc:
            text = f"❌ {exc.message}"

        if not bot_token:
            logger.warning("No bot token for profile %s; reply dropped", profile.id)
            return

        try:
            async with Bot(token=bot_token) as bot:
                notifier: NotificationPort = TelegramNotifier(bot)
                await notifier.send_message(chat_id, text)
        except TelegramError as exc:
            logger.error("Failed to send reply to chat %s: %s", chat_id, exc)
