"""Telegram notification adapter — implements NotificationPort.

Wraps a telegram.Bot instance to satisfy the NotificationPort protocol.
Replies longer than Telegram's message limit are split on line breaks.
"""

from __future__ import annotations

import logging

from telegram import Bot
from telegram.constants import MessageLimit

logger = logging.getLogger(__name__)


def split_message(text: str, limit: int = MessageLimit.MAX_TEXT_LENGTH) -> list[str]:
    """Break text into chunks of at most `limit` characters."""
    chunks: list[str] = []
    current = ""
    for line in text.splitlines(keepends=True):
        while len(line) > limit:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:limit])
            line = line[limit:]
        if len(current) + len(line) > limit:
            chunks.append(current)
            current = ""
        current += line
    if current:
        chunks.append(current)
    return chunks


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_message(self, chat_id: int | str, text: str) -> None:
        for chunk in split_message(text):
            await self._bot.send_message(chat_id=chat_id, text=chunk)
        logger.debug("Sent %d chars to chat %s", len(text), chat_id)
