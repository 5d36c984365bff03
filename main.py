"""
LifeOS Assistant — Entry Point.

    python main.py                      start the HTTP API (same as `serve`)
    python main.py add-profile NAME     register a user, print their API token
    python main.py set-webhook          point a Telegram bot at /telegram-bot
"""

import argparse
import asyncio
import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from src.config import settings

logger = logging.getLogger(__name__)


def serve(args: argparse.Namespace) -> None:
    import uvicorn

    from src.adapters.sqlite_store import SQLiteStore
    from src.api.server import create_app
    from src.core.assistant import Assistant
    from src.data.db import ProfileDB

    profiles = ProfileDB()
    app = create_app(Assistant(SQLiteStore(), profiles), profiles)
    logger.info("Serving LifeOS Assistant on %s:%d", args.host, args.port)
    uvicorn.run(app, host=args.host, port=args.port)


def add_profile(args: argparse.Namespace) -> None:
    from src.data.db import ProfileDB

    profile = ProfileDB().add_profile(
        args.name,
        llm_api_key=args.llm_api_key,
        telegram_chat_id=args.telegram_chat_id,
        telegram_bot_token=args.telegram_bot_token,
    )
    print(f"Profile:   {profile.id}")
    print(f"API token: {profile.api_token}")


def set_webhook(args: argparse.Namespace) -> None:
    from src.bot.telegram_webhook import setup_webhook

    result = asyncio.run(setup_webhook(args.bot_token, args.base_url))
    if not result["success"]:
        raise SystemExit(f"Webhook setup failed: {result.get('error', result)}")
    print(f"Webhook set: {result['url']}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lifeos", description="LifeOS Assistant")
    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("serve", help="run the HTTP API")
    p.add_argument("--host", default=settings.API_HOST)
    p.add_argument("--port", type=int, default=settings.API_PORT)
    p.set_defaults(func=serve)

    p = sub.add_parser("add-profile", help="register a user")
    p.add_argument("name")
    p.add_argument("--llm-api-key")
    p.add_argument("--telegram-chat-id")
    p.add_argument("--telegram-bot-token")
    p.set_defaults(func=add_profile)

    p = sub.add_parser("set-webhook", help="register the Telegram webhook URL")
    p.add_argument("--bot-token", default=settings.TELEGRAM_BOT_TOKEN)
    p.add_argument("--base-url", default=settings.PUBLIC_BASE_URL)
    p.set_defaults(func=set_webhook)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        args = parser.parse_args(["serve", *(argv or [])])
    args.func(args)


if __name__ == "__main__":
    main()
