"""Watchlist, reading list and client handlers."""

from __future__ import annotations

from typing import Literal

from src.core.handlers.base import EntityHandler, ToolArgs


class MovieSeriesArgs(ToolArgs):
    action: Literal["create", "update", "delete", "list"]
    item_id: str | None = None
    name: str | None = None
    type: Literal["movie", "series"] | None = None
    status: Literal["to-watch", "watching", "watched", "completed"] | None = None
    description: str | None = None


class BookPodcastArgs(ToolArgs):
    action: Literal["create", "update", "delete", "list"]
    item_id: str | None = None
    name: str | None = None
    type: Literal["book", "podcast"] | None = None
    status: Literal["to-consume", "consuming", "consumed"] | None = None
    url: str | None = None


class ClientArgs(ToolArgs):
    action: Literal["create", "update", "delete", "list"]
    client_id: str | None = None
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    company: str | None = None
    status: Literal["lead", "active", "inactive", "past", "partner"] | None = None
    notes: str | None = None


class _MediaHandler(EntityHandler):
    id_field = "item_id"
    name_field = "name"
    list_filters = ("type", "status")

    def _missing_message(self) -> str:
        return "Name is required"

    def _created_message(self, row: dict) -> str:
        return f'Added {row["type"]}: "{row["name"]}"'

    def _updated_message(self, row: dict) -> str:
        return f'Updated: "{row["name"]}"'


class MovieSeriesHandler(_MediaHandler):
    table = "movies_series"
    entity = "Movie or series"
    plural = "movies and series"
    args_model = MovieSeriesArgs
    defaults = {"type": "movie", "status": "to-watch"}


class BookPodcastHandler(_MediaHandler):
    table = "books_podcasts"
    entity = "Book or podcast"
    plural = "books and podcasts"
    args_model = BookPodcastArgs
    defaults = {"type": "book", "status": "to-consume"}


class ClientHandler(EntityHandler):
    table = "clients"
    entity = "Client"
    plural = "clients"
    id_field = "client_id"
    args_model = ClientArgs
    name_field = "name"
    defaults = {"status": "lead"}
    list_filters = ("status", "company")
