"""Note handler (manage_notes)."""

from __future__ import annotations

from typing import Literal

from src.core.handlers.base import EntityHandler, ToolArgs


class NoteArgs(ToolArgs):
    action: Literal["create", "update", "delete", "list"]
    note_id: str | None = None
    title: str | None = None
    content: str | None = None
    folder: str | None = None
    is_pinned: bool | None = None


class NoteHandler(EntityHandler):
    table = "notes"
    entity = "Note"
    plural = "notes"
    id_field = "note_id"
    args_model = NoteArgs
    defaults = {"folder": "General", "is_pinned": False}
    list_filters = ("folder", "is_pinned")
    # Pinned first, then most recently edited
    list_order = ["-is_pinned", "-updated_at"]
    list_limit = 20
