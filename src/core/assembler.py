"""
LifeOS Assistant — Response Assembler.

Collapses one user message's processing into a single reply: the model's
final text when it gave one, otherwise a line per executed action.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

FALLBACK_REPLY = "I couldn't process that request. Please try again."


@dataclass
class ActionLogEntry:
    tool: str
    arguments: dict
    success: bool
    message: str
    data: Any = None

    def line(self) -> str:
        return f"{'✅' if self.success else '❌'} {self.message}"


@dataclass
class AssistantReply:
    reply: str
    actions: list[ActionLogEntry] = field(default_factory=list)

    def actions_as_dicts(self) -> list[dict]:
        return [asdict(a) for a in self.actions]


def assemble_reply(final_text: str | None, actions: list[ActionLogEntry]) -> AssistantReply:
    if final_text and final_text.strip():
        reply = final_text
    elif actions:
        reply = "\n".join(a.line() for a in actions)
    else:
        reply = FALLBACK_REPLY
    return AssistantReply(reply=reply, actions=list(actions))
