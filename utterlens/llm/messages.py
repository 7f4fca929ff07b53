"""Conversation messages fed to the local keyword and summary tasks."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

MESSAGE_WINDOW = 24

SPEAKER_LABELS = {"user": "User", "assistant": "Assistant"}


@dataclass
class ChatMessage:
    role: str
    text: str

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ChatMessage:
        return cls(role=d.get("role", "user"), text=d.get("text", d.get("content", "")))


def recent_window(messages: list[ChatMessage], limit: int = MESSAGE_WINDOW) -> list[ChatMessage]:
    return list(messages[-limit:]) if limit > 0 else []


def build_transcript(messages: list[ChatMessage]) -> str:
    """One ``Speaker: text`` line per message."""
    return "\n".join(
        f"{SPEAKER_LABELS['user'] if m.role == 'user' else SPEAKER_LABELS['assistant']}: {m.text}"
        for m in messages
    )


def load_messages(path: Path) -> list[ChatMessage]:
    """Read a JSON list of ``{"role", "text"}`` objects (or ``{"messages": [...]}``)."""
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("messages", [])
    return [ChatMessage.from_dict(d) for d in data]
