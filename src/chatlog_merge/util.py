"""Utility helpers for filesystem and JSON output."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Sequence

from chat.chat_io import conversations_to_payload
from chat.models import Conversation


def ensure_dir(p: Path) -> None:
    """Create directory `p` and all parents if they do not exist."""

    p.mkdir(parents=True, exist_ok=True)


def _sanitize(obj):
    """Recursively coerce strings to valid UTF-8 for safe JSON writing."""

    if isinstance(obj, str):
        # Replace invalid surrogates with U+FFFD to keep JSON valid
        return obj.encode("utf-8", errors="replace").decode("utf-8")
    if isinstance(obj, dict):
        return {k: _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_sanitize(x) for x in obj]
    return obj


def write_json(path: Path, obj) -> None:
    """Write an object as pretty-printed UTF-8 JSON after sanitizing strings."""

    ensure_dir(path.parent)
    clean = _sanitize(obj)
    with path.open("w", encoding="utf-8", newline="\n") as f:
        json.dump(clean, f, ensure_ascii=False, indent=2)


def write_conversations(path: Path, conversations: Sequence[Conversation]) -> Path:
    """Write merged conversations to ``path`` and return it."""

    write_json(path, conversations_to_payload(conversations))
    return path
