"""Serialize merged conversations to JSON-ready dicts and load them back.

A merged result written by the CLI can be supplied again as input to a later
run, where its messages take part in deduplication like any freshly parsed
source. Media content accessors are runtime objects and are not persisted;
loaded attachments keep their metadata only.
"""

from __future__ import annotations

import sys
from json import JSONDecodeError
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import json_repair

from .models import (
    Attachment,
    Conversation,
    Message,
    Participant,
    ReplyContext,
)
from .timestamps import format_timestamp_label, parse_date_label

FORMAT_VERSION = 1


def attachment_to_dict(attachment: Attachment) -> Dict[str, Any]:
    return {
        "display_name": attachment.display_name,
        "kind": attachment.kind,
        "mime_type": attachment.mime_type,
        "lookup_key": attachment.lookup_key,
        "missing": attachment.missing,
    }


def message_to_dict(message: Message) -> Dict[str, Any]:
    """Return the JSON shape of one message."""

    reply = message.reply_context
    return {
        "sequence": message.sequence,
        "timestamp": format_timestamp_label(message.timestamp),
        "raw_date": message.raw_date,
        "raw_time": message.raw_time,
        "sender_key": message.sender_key,
        "sender": message.sender,
        "is_system": message.is_system,
        "text": message.text,
        "attachment": (
            attachment_to_dict(message.attachment) if message.attachment else None
        ),
        "reply_context": (
            {"target_name": reply.target_name, "quoted_text": reply.quoted_text}
            if reply
            else None
        ),
        "search_index": message.search_index,
    }


def conversation_to_dict(conversation: Conversation) -> Dict[str, Any]:
    """Return the JSON shape of one merged conversation."""

    return {
        "id": conversation.id,
        "title": conversation.title,
        "participants": [
            {"key": p.key, "label": p.label, "count": p.count}
            for p in conversation.participants
        ],
        "default_self_sender_key": conversation.default_self_sender_key,
        "last_timestamp": format_timestamp_label(conversation.last_timestamp),
        "last_sequence": conversation.last_sequence,
        "preview": conversation.preview,
        "messages": [message_to_dict(m) for m in conversation.messages],
    }


def conversations_to_payload(conversations: Sequence[Conversation]) -> Dict[str, Any]:
    return {
        "version": FORMAT_VERSION,
        "conversations": [conversation_to_dict(c) for c in conversations],
    }


def _str(value: object) -> str:
    return value if isinstance(value, str) else ""


def _int(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    return value


def _attachment_from_dict(data: object) -> Optional[Attachment]:
    if not isinstance(data, dict):
        return None
    return Attachment(
        display_name=_str(data.get("display_name")),
        kind=_str(data.get("kind")) or "document",
        mime_type=_str(data.get("mime_type")),
        lookup_key=_str(data.get("lookup_key")),
        content=None,
        missing=bool(data.get("missing", False)),
    )


def _reply_from_dict(data: object) -> Optional[ReplyContext]:
    if not isinstance(data, dict):
        return None
    return ReplyContext(
        target_name=_str(data.get("target_name")),
        quoted_text=_str(data.get("quoted_text")),
    )


def message_from_dict(data: Dict[str, Any]) -> Optional[Message]:
    """Rebuild a message; ``None`` when the entry has no usable sequence."""

    sequence = data.get("sequence")
    if isinstance(sequence, bool) or not isinstance(sequence, int):
        return None
    return Message(
        sequence=sequence,
        timestamp=parse_date_label(data.get("timestamp")),
        raw_date=_str(data.get("raw_date")),
        raw_time=_str(data.get("raw_time")),
        sender_key=_str(data.get("sender_key")),
        sender=_str(data.get("sender")),
        is_system=bool(data.get("is_system", False)),
        text=_str(data.get("text")),
        attachment=_attachment_from_dict(data.get("attachment")),
        reply_context=_reply_from_dict(data.get("reply_context")),
        search_index=_str(data.get("search_index")),
    )


def conversation_from_dict(data: Dict[str, Any]) -> Optional[Conversation]:
    """Rebuild a conversation; ``None`` when it has no title or messages."""

    title = data.get("title")
    raw_messages = data.get("messages")
    if not isinstance(title, str) or not isinstance(raw_messages, list):
        return None

    messages: List[Message] = []
    for raw in raw_messages:
        if not isinstance(raw, dict):
            continue
        message = message_from_dict(raw)
        if message is not None:
            messages.append(message)
    if not messages:
        return None

    participants = [
        Participant(
            key=_str(p.get("key")),
            label=_str(p.get("label")),
            count=_int(p.get("count")),
        )
        for p in data.get("participants") or []
        if isinstance(p, dict)
    ]
    return Conversation(
        id=_str(data.get("id")),
        title=title,
        messages=messages,
        participants=participants,
        default_self_sender_key=_str(data.get("default_self_sender_key")),
        last_timestamp=parse_date_label(data.get("last_timestamp")),
        last_sequence=messages[-1].sequence,
        preview=_str(data.get("preview")),
    )


def load_conversations(path: Path) -> List[Conversation]:
    """Load merged conversations previously written to ``path``.

    Unreadable or malformed files yield an empty list after a warning, so a
    damaged state file never aborts a run.
    """

    conversations: List[Conversation] = []
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as err:
        sys.stderr.write(f"[WARN] Failed to read {path}: {err}\n")
        return conversations
    try:
        data = json_repair.loads(raw)
    except (JSONDecodeError, ValueError) as err:
        sys.stderr.write(f"[WARN] Invalid JSON {path}: {err}\n")
        return conversations

    items = data.get("conversations") if isinstance(data, dict) else data
    if not isinstance(items, list):
        sys.stderr.write(f"[WARN] No conversations in {path}\n")
        return conversations

    for item in items:
        if not isinstance(item, dict):
            continue
        conversation = conversation_from_dict(item)
        if conversation is not None:
            conversations.append(conversation)
    return conversations


def max_sequence(conversations: Sequence[Conversation]) -> Optional[int]:
    """Highest message sequence across ``conversations``, if any."""

    sequences = [m.sequence for c in conversations for m in c.messages]
    return max(sequences) if sequences else None
