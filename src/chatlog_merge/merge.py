"""Merge parsed conversations that describe the same chat.

Exports of one chat made at different times overlap. Conversations whose
titles normalize to the same identity key are combined, exact duplicates are
dropped by signature, messages are re-sorted, and the summary fields are
recomputed from the final message list. Because deduplication is by
signature and the sort is total, the input order of batches does not change
the merged messages.
"""

from __future__ import annotations

import functools
import logging
import re
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Union

from chat.models import (
    EMPTY_SENDER_KEY,
    UNNAMED_SENDER_LABEL,
    Conversation,
    Message,
    ParsedConversation,
    Participant,
)
from chat.textnorm import collapse_whitespace
from chat.timestamps import format_timestamp_label

LOGGER = logging.getLogger(__name__)

SIGNATURE_SEPARATOR = "|\u241f|"
EMPTY_PREVIEW = "(empty)"

Mergeable = Union[ParsedConversation, Conversation]


def normalize_conversation_key(title: str) -> str:
    """Identity key of a conversation: trimmed, lowercased, spaces collapsed."""

    return re.sub(r"\s+", " ", (title or "").strip().lower())


def message_signature(message: Message) -> str:
    """Composite key used to detect exact-duplicate messages.

    Two distinct messages with the same timestamp, sender, text, and
    attachment share a signature and collapse into one.
    """

    attachment = message.attachment
    parts = (
        format_timestamp_label(message.timestamp) or message.raw_date or "",
        message.raw_time or "",
        message.sender_key or "",
        (message.text or "").strip(),
        (attachment.lookup_key or attachment.display_name) if attachment else "",
        "1" if message.is_system else "0",
    )
    return SIGNATURE_SEPARATOR.join(parts)


def compare_messages(a: Message, b: Message) -> int:
    """Timestamp order when both are known and differ, else sequence order."""

    if (
        a.timestamp is not None
        and b.timestamp is not None
        and a.timestamp != b.timestamp
    ):
        return -1 if a.timestamp < b.timestamp else 1
    return a.sequence - b.sequence


def dedupe_messages(messages: Iterable[Message]) -> List[Message]:
    """Keep the first message of every signature, in input order."""

    seen: set[str] = set()
    out: List[Message] = []
    for message in messages:
        signature = message_signature(message)
        if signature in seen:
            continue
        seen.add(signature)
        out.append(message)
    return out


def build_participants(messages: Sequence[Message]) -> List[Participant]:
    """Count non-system messages per sender, most active first."""

    counts: Dict[str, int] = {}
    labels: Dict[str, str] = {}
    for message in messages:
        if message.is_system:
            continue
        key = message.sender_key or EMPTY_SENDER_KEY
        counts[key] = counts.get(key, 0) + 1
        if key not in labels:
            labels[key] = (
                UNNAMED_SENDER_LABEL if key == EMPTY_SENDER_KEY else message.sender
            )

    participants = [
        Participant(key=key, label=labels[key], count=count)
        for key, count in counts.items()
    ]
    participants.sort(key=lambda p: (-p.count, p.label.casefold(), p.label))
    return participants


def pick_default_self_sender_key(participants: Sequence[Participant]) -> str:
    """Prefer the unnamed sender (the exporting user), else the most active."""

    if not participants:
        return ""
    if any(p.key == EMPTY_SENDER_KEY for p in participants):
        return EMPTY_SENDER_KEY
    return participants[0].key


def build_preview(message: Optional[Message]) -> str:
    if message is None:
        return ""
    if message.attachment and message.attachment.display_name:
        return message.attachment.label
    return collapse_whitespace(message.text or "") or EMPTY_PREVIEW


def finalize_conversation(
    identity_key: str, title: str, messages: Iterable[Message]
) -> Optional[Conversation]:
    """Deduplicate, sort, and summarise one identity group."""

    deduped = dedupe_messages(messages)
    if not deduped:
        return None
    deduped.sort(key=functools.cmp_to_key(compare_messages))

    participants = build_participants(deduped)
    last = deduped[-1]
    return Conversation(
        id=identity_key,
        title=title,
        messages=deduped,
        participants=participants,
        default_self_sender_key=pick_default_self_sender_key(participants),
        last_timestamp=last.timestamp,
        last_sequence=last.sequence,
        preview=build_preview(last),
    )


def _conversation_sort_key(conversation: Conversation):
    last = conversation.last_timestamp or datetime.min
    return (last, conversation.last_sequence)


def merge_conversations(items: Iterable[Mergeable]) -> List[Conversation]:
    """Combine conversations sharing an identity key.

    Accepts freshly parsed conversations as well as previously merged ones.
    The result is ordered by last activity, most recent first.
    """

    titles: Dict[str, str] = {}
    grouped: Dict[str, List[Message]] = {}

    for item in items:
        if item is None or not item.messages:
            continue
        key = normalize_conversation_key(item.title)
        if key not in grouped:
            grouped[key] = []
            titles[key] = item.title
        grouped[key].extend(item.messages)

    merged: List[Conversation] = []
    for key, messages in grouped.items():
        conversation = finalize_conversation(key, titles[key], messages)
        if conversation is None:
            LOGGER.info("[EMPTY] merge group %r has no messages", key)
            continue
        merged.append(conversation)

    merged.sort(key=_conversation_sort_key, reverse=True)
    return merged
