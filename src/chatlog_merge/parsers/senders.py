"""Split a message body into sender name and text."""

from __future__ import annotations

from dataclasses import dataclass

from chat.models import EMPTY_SENDER_KEY, UNNAMED_SENDER_LABEL
from chat.textnorm import cleanup_invisible_marks

SENDER_SEPARATOR = ": "
MAX_SENDER_LENGTH = 80


@dataclass(frozen=True)
class SenderSplit:
    """Result of sender classification for one record body."""

    sender: str
    text: str
    is_system: bool


def split_sender_and_text(
    body: str, max_length: int = MAX_SENDER_LENGTH
) -> SenderSplit:
    """Classify ``body`` as a sender message or a system notice.

    The first ``": "`` separates the name from the text. Bodies without it,
    and bodies whose candidate name is longer than ``max_length`` once
    cleaned, are system messages that keep the whole body as text.
    """

    index = body.find(SENDER_SEPARATOR)
    if index == -1:
        return SenderSplit(sender="", text=body, is_system=True)

    candidate = cleanup_invisible_marks(body[:index]).strip()
    if len(candidate) > max_length:
        return SenderSplit(sender="", text=body, is_system=True)

    return SenderSplit(
        sender=candidate,
        text=body[index + len(SENDER_SEPARATOR) :],
        is_system=False,
    )


def normalize_sender_key(sender_raw: str) -> str:
    """Return the identity key for a sender name."""

    cleaned = cleanup_invisible_marks(sender_raw).strip()
    return cleaned or EMPTY_SENDER_KEY


def sender_label_from_key(sender_key: str, sender_raw: str) -> str:
    if sender_key == EMPTY_SENDER_KEY:
        return UNNAMED_SENDER_LABEL
    return cleanup_invisible_marks(sender_raw).strip() or "Unknown"
