"""Line-level parsers for chat export text sources."""

from __future__ import annotations

from .attachments import AttachmentInfo, extract_attachment_info, normalize_omitted_kind
from .replies import ReplyInfo, parse_reply_context
from .segmenter import parse_message_start, segment_messages
from .senders import (
    SenderSplit,
    normalize_sender_key,
    sender_label_from_key,
    split_sender_and_text,
)

__all__ = [
    "AttachmentInfo",
    "ReplyInfo",
    "SenderSplit",
    "extract_attachment_info",
    "normalize_omitted_kind",
    "normalize_sender_key",
    "parse_message_start",
    "parse_reply_context",
    "segment_messages",
    "sender_label_from_key",
    "split_sender_and_text",
]
