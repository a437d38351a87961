"""Attachment declarations embedded in message text.

Exports declare media in several ways depending on platform and export
settings:

  photo.jpg (file attached)
  caption on the following lines

  <attached: 00000012-PHOTO-2023-01-02-09-01-00.jpg>

  <Media omitted>
  image omitted

The rules are tried in the order of ``ATTACHMENT_RULES`` and the first match
wins.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from chat.textnorm import cleanup_invisible_marks

FILE_ATTACHED_RE = re.compile(r"^([^\n]+?)\s*\(file attached\)(.*)$", re.I | re.S)
ATTACHED_TOKEN_RE = re.compile(r"<attached:\s*([^>]+)>", re.I)
OMITTED_LINE_RE = re.compile(r"^<[^>]*omitted>$", re.I)
OMITTED_CAPTURE_RE = re.compile(r"^<([^>]+?)\s+omitted>$", re.I)
LEGACY_OMITTED_LINE_RE = re.compile(
    r"^(image|video|audio|gif|sticker|document)\s+omitted$", re.I
)

OMITTED_KIND_HINTS: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("image",), "image"),
    (("video",), "video"),
    (("audio", "voice"), "audio"),
    (("sticker",), "sticker"),
    (("gif",), "gif"),
    (("document", "file"), "document"),
)


@dataclass(frozen=True)
class AttachmentInfo:
    """What the attachment rules found in a message text.

    ``text`` is the message text with the declaration removed. ``omitted``
    is set for placeholders that name no file, with ``omitted_kind`` holding
    the normalized kind hint.
    """

    file_name: str
    text: str
    omitted: bool = False
    omitted_kind: str = ""


def normalize_omitted_kind(kind_raw: Optional[str]) -> str:
    """Map a free-form omitted-media hint onto a media kind."""

    value = cleanup_invisible_marks(kind_raw).strip().lower()
    if not value or value == "media":
        return "media"
    for needles, kind in OMITTED_KIND_HINTS:
        if any(needle in value for needle in needles):
            return kind
    return "media"


def _from_file_attached(text: str) -> Optional[AttachmentInfo]:
    match = FILE_ATTACHED_RE.match(text)
    if not match:
        return None
    return AttachmentInfo(
        file_name=cleanup_invisible_marks(match.group(1)).strip(),
        text=(match.group(2) or "").strip(),
    )


def _from_attached_token(text: str) -> Optional[AttachmentInfo]:
    match = ATTACHED_TOKEN_RE.search(text)
    if not match:
        return None
    return AttachmentInfo(
        file_name=cleanup_invisible_marks(match.group(1)).strip(),
        text=ATTACHED_TOKEN_RE.sub("", text, count=1).strip(),
    )


def _from_omitted_placeholder(text: str) -> Optional[AttachmentInfo]:
    lines = text.split("\n")
    first_line = lines[0].strip()
    legacy = LEGACY_OMITTED_LINE_RE.match(first_line)
    if not (OMITTED_LINE_RE.match(first_line) or legacy):
        return None

    captured = OMITTED_CAPTURE_RE.match(first_line)
    if captured:
        kind_raw = captured.group(1)
    elif legacy:
        kind_raw = legacy.group(1)
    else:
        kind_raw = ""
    return AttachmentInfo(
        file_name="",
        text="\n".join(lines[1:]).strip(),
        omitted=True,
        omitted_kind=normalize_omitted_kind(kind_raw),
    )


ATTACHMENT_RULES: List[Tuple[str, Callable[[str], Optional[AttachmentInfo]]]] = [
    ("file_attached", _from_file_attached),
    ("attached_token", _from_attached_token),
    ("omitted_placeholder", _from_omitted_placeholder),
]


def extract_attachment_info(text: str) -> AttachmentInfo:
    """Apply the attachment rules to a sender-stripped message text."""

    cleaned = cleanup_invisible_marks(text).rstrip()
    for _name, rule in ATTACHMENT_RULES:
        info = rule(cleaned)
        if info is not None:
            return info
    return AttachmentInfo(file_name="", text=cleaned.strip())
