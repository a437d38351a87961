"""Reply quotation headers at the start of a message.

Some exports prefix replies with two lines, the reply target and the quoted
line, before the actual message:

  You replied to Alice
  "see you at 8"
  on my way
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Tuple

from chat.models import ReplyContext
from chat.textnorm import cleanup_invisible_marks

REPLY_TARGET_PATTERNS: Tuple[re.Pattern[str], ...] = (
    re.compile(r"^You replied to\s+(.+)$", re.I),
    re.compile(r"^(.+?) replied to you$", re.I),
    re.compile(r"^(.+?) replied to\s+(.+)$", re.I),
    re.compile(r"^Replying to\s+(.+)$", re.I),
)

QUOTE_MARKS_RE = re.compile(r'^["“]|["”]$')


@dataclass(frozen=True)
class ReplyInfo:
    context: ReplyContext
    body_text: str


def match_reply_target(line: str) -> Optional[str]:
    """Return the reply target named by ``line``, if it is a reply header."""

    for pattern in REPLY_TARGET_PATTERNS:
        match = pattern.match(line)
        if match:
            return cleanup_invisible_marks(match.group(match.lastindex or 1)).strip()
    return None


def parse_reply_context(text: str) -> Optional[ReplyInfo]:
    """Split a reply header from ``text``; ``None`` when there is none."""

    lines = (text or "").split("\n")
    if len(lines) < 2:
        return None

    first_line = cleanup_invisible_marks(lines[0]).strip()
    if not first_line:
        return None
    target_name = match_reply_target(first_line)
    if not target_name:
        return None

    quoted = cleanup_invisible_marks(lines[1]).strip()
    quoted = QUOTE_MARKS_RE.sub("", quoted).strip()
    return ReplyInfo(
        context=ReplyContext(target_name=target_name, quoted_text=quoted),
        body_text="\n".join(lines[2:]).strip(),
    )
