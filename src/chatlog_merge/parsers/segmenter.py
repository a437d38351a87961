"""Split exported chat text into raw message records.

Each logical message starts on a line carrying a date/time prefix in one of
two surface forms:

  1/2/2023, 9:00 AM - Alice: Hi
  [1/2/2023, 09:00:12] Alice: Hi

Lines without a recognised prefix belong to the previous message, which keeps
multi-line bodies intact. Lines before the first recognised prefix are
dropped. A continuation line that happens to look like a prefix starts a new
message; there is no escaping in the format.
"""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

from chat.models import RawMessageRecord
from chat.textnorm import normalize_spaces, split_lines, strip_bom

DATE_FIELD = r"[0-9]{1,2}/[0-9]{1,2}/[0-9]{2,4}"

LINE_START_PATTERNS: Tuple[re.Pattern[str], ...] = (
    re.compile(rf"^({DATE_FIELD}),\s(.+?)\s-\s(.*)$", re.S),
    re.compile(rf"^\[({DATE_FIELD}),\s(.+?)\]\s(.*)$", re.S),
)


def parse_message_start(line: str) -> Optional[Tuple[str, str, str]]:
    """Return ``(raw_date, raw_time, rest)`` when ``line`` starts a message."""

    normalized = normalize_spaces(line)
    for pattern in LINE_START_PATTERNS:
        match = pattern.match(normalized)
        if match:
            return match.group(1), match.group(2), match.group(3)
    return None


def segment_messages(text: str) -> List[RawMessageRecord]:
    """Segment a whole export into ordered raw message records."""

    records: List[RawMessageRecord] = []
    current: Optional[Tuple[str, str]] = None
    body_lines: List[str] = []

    def flush() -> None:
        if current is None:
            return
        records.append(
            RawMessageRecord(
                raw_date=current[0], raw_time=current[1], body="\n".join(body_lines)
            )
        )

    for line in split_lines(strip_bom(text)):
        start = parse_message_start(line)
        if start is not None:
            flush()
            raw_date, raw_time, rest = start
            current = (raw_date, raw_time)
            body_lines = [rest]
            continue
        if current is None:
            # Preamble before the first message
            continue
        body_lines.append(line)

    flush()
    return records
