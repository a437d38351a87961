"""Timestamp parsing and normalization helpers for chat exports.

This module centralises the date and time handling used while hydrating
messages and while reading merged conversations back from disk. It provides
helpers for:

* voting on whether an export writes dates day-first or month-first,
* reconstructing a naive local ``datetime`` from the date and time fields of
  a message line-start, and
* converting timestamps to and from the ISO labels stored in JSON output.
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional, Sequence

from .models import RawMessageRecord
from .textnorm import cleanup_invisible_marks, normalize_spaces

DATE_ORDER_SAMPLE_SIZE = 300

TIME_RE = re.compile(
    r"^([0-9]{1,2}):([0-9]{2})(?::([0-9]{2}))?\s*(am|pm)?$", re.IGNORECASE
)


class DateOrder(str, Enum):
    """Field order of the ``D/M/Y`` style date prefix."""

    DAY_FIRST = "DMY"
    MONTH_FIRST = "MDY"


def split_date_parts(raw_date: str) -> Optional[Sequence[int]]:
    """Split a ``1/2/2023`` style date into three integers.

    Returns ``None`` when the text does not hold exactly three numeric parts.
    """

    parts = (raw_date or "").split("/")
    if len(parts) != 3:
        return None
    try:
        return tuple(int(part.strip()) for part in parts)
    except ValueError:
        return None


def infer_date_order(
    records: Iterable[RawMessageRecord],
    sample_size: int = DATE_ORDER_SAMPLE_SIZE,
) -> DateOrder:
    """Vote between day-first and month-first date order.

    Each sampled date casts at most one vote: a first field above 12 with a
    second field of at most 12 is evidence for day-first order, and the
    mirror case is evidence for month-first order. Month-first wins only when
    it has strictly more votes; ties and the no-evidence case stay day-first.

    Parameters
    ----------
    records:
        Raw message records in parse order.
    sample_size:
        Maximum number of leading records to examine.

    Returns
    -------
    DateOrder
        The inferred order, applied uniformly to the whole source.
    """

    day_first_votes = 0
    month_first_votes = 0

    for index, record in enumerate(records):
        if index >= sample_size:
            break
        parts = split_date_parts(record.raw_date)
        if parts is None:
            continue
        first, second, _year = parts
        if first > 12 and second <= 12:
            day_first_votes += 1
        elif second > 12 and first <= 12:
            month_first_votes += 1

    if month_first_votes > day_first_votes:
        return DateOrder.MONTH_FIRST
    return DateOrder.DAY_FIRST


def parse_clock_time(raw_time: str) -> Optional[tuple[int, int, int]]:
    """Parse ``H:MM[:SS] [am|pm]`` into a 24-hour ``(hour, minute, second)``.

    The meridiem marker is case-insensitive: ``12 am`` maps to hour 0,
    ``12 pm`` stays 12, and any other ``pm`` hour gains 12. Values are not
    range-checked here.
    """

    cleaned = normalize_spaces(cleanup_invisible_marks(raw_time)).strip().lower()
    match = TIME_RE.match(cleaned)
    if not match:
        return None

    hour = int(match.group(1))
    minute = int(match.group(2))
    second = int(match.group(3)) if match.group(3) else 0
    meridiem = match.group(4)

    if meridiem == "pm" and hour != 12:
        hour += 12
    elif meridiem == "am" and hour == 12:
        hour = 0
    return hour, minute, second


def parse_date_time(
    raw_date: str, raw_time: str, date_order: DateOrder
) -> Optional[datetime]:
    """Combine the date and time fields of a message into a ``datetime``.

    Two-digit years are read as ``2000 + YY``. Any structural mismatch or an
    impossible calendar or clock value yields ``None`` instead of raising,
    so the caller keeps the message and orders it by sequence alone.

    Parameters
    ----------
    raw_date:
        Date text such as ``"5/6/23"``.
    raw_time:
        Time text such as ``"9:00 AM"`` or ``"21:04:11"``.
    date_order:
        Field order inferred for the source.

    Returns
    -------
    Optional[datetime]
        Naive local datetime, or ``None`` when the fields cannot be read.
    """

    parts = split_date_parts(raw_date)
    if parts is None:
        return None

    if date_order == DateOrder.MONTH_FIRST:
        month, day, year = parts
    else:
        day, month, year = parts
    if year < 100:
        year += 2000

    clock = parse_clock_time(raw_time)
    if clock is None:
        return None
    hour, minute, second = clock

    try:
        return datetime(year, month, day, hour, minute, second)
    except ValueError:
        return None


def format_timestamp_label(value: Optional[datetime]) -> Optional[str]:
    """Return the ISO 8601 label stored in JSON output, or ``None``."""

    if value is None:
        return None
    return value.isoformat()


def parse_date_label(label: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp label back into a naive ``datetime``.

    Supported formats include ISO 8601 strings (with or without seconds) and
    the fallbacks ``"%Y-%m-%d %H:%M"`` and ``"%Y-%m-%d"``. Labels carrying a
    timezone offset are converted to naive wall-clock values by dropping the
    offset, matching how export timestamps are reconstructed.

    Parameters
    ----------
    label:
        Raw timestamp label string to parse.

    Returns
    -------
    Optional[datetime]
        Parsed value when parsing succeeds; otherwise ``None``.
    """

    if not label or not isinstance(label, str):
        return None
    text = label.strip()
    if not text:
        return None

    try:
        candidate = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        candidate = None

    if candidate is None:
        for fmt in ("%Y-%m-%d %H:%M", "%Y-%m-%d"):
            try:
                candidate = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue

    if candidate is None:
        return None
    return candidate.replace(tzinfo=None)


__all__ = [
    "DATE_ORDER_SAMPLE_SIZE",
    "DateOrder",
    "format_timestamp_label",
    "infer_date_order",
    "parse_clock_time",
    "parse_date_label",
    "parse_date_time",
    "split_date_parts",
]
