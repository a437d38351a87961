"""Normalization helpers for raw export strings.

Exports carry byte-order marks, bidirectional control characters, and
narrow no-break spaces that break naive matching. Every later parsing stage
runs its input through these helpers first.
"""

from __future__ import annotations

import re

BOM = "\ufeff"
NARROW_NO_BREAK_SPACE = "\u202f"

INVISIBLE_MARKS_RE = re.compile(r"[\u200c\u200d\u200e\u200f\u202a-\u202e\u2066-\u2069]")
WHITESPACE_RE = re.compile(r"\s+")


def strip_bom(text: str) -> str:
    """Drop a single leading byte-order mark."""

    if text.startswith(BOM):
        return text[len(BOM) :]
    return text


def cleanup_invisible_marks(value: object) -> str:
    """Remove zero-width joiners and bidirectional formatting marks."""

    if value is None:
        return ""
    return INVISIBLE_MARKS_RE.sub("", str(value))


def normalize_spaces(value: str) -> str:
    """Replace narrow no-break spaces with ordinary spaces."""

    return value.replace(NARROW_NO_BREAK_SPACE, " ")


def collapse_whitespace(text: str) -> str:
    return WHITESPACE_RE.sub(" ", text).strip()


def split_lines(text: str) -> list[str]:
    """Split on LF or CRLF line endings."""

    return re.split(r"\r?\n", text)
