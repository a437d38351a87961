"""Decode chat export text from bytes or files.

Exports arrive as UTF-8 with or without a byte-order mark, and occasionally
as UTF-16 from older phones. Decoding is best effort: known encodings are
tried in turn before falling back to UTF-8 with replacement characters.
"""

from __future__ import annotations

from pathlib import Path

from chat.textnorm import strip_bom

TEXT_EXTS = {".txt"}


class LoadError(Exception):
    """Raised when a text source cannot be read."""


def is_text_entry(path: str) -> bool:
    """Return True when ``path`` names a chat export text file."""

    return Path(path.replace("\\", "/")).suffix.lower() in TEXT_EXTS


def decode_text_best_effort(raw: bytes) -> str:
    """Decode raw bytes using a best-effort set of encodings.

    Tries UTF BOM-aware decoders and several common encodings before falling
    back to UTF-8 with replacement for undecodable bytes.
    """
    if raw.startswith(b"\xef\xbb\xbf"):
        return raw.decode("utf-8-sig", errors="replace")
    if raw.startswith((b"\xff\xfe", b"\xfe\xff")):
        try:
            return raw.decode("utf-16")
        except UnicodeDecodeError:
            pass
    for enc in ("utf-8", "cp1252", "latin-1"):
        try:
            return raw.decode(enc)
        except UnicodeDecodeError:
            continue
    return raw.decode("utf-8", errors="replace")


def read_text_best_effort(path: Path) -> str:
    """Read a text export from disk, raising :class:`LoadError` on failure."""
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise LoadError(f"read failed: {e}") from e
    return normalize_text(decode_text_best_effort(raw))


def normalize_text(s: str) -> str:
    """Drop a leading BOM and normalize CRLF / CR line endings to LF."""
    s = strip_bom(s)
    return s.replace("\r\n", "\n").replace("\r", "\n")
