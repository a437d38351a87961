"""Media index construction and attachment-to-file resolution.

A media index is built once for every text export from the media files that
sit next to it. Attachment names found in message text are matched against
it in three steps (exact basename, normalized key, suffix scan). When several
files share a name, the least used candidate wins so repeated names spread
across distinct physical files.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from typing import Iterable, List, Optional

from chat.models import (
    Attachment,
    MediaDescriptor,
    MediaIndex,
    MediaRecord,
)
from chat.textnorm import cleanup_invisible_marks

LOGGER = logging.getLogger(__name__)

IMAGE_EXTS = {"jpg", "jpeg", "png", "gif", "heic", "bmp"}
VIDEO_EXTS = {"mp4", "mov", "webm", "mkv", "3gp"}
AUDIO_EXTS = {"opus", "ogg", "aac", "m4a", "mp3", "wav"}

GIF_PREFIX_RE = re.compile(r"^gif-", re.I)
STICKER_PREFIX_RE = re.compile(r"^stk-", re.I)
NON_KEY_CHARS_RE = re.compile(r"[^\w.\-]+", re.ASCII)

MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "heic": "image/heic",
    "bmp": "image/bmp",
    "mp4": "video/mp4",
    "mov": "video/quicktime",
    "webm": "video/webm",
    "mkv": "video/x-matroska",
    "3gp": "video/3gpp",
    "opus": "audio/ogg",
    "ogg": "audio/ogg",
    "aac": "audio/aac",
    "m4a": "audio/mp4",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "vcf": "text/vcard",
    "pdf": "application/pdf",
    "txt": "text/plain",
}

WILDCARD_MIME_TYPES = {
    "image": "image/*",
    "sticker": "image/*",
    "video": "video/*",
    "gif": "image/gif",
    "audio": "audio/*",
}

DEFAULT_MIME_TYPE = "application/octet-stream"

OMITTED_DISPLAY_NAME = "Media omitted"
OMITTED_LOOKUP_KEY = "omitted"


def file_base_name(path: str) -> str:
    """Return the final path component, accepting ``/`` and ``\\``."""

    return path.replace("\\", "/").rsplit("/", 1)[-1]


def file_extension(file_name: str) -> str:
    base = file_base_name(file_name)
    stem, dot, ext = base.rpartition(".")
    if not dot or not ext:
        return ""
    return ext.lower()


def normalize_file_key(file_name: str) -> str:
    """Reduce a file name to lowercase ASCII word, dot, and hyphen characters."""

    base = cleanup_invisible_marks(file_base_name(file_name))
    decomposed = unicodedata.normalize("NFKD", base)
    return NON_KEY_CHARS_RE.sub("", decomposed).lower()


def detect_media_kind(file_name: str) -> str:
    """Classify a media file from its name."""

    name = file_base_name(file_name)
    ext = file_extension(name)

    if GIF_PREFIX_RE.match(name):
        return "gif"
    if ext in IMAGE_EXTS:
        return "gif" if ext == "gif" else "image"
    if ext == "webp" and STICKER_PREFIX_RE.match(name):
        return "sticker"
    if ext in VIDEO_EXTS:
        return "video"
    if ext in AUDIO_EXTS:
        return "audio"
    if ext == "webp":
        return "image"
    return "document"


def guess_mime_type(file_name: str, kind: str) -> str:
    """Look up a MIME type from the extension table, then the kind."""

    ext = file_extension(file_name)
    if ext in MIME_TYPES:
        return MIME_TYPES[ext]
    return WILDCARD_MIME_TYPES.get(kind, DEFAULT_MIME_TYPE)


def build_media_index(descriptors: Iterable[MediaDescriptor]) -> MediaIndex:
    """Build lookup tables for the media files of one text export."""

    index = MediaIndex()
    for descriptor in descriptors:
        display_name = file_base_name(descriptor.path)
        kind = detect_media_kind(display_name)
        record = MediaRecord(
            display_name=display_name,
            lookup_key=normalize_file_key(display_name),
            kind=kind,
            mime_type=(
                descriptor.declared_content_type
                or guess_mime_type(display_name, kind)
            ),
            content=descriptor.content,
            source=descriptor.path,
        )
        index.exact_lookup.add(display_name.lower(), record)
        index.normalized_lookup.add(record.lookup_key, record)
        index.all_records.append(record)

    index.all_records.sort(key=lambda r: (r.display_name.casefold(), r.display_name))
    return index


def pick_least_used(records: List[MediaRecord]) -> MediaRecord:
    """Return the first record with the lowest use count and mark it used."""

    best = records[0]
    for record in records[1:]:
        if record.used_count < best.used_count:
            best = record
    best.used_count += 1
    return best


def resolve_media_record(
    media_index: MediaIndex, requested_name: str
) -> Optional[MediaRecord]:
    """Find the media file an attachment name refers to."""

    clean_name = cleanup_invisible_marks(requested_name).strip()
    if not clean_name:
        return None

    exact_key = file_base_name(clean_name).lower()
    normalized_key = normalize_file_key(clean_name)

    candidates = media_index.exact_lookup.get(exact_key)
    if candidates:
        return pick_least_used(candidates)

    candidates = media_index.normalized_lookup.get(normalized_key)
    if candidates:
        return pick_least_used(candidates)

    for key, records in media_index.normalized_lookup.items():
        if records and (key.endswith(normalized_key) or normalized_key.endswith(key)):
            LOGGER.debug("Fuzzy media match %r -> %r", requested_name, key)
            return pick_least_used(records)

    return None


def resolve_omitted_media_record(
    media_index: MediaIndex, omitted_kind: str
) -> Optional[MediaRecord]:
    """Best-effort guess at the file behind a placeholder without a name.

    Only unused records are considered, in display-name order. A record of
    the hinted kind is preferred (``gif`` also accepts ``video`` files); the
    first unused record is the fallback.
    """

    fallback: Optional[MediaRecord] = None
    for record in media_index.all_records:
        if record.used_count > 0:
            continue
        if fallback is None:
            fallback = record
        if not omitted_kind or omitted_kind == "media":
            return pick_least_used([record])
        if record.kind == omitted_kind:
            return pick_least_used([record])
        if omitted_kind == "gif" and record.kind == "video":
            return pick_least_used([record])

    return pick_least_used([fallback]) if fallback else None


def attachment_from_record(record: MediaRecord) -> Attachment:
    return Attachment(
        display_name=record.display_name,
        kind=record.kind,
        mime_type=record.mime_type,
        lookup_key=record.lookup_key,
        content=record.content,
        missing=False,
    )


def missing_file_attachment(file_name: str) -> Attachment:
    """Attachment for a named file that has no matching media."""

    return Attachment(
        display_name=file_name,
        kind="document",
        mime_type=DEFAULT_MIME_TYPE,
        lookup_key=normalize_file_key(file_name),
        content=None,
        missing=True,
    )


def omitted_attachment() -> Attachment:
    """Attachment for an unresolved omitted-media placeholder."""

    return Attachment(
        display_name=OMITTED_DISPLAY_NAME,
        kind="missing",
        mime_type="",
        lookup_key=OMITTED_LOOKUP_KEY,
        content=None,
        missing=True,
    )
