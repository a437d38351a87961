"""Hydrate segmented export text into messages and parsed conversations.

This module turns the raw records produced by the segmenter into
:class:`chat.models.Message` objects: it classifies the sender, extracts
attachment and reply information, resolves attachments against the media
index, and reconstructs timestamps. Sequence numbers come from a
:class:`ParseSession` so that one run owns its counter.
"""

from __future__ import annotations

import itertools
import logging
import threading
import zipfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from tqdm import tqdm

from chat.models import (
    Attachment,
    MediaIndex,
    Message,
    ParsedConversation,
    RawMessageRecord,
)
from chat.timestamps import DateOrder, infer_date_order, parse_date_time

from .config import DEFAULT_CONFIG, EngineConfig
from .media import (
    attachment_from_record,
    build_media_index,
    missing_file_attachment,
    omitted_attachment,
    resolve_media_record,
    resolve_omitted_media_record,
)
from .merge import normalize_conversation_key
from .parsers import (
    AttachmentInfo,
    extract_attachment_info,
    normalize_sender_key,
    parse_reply_context,
    segment_messages,
    sender_label_from_key,
    split_sender_and_text,
)
from .sources import TextSource
from .textloaders import LoadError

LOGGER = logging.getLogger(__name__)


class ParseSession:
    """Issues the sequence numbers for one parsing run.

    Sequence numbers are the authoritative tie-break when ordering messages,
    so they are never reused. ``next_sequence`` is safe to call from several
    threads.
    """

    def __init__(self, start: int = 0) -> None:
        self._counter = itertools.count(start)
        self._lock = threading.Lock()
        self._last: Optional[int] = None

    def next_sequence(self) -> int:
        with self._lock:
            self._last = next(self._counter)
            return self._last

    @property
    def last_sequence(self) -> Optional[int]:
        return self._last


def resolve_attachment(
    info: AttachmentInfo,
    media_index: MediaIndex,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Optional[Attachment]:
    """Turn extracted attachment info into an attachment, resolved or missing."""

    if info.file_name:
        record = resolve_media_record(media_index, info.file_name)
        if record is None:
            return missing_file_attachment(info.file_name)
        return attachment_from_record(record)

    if not info.omitted:
        return None

    if config.best_effort_omitted_media:
        record = resolve_omitted_media_record(media_index, info.omitted_kind)
        if record is not None:
            return attachment_from_record(record)
    return omitted_attachment()


def build_search_index(*fields: str) -> str:
    return " ".join(field or "" for field in fields).lower()


def hydrate_message(
    record: RawMessageRecord,
    date_order: DateOrder,
    media_index: MediaIndex,
    session: ParseSession,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Message:
    """Build a :class:`Message` from one raw record."""

    split = split_sender_and_text(record.body, config.max_sender_length)
    info = extract_attachment_info(split.text)
    reply = parse_reply_context(info.text)
    text = reply.body_text if reply else info.text

    attachment = resolve_attachment(info, media_index, config)

    if split.is_system:
        sender_key = ""
        sender = ""
    else:
        sender_key = normalize_sender_key(split.sender)
        sender = sender_label_from_key(sender_key, split.sender)

    reply_context = reply.context if reply else None
    return Message(
        sequence=session.next_sequence(),
        timestamp=parse_date_time(record.raw_date, record.raw_time, date_order),
        raw_date=record.raw_date,
        raw_time=record.raw_time,
        sender_key=sender_key,
        sender=sender,
        is_system=split.is_system,
        text=text,
        attachment=attachment,
        reply_context=reply_context,
        search_index=build_search_index(
            sender,
            text,
            record.raw_date,
            record.raw_time,
            attachment.display_name if attachment else "",
            reply_context.target_name if reply_context else "",
            reply_context.quoted_text if reply_context else "",
        ),
    )


def parse_source(
    text: str,
    title_hint: str,
    media_index: Optional[MediaIndex] = None,
    *,
    session: ParseSession,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Optional[ParsedConversation]:
    """Parse one export text into a :class:`ParsedConversation`.

    Returns ``None`` when the text holds no recognizable message. The date
    order is inferred once and applied to every record of the source.
    """

    records = segment_messages(text)
    if not records:
        return None

    index = media_index if media_index is not None else MediaIndex()
    date_order = infer_date_order(records, config.date_order_sample_size)
    messages = [
        hydrate_message(record, date_order, index, session, config)
        for record in records
    ]
    if not messages:
        return None

    return ParsedConversation(
        identity_key=normalize_conversation_key(title_hint),
        title=title_hint,
        messages=messages,
    )


@dataclass
class ParseMeta:
    """Outcome of parsing one text source."""

    label: str
    title: str
    ok: bool
    error: Optional[str]
    message_count: int
    media_count: int = 0


def _load_source_text(source: TextSource) -> str:
    return source.load_text()


def process_sources(
    sources: Sequence[TextSource],
    *,
    session: ParseSession,
    config: EngineConfig = DEFAULT_CONFIG,
    jobs: int = 1,
    cancel: Optional[threading.Event] = None,
    progress: bool = False,
) -> Tuple[List[ParsedConversation], List[ParseMeta]]:
    """Read and parse a batch of sources.

    Source texts are read concurrently on up to ``jobs`` threads. Parsing
    then runs on the calling thread in the order of ``sources`` so sequence
    numbers are allocated deterministically. Setting ``cancel`` stops the
    batch before the next source; sources already parsed are kept.

    Returns the parsed conversations and one :class:`ParseMeta` per source
    that was attempted.
    """

    parsed: List[ParsedConversation] = []
    metas: List[ParseMeta] = []

    with ThreadPoolExecutor(max_workers=max(1, jobs)) as pool:
        futures = [pool.submit(_load_source_text, source) for source in sources]
        pairs = zip(sources, futures)
        iterator = (
            tqdm(pairs, total=len(sources), desc="Sources", unit="source")
            if progress
            else pairs
        )
        for source, future in iterator:
            if cancel is not None and cancel.is_set():
                LOGGER.warning(
                    "[CANCELLED] stopping before %s (%d source(s) left)",
                    source.label,
                    len(sources) - len(metas),
                )
                for pending in futures:
                    pending.cancel()
                break

            try:
                text = future.result()
            except (LoadError, OSError, zipfile.BadZipFile, KeyError) as e:
                LOGGER.error("[FAIL] %s: %s", source.label, e)
                metas.append(
                    ParseMeta(source.label, source.title, False, str(e), 0)
                )
                continue

            media_index = build_media_index(source.media)
            conversation = parse_source(
                text, source.title, media_index, session=session, config=config
            )
            if conversation is None:
                LOGGER.info("[EMPTY] %s", source.label)
                metas.append(
                    ParseMeta(
                        source.label, source.title, True, None, 0, len(source.media)
                    )
                )
                continue

            LOGGER.info(
                "[OK] %s -> %r (%d messages)",
                source.label,
                conversation.title,
                len(conversation.messages),
            )
            parsed.append(conversation)
            metas.append(
                ParseMeta(
                    source.label,
                    source.title,
                    True,
                    None,
                    len(conversation.messages),
                    len(source.media),
                )
            )

    return parsed, metas
