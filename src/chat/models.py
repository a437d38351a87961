"""Conversation data model shared by the parser, merger, and I/O helpers.

The dataclasses in this module describe every stage of a chat export after it
has been read from disk:

* :class:`RawMessageRecord` is the transient output of line segmentation.
* :class:`Message` is the durable, hydrated unit.
* :class:`MediaRecord` and :class:`MediaIndex` describe the media files that
  live next to one text export.
* :class:`ParsedConversation` is the per-source result before merging and
  :class:`Conversation` the merged, summarised result.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Generic, Iterator, List, Optional, Tuple, TypeVar

from .textnorm import cleanup_invisible_marks

EMPTY_SENDER_KEY = "__EMPTY__"
UNNAMED_SENDER_LABEL = "Unnamed Sender"

ATTACHMENT_KINDS = ("image", "sticker", "gif", "video", "audio", "document", "missing")

K = TypeVar("K")
V = TypeVar("V")


class MultiMap(Generic[K, V]):
    """Mapping from a key to an ordered list of values.

    Keys and the values stored under each key keep their insertion order, so
    lookups and scans are deterministic.
    """

    def __init__(self) -> None:
        self._items: Dict[K, List[V]] = {}

    def add(self, key: K, value: V) -> None:
        """Append ``value`` to the list stored under ``key``."""

        self._items.setdefault(key, []).append(value)

    def get(self, key: K) -> List[V]:
        """Return the values stored under ``key`` (empty when unknown)."""

        return list(self._items.get(key, ()))

    def items(self) -> Iterator[Tuple[K, List[V]]]:
        for key, values in self._items.items():
            yield key, list(values)

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)


class MediaContent:
    """Memoizing accessor for the bytes of one media file.

    The loader is invoked on the first successful :meth:`resolve` call only;
    later calls return the cached bytes. A loader that raises is retried on
    the next call. Safe to share between threads.
    """

    def __init__(self, loader: Callable[[], bytes]) -> None:
        self._loader = loader
        self._lock = threading.Lock()
        self._data: Optional[bytes] = None

    @property
    def resolved(self) -> bool:
        return self._data is not None

    def resolve(self) -> bytes:
        """Return the media bytes, loading them on first use."""

        with self._lock:
            if self._data is None:
                self._data = self._loader()
            return self._data


@dataclass(frozen=True)
class MediaDescriptor:
    """One media file co-located with a text export.

    Parameters
    ----------
    path:
        Path of the file relative to its container (folder or archive).
    content:
        Accessor yielding the file bytes.
    size_hint:
        Optional size in bytes as reported by the container.
    declared_content_type:
        Optional MIME type reported by the container.
    """

    path: str
    content: MediaContent
    size_hint: Optional[int] = None
    declared_content_type: Optional[str] = None


@dataclass
class MediaRecord:
    """A physical media file that attachments may resolve to."""

    display_name: str
    lookup_key: str
    kind: str
    mime_type: str
    content: Optional[MediaContent]
    source: str = ""
    used_count: int = 0


@dataclass
class MediaIndex:
    """Lookup tables for the media files of one text export."""

    exact_lookup: MultiMap[str, MediaRecord] = field(default_factory=MultiMap)
    normalized_lookup: MultiMap[str, MediaRecord] = field(default_factory=MultiMap)
    all_records: List[MediaRecord] = field(default_factory=list)


@dataclass(frozen=True)
class RawMessageRecord:
    """A message span as found by line segmentation."""

    raw_date: str
    raw_time: str
    body: str


@dataclass(frozen=True)
class Attachment:
    """Attachment declared by a message, resolved or not."""

    display_name: str
    kind: str
    mime_type: str
    lookup_key: str
    content: Optional[MediaContent] = field(default=None, compare=False)
    missing: bool = False

    @property
    def label(self) -> str:
        return f"Attachment: {self.display_name}"


@dataclass(frozen=True)
class ReplyContext:
    """Quotation header of a reply message."""

    target_name: str
    quoted_text: str


@dataclass(frozen=True)
class Message:
    """A hydrated chat message."""

    sequence: int
    timestamp: Optional[datetime]
    raw_date: str
    raw_time: str
    sender_key: str
    sender: str
    is_system: bool
    text: str
    attachment: Optional[Attachment] = None
    reply_context: Optional[ReplyContext] = None
    search_index: str = ""

    @property
    def message_id(self) -> str:
        return f"{self.raw_date}-{self.raw_time}-{self.sequence}"

    @property
    def display_time(self) -> str:
        """Clock time for display, falling back to the raw time text."""

        if self.timestamp is None:
            return cleanup_invisible_marks(self.raw_time)
        return self.timestamp.strftime("%H:%M")

    @property
    def display_day(self) -> str:
        """Calendar day for display, falling back to the raw date text."""

        if self.timestamp is None:
            return self.raw_date
        return self.timestamp.date().isoformat()

    def matches(self, query: str) -> bool:
        """Return True when ``query`` occurs in the message search index."""

        needle = query.strip().lower()
        if not needle:
            return True
        return needle in self.search_index


@dataclass
class ParsedConversation:
    """Messages parsed from a single text export."""

    identity_key: str
    title: str
    messages: List[Message] = field(default_factory=list)


@dataclass(frozen=True)
class Participant:
    """Non-system sender with the number of messages they sent."""

    key: str
    label: str
    count: int


@dataclass
class Conversation:
    """A merged, deduplicated, ordered conversation."""

    id: str
    title: str
    messages: List[Message]
    participants: List[Participant]
    default_self_sender_key: str
    last_timestamp: Optional[datetime]
    last_sequence: int
    preview: str
