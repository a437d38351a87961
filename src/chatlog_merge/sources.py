"""Discover chat export sources in folders and zip archives.

A source is one ``.txt`` export plus the media files considered co-located
with it: every non-text file in the export's directory or below it. Folder
inputs are walked recursively; zip archives (given directly or found while
walking) are expanded member by member without extracting to disk, and media
bytes are only read from the archive when requested.
"""

from __future__ import annotations

import logging
import os
import re
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List

from chat.models import MediaContent, MediaDescriptor
from chat.textnorm import cleanup_invisible_marks

from .textloaders import (
    decode_text_best_effort,
    is_text_entry,
    normalize_text,
    read_text_best_effort,
)

LOGGER = logging.getLogger(__name__)

UNTITLED_CHAT = "Untitled Chat"
CHAT_WITH_RE = re.compile(r"^WhatsApp Chat with\s+(.+)$", re.I)
IGNORED_ARCHIVE_PREFIXES = ("__MACOSX/",)


class SourceError(Exception):
    """Raised when a container of sources cannot be opened."""


@dataclass
class TextSource:
    """One text export waiting to be read and parsed.

    Parameters
    ----------
    label:
        Human readable location used in log lines, e.g. ``"chats.zip:_chat.txt"``.
    title:
        Conversation title derived from the export path.
    load_text:
        Callable returning the decoded export text.
    media:
        Media descriptors co-located with the export.
    """

    label: str
    title: str
    load_text: Callable[[], str]
    media: List[MediaDescriptor] = field(default_factory=list)


def get_directory_path(path: str) -> str:
    normalized = path.replace("\\", "/")
    if "/" not in normalized:
        return ""
    return normalized.rsplit("/", 1)[0]


def is_under_directory(path: str, directory: str) -> bool:
    """Return True when ``path`` lies in ``directory`` or one of its children."""

    if not directory:
        return "/" not in path
    return path == directory or path.startswith(f"{directory}/")


def derive_conversation_title(path: str) -> str:
    """Derive a conversation title from an export file path.

    ``WhatsApp Chat with Alice.txt`` becomes ``Alice``; the generic
    ``_chat.txt`` of iOS exports takes the name of its directory.
    """

    normalized = path.replace("\\", "/")
    base = normalized.rsplit("/", 1)[-1]
    base = re.sub(r"\.txt$", "", base, flags=re.I)
    cleaned = cleanup_invisible_marks(base).strip()

    match = CHAT_WITH_RE.match(cleaned)
    if match:
        return match.group(1).strip()

    if cleaned == "_chat":
        directory = get_directory_path(normalized)
        if directory:
            return directory.rsplit("/", 1)[-1]

    return cleaned or UNTITLED_CHAT


def _group_sources(
    paths: List[str],
    *,
    label_prefix: str,
    text_loader: Callable[[str], Callable[[], str]],
    media_factory: Callable[[str], MediaDescriptor],
) -> List[TextSource]:
    """Pair every text path with the media paths under its directory."""

    sources: List[TextSource] = []
    media_paths = [p for p in paths if not is_text_entry(p)]
    for text_path in (p for p in paths if is_text_entry(p)):
        directory = get_directory_path(text_path)
        media = [
            media_factory(p) for p in media_paths if is_under_directory(p, directory)
        ]
        sources.append(
            TextSource(
                label=f"{label_prefix}{text_path}",
                title=derive_conversation_title(text_path),
                load_text=text_loader(text_path),
                media=media,
            )
        )
    return sources


def _read_zip_member(zip_path: Path, member: str) -> bytes:
    with zipfile.ZipFile(zip_path) as zf:
        return zf.read(member)


def discover_zip_sources(zip_path: Path) -> List[TextSource]:
    """List the sources inside a zip export."""

    try:
        with zipfile.ZipFile(zip_path) as zf:
            infos = [
                info
                for info in zf.infolist()
                if not info.is_dir()
                and not info.filename.startswith(IGNORED_ARCHIVE_PREFIXES)
            ]
    except (OSError, zipfile.BadZipFile) as e:
        raise SourceError(f"cannot open archive {zip_path}: {e}") from e

    sizes = {info.filename: info.file_size for info in infos}

    def text_loader(member: str) -> Callable[[], str]:
        def load() -> str:
            return normalize_text(
                decode_text_best_effort(_read_zip_member(zip_path, member))
            )

        return load

    def media_factory(member: str) -> MediaDescriptor:
        return MediaDescriptor(
            path=member,
            content=MediaContent(lambda: _read_zip_member(zip_path, member)),
            size_hint=sizes.get(member),
        )

    return _group_sources(
        sorted(sizes),
        label_prefix=f"{zip_path.name}:",
        text_loader=text_loader,
        media_factory=media_factory,
    )


def _walk_files(root: Path) -> List[Path]:
    files: List[Path] = []
    for dirpath, _dirnames, filenames in os.walk(root):
        for fn in filenames:
            if fn.startswith(".") or fn.startswith("~$"):
                continue
            files.append(Path(dirpath) / fn)
    return sorted(files, key=lambda p: str(p).lower())


def _plain_folder_sources(root: Path, files: List[Path]) -> List[TextSource]:
    """Sources built from the loose (non-archive) files of a folder."""

    by_rel = {
        f"{root.name}/{p.relative_to(root).as_posix()}": p
        for p in files
        if p.suffix.lower() != ".zip"
    }

    def text_loader(rel: str) -> Callable[[], str]:
        return lambda: read_text_best_effort(by_rel[rel])

    def media_factory(rel: str) -> MediaDescriptor:
        path = by_rel[rel]
        try:
            size = path.stat().st_size
        except OSError:
            size = None
        return MediaDescriptor(
            path=rel, content=MediaContent(path.read_bytes), size_hint=size
        )

    return _group_sources(
        sorted(by_rel),
        label_prefix="",
        text_loader=text_loader,
        media_factory=media_factory,
    )


def discover_folder_sources(root: Path) -> List[TextSource]:
    """List the sources in a folder, expanding any zip archives found."""

    files = _walk_files(root)
    sources = _plain_folder_sources(root, files)
    for archive in (p for p in files if p.suffix.lower() == ".zip"):
        try:
            sources.extend(discover_zip_sources(archive))
        except SourceError as e:
            LOGGER.warning("[SKIP-ARCHIVE] %s", e)
    return sources


def discover_sources(inputs: Iterable[Path]) -> List[TextSource]:
    """Expand input paths (folders, zip archives, text files) into sources.

    A single text file takes its media from its own directory.
    """

    sources: List[TextSource] = []
    for raw in inputs:
        path = Path(raw).expanduser().resolve()
        if path.is_dir():
            sources.extend(discover_folder_sources(path))
        elif path.suffix.lower() == ".zip":
            sources.extend(discover_zip_sources(path))
        elif path.is_file() and is_text_entry(path.name):
            wanted = f"{path.parent.name}/{path.name}"
            siblings = _plain_folder_sources(path.parent, _walk_files(path.parent))
            sources.extend(s for s in siblings if s.label == wanted)
        else:
            raise SourceError(f"unsupported input: {path}")
    return sources
