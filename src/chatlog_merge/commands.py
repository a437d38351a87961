"""CLI entry points for parsing and merging chat exports.

This module wires together source discovery, parsing, merging with an
optional earlier result, and JSON output. The ``validate`` and ``search``
subcommands operate on a previously written merge file.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from chat.chat_io import load_conversations, max_sequence
from chat.models import Conversation

from .config import EngineConfig
from .merge import merge_conversations
from .processor import ParseSession, process_sources
from .sources import SourceError, TextSource, discover_sources
from .util import ensure_dir, write_conversations

DEFAULT_OUTPUT = Path("conversations.json")


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI dispatcher.

    Parses arguments and executes the requested subcommand or the default
    parse-and-merge run.
    """
    parser = argparse.ArgumentParser(
        prog="chatlog-merge",
        description="Parse exported chat logs and merge them into conversations",
    )

    sub = parser.add_subparsers(dest="cmd")

    # ---------------- main pipeline ----------------
    p_main = parser  # top-level flags apply directly
    p_main.add_argument(
        "--input",
        nargs="+",
        help="Folders, zip archives, or .txt exports to process",
    )
    p_main.add_argument(
        "-o",
        "--output",
        default=str(DEFAULT_OUTPUT),
        help=f"Output JSON file (default: {DEFAULT_OUTPUT})",
    )
    p_main.add_argument(
        "--state",
        help="Earlier merge output to merge the new sources into",
    )
    p_main.add_argument(
        "--best-effort-omitted",
        action="store_true",
        help=(
            "Guess media files for 'omitted' placeholders that name no file "
            "(unreliable; default off)"
        ),
    )
    p_main.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=min(8, os.cpu_count() or 1),
        help="Threads used to read sources",
    )
    p_main.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    p_main.add_argument("--log-file", help="Write a detailed log to this file")
    p_main.add_argument(
        "--no-progress", action="store_true", help="Disable progress bar"
    )

    # ---------------- validate ----------------
    p_val = sub.add_parser("validate", help="Validate a merged JSON file")
    p_val.add_argument("merged_file")

    # ---------------- search ----------------
    p_search = sub.add_parser("search", help="Search messages in a merged JSON file")
    p_search.add_argument("merged_file")
    p_search.add_argument("query")
    p_search.add_argument(
        "--chat", default=None, help="Only search conversations whose title matches"
    )

    args = parser.parse_args(argv)

    if args.cmd == "validate":
        cmd_validate(args)
        return
    if args.cmd == "search":
        cmd_search(args)
        return

    if not args.input:
        raise SystemExit("Nothing to do: pass at least one --input path")
    cmd_parse(args)


def _setup_logging(args) -> logging.Logger:
    logger = logging.getLogger("chatlog_merge")
    logger.handlers.clear()
    logger.setLevel(logging.INFO)
    ch = logging.StreamHandler()
    ch.setLevel(logging.INFO if args.verbose else logging.WARNING)
    ch.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(ch)
    if args.log_file:
        lf_path = Path(args.log_file).expanduser().resolve()
        ensure_dir(lf_path.parent)
        fh = logging.FileHandler(str(lf_path), encoding="utf-8")
        fh.setLevel(logging.INFO)
        fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        logger.addHandler(fh)
    return logger


def cmd_parse(args) -> Path:
    """Parse all inputs, merge with optional earlier state, and write JSON.

    Returns the path of the written output file.
    """
    logger = _setup_logging(args)
    out_path = Path(args.output).expanduser().resolve()

    config = EngineConfig.from_env()
    if args.best_effort_omitted:
        config = replace(config, best_effort_omitted_media=True)

    previous: List[Conversation] = []
    if args.state:
        previous = load_conversations(Path(args.state).expanduser().resolve())
        logger.info("[STATE] %d conversation(s) from %s", len(previous), args.state)

    highest = max_sequence(previous)
    session = ParseSession(start=0 if highest is None else highest + 1)

    sources: List[TextSource] = []
    for raw in args.input:
        try:
            sources.extend(discover_sources([Path(raw)]))
        except SourceError as e:
            logger.error("[FAIL] %s", e)
    if not sources:
        logger.warning("No chat exports (.txt) found in input")

    parsed, metas = process_sources(
        sources,
        session=session,
        config=config,
        jobs=args.jobs,
        progress=not args.no_progress,
    )
    merged = merge_conversations([*previous, *parsed])
    write_conversations(out_path, merged)

    ok = sum(1 for m in metas if m.ok)
    fail = sum(1 for m in metas if not m.ok)
    messages = sum(len(c.messages) for c in merged)
    print(f"Done. Merged output: {out_path}")
    print(
        f"Summary: sources ok={ok}, fail={fail}, total={len(sources)}; "
        f"conversations={len(merged)}, messages={messages}"
    )
    return out_path


def cmd_validate(args) -> None:
    """Validate a merged JSON file for basic structural correctness."""
    path = Path(args.merged_file).expanduser().resolve()
    if not path.is_file():
        raise FileNotFoundError(path)

    try:
        obj = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
        print(f"[INVALID JSON] {path}: {e}")
        raise SystemExit(1) from e

    convs = obj.get("conversations") if isinstance(obj, dict) else None
    if not isinstance(convs, list):
        print(f"[INVALID] {path}: missing conversations list")
        raise SystemExit(1)

    ok = 0
    bad = 0
    for index, conv in enumerate(convs):
        problem = _validate_conversation(conv)
        if problem:
            print(f"[INVALID] {path} conversation {index}: {problem}")
            bad += 1
        else:
            ok += 1

    print(f"Validation summary: ok={ok}, bad={bad}, total={ok + bad}")
    if bad:
        raise SystemExit(1)


def _validate_conversation(conv) -> Optional[str]:
    """Return a description of the first problem found, or ``None``."""
    if not isinstance(conv, dict):
        return "not an object"
    msgs = conv.get("messages")
    if not isinstance(msgs, list) or not msgs:
        return "require >= 1 message"
    seen = set()
    for i, m in enumerate(msgs):
        if not isinstance(m, dict):
            return f"message {i} is not an object"
        seq = m.get("sequence")
        if not isinstance(seq, int) or isinstance(seq, bool):
            return f"message {i} has no integer sequence"
        if seq in seen:
            return f"duplicate sequence {seq}"
        seen.add(seq)
        if not isinstance(m.get("text"), str):
            return f"message {i} text must be a string"
    return None


def cmd_search(args) -> None:
    """Print messages whose search index contains the query."""
    conversations = load_conversations(Path(args.merged_file).expanduser().resolve())
    chat_filter = (args.chat or "").strip().lower()
    hits = 0
    for conv in conversations:
        if chat_filter and chat_filter not in conv.title.lower():
            continue
        for message in conv.messages:
            if not message.matches(args.query):
                continue
            hits += 1
            who = message.sender or "(system)"
            print(
                f"[{conv.title}] {message.display_day} {message.display_time} "
                f"{who}: {message.text}"
            )
    print(f"{hits} match(es)")
