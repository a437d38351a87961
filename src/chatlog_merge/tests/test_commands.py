"""
Tests for the command line interface, persisted state, and configuration.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from chat.chat_io import load_conversations, max_sequence
from chatlog_merge.commands import main
from chatlog_merge.config import BEST_EFFORT_OMITTED_ENV, EngineConfig
from chatlog_merge.merge import merge_conversations
from chatlog_merge.processor import ParseSession, parse_source
from chatlog_merge.util import write_conversations

FIRST_EXPORT = (
    "1/2/2023, 9:00 AM - Alice: Hi\n"
    "1/2/2023, 9:01 AM - Bob: pizza tonight?\n"
    "1/2/2023, 9:02 AM - Bob: <attached: IMG-0001.jpg>\n"
)
SECOND_EXPORT = (
    "1/2/2023, 9:02 AM - Bob: <attached: IMG-0001.jpg>\n"
    "1/2/2023, 9:03 AM - Alice: sure\n"
)


def _write_export(folder: Path, text: str) -> Path:
    folder.mkdir(parents=True, exist_ok=True)
    (folder / "WhatsApp Chat with Bob.txt").write_text(text, encoding="utf-8")
    (folder / "IMG-0001.jpg").write_bytes(b"jpg")
    return folder


def test_engine_config_from_env() -> None:
    """The omitted-media flag is read from the environment."""

    def flag(value: str) -> bool:
        return EngineConfig.from_env(
            {BEST_EFFORT_OMITTED_ENV: value}
        ).best_effort_omitted_media

    assert flag("Yes")
    assert flag(" 1 ")
    assert flag("true")
    assert not flag("0")
    assert not flag("")
    assert not EngineConfig.from_env({}).best_effort_omitted_media


def test_write_and_load_conversations_round_trip(tmp_path: Path) -> None:
    """Written state loads back with the same messages and summaries."""

    parsed = parse_source(FIRST_EXPORT, "Bob", session=ParseSession())
    merged = merge_conversations([parsed])
    path = write_conversations(tmp_path / "out" / "state.json", merged)

    loaded = load_conversations(path)

    assert len(loaded) == 1
    assert loaded[0].messages == merged[0].messages
    assert loaded[0].participants == merged[0].participants
    assert loaded[0].last_timestamp == merged[0].last_timestamp
    assert loaded[0].preview == merged[0].preview
    assert max_sequence(loaded) == 2
    assert max_sequence([]) is None


def test_load_conversations_tolerates_damage(tmp_path: Path) -> None:
    """Missing or unusable state files load as empty."""

    assert load_conversations(tmp_path / "missing.json") == []

    empty = tmp_path / "empty.json"
    empty.write_text('{"version": 1, "conversations": []}', encoding="utf-8")
    assert load_conversations(empty) == []

    partial = tmp_path / "partial.json"
    partial.write_text(
        '{"conversations": [{"title": "X", "messages": [{"sequence": 0, '
        '"text": "hi", "sender_key": "A", "sender": "A"},]}]}',
        encoding="utf-8",
    )
    [conversation] = load_conversations(partial)
    assert conversation.title == "X"
    assert conversation.messages[0].text == "hi"
    assert conversation.messages[0].timestamp is None

    damaged = tmp_path / "damaged.json"
    damaged.write_text(
        '{"conversations": [{"title": "Y", "participants": [{"key": "a", '
        '"count": "lots"}, "junk"], "messages": [{"sequence": 3, "text": "ok"}]}]}',
        encoding="utf-8",
    )
    [conversation] = load_conversations(damaged)
    assert conversation.title == "Y"
    assert [(p.key, p.count) for p in conversation.participants] == [("a", 0)]
    assert max_sequence([conversation]) == 3


def test_main_parses_and_merges_with_state(tmp_path: Path, capsys) -> None:
    """A second run merges new exports into the earlier output."""

    first_dir = _write_export(tmp_path / "first", FIRST_EXPORT)
    second_dir = _write_export(tmp_path / "second", SECOND_EXPORT)
    first_out = tmp_path / "first.json"
    second_out = tmp_path / "second.json"

    main(["--input", str(first_dir), "-o", str(first_out), "--no-progress"])
    out = capsys.readouterr().out
    assert "sources ok=1, fail=0, total=1" in out

    data = json.loads(first_out.read_text(encoding="utf-8"))
    [conv] = data["conversations"]
    assert conv["title"] == "Bob"
    assert [m["sequence"] for m in conv["messages"]] == [0, 1, 2]
    assert conv["messages"][2]["attachment"]["display_name"] == "IMG-0001.jpg"
    assert conv["messages"][2]["attachment"]["missing"] is False
    assert conv["preview"] == "Attachment: IMG-0001.jpg"

    main(
        [
            "--input",
            str(second_dir),
            "--state",
            str(first_out),
            "-o",
            str(second_out),
            "--no-progress",
        ]
    )
    capsys.readouterr()

    data = json.loads(second_out.read_text(encoding="utf-8"))
    [conv] = data["conversations"]
    texts = [m["text"] for m in conv["messages"]]
    assert texts == ["Hi", "pizza tonight?", "", "sure"]
    # Earlier messages keep their sequences; new ones continue after them
    assert [m["sequence"] for m in conv["messages"]] == [0, 1, 2, 4]
    assert conv["last_sequence"] == 4


def test_main_validate_and_search(tmp_path: Path, capsys) -> None:
    """The validate and search subcommands read a merged file."""

    folder = _write_export(tmp_path / "chat", FIRST_EXPORT)
    merged = tmp_path / "merged.json"
    main(["--input", str(folder), "-o", str(merged), "--no-progress"])
    capsys.readouterr()

    main(["validate", str(merged)])
    assert "ok=1, bad=0, total=1" in capsys.readouterr().out

    main(["search", str(merged), "PIZZA"])
    out = capsys.readouterr().out
    assert "Bob: pizza tonight?" in out
    assert "1 match(es)" in out

    main(["search", str(merged), "pizza", "--chat", "nobody"])
    assert "0 match(es)" in capsys.readouterr().out


def test_main_validate_rejects_bad_file(tmp_path: Path, capsys) -> None:
    """Structural problems make validation exit non-zero."""

    bad = tmp_path / "bad.json"
    bad.write_text(
        '{"conversations": [{"title": "X", "messages": []}]}', encoding="utf-8"
    )
    with pytest.raises(SystemExit):
        main(["validate", str(bad)])
    assert "bad=1" in capsys.readouterr().out


def test_main_requires_input() -> None:
    """Running without inputs or a subcommand exits."""

    with pytest.raises(SystemExit):
        main([])


def test_main_skips_unreadable_inputs(tmp_path: Path, capsys) -> None:
    """A bad input path is reported and the other inputs still merge."""

    folder = _write_export(tmp_path / "chat", FIRST_EXPORT)
    merged = tmp_path / "merged.json"
    main(
        [
            "--input",
            str(tmp_path / "missing.zip"),
            str(folder),
            "-o",
            str(merged),
            "--no-progress",
        ]
    )

    captured = capsys.readouterr()
    assert "[FAIL]" in captured.err
    assert "conversations=1, messages=3" in captured.out
