"""
Tests for line segmentation, sender classification, attachments, and replies.
"""

from __future__ import annotations

from chat.models import EMPTY_SENDER_KEY, UNNAMED_SENDER_LABEL
from chatlog_merge.parsers import (
    extract_attachment_info,
    normalize_omitted_kind,
    normalize_sender_key,
    parse_message_start,
    parse_reply_context,
    segment_messages,
    sender_label_from_key,
    split_sender_and_text,
)


def test_segment_messages_handles_both_line_forms_and_continuations() -> None:
    """Continuation lines join the previous record and preamble is dropped."""

    text = (
        "Messages and calls are end-to-end encrypted.\n"
        "1/2/2023, 9:00 AM - Alice: Hi\n"
        "there\n"
        "[1/2/2023, 09:00:12] Bob: Yo\n"
    )
    records = segment_messages(text)

    assert [(r.raw_date, r.raw_time) for r in records] == [
        ("1/2/2023", "9:00 AM"),
        ("1/2/2023", "09:00:12"),
    ]
    assert records[0].body == "Alice: Hi\nthere"
    # Trailing newline becomes an empty continuation line
    assert records[1].body.rstrip("\n") == "Bob: Yo"


def test_segment_messages_accepts_crlf_bom_and_narrow_spaces() -> None:
    """Windows line endings, a BOM, and U+202F do not break segmentation."""

    text = (
        "\ufeff1/2/2023, 9:00\u202fAM - Alice: Hi\r\n"
        "2/2/2023, 10:00\u202fPM - Bob: Yo"
    )
    records = segment_messages(text)

    assert len(records) == 2
    assert records[0].raw_time == "9:00 AM"
    assert records[0].body == "Alice: Hi"
    assert records[1].raw_date == "2/2/2023"


def test_segment_messages_without_any_line_start_is_empty() -> None:
    """Text with no recognizable message yields no records."""

    assert segment_messages("just some notes\nno dates here") == []
    assert segment_messages("") == []


def test_parse_message_start_uses_first_dash_after_time() -> None:
    """The time field ends at the first `` - `` separator."""

    assert parse_message_start("1/2/2023, 9:00 AM - Alice: a - b") == (
        "1/2/2023",
        "9:00 AM",
        "Alice: a - b",
    )
    assert parse_message_start("not a message line") is None


def test_split_sender_and_text_classifies_sender_and_system() -> None:
    """The first ``": "`` splits the sender; bodies without it are system."""

    split = split_sender_and_text("Alice: Hi: there")
    assert (split.sender, split.text, split.is_system) == ("Alice", "Hi: there", False)

    system = split_sender_and_text("Alice added Bob")
    assert system.is_system
    assert system.text == "Alice added Bob"
    assert system.sender == ""


def test_split_sender_and_text_rejects_overlong_sender() -> None:
    """A 90 character candidate name marks the whole body as a system message."""

    body = "x" * 90 + ": hello"
    split = split_sender_and_text(body)

    assert split.is_system
    assert split.text == body

    assert not split_sender_and_text("y" * 80 + ": hello").is_system


def test_empty_sender_maps_to_sentinel_key_and_label() -> None:
    """Senders that clean to nothing share the EMPTY sentinel identity."""

    split = split_sender_and_text("\u200e: hi")
    assert not split.is_system
    key = normalize_sender_key(split.sender)

    assert key == EMPTY_SENDER_KEY
    assert sender_label_from_key(key, split.sender) == UNNAMED_SENDER_LABEL
    assert normalize_sender_key("\u200eAlice ") == "Alice"


def test_file_attached_declaration_keeps_caption() -> None:
    """``(file attached)`` yields the file name and the following caption."""

    info = extract_attachment_info("IMG-0001.jpg (file attached)\nlook at this")

    assert info.file_name == "IMG-0001.jpg"
    assert info.text == "look at this"
    assert not info.omitted


def test_attached_token_is_removed_from_text() -> None:
    """An inline ``<attached: ...>`` token is extracted and stripped."""

    info = extract_attachment_info("<attached: 00000012-PHOTO-2023.jpg> nice")

    assert info.file_name == "00000012-PHOTO-2023.jpg"
    assert info.text == "nice"


def test_file_attached_takes_priority_over_attached_token() -> None:
    """Rules are tried in order and the first match wins."""

    info = extract_attachment_info("a.jpg (file attached) <attached: b.jpg>")

    assert info.file_name == "a.jpg"
    assert info.text == "<attached: b.jpg>"


def test_omitted_placeholders_report_kind_hints() -> None:
    """Omitted-media placeholders carry a normalized kind and no file name."""

    media = extract_attachment_info("<Media omitted>")
    assert media.omitted
    assert media.file_name == ""
    assert media.omitted_kind == "media"

    legacy = extract_attachment_info("image omitted")
    assert legacy.omitted_kind == "image"

    voice = extract_attachment_info("<voice note omitted>\nsorry")
    assert voice.omitted_kind == "audio"
    assert voice.text == "sorry"


def test_normalize_omitted_kind_falls_back_to_media() -> None:
    """Unknown and empty hints become the generic ``media`` kind."""

    assert normalize_omitted_kind("Document") == "document"
    assert normalize_omitted_kind("file") == "document"
    assert normalize_omitted_kind("GIF") == "gif"
    assert normalize_omitted_kind("contact card") == "media"
    assert normalize_omitted_kind(None) == "media"


def test_plain_text_has_no_attachment() -> None:
    """Text without a declaration passes through trimmed."""

    info = extract_attachment_info("  hello there  ")

    assert info.file_name == ""
    assert not info.omitted
    assert info.text == "hello there"


def test_parse_reply_context_variants() -> None:
    """Each reply header form yields the target and the unquoted line."""

    mine = parse_reply_context('You replied to Alice\n"see you at 8"\non my way')
    assert mine is not None
    assert mine.context.target_name == "Alice"
    assert mine.context.quoted_text == "see you at 8"
    assert mine.body_text == "on my way"

    theirs = parse_reply_context("Bob replied to you\n\u201chey\u201d\nok")
    assert theirs is not None
    assert theirs.context.target_name == "Bob"
    assert theirs.context.quoted_text == "hey"

    third = parse_reply_context("Carol replied to Dave\nquoted\nbody")
    assert third is not None
    assert third.context.target_name == "Dave"

    bare = parse_reply_context("Replying to Eve\nquoted")
    assert bare is not None
    assert bare.context.target_name == "Eve"
    assert bare.body_text == ""


def test_parse_reply_context_requires_header_and_quote() -> None:
    """Single lines and ordinary text are not replies."""

    assert parse_reply_context("You replied to Alice") is None
    assert parse_reply_context("hello\nworld") is None
    assert parse_reply_context("") is None


def test_non_ascii_digits_do_not_start_messages() -> None:
    """Dates written with non-ASCII digits are continuation lines."""

    text = (
        "1/2/2023, 9:00 AM - Alice: Hi\n"
        "\u0661/\u0662/\u0662\u0660\u0662\u0663, 9:00 AM - Bob: Yo"
    )
    records = segment_messages(text)

    assert len(records) == 1
    assert records[0].body.endswith("Bob: Yo")
