"""
Tests for date-order inference and timestamp reconstruction.
"""

from __future__ import annotations

from datetime import datetime

import pytest

from chat.models import RawMessageRecord
from chat.timestamps import (
    DateOrder,
    format_timestamp_label,
    infer_date_order,
    parse_clock_time,
    parse_date_label,
    parse_date_time,
)


def _records(*dates: str) -> list[RawMessageRecord]:
    return [RawMessageRecord(raw_date=d, raw_time="9:00", body="x") for d in dates]


def test_infer_date_order_votes() -> None:
    """Unambiguous dates decide the order; ties stay day-first."""

    assert infer_date_order(_records("13/1/2023", "2/2/2023")) == DateOrder.DAY_FIRST
    assert infer_date_order(_records("1/13/2023", "2/2/2023")) == DateOrder.MONTH_FIRST
    assert infer_date_order(_records("13/1/2023", "1/13/2023")) == DateOrder.DAY_FIRST
    assert infer_date_order(_records("1/2/2023")) == DateOrder.DAY_FIRST
    assert infer_date_order([]) == DateOrder.DAY_FIRST


def test_infer_date_order_respects_sample_size() -> None:
    """Records past the sample window do not vote."""

    records = _records("1/2/2023", "1/13/2023")
    assert infer_date_order(records, sample_size=1) == DateOrder.DAY_FIRST
    assert infer_date_order(records, sample_size=2) == DateOrder.MONTH_FIRST


@pytest.mark.parametrize(
    "raw_time, expected",
    [
        ("12:00 AM", (0, 0, 0)),
        ("12:30 pm", (12, 30, 0)),
        ("11:59 PM", (23, 59, 0)),
        ("21:04:11", (21, 4, 11)),
        ("9:05\u202fam", (9, 5, 0)),
        ("9 AM", None),
        ("noon", None),
        ("\u0669:\u0660\u0660", None),
    ],
)
def test_parse_clock_time(raw_time, expected) -> None:
    """Meridiem markers map to 24-hour clock values."""

    assert parse_clock_time(raw_time) == expected


def test_parse_date_time_applies_order_and_two_digit_years() -> None:
    """Day/month follow the inferred order and ``YY`` means ``20YY``."""

    assert parse_date_time("5/6/23", "21:04:11", DateOrder.DAY_FIRST) == datetime(
        2023, 6, 5, 21, 4, 11
    )
    assert parse_date_time("5/6/2023", "9:00 AM", DateOrder.MONTH_FIRST) == datetime(
        2023, 5, 6, 9, 0
    )


def test_parse_date_time_rejects_impossible_values() -> None:
    """Impossible calendar or clock values produce no timestamp."""

    assert parse_date_time("31/2/2023", "9:00", DateOrder.DAY_FIRST) is None
    assert parse_date_time("1/2/2023", "25:00", DateOrder.DAY_FIRST) is None
    assert parse_date_time("1-2-2023", "9:00", DateOrder.DAY_FIRST) is None
    assert parse_date_time("1/2/2023", "later", DateOrder.DAY_FIRST) is None


def test_timestamp_labels_round_trip() -> None:
    """Stored labels parse back to the same naive datetime."""

    value = datetime(2023, 2, 1, 9, 30)
    label = format_timestamp_label(value)

    assert label == "2023-02-01T09:30:00"
    assert parse_date_label(label) == value
    assert parse_date_label("2023-02-01 09:30") == value
    assert parse_date_label("2023-02-01T09:30:00Z") == value
    assert format_timestamp_label(None) is None
    assert parse_date_label("") is None
    assert parse_date_label("yesterday") is None
