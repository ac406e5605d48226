from __future__ import annotations

from datetime import datetime, timezone

import pytest

from fleet_sync.domain.models.unit import PrecisionLevel
from fleet_sync.domain.rules.timestamps import (
    convert_relative,
    departure_text_from_progress,
    is_newer,
    normalize_instant,
    unit_hash,
)

# Wednesday
REFERENCE = datetime(2026, 3, 18, 14, 20, tzinfo=timezone.utc)


def _utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("text", "expected", "precision"),
    [
        ("5 hours ago", _utc(2026, 3, 18, 9, 30), PrecisionLevel.SLOT),
        ("1 hour ago", _utc(2026, 3, 18, 13, 30), PrecisionLevel.SLOT),
        ("3 days ago", _utc(2026, 3, 15), PrecisionLevel.DAY),
        ("1 week ago", _utc(2026, 3, 9), PrecisionLevel.WEEK),
        ("2 months ago", _utc(2026, 1, 1), PrecisionLevel.MONTH),
        ("14 months ago", _utc(2025, 1, 1), PrecisionLevel.MONTH),
        ("1 year ago", _utc(2025, 1, 1), PrecisionLevel.YEAR),
        ("2 Years Ago", _utc(2024, 1, 1), PrecisionLevel.YEAR),
    ],
)
def test_unit_word_maps_to_rounding_and_precision(text: str, expected: datetime, precision: PrecisionLevel) -> None:
    converted = convert_relative(text, REFERENCE)

    assert converted.timestamp == expected
    assert converted.precision_level is precision
    assert converted.original == text


@pytest.mark.parametrize(
    ("reference", "expected"),
    [
        (_utc(2026, 3, 18, 14, 14), _utc(2026, 3, 18, 12, 0)),
        (_utc(2026, 3, 18, 14, 15), _utc(2026, 3, 18, 12, 30)),
        (_utc(2026, 3, 18, 14, 44), _utc(2026, 3, 18, 12, 30)),
        (_utc(2026, 3, 18, 14, 45), _utc(2026, 3, 18, 13, 0)),
        (_utc(2026, 3, 18, 23, 50), _utc(2026, 3, 18, 22, 0)),
    ],
)
def test_hour_rounding_slot_boundaries(reference: datetime, expected: datetime) -> None:
    assert convert_relative("2 hours ago", reference).timestamp == expected


def test_hour_rounding_carries_into_next_day() -> None:
    converted = convert_relative("1 hour ago", _utc(2026, 3, 19, 0, 50))

    assert converted.timestamp == _utc(2026, 3, 19, 0, 0)


def test_month_arithmetic_does_not_overflow_short_months() -> None:
    converted = convert_relative("1 month ago", _utc(2026, 3, 31, 8, 0))

    assert converted.timestamp == _utc(2026, 2, 1)


def test_week_rounding_from_sunday_goes_back_to_monday() -> None:
    sunday = _utc(2026, 3, 22, 10, 0)

    assert convert_relative("0 weeks ago", sunday).timestamp == _utc(2026, 3, 16)


@pytest.mark.parametrize("text", ["yesterday", "", "just now", "hours ago"])
def test_unparseable_text_degrades_to_reference_with_day_precision(text: str) -> None:
    converted = convert_relative(text, REFERENCE)

    assert converted.timestamp == REFERENCE
    assert converted.precision_level is PrecisionLevel.DAY


@pytest.mark.parametrize(
    "text",
    ["3000 years ago", "50000 months ago", "99999999 days ago", "99999999 weeks ago", "999999999999 hours ago"],
)
def test_out_of_range_amount_degrades_to_reference(text: str) -> None:
    converted = convert_relative(text, REFERENCE)

    assert converted.timestamp == REFERENCE
    assert converted.precision_level is PrecisionLevel.DAY
    assert converted.original == text


@pytest.mark.parametrize(
    "text",
    ["3 hours ago", "4 days ago", "2 weeks ago", "7 months ago", "3 years ago"],
)
def test_normalizing_a_converted_instant_is_idempotent(text: str) -> None:
    converted = convert_relative(text, REFERENCE)

    assert normalize_instant(converted.timestamp, converted.precision_level) == converted.timestamp


def test_naive_reference_is_treated_as_utc() -> None:
    converted = convert_relative("1 day ago", datetime(2026, 3, 18, 14, 20))

    assert converted.timestamp == _utc(2026, 3, 17)
    assert converted.timestamp.tzinfo is not None


def test_is_newer_is_strict() -> None:
    earlier = _utc(2026, 3, 18, 10, 0)
    later = _utc(2026, 3, 18, 10, 30)

    assert is_newer(later, earlier)
    assert not is_newer(earlier, later)
    assert not is_newer(earlier, earlier)


def test_unit_hash_is_stable_and_tracks_changes() -> None:
    stamp = _utc(2026, 3, 18, 9, 30)
    first = unit_hash("LU-001", stamp, 10)

    assert first == unit_hash("LU-001", stamp, 10)
    assert first != unit_hash("LU-001", stamp, 11)
    assert first != unit_hash("LU-002", stamp, 10)
    assert int(first, 16) >= 0
    assert unit_hash("LU-001", None, 0) == unit_hash("LU-001", None, 0)


@pytest.mark.parametrize(
    ("row_text", "expected"),
    [
        ("LU-001 50.00%10:00:00", "10 hours ago"),
        ("LU-001 80.00%06:00:00", "1 day ago"),
        ("LU-001 90.00%05:00:00", "1 day ago"),
        ("LU-001 42.00%02:00:00", "1 hour ago"),
        ("LU-001 0.50%05:58:12", "1 hour ago"),
        ("LU-001 100.00%00:00:00", None),
        ("LU-001 landed", None),
    ],
)
def test_departure_text_from_progress(row_text: str, expected: str | None) -> None:
    assert departure_text_from_progress(row_text) == expected
