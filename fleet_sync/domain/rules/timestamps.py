"""Conversion of fuzzy relative-time text into absolute instants.

The feed only says "5 hours ago" or "3 months ago", so every converted
instant carries a precision level telling how far it can be trusted.
Rounding is deterministic for a given reference instant:

* hours  -> nearest 30-minute slot of (reference - N hours), precision ``slot``
* days   -> midnight of (reference date - N days), precision ``day``
* weeks  -> Monday 00:00 of (reference date - 7N days), precision ``week``
* months -> 1st 00:00 of (reference month - N), precision ``month``
* years  -> Jan 1 00:00 of (reference year - N), precision ``year``

Rounding happens in the timezone of the reference instant; naive
references are taken as UTC. Results are returned in UTC.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone

from fleet_sync.domain.models.unit import ConvertedTimestamp, PrecisionLevel, ensure_utc, format_instant

log = logging.getLogger(__name__)

_RELATIVE_RE = re.compile(r"(\d+)\s*(hour|day|week|month|year)s?\s*ago", re.IGNORECASE)
_PROGRESS_RE = re.compile(r"(?<!\d)(\d+(?:\.\d+)?)%(\d{2}):(\d{2}):(\d{2})")

_UNIT_PRECISION = {
    "hour": PrecisionLevel.SLOT,
    "day": PrecisionLevel.DAY,
    "week": PrecisionLevel.WEEK,
    "month": PrecisionLevel.MONTH,
    "year": PrecisionLevel.YEAR,
}


def _with_reference_tz(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _midnight(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def _round_to_slot(value: datetime) -> datetime:
    minute = value.minute
    base = value.replace(minute=0, second=0, microsecond=0)
    if minute < 15:
        return base
    if minute < 45:
        return base.replace(minute=30)
    return base + timedelta(hours=1)


def _months_back(value: datetime, months: int) -> datetime:
    index = value.year * 12 + (value.month - 1) - months
    year, month_index = divmod(index, 12)
    return value.replace(year=year, month=month_index + 1, day=1)


def normalize_instant(value: datetime, precision: PrecisionLevel) -> datetime:
    """Round ``value`` down to the boundary its precision level implies.

    Applying it twice is a no-op; an instant already on a boundary of the
    given precision is returned unchanged.
    """
    value = _with_reference_tz(value)
    if precision is PrecisionLevel.SLOT:
        return _round_to_slot(value)
    if precision is PrecisionLevel.DAY:
        return _midnight(value)
    if precision is PrecisionLevel.WEEK:
        return _midnight(value - timedelta(days=value.weekday()))
    if precision is PrecisionLevel.MONTH:
        return _midnight(value.replace(day=1))
    return _midnight(value.replace(month=1, day=1))


def _degraded(reference: datetime, original: str) -> ConvertedTimestamp:
    return ConvertedTimestamp(
        timestamp=ensure_utc(reference),
        original=original,
        precision_level=PrecisionLevel.DAY,
    )


def _shift(reference: datetime, amount: int, unit: str) -> datetime:
    if unit == "hour":
        return reference - timedelta(hours=amount)
    if unit == "day":
        return reference - timedelta(days=amount)
    if unit == "week":
        return reference - timedelta(days=7 * amount)
    if unit == "month":
        return _months_back(reference, amount)
    return reference.replace(year=reference.year - amount, month=1, day=1)


def convert_relative(text: str, reference: datetime | None = None) -> ConvertedTimestamp:
    """Convert text like ``"5 hours ago"`` into an absolute instant.

    Unparseable text never fails: it degrades to the reference instant
    tagged with ``day`` precision. So does an amount too large to land
    inside the representable calendar.
    """
    reference = _with_reference_tz(reference or datetime.now(timezone.utc))
    original = text or ""
    match = _RELATIVE_RE.search(original)
    if match is None:
        log.debug("Relative time not recognised text=%r; using reference instant", original)
        return _degraded(reference, original)

    amount = int(match.group(1))
    unit = match.group(2).lower()
    precision = _UNIT_PRECISION[unit]
    try:
        shifted = ensure_utc(normalize_instant(_shift(reference, amount, unit), precision))
    except (ValueError, OverflowError):
        log.warning("Relative time out of range text=%r; using reference instant", original)
        return _degraded(reference, original)

    return ConvertedTimestamp(
        timestamp=shifted,
        original=original,
        precision_level=precision,
    )


def is_newer(candidate: datetime, reference: datetime) -> bool:
    return ensure_utc(candidate) > ensure_utc(reference)


def unit_hash(label: str, last_event_timestamp: datetime | None, total_events: int) -> str:
    """Non-cryptographic change-detection hash of a unit's summary.

    Not used to skip work yet; kept stable so stored hashes stay comparable.
    """
    stamp = format_instant(last_event_timestamp) if last_event_timestamp else "null"
    data = f"{label}-{stamp}-{total_events}"
    value = 0
    for char in data:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    if value & 0x80000000:
        value -= 0x100000000
    return format(abs(value), "x")


def departure_text_from_progress(row_text: str) -> str | None:
    """Derive a relative departure text from an in-progress row.

    Rows show ``"<percent>%HH:MM:SS"``: progress so far and time left.
    Returns e.g. ``"3 hours ago"`` or None when the row has no progress.
    """
    match = _PROGRESS_RE.search(row_text or "")
    if match is None:
        return None
    percent_complete = float(match.group(1))
    remaining_hours = int(match.group(2)) + int(match.group(3)) / 60 + int(match.group(4)) / 3600
    percent_remaining = 100.0 - percent_complete
    if percent_remaining <= 0:
        return None

    total_hours = remaining_hours / (percent_remaining / 100.0)
    elapsed_hours = total_hours * (percent_complete / 100.0)
    if elapsed_hours >= 24:
        days = int(elapsed_hours // 24)
        return f"{days} day{'s' if days > 1 else ''} ago"
    if elapsed_hours >= 1:
        hours = int(elapsed_hours)
        return f"{hours} hour{'s' if hours > 1 else ''} ago"
    return "1 hour ago"
