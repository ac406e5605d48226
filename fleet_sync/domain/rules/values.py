from __future__ import annotations

import re

_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")


def _to_float(text: str) -> float | None:
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def parse_number(raw: str | None) -> float | None:
    if not raw:
        return None
    return _to_float(_NON_NUMERIC_RE.sub("", raw))


def parse_usd(raw: str | None) -> float | None:
    if not raw:
        return None
    return _to_float(raw.replace("$", "").replace(",", "").strip())


def parse_percent(raw: str | None) -> float | None:
    if not raw:
        return None
    return _to_float(raw.replace("%", "").strip())


def parse_int(raw: str | None) -> int | None:
    if raw is None:
        return None
    text = str(raw).strip()
    match = re.match(r"-?\d+", text)
    return int(match.group(0)) if match else None


def parse_hours_cycles(raw: str | None) -> tuple[int | None, int | None]:
    """Split a ``"hours / cycles"`` cell into two integers."""
    if not raw:
        return None, None
    parts = [part.strip() for part in raw.split("/")]
    hours = parse_int(parts[0]) if parts and parts[0] else None
    cycles = parse_int(parts[1]) if len(parts) > 1 and parts[1] else None
    return hours, cycles
