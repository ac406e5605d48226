from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import replace
from datetime import timedelta

from fleet_sync.domain.models.unit import HistoryEntry, Unit, UnitId

log = logging.getLogger(__name__)

SAME_EVENT_TOLERANCE = timedelta(minutes=60)


def same_event(left: HistoryEntry, right: HistoryEntry, tolerance: timedelta = SAME_EVENT_TOLERANCE) -> bool:
    """Two observations describe one logical event.

    Timestamps are imprecise, so equality is payload equality plus a
    time window rather than an exact timestamp match.
    """
    if left.route != right.route or left.revenue_usd != right.revenue_usd:
        return False
    if left.passengers != right.passengers:
        return False
    return abs(left.timestamp - right.timestamp) <= tolerance


def _preference_key(entry: HistoryEntry) -> tuple[int, float, str]:
    return (
        entry.precision_level.rank,
        entry.timestamp.timestamp(),
        json.dumps(entry.to_dict(), sort_keys=True, default=str),
    )


def choose_better(left: HistoryEntry, right: HistoryEntry) -> HistoryEntry:
    """Higher precision wins; on equal precision the later read wins."""
    return left if _preference_key(left) >= _preference_key(right) else right


def merge_history(
    existing: Iterable[HistoryEntry],
    new: Iterable[HistoryEntry],
    *,
    tolerance: timedelta = SAME_EVENT_TOLERANCE,
) -> list[HistoryEntry]:
    """Fold new observations into a unit's history.

    Candidates are visited best-first; each one is kept unless it is the
    same event as an entry already kept. The result is newest-first and
    merging the same ``new`` a second time leaves it unchanged.
    """
    candidates = sorted([*existing, *new], key=_preference_key, reverse=True)
    kept: list[HistoryEntry] = []
    dropped = 0
    for candidate in candidates:
        if any(same_event(candidate, entry, tolerance) for entry in kept):
            dropped += 1
            continue
        kept.append(candidate)
    kept.sort(key=lambda entry: entry.timestamp, reverse=True)
    if dropped:
        log.debug("History merge dropped duplicates count=%s kept=%s", dropped, len(kept))
    return kept


def merge_unit(existing: Unit | None, observed: Unit) -> Unit:
    if existing is None:
        return observed.with_history(merge_history([], observed.history))
    history = merge_history(existing.history, observed.history)
    merged = replace(
        observed,
        aircraft_type=observed.aircraft_type or existing.aircraft_type,
        delivered=observed.delivered or existing.delivered,
        metadata=replace(
            observed.metadata,
            last_scraped=observed.metadata.last_scraped or existing.metadata.last_scraped,
        ),
    )
    return merged.with_history(history)


def merge_dataset(dataset: Iterable[Unit], observed: Iterable[Unit]) -> list[Unit]:
    """Merge freshly observed units into the persisted dataset.

    Existing units keep their position; units seen for the first time are
    appended in observation order. Nothing is ever removed.
    """
    merged: dict[UnitId, Unit] = {unit.unit_id: unit for unit in dataset}
    appended = 0
    updated = 0
    for unit in observed:
        previous = merged.get(unit.unit_id)
        if previous is None:
            appended += 1
        else:
            updated += 1
        merged[unit.unit_id] = merge_unit(previous, unit)
    log.info("Dataset merge units=%s updated=%s appended=%s", len(merged), updated, appended)
    return list(merged.values())
