from __future__ import annotations

from datetime import datetime, timedelta, timezone

from conftest import NOW, entry

from fleet_sync.domain.models.unit import ConvertedTimestamp, PrecisionLevel, Unit, UnitId, UnitMetadata
from fleet_sync.domain.rules.merge import merge_dataset, merge_history, merge_unit, same_event

BASE = datetime(2026, 3, 18, 9, 30, tzinfo=timezone.utc)


def _unit(unit_id: str, history=None, **kwargs) -> Unit:
    return Unit(unit_id=UnitId(unit_id), label=f"LU-{unit_id}", **kwargs).with_history(history or [])


def test_observations_within_tolerance_collapse_to_one() -> None:
    merged = merge_history([entry(BASE)], [entry(BASE + timedelta(minutes=20))])

    assert len(merged) == 1


def test_observations_beyond_tolerance_stay_separate() -> None:
    merged = merge_history([entry(BASE)], [entry(BASE + timedelta(minutes=90))])

    assert len(merged) == 2


def test_different_payload_is_never_merged() -> None:
    merged = merge_history([entry(BASE, revenue=100.0)], [entry(BASE, revenue=200.0)])

    assert len(merged) == 2
    assert not same_event(entry(BASE, route="ELQ-FRA"), entry(BASE, route="FRA-ELQ"))


def test_higher_precision_wins_regardless_of_order() -> None:
    coarse = entry(datetime(2026, 3, 18, tzinfo=timezone.utc), precision=PrecisionLevel.DAY)
    fine = entry(datetime(2026, 3, 18, 0, 30, tzinfo=timezone.utc), precision=PrecisionLevel.SLOT)

    assert merge_history([coarse], [fine]) == [fine]
    assert merge_history([fine], [coarse]) == [fine]


def test_equal_precision_keeps_the_later_read() -> None:
    earlier = entry(BASE)
    later = entry(BASE + timedelta(minutes=30))

    assert merge_history([earlier], [later]) == [later]
    assert merge_history([later], [earlier]) == [later]


def test_merging_the_same_observations_twice_is_idempotent() -> None:
    existing = [entry(BASE - timedelta(days=2)), entry(BASE - timedelta(days=1))]
    new = [entry(BASE + timedelta(minutes=20)), entry(BASE)]

    once = merge_history(existing, new)
    twice = merge_history(once, new)

    assert twice == once


def test_history_is_sorted_newest_first() -> None:
    stamps = [BASE - timedelta(days=3), BASE, BASE - timedelta(days=1)]

    merged = merge_history([entry(stamps[0])], [entry(stamps[1]), entry(stamps[2])])

    assert [item.timestamp for item in merged] == sorted(stamps, reverse=True)


def test_merge_unit_keeps_previous_details_when_not_observed() -> None:
    delivered = ConvertedTimestamp(timestamp=BASE, original="6 months ago", precision_level=PrecisionLevel.MONTH)
    previous = _unit(
        "1",
        [entry(BASE - timedelta(days=1))],
        aircraft_type="A320",
        delivered=delivered,
        metadata=UnitMetadata(last_scraped=NOW - timedelta(days=1)),
    )
    observed = _unit("1", [entry(BASE)])

    merged = merge_unit(previous, observed)

    assert merged.aircraft_type == "A320"
    assert merged.delivered == delivered
    assert merged.metadata.total_events == 2
    assert merged.metadata.last_event_added == BASE
    assert merged.metadata.last_scraped == NOW - timedelta(days=1)


def test_merge_dataset_keeps_order_and_appends_new_units() -> None:
    dataset = [_unit("1", [entry(BASE)]), _unit("2")]
    observed = [_unit("3", [entry(BASE)]), _unit("1", [entry(BASE + timedelta(hours=5))])]

    merged = merge_dataset(dataset, observed)

    assert [unit.unit_id for unit in merged] == ["1", "2", "3"]
    assert merged[0].metadata.total_events == 2
    assert merged[1].history == []


def test_merge_dataset_never_removes_units() -> None:
    dataset = [_unit("1"), _unit("2")]

    assert [unit.unit_id for unit in merge_dataset(dataset, [])] == ["1", "2"]
