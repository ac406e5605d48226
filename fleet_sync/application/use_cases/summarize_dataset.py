from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from fleet_sync.domain.models.unit import PrecisionLevel, Unit


@dataclass(slots=True, frozen=True)
class DatasetSummary:
    units: int
    units_with_history: int
    events: int
    revenue_usd: float
    events_by_precision: dict[str, int] = field(default_factory=dict)
    top_routes: list[tuple[str, int]] = field(default_factory=list)


def summarize_dataset(dataset: list[Unit], *, top: int = 5) -> DatasetSummary:
    precision_counts: Counter[str] = Counter({level.value: 0 for level in PrecisionLevel})
    route_counts: Counter[str] = Counter()
    revenue = 0.0
    events = 0
    for unit in dataset:
        for entry in unit.history:
            events += 1
            precision_counts[entry.precision_level.value] += 1
            if entry.route:
                route_counts[entry.route] += 1
            if entry.revenue_usd is not None:
                revenue += entry.revenue_usd
    return DatasetSummary(
        units=len(dataset),
        units_with_history=sum(1 for unit in dataset if unit.history),
        events=events,
        revenue_usd=revenue,
        events_by_precision=dict(precision_counts),
        top_routes=route_counts.most_common(top),
    )
