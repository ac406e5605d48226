from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class FleetCategory(StrEnum):
    INFLIGHT = "inflight"
    LANDED = "landed"
    PARKED = "parked"
    PENDING = "pending"


# Units waiting for the state-changing action are listed here.
AVAILABLE_CATEGORY = FleetCategory.LANDED
# Units move here right after the action.
IN_PROGRESS_CATEGORY = FleetCategory.INFLIGHT


@dataclass(slots=True, frozen=True)
class FleetComposition:
    inflight: int = 0
    landed: int = 0
    parked: int = 0
    pending: int = 0

    @property
    def total(self) -> int:
        return self.inflight + self.landed + self.parked + self.pending

    def count(self, category: FleetCategory) -> int:
        return int(getattr(self, category.value))

    @classmethod
    def from_counts(cls, counts: dict[FleetCategory, int]) -> FleetComposition:
        return cls(**{category.value: max(0, int(counts.get(category, 0))) for category in FleetCategory})

    def to_dict(self) -> dict[str, int]:
        return {category.value: self.count(category) for category in FleetCategory}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> FleetComposition:
        if not isinstance(data, dict):
            return cls()
        counts: dict[FleetCategory, int] = {}
        for category in FleetCategory:
            raw = data.get(category.value, 0)
            counts[category] = raw if isinstance(raw, int) and not isinstance(raw, bool) else 0
        return cls.from_counts(counts)


@dataclass(slots=True, frozen=True)
class FleetSnapshot:
    total: int
    composition: FleetComposition
    from_cache: bool = False
