from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from fleet_sync.domain.models.fleet import FleetComposition, FleetSnapshot
from fleet_sync.domain.models.unit import Unit, UnitId, format_instant, parse_instant
from fleet_sync.domain.rules.timestamps import unit_hash

log = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class UnitSnapshot:
    label: str
    last_event_timestamp: datetime | None
    last_event_ref: str | None
    total_events: int
    hash: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "registration": self.label,
            "lastFlightTimestamp": format_instant(self.last_event_timestamp) if self.last_event_timestamp else None,
            "lastFlightRoute": self.last_event_ref,
            "totalFlights": self.total_events,
            "hash": self.hash,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UnitSnapshot:
        total = data.get("totalFlights", 0)
        return cls(
            label=str(data.get("registration") or ""),
            last_event_timestamp=parse_instant(data.get("lastFlightTimestamp")),
            last_event_ref=data.get("lastFlightRoute"),
            total_events=total if isinstance(total, int) and not isinstance(total, bool) else 0,
            hash=str(data.get("hash") or ""),
        )


@dataclass(slots=True, frozen=True)
class SnapshotCache:
    last_run_timestamp: datetime | None = None
    total_fleet_size: int = 0
    configured_percentage: float | None = None
    fleet_composition: FleetComposition = field(default_factory=FleetComposition)
    units: dict[str, UnitSnapshot] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> SnapshotCache:
        return cls()

    @property
    def has_fleet_size(self) -> bool:
        return self.total_fleet_size > 0

    def watermark(self, unit_id: UnitId | str) -> datetime | None:
        snapshot = self.units.get(str(unit_id))
        return snapshot.last_event_timestamp if snapshot else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "lastRunTimestamp": format_instant(self.last_run_timestamp) if self.last_run_timestamp else None,
            "totalFleetSize": self.total_fleet_size,
            "departurePercentage": self.configured_percentage,
            "fleetComposition": self.fleet_composition.to_dict(),
            "planesSnapshot": {unit_id: snapshot.to_dict() for unit_id, snapshot in self.units.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SnapshotCache:
        if not isinstance(data, dict):
            raise ValueError("snapshot cache document must be an object")
        raw_units = data.get("planesSnapshot") or {}
        if not isinstance(raw_units, dict):
            raise ValueError("planesSnapshot must be an object")
        total = data.get("totalFleetSize", 0)
        if not isinstance(total, int) or isinstance(total, bool):
            raise ValueError(f"totalFleetSize must be an integer, got {total!r}")
        percentage = data.get("departurePercentage")
        return cls(
            last_run_timestamp=parse_instant(data.get("lastRunTimestamp")),
            total_fleet_size=max(0, total),
            configured_percentage=float(percentage) if isinstance(percentage, (int, float)) else None,
            fleet_composition=FleetComposition.from_dict(data.get("fleetComposition")),
            units={
                str(unit_id): UnitSnapshot.from_dict(item)
                for unit_id, item in raw_units.items()
                if isinstance(item, dict)
            },
        )


def build_unit_snapshot(unit: Unit) -> UnitSnapshot:
    last = unit.last_event
    last_timestamp = last.timestamp if last else None
    return UnitSnapshot(
        label=unit.label,
        last_event_timestamp=last_timestamp,
        last_event_ref=last.route if last else None,
        total_events=len(unit.history),
        hash=unit_hash(unit.label, last_timestamp, len(unit.history)),
    )


def build_snapshot_cache(
    dataset: list[Unit],
    fleet: FleetSnapshot,
    *,
    configured_percentage: float,
    now: datetime,
) -> SnapshotCache:
    """Rebuild the whole cache from the final merged dataset."""
    cache = SnapshotCache(
        last_run_timestamp=now,
        total_fleet_size=fleet.total,
        configured_percentage=configured_percentage,
        fleet_composition=fleet.composition,
        units={str(unit.unit_id): build_unit_snapshot(unit) for unit in dataset},
    )
    log.debug("Snapshot cache rebuilt units=%s total_fleet_size=%s", len(cache.units), cache.total_fleet_size)
    return cache
