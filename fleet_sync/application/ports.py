from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from fleet_sync.application.state.snapshots import SnapshotCache
from fleet_sync.domain.models.fleet import FleetCategory
from fleet_sync.domain.models.unit import Unit, UnitRef


class ClockPort(Protocol):
    def now(self) -> datetime: ...


@dataclass(slots=True, frozen=True)
class RawEvent:
    """One event row as the collaborator reads it, before conversion."""

    time_text: str
    route: str | None = None
    route_name: str | None = None
    quotas_text: str | None = None
    economy: int | None = None
    business: int | None = None
    first: int | None = None
    cargo_text: str | None = None
    revenue_text: str | None = None


@dataclass(slots=True, frozen=True)
class RawMetrics:
    """Detail-panel cells of the opened unit, as displayed."""

    hours_to_check_text: str | None = None
    range_text: str | None = None
    min_runway_text: str | None = None
    hours_cycles_text: str | None = None
    wear_text: str | None = None


@dataclass(slots=True, frozen=True)
class UnitDetails:
    aircraft_type: str | None = None
    delivered_text: str | None = None


class FleetCollaboratorPort(Protocol):
    """Observes and mutates units in the external system.

    Every call blocks until the external system has settled; at most one
    call is in flight at a time.
    """

    async def count_category(self, category: FleetCategory) -> int: ...

    async def switch_category(self, category: FleetCategory) -> None: ...

    async def head_of_queue(self, category: FleetCategory) -> UnitRef | None: ...

    async def list_units(self, category: FleetCategory) -> list[UnitRef]: ...

    async def open_unit(self, unit: UnitRef) -> None: ...

    async def perform_action(self, unit: UnitRef) -> bool: ...

    async def read_current_metrics(self) -> RawMetrics: ...

    async def read_unit_details(self) -> UnitDetails: ...

    async def read_event_feed(self) -> list[RawEvent]: ...

    async def close_current_view(self) -> None: ...


class SnapshotCacheRepoPort(Protocol):
    async def load(self) -> SnapshotCache: ...

    async def save(self, cache: SnapshotCache) -> None: ...


class DatasetRepoPort(Protocol):
    async def load(self) -> list[Unit]: ...

    async def save(self, dataset: list[Unit]) -> None: ...
