from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from fleet_sync.application.ports import RawEvent, RawMetrics, UnitDetails
from fleet_sync.config import ProcessingConfig
from fleet_sync.domain.models.fleet import FleetCategory
from fleet_sync.domain.models.unit import HistoryEntry, Passengers, PrecisionLevel, UnitId, UnitRef
from fleet_sync.infrastructure.simulation.fleet_simulator import InMemoryFleetCollaborator, SimulatedUnit

NOW = datetime(2026, 3, 18, 14, 20, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current


class FakeMonotonic:
    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class TimedCollaborator(InMemoryFleetCollaborator):
    """Simulator where opening a unit costs wall-clock time."""

    def __init__(self, *args, monotonic: FakeMonotonic, seconds_per_unit: float, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._monotonic = monotonic
        self._seconds_per_unit = seconds_per_unit

    async def open_unit(self, unit: UnitRef) -> None:
        self._monotonic.advance(self._seconds_per_unit)
        await super().open_unit(unit)


def entry(
    timestamp: datetime,
    *,
    precision: PrecisionLevel = PrecisionLevel.SLOT,
    route: str = "ELQ-FRA",
    revenue: float | None = 12345.0,
    cabins: tuple[int | None, int | None, int | None] = (150, 20, 4),
) -> HistoryEntry:
    return HistoryEntry(
        timestamp=timestamp,
        precision_level=precision,
        route=route,
        route_name="L-0008",
        passengers=Passengers.from_cabins(*cabins),
        revenue_usd=revenue,
    )


def raw_event(time_text: str, *, route: str = "ELQ-FRA", revenue: str = "$12,345") -> RawEvent:
    return RawEvent(
        time_text=time_text,
        route=route,
        route_name="L-0008",
        quotas_text="1,234",
        economy=150,
        business=20,
        first=4,
        cargo_text="1,200 Lbs",
        revenue_text=revenue,
    )


def sim_unit(unit_id: str, *, events: list[str] | None = None, progress: str | None = None) -> SimulatedUnit:
    return SimulatedUnit(
        ref=UnitRef(unit_id=UnitId(unit_id), label=f"LU-{unit_id}", progress_text=progress),
        details=UnitDetails(aircraft_type="A320", delivered_text="6 months ago"),
        metrics=RawMetrics(hours_cycles_text="1200 / 410", wear_text="12.5%", range_text="6,300 km"),
        feed=[raw_event(text) for text in (events or [])],
    )


def make_fleet(
    landed: list[SimulatedUnit] | None = None,
    inflight: list[SimulatedUnit] | None = None,
    parked: list[SimulatedUnit] | None = None,
    pending: list[SimulatedUnit] | None = None,
) -> dict[FleetCategory, list[SimulatedUnit]]:
    return {
        FleetCategory.LANDED: landed or [],
        FleetCategory.INFLIGHT: inflight or [],
        FleetCategory.PARKED: parked or [],
        FleetCategory.PENDING: pending or [],
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def live_config() -> ProcessingConfig:
    return ProcessingConfig(percentage=0.5, min_delay_ms=100, max_delay_ms=200, dry_run=False)


def hours_ago(hours: float) -> datetime:
    return NOW - timedelta(hours=hours)
