from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from fleet_sync.application.ports import RawEvent, RawMetrics, UnitDetails
from fleet_sync.domain.errors import CollaboratorError
from fleet_sync.domain.models.fleet import AVAILABLE_CATEGORY, IN_PROGRESS_CATEGORY, FleetCategory
from fleet_sync.domain.models.unit import UnitId, UnitRef

log = logging.getLogger(__name__)

DEPARTED_PROGRESS_TEXT = "0.50%05:58:12"


@dataclass(slots=True)
class SimulatedUnit:
    ref: UnitRef
    details: UnitDetails = field(default_factory=UnitDetails)
    metrics: RawMetrics = field(default_factory=RawMetrics)
    feed: list[RawEvent] = field(default_factory=list)


class InMemoryFleetCollaborator:
    """Offline stand-in for the browser-driven collaborator.

    Units live in per-category lists in display order; acting on a unit
    moves it from the available list to the front of the in-progress list.
    """

    def __init__(
        self,
        categories: dict[FleetCategory, list[SimulatedUnit]],
        *,
        fail_action_for: set[str] | None = None,
        fail_read_for: set[str] | None = None,
    ) -> None:
        self._lists: dict[FleetCategory, list[SimulatedUnit]] = {
            category: list(categories.get(category, [])) for category in FleetCategory
        }
        self._fail_action_for = set(fail_action_for or ())
        self._fail_read_for = set(fail_read_for or ())
        self._current_category = AVAILABLE_CATEGORY
        self._opened: SimulatedUnit | None = None
        self.actions: list[UnitId] = []
        self.opened: list[UnitId] = []
        self.category_switches: list[FleetCategory] = []

    async def count_category(self, category: FleetCategory) -> int:
        return len(self._lists[category])

    async def switch_category(self, category: FleetCategory) -> None:
        self._current_category = category
        self.category_switches.append(category)

    async def head_of_queue(self, category: FleetCategory) -> UnitRef | None:
        units = self._lists[category]
        return units[0].ref if units else None

    async def list_units(self, category: FleetCategory) -> list[UnitRef]:
        return [unit.ref for unit in self._lists[category]]

    async def open_unit(self, unit: UnitRef) -> None:
        self._opened = self._find(unit.unit_id)
        self.opened.append(unit.unit_id)

    async def perform_action(self, unit: UnitRef) -> bool:
        if str(unit.unit_id) in self._fail_action_for:
            raise CollaboratorError(f"action failed for unit {unit.unit_id}")
        available = self._lists[AVAILABLE_CATEGORY]
        for index, candidate in enumerate(available):
            if candidate.ref.unit_id == unit.unit_id:
                moved = available.pop(index)
                moved.ref = UnitRef(
                    unit_id=moved.ref.unit_id,
                    label=moved.ref.label,
                    progress_text=DEPARTED_PROGRESS_TEXT,
                )
                self._lists[IN_PROGRESS_CATEGORY].insert(0, moved)
                self.actions.append(unit.unit_id)
                log.debug("Simulated action unit_id=%s", unit.unit_id)
                return True
        return False

    async def read_current_metrics(self) -> RawMetrics:
        return self._require_opened().metrics

    async def read_unit_details(self) -> UnitDetails:
        return self._require_opened().details

    async def read_event_feed(self) -> list[RawEvent]:
        opened = self._require_opened()
        if str(opened.ref.unit_id) in self._fail_read_for:
            raise CollaboratorError(f"event feed unreadable for unit {opened.ref.unit_id}")
        return list(opened.feed)

    async def close_current_view(self) -> None:
        self._opened = None

    def _require_opened(self) -> SimulatedUnit:
        if self._opened is None:
            raise CollaboratorError("no unit is open")
        return self._opened

    def _find(self, unit_id: UnitId) -> SimulatedUnit:
        for units in self._lists.values():
            for unit in units:
                if unit.ref.unit_id == unit_id:
                    return unit
        raise CollaboratorError(f"unit {unit_id} is not listed")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InMemoryFleetCollaborator:
        details_by_id: dict[str, dict[str, Any]] = data.get("units") or {}
        categories: dict[FleetCategory, list[SimulatedUnit]] = {}
        for category in FleetCategory:
            rows = (data.get("categories") or {}).get(category.value) or []
            categories[category] = [_simulated_unit(row, details_by_id.get(str(row["id"]), {})) for row in rows]
        return cls(
            categories,
            fail_action_for={str(item) for item in data.get("failActionFor") or []},
            fail_read_for={str(item) for item in data.get("failReadFor") or []},
        )

    @classmethod
    def from_file(cls, path: str | Path) -> InMemoryFleetCollaborator:
        return cls.from_dict(json.loads(Path(path).read_text(encoding="utf-8")))


def _simulated_unit(row: dict[str, Any], detail: dict[str, Any]) -> SimulatedUnit:
    return SimulatedUnit(
        ref=UnitRef(
            unit_id=UnitId(str(row["id"])),
            label=str(row.get("label") or row["id"]),
            progress_text=row.get("progress"),
        ),
        details=UnitDetails(
            aircraft_type=detail.get("aircraftType"),
            delivered_text=detail.get("delivered"),
        ),
        metrics=_raw_metrics(detail.get("metrics") or {}),
        feed=[
            RawEvent(
                time_text=str(event.get("time") or ""),
                route=event.get("route"),
                route_name=event.get("routeName"),
                quotas_text=event.get("quotas"),
                economy=event.get("economy"),
                business=event.get("business"),
                first=event.get("first"),
                cargo_text=event.get("cargo"),
                revenue_text=event.get("revenue"),
            )
            for event in detail.get("events") or []
        ],
    )


def _cell(value: Any) -> str | None:
    return None if value is None else str(value)


def _raw_metrics(cells: dict[str, Any]) -> RawMetrics:
    return RawMetrics(
        hours_to_check_text=_cell(cells.get("hoursToCheck")),
        range_text=_cell(cells.get("range")),
        min_runway_text=_cell(cells.get("minRunway")),
        hours_cycles_text=_cell(cells.get("flightHoursCycles")),
        wear_text=_cell(cells.get("wear")),
    )
