from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, NewType

log = logging.getLogger(__name__)

UnitId = NewType("UnitId", str)


class PrecisionLevel(StrEnum):
    SLOT = "slot"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"

    @property
    def rank(self) -> int:
        return _PRECISION_RANK[self]


_PRECISION_RANK = {
    PrecisionLevel.SLOT: 5,
    PrecisionLevel.DAY: 4,
    PrecisionLevel.WEEK: 3,
    PrecisionLevel.MONTH: 2,
    PrecisionLevel.YEAR: 1,
}


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_instant(value: datetime) -> str:
    text = ensure_utc(value).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def parse_instant(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def _optional_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    return None


def _count(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return max(0, value)
    return 0


@dataclass(slots=True, frozen=True)
class Passengers:
    economy: int | None = None
    business: int | None = None
    first: int | None = None
    total: int | None = None

    @classmethod
    def from_cabins(cls, economy: int | None, business: int | None, first: int | None) -> Passengers:
        total = (economy or 0) + (business or 0) + (first or 0)
        return cls(economy=economy, business=business, first=first, total=total if total > 0 else None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "economy": self.economy,
            "business": self.business,
            "first": self.first,
            "total": self.total,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Passengers:
        if not isinstance(data, dict):
            return cls()
        return cls(
            economy=_optional_number(data.get("economy")),
            business=_optional_number(data.get("business")),
            first=_optional_number(data.get("first")),
            total=_optional_number(data.get("total")),
        )


@dataclass(slots=True, frozen=True)
class HistoryEntry:
    timestamp: datetime
    precision_level: PrecisionLevel
    route: str
    route_name: str | None = None
    quotas: float | None = None
    passengers: Passengers = field(default_factory=Passengers)
    cargo_weight_lbs: float | None = None
    revenue_usd: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": format_instant(self.timestamp),
            "precisionLevel": self.precision_level.value,
            "route": self.route,
            "routeName": self.route_name,
            "quotas": self.quotas,
            "passengers": self.passengers.to_dict(),
            "cargoWeightLbs": self.cargo_weight_lbs,
            "revenueUSD": self.revenue_usd,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryEntry:
        timestamp = parse_instant(data.get("timestamp"))
        if timestamp is None:
            raise ValueError(f"History entry has no valid timestamp: {data.get('timestamp')!r}")
        return cls(
            timestamp=timestamp,
            precision_level=PrecisionLevel(str(data.get("precisionLevel", PrecisionLevel.DAY.value))),
            route=str(data.get("route") or ""),
            route_name=data.get("routeName"),
            quotas=_optional_number(data.get("quotas")),
            passengers=Passengers.from_dict(data.get("passengers")),
            cargo_weight_lbs=_optional_number(data.get("cargoWeightLbs")),
            revenue_usd=_optional_number(data.get("revenueUSD")),
        )


@dataclass(slots=True, frozen=True)
class ConvertedTimestamp:
    timestamp: datetime
    original: str
    precision_level: PrecisionLevel

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": format_instant(self.timestamp),
            "original": self.original,
            "precisionLevel": self.precision_level.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ConvertedTimestamp | None:
        if not isinstance(data, dict):
            return None
        timestamp = parse_instant(data.get("timestamp"))
        if timestamp is None:
            return None
        try:
            precision = PrecisionLevel(str(data.get("precisionLevel", PrecisionLevel.DAY.value)))
        except ValueError:
            return None
        return cls(timestamp=timestamp, original=str(data.get("original") or ""), precision_level=precision)


@dataclass(slots=True, frozen=True)
class MetricsSnapshot:
    hours_to_check: float | None = None
    range_km: float | None = None
    flight_hours: float | None = None
    flight_cycles: float | None = None
    min_runway_ft: float | None = None
    wear_percent: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "hoursToCheck": self.hours_to_check,
            "rangeKm": self.range_km,
            "flightHours": self.flight_hours,
            "flightCycles": self.flight_cycles,
            "minRunwayFt": self.min_runway_ft,
            "wearPercent": self.wear_percent,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> MetricsSnapshot:
        if not isinstance(data, dict):
            return cls()
        return cls(
            hours_to_check=_optional_number(data.get("hoursToCheck")),
            range_km=_optional_number(data.get("rangeKm")),
            flight_hours=_optional_number(data.get("flightHours")),
            flight_cycles=_optional_number(data.get("flightCycles")),
            min_runway_ft=_optional_number(data.get("minRunwayFt")),
            wear_percent=_optional_number(data.get("wearPercent")),
        )


@dataclass(slots=True, frozen=True)
class UnitMetadata:
    last_scraped: datetime | None = None
    last_event_added: datetime | None = None
    total_events: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "lastScraped": format_instant(self.last_scraped) if self.last_scraped else None,
            "lastFlightAdded": format_instant(self.last_event_added) if self.last_event_added else None,
            "totalFlightsScrapped": self.total_events,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> UnitMetadata:
        if not isinstance(data, dict):
            return cls()
        return cls(
            last_scraped=parse_instant(data.get("lastScraped")),
            last_event_added=parse_instant(data.get("lastFlightAdded")),
            total_events=_count(data.get("totalFlightsScrapped")),
        )


@dataclass(slots=True, frozen=True)
class UnitRef:
    """A unit as it appears in a fleet list, before it is opened."""

    unit_id: UnitId
    label: str
    progress_text: str | None = None


@dataclass(slots=True)
class Unit:
    unit_id: UnitId
    label: str
    aircraft_type: str | None = None
    delivered: ConvertedTimestamp | None = None
    metrics: MetricsSnapshot = field(default_factory=MetricsSnapshot)
    history: list[HistoryEntry] = field(default_factory=list)
    metadata: UnitMetadata = field(default_factory=UnitMetadata)

    @property
    def last_event(self) -> HistoryEntry | None:
        return self.history[0] if self.history else None

    def with_history(self, history: list[HistoryEntry]) -> Unit:
        return replace(
            self,
            history=list(history),
            metadata=replace(
                self.metadata,
                last_event_added=history[0].timestamp if history else None,
                total_events=len(history),
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "fleetId": str(self.unit_id),
            "registration": self.label,
            "aircraftType": self.aircraft_type,
            "deliveredDate": self.delivered.to_dict() if self.delivered else None,
            "currentMetrics": self.metrics.to_dict(),
            "flightHistory": [entry.to_dict() for entry in self.history],
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Unit:
        """Build a unit from its stored form.

        Unreadable history entries are dropped one by one; the unit and
        the rest of its history are kept.
        """
        unit_id = str(data.get("fleetId") or "").strip()
        if not unit_id:
            raise ValueError("Unit record has no fleetId")
        raw_history = data.get("flightHistory") or []
        if not isinstance(raw_history, list):
            log.warning(
                "Unit history unreadable unit_id=%s type=%s; keeping unit without it",
                unit_id,
                type(raw_history).__name__,
            )
            raw_history = []
        history: list[HistoryEntry] = []
        skipped = 0
        for index, item in enumerate(raw_history):
            if not isinstance(item, dict):
                skipped += 1
                log.warning("History entry skipped unit_id=%s index=%s reason=not-an-object", unit_id, index)
                continue
            try:
                history.append(HistoryEntry.from_dict(item))
            except (TypeError, ValueError) as exc:
                skipped += 1
                log.warning("History entry skipped unit_id=%s index=%s error=%s", unit_id, index, exc)
        unit = cls(
            unit_id=UnitId(unit_id),
            label=str(data.get("registration") or "Unknown"),
            aircraft_type=data.get("aircraftType"),
            delivered=ConvertedTimestamp.from_dict(data.get("deliveredDate")),
            metrics=MetricsSnapshot.from_dict(data.get("currentMetrics")),
            history=history,
            metadata=UnitMetadata.from_dict(data.get("metadata")),
        )
        return unit.with_history(history) if skipped else unit
