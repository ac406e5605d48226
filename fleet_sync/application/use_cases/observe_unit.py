from __future__ import annotations

import logging
from datetime import datetime

from fleet_sync.application.ports import FleetCollaboratorPort, RawMetrics
from fleet_sync.application.use_cases.extract_history import IncrementalHistoryExtractor
from fleet_sync.domain.models.unit import MetricsSnapshot, Unit, UnitMetadata, UnitRef
from fleet_sync.domain.rules.timestamps import convert_relative
from fleet_sync.domain.rules.values import parse_hours_cycles, parse_number, parse_percent

log = logging.getLogger(__name__)


def parse_metrics(raw: RawMetrics) -> MetricsSnapshot:
    flight_hours, flight_cycles = parse_hours_cycles(raw.hours_cycles_text)
    return MetricsSnapshot(
        hours_to_check=parse_number(raw.hours_to_check_text),
        range_km=parse_number(raw.range_text),
        flight_hours=flight_hours,
        flight_cycles=flight_cycles,
        min_runway_ft=parse_number(raw.min_runway_text),
        wear_percent=parse_percent(raw.wear_text),
    )


class UnitObserver:
    """Reads the currently opened unit into a ``Unit`` holding only new events."""

    def __init__(self, collaborator: FleetCollaboratorPort, extractor: IncrementalHistoryExtractor) -> None:
        self._collaborator = collaborator
        self._extractor = extractor

    async def observe(self, ref: UnitRef, watermark: datetime | None, *, now: datetime) -> Unit:
        metrics = parse_metrics(await self._collaborator.read_current_metrics())
        details = await self._collaborator.read_unit_details()
        feed = await self._collaborator.read_event_feed()
        history = self._extractor.extract(feed, watermark, reference=now)
        delivered = convert_relative(details.delivered_text, now) if details.delivered_text else None
        log.debug("Unit observed unit_id=%s feed=%s new_events=%s", ref.unit_id, len(feed), len(history))
        return Unit(
            unit_id=ref.unit_id,
            label=ref.label or "Unknown",
            aircraft_type=details.aircraft_type,
            delivered=delivered,
            metrics=metrics,
            history=history,
            metadata=UnitMetadata(
                last_scraped=now,
                last_event_added=history[0].timestamp if history else None,
                total_events=len(history),
            ),
        )
