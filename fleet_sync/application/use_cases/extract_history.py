from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone

from fleet_sync.application.ports import RawEvent
from fleet_sync.domain.models.unit import ConvertedTimestamp, HistoryEntry, Passengers, format_instant
from fleet_sync.domain.rules.timestamps import convert_relative, is_newer
from fleet_sync.domain.rules.values import parse_number, parse_usd

log = logging.getLogger(__name__)


def build_entry(raw: RawEvent, converted: ConvertedTimestamp) -> HistoryEntry:
    return HistoryEntry(
        timestamp=converted.timestamp,
        precision_level=converted.precision_level,
        route=(raw.route or "").strip(),
        route_name=raw.route_name.strip() if raw.route_name else None,
        quotas=parse_number(raw.quotas_text),
        passengers=Passengers.from_cabins(raw.economy, raw.business, raw.first),
        cargo_weight_lbs=parse_number(raw.cargo_text),
        revenue_usd=parse_usd(raw.revenue_text),
    )


class IncrementalHistoryExtractor:
    """Pulls only the events newer than a unit's watermark.

    The feed is newest-first by contract. Extraction stops at the first
    event that is not newer than the watermark and never looks further;
    an unsorted feed therefore loses the older unseen events behind it.
    """

    def extract(
        self,
        feed: Iterable[RawEvent],
        watermark: datetime | None,
        *,
        reference: datetime | None = None,
    ) -> list[HistoryEntry]:
        reference = reference or datetime.now(timezone.utc)
        delta: list[HistoryEntry] = []
        scanned = 0
        stopped = False
        for raw in feed:
            scanned += 1
            if not raw.time_text or not raw.time_text.strip():
                continue
            converted = convert_relative(raw.time_text, reference)
            if watermark is not None and not is_newer(converted.timestamp, watermark):
                stopped = True
                break
            try:
                delta.append(build_entry(raw, converted))
            except (TypeError, ValueError):
                log.exception("Event row skipped index=%s time_text=%r", scanned - 1, raw.time_text)
        log.debug(
            "History extracted watermark=%s scanned=%s new=%s stopped_at_watermark=%s",
            format_instant(watermark) if watermark else None,
            scanned,
            len(delta),
            stopped,
        )
        return delta
