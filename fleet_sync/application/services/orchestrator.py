from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime

from fleet_sync.application.ports import (
    ClockPort,
    DatasetRepoPort,
    FleetCollaboratorPort,
    SnapshotCacheRepoPort,
)
from fleet_sync.application.services.scheduler import ProcessingScheduler, SchedulerResult
from fleet_sync.application.state.snapshots import SnapshotCache, build_snapshot_cache
from fleet_sync.application.use_cases.count_fleet import FleetCounter
from fleet_sync.config import ProcessingConfig
from fleet_sync.domain.models.fleet import FleetSnapshot
from fleet_sync.domain.models.unit import Unit
from fleet_sync.domain.rules.merge import merge_dataset
from fleet_sync.domain.rules.quota import compute_budget

log = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RunSummary:
    total_fleet_size: int
    fleet_from_cache: bool
    available: int
    action_budget: int
    acted: int
    observed: int
    failed: int
    new_events: int
    timed_out: bool
    dataset_units: int

    def to_dict(self) -> dict[str, object]:
        return {
            "total_fleet_size": self.total_fleet_size,
            "fleet_from_cache": self.fleet_from_cache,
            "available": self.available,
            "action_budget": self.action_budget,
            "acted": self.acted,
            "observed": self.observed,
            "failed": self.failed,
            "new_events": self.new_events,
            "timed_out": self.timed_out,
            "dataset_units": self.dataset_units,
        }


def build_watermarks(cache: SnapshotCache, dataset: list[Unit]) -> dict[str, datetime | None]:
    """Latest recorded event per known unit; the cache wins over the dataset."""
    watermarks: dict[str, datetime | None] = {}
    for unit in dataset:
        last = unit.last_event
        watermarks[str(unit.unit_id)] = last.timestamp if last else None
    for unit_id in cache.units:
        watermarks[unit_id] = cache.watermark(unit_id)
    return watermarks


class SyncRunService:
    """One synchronization run: load, count, budget, process, merge, save."""

    def __init__(
        self,
        collaborator: FleetCollaboratorPort,
        scheduler: ProcessingScheduler,
        cache_repo: SnapshotCacheRepoPort,
        dataset_repo: DatasetRepoPort,
        config: ProcessingConfig,
        clock: ClockPort,
        *,
        max_opportunistic: int | None = None,
    ) -> None:
        self._collaborator = collaborator
        self._scheduler = scheduler
        self._cache_repo = cache_repo
        self._dataset_repo = dataset_repo
        self._config = config
        self._clock = clock
        self._max_opportunistic = max_opportunistic

    async def run(self) -> RunSummary:
        started_at = time.perf_counter()
        cache = await self._cache_repo.load()
        dataset = await self._dataset_repo.load()
        log.info("Run start cached_units=%s dataset_units=%s", len(cache.units), len(dataset))

        # Saved as-is if counting itself aborts the run.
        fleet = FleetSnapshot(
            total=cache.total_fleet_size,
            composition=cache.fleet_composition,
            from_cache=True,
        )
        available = 0
        action_budget = 0
        result: SchedulerResult | None = None
        try:
            counter = FleetCounter(self._collaborator, cache)
            fleet = await counter.get_fleet_size()
            try:
                available = await counter.count_available()
            except Exception:  # noqa: BLE001
                log.exception("Counting available units failed; assuming none")

            action_budget = compute_budget(
                fleet.total,
                self._config.percentage,
                self._config.action_budget_override,
                available,
            )
            result = await self._scheduler.run(
                action_budget,
                build_watermarks(cache, dataset),
                max_opportunistic=self._max_opportunistic,
            )
        finally:
            observed = result.units if result is not None else self._scheduler.collected
            if result is None:
                log.error("Run aborted; saving partial results units=%s", len(observed))
            merged = await self._save(dataset, observed, fleet)

        summary = RunSummary(
            total_fleet_size=fleet.total,
            fleet_from_cache=fleet.from_cache,
            available=available,
            action_budget=action_budget,
            acted=result.acted_count,
            observed=len(result.opportunistic.units),
            failed=result.primary.failed + result.opportunistic.failed,
            new_events=sum(len(unit.history) for unit in result.units),
            timed_out=result.timed_out,
            dataset_units=len(merged),
        )
        log.info(
            "Run completed elapsed_ms=%s summary=%s",
            int((time.perf_counter() - started_at) * 1000),
            summary.to_dict(),
        )
        return summary

    async def _save(self, dataset: list[Unit], observed: list[Unit], fleet: FleetSnapshot) -> list[Unit]:
        merged = merge_dataset(dataset, observed)
        cache = build_snapshot_cache(
            merged,
            fleet,
            configured_percentage=self._config.percentage,
            now=self._clock.now(),
        )
        await self._dataset_repo.save(merged)
        await self._cache_repo.save(cache)
        return merged
