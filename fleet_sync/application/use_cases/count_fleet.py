from __future__ import annotations

import logging
import time

from fleet_sync.application.ports import FleetCollaboratorPort
from fleet_sync.application.state.snapshots import SnapshotCache
from fleet_sync.domain.models.fleet import AVAILABLE_CATEGORY, FleetCategory, FleetComposition, FleetSnapshot

log = logging.getLogger(__name__)


class FleetCounter:
    """Fleet size and composition, cache first.

    The full count walks every category and is the expensive path; it runs
    at most once per counter and its result is reused for the rest of the run.
    """

    def __init__(self, collaborator: FleetCollaboratorPort, cache: SnapshotCache) -> None:
        self._collaborator = collaborator
        self._cache = cache
        self._counted: FleetSnapshot | None = None

    async def get_fleet_size(self) -> FleetSnapshot:
        if self._counted is not None:
            return self._counted
        if self._cache.has_fleet_size:
            log.info("Fleet size from cache total=%s", self._cache.total_fleet_size)
            self._counted = FleetSnapshot(
                total=self._cache.total_fleet_size,
                composition=self._cache.fleet_composition,
                from_cache=True,
            )
            return self._counted

        self._counted = await self._count_all_categories()
        return self._counted

    async def count_available(self) -> int:
        await self._collaborator.switch_category(AVAILABLE_CATEGORY)
        available = await self._collaborator.count_category(AVAILABLE_CATEGORY)
        log.info("Available units counted category=%s count=%s", AVAILABLE_CATEGORY.value, available)
        return available

    async def _count_all_categories(self) -> FleetSnapshot:
        started_at = time.perf_counter()
        counts: dict[FleetCategory, int] = {}
        for category in FleetCategory:
            try:
                await self._collaborator.switch_category(category)
                counts[category] = await self._collaborator.count_category(category)
            except Exception:  # noqa: BLE001
                log.exception("Fleet count failed category=%s; counting it as 0", category.value)
                counts[category] = 0
        try:
            await self._collaborator.switch_category(AVAILABLE_CATEGORY)
        except Exception:  # noqa: BLE001
            log.exception("Switching back after fleet count failed category=%s", AVAILABLE_CATEGORY.value)

        composition = FleetComposition.from_counts(counts)
        log.info(
            "Fleet counted total=%s composition=%s elapsed_ms=%s",
            composition.total,
            composition.to_dict(),
            int((time.perf_counter() - started_at) * 1000),
        )
        return FleetSnapshot(total=composition.total, composition=composition, from_cache=False)
