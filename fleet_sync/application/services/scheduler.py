"""Time-budgeted unit processing.

A run has two phases sharing one wall-clock budget, measured from the
start of processing (fleet counting before it is not charged):

1. primary: take the head of the available queue, act on it, observe it,
   until the action budget is spent, the queue is empty, or the remaining
   time drops to the safety margin;
2. opportunistic: observe units currently in progress that were not acted
   on this run and probably have unseen events, stalest first, while time
   allows.

The deadline is cooperative. It is checked before a unit is started and
never interrupts one in flight. Whatever was collected is returned and the
caller is expected to persist it.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from fleet_sync.application.ports import ClockPort, FleetCollaboratorPort
from fleet_sync.application.use_cases.observe_unit import UnitObserver
from fleet_sync.config import ProcessingConfig
from fleet_sync.domain.models.fleet import AVAILABLE_CATEGORY, IN_PROGRESS_CATEGORY
from fleet_sync.domain.models.unit import Unit, UnitRef
from fleet_sync.domain.rules.timestamps import convert_relative, departure_text_from_progress, is_newer

log = logging.getLogger(__name__)

DEFAULT_SAFETY_MARGIN_SECONDS = 30.0
UNKNOWN_UNIT_STALENESS_HOURS = 999.0
# A stuck queue head must not spin the loop forever.
MAX_ATTEMPTS_PER_ACTION = 3


class SchedulerState(StrEnum):
    IDLE = "idle"
    SELECTING_UNIT = "selecting_unit"
    ACTING = "acting"
    OBSERVING = "observing"
    RECORDING = "recording"
    DRAINING = "draining"
    DONE = "done"


class StopReason(StrEnum):
    BUDGET_REACHED = "budget_reached"
    QUEUE_EXHAUSTED = "queue_exhausted"
    SAFETY_MARGIN = "safety_margin"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"
    SKIPPED = "skipped"


class RunBudget:
    """Wall-clock budget of one run, measured on a monotonic clock."""

    def __init__(
        self,
        timeout_seconds: float,
        safety_margin_seconds: float = DEFAULT_SAFETY_MARGIN_SECONDS,
        *,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.safety_margin_seconds = safety_margin_seconds
        self._monotonic = monotonic
        self._started_at = monotonic()

    def restart(self) -> None:
        self._started_at = self._monotonic()

    def elapsed(self) -> float:
        return self._monotonic() - self._started_at

    def remaining(self) -> float:
        return self.timeout_seconds - self.elapsed()

    def can_continue(self) -> bool:
        return self.remaining() > self.safety_margin_seconds


@dataclass(slots=True, frozen=True)
class Candidate:
    ref: UnitRef
    staleness_hours: float
    reason: str


@dataclass(slots=True)
class PhaseResult:
    units: list[Unit] = field(default_factory=list)
    attempted: int = 0
    failed: int = 0
    stop_reason: StopReason | None = None

    @property
    def timed_out(self) -> bool:
        return self.stop_reason is StopReason.SAFETY_MARGIN


@dataclass(slots=True)
class SchedulerResult:
    primary: PhaseResult
    opportunistic: PhaseResult

    @property
    def units(self) -> list[Unit]:
        # Primary units are always recorded before opportunistic ones.
        return [*self.primary.units, *self.opportunistic.units]

    @property
    def acted_count(self) -> int:
        return len(self.primary.units)

    @property
    def timed_out(self) -> bool:
        return self.primary.timed_out or self.opportunistic.timed_out


class ProcessingScheduler:
    def __init__(
        self,
        collaborator: FleetCollaboratorPort,
        observer: UnitObserver,
        config: ProcessingConfig,
        budget: RunBudget,
        clock: ClockPort,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._collaborator = collaborator
        self._observer = observer
        self._config = config
        self._budget = budget
        self._clock = clock
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.state = SchedulerState.IDLE
        self._collected: list[Unit] = []

    @property
    def collected(self) -> list[Unit]:
        """Units recorded so far, in recording order."""
        return list(self._collected)

    async def run(
        self,
        action_budget: int,
        watermarks: Mapping[str, datetime | None],
        *,
        max_opportunistic: int | None = None,
    ) -> SchedulerResult:
        """Run both phases; ``watermarks`` maps known unit ids to their latest recorded event."""
        self._budget.restart()
        log.info(
            "Scheduler start action_budget=%s dry_run=%s remaining_s=%.1f safety_margin_s=%.1f",
            action_budget,
            self._config.dry_run,
            self._budget.remaining(),
            self._budget.safety_margin_seconds,
        )
        primary = await self.run_primary(action_budget, watermarks)
        if primary.timed_out:
            log.warning(
                "Primary phase stopped at safety margin; skipping opportunistic phase collected=%s",
                len(primary.units),
            )
            opportunistic = PhaseResult(stop_reason=StopReason.SKIPPED)
        else:
            acted = {str(unit.unit_id) for unit in primary.units}
            opportunistic = await self.run_opportunistic(acted, watermarks, limit=max_opportunistic)
        self._transition(SchedulerState.DONE)
        result = SchedulerResult(primary=primary, opportunistic=opportunistic)
        log.info(
            "Scheduler done acted=%s observed=%s failed=%s primary_stop=%s opportunistic_stop=%s elapsed_s=%.1f",
            result.acted_count,
            len(opportunistic.units),
            primary.failed + opportunistic.failed,
            primary.stop_reason,
            opportunistic.stop_reason,
            self._budget.elapsed(),
        )
        return result

    async def run_primary(self, action_budget: int, watermarks: Mapping[str, datetime | None]) -> PhaseResult:
        result = PhaseResult()
        handled: set[str] = set()
        max_attempts = max(0, action_budget) * MAX_ATTEMPTS_PER_ACTION

        while True:
            if len(result.units) >= action_budget:
                result.stop_reason = StopReason.BUDGET_REACHED
                break
            if result.attempted >= max_attempts:
                log.warning("Primary phase attempts exhausted attempts=%s", result.attempted)
                result.stop_reason = StopReason.ATTEMPTS_EXHAUSTED
                break
            if not self._budget.can_continue():
                log.warning(
                    "Primary phase stopping remaining_s=%.1f below safety margin; saving what we have",
                    self._budget.remaining(),
                )
                result.stop_reason = StopReason.SAFETY_MARGIN
                break

            self._transition(SchedulerState.SELECTING_UNIT)
            try:
                ref = await self._select_head(handled)
            except Exception:  # noqa: BLE001
                log.exception("Primary phase could not read the available queue")
                result.stop_reason = StopReason.QUEUE_EXHAUSTED
                break
            if ref is None:
                log.info("Primary phase queue exhausted")
                result.stop_reason = StopReason.QUEUE_EXHAUSTED
                break

            result.attempted += 1
            handled.add(str(ref.unit_id))
            unit = await self._act_and_observe(ref, watermarks.get(str(ref.unit_id)))
            if unit is None:
                result.failed += 1
                continue

            self._transition(SchedulerState.RECORDING)
            result.units.append(unit)
            self._collected.append(unit)
            if len(result.units) < action_budget:
                await self._pace()

        self._transition(SchedulerState.DRAINING)
        log.info(
            "Primary phase done acted=%s attempted=%s failed=%s stop=%s",
            len(result.units),
            result.attempted,
            result.failed,
            result.stop_reason,
        )
        return result

    async def run_opportunistic(
        self,
        exclude: set[str],
        watermarks: Mapping[str, datetime | None],
        *,
        limit: int | None = None,
    ) -> PhaseResult:
        result = PhaseResult()
        if not self._budget.can_continue():
            result.stop_reason = StopReason.SAFETY_MARGIN
            return result
        try:
            await self._collaborator.switch_category(IN_PROGRESS_CATEGORY)
            listed = await self._collaborator.list_units(IN_PROGRESS_CATEGORY)
        except Exception:  # noqa: BLE001
            log.exception("Opportunistic phase could not list category=%s", IN_PROGRESS_CATEGORY.value)
            result.stop_reason = StopReason.SKIPPED
            return result

        candidates = rank_stale_candidates(listed, exclude, watermarks, now=self._clock.now())
        if limit is not None:
            candidates = candidates[: max(0, limit)]
        log.info("Opportunistic phase candidates=%s listed=%s", len(candidates), len(listed))

        for candidate in candidates:
            if not self._budget.can_continue():
                log.warning(
                    "Opportunistic phase stopping remaining_s=%.1f below safety margin",
                    self._budget.remaining(),
                )
                result.stop_reason = StopReason.SAFETY_MARGIN
                break
            self._transition(SchedulerState.SELECTING_UNIT)
            result.attempted += 1
            unit = await self._observe_only(candidate.ref, watermarks.get(str(candidate.ref.unit_id)))
            if unit is None:
                result.failed += 1
                continue
            self._transition(SchedulerState.RECORDING)
            result.units.append(unit)
            self._collected.append(unit)
            await self._pace()
        else:
            result.stop_reason = StopReason.QUEUE_EXHAUSTED

        self._transition(SchedulerState.DRAINING)
        log.info(
            "Opportunistic phase done observed=%s attempted=%s failed=%s stop=%s",
            len(result.units),
            result.attempted,
            result.failed,
            result.stop_reason,
        )
        return result

    async def _select_head(self, handled: set[str]) -> UnitRef | None:
        head = await self._collaborator.head_of_queue(AVAILABLE_CATEGORY)
        if head is None or str(head.unit_id) not in handled:
            return head
        # The head was already handled: dry run, or an action that did not take.
        for ref in await self._collaborator.list_units(AVAILABLE_CATEGORY):
            if str(ref.unit_id) not in handled:
                return ref
        return None

    async def _act_and_observe(self, ref: UnitRef, watermark: datetime | None) -> Unit | None:
        started_at = time.perf_counter()
        try:
            await self._collaborator.open_unit(ref)
            self._transition(SchedulerState.ACTING)
            if self._config.dry_run:
                log.info("Dry run: action skipped unit_id=%s label=%s", ref.unit_id, ref.label)
            elif not await self._collaborator.perform_action(ref):
                log.warning("Action not performed unit_id=%s label=%s; skipping unit", ref.unit_id, ref.label)
                await self._close_view_quietly()
                return None
            self._transition(SchedulerState.OBSERVING)
            unit = await self._observer.observe(ref, watermark, now=self._clock.now())
            await self._collaborator.close_current_view()
        except Exception:  # noqa: BLE001
            log.exception("Unit processing failed unit_id=%s label=%s; skipping", ref.unit_id, ref.label)
            await self._close_view_quietly()
            return None
        log.info(
            "Unit acted unit_id=%s label=%s new_events=%s elapsed_ms=%s",
            ref.unit_id,
            ref.label,
            len(unit.history),
            int((time.perf_counter() - started_at) * 1000),
        )
        return unit

    async def _observe_only(self, ref: UnitRef, watermark: datetime | None) -> Unit | None:
        started_at = time.perf_counter()
        try:
            await self._collaborator.open_unit(ref)
            self._transition(SchedulerState.OBSERVING)
            unit = await self._observer.observe(ref, watermark, now=self._clock.now())
            await self._collaborator.close_current_view()
        except Exception:  # noqa: BLE001
            log.exception("Unit observation failed unit_id=%s label=%s; skipping", ref.unit_id, ref.label)
            await self._close_view_quietly()
            return None
        log.info(
            "Unit observed unit_id=%s label=%s new_events=%s elapsed_ms=%s",
            ref.unit_id,
            ref.label,
            len(unit.history),
            int((time.perf_counter() - started_at) * 1000),
        )
        return unit

    async def _close_view_quietly(self) -> None:
        try:
            await self._collaborator.close_current_view()
        except Exception:  # noqa: BLE001
            log.exception("Closing the current view failed")

    async def _pace(self) -> None:
        low = self._config.min_delay_ms / 1000.0
        high = self._config.max_delay_ms / 1000.0
        delay = self._rng.uniform(low, high)
        if delay > 0:
            await self._sleep(delay)

    def _transition(self, state: SchedulerState) -> None:
        if state is not self.state:
            log.debug("Scheduler state %s -> %s", self.state.value, state.value)
            self.state = state


def rank_stale_candidates(
    listed: list[UnitRef],
    exclude: set[str],
    watermarks: Mapping[str, datetime | None],
    *,
    now: datetime,
) -> list[Candidate]:
    """Pick in-progress units that likely have unseen events, stalest first.

    Units never seen before always qualify. Known units qualify when the
    departure derived from their progress is newer than their latest
    recorded event.
    """
    candidates: list[Candidate] = []
    for ref in listed:
        unit_key = str(ref.unit_id)
        if unit_key in exclude:
            continue
        departure_text = departure_text_from_progress(ref.progress_text or "")
        departed_at = convert_relative(departure_text, now).timestamp if departure_text else None
        hours_since = (now - departed_at).total_seconds() / 3600.0 if departed_at else None

        if unit_key not in watermarks:
            candidates.append(
                Candidate(ref=ref, staleness_hours=hours_since or UNKNOWN_UNIT_STALENESS_HOURS, reason="new unit")
            )
            continue
        if departed_at is None:
            continue
        last_known = watermarks[unit_key]
        if last_known is None or is_newer(departed_at, last_known):
            candidates.append(Candidate(ref=ref, staleness_hours=hours_since or 0.0, reason="new event"))

    candidates.sort(key=lambda item: item.staleness_hours, reverse=True)
    return candidates
