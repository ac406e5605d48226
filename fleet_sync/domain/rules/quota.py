from __future__ import annotations

import logging
import math

log = logging.getLogger(__name__)


def compute_budget(
    total: int,
    percentage: float,
    override: int | None,
    available: int,
) -> int:
    """Number of units to act on this run.

    ``floor(total * percentage)`` capped by what is currently available.
    An override replaces that value outright. Invalid inputs give 0.
    """
    if override is not None:
        final = max(0, int(override))
        log.info(
            "Budget override active override=%s total=%s percentage=%s available=%s",
            final,
            total,
            percentage,
            available,
        )
        return final

    if total <= 0 or not (0.0 <= percentage <= 1.0):
        log.info("Budget is zero total=%s percentage=%s", total, percentage)
        return 0

    calculated = math.floor(total * percentage)
    actual = max(0, min(calculated, available))
    log.info(
        "Budget computed total=%s percentage=%s calculated=%s available=%s final=%s",
        total,
        percentage,
        calculated,
        available,
        actual,
    )
    return actual
