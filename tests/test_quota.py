from __future__ import annotations

import pytest

from fleet_sync.domain.rules.quota import compute_budget


def test_budget_is_floor_of_total_times_percentage() -> None:
    assert compute_budget(total=10, percentage=0.25, override=None, available=10) == 2


def test_budget_is_capped_by_available_units() -> None:
    assert compute_budget(total=10, percentage=0.8, override=None, available=3) == 3


def test_override_replaces_computed_budget() -> None:
    assert compute_budget(total=100, percentage=0.25, override=5, available=50) == 5


def test_override_is_not_capped_by_available_units() -> None:
    assert compute_budget(total=10, percentage=0.1, override=7, available=2) == 7


def test_override_applies_even_without_a_fleet() -> None:
    assert compute_budget(total=0, percentage=2.0, override=4, available=0) == 4


def test_negative_override_clamps_to_zero() -> None:
    assert compute_budget(total=10, percentage=0.5, override=-3, available=10) == 0


@pytest.mark.parametrize("percentage", [-0.1, 1.5, float("nan")])
def test_invalid_percentage_gives_zero(percentage: float) -> None:
    assert compute_budget(total=10, percentage=percentage, override=None, available=10) == 0


@pytest.mark.parametrize("total", [0, -4])
def test_empty_fleet_gives_zero(total: int) -> None:
    assert compute_budget(total=total, percentage=0.5, override=None, available=10) == 0


def test_zero_available_gives_zero() -> None:
    assert compute_budget(total=10, percentage=0.5, override=None, available=0) == 0
