from decimal import Decimal

import pytest

from tip_pool.errors import ContractViolation
from tip_pool.reconciler import compare_hours, reconcile

HOURS = {"Alice": 30, "Bob": 10}


def test_declared_total_off_by_two_hours_is_a_mismatch() -> None:
    result = reconcile(HOURS, 42, 0)
    assert not result.match
    assert result.summed == 40
    assert result.declared == 42
    assert result.delta == -2
    assert result.message == "Warning: Entered 40h 00m vs declared 42h 00m (diff 2.00h)"


def test_minutes_inside_tolerance_match() -> None:
    result = reconcile(HOURS, 40, 5)
    assert result.match
    assert abs(abs(result.delta) - Decimal(5) / 60) < Decimal("1e-20")
    assert result.message == "Perfect! 40h 00m"


def test_declared_minutes_are_clamped() -> None:
    result = reconcile({"Alice": Decimal("40.98")}, 40, 75)
    assert result.declared == 40 + Decimal(59) / 60
    assert result.match


def test_tolerance_is_configurable() -> None:
    assert not reconcile(HOURS, 40, 5, tolerance=Decimal("0.05")).match
    assert reconcile(HOURS, 41, 0, tolerance=2).match
    with pytest.raises(ContractViolation):
        reconcile(HOURS, 40, 0, tolerance=0)


@pytest.mark.parametrize("a, b", [(40, 42), (40, Decimal("40.0833")), (0, 0), (Decimal("7.25"), 7)])
def test_comparison_is_symmetric(a, b) -> None:
    forward = compare_hours(a, b)
    backward = compare_hours(b, a)
    assert forward.match == backward.match
    assert abs(forward.delta) == abs(backward.delta)


def test_negative_inputs_are_rejected() -> None:
    with pytest.raises(ContractViolation) as exc:
        reconcile({"Alice": -1}, 0)
    assert exc.value.field == "hours[Alice]"
    with pytest.raises(ContractViolation) as exc:
        reconcile(HOURS, -3)
    assert exc.value.field == "declared_hours"
