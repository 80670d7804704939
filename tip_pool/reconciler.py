from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping

from pydantic import BaseModel

from tip_pool.config import settings
from tip_pool.errors import ContractViolation
from tip_pool.money import ZERO, format_hours_minutes, hours_from_hm, non_negative, to_decimal


class ReconciliationResult(BaseModel):
    model_config = {"frozen": True}

    match: bool
    summed: Decimal
    declared: Decimal
    delta: Decimal
    tolerance: Decimal

    @property
    def message(self) -> str:
        if self.match:
            return f"Perfect! {format_hours_minutes(self.summed)}"
        return (
            f"Warning: Entered {format_hours_minutes(self.summed)} "
            f"vs declared {format_hours_minutes(self.declared)} "
            f"(diff {abs(self.delta):.2f}h)"
        )


def _tolerance(tolerance: Any) -> Decimal:
    value = to_decimal(settings.reconciliation_tolerance_hours if tolerance is None else tolerance, "tolerance")
    if value <= 0:
        raise ContractViolation("tolerance", "must be positive")
    return value


def compare_hours(summed: Any, declared: Any, tolerance: Any = None) -> ReconciliationResult:
    summed_hours = non_negative(summed, "summed")
    declared_hours = non_negative(declared, "declared")
    limit = _tolerance(tolerance)
    delta = summed_hours - declared_hours
    return ReconciliationResult(
        match=abs(delta) < limit,
        summed=summed_hours,
        declared=declared_hours,
        delta=delta,
        tolerance=limit,
    )


def reconcile(
    entered_hours: Mapping[Any, Any],
    declared_hours: Any,
    declared_minutes: Any = 0,
    tolerance: Any = None,
) -> ReconciliationResult:
    summed = sum(
        (non_negative(value, f"hours[{employee}]") for employee, value in entered_hours.items()),
        ZERO,
    )
    declared = hours_from_hm(declared_hours, declared_minutes, field="declared_hours")
    return compare_hours(summed, declared, tolerance)
