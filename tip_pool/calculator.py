"""Weekly tip pool arithmetic.

Cash tips are pooled as-is; credit-card tips lose a flat fee percentage first.
The pool is then split across employees in proportion to the hours each one
logged. Amounts stay unrounded here; rounding to cents happens only when rows
are prepared for presentation.
"""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Mapping, Optional, Sequence, Union

from pydantic import BaseModel

from tip_pool.config import settings
from tip_pool.errors import ContractViolation
from tip_pool.money import (
    ZERO,
    format_currency,
    format_hours_minutes,
    non_negative,
    round_money,
    to_decimal,
    week_entries,
    week_range,
)

EmployeeKey = Union[int, str]


class EmployeePayout(BaseModel):
    model_config = {"frozen": True}

    employee: EmployeeKey
    hours: Decimal
    payout: Decimal


class PayoutCalculation(BaseModel):
    model_config = {"frozen": True}

    week_key: Optional[date] = None
    week_label: Optional[str] = None
    fee_rate: Decimal
    cash_total: Decimal
    cc_total: Decimal
    cc_after_fee: Decimal
    total_pool: Decimal
    total_team_hours: Decimal
    hourly_rate: Decimal
    payouts: list[EmployeePayout]

    @property
    def payout_sum(self) -> Decimal:
        return sum((row.payout for row in self.payouts), ZERO)

    def payout_for(self, employee: EmployeeKey) -> Decimal:
        for row in self.payouts:
            if row.employee == employee:
                return row.payout
        return ZERO

    def presentation_rows(self) -> list[dict]:
        rows = sorted(self.payouts, key=lambda row: str(row.employee).lower())
        return [
            {
                "employee": row.employee,
                "hours": row.hours,
                "hours_display": format_hours_minutes(row.hours),
                "hourly_rate": round_money(self.hourly_rate),
                "payout": round_money(row.payout),
                "payout_display": format_currency(row.payout),
            }
            for row in rows
        ]


def validate_fee_rate(fee_rate: Any) -> Decimal:
    rate = to_decimal(fee_rate, "fee_rate")
    if rate < 0 or rate >= 1:
        raise ContractViolation("fee_rate", "must be in [0, 1)")
    return rate


def calculate_payout(
    cash_entries: Sequence[Any],
    cc_entries: Sequence[Any],
    hours_by_employee: Mapping[EmployeeKey, Any],
    fee_rate: Any = None,
    week_key: Optional[date] = None,
) -> PayoutCalculation:
    cash = week_entries(cash_entries, "cash_entries")
    cc = week_entries(cc_entries, "cc_entries")
    rate = validate_fee_rate(settings.cc_fee_rate if fee_rate is None else fee_rate)
    hours = {
        employee: non_negative(value, f"hours[{employee}]")
        for employee, value in hours_by_employee.items()
    }

    cash_total = sum(cash, ZERO)
    cc_total = sum(cc, ZERO)
    cc_after_fee = cc_total * (1 - rate)
    total_pool = cash_total + cc_after_fee
    total_team_hours = sum(hours.values(), ZERO)
    hourly_rate = total_pool / total_team_hours if total_team_hours > 0 else ZERO

    return PayoutCalculation(
        week_key=week_key,
        week_label=week_range(week_key).label if week_key else None,
        fee_rate=rate,
        cash_total=cash_total,
        cc_total=cc_total,
        cc_after_fee=cc_after_fee,
        total_pool=total_pool,
        total_team_hours=total_team_hours,
        hourly_rate=hourly_rate,
        payouts=[
            EmployeePayout(employee=employee, hours=value, payout=value * hourly_rate)
            for employee, value in hours.items()
        ],
    )
