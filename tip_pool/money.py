from __future__ import annotations

from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import IntEnum
from typing import Any, NamedTuple, Sequence

from tip_pool.errors import ContractViolation

CENTS = Decimal("0.01")
ZERO = Decimal("0")
DAYS_PER_WEEK = 7


class Weekday(IntEnum):
    """Position of a day inside a week's entry sequence (weeks start on Monday)."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @property
    def short_name(self) -> str:
        return self.name[:3].title()


class WeekRange(NamedTuple):
    start: date
    end: date

    @property
    def label(self) -> str:
        return f"{self.start.month}/{self.start.day} - {self.end.month}/{self.end.day}/{self.end.year}"


def to_decimal(value: Any, field: str) -> Decimal:
    if value is None or value == "":
        return ZERO
    if isinstance(value, bool):
        raise ContractViolation(field, "expected a number")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ContractViolation(field, f"not a number: {value!r}") from None
    if not result.is_finite():
        raise ContractViolation(field, "must be finite")
    return result


def non_negative(value: Any, field: str) -> Decimal:
    result = to_decimal(value, field)
    if result < 0:
        raise ContractViolation(field, "must not be negative")
    return result


def week_entries(values: Sequence[Any] | None, field: str) -> list[Decimal]:
    if values is None or isinstance(values, (str, bytes)):
        raise ContractViolation(field, f"expected {DAYS_PER_WEEK} entries")
    if len(values) != DAYS_PER_WEEK:
        raise ContractViolation(field, f"expected {DAYS_PER_WEEK} entries, got {len(values)}")
    return [non_negative(v, f"{field}[{Weekday(i).short_name}]") for i, v in enumerate(values)]


def zero_week() -> list[Decimal]:
    return [ZERO] * DAYS_PER_WEEK


def entries_by_day(entries: Sequence[Decimal]) -> dict[Weekday, Decimal]:
    return {Weekday(i): amount for i, amount in enumerate(entries)}


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def format_currency(value: Decimal | None) -> str:
    amount = round_money(value or ZERO)
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def hours_from_hm(hours: Any, minutes: Any = 0, field: str = "hours") -> Decimal:
    whole = non_negative(hours, field)
    mins = to_decimal(minutes, "minutes")
    mins = min(max(mins, ZERO), Decimal(59))
    return whole + mins / Decimal(60)


def format_hours_minutes(decimal_hours: Decimal) -> str:
    whole = int(decimal_hours)
    mins = int(((decimal_hours - whole) * 60).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if mins == 60:
        whole, mins = whole + 1, 0
    return f"{whole}h {mins:02d}m"


def week_key_for(day: date) -> date:
    return day - timedelta(days=day.weekday())


def parse_week_key(value: Any, field: str = "week_key") -> date:
    if isinstance(value, date):
        day = value
    else:
        try:
            day = date.fromisoformat(str(value))
        except ValueError:
            raise ContractViolation(field, f"not an ISO date: {value!r}") from None
    if day.weekday() != Weekday.MONDAY:
        raise ContractViolation(field, f"{day.isoformat()} is not a Monday")
    return day


def week_range(week_key: date) -> WeekRange:
    return WeekRange(week_key, week_key + timedelta(days=DAYS_PER_WEEK - 1))


def day_of(week_key: date, weekday: Weekday) -> date:
    return week_key + timedelta(days=int(weekday))
