from datetime import date
from decimal import Decimal

import pytest

from tip_pool.errors import ContractViolation
from tip_pool.money import (
    Weekday,
    day_of,
    format_currency,
    format_hours_minutes,
    hours_from_hm,
    parse_week_key,
    round_money,
    week_entries,
    week_key_for,
    week_range,
)


def test_week_key_is_monday_of_the_week() -> None:
    assert week_key_for(date(2026, 1, 8)) == date(2026, 1, 5)
    assert week_key_for(date(2026, 1, 11)) == date(2026, 1, 5)
    assert week_key_for(date(2026, 1, 5)) == date(2026, 1, 5)


def test_parse_week_key_rejects_non_monday() -> None:
    assert parse_week_key("2026-01-05") == date(2026, 1, 5)
    with pytest.raises(ContractViolation) as exc:
        parse_week_key("2026-01-06")
    assert exc.value.field == "week_key"
    with pytest.raises(ContractViolation):
        parse_week_key("next week")


def test_week_range_label_and_weekday_dates() -> None:
    span = week_range(date(2026, 1, 5))
    assert span.end == date(2026, 1, 11)
    assert span.label == "1/5 - 1/11/2026"
    assert day_of(date(2026, 1, 5), Weekday.SUNDAY) == date(2026, 1, 11)
    assert Weekday(0).short_name == "Mon"


def test_week_entries_requires_seven_non_negative_values() -> None:
    assert week_entries(["1.50", 2, 0, 0, 0, 0, None], "cash_entries")[0] == Decimal("1.50")
    with pytest.raises(ContractViolation) as exc:
        week_entries([1, 2, 3], "cash_entries")
    assert exc.value.field == "cash_entries"
    with pytest.raises(ContractViolation) as exc:
        week_entries([0, 0, -5, 0, 0, 0, 0], "cc_entries")
    assert exc.value.field == "cc_entries[Wed]"


def test_hours_from_hm_clamps_minutes() -> None:
    assert hours_from_hm(7, 15) == Decimal("7.25")
    assert hours_from_hm(1, 90) == 1 + Decimal(59) / 60
    assert hours_from_hm(2, -10) == Decimal(2)


def test_format_helpers() -> None:
    assert format_hours_minutes(Decimal("7.25")) == "7h 15m"
    assert format_hours_minutes(hours_from_hm(40, 5)) == "40h 05m"
    assert format_hours_minutes(Decimal("2.9999")) == "3h 00m"
    assert format_currency(Decimal("1093.1")) == "$1,093.10"
    assert round_money(Decimal("819.825")) == Decimal("819.83")
