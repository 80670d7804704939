from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from tip_pool import directory, employee_hours, weekly_tips
from tip_pool.errors import (
    ContractViolation,
    DuplicateEmployee,
    EmployeeNotFound,
    StoreUnavailable,
    VersionConflict,
)
from tip_pool.models import TipEmployeeHours, TipWeeklyData
from tip_pool.money import Weekday

WEEK = date(2026, 1, 5)
CASH = [50, 60, 40, 70, 55, 65, 45]
CC = [100, 120, 90, 110, 95, 130, 85]


def _row_count(db, model) -> int:
    return db.scalar(select(func.count()).select_from(model))


def test_missing_week_loads_as_explicit_absence(db, tenant) -> None:
    assert weekly_tips.load_week(db, tenant.id, WEEK) is None
    record = weekly_tips.load_week_or_empty(db, tenant.id, WEEK)
    assert not record.exists
    assert record.version == 0
    assert record.cash_entries == [0] * 7
    assert record.cc_total == 0


def test_save_and_load_week(db, tenant) -> None:
    saved = weekly_tips.save_week(db, tenant.id, WEEK, CASH, CC)
    assert saved.version == 1
    loaded = weekly_tips.load_week(db, tenant.id, WEEK)
    assert loaded.cash_total == Decimal("385")
    assert loaded.cc_total == Decimal("730")
    assert loaded.cash_for(Weekday.MONDAY) == Decimal("50")
    assert loaded.cc_for(Weekday.SUNDAY) == Decimal("85")


def test_identical_save_is_idempotent(db, tenant) -> None:
    weekly_tips.save_week(db, tenant.id, WEEK, CASH, CC)
    again = weekly_tips.save_week(db, tenant.id, WEEK, [str(v) for v in CASH], CC)
    assert again.version == 1
    assert _row_count(db, TipWeeklyData) == 1


def test_unversioned_saves_are_last_write_wins(db, tenant) -> None:
    weekly_tips.save_week(db, tenant.id, WEEK, CASH, CC)
    second = weekly_tips.save_week(db, tenant.id, WEEK, [1] * 7, [2] * 7)
    assert second.version == 2
    assert second.cash_total == 7
    assert _row_count(db, TipWeeklyData) == 1


def test_versioned_save_detects_stale_writer(db, tenant) -> None:
    first = weekly_tips.save_week(db, tenant.id, WEEK, CASH, CC, expected_version=0)
    assert first.version == 1
    weekly_tips.save_week(db, tenant.id, WEEK, [1] * 7, CC, expected_version=1)
    with pytest.raises(VersionConflict) as exc:
        weekly_tips.save_week(db, tenant.id, WEEK, [3] * 7, CC, expected_version=1)
    assert exc.value.actual == 2
    with pytest.raises(VersionConflict):
        weekly_tips.save_week(db, tenant.id, date(2026, 1, 12), CASH, CC, expected_version=4)


def test_save_rejects_bad_input(db, tenant) -> None:
    with pytest.raises(ContractViolation) as exc:
        weekly_tips.save_week(db, tenant.id, WEEK, CASH[:5], CC)
    assert exc.value.field == "cash_entries"
    with pytest.raises(ContractViolation) as exc:
        weekly_tips.save_week(db, tenant.id, WEEK, [0] * 7, [0] * 7)
    assert exc.value.field == "entries"


def test_weeks_are_scoped_by_tenant(db, tenant) -> None:
    other = directory.create_tenant(db, "Other Cafe")
    weekly_tips.save_week(db, tenant.id, WEEK, CASH, CC)
    assert weekly_tips.load_week(db, other.id, WEEK) is None


def test_list_range_is_inclusive_and_ordered(db, tenant) -> None:
    for week in (date(2026, 1, 19), date(2026, 1, 5), date(2026, 1, 12), date(2026, 1, 26)):
        weekly_tips.save_week(db, tenant.id, week, CASH, CC)
    rows = weekly_tips.list_range(db, tenant.id, date(2026, 1, 5), date(2026, 1, 19))
    assert [r.week_key for r in rows] == [date(2026, 1, 5), date(2026, 1, 12), date(2026, 1, 19)]


def test_upsert_hours_updates_in_place(db, tenant, staff) -> None:
    alice, bob = staff
    employee_hours.upsert_hours(db, tenant.id, alice.id, WEEK, Decimal("7.25"))
    employee_hours.upsert_hours(db, tenant.id, alice.id, WEEK, 30)
    employee_hours.upsert_hours(db, tenant.id, bob.id, WEEK, 10)
    assert employee_hours.load_week_hours(db, tenant.id, WEEK) == {"Alice": 30, "Bob": 10}
    assert _row_count(db, TipEmployeeHours) == 2
    row = db.query(TipEmployeeHours).filter(TipEmployeeHours.employee_id == alice.id).one()
    assert row.version == 2


def test_upsert_hours_validates_employee_and_amount(db, tenant, staff) -> None:
    with pytest.raises(EmployeeNotFound):
        employee_hours.upsert_hours(db, tenant.id, 999, WEEK, 5)
    with pytest.raises(ContractViolation):
        employee_hours.upsert_hours(db, tenant.id, staff[0].id, WEEK, -1)


def test_delete_hours_removes_the_row(db, tenant, staff) -> None:
    alice, bob = staff
    employee_hours.upsert_hours(db, tenant.id, alice.id, WEEK, 8)
    employee_hours.upsert_hours(db, tenant.id, bob.id, WEEK, 0)
    assert employee_hours.delete_hours(db, tenant.id, alice.id, WEEK)
    assert not employee_hours.delete_hours(db, tenant.id, alice.id, WEEK)
    assert employee_hours.load_week_hours(db, tenant.id, WEEK) == {"Bob": 0}


def test_deactivated_employees_keep_their_hours(db, tenant, staff) -> None:
    alice, _ = staff
    employee_hours.upsert_hours(db, tenant.id, alice.id, WEEK, 12)
    directory.deactivate_employee(db, tenant.id, alice.id)
    assert [e.name for e in directory.list_employees(db, tenant.id)] == ["Bob"]
    entries = employee_hours.list_range(db, tenant.id, WEEK, WEEK)
    assert len(entries) == 1
    assert entries[0].employee_name == "Alice"
    assert entries[0].is_active is False


def test_replace_hours_writes_all_employees(db, tenant, staff) -> None:
    alice, bob = staff
    employee_hours.upsert_hours(db, tenant.id, alice.id, WEEK, 1)
    count = employee_hours.replace_hours(db, tenant.id, WEEK, {alice.id: 20, bob.id: Decimal("5.5")})
    assert count == 2
    assert employee_hours.load_week_hours(db, tenant.id, WEEK) == {"Alice": 20, "Bob": Decimal("5.5")}


def test_duplicate_employee_names_are_rejected(db, tenant, staff) -> None:
    with pytest.raises(DuplicateEmployee):
        directory.create_employee(db, tenant.id, " Alice ")
    with pytest.raises(ContractViolation):
        directory.create_employee(db, tenant.id, "   ")


def test_store_errors_surface_as_retryable(tmp_path) -> None:
    engine = create_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    db = sessionmaker(bind=engine)()
    try:
        with pytest.raises(StoreUnavailable) as exc:
            weekly_tips.load_week(db, 1, WEEK)
    finally:
        db.close()
        engine.dispose()
    assert exc.value.retryable
    assert exc.value.context["operation"] == "load_week"
    assert exc.value.context["tenant_id"] == 1
