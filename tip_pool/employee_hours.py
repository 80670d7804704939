"""One decimal hour count per (tenant, employee, week)."""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Mapping, Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from tip_pool.db import store_call
from tip_pool.directory import get_employee
from tip_pool.models import TipEmployee, TipEmployeeHours
from tip_pool.money import non_negative
from tip_pool.upsert import insert_for

logger = logging.getLogger(__name__)


class HoursEntry(BaseModel):
    employee_id: int
    employee_name: str
    is_active: bool
    week_key: date
    hours: Decimal


def _upsert_stmt(db: Session, tenant_id: int, employee_id: int, week_key: date, hours: Decimal):
    now = datetime.now(timezone.utc)
    insert = insert_for(db)
    stmt = insert(TipEmployeeHours).values(
        tenant_id=tenant_id,
        employee_id=employee_id,
        week_key=week_key,
        hours=hours,
        version=1,
        updated_at=now,
    )
    return stmt.on_conflict_do_update(
        index_elements=["tenant_id", "employee_id", "week_key"],
        set_={
            "hours": stmt.excluded.hours,
            "updated_at": stmt.excluded.updated_at,
            "version": TipEmployeeHours.version + 1,
        },
    )


def upsert_hours(db: Session, tenant_id: int, employee_id: int, week_key: date, hours: Any) -> Decimal:
    value = non_negative(hours, "hours")
    get_employee(db, tenant_id, employee_id)
    with store_call(db, "upsert_hours", tenant_id=tenant_id, employee_id=employee_id, week_key=week_key):
        db.execute(_upsert_stmt(db, tenant_id, employee_id, week_key, value))
        db.commit()
    logger.info("tenant %s employee %s week %s hours=%s", tenant_id, employee_id, week_key, value)
    return value


def replace_hours(db: Session, tenant_id: int, week_key: date, hours_by_employee: Mapping[int, Any]) -> int:
    values = {
        employee_id: non_negative(hours, f"hours[{employee_id}]")
        for employee_id, hours in hours_by_employee.items()
    }
    for employee_id in values:
        get_employee(db, tenant_id, employee_id)
    with store_call(db, "replace_hours", tenant_id=tenant_id, week_key=week_key):
        for employee_id, value in values.items():
            db.execute(_upsert_stmt(db, tenant_id, employee_id, week_key, value))
        db.commit()
    logger.info("tenant %s week %s replaced hours for %d employees", tenant_id, week_key, len(values))
    return len(values)


def delete_hours(db: Session, tenant_id: int, employee_id: int, week_key: date) -> bool:
    with store_call(db, "delete_hours", tenant_id=tenant_id, employee_id=employee_id, week_key=week_key):
        deleted = db.query(TipEmployeeHours).filter(
            TipEmployeeHours.tenant_id == tenant_id,
            TipEmployeeHours.employee_id == employee_id,
            TipEmployeeHours.week_key == week_key,
        ).delete()
        db.commit()
    if deleted:
        logger.info("tenant %s employee %s week %s hours deleted", tenant_id, employee_id, week_key)
    return bool(deleted)


def _entries_query(db: Session, tenant_id: int):
    return db.query(TipEmployeeHours, TipEmployee).join(
        TipEmployee, TipEmployee.id == TipEmployeeHours.employee_id
    ).filter(
        TipEmployeeHours.tenant_id == tenant_id,
        TipEmployee.tenant_id == tenant_id,
    )


def _to_entry(hours_row: TipEmployeeHours, employee: TipEmployee) -> HoursEntry:
    return HoursEntry(
        employee_id=employee.id,
        employee_name=employee.name,
        is_active=employee.is_active,
        week_key=hours_row.week_key,
        hours=Decimal(str(hours_row.hours)),
    )


def load_week_entries(db: Session, tenant_id: int, week_key: date) -> list[HoursEntry]:
    with store_call(db, "load_week_hours", tenant_id=tenant_id, week_key=week_key):
        rows = _entries_query(db, tenant_id).filter(
            TipEmployeeHours.week_key == week_key
        ).order_by(TipEmployee.name).all()
    return [_to_entry(hours_row, employee) for hours_row, employee in rows]


def load_week_hours(db: Session, tenant_id: int, week_key: date) -> dict[str, Decimal]:
    return {entry.employee_name: entry.hours for entry in load_week_entries(db, tenant_id, week_key)}


def list_range(
    db: Session,
    tenant_id: int,
    start: date,
    end: date,
    employee_id: Optional[int] = None,
) -> list[HoursEntry]:
    query = _entries_query(db, tenant_id).filter(
        TipEmployeeHours.week_key >= start,
        TipEmployeeHours.week_key <= end,
    )
    if employee_id is not None:
        query = query.filter(TipEmployeeHours.employee_id == employee_id)
    with store_call(db, "list_hours", tenant_id=tenant_id, start=start, end=end, employee_id=employee_id):
        rows = query.order_by(TipEmployeeHours.week_key, TipEmployee.name).all()
    return [_to_entry(hours_row, employee) for hours_row, employee in rows]
