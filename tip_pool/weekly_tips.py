"""One cash/credit tip record per (tenant, week)."""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Sequence

from pydantic import BaseModel
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tip_pool.db import store_call
from tip_pool.errors import ContractViolation, VersionConflict
from tip_pool.models import TipWeeklyData
from tip_pool.money import ZERO, Weekday, entries_by_day, week_entries, zero_week
from tip_pool.upsert import insert_for

logger = logging.getLogger(__name__)


class WeeklyTipRecord(BaseModel):
    tenant_id: int
    week_key: date
    cash_entries: list[Decimal]
    cc_entries: list[Decimal]
    version: int = 0
    exists: bool = True

    @property
    def cash_total(self) -> Decimal:
        return sum(self.cash_entries, ZERO)

    @property
    def cc_total(self) -> Decimal:
        return sum(self.cc_entries, ZERO)

    def cash_for(self, day: Weekday) -> Decimal:
        return entries_by_day(self.cash_entries)[day]

    def cc_for(self, day: Weekday) -> Decimal:
        return entries_by_day(self.cc_entries)[day]

    @classmethod
    def empty(cls, tenant_id: int, week_key: date) -> "WeeklyTipRecord":
        return cls(
            tenant_id=tenant_id,
            week_key=week_key,
            cash_entries=zero_week(),
            cc_entries=zero_week(),
            version=0,
            exists=False,
        )

    @classmethod
    def from_row(cls, row: TipWeeklyData) -> "WeeklyTipRecord":
        return cls(
            tenant_id=row.tenant_id,
            week_key=row.week_key,
            cash_entries=week_entries(row.cash_entries, "cash_entries"),
            cc_entries=week_entries(row.cc_entries, "cc_entries"),
            version=row.version,
        )


def _row_query(db: Session, tenant_id: int, week_key: date):
    return db.query(TipWeeklyData).filter(
        TipWeeklyData.tenant_id == tenant_id,
        TipWeeklyData.week_key == week_key,
    )


def load_week(db: Session, tenant_id: int, week_key: date) -> Optional[WeeklyTipRecord]:
    with store_call(db, "load_week", tenant_id=tenant_id, week_key=week_key):
        row = _row_query(db, tenant_id, week_key).first()
    return WeeklyTipRecord.from_row(row) if row else None


def load_week_or_empty(db: Session, tenant_id: int, week_key: date) -> WeeklyTipRecord:
    return load_week(db, tenant_id, week_key) or WeeklyTipRecord.empty(tenant_id, week_key)


def save_week(
    db: Session,
    tenant_id: int,
    week_key: date,
    cash_entries: Sequence[Any],
    cc_entries: Sequence[Any],
    expected_version: Optional[int] = None,
) -> WeeklyTipRecord:
    """Replace the week's record.

    Without ``expected_version`` the save is a plain upsert and the last writer
    wins. With it, the save only lands if the stored version still equals the
    given one (0 for a week that has no record yet), otherwise VersionConflict.
    Saving content identical to what is stored leaves the record untouched.
    """
    cash = week_entries(cash_entries, "cash_entries")
    cc = week_entries(cc_entries, "cc_entries")
    if sum(cash, ZERO) == 0 and sum(cc, ZERO) == 0:
        raise ContractViolation("entries", "enter at least one tip amount")
    if expected_version is not None and expected_version < 0:
        raise ContractViolation("expected_version", "must not be negative")

    context = {"tenant_id": tenant_id, "week_key": week_key}
    current = load_week(db, tenant_id, week_key)
    actual_version = current.version if current else 0
    if expected_version is not None and expected_version != actual_version:
        raise VersionConflict(tenant_id, week_key, expected_version, actual_version)
    if current and current.cash_entries == cash and current.cc_entries == cc:
        logger.info("tenant %s week %s unchanged, skipping save", tenant_id, week_key)
        return current

    values = {
        "cash_entries": [str(v) for v in cash],
        "cc_entries": [str(v) for v in cc],
        "cash_tips": sum(cash, ZERO),
        "cc_tips": sum(cc, ZERO),
        "updated_at": datetime.now(timezone.utc),
    }
    with store_call(db, "save_week", **context):
        if expected_version is None:
            _upsert(db, tenant_id, week_key, values)
        elif current is None:
            _insert_new(db, tenant_id, week_key, values)
        else:
            _update_if_version(db, tenant_id, week_key, values, expected_version)
        db.commit()
    logger.info("tenant %s saved tips for week %s", tenant_id, week_key)
    return load_week(db, tenant_id, week_key)


def _upsert(db: Session, tenant_id: int, week_key: date, values: dict) -> None:
    insert = insert_for(db)
    stmt = insert(TipWeeklyData).values(tenant_id=tenant_id, week_key=week_key, version=1, **values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["tenant_id", "week_key"],
        set_={**values, "version": TipWeeklyData.version + 1},
    )
    db.execute(stmt)


def _insert_new(db: Session, tenant_id: int, week_key: date, values: dict) -> None:
    db.add(TipWeeklyData(tenant_id=tenant_id, week_key=week_key, version=1, **values))
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise VersionConflict(tenant_id, week_key, 0, 1) from None


def _update_if_version(
    db: Session, tenant_id: int, week_key: date, values: dict, expected_version: int
) -> None:
    result = db.execute(
        update(TipWeeklyData)
        .where(
            TipWeeklyData.tenant_id == tenant_id,
            TipWeeklyData.week_key == week_key,
            TipWeeklyData.version == expected_version,
        )
        .values(version=TipWeeklyData.version + 1, **values)
    )
    if result.rowcount == 0:
        db.rollback()
        latest = load_week(db, tenant_id, week_key)
        raise VersionConflict(tenant_id, week_key, expected_version, latest.version if latest else 0)


def list_range(db: Session, tenant_id: int, start: date, end: date) -> list[WeeklyTipRecord]:
    with store_call(db, "list_weeks", tenant_id=tenant_id, start=start, end=end):
        rows = db.query(TipWeeklyData).filter(
            TipWeeklyData.tenant_id == tenant_id,
            TipWeeklyData.week_key >= start,
            TipWeeklyData.week_key <= end,
        ).order_by(TipWeeklyData.week_key).all()
    return [WeeklyTipRecord.from_row(row) for row in rows]
