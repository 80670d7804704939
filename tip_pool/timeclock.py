"""Turns raw time-clock punches into per-employee weekly hours."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel

from tip_pool.money import ZERO

SECONDS_PER_HOUR = Decimal(3600)


class TimeclockBreak(BaseModel):
    break_start: datetime
    break_end: Optional[datetime] = None
    is_paid: bool = False


class TimeclockEntry(BaseModel):
    tip_employee_id: Optional[int] = None
    employee_name: Optional[str] = None
    clock_in: datetime
    clock_out: Optional[datetime] = None
    breaks: list[TimeclockBreak] = []


class ImportedHours(BaseModel):
    employee_id: int
    employee_name: str
    total_hours: Decimal
    entry_count: int


class UnmatchedHours(BaseModel):
    employee_name: str
    total_hours: Decimal
    entry_count: int


class TimeclockPreview(BaseModel):
    matched: list[ImportedHours]
    unmatched: list[UnmatchedHours]
    skipped_count: int

    @property
    def total_hours(self) -> Decimal:
        return sum((row.total_hours for row in self.matched), ZERO)

    def hours_by_employee(self) -> dict[int, Decimal]:
        return {row.employee_id: row.total_hours for row in self.matched}


def _hours_between(start: datetime, end: datetime) -> Decimal:
    return Decimal(str((end - start).total_seconds())) / SECONDS_PER_HOUR


def net_hours(entry: TimeclockEntry) -> Decimal:
    if entry.clock_out is None:
        return ZERO
    gross = _hours_between(entry.clock_in, entry.clock_out)
    unpaid = sum(
        (
            _hours_between(b.break_start, b.break_end)
            for b in entry.breaks
            if b.break_end is not None and not b.is_paid
        ),
        ZERO,
    )
    return max(ZERO, gross - unpaid)


def summarize_entries(entries: Iterable[TimeclockEntry], employees: dict[int, str]) -> TimeclockPreview:
    """Group punches by tip employee.

    ``employees`` maps the tenant's employee ids to names; punches linked to an
    id outside it, or to no id at all, are reported back by name as unmatched.
    Open punches (no clock out) are counted as skipped.
    """
    matched: dict[int, ImportedHours] = {}
    unmatched: dict[str, UnmatchedHours] = {}
    skipped = 0
    for entry in entries:
        if entry.clock_out is None:
            skipped += 1
            continue
        hours = net_hours(entry)
        if entry.tip_employee_id in employees:
            row = matched.setdefault(
                entry.tip_employee_id,
                ImportedHours(
                    employee_id=entry.tip_employee_id,
                    employee_name=employees[entry.tip_employee_id],
                    total_hours=ZERO,
                    entry_count=0,
                ),
            )
        else:
            name = (entry.employee_name or "Unknown").strip() or "Unknown"
            row = unmatched.setdefault(name, UnmatchedHours(employee_name=name, total_hours=ZERO, entry_count=0))
        row.total_hours += hours
        row.entry_count += 1
    return TimeclockPreview(
        matched=sorted(matched.values(), key=lambda r: r.employee_name.lower()),
        unmatched=sorted(unmatched.values(), key=lambda r: r.employee_name.lower()),
        skipped_count=skipped,
    )
