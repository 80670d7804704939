"""Replays the weekly calculation across a range of weeks for export.

Both range reads run concurrently on worker threads, each with its own
session, and share one timeout. Either both finish or the aggregation fails;
a partially fetched range never turns into a report.
"""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from tip_pool import directory, employee_hours, weekly_tips
from tip_pool.calculator import calculate_payout, validate_fee_rate
from tip_pool.config import settings
from tip_pool.employee_hours import HoursEntry
from tip_pool.errors import AggregationTimeout, ContractViolation
from tip_pool.money import ZERO, week_key_for, week_range
from tip_pool.weekly_tips import WeeklyTipRecord

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


class AggregateMode(str, Enum):
    TEAM = "team"
    INDIVIDUAL = "individual"


class AggregateStatus(str, Enum):
    OK = "ok"
    EMPTY = "empty"


class WeekSummary(BaseModel):
    week_key: date
    week_label: str
    cash_total: Decimal
    cc_total: Decimal
    total_pool: Decimal
    total_team_hours: Decimal
    hourly_rate: Decimal


class EmployeeWeekRow(BaseModel):
    week_key: date
    week_label: str
    employee_id: int
    employee_name: str
    hours: Decimal
    hourly_rate: Decimal
    payout: Decimal
    running_total: Optional[Decimal] = None


class EmployeeTotal(BaseModel):
    employee_id: int
    employee_name: str
    is_active: bool
    hours: Decimal = ZERO
    payout: Decimal = ZERO


class HistoricalAggregate(BaseModel):
    tenant_id: int
    mode: AggregateMode
    status: AggregateStatus
    start_week: date
    end_week: date
    fee_rate: Decimal
    employee_id: Optional[int] = None
    employee_name: Optional[str] = None
    weeks: list[WeekSummary] = []
    rows: list[EmployeeWeekRow] = []
    employee_totals: list[EmployeeTotal] = []
    total_hours: Decimal = ZERO
    total_payout: Decimal = ZERO

    @property
    def is_empty(self) -> bool:
        return self.status == AggregateStatus.EMPTY


class HistoricalAggregator:
    def __init__(
        self,
        session_factory: SessionFactory,
        fee_rate: Optional[Decimal] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.session_factory = session_factory
        self.fee_rate = validate_fee_rate(settings.cc_fee_rate if fee_rate is None else fee_rate)
        self.timeout = settings.aggregation_timeout_seconds if timeout is None else timeout

    def _fetch_weeks(self, tenant_id: int, start: date, end: date) -> list[WeeklyTipRecord]:
        db = self.session_factory()
        try:
            return weekly_tips.list_range(db, tenant_id, start, end)
        finally:
            db.close()

    def _fetch_hours(self, tenant_id: int, start: date, end: date) -> list[HoursEntry]:
        db = self.session_factory()
        try:
            # individual mode still needs every employee's hours for the team rate
            return employee_hours.list_range(db, tenant_id, start, end)
        finally:
            db.close()

    def _fetch_employee_name(self, tenant_id: int, employee_id: int) -> str:
        db = self.session_factory()
        try:
            return directory.get_employee(db, tenant_id, employee_id).name
        finally:
            db.close()

    async def _fetch(
        self, tenant_id: int, start: date, end: date, employee_id: Optional[int] = None
    ) -> tuple[list[WeeklyTipRecord], list[HoursEntry], Optional[str]]:
        reads = [
            asyncio.to_thread(self._fetch_weeks, tenant_id, start, end),
            asyncio.to_thread(self._fetch_hours, tenant_id, start, end),
        ]
        if employee_id is not None:
            reads.append(asyncio.to_thread(self._fetch_employee_name, tenant_id, employee_id))
        try:
            weeks, hours, *name = await asyncio.wait_for(asyncio.gather(*reads), timeout=self.timeout)
            return weeks, hours, (name[0] if name else None)
        except asyncio.TimeoutError:
            logger.warning(
                "aggregation for tenant %s %s..%s exceeded %ss", tenant_id, start, end, self.timeout
            )
            raise AggregationTimeout(
                "aggregate", self.timeout, tenant_id=tenant_id, start=start, end=end
            ) from None

    async def aggregate(
        self,
        tenant_id: int,
        start_week: date,
        end_week: date,
        mode: AggregateMode | str = AggregateMode.TEAM,
        employee_id: Optional[int] = None,
    ) -> HistoricalAggregate:
        try:
            mode = AggregateMode(mode)
        except ValueError:
            raise ContractViolation("mode", f"unknown mode {mode!r}") from None
        start = week_key_for(start_week)
        end = week_key_for(end_week)
        if start > end:
            raise ContractViolation("start", "start is after end")
        if mode is AggregateMode.INDIVIDUAL and employee_id is None:
            raise ContractViolation("employee_id", "required for an individual report")

        lookup = employee_id if mode is AggregateMode.INDIVIDUAL else None
        weeks, hours, employee_name = await self._fetch(tenant_id, start, end, lookup)

        report = HistoricalAggregate(
            tenant_id=tenant_id,
            mode=mode,
            status=AggregateStatus.EMPTY if not weeks else AggregateStatus.OK,
            start_week=start,
            end_week=end,
            fee_rate=self.fee_rate,
            employee_id=employee_id,
            employee_name=employee_name,
        )
        if not weeks:
            logger.info("no tip records for tenant %s in %s..%s", tenant_id, start, end)
            return report
        if mode is AggregateMode.TEAM:
            return self._team(report, weeks, hours)
        return self._individual(report, weeks, hours, employee_id)

    def _replay(self, weeks: list[WeeklyTipRecord], hours: list[HoursEntry]):
        by_week: dict[date, list[HoursEntry]] = defaultdict(list)
        for entry in hours:
            by_week[entry.week_key].append(entry)
        for week in weeks:
            entries = by_week.get(week.week_key, [])
            calc = calculate_payout(
                week.cash_entries,
                week.cc_entries,
                {entry.employee_id: entry.hours for entry in entries},
                fee_rate=self.fee_rate,
                week_key=week.week_key,
            )
            summary = WeekSummary(
                week_key=week.week_key,
                week_label=week_range(week.week_key).label,
                cash_total=calc.cash_total,
                cc_total=calc.cc_total,
                total_pool=calc.total_pool,
                total_team_hours=calc.total_team_hours,
                hourly_rate=calc.hourly_rate,
            )
            yield summary, entries, calc

    def _team(
        self, report: HistoricalAggregate, weeks: list[WeeklyTipRecord], hours: list[HoursEntry]
    ) -> HistoricalAggregate:
        totals: dict[int, EmployeeTotal] = {}
        for summary, entries, calc in self._replay(weeks, hours):
            report.weeks.append(summary)
            for entry in entries:
                payout = calc.payout_for(entry.employee_id)
                report.rows.append(
                    EmployeeWeekRow(
                        week_key=summary.week_key,
                        week_label=summary.week_label,
                        employee_id=entry.employee_id,
                        employee_name=entry.employee_name,
                        hours=entry.hours,
                        hourly_rate=calc.hourly_rate,
                        payout=payout,
                    )
                )
                total = totals.setdefault(
                    entry.employee_id,
                    EmployeeTotal(
                        employee_id=entry.employee_id,
                        employee_name=entry.employee_name,
                        is_active=entry.is_active,
                    ),
                )
                total.hours += entry.hours
                total.payout += payout
                report.total_hours += entry.hours
                report.total_payout += payout
        report.employee_totals = sorted(totals.values(), key=lambda t: t.payout, reverse=True)
        return report

    def _individual(
        self,
        report: HistoricalAggregate,
        weeks: list[WeeklyTipRecord],
        hours: list[HoursEntry],
        employee_id: int,
    ) -> HistoricalAggregate:
        running = ZERO
        for summary, entries, calc in self._replay(weeks, hours):
            mine = next((e for e in entries if e.employee_id == employee_id), None)
            if mine is None:
                continue
            report.weeks.append(summary)
            payout = calc.payout_for(employee_id)
            running += payout
            report.rows.append(
                EmployeeWeekRow(
                    week_key=summary.week_key,
                    week_label=summary.week_label,
                    employee_id=employee_id,
                    employee_name=mine.employee_name,
                    hours=mine.hours,
                    hourly_rate=calc.hourly_rate,
                    payout=payout,
                    running_total=running,
                )
            )
            report.total_hours += mine.hours
        report.total_payout = running
        return report
