from __future__ import annotations

import asyncio
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Optional
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session, sessionmaker

from tip_pool import directory, employee_hours, weekly_tips
from tip_pool.aggregator import AggregateMode, HistoricalAggregator
from tip_pool.calculator import calculate_payout
from tip_pool.config import settings
from tip_pool.db import SessionLocal, check_connection
from tip_pool.errors import ContractViolation, TipPoolError
from tip_pool.money import Weekday, day_of, hours_from_hm, non_negative, parse_week_key, week_range
from tip_pool.reconciler import reconcile
from tip_pool.timeclock import TimeclockEntry, summarize_entries

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Tip Pool")


def _meta(request_id: Optional[str] = None, warnings: Optional[list[str]] = None) -> dict:
    return {
        "request_id": request_id or f"req_{uuid4().hex}",
        "warnings": warnings or [],
    }


def get_db() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> sessionmaker:
    return SessionLocal


@app.exception_handler(TipPoolError)
def handle_tip_pool_error(request: Request, exc: TipPoolError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


def _fee_rate_for(db: Session, tenant_id: int, override: Optional[Decimal] = None) -> Decimal:
    if override is not None:
        return override
    tenant_rate = directory.tenant_fee_rate(db, tenant_id)
    return settings.cc_fee_rate if tenant_rate is None else tenant_rate


def _record_data(record: weekly_tips.WeeklyTipRecord) -> dict:
    return {
        "tenant_id": record.tenant_id,
        "week_key": record.week_key.isoformat(),
        "week_label": week_range(record.week_key).label,
        "exists": record.exists,
        "version": record.version,
        "cash_entries": [str(v) for v in record.cash_entries],
        "cc_entries": [str(v) for v in record.cc_entries],
        "cash_total": str(record.cash_total),
        "cc_total": str(record.cc_total),
        "days": [
            {
                "day": day.short_name,
                "date": day_of(record.week_key, day).isoformat(),
                "cash": str(record.cash_for(day)),
                "cc": str(record.cc_for(day)),
            }
            for day in Weekday
        ],
    }


@app.get("/", tags=["root"])
def read_root() -> dict:
    return {"status": "ok"}


@app.get("/health", tags=["health"])
def health_check() -> dict:
    database = "ok" if check_connection() else "unavailable"
    return {"status": "healthy" if database == "ok" else "degraded", "database": database}


class TenantCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {'name': 'Erwin Mills', 'cc_fee_rate': '0.035'}}}
    name: str
    cc_fee_rate: Optional[Decimal] = Field(default=None, ge=0, lt=1)


@app.post("/api/v1/tenants", tags=["Tenants"])
def create_tenant(payload: TenantCreate, db: Session = Depends(get_db)) -> dict:
    tenant = directory.create_tenant(db, payload.name, payload.cc_fee_rate)
    return {
        "data": {
            "tenant_id": tenant.id,
            "name": tenant.name,
            "cc_fee_rate": str(tenant.cc_fee_rate) if tenant.cc_fee_rate is not None else None,
        },
        "meta": _meta(),
    }


class TipEmployeeCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {'tenant_id': 1, 'name': 'Alice'}}}
    tenant_id: int
    name: str


def _employee_data(employee) -> dict:
    return {
        "employee_id": employee.id,
        "tenant_id": employee.tenant_id,
        "name": employee.name,
        "is_active": employee.is_active,
    }


@app.post("/api/v1/tip-employees", tags=["Tip Employees"])
def create_tip_employee(payload: TipEmployeeCreate, db: Session = Depends(get_db)) -> dict:
    employee = directory.create_employee(db, payload.tenant_id, payload.name)
    return {"data": _employee_data(employee), "meta": _meta()}


@app.get("/api/v1/tip-employees", tags=["Tip Employees"])
def list_tip_employees(
    tenant_id: int = Query(...),
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> dict:
    employees = directory.list_employees(db, tenant_id, include_inactive=include_inactive)
    return {"data": [_employee_data(e) for e in employees], "meta": _meta()}


@app.post("/api/v1/tip-employees/{employee_id}:deactivate", tags=["Tip Employees"])
def deactivate_tip_employee(
    employee_id: int, tenant_id: int = Query(...), db: Session = Depends(get_db)
) -> dict:
    employee = directory.deactivate_employee(db, tenant_id, employee_id)
    return {"data": _employee_data(employee), "meta": _meta()}


@app.get("/api/v1/tip-weeks/{week_key}", tags=["Weekly Tips"])
def get_tip_week(week_key: str, tenant_id: int = Query(...), db: Session = Depends(get_db)) -> dict:
    record = weekly_tips.load_week_or_empty(db, tenant_id, parse_week_key(week_key))
    return {"data": _record_data(record), "meta": _meta()}


class TipWeekSave(BaseModel):
    model_config = {"json_schema_extra": {"example": {'tenant_id': 1, 'cash_entries': [50, 60, 40, 70, 55, 65, 45], 'cc_entries': [100, 120, 90, 110, 95, 130, 85], 'expected_version': None}}}
    tenant_id: int
    cash_entries: list[Any]
    cc_entries: list[Any]
    expected_version: Optional[int] = None


@app.put("/api/v1/tip-weeks/{week_key}", tags=["Weekly Tips"])
def save_tip_week(week_key: str, payload: TipWeekSave, db: Session = Depends(get_db)) -> dict:
    record = weekly_tips.save_week(
        db,
        payload.tenant_id,
        parse_week_key(week_key),
        payload.cash_entries,
        payload.cc_entries,
        expected_version=payload.expected_version,
    )
    return {"data": _record_data(record), "meta": _meta()}


@app.get("/api/v1/tip-weeks/{week_key}/hours", tags=["Employee Hours"])
def get_week_hours(week_key: str, tenant_id: int = Query(...), db: Session = Depends(get_db)) -> dict:
    entries = employee_hours.load_week_entries(db, tenant_id, parse_week_key(week_key))
    return {
        "data": [
            {
                "employee_id": entry.employee_id,
                "name": entry.employee_name,
                "is_active": entry.is_active,
                "hours": str(entry.hours),
            }
            for entry in entries
        ],
        "meta": _meta(),
    }


class HoursUpsert(BaseModel):
    model_config = {"json_schema_extra": {"example": {'tenant_id': 1, 'hours': 7, 'minutes': 15}}}
    tenant_id: int
    hours: Any = None
    minutes: Any = None


@app.put("/api/v1/tip-weeks/{week_key}/hours/{employee_id}", tags=["Employee Hours"])
def upsert_week_hours(
    week_key: str, employee_id: int, payload: HoursUpsert, db: Session = Depends(get_db)
) -> dict:
    if payload.minutes is None:
        total = non_negative(payload.hours, "hours")
    else:
        total = hours_from_hm(payload.hours or 0, payload.minutes)
    if total == 0:
        raise ContractViolation("hours", "enter hours greater than zero")
    key = parse_week_key(week_key)
    stored = employee_hours.upsert_hours(db, payload.tenant_id, employee_id, key, total)
    return {
        "data": {
            "employee_id": employee_id,
            "week_key": key.isoformat(),
            "hours": str(stored),
        },
        "meta": _meta(),
    }


@app.delete("/api/v1/tip-weeks/{week_key}/hours/{employee_id}", tags=["Employee Hours"])
def delete_week_hours(
    week_key: str, employee_id: int, tenant_id: int = Query(...), db: Session = Depends(get_db)
) -> dict:
    deleted = employee_hours.delete_hours(db, tenant_id, employee_id, parse_week_key(week_key))
    if not deleted:
        raise HTTPException(status_code=404, detail="hours not found")
    return {"data": {"employee_id": employee_id, "deleted": True}, "meta": _meta()}


@app.get("/api/v1/tip-weeks/{week_key}/payout", tags=["Payout"])
def get_week_payout(
    week_key: str,
    tenant_id: int = Query(...),
    fee_rate: Optional[Decimal] = Query(default=None, ge=0, lt=1),
    db: Session = Depends(get_db),
) -> dict:
    key = parse_week_key(week_key)
    record = weekly_tips.load_week_or_empty(db, tenant_id, key)
    hours = employee_hours.load_week_hours(db, tenant_id, key)
    calc = calculate_payout(
        record.cash_entries,
        record.cc_entries,
        hours,
        fee_rate=_fee_rate_for(db, tenant_id, fee_rate),
        week_key=key,
    )
    warnings = []
    if calc.total_pool > 0 and calc.total_team_hours == 0:
        warnings.append("tips recorded but no hours entered")
    data = calc.model_dump(mode="json")
    data["rows"] = [
        {key_: str(value) if isinstance(value, Decimal) else value for key_, value in row.items()}
        for row in calc.presentation_rows()
    ]
    return {"data": data, "meta": _meta(warnings=warnings)}


class ReconcileRequest(BaseModel):
    model_config = {"json_schema_extra": {"example": {'tenant_id': 1, 'declared_hours': 40, 'declared_minutes': 5}}}
    tenant_id: int
    declared_hours: Any = 0
    declared_minutes: Any = 0
    tolerance: Optional[Decimal] = Field(default=None, gt=0)


@app.post("/api/v1/tip-weeks/{week_key}/reconcile", tags=["Payout"])
def reconcile_week_hours(week_key: str, payload: ReconcileRequest, db: Session = Depends(get_db)) -> dict:
    hours = employee_hours.load_week_hours(db, payload.tenant_id, parse_week_key(week_key))
    result = reconcile(hours, payload.declared_hours, payload.declared_minutes, payload.tolerance)
    data = result.model_dump(mode="json")
    data["message"] = result.message
    return {"data": data, "meta": _meta()}


class TimeclockImport(BaseModel):
    tenant_id: int
    entries: list[TimeclockEntry]


def _timeclock_preview(db: Session, payload: TimeclockImport):
    employees = {
        e.id: e.name for e in directory.list_employees(db, payload.tenant_id, include_inactive=True)
    }
    return summarize_entries(payload.entries, employees)


@app.post("/api/v1/tip-weeks/{week_key}/timeclock-import:preview", tags=["Employee Hours"])
def preview_timeclock_import(week_key: str, payload: TimeclockImport, db: Session = Depends(get_db)) -> dict:
    parse_week_key(week_key)
    preview = _timeclock_preview(db, payload)
    data = preview.model_dump(mode="json")
    data["total_hours"] = str(preview.total_hours)
    return {"data": data, "meta": _meta()}


@app.post("/api/v1/tip-weeks/{week_key}/timeclock-import:confirm", tags=["Employee Hours"])
def confirm_timeclock_import(week_key: str, payload: TimeclockImport, db: Session = Depends(get_db)) -> dict:
    key = parse_week_key(week_key)
    preview = _timeclock_preview(db, payload)
    if not preview.matched:
        raise ContractViolation("entries", "no entries matched a tip employee")
    imported = employee_hours.replace_hours(db, payload.tenant_id, key, preview.hours_by_employee())
    return {
        "data": {
            "week_key": key.isoformat(),
            "imported": imported,
            "unmatched": len(preview.unmatched),
            "skipped": preview.skipped_count,
        },
        "meta": _meta(),
    }


def _history_fee_rate(factory: sessionmaker, tenant_id: int) -> Decimal:
    db = factory()
    try:
        return _fee_rate_for(db, tenant_id)
    finally:
        db.close()


@app.get("/api/v1/tip-history", tags=["History"])
async def get_tip_history(
    tenant_id: int = Query(...),
    start: date = Query(...),
    end: date = Query(...),
    mode: AggregateMode = Query(default=AggregateMode.TEAM),
    employee_id: Optional[int] = Query(default=None),
    factory: sessionmaker = Depends(get_session_factory),
) -> dict:
    fee_rate = await asyncio.to_thread(_history_fee_rate, factory, tenant_id)
    aggregator = HistoricalAggregator(factory, fee_rate=fee_rate)
    report = await aggregator.aggregate(tenant_id, start, end, mode=mode, employee_id=employee_id)
    warnings = ["no tip records in range"] if report.is_empty else []
    return {"data": report.model_dump(mode="json"), "meta": _meta(warnings=warnings)}
