"""Tenant and employee identity lookups used by the tip pool."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tip_pool.db import store_call
from tip_pool.errors import ContractViolation, DuplicateEmployee, EmployeeNotFound
from tip_pool.models import Tenant, TipEmployee

logger = logging.getLogger(__name__)


def create_tenant(db: Session, name: str, cc_fee_rate: Optional[Decimal] = None) -> Tenant:
    tenant = Tenant(
        name=name,
        status="ACTIVE",
        cc_fee_rate=cc_fee_rate,
        created_at=datetime.now(timezone.utc),
    )
    with store_call(db, "create_tenant", name=name):
        db.add(tenant)
        db.commit()
        db.refresh(tenant)
    return tenant


def tenant_fee_rate(db: Session, tenant_id: int) -> Optional[Decimal]:
    with store_call(db, "tenant_fee_rate", tenant_id=tenant_id):
        tenant = db.get(Tenant, tenant_id)
    if tenant is None or tenant.cc_fee_rate is None:
        return None
    return Decimal(str(tenant.cc_fee_rate))


def create_employee(db: Session, tenant_id: int, name: str) -> TipEmployee:
    clean = (name or "").strip()
    if not clean:
        raise ContractViolation("name", "employee name is required")
    employee = TipEmployee(tenant_id=tenant_id, name=clean, is_active=True)
    with store_call(db, "create_employee", tenant_id=tenant_id):
        db.add(employee)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise DuplicateEmployee(tenant_id, clean) from None
        db.refresh(employee)
    logger.info("tenant %s added tip employee %s (%s)", tenant_id, employee.id, clean)
    return employee


def get_employee(db: Session, tenant_id: int, employee_id: int) -> TipEmployee:
    with store_call(db, "get_employee", tenant_id=tenant_id, employee_id=employee_id):
        employee = db.query(TipEmployee).filter(
            TipEmployee.tenant_id == tenant_id,
            TipEmployee.id == employee_id,
        ).first()
    if employee is None:
        raise EmployeeNotFound(tenant_id, employee_id)
    return employee


def list_employees(db: Session, tenant_id: int, include_inactive: bool = False) -> list[TipEmployee]:
    query = db.query(TipEmployee).filter(TipEmployee.tenant_id == tenant_id)
    if not include_inactive:
        query = query.filter(TipEmployee.is_active.is_(True))
    with store_call(db, "list_employees", tenant_id=tenant_id):
        return query.order_by(TipEmployee.name).all()


def deactivate_employee(db: Session, tenant_id: int, employee_id: int) -> TipEmployee:
    employee = get_employee(db, tenant_id, employee_id)
    with store_call(db, "deactivate_employee", tenant_id=tenant_id, employee_id=employee_id):
        employee.is_active = False
        db.commit()
        db.refresh(employee)
    logger.info("tenant %s deactivated tip employee %s", tenant_id, employee_id)
    return employee
