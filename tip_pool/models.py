from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from tip_pool.db import Base

ID_TYPE = BigInteger().with_variant(Integer, "sqlite")
JSON_TYPE = JSON().with_variant(JSONB, "postgresql")


class Tenant(Base):
    __tablename__ = "tenant"
    __table_args__ = (
        CheckConstraint("cc_fee_rate >= 0 AND cc_fee_rate < 1", name="tenant_cc_fee_rate_range"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="ACTIVE")
    cc_fee_rate: Mapped[Numeric | None] = mapped_column(Numeric(6, 5))
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)


class TipEmployee(Base):
    __tablename__ = "tip_employee"
    __table_args__ = (
        Index("ix_tip_employee_tenant_name", "tenant_id", "name", unique=True),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tenant.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class TipWeeklyData(Base):
    __tablename__ = "tip_weekly_data"
    __table_args__ = (
        Index("ix_tip_weekly_data_tenant_week", "tenant_id", "week_key", unique=True),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tenant.id"), nullable=False
    )
    week_key: Mapped[Date] = mapped_column(Date, nullable=False)
    # seven decimal strings, Monday first
    cash_entries: Mapped[list] = mapped_column(JSON_TYPE, nullable=False)
    cc_entries: Mapped[list] = mapped_column(JSON_TYPE, nullable=False)
    cash_tips: Mapped[Numeric] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    cc_tips: Mapped[Numeric] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)


class TipEmployeeHours(Base):
    __tablename__ = "tip_employee_hours"
    __table_args__ = (
        Index(
            "ix_tip_employee_hours_unique",
            "tenant_id",
            "employee_id",
            "week_key",
            unique=True,
        ),
        CheckConstraint("hours >= 0", name="tip_employee_hours_non_negative"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tenant.id"), nullable=False
    )
    employee_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tip_employee.id"), nullable=False
    )
    week_key: Mapped[Date] = mapped_column(Date, nullable=False)
    hours: Mapped[Numeric] = mapped_column(Numeric(12, 6), nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
