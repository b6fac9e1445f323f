"""Payroll period, entry and line item models."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from dtr_payroll.models.base import Base, TimestampMixin

ZERO = Decimal("0")


def _money(nullable: bool = False) -> Any:
    return mapped_column(Numeric(14, 2), nullable=nullable, default=ZERO)


class PayrollPeriod(Base, TimestampMixin):
    """Pay period and its aggregate totals."""

    __tablename__ = "payroll_period"

    payroll_period_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    cycle_type: Mapped[str] = mapped_column(String, nullable=False)
    period_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    pay_date: Mapped[date | None] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    employee_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_gross: Mapped[Decimal] = _money()
    total_deductions: Mapped[Decimal] = _money()
    total_net: Mapped[Decimal] = _money()
    computed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="payroll_period_dates_check"),
        CheckConstraint(
            "cycle_type IN ('semi_monthly', 'monthly', 'supplemental')",
            name="payroll_period_cycle_check",
        ),
    )


class PayrollEntry(Base, TimestampMixin):
    """One employee's computed pay for one period."""

    __tablename__ = "payroll_entry"

    entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    payroll_period_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_period.payroll_period_id", ondelete="CASCADE"), nullable=False
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")

    # Traceability
    calculation_id: Mapped[UUID] = mapped_column(nullable=False)
    inputs_fingerprint: Mapped[str] = mapped_column(String, nullable=False)
    rules_fingerprint: Mapped[str] = mapped_column(String, nullable=False)

    # Attendance snapshot
    days_worked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    absent_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    leave_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    holiday_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    late_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    undertime_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    overtime_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    night_differential_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Earnings
    basic_pay: Mapped[Decimal] = _money()
    overtime_pay: Mapped[Decimal] = _money()
    night_differential_pay: Mapped[Decimal] = _money()
    holiday_pay: Mapped[Decimal] = _money()
    allowances: Mapped[Decimal] = _money()
    bonuses: Mapped[Decimal] = _money()
    gross_pay: Mapped[Decimal] = _money()
    taxable_income: Mapped[Decimal] = _money()

    # Deductions
    sss_employee: Mapped[Decimal] = _money()
    philhealth_employee: Mapped[Decimal] = _money()
    pagibig_employee: Mapped[Decimal] = _money()
    withholding_tax: Mapped[Decimal] = _money()
    loan_deductions: Mapped[Decimal] = _money()
    other_deductions: Mapped[Decimal] = _money()
    total_deductions: Mapped[Decimal] = _money()

    # Employer shares (not part of net)
    sss_employer: Mapped[Decimal] = _money()
    philhealth_employer: Mapped[Decimal] = _money()
    pagibig_employer: Mapped[Decimal] = _money()

    net_pay: Mapped[Decimal] = _money()

    computed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    approved_by: Mapped[str | None] = mapped_column(String)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    voided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    void_reason: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint("payroll_period_id", "employee_id", name="payroll_entry_period_employee_unique"),
    )


class PayrollLineItem(Base, TimestampMixin):
    """Immutable line of a payroll entry; replaced wholesale on recompute."""

    __tablename__ = "payroll_line_item"

    line_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    entry_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_entry.entry_id", ondelete="CASCADE"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    line_type: Mapped[str] = mapped_column(String, nullable=False)
    code: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    quantity: Mapped[Decimal | None] = mapped_column(Numeric(14, 4))
    rate: Mapped[Decimal | None] = mapped_column(Numeric(14, 6))
    source_id: Mapped[str | None] = mapped_column(String)
    explanation: Mapped[str | None] = mapped_column(Text)
    is_taxable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    line_hash: Mapped[str] = mapped_column(String, nullable=False)
