"""Employee roster, compensation and leave models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Boolean, Date, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from dtr_payroll.calculators.types import CompensationInput, PayType
from dtr_payroll.models.base import Base, TimestampMixin


class Employee(Base, TimestampMixin):
    """Roster entry (owned by the HR system, read here)."""

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_number: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    full_name: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    hired_on: Mapped[date] = mapped_column(Date, nullable=False)
    separated_on: Mapped[date | None] = mapped_column(Date)

    def is_employed_during(self, start: date, end: date) -> bool:
        if self.status != "active":
            return False
        return self.hired_on <= end and (self.separated_on is None or self.separated_on >= start)


class EmployeeCompensation(Base, TimestampMixin):
    """Effective-dated basic pay."""

    __tablename__ = "employee_compensation"

    compensation_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"), nullable=False
    )
    basic_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    pay_type: Mapped[str] = mapped_column(String, nullable=False, default=PayType.MONTHLY.value)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)

    __table_args__ = (
        UniqueConstraint("employee_id", "effective_date", name="compensation_employee_date_unique"),
    )

    def to_input(self) -> CompensationInput:
        return CompensationInput(basic_pay=Decimal(self.basic_pay), pay_type=PayType(self.pay_type))


class LeaveApproval(Base, TimestampMixin):
    """Approved leave range, consumed when classifying days without punches."""

    __tablename__ = "leave_approval"

    leave_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"), nullable=False
    )
    leave_type: Mapped[str] = mapped_column(String, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date
