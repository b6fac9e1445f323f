"""Work schedule, assignment and holiday calendar models."""

from __future__ import annotations

from datetime import date
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, Date, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from dtr_payroll.calculators.schedule import ScheduleAssignment, WorkSchedule
from dtr_payroll.calculators.types import Holiday, HolidayType
from dtr_payroll.models.base import Base, TimestampMixin
from dtr_payroll.schemas import WorkScheduleSchema


class ScheduleVersion(Base, TimestampMixin):
    """One immutable version of a work schedule."""

    __tablename__ = "work_schedule"

    schedule_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    schedule_type: Mapped[str] = mapped_column(String, nullable=False)
    time_configuration: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    overtime_rules: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    night_differential: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (UniqueConstraint("name", "version", name="work_schedule_name_version_unique"),)

    def to_domain(self) -> WorkSchedule:
        return WorkScheduleSchema.model_validate(
            {
                "schedule_id": self.schedule_id,
                "name": self.name,
                "schedule_type": self.schedule_type,
                "version": self.version,
                "time_configuration": self.time_configuration or {},
                "overtime_rules": self.overtime_rules or {},
                "night_differential": self.night_differential or {},
            }
        ).to_domain()


class EmployeeScheduleAssignment(Base, TimestampMixin):
    """Which schedule version (and shift) applies to an employee, by date."""

    __tablename__ = "employee_schedule_assignment"

    assignment_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"), nullable=False
    )
    schedule_id: Mapped[UUID] = mapped_column(
        ForeignKey("work_schedule.schedule_id"), nullable=False
    )
    shift_name: Mapped[str | None] = mapped_column(String)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date)

    def to_domain(self) -> ScheduleAssignment:
        return ScheduleAssignment(
            employee_id=self.employee_id,
            schedule_id=self.schedule_id,
            effective_date=self.effective_date,
            end_date=self.end_date,
            shift_name=self.shift_name,
        )


class HolidayEntry(Base, TimestampMixin):
    """Holiday calendar (owned by HR, read here)."""

    __tablename__ = "holiday"

    holiday_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    holiday_date: Mapped[date] = mapped_column(Date, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    holiday_type: Mapped[str] = mapped_column(String, nullable=False, default=HolidayType.REGULAR.value)

    def to_domain(self) -> Holiday:
        return Holiday(
            holiday_date=self.holiday_date,
            name=self.name,
            holiday_type=HolidayType(self.holiday_type),
        )
