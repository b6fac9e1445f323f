"""Attendance logs, daily time records and the DTR event log."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from dtr_payroll.calculators.dtr_review import DtrEvent, DtrEventType
from dtr_payroll.calculators.types import (
    DtrSnapshot,
    DtrStatus,
    HolidayType,
    Punch,
    PunchDirection,
)
from dtr_payroll.models.base import Base, TimestampMixin


class AttendanceLog(Base, TimestampMixin):
    """A raw scan as delivered by the device sync (local wall-clock time)."""

    __tablename__ = "attendance_log"

    log_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"), nullable=False, index=True
    )
    logged_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    direction: Mapped[str | None] = mapped_column(String)
    source: Mapped[str] = mapped_column(String, nullable=False, default="device")

    def to_punch(self) -> Punch:
        return Punch(
            timestamp=self.logged_at,
            direction=PunchDirection(self.direction) if self.direction else None,
            source=self.source,
        )


class DailyTimeRecord(Base, TimestampMixin):
    """Read model of one employee-day, projected from ``dtr_event`` rows."""

    __tablename__ = "daily_time_record"

    dtr_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"), nullable=False
    )
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    schedule_id: Mapped[UUID | None] = mapped_column(ForeignKey("work_schedule.schedule_id"))
    shift_name: Mapped[str | None] = mapped_column(String)
    status: Mapped[str] = mapped_column(String, nullable=False)
    first_in: Mapped[datetime | None] = mapped_column(DateTime(timezone=False))
    last_out: Mapped[datetime | None] = mapped_column(DateTime(timezone=False))
    punches: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    total_work_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_break_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    late_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    undertime_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    overtime_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    overtime_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    overtime_denied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    night_differential_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    overtime_night_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    holiday_type: Mapped[str | None] = mapped_column(String)
    holiday_name: Mapped[str | None] = mapped_column(String)
    needs_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    review_reason: Mapped[str | None] = mapped_column(String)
    reviewed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    remarks: Mapped[str | None] = mapped_column(Text)
    event_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("employee_id", "work_date", name="dtr_employee_date_unique"),
    )

    def to_snapshot(self) -> DtrSnapshot:
        return DtrSnapshot(
            employee_id=self.employee_id,
            work_date=self.work_date,
            status=DtrStatus(self.status),
            schedule_id=self.schedule_id,
            shift_name=self.shift_name,
            first_in=self.first_in,
            last_out=self.last_out,
            punches=tuple(Punch.from_dict(p) for p in self.punches or []),
            total_work_minutes=self.total_work_minutes,
            total_break_minutes=self.total_break_minutes,
            late_minutes=self.late_minutes,
            undertime_minutes=self.undertime_minutes,
            overtime_minutes=self.overtime_minutes,
            overtime_approved=self.overtime_approved,
            overtime_denied=self.overtime_denied,
            night_differential_minutes=self.night_differential_minutes,
            overtime_night_minutes=self.overtime_night_minutes,
            holiday_type=HolidayType(self.holiday_type) if self.holiday_type else None,
            holiday_name=self.holiday_name,
            needs_review=self.needs_review,
            review_reason=self.review_reason,
            remarks=self.remarks,
        )

    def apply_snapshot(self, snapshot: DtrSnapshot) -> None:
        """Overwrite the projection columns from a folded snapshot."""
        self.schedule_id = snapshot.schedule_id
        self.shift_name = snapshot.shift_name
        self.status = snapshot.status.value
        self.first_in = snapshot.first_in
        self.last_out = snapshot.last_out
        self.punches = [p.to_dict() for p in snapshot.punches]
        self.total_work_minutes = snapshot.total_work_minutes
        self.total_break_minutes = snapshot.total_break_minutes
        self.late_minutes = snapshot.late_minutes
        self.undertime_minutes = snapshot.undertime_minutes
        self.overtime_minutes = snapshot.overtime_minutes
        self.overtime_approved = snapshot.overtime_approved
        self.overtime_denied = snapshot.overtime_denied
        self.night_differential_minutes = snapshot.night_differential_minutes
        self.overtime_night_minutes = snapshot.overtime_night_minutes
        self.holiday_type = snapshot.holiday_type.value if snapshot.holiday_type else None
        self.holiday_name = snapshot.holiday_name
        self.needs_review = snapshot.needs_review
        self.review_reason = snapshot.review_reason
        self.remarks = snapshot.remarks


class DtrEventRecord(Base):
    """Append-only DTR change log; never updated or deleted."""

    __tablename__ = "dtr_event"

    event_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    dtr_id: Mapped[UUID] = mapped_column(
        ForeignKey("daily_time_record.dtr_id", ondelete="RESTRICT"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    event_type: Mapped[str] = mapped_column(String, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    remarks: Mapped[str | None] = mapped_column(Text)
    actor_id: Mapped[str | None] = mapped_column(String)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (UniqueConstraint("dtr_id", "sequence", name="dtr_event_sequence_unique"),)

    @classmethod
    def from_event(cls, dtr_id: UUID, sequence: int, event: DtrEvent) -> DtrEventRecord:
        return cls(
            dtr_id=dtr_id,
            sequence=sequence,
            event_type=event.event_type.value,
            payload=event.payload,
            remarks=event.remarks,
            actor_id=event.actor_id,
            occurred_at=event.occurred_at,
        )

    def to_event(self) -> DtrEvent:
        return DtrEvent(
            event_type=DtrEventType(self.event_type),
            occurred_at=self.occurred_at,
            actor_id=self.actor_id,
            remarks=self.remarks,
            payload=self.payload or {},
        )
