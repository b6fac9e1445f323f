"""Daily time record classification and review, persisted as an event log."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dtr_payroll.calculators.dtr_review import (
    DtrEvent,
    DtrReviewResolver,
    ReviewResolution,
    apply_event,
    is_reviewed,
    replay,
    reviewed_after,
)
from dtr_payroll.calculators.punches import punch_window, select_punches
from dtr_payroll.calculators.schedule import (
    ScheduleAssignment,
    WorkSchedule,
    resolve_assignment,
    validate_assignments,
)
from dtr_payroll.calculators.time_classifier import TimeClassifier
from dtr_payroll.calculators.types import DtrSnapshot, HolidayCalendar, Punch
from dtr_payroll.clock import Clock, SystemClock
from dtr_payroll.config import Settings, get_settings
from dtr_payroll.errors import PayrollEngineError, RecordNotFoundError, ValidationError
from dtr_payroll.models import (
    AttendanceLog,
    DailyTimeRecord,
    DtrEventRecord,
    EmployeeScheduleAssignment,
    HolidayEntry,
    LeaveApproval,
    ScheduleVersion,
)

logger = logging.getLogger(__name__)


@dataclass
class ClassificationResult:
    """Outcome of classifying a date range for one or more employees."""

    records: list[DailyTimeRecord] = field(default_factory=list)
    unchanged: int = 0
    skipped: int = 0
    errors: dict[UUID, PayrollEngineError] = field(default_factory=dict)

    @property
    def flagged(self) -> list[DailyTimeRecord]:
        return [r for r in self.records if r.needs_review]


@dataclass
class _EmployeeContext:
    """Everything needed to classify one employee over a date range."""

    assignments: list[ScheduleAssignment]
    schedules: dict[UUID, WorkSchedule]
    holidays: HolidayCalendar
    leaves: list[LeaveApproval]
    punches: list[Punch]

    def schedule_for(self, employee_id: UUID, day: date) -> tuple[WorkSchedule | None, str | None]:
        assignment = resolve_assignment(self.assignments, employee_id, day)
        if assignment is None:
            return None, None
        return self.schedules.get(assignment.schedule_id), assignment.shift_name

    def on_leave(self, day: date) -> bool:
        return any(leave.covers(day) for leave in self.leaves)


def _date_range(start: date, end: date):
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


class AttendanceService:
    """Turns raw punches into daily time records and records reviewer actions.

    Every change to a record is first appended to ``dtr_event`` and then
    folded into the ``daily_time_record`` row, so the row can always be
    rebuilt by replaying its events.
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()
        self.classifier = TimeClassifier(self.settings.duplicate_punch_threshold_minutes)
        self.resolver = DtrReviewResolver(self.clock, self.classifier)

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    async def classify_day(
        self, employee_id: UUID, work_date: date, actor_id: str | None = None, force: bool = False
    ) -> DailyTimeRecord | None:
        result = await self.classify_range(employee_id, work_date, work_date, actor_id, force)
        return result.records[0] if result.records else None

    async def classify_range(
        self,
        employee_id: UUID,
        start: date,
        end: date,
        actor_id: str | None = None,
        force: bool = False,
    ) -> ClassificationResult:
        """Classify each day in ``[start, end]`` for one employee.

        Records a reviewer already acted on are left alone unless ``force``.
        A day whose classification is unchanged appends no event.
        """
        if end < start:
            raise ValidationError(f"Range end {end} precedes start {start}")

        context = await self._load_context(employee_id, start, end)
        existing = await self._existing_records(employee_id, start, end)
        result = ClassificationResult()

        for day in _date_range(start, end):
            record = existing.get(day)
            if record is not None and record.reviewed and not force:
                logger.debug("DTR %s/%s already reviewed; skipping", employee_id, day)
                result.skipped += 1
                result.records.append(record)
                continue

            snapshot = self._classify(employee_id, day, context)
            if record is not None:
                current = record.to_snapshot()
                if replace(snapshot, remarks=current.remarks) == current:
                    result.unchanged += 1
                    result.records.append(record)
                    continue
            else:
                record = DailyTimeRecord(
                    employee_id=employee_id,
                    work_date=day,
                    status=snapshot.status.value,
                    event_count=0,
                    reviewed=False,
                )
                self.session.add(record)
                await self.session.flush()

            await self._append_event(record, self.resolver.classified(snapshot, actor_id))
            result.records.append(record)

        logger.info(
            "Classified %d day(s) for employee %s: %d flagged, %d unchanged, %d skipped",
            len(result.records),
            employee_id,
            len(result.flagged),
            result.unchanged,
            result.skipped,
        )
        return result

    async def classify_employees(
        self,
        employee_ids: list[UUID],
        start: date,
        end: date,
        actor_id: str | None = None,
        force: bool = False,
    ) -> ClassificationResult:
        """Classify several employees; one employee's failure does not stop the rest."""
        combined = ClassificationResult()
        for employee_id in employee_ids:
            try:
                result = await self.classify_range(employee_id, start, end, actor_id, force)
            except PayrollEngineError as e:
                logger.warning("Classification failed for employee %s: %s", employee_id, e)
                combined.errors[employee_id] = e
                continue
            combined.records.extend(result.records)
            combined.unchanged += result.unchanged
            combined.skipped += result.skipped
        return combined

    def _classify(self, employee_id: UUID, day: date, context: _EmployeeContext) -> DtrSnapshot:
        schedule, shift_name = context.schedule_for(employee_id, day)
        window = schedule.expected_window(day, shift_name) if schedule else None

        previous_day = day - timedelta(days=1)
        previous_schedule, previous_shift = context.schedule_for(employee_id, previous_day)
        previous_window = (
            previous_schedule.expected_window(previous_day, previous_shift)
            if previous_schedule
            else None
        )

        lower, upper = punch_window(day, window, previous_window)
        return self.classifier.classify(
            employee_id=employee_id,
            work_date=day,
            punches=select_punches(context.punches, lower, upper),
            schedule=schedule,
            holidays=context.holidays,
            shift_name=shift_name,
            on_leave=context.on_leave(day),
        )

    async def _load_context(self, employee_id: UUID, start: date, end: date) -> _EmployeeContext:
        first = start - timedelta(days=1)

        assignment_rows = (
            await self.session.execute(
                select(EmployeeScheduleAssignment).where(
                    EmployeeScheduleAssignment.employee_id == employee_id,
                    EmployeeScheduleAssignment.effective_date <= end,
                    (EmployeeScheduleAssignment.end_date.is_(None))
                    | (EmployeeScheduleAssignment.end_date >= first),
                )
            )
        ).scalars().all()
        assignments = [row.to_domain() for row in assignment_rows]
        validate_assignments(assignments)

        schedules: dict[UUID, WorkSchedule] = {}
        schedule_ids = {a.schedule_id for a in assignments}
        if schedule_ids:
            versions = (
                await self.session.execute(
                    select(ScheduleVersion).where(ScheduleVersion.schedule_id.in_(schedule_ids))
                )
            ).scalars().all()
            schedules = {v.schedule_id: v.to_domain() for v in versions}

        holidays = (
            await self.session.execute(
                select(HolidayEntry).where(
                    HolidayEntry.holiday_date >= first, HolidayEntry.holiday_date <= end
                )
            )
        ).scalars().all()

        leaves = (
            await self.session.execute(
                select(LeaveApproval).where(
                    LeaveApproval.employee_id == employee_id,
                    LeaveApproval.start_date <= end,
                    LeaveApproval.end_date >= start,
                )
            )
        ).scalars().all()

        logs = (
            await self.session.execute(
                select(AttendanceLog)
                .where(
                    AttendanceLog.employee_id == employee_id,
                    AttendanceLog.logged_at >= datetime.combine(first, time.min),
                    AttendanceLog.logged_at < datetime.combine(end + timedelta(days=2), time.min),
                )
                .order_by(AttendanceLog.logged_at)
            )
        ).scalars().all()

        return _EmployeeContext(
            assignments=assignments,
            schedules=schedules,
            holidays=HolidayCalendar([h.to_domain() for h in holidays]),
            leaves=list(leaves),
            punches=[log.to_punch() for log in logs],
        )

    async def _existing_records(
        self, employee_id: UUID, start: date, end: date
    ) -> dict[date, DailyTimeRecord]:
        result = await self.session.execute(
            select(DailyTimeRecord).where(
                DailyTimeRecord.employee_id == employee_id,
                DailyTimeRecord.work_date >= start,
                DailyTimeRecord.work_date <= end,
            )
        )
        return {r.work_date: r for r in result.scalars().all()}

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    async def get_dtr(self, dtr_id: UUID) -> DailyTimeRecord:
        record = await self.session.get(DailyTimeRecord, dtr_id)
        if record is None:
            raise RecordNotFoundError("Daily time record", dtr_id)
        return record

    async def get_dtr_for(self, employee_id: UUID, work_date: date) -> DailyTimeRecord | None:
        result = await self.session.execute(
            select(DailyTimeRecord).where(
                DailyTimeRecord.employee_id == employee_id,
                DailyTimeRecord.work_date == work_date,
            )
        )
        return result.scalar_one_or_none()

    async def list_flagged(self, start: date, end: date) -> list[DailyTimeRecord]:
        result = await self.session.execute(
            select(DailyTimeRecord)
            .where(
                DailyTimeRecord.needs_review.is_(True),
                DailyTimeRecord.work_date >= start,
                DailyTimeRecord.work_date <= end,
            )
            .order_by(DailyTimeRecord.work_date, DailyTimeRecord.employee_id)
        )
        return list(result.scalars().all())

    async def resolve_review(
        self,
        dtr_id: UUID,
        resolution: ReviewResolution,
        remarks: str,
        actor_id: str | None = None,
        manual_time_out: datetime | None = None,
    ) -> DailyTimeRecord:
        record = await self.get_dtr(dtr_id)
        snapshot = record.to_snapshot()
        schedule = await self._schedule(snapshot.schedule_id)
        holidays = await self._holidays_on(snapshot.work_date)
        event = self.resolver.resolve(
            snapshot,
            resolution,
            remarks,
            actor_id=actor_id,
            schedule=schedule,
            holidays=holidays,
            manual_time_out=manual_time_out,
        )
        await self._append_event(record, event)
        return record

    async def approve_overtime(
        self, dtr_id: UUID, actor_id: str | None = None, remarks: str | None = None
    ) -> DailyTimeRecord:
        record = await self.get_dtr(dtr_id)
        event = self.resolver.approve_overtime(record.to_snapshot(), actor_id, remarks)
        await self._append_event(record, event)
        return record

    async def deny_overtime(
        self, dtr_id: UUID, actor_id: str | None = None, remarks: str | None = None
    ) -> DailyTimeRecord:
        record = await self.get_dtr(dtr_id)
        event = self.resolver.deny_overtime(record.to_snapshot(), actor_id, remarks)
        await self._append_event(record, event)
        return record

    async def update_remarks(
        self, dtr_id: UUID, remarks: str | None, actor_id: str | None = None
    ) -> DailyTimeRecord:
        record = await self.get_dtr(dtr_id)
        event = self.resolver.update_remarks(record.to_snapshot(), remarks, actor_id)
        await self._append_event(record, event)
        return record

    # ------------------------------------------------------------------
    # Event log
    # ------------------------------------------------------------------

    async def event_log(self, dtr_id: UUID) -> list[DtrEvent]:
        result = await self.session.execute(
            select(DtrEventRecord)
            .where(DtrEventRecord.dtr_id == dtr_id)
            .order_by(DtrEventRecord.sequence)
        )
        return [row.to_event() for row in result.scalars().all()]

    async def rebuild_projection(self, dtr_id: UUID) -> DailyTimeRecord:
        """Re-derive the record from its event log."""
        record = await self.get_dtr(dtr_id)
        events = await self.event_log(dtr_id)
        record.apply_snapshot(replay(events))
        record.event_count = len(events)
        record.reviewed = is_reviewed(events)
        await self.session.flush()
        return record

    async def _append_event(self, record: DailyTimeRecord, event: DtrEvent) -> None:
        current = record.to_snapshot() if record.event_count else None
        snapshot = apply_event(current, event)
        record.event_count += 1
        record.reviewed = reviewed_after(record.reviewed, event)
        self.session.add(DtrEventRecord.from_event(record.dtr_id, record.event_count, event))
        record.apply_snapshot(snapshot)
        record.updated_at = self.clock.now()
        await self.session.flush()
        logger.debug(
            "DTR %s event #%d %s", record.dtr_id, record.event_count, event.event_type.value
        )

    async def _schedule(self, schedule_id: UUID | None) -> WorkSchedule | None:
        if schedule_id is None:
            return None
        version = await self.session.get(ScheduleVersion, schedule_id)
        return version.to_domain() if version else None

    async def _holidays_on(self, day: date) -> HolidayCalendar:
        result = await self.session.execute(
            select(HolidayEntry).where(HolidayEntry.holiday_date == day)
        )
        return HolidayCalendar([h.to_domain() for h in result.scalars().all()])
