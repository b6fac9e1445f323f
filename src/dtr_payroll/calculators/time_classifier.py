"""Time classifier: raw punches to a classified daily time record."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Iterable
from uuid import UUID

from dtr_payroll.calculators.punches import (
    PairingResult,
    PunchPair,
    collapse_duplicates,
    infer_directions,
    pair_punches,
)
from dtr_payroll.calculators.schedule import ExpectedWindow, WorkSchedule
from dtr_payroll.calculators.types import (
    DtrSnapshot,
    DtrStatus,
    Holiday,
    HolidayCalendar,
    Punch,
    PunchDirection,
    ScheduleType,
)

logger = logging.getLogger(__name__)

REASON_NO_SCHEDULE = "No schedule assigned"
REASON_MISSING_TIME_OUT = "Missing time-out"
REASON_MISSING_TIME_IN = "Missing time-in"

REMARK_REST_DAY_WORK = "Worked on rest day, overtime pending approval"
REMARK_HOLIDAY_WORK = "Worked on holiday {name}, overtime pending approval"

# Without a configured break start, a single unbroken span longer than this
# is assumed to include the mandatory break.
IMPLIED_BREAK_SPAN_MINUTES = 300


def _minutes(delta: timedelta) -> int:
    return int(delta.total_seconds() // 60)


def _overlap_minutes(start: datetime, end: datetime, lo: datetime, hi: datetime) -> int:
    latest_start = max(start, lo)
    earliest_end = min(end, hi)
    if earliest_end <= latest_start:
        return 0
    return _minutes(earliest_end - latest_start)


class TimeClassifier:
    """Classifies one employee-day from punches, schedule and calendar.

    Classification order:
    1) No schedule -> flagged for review
    2) No punches -> on leave, holiday, rest day or absent
    3) Duplicate merge, direction inference, IN/OUT pairing
    4) Incomplete pairing -> flagged, no minutes computed
    5) Worked minutes net of the unpunched break
    6) Late and undertime against the expected window
    7) Overtime, never auto-approved
    8) Night differential, independent of overtime
    """

    def __init__(self, duplicate_threshold_minutes: int = 3):
        self.duplicate_threshold_minutes = duplicate_threshold_minutes

    def classify(
        self,
        employee_id: UUID,
        work_date: date,
        punches: Iterable[Punch],
        schedule: WorkSchedule | None,
        holidays: HolidayCalendar | None = None,
        shift_name: str | None = None,
        on_leave: bool = False,
    ) -> DtrSnapshot:
        punches = sorted(punches, key=lambda p: p.timestamp)
        holiday = holidays.lookup(work_date) if holidays is not None else None
        base = DtrSnapshot(
            employee_id=employee_id,
            work_date=work_date,
            status=DtrStatus.ABSENT,
            schedule_id=schedule.schedule_id if schedule else None,
            shift_name=shift_name,
            punches=tuple(punches),
            holiday_type=holiday.holiday_type if holiday else None,
            holiday_name=holiday.name if holiday else None,
        )

        if schedule is None:
            logger.debug("No schedule for employee %s on %s", employee_id, work_date)
            return self._flag_without_schedule(base, punches)

        window = schedule.expected_window(work_date, shift_name)
        status = self._day_status(window, holiday)

        if not punches:
            if on_leave:
                status = DtrStatus.ON_LEAVE
            return self._with(base, status=status)

        cleaned = infer_directions(
            collapse_duplicates(punches, self.duplicate_threshold_minutes)
        )
        pairing = pair_punches(cleaned)
        base = self._with(
            base,
            status=DtrStatus.PRESENT if status == DtrStatus.ABSENT else status,
            punches=tuple(cleaned),
            first_in=pairing.first_in,
            last_out=pairing.last_out,
        )

        # An odd punch count is always a missing time-out
        if pairing.unpaired_in or len(cleaned) % 2:
            return self._with(base, needs_review=True, review_reason=REASON_MISSING_TIME_OUT)
        if pairing.unpaired_out:
            return self._with(base, needs_review=True, review_reason=REASON_MISSING_TIME_IN)

        return self._compute_minutes(base, pairing.pairs, schedule, window, shift_name)

    def reclassify_with_time_out(
        self,
        snapshot: DtrSnapshot,
        time_out: datetime,
        schedule: WorkSchedule,
        holidays: HolidayCalendar | None = None,
    ) -> DtrSnapshot:
        """Re-run pairing and minute computation with a manual time-out added."""
        punches = list(snapshot.punches)
        punches.append(Punch(timestamp=time_out, direction=PunchDirection.OUT, source="manual"))
        return self.classify(
            snapshot.employee_id,
            snapshot.work_date,
            punches,
            schedule,
            holidays,
            shift_name=snapshot.shift_name,
        )

    def _flag_without_schedule(self, base: DtrSnapshot, punches: list[Punch]) -> DtrSnapshot:
        pairing = pair_punches(
            infer_directions(collapse_duplicates(punches, self.duplicate_threshold_minutes))
        )
        return self._with(
            base,
            status=DtrStatus.PRESENT if punches else DtrStatus.ABSENT,
            first_in=pairing.first_in,
            last_out=pairing.last_out,
            total_work_minutes=sum(p.minutes for p in pairing.pairs),
            needs_review=True,
            review_reason=REASON_NO_SCHEDULE,
        )

    @staticmethod
    def _day_status(window: ExpectedWindow, holiday: Holiday | None) -> DtrStatus:
        if holiday is not None:
            return DtrStatus.HOLIDAY
        if window.is_rest_day:
            return DtrStatus.REST_DAY
        return DtrStatus.ABSENT

    def _compute_minutes(
        self,
        base: DtrSnapshot,
        pairs: list[PunchPair],
        schedule: WorkSchedule,
        window: ExpectedWindow,
        shift_name: str | None,
    ) -> DtrSnapshot:
        """Minute counters for a day whose punches paired completely."""
        work_date = base.work_date
        first_in = pairs[0].time_in
        last_out = max(p.time_out for p in pairs)

        worked = sum(p.minutes for p in pairs)
        break_minutes = PairingResult(pairs=pairs).gap_minutes
        if len(pairs) == 1:
            unpunched_break = self._applicable_break(schedule, work_date, shift_name, first_in, last_out)
            unpunched_break = min(unpunched_break, worked)
            worked -= unpunched_break
            break_minutes = unpunched_break

        premium_day = base.status in (DtrStatus.HOLIDAY, DtrStatus.REST_DAY)

        late = 0
        undertime = 0
        if not premium_day:
            grace_start = window.start + timedelta(minutes=schedule.grace_period_minutes)
            if first_in > grace_start:
                late = _minutes(first_in - grace_start)

            required = schedule.required_work_minutes(work_date, shift_name)
            if schedule.schedule_type == ScheduleType.FLEXIBLE:
                undertime = max(0, required - worked - late)
            elif last_out < window.end and worked < required:
                undertime = _minutes(window.end - last_out)

        if premium_day:
            overtime = worked
        else:
            threshold = schedule.overtime_threshold_minutes(work_date, shift_name)
            after_end = _minutes(last_out - window.end) if last_out > window.end else 0
            overtime = max(after_end, worked - threshold, 0)

        night_minutes, overtime_night = self._night_minutes(
            schedule, work_date, pairs, None if premium_day else window.end
        )
        overtime_night = min(overtime_night, overtime)

        remarks = base.remarks
        if premium_day and worked > 0:
            if base.status == DtrStatus.REST_DAY:
                remarks = REMARK_REST_DAY_WORK
            else:
                remarks = REMARK_HOLIDAY_WORK.format(name=base.holiday_name)

        return self._with(
            base,
            remarks=remarks,
            total_work_minutes=max(0, worked),
            total_break_minutes=break_minutes,
            late_minutes=late,
            undertime_minutes=undertime,
            overtime_minutes=overtime,
            overtime_approved=False,
            overtime_denied=False,
            night_differential_minutes=night_minutes,
            overtime_night_minutes=overtime_night,
        )

    @staticmethod
    def _applicable_break(
        schedule: WorkSchedule,
        work_date: date,
        shift_name: str | None,
        first_in: datetime,
        last_out: datetime,
    ) -> int:
        duration = schedule.break_minutes(shift_name)
        if duration <= 0:
            return 0
        break_start = schedule.break_start(work_date, shift_name)
        if break_start is None:
            return duration if _minutes(last_out - first_in) > IMPLIED_BREAK_SPAN_MINUTES else 0
        break_end = break_start + timedelta(minutes=duration)
        return duration if first_in <= break_start and last_out >= break_end else 0

    @staticmethod
    def _night_minutes(
        schedule: WorkSchedule,
        work_date: date,
        pairs: list[PunchPair],
        overtime_from: datetime | None,
    ) -> tuple[int, int]:
        """(night differential minutes, night minutes that are also overtime)."""
        total = 0
        overtime_night = 0
        for lo, hi in schedule.night_differential.windows_around(work_date):
            for pair in pairs:
                total += _overlap_minutes(pair.time_in, pair.time_out, lo, hi)
                start = pair.time_in if overtime_from is None else max(pair.time_in, overtime_from)
                if start < pair.time_out:
                    overtime_night += _overlap_minutes(start, pair.time_out, lo, hi)
        return total, overtime_night

    @staticmethod
    def _with(snapshot: DtrSnapshot, **changes) -> DtrSnapshot:
        return replace(snapshot, **changes)
