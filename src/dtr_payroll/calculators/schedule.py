"""Work schedule model.

Schedules are immutable per version and answer questions about a given
calendar date: the expected work window, required minutes, the overtime
threshold and break rules. Nothing here touches storage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from dtr_payroll.calculators.types import ScheduleType
from dtr_payroll.errors import ConfigurationError

DEFAULT_WORK_DAYS = frozenset({0, 1, 2, 3, 4})  # Monday..Friday
DEFAULT_REQUIRED_MINUTES = 480
SATURDAY = 5
SATURDAY_HALF_DAY_MINUTES = 240


class OverlappingScheduleAssignment(ConfigurationError):
    """Raised when two assignments of one employee cover the same date."""

    code = "OVERLAPPING_SCHEDULE_ASSIGNMENT"

    def __init__(self, employee_id: UUID, work_date: date):
        self.employee_id = employee_id
        self.work_date = work_date
        super().__init__(
            f"Employee {employee_id} has overlapping schedule assignments on {work_date}",
            employee_id=employee_id,
            work_date=work_date,
        )


class ShiftNotDefined(ConfigurationError):
    code = "SHIFT_NOT_DEFINED"


@dataclass(frozen=True)
class BreakRule:
    duration_minutes: int = 0
    start_time: time | None = None


@dataclass(frozen=True)
class ShiftDefinition:
    name: str
    start_time: time
    end_time: time
    break_rule: BreakRule | None = None


@dataclass(frozen=True)
class TimeConfiguration:
    work_days: frozenset[int] | None = None
    start_time: time | None = None
    end_time: time | None = None
    core_start: time | None = None
    core_end: time | None = None
    required_hours_per_day: Decimal | None = None
    shifts: tuple[ShiftDefinition, ...] = ()
    daily_hours: Decimal | None = None
    half_day_weekday: int | None = None
    half_day_hours: Decimal | None = None
    break_rule: BreakRule | None = None
    grace_period_minutes: int = 0
    half_day_saturday: bool = False
    saturday_end_time: time | None = None


@dataclass(frozen=True)
class OvertimeRules:
    daily_threshold_hours: Decimal | None = None
    weekly_threshold_hours: Decimal | None = None
    regular_multiplier: Decimal = Decimal("1.25")
    rest_day_multiplier: Decimal = Decimal("1.30")
    holiday_multiplier: Decimal = Decimal("2.00")
    special_holiday_multiplier: Decimal = Decimal("1.30")


@dataclass(frozen=True)
class NightDifferentialRules:
    enabled: bool = True
    start_time: time = time(22, 0)
    end_time: time = time(6, 0)
    rate_multiplier: Decimal = Decimal("0.10")
    combinable_with_overtime: bool = False

    def windows_around(self, work_date: date) -> list[tuple[datetime, datetime]]:
        """ND windows that may intersect work attributed to ``work_date``."""
        if not self.enabled:
            return []
        windows = []
        for offset in (-1, 0, 1):
            day = work_date + timedelta(days=offset)
            start = datetime.combine(day, self.start_time)
            end = datetime.combine(day, self.end_time)
            if end <= start:
                end += timedelta(days=1)
            windows.append((start, end))
        return windows


@dataclass(frozen=True)
class ExpectedWindow:
    start: datetime
    end: datetime
    is_rest_day: bool = False

    @property
    def crosses_midnight(self) -> bool:
        return self.end.date() > self.start.date()

    @property
    def minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


@dataclass(frozen=True)
class WorkSchedule:
    """A versioned work schedule definition."""

    schedule_id: UUID
    name: str
    schedule_type: ScheduleType
    time_configuration: TimeConfiguration = field(default_factory=TimeConfiguration)
    overtime_rules: OvertimeRules = field(default_factory=OvertimeRules)
    night_differential: NightDifferentialRules = field(default_factory=NightDifferentialRules)
    version: int = 1

    @property
    def grace_period_minutes(self) -> int:
        return self.time_configuration.grace_period_minutes

    def is_work_day(self, day: date) -> bool:
        config = self.time_configuration
        if config.work_days is not None:
            return day.weekday() in config.work_days
        if self.schedule_type == ScheduleType.SHIFTING:
            return True
        return day.weekday() in DEFAULT_WORK_DAYS

    def shift(self, shift_name: str | None) -> ShiftDefinition:
        shifts = self.time_configuration.shifts
        if not shifts:
            raise ShiftNotDefined(
                f"Schedule '{self.name}' defines no shifts", schedule_id=self.schedule_id
            )
        if shift_name is None:
            return shifts[0]
        for candidate in shifts:
            if candidate.name == shift_name:
                return candidate
        raise ShiftNotDefined(
            f"Schedule '{self.name}' has no shift named '{shift_name}'",
            schedule_id=self.schedule_id,
            shift_name=shift_name,
        )

    def _window_times(self, shift_name: str | None) -> tuple[time, time]:
        config = self.time_configuration
        if self.schedule_type == ScheduleType.SHIFTING:
            current = self.shift(shift_name)
            return current.start_time, current.end_time
        if self.schedule_type == ScheduleType.FLEXIBLE and config.core_start and config.core_end:
            return config.core_start, config.core_end
        if config.start_time is None or config.end_time is None:
            raise ConfigurationError(
                f"Schedule '{self.name}' has no start/end time",
                schedule_id=self.schedule_id,
            )
        return config.start_time, config.end_time

    def expected_window(self, day: date, shift_name: str | None = None) -> ExpectedWindow:
        """Expected start/end for ``day``; the end rolls over midnight if needed."""
        config = self.time_configuration
        start_time, end_time = self._window_times(shift_name)
        start = datetime.combine(day, start_time)
        end = datetime.combine(day, end_time)

        if day.weekday() == SATURDAY and config.half_day_saturday and config.saturday_end_time:
            end = datetime.combine(day, config.saturday_end_time)
        elif (
            self.schedule_type == ScheduleType.COMPRESSED
            and config.half_day_weekday == day.weekday()
            and config.half_day_hours
        ):
            end = start + timedelta(minutes=int(config.half_day_hours * 60))

        if end <= start:
            end += timedelta(days=1)
        return ExpectedWindow(start=start, end=end, is_rest_day=not self.is_work_day(day))

    def break_rule(self, shift_name: str | None = None) -> BreakRule | None:
        if self.schedule_type == ScheduleType.SHIFTING and self.time_configuration.shifts:
            current = self.shift(shift_name)
            if current.break_rule is not None:
                return current.break_rule
        return self.time_configuration.break_rule

    def break_minutes(self, shift_name: str | None = None) -> int:
        rule = self.break_rule(shift_name)
        return rule.duration_minutes if rule else 0

    def break_start(self, day: date, shift_name: str | None = None) -> datetime | None:
        rule = self.break_rule(shift_name)
        if rule is None or rule.start_time is None:
            return None
        window = self.expected_window(day, shift_name)
        start = datetime.combine(day, rule.start_time)
        if start < window.start:
            start += timedelta(days=1)
        return start

    def required_work_minutes(self, day: date, shift_name: str | None = None) -> int:
        if not self.is_work_day(day):
            return 0
        config = self.time_configuration
        if day.weekday() == SATURDAY and config.half_day_saturday:
            return SATURDAY_HALF_DAY_MINUTES
        if config.required_hours_per_day:
            return int(config.required_hours_per_day * 60)
        if self.schedule_type == ScheduleType.COMPRESSED and config.daily_hours:
            if config.half_day_weekday == day.weekday() and config.half_day_hours:
                return int(config.half_day_hours * 60)
            return int(config.daily_hours * 60)

        window = self.expected_window(day, shift_name)
        minutes = window.minutes - self.break_minutes(shift_name)
        return minutes if minutes > 0 else DEFAULT_REQUIRED_MINUTES

    def overtime_threshold_minutes(self, day: date, shift_name: str | None = None) -> int:
        """Worked minutes beyond this count as overtime; 0 on rest days."""
        if not self.is_work_day(day):
            return 0
        if self.overtime_rules.daily_threshold_hours is not None:
            return int(self.overtime_rules.daily_threshold_hours * 60)
        return self.required_work_minutes(day, shift_name)

    def half_day_minutes(self, day: date, shift_name: str | None = None) -> int:
        required = self.required_work_minutes(day, shift_name) or DEFAULT_REQUIRED_MINUTES
        return required // 2


@dataclass(frozen=True)
class ScheduleAssignment:
    employee_id: UUID
    schedule_id: UUID
    effective_date: date
    end_date: date | None = None
    shift_name: str | None = None

    def covers(self, day: date) -> bool:
        return self.effective_date <= day and (self.end_date is None or day <= self.end_date)

    def overlaps(self, other: ScheduleAssignment) -> bool:
        self_end = self.end_date or date.max
        other_end = other.end_date or date.max
        return self.effective_date <= other_end and other.effective_date <= self_end


def validate_assignments(assignments: Iterable[ScheduleAssignment]) -> None:
    """Raise OverlappingScheduleAssignment if any employee's intervals overlap."""
    by_employee: dict[UUID, list[ScheduleAssignment]] = {}
    for assignment in assignments:
        by_employee.setdefault(assignment.employee_id, []).append(assignment)

    for employee_id, items in by_employee.items():
        items.sort(key=lambda a: a.effective_date)
        for previous, current in zip(items, items[1:]):
            if previous.overlaps(current):
                raise OverlappingScheduleAssignment(employee_id, current.effective_date)


def resolve_assignment(
    assignments: Iterable[ScheduleAssignment], employee_id: UUID, day: date
) -> ScheduleAssignment | None:
    """The single assignment covering ``day`` for an employee, if any."""
    matching = [a for a in assignments if a.employee_id == employee_id and a.covers(day)]
    if len(matching) > 1:
        raise OverlappingScheduleAssignment(employee_id, day)
    return matching[0] if matching else None
