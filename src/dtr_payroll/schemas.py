"""Pydantic schemas for schedule configuration and attendance input.

Schedule JSON is stored as-is on ``work_schedule`` rows; these schemas
validate it and convert it into the immutable calculator types.
"""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dtr_payroll.calculators.schedule import (
    BreakRule,
    NightDifferentialRules,
    OvertimeRules,
    ShiftDefinition,
    TimeConfiguration,
    WorkSchedule,
)
from dtr_payroll.calculators.types import (
    Holiday,
    HolidayType,
    Punch,
    PunchDirection,
    ScheduleType,
)

WEEKDAYS = {
    "mon": 0,
    "tue": 1,
    "wed": 2,
    "thu": 3,
    "fri": 4,
    "sat": 5,
    "sun": 6,
}


def weekday_index(value: str | int) -> int:
    if isinstance(value, int):
        if not 0 <= value <= 6:
            raise ValueError(f"weekday index out of range: {value}")
        return value
    key = value.strip().lower()[:3]
    if key not in WEEKDAYS:
        raise ValueError(f"unknown weekday '{value}'")
    return WEEKDAYS[key]


# ============================================================================
# Schedule configuration
# ============================================================================


class BreakConfig(BaseModel):
    start_time: time | None = None
    duration_minutes: int = Field(default=0, ge=0)

    def to_domain(self) -> BreakRule:
        return BreakRule(duration_minutes=self.duration_minutes, start_time=self.start_time)


class ShiftConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    start_time: time
    end_time: time
    break_config: BreakConfig | None = Field(default=None, alias="break")

    def to_domain(self) -> ShiftDefinition:
        return ShiftDefinition(
            name=self.name,
            start_time=self.start_time,
            end_time=self.end_time,
            break_rule=self.break_config.to_domain() if self.break_config else None,
        )


class CoreHours(BaseModel):
    start_time: time
    end_time: time


class HalfDayConfig(BaseModel):
    day: str | int
    hours: Decimal = Field(gt=0)

    @field_validator("day")
    @classmethod
    def _check_day(cls, value: str | int) -> str | int:
        weekday_index(value)
        return value


class TimeConfigurationSchema(BaseModel):
    """``time_configuration`` column."""

    model_config = ConfigDict(populate_by_name=True)

    work_days: list[str | int] | None = None
    start_time: time | None = None
    end_time: time | None = None
    core_hours: CoreHours | None = None
    required_hours_per_day: Decimal | None = Field(default=None, gt=0)
    shifts: list[ShiftConfig] = Field(default_factory=list)
    daily_hours: Decimal | None = Field(default=None, gt=0)
    half_day: HalfDayConfig | None = None
    break_config: BreakConfig | None = Field(default=None, alias="break")
    grace_period_minutes: int = Field(default=0, ge=0)
    half_day_saturday: bool = False
    saturday_end_time: time | None = None

    @field_validator("work_days")
    @classmethod
    def _check_work_days(cls, value: list[str | int] | None) -> list[str | int] | None:
        if value is not None:
            for day in value:
                weekday_index(day)
        return value

    def to_domain(self) -> TimeConfiguration:
        return TimeConfiguration(
            work_days=(
                frozenset(weekday_index(d) for d in self.work_days)
                if self.work_days is not None
                else None
            ),
            start_time=self.start_time,
            end_time=self.end_time,
            core_start=self.core_hours.start_time if self.core_hours else None,
            core_end=self.core_hours.end_time if self.core_hours else None,
            required_hours_per_day=self.required_hours_per_day,
            shifts=tuple(s.to_domain() for s in self.shifts),
            daily_hours=self.daily_hours,
            half_day_weekday=weekday_index(self.half_day.day) if self.half_day else None,
            half_day_hours=self.half_day.hours if self.half_day else None,
            break_rule=self.break_config.to_domain() if self.break_config else None,
            grace_period_minutes=self.grace_period_minutes,
            half_day_saturday=self.half_day_saturday,
            saturday_end_time=self.saturday_end_time,
        )


class OvertimeRulesSchema(BaseModel):
    daily_threshold_hours: Decimal | None = Field(default=None, ge=0)
    weekly_threshold_hours: Decimal | None = Field(default=None, ge=0)
    regular_multiplier: Decimal = Decimal("1.25")
    rest_day_multiplier: Decimal = Decimal("1.30")
    holiday_multiplier: Decimal = Decimal("2.00")
    special_holiday_multiplier: Decimal = Decimal("1.30")

    def to_domain(self) -> OvertimeRules:
        return OvertimeRules(**self.model_dump())


class NightDifferentialSchema(BaseModel):
    enabled: bool = True
    start_time: time = time(22, 0)
    end_time: time = time(6, 0)
    rate_multiplier: Decimal = Field(default=Decimal("0.10"), ge=0)
    combinable_with_overtime: bool = False

    def to_domain(self) -> NightDifferentialRules:
        return NightDifferentialRules(**self.model_dump())


class WorkScheduleSchema(BaseModel):
    """A full schedule definition as accepted from configuration files."""

    schedule_id: UUID | None = None
    name: str
    schedule_type: ScheduleType
    version: int = Field(default=1, ge=1)
    time_configuration: TimeConfigurationSchema = Field(default_factory=TimeConfigurationSchema)
    overtime_rules: OvertimeRulesSchema = Field(default_factory=OvertimeRulesSchema)
    night_differential: NightDifferentialSchema = Field(default_factory=NightDifferentialSchema)

    def to_domain(self) -> WorkSchedule:
        return WorkSchedule(
            schedule_id=self.schedule_id or uuid4(),
            name=self.name,
            schedule_type=self.schedule_type,
            time_configuration=self.time_configuration.to_domain(),
            overtime_rules=self.overtime_rules.to_domain(),
            night_differential=self.night_differential.to_domain(),
            version=self.version,
        )


# ============================================================================
# Attendance input
# ============================================================================


class PunchSchema(BaseModel):
    timestamp: datetime
    direction: PunchDirection | None = None
    source: str = "device"

    def to_domain(self) -> Punch:
        return Punch(timestamp=self.timestamp, direction=self.direction, source=self.source)


class HolidaySchema(BaseModel):
    holiday_date: date = Field(alias="date")
    name: str
    holiday_type: HolidayType = HolidayType.REGULAR

    def to_domain(self) -> Holiday:
        return Holiday(
            holiday_date=self.holiday_date, name=self.name, holiday_type=self.holiday_type
        )


class ClassifyRequest(BaseModel):
    """Input document for classifying a single employee-day."""

    employee_id: UUID
    work_date: date
    schedule: WorkScheduleSchema | None = None
    shift_name: str | None = None
    punches: list[PunchSchema] = Field(default_factory=list)
    holidays: list[HolidaySchema] = Field(default_factory=list)
    on_leave: bool = False
