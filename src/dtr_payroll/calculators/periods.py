"""Payroll period calendars for recurring cycles.

Semi-monthly years have 24 periods numbered 1 to 24: odd numbers are the
first cutoff of a month (1st to 15th), even numbers the second (16th to
month end). Monthly years have 12 periods numbered by month. Supplemental
periods are created one at a time and never generated.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Iterable

from dtr_payroll.calculators.types import CycleType
from dtr_payroll.errors import ValidationError


class PayDayAdjustment(str, Enum):
    """Where a pay date falling on a weekend moves to."""

    BEFORE = "before"
    AFTER = "after"
    NONE = "none"


@dataclass(frozen=True)
class CutoffRule:
    """Day-of-month boundaries of one cutoff within a month.

    ``end_day`` of None means the last day of the month; days past the end
    of a short month are clamped to it.
    """

    start_day: int
    end_day: int | None
    pay_day: int
    pay_month_offset: int = 0


FIRST_HALF = CutoffRule(start_day=1, end_day=15, pay_day=25)
SECOND_HALF = CutoffRule(start_day=16, end_day=None, pay_day=10, pay_month_offset=1)
WHOLE_MONTH = CutoffRule(start_day=1, end_day=None, pay_day=30)


@dataclass(frozen=True)
class PeriodDefinition:
    cycle_type: CycleType
    year: int
    period_number: int
    name: str
    start_date: date
    end_date: date
    pay_date: date

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


def _day_in_month(year: int, month: int, day: int | None) -> date:
    last = calendar.monthrange(year, month)[1]
    return date(year, month, last if day is None else min(day, last))


def _pay_date(year: int, month: int, rule: CutoffRule, adjustment: PayDayAdjustment) -> date:
    month_index = (month - 1) + rule.pay_month_offset
    pay_year, pay_month = year + month_index // 12, month_index % 12 + 1
    pay_date = _day_in_month(pay_year, pay_month, rule.pay_day)

    if adjustment == PayDayAdjustment.NONE:
        return pay_date
    step = timedelta(days=-1 if adjustment == PayDayAdjustment.BEFORE else 1)
    while pay_date.weekday() >= 5:
        pay_date += step
    return pay_date


def _period(
    cycle_type: CycleType,
    year: int,
    month: int,
    period_number: int,
    name: str,
    rule: CutoffRule,
    adjustment: PayDayAdjustment,
) -> PeriodDefinition:
    return PeriodDefinition(
        cycle_type=cycle_type,
        year=year,
        period_number=period_number,
        name=name,
        start_date=_day_in_month(year, month, rule.start_day),
        end_date=_day_in_month(year, month, rule.end_day),
        pay_date=_pay_date(year, month, rule, adjustment),
    )


def generate_semi_monthly_periods(
    year: int,
    first_half: CutoffRule = FIRST_HALF,
    second_half: CutoffRule = SECOND_HALF,
    adjustment: PayDayAdjustment = PayDayAdjustment.BEFORE,
) -> list[PeriodDefinition]:
    periods = []
    for month in range(1, 13):
        month_name = calendar.month_name[month]
        for half, rule, label in ((1, first_half, "1st Half"), (2, second_half, "2nd Half")):
            periods.append(
                _period(
                    CycleType.SEMI_MONTHLY,
                    year,
                    month,
                    (month - 1) * 2 + half,
                    f"{month_name} {year} - {label}",
                    rule,
                    adjustment,
                )
            )
    return periods


def generate_monthly_periods(
    year: int,
    rule: CutoffRule = WHOLE_MONTH,
    adjustment: PayDayAdjustment = PayDayAdjustment.BEFORE,
) -> list[PeriodDefinition]:
    return [
        _period(
            CycleType.MONTHLY,
            year,
            month,
            month,
            f"{calendar.month_name[month]} {year}",
            rule,
            adjustment,
        )
        for month in range(1, 13)
    ]


def generate_periods(
    cycle_type: CycleType,
    year: int,
    adjustment: PayDayAdjustment = PayDayAdjustment.BEFORE,
) -> list[PeriodDefinition]:
    """All periods of ``year`` for a recurring cycle, in calendar order."""
    cycle_type = CycleType(cycle_type)
    if cycle_type == CycleType.SEMI_MONTHLY:
        return generate_semi_monthly_periods(year, adjustment=adjustment)
    if cycle_type == CycleType.MONTHLY:
        return generate_monthly_periods(year, adjustment=adjustment)
    raise ValidationError(
        f"Cannot generate recurring periods for {cycle_type.value} cycles",
        cycle_type=cycle_type.value,
        year=year,
    )


def period_for_date(periods: Iterable[PeriodDefinition], day: date) -> PeriodDefinition | None:
    for period in periods:
        if period.contains(day):
            return period
    return None
