"""Rate derivation from basic pay."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from dtr_payroll.calculators.types import CompensationInput, CycleType, PayType

WORKING_DAYS_PER_MONTH = Decimal("22")
WORKING_DAYS_PER_WEEK = Decimal("5")
HOURS_PER_DAY = Decimal("8")
MINUTES_PER_DAY = Decimal("480")

# Monthly equivalents used for contribution bases
PERIODS_PER_MONTH = {
    PayType.MONTHLY: Decimal("1"),
    PayType.SEMI_MONTHLY: Decimal("2"),
    PayType.WEEKLY: Decimal("4.33"),
    PayType.DAILY: WORKING_DAYS_PER_MONTH,
}

RATE_PRECISION = Decimal("0.0001")
MINUTE_RATE_PRECISION = Decimal("0.000001")


@dataclass(frozen=True)
class DerivedRates:
    daily: Decimal
    hourly: Decimal
    per_minute: Decimal


def derive_rates(compensation: CompensationInput) -> DerivedRates:
    """Daily, hourly and per-minute rates for a compensation record."""
    basic = compensation.basic_pay
    if compensation.pay_type == PayType.MONTHLY:
        daily = basic / WORKING_DAYS_PER_MONTH
    elif compensation.pay_type == PayType.SEMI_MONTHLY:
        daily = basic * 2 / WORKING_DAYS_PER_MONTH
    elif compensation.pay_type == PayType.WEEKLY:
        daily = basic / WORKING_DAYS_PER_WEEK
    else:
        daily = basic

    daily = daily.quantize(RATE_PRECISION, rounding=ROUND_HALF_UP)
    return DerivedRates(
        daily=daily,
        hourly=(daily / HOURS_PER_DAY).quantize(RATE_PRECISION, rounding=ROUND_HALF_UP),
        per_minute=(daily / MINUTES_PER_DAY).quantize(
            MINUTE_RATE_PRECISION, rounding=ROUND_HALF_UP
        ),
    )


def periodic_basic_pay(
    compensation: CompensationInput, cycle_type: CycleType, days_worked: int
) -> Decimal:
    """Basic pay due for one period before attendance reductions.

    Salaried pay types are prorated to the cycle; daily-paid employees earn
    the daily rate for each day worked.
    """
    if cycle_type == CycleType.SUPPLEMENTAL:
        return Decimal("0")
    basic = compensation.basic_pay
    pay_type = compensation.pay_type

    if pay_type == PayType.DAILY:
        return basic * days_worked
    if pay_type == PayType.WEEKLY:
        return derive_rates(compensation).daily * days_worked

    monthly = basic if pay_type == PayType.MONTHLY else basic * 2
    if cycle_type == CycleType.SEMI_MONTHLY:
        return monthly / 2
    return monthly


def is_salaried(compensation: CompensationInput) -> bool:
    return compensation.pay_type in (PayType.MONTHLY, PayType.SEMI_MONTHLY)
