"""Tests for rate derivation."""

from decimal import Decimal

from dtr_payroll.calculators.rates import derive_rates, is_salaried, periodic_basic_pay
from dtr_payroll.calculators.types import CompensationInput, CycleType, PayType


def _comp(amount, pay_type):
    return CompensationInput(basic_pay=Decimal(amount), pay_type=pay_type)


class TestDeriveRates:
    def test_monthly(self):
        rates = derive_rates(_comp("22000", PayType.MONTHLY))

        assert rates.daily == Decimal("1000.0000")
        assert rates.hourly == Decimal("125.0000")
        assert rates.per_minute == Decimal("2.083333")

    def test_semi_monthly_uses_monthly_equivalent(self):
        rates = derive_rates(_comp("11000", PayType.SEMI_MONTHLY))
        assert rates.daily == Decimal("1000.0000")

    def test_weekly(self):
        rates = derive_rates(_comp("5000", PayType.WEEKLY))
        assert rates.daily == Decimal("1000.0000")

    def test_daily(self):
        rates = derive_rates(_comp("610", PayType.DAILY))

        assert rates.daily == Decimal("610.0000")
        assert rates.hourly == Decimal("76.2500")


class TestPeriodicBasicPay:
    def test_monthly_on_semi_monthly_cycle(self):
        pay = periodic_basic_pay(_comp("22000", PayType.MONTHLY), CycleType.SEMI_MONTHLY, 0)
        assert pay == Decimal("11000")

    def test_monthly_on_monthly_cycle(self):
        pay = periodic_basic_pay(_comp("22000", PayType.MONTHLY), CycleType.MONTHLY, 0)
        assert pay == Decimal("22000")

    def test_daily_paid_by_days_worked(self):
        pay = periodic_basic_pay(_comp("610", PayType.DAILY), CycleType.SEMI_MONTHLY, 11)
        assert pay == Decimal("6710")

    def test_supplemental_has_no_basic_pay(self):
        pay = periodic_basic_pay(_comp("22000", PayType.MONTHLY), CycleType.SUPPLEMENTAL, 0)
        assert pay == Decimal("0")

    def test_is_salaried(self):
        assert is_salaried(_comp("22000", PayType.MONTHLY))
        assert is_salaried(_comp("11000", PayType.SEMI_MONTHLY))
        assert not is_salaried(_comp("610", PayType.DAILY))
