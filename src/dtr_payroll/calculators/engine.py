"""Payroll computation engine.

Pure per-employee computation: given finalized DTRs, compensation,
adjustments, loans and preloaded contribution tables, produce the line
items and totals of one payroll entry. Identical inputs always produce an
identical result, including the calculation ID.
"""

from __future__ import annotations

import hashlib
import json
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Any
from uuid import UUID

from dtr_payroll.calculators.contribution_resolver import ContributionTableResolver
from dtr_payroll.calculators.ledger import adjustment_deduction, loan_deduction
from dtr_payroll.calculators.line_builder import LineItemBuilder
from dtr_payroll.calculators.rates import derive_rates, is_salaried, periodic_basic_pay
from dtr_payroll.calculators.schedule import NightDifferentialRules, OvertimeRules
from dtr_payroll.calculators.types import (
    AdjustmentCategory,
    AdjustmentKind,
    ContributionType,
    CycleType,
    DtrSnapshot,
    DtrStatus,
    EmployeePayInput,
    HolidayType,
    LineCandidate,
    LineType,
    PayType,
)
from dtr_payroll.errors import DataIntegrityError

ZERO = Decimal("0")
SIXTY = Decimal("60")

CONTRIBUTION_CODES = {
    ContributionType.SSS: "SSS",
    ContributionType.PHILHEALTH: "PHIC",
    ContributionType.PAGIBIG: "HDMF",
}

# Deducted in full on the second cutoff of a semi-monthly month
SECOND_CUTOFF_CONTRIBUTIONS = frozenset({ContributionType.SSS, ContributionType.PAGIBIG})

CYCLE_PERIODS_PER_MONTH = {
    CycleType.SEMI_MONTHLY: Decimal("2"),
    CycleType.MONTHLY: Decimal("1"),
}


class UnresolvedDtrBlocking(DataIntegrityError):
    """Raised when a flagged DTR falls inside the period being computed."""

    code = "UNRESOLVED_DTR_BLOCKING"

    def __init__(self, employee_id: UUID, dates: list[Any]):
        self.employee_id = employee_id
        self.dates = dates
        listed = ", ".join(str(d) for d in dates)
        super().__init__(
            f"Employee {employee_id} has unresolved DTRs on {listed}",
            employee_id=employee_id,
            dates=listed,
        )


class NegativeNetPay(DataIntegrityError):
    code = "NEGATIVE_NET_PAY"


@dataclass
class PayBreakdown:
    basic_pay: Decimal = ZERO
    overtime_pay: Decimal = ZERO
    night_differential_pay: Decimal = ZERO
    holiday_pay: Decimal = ZERO
    allowances: Decimal = ZERO
    bonuses: Decimal = ZERO
    sss_employee: Decimal = ZERO
    philhealth_employee: Decimal = ZERO
    pagibig_employee: Decimal = ZERO
    withholding_tax: Decimal = ZERO
    loan_deductions: Decimal = ZERO
    other_deductions: Decimal = ZERO
    sss_employer: Decimal = ZERO
    philhealth_employer: Decimal = ZERO
    pagibig_employer: Decimal = ZERO


@dataclass
class AttendanceSummary:
    days_worked: int = 0
    absent_days: int = 0
    leave_days: int = 0
    holiday_days: int = 0
    rest_days: int = 0
    late_minutes: int = 0
    undertime_minutes: int = 0
    overtime_minutes: int = 0
    night_differential_minutes: int = 0


@dataclass
class PayrollComputation:
    """Result of computing one employee's entry."""

    employee_id: UUID
    payroll_period_id: UUID
    calculation_id: UUID
    inputs_fingerprint: str
    rules_fingerprint: str
    lines: list[LineCandidate]
    gross_pay: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    taxable_income: Decimal
    breakdown: PayBreakdown
    attendance: AttendanceSummary
    loan_deductions: dict[UUID, Decimal] = field(default_factory=dict)
    adjustment_deductions: dict[UUID, Decimal] = field(default_factory=dict)

    def to_canonical_json(self) -> str:
        """Byte-stable rendering of everything except timestamps."""
        data = {
            "employee_id": str(self.employee_id),
            "payroll_period_id": str(self.payroll_period_id),
            "calculation_id": str(self.calculation_id),
            "inputs_fingerprint": self.inputs_fingerprint,
            "rules_fingerprint": self.rules_fingerprint,
            "lines": [line.to_canonical_dict() for line in self.lines],
            "gross_pay": str(self.gross_pay),
            "total_deductions": str(self.total_deductions),
            "net_pay": str(self.net_pay),
            "taxable_income": str(self.taxable_income),
            "breakdown": {k: str(v) for k, v in asdict(self.breakdown).items()},
            "attendance": asdict(self.attendance),
            "loan_deductions": {str(k): str(v) for k, v in self.loan_deductions.items()},
            "adjustment_deductions": {
                str(k): str(v) for k, v in self.adjustment_deductions.items()
            },
        }
        return json.dumps(data, sort_keys=True)


class PayrollCalculator:
    """Computes one employee's payroll entry.

    Calculation pipeline (stable order):
    1) Refuse periods with flagged DTRs
    2) Basic pay, absence and tardiness reductions
    3) Overtime, rest day, holiday and night differential premiums
    4) Earning adjustments (allowances, bonuses)
    5) Government contributions on the monthly-equivalent gross
    6) Withholding tax on taxable income
    7) Deduction adjustments, then loans, capped at remaining net
    8) Fingerprints and deterministic calculation ID
    """

    def __init__(self, resolver: ContributionTableResolver, engine_version: str = "1.0.0"):
        self.resolver = resolver
        self.engine_version = engine_version

    def calculate(self, pay_input: EmployeePayInput) -> PayrollComputation:
        dtrs = sorted(
            (
                d
                for d in pay_input.dtrs
                if pay_input.period_start <= d.work_date <= pay_input.period_end
            ),
            key=lambda d: d.work_date,
        )
        flagged = [d.work_date for d in dtrs if d.needs_review]
        if flagged:
            raise UnresolvedDtrBlocking(pay_input.employee_id, flagged)

        breakdown = PayBreakdown()
        attendance = self._summarize_attendance(dtrs)
        lines: list[LineCandidate] = []
        rules_used: set[str] = set()

        if pay_input.cycle_type != CycleType.SUPPLEMENTAL:
            lines.extend(self._basic_pay_lines(pay_input, attendance))
            lines.extend(self._premium_lines(pay_input, dtrs, rules_used))
        lines.extend(self._earning_adjustment_lines(pay_input))

        gross = LineItemBuilder.sum_gross(lines)
        non_taxable = sum(
            (l.amount for l in lines if l.line_type == LineType.EARNING and not l.is_taxable),
            ZERO,
        )

        contribution_lines = self._contribution_lines(pay_input, gross, rules_used)
        lines.extend(contribution_lines)
        employee_contributions = -sum(
            (l.amount for l in contribution_lines if l.line_type == LineType.CONTRIBUTION),
            ZERO,
        )

        taxable_income = max(ZERO, gross - non_taxable - employee_contributions)
        tax = LineItemBuilder.round_to_cents(
            self.resolver.compute_withholding_tax(
                pay_input.tax_method,
                taxable_income,
                pay_input.period_end,
                self._tax_frequency(pay_input.cycle_type),
                pay_input.year_to_date,
            )
        )
        if tax > ZERO:
            lines.append(
                LineItemBuilder.create_tax_line(
                    tax, f"Withholding tax ({pay_input.tax_method.value})"
                )
            )
        rules_used.add(f"tax:{pay_input.tax_method.value}")

        available = gross - LineItemBuilder.sum_deductions(lines)
        if available < ZERO:
            raise NegativeNetPay(
                f"Statutory deductions exceed gross pay for employee {pay_input.employee_id}",
                employee_id=pay_input.employee_id,
                gross=gross,
            )

        adjustment_deductions: dict[UUID, Decimal] = {}
        for adjustment in sorted(pay_input.adjustments, key=lambda a: str(a.adjustment_id)):
            if adjustment.category != AdjustmentCategory.DEDUCTION:
                continue
            amount = LineItemBuilder.round_to_cents(adjustment_deduction(adjustment, available))
            if amount <= ZERO:
                continue
            lines.append(
                LineItemBuilder.create_deduction_line(
                    "DEDUCTION", amount, str(adjustment.adjustment_id), adjustment.name
                )
            )
            adjustment_deductions[adjustment.adjustment_id] = amount
            available -= amount

        loan_deductions: dict[UUID, Decimal] = {}
        for loan in sorted(pay_input.loans, key=lambda l: str(l.loan_id)):
            amount = LineItemBuilder.round_to_cents(loan_deduction(loan, available))
            if amount <= ZERO:
                continue
            lines.append(
                LineItemBuilder.create_loan_line(
                    str(loan.loan_id),
                    loan.loan_type,
                    amount,
                    f"Installment, balance {loan.remaining_balance}",
                )
            )
            loan_deductions[loan.loan_id] = amount
            available -= amount

        total_deductions = LineItemBuilder.sum_deductions(lines)
        net = gross - total_deductions
        self._fill_breakdown(breakdown, lines)

        inputs_fingerprint = self._compute_inputs_fingerprint(pay_input, dtrs)
        rules_fingerprint = self._compute_rules_fingerprint(rules_used)
        calculation_id = self._generate_calculation_id(
            pay_input.payroll_period_id,
            pay_input.employee_id,
            inputs_fingerprint,
            rules_fingerprint,
        )

        return PayrollComputation(
            employee_id=pay_input.employee_id,
            payroll_period_id=pay_input.payroll_period_id,
            calculation_id=calculation_id,
            inputs_fingerprint=inputs_fingerprint,
            rules_fingerprint=rules_fingerprint,
            lines=lines,
            gross_pay=gross,
            total_deductions=total_deductions,
            net_pay=net,
            taxable_income=LineItemBuilder.round_to_cents(taxable_income),
            breakdown=breakdown,
            attendance=attendance,
            loan_deductions=loan_deductions,
            adjustment_deductions=adjustment_deductions,
        )

    @staticmethod
    def _summarize_attendance(dtrs: list[DtrSnapshot]) -> AttendanceSummary:
        summary = AttendanceSummary()
        for dtr in dtrs:
            if dtr.status == DtrStatus.PRESENT:
                summary.days_worked += 1
            elif dtr.status == DtrStatus.ABSENT:
                summary.absent_days += 1
            elif dtr.status == DtrStatus.ON_LEAVE:
                summary.leave_days += 1
            elif dtr.status == DtrStatus.HOLIDAY:
                summary.holiday_days += 1
            elif dtr.status == DtrStatus.REST_DAY:
                summary.rest_days += 1
            summary.late_minutes += dtr.late_minutes
            summary.undertime_minutes += dtr.undertime_minutes
            summary.overtime_minutes += dtr.payable_overtime_minutes
            summary.night_differential_minutes += dtr.night_differential_minutes
        return summary

    @staticmethod
    def _basic_pay_lines(
        pay_input: EmployeePayInput, attendance: AttendanceSummary
    ) -> list[LineCandidate]:
        compensation = pay_input.compensation
        rates = derive_rates(compensation)
        lines: list[LineCandidate] = []

        basic = LineItemBuilder.round_to_cents(
            periodic_basic_pay(compensation, pay_input.cycle_type, attendance.days_worked)
        )
        if basic <= ZERO:
            return lines

        daily_paid = compensation.pay_type in (PayType.DAILY, PayType.WEEKLY)
        lines.append(
            LineItemBuilder.create_earning_line(
                "BASIC",
                basic,
                quantity=Decimal(attendance.days_worked) if daily_paid else None,
                rate=rates.daily if daily_paid else None,
                explanation=f"Basic pay ({compensation.pay_type.value})",
            )
        )

        remaining = basic
        if is_salaried(compensation) and attendance.absent_days:
            absence = min(
                LineItemBuilder.round_to_cents(rates.daily * attendance.absent_days), remaining
            )
            if absence > ZERO:
                lines.append(
                    LineItemBuilder.create_earning_reduction_line(
                        "ABSENCE",
                        absence,
                        quantity=Decimal(attendance.absent_days),
                        rate=rates.daily,
                        explanation=f"{attendance.absent_days} day(s) absent",
                    )
                )
                remaining -= absence

        tardy_minutes = attendance.late_minutes + attendance.undertime_minutes
        if tardy_minutes:
            tardiness = min(
                LineItemBuilder.round_to_cents(rates.per_minute * tardy_minutes), remaining
            )
            if tardiness > ZERO:
                lines.append(
                    LineItemBuilder.create_earning_reduction_line(
                        "TARDINESS",
                        tardiness,
                        quantity=Decimal(tardy_minutes),
                        rate=rates.per_minute,
                        explanation=(
                            f"{attendance.late_minutes} min late, "
                            f"{attendance.undertime_minutes} min undertime"
                        ),
                    )
                )
        return lines

    @staticmethod
    def _premium_lines(
        pay_input: EmployeePayInput, dtrs: list[DtrSnapshot], rules_used: set[str]
    ) -> list[LineCandidate]:
        """Overtime, rest day, holiday and night differential earnings.

        Each premium is the base hourly rate times its own multiplier; they
        are summed, not compounded, unless the schedule's night differential
        is marked combinable with overtime.
        """
        rates = derive_rates(pay_input.compensation)
        hourly = rates.hourly
        # (code, multiplier) -> [minutes, amount]
        buckets: dict[tuple[str, Decimal], list[Decimal]] = defaultdict(lambda: [ZERO, ZERO])
        night_minutes = ZERO
        night_amount = ZERO
        unworked_regular_holidays = 0

        for dtr in dtrs:
            schedule = pay_input.schedules.get(dtr.schedule_id) if dtr.schedule_id else None
            ot_rules = schedule.overtime_rules if schedule else OvertimeRules()
            nd_rules = schedule.night_differential if schedule else NightDifferentialRules()
            if schedule:
                rules_used.add(f"schedule:{schedule.schedule_id}:{schedule.version}")

            code, multiplier = PayrollCalculator._premium_for(dtr, ot_rules)
            payable = dtr.payable_overtime_minutes
            if payable:
                bucket = buckets[(code, multiplier)]
                bucket[0] += payable
                bucket[1] += Decimal(payable) / SIXTY * hourly * multiplier

            if (
                dtr.status == DtrStatus.HOLIDAY
                and dtr.holiday_type == HolidayType.REGULAR
                and dtr.total_work_minutes == 0
            ):
                unworked_regular_holidays += 1

            if not nd_rules.enabled or not dtr.night_differential_minutes:
                continue
            paid_night = dtr.night_differential_minutes
            if not dtr.overtime_approved:
                paid_night -= dtr.overtime_night_minutes
            if paid_night <= 0:
                continue
            night_minutes += paid_night
            night_amount += Decimal(paid_night) / SIXTY * hourly * nd_rules.rate_multiplier
            if nd_rules.combinable_with_overtime and dtr.overtime_approved:
                stacked = Decimal(dtr.overtime_night_minutes) / SIXTY
                night_amount += stacked * hourly * nd_rules.rate_multiplier * (multiplier - 1)

        lines: list[LineCandidate] = []
        for (code, multiplier), (minutes, amount) in sorted(buckets.items()):
            lines.append(
                LineItemBuilder.create_earning_line(
                    code,
                    amount,
                    quantity=(minutes / SIXTY).quantize(LineItemBuilder.PRECISION),
                    rate=(hourly * multiplier).quantize(LineItemBuilder.PRECISION),
                    explanation=f"{int(minutes)} approved min at x{multiplier}",
                )
            )

        if night_amount > ZERO:
            lines.append(
                LineItemBuilder.create_earning_line(
                    "NIGHT_DIFF",
                    night_amount,
                    quantity=(night_minutes / SIXTY).quantize(LineItemBuilder.PRECISION),
                    rate=hourly,
                    explanation=f"{int(night_minutes)} night min",
                )
            )

        if unworked_regular_holidays and pay_input.compensation.pay_type == PayType.DAILY:
            lines.append(
                LineItemBuilder.create_earning_line(
                    "HOLIDAY_UNWORKED",
                    rates.daily * unworked_regular_holidays,
                    quantity=Decimal(unworked_regular_holidays),
                    rate=rates.daily,
                    explanation="Unworked regular holiday pay",
                )
            )
        return lines

    @staticmethod
    def _premium_for(dtr: DtrSnapshot, rules: OvertimeRules) -> tuple[str, Decimal]:
        if dtr.status == DtrStatus.HOLIDAY:
            if dtr.holiday_type == HolidayType.SPECIAL:
                return "HOLIDAY_SPECIAL", rules.special_holiday_multiplier
            return "HOLIDAY_REGULAR", rules.holiday_multiplier
        if dtr.status == DtrStatus.REST_DAY:
            return "OT_REST_DAY", rules.rest_day_multiplier
        return "OT_REGULAR", rules.regular_multiplier

    @staticmethod
    def _earning_adjustment_lines(pay_input: EmployeePayInput) -> list[LineCandidate]:
        lines = []
        for adjustment in sorted(pay_input.adjustments, key=lambda a: str(a.adjustment_id)):
            if adjustment.category != AdjustmentCategory.EARNING or adjustment.amount <= ZERO:
                continue
            code = "BONUS" if adjustment.kind == AdjustmentKind.BONUS else "ALLOWANCE"
            lines.append(
                LineItemBuilder.create_earning_line(
                    code,
                    adjustment.amount,
                    source_id=str(adjustment.adjustment_id),
                    explanation=adjustment.name,
                    is_taxable=adjustment.is_taxable,
                )
            )
        return lines

    def _contribution_lines(
        self, pay_input: EmployeePayInput, gross: Decimal, rules_used: set[str]
    ) -> list[LineCandidate]:
        if pay_input.cycle_type == CycleType.SUPPLEMENTAL:
            return []
        per_month = CYCLE_PERIODS_PER_MONTH[pay_input.cycle_type]
        monthly_equivalent = gross * per_month
        second_cutoff = pay_input.period_number % 2 == 0

        lines: list[LineCandidate] = []
        for table_type, code in CONTRIBUTION_CODES.items():
            amounts = self.resolver.resolve(table_type, monthly_equivalent, pay_input.period_end)
            rules_used.add(f"{table_type.value}:{amounts.table_version_id}")
            employee, employer = amounts.employee_share, amounts.employer_share

            if pay_input.cycle_type == CycleType.SEMI_MONTHLY:
                if table_type in SECOND_CUTOFF_CONTRIBUTIONS:
                    if not second_cutoff:
                        continue
                else:
                    employee = employee / per_month
                    employer = employer / per_month

            lines.extend(
                LineItemBuilder.create_contribution_lines(
                    code,
                    employee,
                    employer,
                    source_id=str(amounts.table_version_id) if amounts.table_version_id else None,
                    explanation=f"Basis {LineItemBuilder.round_to_cents(monthly_equivalent)}",
                )
            )
        return lines

    @staticmethod
    def _tax_frequency(cycle_type: CycleType) -> str:
        if cycle_type == CycleType.SEMI_MONTHLY:
            return CycleType.SEMI_MONTHLY.value
        return CycleType.MONTHLY.value

    @staticmethod
    def _fill_breakdown(breakdown: PayBreakdown, lines: list[LineCandidate]) -> None:
        for line in lines:
            amount = line.amount
            if line.line_type in (LineType.EARNING, LineType.EARNING_REDUCTION):
                if line.code in ("BASIC", "ABSENCE", "TARDINESS"):
                    breakdown.basic_pay += amount
                elif line.code in ("OT_REGULAR", "OT_REST_DAY"):
                    breakdown.overtime_pay += amount
                elif line.code == "NIGHT_DIFF":
                    breakdown.night_differential_pay += amount
                elif line.code.startswith("HOLIDAY"):
                    breakdown.holiday_pay += amount
                elif line.code == "BONUS":
                    breakdown.bonuses += amount
                else:
                    breakdown.allowances += amount
            elif line.line_type == LineType.CONTRIBUTION:
                field_name = {
                    "SSS_EE": "sss_employee",
                    "PHIC_EE": "philhealth_employee",
                    "HDMF_EE": "pagibig_employee",
                }[line.code]
                setattr(breakdown, field_name, getattr(breakdown, field_name) - amount)
            elif line.line_type == LineType.EMPLOYER_CONTRIBUTION:
                field_name = {
                    "SSS_ER": "sss_employer",
                    "PHIC_ER": "philhealth_employer",
                    "HDMF_ER": "pagibig_employer",
                }[line.code]
                setattr(breakdown, field_name, getattr(breakdown, field_name) + amount)
            elif line.line_type == LineType.TAX:
                breakdown.withholding_tax -= amount
            elif line.line_type == LineType.LOAN:
                breakdown.loan_deductions -= amount
            elif line.line_type == LineType.DEDUCTION:
                breakdown.other_deductions -= amount

    def _compute_inputs_fingerprint(
        self, pay_input: EmployeePayInput, dtrs: list[DtrSnapshot]
    ) -> str:
        """SHA-256 over the canonical inputs (no timestamps of processing)."""
        data = {
            "employee_id": str(pay_input.employee_id),
            "payroll_period_id": str(pay_input.payroll_period_id),
            "cycle_type": pay_input.cycle_type.value,
            "period_number": pay_input.period_number,
            "period_start": pay_input.period_start.isoformat(),
            "period_end": pay_input.period_end.isoformat(),
            "compensation": {
                "basic_pay": str(pay_input.compensation.basic_pay),
                "pay_type": pay_input.compensation.pay_type.value,
            },
            "dtrs": [self._dtr_fingerprint_data(d) for d in dtrs],
            "adjustments": sorted(
                (
                    {
                        "id": str(a.adjustment_id),
                        "category": a.category.value,
                        "kind": a.kind.value,
                        "amount": str(a.amount),
                        "taxable": a.is_taxable,
                        "remaining": str(a.remaining_balance),
                    }
                    for a in pay_input.adjustments
                ),
                key=lambda x: x["id"],
            ),
            "loans": sorted(
                (
                    {
                        "id": str(l.loan_id),
                        "installment": str(l.installment_amount),
                        "remaining": str(l.remaining_balance),
                    }
                    for l in pay_input.loans
                ),
                key=lambda x: x["id"],
            ),
            "tax_method": pay_input.tax_method.value,
            "year_to_date": {
                "taxable_income": str(pay_input.year_to_date.taxable_income),
                "tax_withheld": str(pay_input.year_to_date.tax_withheld),
                "periods": pay_input.year_to_date.periods,
            },
        }
        json_str = json.dumps(data, sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()

    @staticmethod
    def _dtr_fingerprint_data(dtr: DtrSnapshot) -> dict[str, Any]:
        return {
            "date": dtr.work_date.isoformat(),
            "status": dtr.status.value,
            "schedule_id": str(dtr.schedule_id) if dtr.schedule_id else None,
            "work": dtr.total_work_minutes,
            "late": dtr.late_minutes,
            "undertime": dtr.undertime_minutes,
            "overtime": dtr.overtime_minutes,
            "overtime_approved": dtr.overtime_approved,
            "night": dtr.night_differential_minutes,
            "overtime_night": dtr.overtime_night_minutes,
            "holiday_type": dtr.holiday_type.value if dtr.holiday_type else None,
        }

    @staticmethod
    def _compute_rules_fingerprint(rules_used: set[str]) -> str:
        json_str = json.dumps(sorted(rules_used))
        return hashlib.sha256(json_str.encode()).hexdigest()

    def _generate_calculation_id(
        self,
        payroll_period_id: UUID,
        employee_id: UUID,
        inputs_fingerprint: str,
        rules_fingerprint: str,
    ) -> UUID:
        """Generate deterministic calculation ID."""
        data = {
            "payroll_period_id": str(payroll_period_id),
            "employee_id": str(employee_id),
            "engine_version": self.engine_version,
            "inputs_fingerprint": inputs_fingerprint,
            "rules_fingerprint": rules_fingerprint,
        }
        json_str = json.dumps(data, sort_keys=True)
        hash_bytes = hashlib.sha256(json_str.encode()).digest()[:16]
        return UUID(bytes=hash_bytes)
