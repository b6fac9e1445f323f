"""Payroll line builder with idempotent hashing."""

from __future__ import annotations

import hashlib
import json
from decimal import ROUND_HALF_UP, Decimal

from dtr_payroll.calculators.types import LineCandidate, LineType


class LineItemBuilder:
    """Builds payroll lines with deterministic hashing.

    Sign conventions:
    - EARNING: positive
    - EARNING_REDUCTION (absence, tardiness): negative, counted in gross
    - CONTRIBUTION, TAX, LOAN, DEDUCTION (employee): negative
    - EMPLOYER_CONTRIBUTION: positive (liability, outside net pay)

    Rounding:
    - Each line is rounded to centavos when built
    - Internal compute at >=4 decimals
    - Totals are sums of the rounded lines, never re-rounded
    """

    PRECISION = Decimal("0.0001")  # 4 decimal places for internal calculations
    OUTPUT_PRECISION = Decimal("0.01")  # 2 decimal places for persistence

    GROSS_TYPES = frozenset({LineType.EARNING, LineType.EARNING_REDUCTION})
    DEDUCTION_TYPES = frozenset(
        {LineType.CONTRIBUTION, LineType.TAX, LineType.LOAN, LineType.DEDUCTION}
    )

    @staticmethod
    def round_to_cents(amount: Decimal) -> Decimal:
        """Round amount to 2 decimal places (centavos)."""
        return amount.quantize(LineItemBuilder.OUTPUT_PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def compute_line_hash(line: LineCandidate) -> str:
        """Deterministic hash over a line's defining fields."""
        json_str = json.dumps(line.to_canonical_dict(), sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]

    @staticmethod
    def create_earning_line(
        code: str,
        amount: Decimal,
        quantity: Decimal | None = None,
        rate: Decimal | None = None,
        source_id: str | None = None,
        explanation: str | None = None,
        is_taxable: bool = True,
    ) -> LineCandidate:
        """Create an earning line (positive amount)."""
        return LineCandidate(
            line_type=LineType.EARNING,
            code=code,
            amount=LineItemBuilder.round_to_cents(abs(amount)),
            quantity=quantity,
            rate=rate,
            source_id=source_id,
            explanation=explanation,
            is_taxable=is_taxable,
        )

    @staticmethod
    def create_earning_reduction_line(
        code: str,
        amount: Decimal,
        quantity: Decimal | None = None,
        rate: Decimal | None = None,
        explanation: str | None = None,
    ) -> LineCandidate:
        """Create an attendance reduction against basic pay (negative amount)."""
        return LineCandidate(
            line_type=LineType.EARNING_REDUCTION,
            code=code,
            amount=-LineItemBuilder.round_to_cents(abs(amount)),
            quantity=quantity,
            rate=rate,
            explanation=explanation,
        )

    @staticmethod
    def create_contribution_lines(
        code: str,
        employee_share: Decimal,
        employer_share: Decimal,
        source_id: str | None = None,
        explanation: str | None = None,
    ) -> list[LineCandidate]:
        """Employee share (negative) and employer share (positive liability)."""
        lines = []
        if employee_share:
            lines.append(
                LineCandidate(
                    line_type=LineType.CONTRIBUTION,
                    code=f"{code}_EE",
                    amount=-LineItemBuilder.round_to_cents(abs(employee_share)),
                    source_id=source_id,
                    explanation=explanation,
                )
            )
        if employer_share:
            lines.append(
                LineCandidate(
                    line_type=LineType.EMPLOYER_CONTRIBUTION,
                    code=f"{code}_ER",
                    amount=LineItemBuilder.round_to_cents(abs(employer_share)),
                    source_id=source_id,
                    explanation=explanation,
                )
            )
        return lines

    @staticmethod
    def create_tax_line(amount: Decimal, explanation: str | None = None) -> LineCandidate:
        """Create a withholding tax line (negative amount)."""
        return LineCandidate(
            line_type=LineType.TAX,
            code="TAX",
            amount=-LineItemBuilder.round_to_cents(abs(amount)),
            explanation=explanation,
        )

    @staticmethod
    def create_loan_line(
        loan_id: str, loan_type: str, amount: Decimal, explanation: str | None = None
    ) -> LineCandidate:
        """Create a loan amortization line (negative amount)."""
        return LineCandidate(
            line_type=LineType.LOAN,
            code=f"LOAN_{loan_type.upper()}",
            amount=-LineItemBuilder.round_to_cents(abs(amount)),
            source_id=loan_id,
            explanation=explanation,
        )

    @staticmethod
    def create_deduction_line(
        code: str,
        amount: Decimal,
        source_id: str | None = None,
        explanation: str | None = None,
    ) -> LineCandidate:
        """Create an other-deduction line (negative amount)."""
        return LineCandidate(
            line_type=LineType.DEDUCTION,
            code=code,
            amount=-LineItemBuilder.round_to_cents(abs(amount)),
            source_id=source_id,
            explanation=explanation,
        )

    @staticmethod
    def sum_gross(lines: list[LineCandidate]) -> Decimal:
        return sum(
            (line.amount for line in lines if line.line_type in LineItemBuilder.GROSS_TYPES),
            Decimal("0"),
        )

    @staticmethod
    def sum_deductions(lines: list[LineCandidate]) -> Decimal:
        """Total employee deductions as a positive amount."""
        return -sum(
            (line.amount for line in lines if line.line_type in LineItemBuilder.DEDUCTION_TYPES),
            Decimal("0"),
        )

    @staticmethod
    def validate_sign(line: LineCandidate) -> list[str]:
        """Validate that a line's amount follows sign conventions."""
        errors: list[str] = []
        if line.line_type in (LineType.EARNING, LineType.EMPLOYER_CONTRIBUTION) and line.amount < 0:
            errors.append(f"{line.line_type.value} {line.code} must be positive, got {line.amount}")
        if (
            line.line_type in LineItemBuilder.DEDUCTION_TYPES
            or line.line_type == LineType.EARNING_REDUCTION
        ) and line.amount > 0:
            errors.append(f"{line.line_type.value} {line.code} must be negative, got {line.amount}")
        return errors
