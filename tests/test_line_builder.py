"""Tests for line item builder."""

from decimal import Decimal

from dtr_payroll.calculators.line_builder import LineItemBuilder
from dtr_payroll.calculators.types import LineType


class TestLineItemBuilder:
    """Test line item builder functionality."""

    def test_round_to_cents(self):
        """Half-up rounding to centavos."""
        assert LineItemBuilder.round_to_cents(Decimal("10.125")) == Decimal("10.13")
        assert LineItemBuilder.round_to_cents(Decimal("10.124")) == Decimal("10.12")
        assert LineItemBuilder.round_to_cents(Decimal("10.135")) == Decimal("10.14")

    def test_create_earning_line(self):
        """Earnings are positive even when given a negative amount."""
        line = LineItemBuilder.create_earning_line(
            code="OVERTIME",
            amount=Decimal("-312.504"),
            quantity=Decimal("2.0000"),
            rate=Decimal("156.2500"),
        )

        assert line.line_type == LineType.EARNING
        assert line.amount == Decimal("312.50")
        assert line.quantity == Decimal("2.0000")
        assert line.is_taxable is True

    def test_non_taxable_earning(self):
        line = LineItemBuilder.create_earning_line(
            code="ALLOWANCE", amount=Decimal("500"), is_taxable=False
        )
        assert line.is_taxable is False

    def test_create_earning_reduction_line(self):
        """Absence and tardiness reduce gross (negative amount)."""
        line = LineItemBuilder.create_earning_reduction_line(
            code="TARDINESS", amount=Decimal("20.8333")
        )

        assert line.line_type == LineType.EARNING_REDUCTION
        assert line.amount == Decimal("-20.83")

    def test_create_contribution_lines(self):
        """Employee share is a deduction; employer share is a positive liability."""
        lines = LineItemBuilder.create_contribution_lines(
            code="SSS", employee_share=Decimal("900"), employer_share=Decimal("1900")
        )

        assert [line.code for line in lines] == ["SSS_EE", "SSS_ER"]
        assert lines[0].line_type == LineType.CONTRIBUTION
        assert lines[0].amount == Decimal("-900.00")
        assert lines[1].line_type == LineType.EMPLOYER_CONTRIBUTION
        assert lines[1].amount == Decimal("1900.00")

    def test_zero_contribution_shares_omitted(self):
        lines = LineItemBuilder.create_contribution_lines(
            code="PAGIBIG", employee_share=Decimal("0"), employer_share=Decimal("100")
        )
        assert [line.code for line in lines] == ["PAGIBIG_ER"]

    def test_create_tax_line(self):
        line = LineItemBuilder.create_tax_line(Decimal("145.555"))

        assert line.line_type == LineType.TAX
        assert line.code == "TAX"
        assert line.amount == Decimal("-145.56")

    def test_create_loan_line(self):
        line = LineItemBuilder.create_loan_line("loan-1", "sss_salary", Decimal("1000"))

        assert line.line_type == LineType.LOAN
        assert line.code == "LOAN_SSS_SALARY"
        assert line.amount == Decimal("-1000.00")
        assert line.source_id == "loan-1"

    def test_create_deduction_line(self):
        line = LineItemBuilder.create_deduction_line("DEDUCTION", Decimal("250"), source_id="adj-1")

        assert line.line_type == LineType.DEDUCTION
        assert line.amount == Decimal("-250.00")


class TestLineHash:
    """Test line hash computation for idempotency."""

    def test_same_line_same_hash(self):
        first = LineItemBuilder.create_earning_line("BASIC", Decimal("11000"))
        second = LineItemBuilder.create_earning_line("BASIC", Decimal("11000.00"))

        assert LineItemBuilder.compute_line_hash(first) == LineItemBuilder.compute_line_hash(second)
        assert len(LineItemBuilder.compute_line_hash(first)) == 32

    def test_different_amount_different_hash(self):
        first = LineItemBuilder.create_earning_line("BASIC", Decimal("11000"))
        second = LineItemBuilder.create_earning_line("BASIC", Decimal("11000.01"))

        assert LineItemBuilder.compute_line_hash(first) != LineItemBuilder.compute_line_hash(second)


class TestTotals:
    def _lines(self):
        return [
            LineItemBuilder.create_earning_line("BASIC", Decimal("11000")),
            LineItemBuilder.create_earning_reduction_line("TARDINESS", Decimal("100")),
            *LineItemBuilder.create_contribution_lines("SSS", Decimal("900"), Decimal("1900")),
            LineItemBuilder.create_tax_line(Decimal("0.50")),
            LineItemBuilder.create_loan_line("loan-1", "company", Decimal("1000")),
        ]

    def test_sum_gross_includes_reductions(self):
        assert LineItemBuilder.sum_gross(self._lines()) == Decimal("10900.00")

    def test_sum_deductions_excludes_employer_share(self):
        assert LineItemBuilder.sum_deductions(self._lines()) == Decimal("1900.50")

    def test_built_lines_follow_sign_conventions(self):
        for line in self._lines():
            assert LineItemBuilder.validate_sign(line) == []

    def test_validate_sign_flags_positive_deduction(self):
        line = LineItemBuilder.create_deduction_line("DEDUCTION", Decimal("10"))
        line.amount = Decimal("10.00")

        errors = LineItemBuilder.validate_sign(line)
        assert len(errors) == 1
        assert "must be negative" in errors[0]
