"""Tests for contribution table resolution and withholding tax."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from dtr_payroll.calculators.contribution_resolver import (
    ContributionBracket,
    ContributionTableVersion,
    MalformedContributionTable,
    NoApplicableTableVersion,
    NoMatchingBracket,
    validate_table,
)
from dtr_payroll.calculators.types import ContributionType, RateBasis, TaxMethod, YearToDate

AS_OF = date(2025, 1, 31)


def _version(*brackets, table_type=ContributionType.SSS, effective=date(2024, 1, 1)):
    return ContributionTableVersion(
        table_type=table_type,
        effective_date=effective,
        brackets=tuple(brackets),
        version_id=uuid4(),
    )


class TestResolve:
    """Bracket lookup against preloaded versions."""

    def test_rate_on_compensation(self, resolver):
        """Shares are the bracket rates times compensation."""
        amounts = resolver.resolve(ContributionType.SSS, Decimal("15000"), AS_OF)

        assert amounts.table_type == ContributionType.SSS
        assert amounts.employee_share == Decimal("675")
        assert amounts.employer_share == Decimal("1425")
        assert amounts.table_version_id is not None

    def test_boundary_belongs_to_lower_bracket(self, resolver):
        """The bracket maximum is inclusive; the next bracket starts one centavo up."""
        lower = resolver.resolve(ContributionType.SSS, Decimal("19999.99"), AS_OF)
        upper = resolver.resolve(ContributionType.SSS, Decimal("20000.00"), AS_OF)

        assert lower.employee_share == Decimal("0.045") * Decimal("19999.99")
        assert upper.employee_share == Decimal("900")

    def test_compensation_rounded_to_cents_before_lookup(self, resolver):
        """Sub-centavo amounts never fall between brackets."""
        down = resolver.resolve(ContributionType.SSS, Decimal("19999.994"), AS_OF)
        up = resolver.resolve(ContributionType.SSS, Decimal("19999.995"), AS_OF)

        assert down.employee_share == Decimal("0.045") * Decimal("19999.99")
        assert up.employee_share == Decimal("900")

    def test_open_top_bracket(self, resolver):
        amounts = resolver.resolve(ContributionType.SSS, Decimal("1000000"), AS_OF)
        assert amounts.employee_share == Decimal("900")
        assert amounts.employer_share == Decimal("1900")

    def test_latest_effective_version_wins(self, resolver):
        """A newer version applies from its effective date onward."""
        resolver.add(
            _version(
                ContributionBracket(
                    Decimal("0"),
                    None,
                    employee_fixed=Decimal("1000"),
                    employer_fixed=Decimal("2000"),
                ),
                effective=date(2025, 6, 1),
            )
        )

        before = resolver.resolve(ContributionType.SSS, Decimal("25000"), date(2025, 5, 31))
        after = resolver.resolve(ContributionType.SSS, Decimal("25000"), date(2025, 6, 1))

        assert before.employee_share == Decimal("900")
        assert after.employee_share == Decimal("1000")
        assert after.employer_share == Decimal("2000")

    def test_no_version_effective(self, resolver):
        """Dates before every version raise instead of defaulting to zero."""
        with pytest.raises(NoApplicableTableVersion) as exc_info:
            resolver.resolve(ContributionType.SSS, Decimal("15000"), date(2023, 12, 31))

        assert exc_info.value.table_type == ContributionType.SSS
        assert exc_info.value.context["as_of"] == date(2023, 12, 31)

    def test_no_matching_bracket(self, resolver):
        """An unvalidated version with a hole raises NoMatchingBracket."""
        resolver.versions.append(
            _version(
                ContributionBracket(Decimal("0"), Decimal("100.00")),
                table_type=ContributionType.PAGIBIG,
                effective=date(2025, 1, 1),
            )
        )

        with pytest.raises(NoMatchingBracket) as exc_info:
            resolver.resolve(ContributionType.PAGIBIG, Decimal("500"), AS_OF)

        assert exc_info.value.compensation == Decimal("500.00")

    def test_salary_credit_is_the_rate_basis(self, resolver):
        """Brackets with a salary credit apply their rate to the credit."""
        resolver.add(
            _version(
                ContributionBracket(
                    Decimal("0"),
                    None,
                    employee_rate=Decimal("0.05"),
                    employer_rate=Decimal("0.10"),
                    salary_credit=Decimal("10000"),
                ),
                effective=date(2025, 1, 1),
            )
        )

        amounts = resolver.resolve(ContributionType.SSS, Decimal("12345.67"), AS_OF)

        assert amounts.employee_share == Decimal("500")
        assert amounts.employer_share == Decimal("1000")
        assert amounts.salary_credit == Decimal("10000")

    def test_excess_over_min_basis(self):
        bracket = ContributionBracket(
            Decimal("1000.00"),
            None,
            employee_fixed=Decimal("50"),
            employee_rate=Decimal("0.10"),
            rate_basis=RateBasis.EXCESS_OVER_MIN,
        )
        assert bracket.employee_share(Decimal("1500.00")) == Decimal("100")


class TestValidateTable:
    """Bracket contiguity checks applied when a version is added."""

    def test_valid_table(self):
        validate_table(
            _version(
                ContributionBracket(Decimal("0"), Decimal("999.99")),
                ContributionBracket(Decimal("1000.00"), None),
            )
        )

    def test_gap_rejected(self, resolver):
        with pytest.raises(MalformedContributionTable, match="gap"):
            resolver.add(
                _version(
                    ContributionBracket(Decimal("0"), Decimal("999.99")),
                    ContributionBracket(Decimal("1000.50"), None),
                )
            )

    def test_overlap_rejected(self):
        with pytest.raises(MalformedContributionTable, match="overlap"):
            validate_table(
                _version(
                    ContributionBracket(Decimal("0"), Decimal("1000.00")),
                    ContributionBracket(Decimal("1000.00"), None),
                )
            )

    def test_must_start_at_zero(self):
        with pytest.raises(MalformedContributionTable, match="start at 0"):
            validate_table(_version(ContributionBracket(Decimal("1"), None)))

    def test_must_end_open(self):
        with pytest.raises(MalformedContributionTable, match="open top"):
            validate_table(_version(ContributionBracket(Decimal("0"), Decimal("5000.00"))))

    def test_open_bracket_only_at_top(self):
        with pytest.raises(MalformedContributionTable, match="open bracket"):
            validate_table(
                _version(
                    ContributionBracket(Decimal("0"), None),
                    ContributionBracket(Decimal("1000.00"), None),
                )
            )

    def test_empty_table_rejected(self):
        with pytest.raises(MalformedContributionTable):
            validate_table(_version())

    def test_rejected_version_is_not_added(self, resolver):
        count = len(resolver.versions)
        with pytest.raises(MalformedContributionTable):
            resolver.add(_version(ContributionBracket(Decimal("1"), None)))
        assert len(resolver.versions) == count


class TestWithholdingTax:
    """Bracket and cumulative-average withholding."""

    def test_exempt_income(self, resolver):
        tax = resolver.compute_withholding_tax(
            TaxMethod.BRACKET, Decimal("9725.00"), AS_OF, "semi_monthly"
        )
        assert tax == Decimal("0")

    def test_bracket_excess(self, resolver):
        tax = resolver.compute_withholding_tax(
            TaxMethod.BRACKET, Decimal("20000.01"), AS_OF, "semi_monthly"
        )
        assert tax == Decimal("2000")

    def test_frequency_selects_table(self, resolver):
        """The monthly table has a higher exemption than the semi-monthly one."""
        semi = resolver.compute_withholding_tax(
            TaxMethod.BRACKET, Decimal("15000.01"), AS_OF, "semi_monthly"
        )
        monthly = resolver.compute_withholding_tax(
            TaxMethod.BRACKET, Decimal("15000.01"), AS_OF, "monthly"
        )
        assert semi == Decimal("1000")
        assert monthly == Decimal("0")

    def test_negative_income_is_untaxed(self, resolver):
        tax = resolver.compute_withholding_tax(
            TaxMethod.BRACKET, Decimal("-50"), AS_OF, "semi_monthly"
        )
        assert tax == Decimal("0")

    def test_cumulative_average(self, resolver):
        """Tax the average over the year so far, less what was withheld."""
        ytd = YearToDate(taxable_income=Decimal("10000.00"), periods=1)

        tax = resolver.compute_withholding_tax(
            TaxMethod.CUMULATIVE_AVERAGE, Decimal("30000.02"), AS_OF, "semi_monthly", ytd
        )

        # Average 20,000.01 -> 2,000.00 per period, two periods
        assert tax == Decimal("4000")

    def test_cumulative_average_credits_prior_withholding(self, resolver):
        ytd = YearToDate(
            taxable_income=Decimal("10000.00"), tax_withheld=Decimal("500.00"), periods=1
        )
        tax = resolver.compute_withholding_tax(
            TaxMethod.CUMULATIVE_AVERAGE, Decimal("30000.02"), AS_OF, "semi_monthly", ytd
        )
        assert tax == Decimal("3500")

    def test_cumulative_average_never_negative(self, resolver):
        ytd = YearToDate(
            taxable_income=Decimal("10000.00"), tax_withheld=Decimal("9999.00"), periods=1
        )
        tax = resolver.compute_withholding_tax(
            TaxMethod.CUMULATIVE_AVERAGE, Decimal("30000.02"), AS_OF, "semi_monthly", ytd
        )
        assert tax == Decimal("0")

    def test_missing_tax_table(self, resolver):
        with pytest.raises(NoApplicableTableVersion):
            resolver.compute_withholding_tax(
                TaxMethod.BRACKET, Decimal("1000"), AS_OF, "weekly"
            )
