"""Contribution and withholding tax table resolver.

Tables are versioned by effective date. A version is a set of contiguous,
non-overlapping brackets starting at zero; the top bracket is open ended.
Lookups are pure functions over preloaded versions so that a whole payroll
period resolves against one consistent snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from dtr_payroll.calculators.types import (
    ContributionAmounts,
    ContributionType,
    CycleType,
    RateBasis,
    TaxMethod,
    YearToDate,
)
from dtr_payroll.errors import ConfigurationError

CENT = Decimal("0.01")


class NoApplicableTableVersion(ConfigurationError):
    """Raised when no table version is effective on the requested date."""

    code = "NO_APPLICABLE_TABLE_VERSION"

    def __init__(self, table_type: ContributionType, as_of: date, frequency: str | None = None):
        self.table_type = table_type
        self.as_of = as_of
        self.frequency = frequency
        msg = f"No {table_type.value} table effective on {as_of}"
        if frequency:
            msg += f" for frequency '{frequency}'"
        super().__init__(msg, table_type=table_type.value, as_of=as_of, frequency=frequency)


class NoMatchingBracket(ConfigurationError):
    """Raised when compensation falls outside every bracket of a version."""

    code = "NO_MATCHING_BRACKET"

    def __init__(self, table_type: ContributionType, compensation: Decimal, as_of: date):
        self.table_type = table_type
        self.compensation = compensation
        super().__init__(
            f"No {table_type.value} bracket covers compensation {compensation} as of {as_of}",
            table_type=table_type.value,
            compensation=compensation,
            as_of=as_of,
        )


class MalformedContributionTable(ConfigurationError):
    code = "MALFORMED_CONTRIBUTION_TABLE"


@dataclass(frozen=True)
class ContributionBracket:
    """One row of a contribution table version."""

    min_compensation: Decimal
    max_compensation: Decimal | None  # None = open top bracket
    employee_fixed: Decimal = Decimal("0")
    employee_rate: Decimal = Decimal("0")
    employer_fixed: Decimal = Decimal("0")
    employer_rate: Decimal = Decimal("0")
    rate_basis: RateBasis = RateBasis.COMPENSATION
    salary_credit: Decimal | None = None

    def contains(self, compensation: Decimal) -> bool:
        if compensation < self.min_compensation:
            return False
        return self.max_compensation is None or compensation <= self.max_compensation

    def _basis(self, compensation: Decimal) -> Decimal:
        if self.rate_basis == RateBasis.EXCESS_OVER_MIN:
            return compensation - self.min_compensation
        return self.salary_credit if self.salary_credit is not None else compensation

    def employee_share(self, compensation: Decimal) -> Decimal:
        return self.employee_fixed + self.employee_rate * self._basis(compensation)

    def employer_share(self, compensation: Decimal) -> Decimal:
        return self.employer_fixed + self.employer_rate * self._basis(compensation)


@dataclass(frozen=True)
class ContributionTableVersion:
    """A dated version of one table (tax tables also carry a frequency)."""

    table_type: ContributionType
    effective_date: date
    brackets: tuple[ContributionBracket, ...]
    frequency: str | None = None
    version_id: UUID | None = None

    def find_bracket(self, compensation: Decimal) -> ContributionBracket | None:
        for bracket in self.brackets:
            if bracket.contains(compensation):
                return bracket
        return None


def validate_table(version: ContributionTableVersion) -> None:
    """Check that brackets start at zero, are contiguous and end open.

    Contiguity is measured in cents: each bracket starts one centavo above
    the previous maximum, so a boundary value belongs to the lower bracket.
    """
    label = f"{version.table_type.value} table effective {version.effective_date}"
    brackets = sorted(version.brackets, key=lambda b: b.min_compensation)
    if not brackets:
        raise MalformedContributionTable(f"{label} has no brackets", table=label)
    if brackets[0].min_compensation != Decimal("0"):
        raise MalformedContributionTable(f"{label} does not start at 0", table=label)

    for previous, current in zip(brackets, brackets[1:]):
        if previous.max_compensation is None:
            raise MalformedContributionTable(
                f"{label} has an open bracket before {current.min_compensation}",
                table=label,
            )
        expected = previous.max_compensation + CENT
        if current.min_compensation < expected:
            raise MalformedContributionTable(
                f"{label} brackets overlap at {current.min_compensation}", table=label
            )
        if current.min_compensation > expected:
            raise MalformedContributionTable(
                f"{label} has a gap between {previous.max_compensation} "
                f"and {current.min_compensation}",
                table=label,
            )

    if brackets[-1].max_compensation is not None:
        raise MalformedContributionTable(f"{label} has no open top bracket", table=label)


def periods_per_year(frequency: str) -> int:
    return {CycleType.SEMI_MONTHLY.value: 24, CycleType.MONTHLY.value: 12}.get(frequency, 12)


@dataclass
class ContributionTableResolver:
    """Resolves employee/employer shares against preloaded table versions."""

    versions: list[ContributionTableVersion] = field(default_factory=list)

    def add(self, version: ContributionTableVersion) -> None:
        validate_table(version)
        self.versions.append(version)

    def applicable_version(
        self,
        table_type: ContributionType,
        as_of: date,
        frequency: str | None = None,
    ) -> ContributionTableVersion:
        """Latest version with ``effective_date <= as_of``."""
        candidates = [
            v
            for v in self.versions
            if v.table_type == table_type
            and v.effective_date <= as_of
            and (frequency is None or v.frequency == frequency)
        ]
        if not candidates:
            raise NoApplicableTableVersion(table_type, as_of, frequency)
        return max(candidates, key=lambda v: v.effective_date)

    def resolve(
        self,
        table_type: ContributionType,
        compensation: Decimal,
        as_of: date,
        frequency: str | None = None,
    ) -> ContributionAmounts:
        """Resolve shares for a compensation amount.

        Raises NoApplicableTableVersion or NoMatchingBracket; never defaults
        to zero.
        """
        version = self.applicable_version(table_type, as_of, frequency)
        amount = compensation.quantize(CENT, rounding=ROUND_HALF_UP)
        bracket = version.find_bracket(amount)
        if bracket is None:
            raise NoMatchingBracket(table_type, amount, as_of)

        return ContributionAmounts(
            table_type=table_type,
            employee_share=bracket.employee_share(amount),
            employer_share=bracket.employer_share(amount),
            table_version_id=version.version_id,
            salary_credit=bracket.salary_credit,
        )

    def compute_withholding_tax(
        self,
        method: TaxMethod,
        taxable_income: Decimal,
        as_of: date,
        frequency: str,
        year_to_date: YearToDate | None = None,
    ) -> Decimal:
        """Withholding tax for one period.

        BRACKET taxes the period's income on its own. CUMULATIVE_AVERAGE
        averages taxable income over the periods of the year so far, taxes
        the average, and withholds what has not yet been withheld (never
        negative).
        """
        taxable_income = max(taxable_income, Decimal("0"))

        if method == TaxMethod.BRACKET:
            return self._bracket_tax(taxable_income, as_of, frequency)

        if method == TaxMethod.CUMULATIVE_AVERAGE:
            ytd = year_to_date or YearToDate()
            periods = min(ytd.periods + 1, periods_per_year(frequency))
            average = (ytd.taxable_income + taxable_income) / periods
            due = self._bracket_tax(average, as_of, frequency) * periods - ytd.tax_withheld
            return max(due, Decimal("0"))

        raise ConfigurationError(f"Unknown withholding tax method '{method}'", method=method)

    def _bracket_tax(self, income: Decimal, as_of: date, frequency: str) -> Decimal:
        return self.resolve(
            ContributionType.WITHHOLDING_TAX, income, as_of, frequency
        ).employee_share
