"""Versioned contribution and withholding tax tables."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Date, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from dtr_payroll.calculators.contribution_resolver import (
    ContributionBracket,
    ContributionTableVersion,
)
from dtr_payroll.calculators.types import ContributionType, RateBasis
from dtr_payroll.models.base import Base, TimestampMixin

ZERO = Decimal("0")


class ContributionTable(Base, TimestampMixin):
    """Header of one dated table version."""

    __tablename__ = "contribution_table"

    table_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    table_type: Mapped[str] = mapped_column(String, nullable=False)
    frequency: Mapped[str | None] = mapped_column(String)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str | None] = mapped_column(String)

    __table_args__ = (
        UniqueConstraint(
            "table_type", "frequency", "effective_date", name="contribution_table_version_unique"
        ),
    )


class ContributionBracketRow(Base):
    __tablename__ = "contribution_bracket"

    bracket_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    table_id: Mapped[UUID] = mapped_column(
        ForeignKey("contribution_table.table_id", ondelete="CASCADE"), nullable=False
    )
    min_compensation: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    max_compensation: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    employee_fixed: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    employee_rate: Mapped[Decimal] = mapped_column(Numeric(8, 6), nullable=False, default=ZERO)
    employer_fixed: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    employer_rate: Mapped[Decimal] = mapped_column(Numeric(8, 6), nullable=False, default=ZERO)
    rate_basis: Mapped[str] = mapped_column(
        String, nullable=False, default=RateBasis.COMPENSATION.value
    )
    salary_credit: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))

    def to_domain(self) -> ContributionBracket:
        return ContributionBracket(
            min_compensation=Decimal(self.min_compensation),
            max_compensation=(
                Decimal(self.max_compensation) if self.max_compensation is not None else None
            ),
            employee_fixed=Decimal(self.employee_fixed),
            employee_rate=Decimal(self.employee_rate),
            employer_fixed=Decimal(self.employer_fixed),
            employer_rate=Decimal(self.employer_rate),
            rate_basis=RateBasis(self.rate_basis),
            salary_credit=Decimal(self.salary_credit) if self.salary_credit is not None else None,
        )


def build_version(
    table: ContributionTable, rows: list[ContributionBracketRow]
) -> ContributionTableVersion:
    return ContributionTableVersion(
        table_type=ContributionType(table.table_type),
        effective_date=table.effective_date,
        brackets=tuple(
            sorted((r.to_domain() for r in rows), key=lambda b: b.min_compensation)
        ),
        frequency=table.frequency,
        version_id=table.table_id,
    )
