"""Loan and adjustment ledger models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from dtr_payroll.calculators.ledger import AdjustmentTerms
from dtr_payroll.calculators.types import (
    AdjustmentCategory,
    AdjustmentFrequency,
    AdjustmentInput,
    AdjustmentKind,
    LedgerStatus,
    LoanInput,
)
from dtr_payroll.models.base import Base, TimestampMixin


class EmployeeLoan(Base, TimestampMixin):
    __tablename__ = "employee_loan"

    loan_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"), nullable=False
    )
    loan_type: Mapped[str] = mapped_column(String, nullable=False)
    reference: Mapped[str | None] = mapped_column(String)
    principal: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    remaining_balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    installment_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default=LedgerStatus.ACTIVE.value)
    start_date: Mapped[date | None] = mapped_column(Date)

    __table_args__ = (
        CheckConstraint("remaining_balance >= 0", name="employee_loan_balance_check"),
    )

    def to_input(self) -> LoanInput:
        return LoanInput(
            loan_id=self.loan_id,
            loan_type=self.loan_type,
            installment_amount=Decimal(self.installment_amount),
            remaining_balance=Decimal(self.remaining_balance),
        )


class LoanPayment(Base, TimestampMixin):
    """Every balance movement of a loan, payroll or manual."""

    __tablename__ = "loan_payment"

    payment_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    loan_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee_loan.loan_id", ondelete="RESTRICT"), nullable=False
    )
    entry_id: Mapped[UUID | None] = mapped_column(ForeignKey("payroll_entry.entry_id"))
    source: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    balance_before: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    remarks: Mapped[str | None] = mapped_column(Text)


class EmployeeAdjustment(Base, TimestampMixin):
    """Allowance, bonus or deduction applied through payroll."""

    __tablename__ = "employee_adjustment"

    adjustment_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"), nullable=False
    )
    category: Mapped[str] = mapped_column(String, nullable=False)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    is_taxable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    frequency: Mapped[str] = mapped_column(
        String, nullable=False, default=AdjustmentFrequency.ONE_TIME.value
    )
    start_date: Mapped[date | None] = mapped_column(Date)
    end_date: Mapped[date | None] = mapped_column(Date)
    target_period_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_period.payroll_period_id")
    )
    remaining_occurrences: Mapped[int | None] = mapped_column(Integer)
    total_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    remaining_balance: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    status: Mapped[str] = mapped_column(String, nullable=False, default=LedgerStatus.ACTIVE.value)

    @property
    def has_balance_tracking(self) -> bool:
        return self.remaining_balance is not None

    def terms(self) -> AdjustmentTerms:
        return AdjustmentTerms(
            status=LedgerStatus(self.status),
            frequency=AdjustmentFrequency(self.frequency),
            start_date=self.start_date,
            end_date=self.end_date,
            target_period_id=self.target_period_id,
            remaining_occurrences=self.remaining_occurrences,
            remaining_balance=(
                Decimal(self.remaining_balance) if self.remaining_balance is not None else None
            ),
        )

    def to_input(self) -> AdjustmentInput:
        return AdjustmentInput(
            adjustment_id=self.adjustment_id,
            category=AdjustmentCategory(self.category),
            kind=AdjustmentKind(self.kind),
            name=self.name,
            amount=Decimal(self.amount),
            is_taxable=self.is_taxable,
            remaining_balance=(
                Decimal(self.remaining_balance) if self.remaining_balance is not None else None
            ),
        )


class AdjustmentApplication(Base, TimestampMixin):
    """An adjustment consumed by an approved payroll entry."""

    __tablename__ = "adjustment_application"

    application_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    adjustment_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee_adjustment.adjustment_id", ondelete="RESTRICT"), nullable=False
    )
    entry_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_entry.entry_id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    balance_before: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    balance_after: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    applied_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reversed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
