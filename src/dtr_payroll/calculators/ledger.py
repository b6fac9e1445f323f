"""Loan and adjustment ledger arithmetic.

Balances move only through recorded deductions or payments and are floored
at zero. Storage and locking live in ``services.ledger_service``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from dtr_payroll.calculators.types import (
    AdjustmentFrequency,
    AdjustmentInput,
    LedgerStatus,
    LoanInput,
)
from dtr_payroll.errors import StateError, ValidationError

ZERO = Decimal("0")


class LoanNotDeductible(StateError):
    code = "LOAN_NOT_DEDUCTIBLE"


class InvalidPaymentAmount(ValidationError):
    code = "INVALID_PAYMENT_AMOUNT"


@dataclass(frozen=True)
class BalanceMovement:
    """Result of applying a payment or deduction to a balance."""

    amount_applied: Decimal
    balance_before: Decimal
    balance_after: Decimal

    @property
    def settles(self) -> bool:
        return self.balance_after == ZERO


def apply_to_balance(balance: Decimal, amount: Decimal) -> BalanceMovement:
    """Reduce ``balance`` by ``amount``; never below zero."""
    if amount <= ZERO:
        raise InvalidPaymentAmount(f"Payment amount must be positive, got {amount}", amount=amount)
    applied = min(amount, balance)
    return BalanceMovement(
        amount_applied=applied,
        balance_before=balance,
        balance_after=balance - applied,
    )


def loan_deduction(loan: LoanInput, available: Decimal) -> Decimal:
    """This period's installment: never more than the balance or net left."""
    return max(ZERO, min(loan.installment_amount, loan.remaining_balance, available))


def adjustment_deduction(adjustment: AdjustmentInput, available: Decimal) -> Decimal:
    amount = adjustment.amount
    if adjustment.remaining_balance is not None:
        amount = min(amount, adjustment.remaining_balance)
    return max(ZERO, min(amount, available))


def is_loan_deductible(status: LedgerStatus, remaining_balance: Decimal) -> bool:
    return status == LedgerStatus.ACTIVE and remaining_balance > ZERO


@dataclass(frozen=True)
class AdjustmentTerms:
    """When an adjustment is due."""

    status: LedgerStatus
    frequency: AdjustmentFrequency
    start_date: date | None = None
    end_date: date | None = None
    target_period_id: UUID | None = None
    remaining_occurrences: int | None = None
    remaining_balance: Decimal | None = None

    def applies_to(self, period_id: UUID, period_start: date, period_end: date) -> bool:
        if self.status != LedgerStatus.ACTIVE:
            return False
        if self.remaining_balance is not None and self.remaining_balance <= ZERO:
            return False
        if self.target_period_id is not None:
            return self.target_period_id == period_id

        if self.frequency == AdjustmentFrequency.ONE_TIME:
            return self.start_date is not None and period_start <= self.start_date <= period_end

        if self.remaining_occurrences is not None and self.remaining_occurrences <= 0:
            return False
        starts_in_time = self.start_date is None or self.start_date <= period_end
        not_ended = self.end_date is None or self.end_date >= period_start
        return starts_in_time and not_ended
