"""Loan and adjustment balance bookkeeping."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dtr_payroll.calculators.ledger import (
    LoanNotDeductible,
    apply_to_balance,
    is_loan_deductible,
)
from dtr_payroll.calculators.types import (
    AdjustmentFrequency,
    LedgerStatus,
    LineType,
    PaymentSource,
)
from dtr_payroll.clock import Clock, SystemClock
from dtr_payroll.errors import RecordNotFoundError, StateError
from dtr_payroll.models import (
    AdjustmentApplication,
    EmployeeAdjustment,
    EmployeeLoan,
    LoanPayment,
    PayrollEntry,
    PayrollLineItem,
)
from dtr_payroll.services.locking_service import LoanLockRegistry, loan_locks

logger = logging.getLogger(__name__)

ADJUSTMENT_LINE_CODES = {"ALLOWANCE", "BONUS", "DEDUCTION"}


class LedgerService:
    """Moves loan and adjustment balances.

    Balances change only here: when a payroll entry is approved, when it is
    voided (reversal), or when a manual payment is recorded. Each loan
    mutation runs under that loan's lock and is applied with a conditional
    UPDATE so the balance can never drop below zero.
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock | None = None,
        locks: LoanLockRegistry | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.locks = locks or loan_locks

    async def get_loan(self, loan_id: UUID) -> EmployeeLoan:
        result = await self.session.execute(
            select(EmployeeLoan)
            .where(EmployeeLoan.loan_id == loan_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        loan = result.scalar_one_or_none()
        if loan is None:
            raise RecordNotFoundError("Loan", loan_id)
        return loan

    async def record_loan_payment(
        self,
        loan_id: UUID,
        amount: Decimal,
        payment_date: date,
        source: PaymentSource = PaymentSource.MANUAL,
        entry_id: UUID | None = None,
        remarks: str | None = None,
    ) -> LoanPayment:
        """Apply a payment to a loan and record the movement."""
        async with self.locks.lock_for(loan_id):
            loan = await self.get_loan(loan_id)
            balance = Decimal(loan.remaining_balance)
            if not is_loan_deductible(LedgerStatus(loan.status), balance):
                raise LoanNotDeductible(
                    f"Loan {loan_id} is {loan.status} with balance {balance}",
                    loan_id=loan_id,
                )

            movement = apply_to_balance(balance, Decimal(amount))
            result = await self.session.execute(
                update(EmployeeLoan)
                .where(
                    EmployeeLoan.loan_id == loan_id,
                    EmployeeLoan.remaining_balance >= movement.amount_applied,
                )
                .values(remaining_balance=EmployeeLoan.remaining_balance - movement.amount_applied)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise StateError(
                    f"Loan {loan_id} balance changed concurrently", loan_id=loan_id
                )
            if movement.settles:
                await self.session.execute(
                    update(EmployeeLoan)
                    .where(EmployeeLoan.loan_id == loan_id)
                    .values(status=LedgerStatus.COMPLETED.value)
                    .execution_options(synchronize_session=False)
                )

            payment = LoanPayment(
                loan_id=loan_id,
                entry_id=entry_id,
                source=source.value,
                amount=movement.amount_applied,
                balance_before=movement.balance_before,
                balance_after=movement.balance_after,
                payment_date=payment_date,
                recorded_at=self.clock.now(),
                remarks=remarks,
            )
            self.session.add(payment)
            await self.session.flush()
            await self.session.refresh(loan)

        logger.info(
            "Loan %s: %s applied (%s -> %s, %s)",
            loan_id,
            movement.amount_applied,
            movement.balance_before,
            movement.balance_after,
            source.value,
        )
        return payment

    async def apply_entry(self, entry: PayrollEntry, payment_date: date) -> None:
        """Post an approved entry's loan and adjustment lines to the ledgers."""
        lines = await self._entry_lines(entry.entry_id)
        for line in lines:
            if line.line_type == LineType.LOAN.value and line.source_id:
                await self.record_loan_payment(
                    UUID(line.source_id),
                    -Decimal(line.amount),
                    payment_date,
                    source=PaymentSource.PAYROLL,
                    entry_id=entry.entry_id,
                )
            elif line.code in ADJUSTMENT_LINE_CODES and line.source_id:
                await self._apply_adjustment(
                    UUID(line.source_id), entry.entry_id, abs(Decimal(line.amount))
                )

    async def reverse_entry(self, entry: PayrollEntry, payment_date: date) -> None:
        """Undo the ledger effects of a voided entry."""
        payments = await self.session.execute(
            select(LoanPayment).where(
                LoanPayment.entry_id == entry.entry_id,
                LoanPayment.source == PaymentSource.PAYROLL.value,
            )
        )
        for payment in payments.scalars().all():
            await self._restore_loan(payment, payment_date)

        applications = await self.session.execute(
            select(AdjustmentApplication).where(
                AdjustmentApplication.entry_id == entry.entry_id,
                AdjustmentApplication.reversed_at.is_(None),
            )
        )
        for application in applications.scalars().all():
            await self._restore_adjustment(application)

    async def _restore_loan(self, payment: LoanPayment, payment_date: date) -> None:
        async with self.locks.lock_for(payment.loan_id):
            loan = await self.get_loan(payment.loan_id)
            before = Decimal(loan.remaining_balance)
            after = before + Decimal(payment.amount)
            loan.remaining_balance = after
            loan.status = LedgerStatus.ACTIVE.value
            self.session.add(
                LoanPayment(
                    loan_id=payment.loan_id,
                    entry_id=payment.entry_id,
                    source=PaymentSource.REVERSAL.value,
                    amount=payment.amount,
                    balance_before=before,
                    balance_after=after,
                    payment_date=payment_date,
                    recorded_at=self.clock.now(),
                    remarks=f"Reversal of payment {payment.payment_id}",
                )
            )
            await self.session.flush()

    async def _apply_adjustment(self, adjustment_id: UUID, entry_id: UUID, amount: Decimal) -> None:
        adjustment = await self.session.get(EmployeeAdjustment, adjustment_id)
        if adjustment is None:
            raise RecordNotFoundError("Adjustment", adjustment_id)

        before = after = None
        if adjustment.has_balance_tracking:
            movement = apply_to_balance(Decimal(adjustment.remaining_balance), amount)
            before, after = movement.balance_before, movement.balance_after
            adjustment.remaining_balance = after
            if movement.settles:
                adjustment.status = LedgerStatus.COMPLETED.value
        elif adjustment.frequency == AdjustmentFrequency.ONE_TIME.value:
            adjustment.status = LedgerStatus.COMPLETED.value
        elif adjustment.remaining_occurrences is not None:
            adjustment.remaining_occurrences -= 1
            if adjustment.remaining_occurrences <= 0:
                adjustment.status = LedgerStatus.COMPLETED.value

        self.session.add(
            AdjustmentApplication(
                adjustment_id=adjustment_id,
                entry_id=entry_id,
                amount=amount,
                balance_before=before,
                balance_after=after,
                applied_at=self.clock.now(),
            )
        )
        await self.session.flush()

    async def _restore_adjustment(self, application: AdjustmentApplication) -> None:
        adjustment = await self.session.get(EmployeeAdjustment, application.adjustment_id)
        if adjustment is None:
            raise RecordNotFoundError("Adjustment", application.adjustment_id)
        if application.balance_before is not None:
            adjustment.remaining_balance = application.balance_before
        elif (
            adjustment.frequency == AdjustmentFrequency.RECURRING.value
            and adjustment.remaining_occurrences is not None
        ):
            adjustment.remaining_occurrences += 1
        adjustment.status = LedgerStatus.ACTIVE.value
        application.reversed_at = self.clock.now()
        await self.session.flush()

    async def _entry_lines(self, entry_id: UUID) -> list[PayrollLineItem]:
        result = await self.session.execute(
            select(PayrollLineItem)
            .where(PayrollLineItem.entry_id == entry_id)
            .order_by(PayrollLineItem.sequence)
        )
        return list(result.scalars().all())
