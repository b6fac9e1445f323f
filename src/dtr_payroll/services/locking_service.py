"""Locks guarding period computation and loan balances."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from dtr_payroll.database import acquire_advisory_lock, release_advisory_lock
from dtr_payroll.errors import StateError

logger = logging.getLogger(__name__)


class ComputationInProgress(StateError):
    """Raised when another compute/recompute holds the period lock."""

    code = "COMPUTATION_IN_PROGRESS"

    def __init__(self, payroll_period_id: UUID):
        self.payroll_period_id = payroll_period_id
        super().__init__(
            f"Payroll period {payroll_period_id} is already being computed",
            payroll_period_id=payroll_period_id,
        )


class PeriodLockRegistry:
    """Fail-fast, period-scoped computation locks.

    In-process holders are tracked in a set; on PostgreSQL an advisory lock
    additionally excludes other processes. A second contender never waits.
    """

    def __init__(self) -> None:
        self._held: set[UUID] = set()

    def is_held(self, payroll_period_id: UUID) -> bool:
        return payroll_period_id in self._held

    @asynccontextmanager
    async def hold(
        self, payroll_period_id: UUID, session: AsyncSession | None = None
    ) -> AsyncIterator[None]:
        if payroll_period_id in self._held:
            raise ComputationInProgress(payroll_period_id)
        self._held.add(payroll_period_id)
        key = f"payroll_period:{payroll_period_id}"
        advisory = False
        try:
            if session is not None:
                advisory = await acquire_advisory_lock(session, key)
                if not advisory:
                    raise ComputationInProgress(payroll_period_id)
            logger.debug("Acquired computation lock for period %s", payroll_period_id)
            yield
        finally:
            if session is not None and advisory:
                await release_advisory_lock(session, key)
            self._held.discard(payroll_period_id)


class LoanLockRegistry:
    """One asyncio lock per loan; balance mutations are serialized per loan."""

    def __init__(self) -> None:
        self._locks: dict[UUID, asyncio.Lock] = {}

    def lock_for(self, loan_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(loan_id)
        if lock is None:
            lock = self._locks[loan_id] = asyncio.Lock()
        return lock


# Process-wide registries
period_locks = PeriodLockRegistry()
loan_locks = LoanLockRegistry()
