"""Tests for computation and loan locks."""

import asyncio
from uuid import uuid4

import pytest

from dtr_payroll.services.locking_service import (
    ComputationInProgress,
    LoanLockRegistry,
    PeriodLockRegistry,
)


class TestPeriodLockRegistry:
    async def test_second_holder_fails_fast(self):
        registry = PeriodLockRegistry()
        period_id = uuid4()

        async with registry.hold(period_id):
            assert registry.is_held(period_id)
            with pytest.raises(ComputationInProgress) as exc_info:
                async with registry.hold(period_id):
                    pass
            assert exc_info.value.payroll_period_id == period_id

        assert not registry.is_held(period_id)

    async def test_released_on_error(self):
        registry = PeriodLockRegistry()
        period_id = uuid4()

        with pytest.raises(RuntimeError):
            async with registry.hold(period_id):
                raise RuntimeError("boom")

        assert not registry.is_held(period_id)

    async def test_periods_are_independent(self):
        registry = PeriodLockRegistry()
        first, second = uuid4(), uuid4()

        async with registry.hold(first):
            async with registry.hold(second):
                assert registry.is_held(first) and registry.is_held(second)

    async def test_sqlite_session_holds_without_advisory_lock(self, session):
        registry = PeriodLockRegistry()
        period_id = uuid4()

        async with registry.hold(period_id, session):
            assert registry.is_held(period_id)
        assert not registry.is_held(period_id)


class TestLoanLockRegistry:
    def test_same_lock_per_loan(self):
        registry = LoanLockRegistry()
        loan_id = uuid4()

        assert registry.lock_for(loan_id) is registry.lock_for(loan_id)
        assert registry.lock_for(loan_id) is not registry.lock_for(uuid4())

    async def test_serializes_balance_updates(self):
        registry = LoanLockRegistry()
        loan_id = uuid4()
        order = []

        async def worker(name):
            async with registry.lock_for(loan_id):
                order.append(f"{name}-start")
                await asyncio.sleep(0)
                order.append(f"{name}-end")

        await asyncio.gather(worker("a"), worker("b"))

        assert order == ["a-start", "a-end", "b-start", "b-end"]
