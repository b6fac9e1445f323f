"""Pytest fixtures for DTR payroll engine tests."""

from __future__ import annotations

from datetime import date, time
from decimal import Decimal
from typing import AsyncGenerator
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from dtr_payroll.calculators.contribution_resolver import (
    ContributionBracket,
    ContributionTableResolver,
    ContributionTableVersion,
)
from dtr_payroll.calculators.schedule import (
    BreakRule,
    ShiftDefinition,
    TimeConfiguration,
    WorkSchedule,
)
from dtr_payroll.calculators.types import ContributionType, RateBasis, ScheduleType
from dtr_payroll.clock import FixedClock
from dtr_payroll.config import Settings
from dtr_payroll.models import (
    Base,
    ContributionBracketRow,
    ContributionTable,
    Employee,
    EmployeeCompensation,
    EmployeeScheduleAssignment,
    ScheduleVersion,
)

# In-memory SQLite shared across connections of one engine
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TABLES_EFFECTIVE = date(2024, 1, 1)


def contribution_versions() -> list[ContributionTableVersion]:
    """Simplified statutory tables used throughout the tests.

    SSS:        4.5% / 9.5% of compensation up to 19,999.99, then flat 900 / 1,900
    PhilHealth: 2.5% / 2.5% of compensation
    Pag-IBIG:   1% / 2% up to 1,500.00, then flat 100 / 100
    Tax:        20% of the excess over 10,000.01 (semi-monthly)
                or 20,000.01 (monthly)
    """
    return [
        ContributionTableVersion(
            table_type=ContributionType.SSS,
            effective_date=TABLES_EFFECTIVE,
            version_id=uuid4(),
            brackets=(
                ContributionBracket(
                    Decimal("0"),
                    Decimal("19999.99"),
                    employee_rate=Decimal("0.045"),
                    employer_rate=Decimal("0.095"),
                ),
                ContributionBracket(
                    Decimal("20000.00"),
                    None,
                    employee_fixed=Decimal("900"),
                    employer_fixed=Decimal("1900"),
                ),
            ),
        ),
        ContributionTableVersion(
            table_type=ContributionType.PHILHEALTH,
            effective_date=TABLES_EFFECTIVE,
            version_id=uuid4(),
            brackets=(
                ContributionBracket(
                    Decimal("0"),
                    None,
                    employee_rate=Decimal("0.025"),
                    employer_rate=Decimal("0.025"),
                ),
            ),
        ),
        ContributionTableVersion(
            table_type=ContributionType.PAGIBIG,
            effective_date=TABLES_EFFECTIVE,
            version_id=uuid4(),
            brackets=(
                ContributionBracket(
                    Decimal("0"),
                    Decimal("1500.00"),
                    employee_rate=Decimal("0.01"),
                    employer_rate=Decimal("0.02"),
                ),
                ContributionBracket(
                    Decimal("1500.01"),
                    None,
                    employee_fixed=Decimal("100"),
                    employer_fixed=Decimal("100"),
                ),
            ),
        ),
        _tax_version("semi_monthly", Decimal("10000.00")),
        _tax_version("monthly", Decimal("20000.00")),
    ]


def _tax_version(frequency: str, exempt_up_to: Decimal) -> ContributionTableVersion:
    return ContributionTableVersion(
        table_type=ContributionType.WITHHOLDING_TAX,
        effective_date=TABLES_EFFECTIVE,
        frequency=frequency,
        version_id=uuid4(),
        brackets=(
            ContributionBracket(Decimal("0"), exempt_up_to),
            ContributionBracket(
                exempt_up_to + Decimal("0.01"),
                None,
                employee_rate=Decimal("0.20"),
                rate_basis=RateBasis.EXCESS_OVER_MIN,
            ),
        ),
    )


OFFICE_SCHEDULE_CONFIG = {
    "start_time": "08:00:00",
    "end_time": "17:00:00",
    "break": {"start_time": "12:00:00", "duration_minutes": 60},
}


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        engine_version="1.0.0",
        withholding_tax_method="bracket",
        duplicate_punch_threshold_minutes=3,
        max_workers=2,
        log_level="DEBUG",
        debug=False,
    )


@pytest.fixture
def resolver() -> ContributionTableResolver:
    resolver = ContributionTableResolver()
    for version in contribution_versions():
        resolver.add(version)
    return resolver


@pytest.fixture
def office_schedule() -> WorkSchedule:
    """Monday to Friday, 08:00-17:00 with a 12:00 one-hour break."""
    return WorkSchedule(
        schedule_id=uuid4(),
        name="Office",
        schedule_type=ScheduleType.FIXED,
        time_configuration=TimeConfiguration(
            start_time=time(8, 0),
            end_time=time(17, 0),
            break_rule=BreakRule(duration_minutes=60, start_time=time(12, 0)),
        ),
    )


@pytest.fixture
def night_schedule() -> WorkSchedule:
    """Rotating schedule whose only shift runs 22:00-06:00."""
    return WorkSchedule(
        schedule_id=uuid4(),
        name="Plant",
        schedule_type=ScheduleType.SHIFTING,
        time_configuration=TimeConfiguration(
            shifts=(
                ShiftDefinition("night", time(22, 0), time(6, 0)),
                ShiftDefinition("day", time(6, 0), time(14, 0)),
            ),
        ),
    )


# ============================================================================
# Database
# ============================================================================


@pytest.fixture
async def engine():
    """Create a fresh in-memory database per test."""
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def session(engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def contribution_tables(session: AsyncSession) -> list[ContributionTable]:
    """Persist the test contribution tables."""
    tables = []
    for version in contribution_versions():
        table = ContributionTable(
            table_id=version.version_id,
            table_type=version.table_type.value,
            frequency=version.frequency,
            effective_date=version.effective_date,
        )
        session.add(table)
        tables.append(table)
        await session.flush()
        for bracket in version.brackets:
            session.add(
                ContributionBracketRow(
                    table_id=table.table_id,
                    min_compensation=bracket.min_compensation,
                    max_compensation=bracket.max_compensation,
                    employee_fixed=bracket.employee_fixed,
                    employee_rate=bracket.employee_rate,
                    employer_fixed=bracket.employer_fixed,
                    employer_rate=bracket.employer_rate,
                    rate_basis=bracket.rate_basis.value,
                    salary_credit=bracket.salary_credit,
                )
            )
    await session.flush()
    return tables


@pytest.fixture
async def schedule_row(session: AsyncSession) -> ScheduleVersion:
    row = ScheduleVersion(
        schedule_id=uuid4(),
        name="Office",
        version=1,
        schedule_type=ScheduleType.FIXED.value,
        time_configuration=dict(OFFICE_SCHEDULE_CONFIG),
        overtime_rules={},
        night_differential={},
    )
    session.add(row)
    await session.flush()
    return row


@pytest.fixture
async def employee(session: AsyncSession, schedule_row: ScheduleVersion) -> Employee:
    """An active monthly-paid employee (22,000.00) on the office schedule."""
    employee = Employee(
        employee_id=uuid4(),
        employee_number="E-0001",
        full_name="Juan Dela Cruz",
        status="active",
        hired_on=date(2020, 1, 1),
    )
    session.add(employee)
    await session.flush()
    session.add_all(
        [
            EmployeeCompensation(
                employee_id=employee.employee_id,
                basic_pay=Decimal("22000.00"),
                pay_type="monthly",
                effective_date=date(2020, 1, 1),
            ),
            EmployeeScheduleAssignment(
                employee_id=employee.employee_id,
                schedule_id=schedule_row.schedule_id,
                effective_date=date(2020, 1, 1),
            ),
        ]
    )
    await session.flush()
    return employee
