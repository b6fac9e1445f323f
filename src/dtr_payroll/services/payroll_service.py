"""Payroll period computation and entry lifecycle."""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dtr_payroll.calculators.contribution_resolver import ContributionTableResolver
from dtr_payroll.calculators.engine import PayrollCalculator, PayrollComputation
from dtr_payroll.calculators.ledger import is_loan_deductible
from dtr_payroll.calculators.line_builder import LineItemBuilder
from dtr_payroll.calculators.periods import PayDayAdjustment, generate_periods
from dtr_payroll.calculators.types import (
    CycleType,
    EmployeePayInput,
    LedgerStatus,
    TaxMethod,
    YearToDate,
)
from dtr_payroll.clock import Clock, SystemClock
from dtr_payroll.config import Settings, get_settings
from dtr_payroll.errors import (
    ConfigurationError,
    DataIntegrityError,
    PayrollEngineError,
    RecordNotFoundError,
    StateError,
    ValidationError,
)
from dtr_payroll.models import (
    ContributionBracketRow,
    ContributionTable,
    DailyTimeRecord,
    Employee,
    EmployeeAdjustment,
    EmployeeCompensation,
    EmployeeLoan,
    PayrollEntry,
    PayrollLineItem,
    PayrollPeriod,
    ScheduleVersion,
    build_version,
)
from dtr_payroll.services.ledger_service import LedgerService
from dtr_payroll.services.locking_service import (
    ComputationInProgress,
    PeriodLockRegistry,
    period_locks,
)
from dtr_payroll.services.state_machine import (
    InvalidTransitionError,
    PayrollEntryStateMachine,
    PayrollEntryStatus,
    PayrollPeriodStateMachine,
    PayrollPeriodStatus,
)

logger = logging.getLogger(__name__)


class CannotRecomputeApprovedEntry(StateError):
    """Raised when recompute would overwrite an approved or paid entry."""

    code = "CANNOT_RECOMPUTE_APPROVED_ENTRY"

    def __init__(self, entry: PayrollEntry, reason: str):
        super().__init__(
            f"Entry for employee {entry.employee_id} is {entry.status}: {reason}",
            employee_id=entry.employee_id,
            payroll_period_id=entry.payroll_period_id,
            status=entry.status,
        )


class MissingCompensation(DataIntegrityError):
    code = "MISSING_COMPENSATION"


@dataclass
class PeriodComputationResult:
    """Result of computing an entire payroll period."""

    payroll_period_id: UUID
    entries: dict[UUID, PayrollEntry] = field(default_factory=dict)  # employee_id -> entry
    skipped: list[UUID] = field(default_factory=list)
    errors: dict[UUID, PayrollEngineError | Exception] = field(default_factory=dict)

    @property
    def error_count(self) -> int:
        return len(self.errors)


class PayrollComputationService:
    """Computes payroll periods and drives entry status changes.

    A run preloads every input for the period, computes employees in a
    bounded worker pool (the calculator is pure), then writes entries
    sequentially through the session. One employee's failure never blocks
    the others.
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock | None = None,
        settings: Settings | None = None,
        locks: PeriodLockRegistry | None = None,
        tax_method: TaxMethod | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()
        self.locks = locks or period_locks
        self.tax_method = tax_method or TaxMethod(self.settings.withholding_tax_method)
        self.ledger = LedgerService(session, self.clock)

    # ------------------------------------------------------------------
    # Computation
    # ------------------------------------------------------------------

    async def compute(self, payroll_period_id: UUID) -> PeriodComputationResult:
        """Compute all employees; approved or paid entries are left as they are."""
        return await self._run(payroll_period_id, recompute=False, force=False)

    async def recompute(
        self, payroll_period_id: UUID, force: bool = False
    ) -> PeriodComputationResult:
        """Replace draft/reviewed entries; voided entries only with ``force``."""
        return await self._run(payroll_period_id, recompute=True, force=force)

    async def _run(
        self, payroll_period_id: UUID, recompute: bool, force: bool
    ) -> PeriodComputationResult:
        period = await self.get_period(payroll_period_id)

        async with self.locks.hold(payroll_period_id, self.session):
            if period.status == PayrollPeriodStatus.COMPUTING:
                raise ComputationInProgress(payroll_period_id)
            if not PayrollPeriodStateMachine.can_compute(period.status):
                raise InvalidTransitionError(
                    period.status,
                    PayrollPeriodStatus.COMPUTING,
                    "period is not open for computation",
                )

            existing = await self._existing_entries(payroll_period_id)
            # Rejected before anything is written
            replaceable = {
                employee_id: self._may_replace(entry, recompute, force)
                for employee_id, entry in existing.items()
            }
            resolver = await self._load_resolver()
            employees = await self._employees_for(period)

            previous_status = PayrollPeriodStatus(period.status)
            self._transition_period(period, PayrollPeriodStatus.COMPUTING)
            await self.session.flush()

            result = PeriodComputationResult(payroll_period_id=payroll_period_id)
            pending: dict[UUID, EmployeePayInput] = {}
            for employee in employees:
                employee_id = employee.employee_id
                if employee_id in existing and not replaceable[employee_id]:
                    result.skipped.append(employee_id)
                    result.entries[employee_id] = existing[employee_id]
                    continue
                try:
                    pending[employee_id] = await self._build_input(period, employee)
                except PayrollEngineError as e:
                    logger.warning("Employee %s not computed: %s", employee_id, e)
                    result.errors[employee_id] = e

            calculator = PayrollCalculator(resolver, self.settings.engine_version)
            computations = await self._calculate_all(calculator, pending)

            blocking = [o for o in computations.values() if isinstance(o, ConfigurationError)]
            if blocking:
                self._transition_period(period, previous_status)
                await self.session.flush()
                logger.error(
                    "Computation of period %s blocked: %s", payroll_period_id, blocking[0]
                )
                raise blocking[0]

            for employee_id, outcome in computations.items():
                if isinstance(outcome, Exception):
                    result.errors[employee_id] = outcome
                    continue
                result.entries[employee_id] = await self._persist(
                    period, existing.get(employee_id), outcome
                )

            await self._update_period_totals(period)
            self._transition_period(period, PayrollPeriodStatus.COMPUTED)
            period.computed_at = self.clock.now()
            await self.session.flush()

        logger.info(
            "Computed period %s: %d entries, %d skipped, %d errors",
            payroll_period_id,
            len(result.entries) - len(result.skipped),
            len(result.skipped),
            result.error_count,
        )
        return result

    @staticmethod
    def _may_replace(entry: PayrollEntry, recompute: bool, force: bool) -> bool:
        """Whether a run may overwrite ``entry``; raises when recompute must not proceed."""
        if PayrollEntryStateMachine.is_replaceable(entry.status):
            return True
        if not recompute:
            return False
        if entry.status == PayrollEntryStatus.VOIDED:
            if force:
                return True
            raise CannotRecomputeApprovedEntry(
                entry, "voided entries are replaced only by a forced recompute"
            )
        raise CannotRecomputeApprovedEntry(entry, "void the entry before a forced recompute")

    async def _calculate_all(
        self, calculator: PayrollCalculator, pending: dict[UUID, EmployeePayInput]
    ) -> dict[UUID, PayrollComputation | Exception]:
        if not pending:
            return {}
        loop = asyncio.get_running_loop()
        with ThreadPoolExecutor(max_workers=self.settings.max_workers) as pool:
            futures = [
                loop.run_in_executor(pool, self._safe_calculate, calculator, pay_input)
                for pay_input in pending.values()
            ]
            outcomes = await asyncio.gather(*futures)
        return dict(zip(pending.keys(), outcomes))

    @staticmethod
    def _safe_calculate(
        calculator: PayrollCalculator, pay_input: EmployeePayInput
    ) -> PayrollComputation | Exception:
        try:
            return calculator.calculate(pay_input)
        except PayrollEngineError as e:
            logger.warning("Employee %s not computed: %s", pay_input.employee_id, e)
            return e
        except Exception as e:
            logger.exception("Unexpected error computing employee %s", pay_input.employee_id)
            return e

    async def _persist(
        self,
        period: PayrollPeriod,
        entry: PayrollEntry | None,
        computation: PayrollComputation,
    ) -> PayrollEntry:
        if entry is None:
            entry = PayrollEntry(
                payroll_period_id=period.payroll_period_id,
                employee_id=computation.employee_id,
            )
            self.session.add(entry)
        else:
            if entry.status == PayrollEntryStatus.VOIDED:
                PayrollEntryStateMachine.validate_transition(entry.status, PayrollEntryStatus.DRAFT)
            await self.session.execute(
                delete(PayrollLineItem).where(PayrollLineItem.entry_id == entry.entry_id)
            )
            entry.voided_at = None
            entry.void_reason = None
            entry.reviewed_at = None
            entry.approved_at = None
            entry.approved_by = None

        breakdown = computation.breakdown
        attendance = computation.attendance
        entry.status = PayrollEntryStatus.DRAFT.value
        entry.calculation_id = computation.calculation_id
        entry.inputs_fingerprint = computation.inputs_fingerprint
        entry.rules_fingerprint = computation.rules_fingerprint
        entry.days_worked = attendance.days_worked
        entry.absent_days = attendance.absent_days
        entry.leave_days = attendance.leave_days
        entry.holiday_days = attendance.holiday_days
        entry.late_minutes = attendance.late_minutes
        entry.undertime_minutes = attendance.undertime_minutes
        entry.overtime_minutes = attendance.overtime_minutes
        entry.night_differential_minutes = attendance.night_differential_minutes
        entry.basic_pay = breakdown.basic_pay
        entry.overtime_pay = breakdown.overtime_pay
        entry.night_differential_pay = breakdown.night_differential_pay
        entry.holiday_pay = breakdown.holiday_pay
        entry.allowances = breakdown.allowances
        entry.bonuses = breakdown.bonuses
        entry.gross_pay = computation.gross_pay
        entry.taxable_income = computation.taxable_income
        entry.sss_employee = breakdown.sss_employee
        entry.philhealth_employee = breakdown.philhealth_employee
        entry.pagibig_employee = breakdown.pagibig_employee
        entry.withholding_tax = breakdown.withholding_tax
        entry.loan_deductions = breakdown.loan_deductions
        entry.other_deductions = breakdown.other_deductions
        entry.total_deductions = computation.total_deductions
        entry.sss_employer = breakdown.sss_employer
        entry.philhealth_employer = breakdown.philhealth_employer
        entry.pagibig_employer = breakdown.pagibig_employer
        entry.net_pay = computation.net_pay
        entry.computed_at = self.clock.now()
        await self.session.flush()

        for sequence, line in enumerate(computation.lines, start=1):
            self.session.add(
                PayrollLineItem(
                    entry_id=entry.entry_id,
                    sequence=sequence,
                    line_type=line.line_type.value,
                    code=line.code,
                    amount=line.amount,
                    quantity=line.quantity,
                    rate=line.rate,
                    source_id=line.source_id,
                    explanation=line.explanation,
                    is_taxable=line.is_taxable,
                    line_hash=LineItemBuilder.compute_line_hash(line),
                )
            )
        await self.session.flush()
        return entry

    async def _update_period_totals(self, period: PayrollPeriod) -> None:
        result = await self.session.execute(
            select(
                func.count(PayrollEntry.entry_id),
                func.coalesce(func.sum(PayrollEntry.gross_pay), 0),
                func.coalesce(func.sum(PayrollEntry.total_deductions), 0),
                func.coalesce(func.sum(PayrollEntry.net_pay), 0),
            ).where(
                PayrollEntry.payroll_period_id == period.payroll_period_id,
                PayrollEntry.status != PayrollEntryStatus.VOIDED.value,
            )
        )
        count, gross, deductions, net = result.one()
        period.employee_count = count
        period.total_gross = LineItemBuilder.round_to_cents(Decimal(str(gross)))
        period.total_deductions = LineItemBuilder.round_to_cents(Decimal(str(deductions)))
        period.total_net = LineItemBuilder.round_to_cents(Decimal(str(net)))

    # ------------------------------------------------------------------
    # Input loading
    # ------------------------------------------------------------------

    async def _load_resolver(self) -> ContributionTableResolver:
        tables = (await self.session.execute(select(ContributionTable))).scalars().all()
        rows = (await self.session.execute(select(ContributionBracketRow))).scalars().all()
        by_table: dict[UUID, list[ContributionBracketRow]] = {}
        for row in rows:
            by_table.setdefault(row.table_id, []).append(row)

        resolver = ContributionTableResolver()
        for table in tables:
            resolver.add(build_version(table, by_table.get(table.table_id, [])))
        return resolver

    async def _existing_entries(self, payroll_period_id: UUID) -> dict[UUID, PayrollEntry]:
        result = await self.session.execute(
            select(PayrollEntry).where(PayrollEntry.payroll_period_id == payroll_period_id)
        )
        return {e.employee_id: e for e in result.scalars().all()}

    async def _employees_for(self, period: PayrollPeriod) -> list[Employee]:
        result = await self.session.execute(
            select(Employee)
            .where(
                Employee.status == "active",
                Employee.hired_on <= period.end_date,
                (Employee.separated_on.is_(None)) | (Employee.separated_on >= period.start_date),
            )
            .order_by(Employee.employee_number)
        )
        return list(result.scalars().all())

    async def _build_input(self, period: PayrollPeriod, employee: Employee) -> EmployeePayInput:
        employee_id = employee.employee_id
        compensation = (
            await self.session.execute(
                select(EmployeeCompensation)
                .where(
                    EmployeeCompensation.employee_id == employee_id,
                    EmployeeCompensation.effective_date <= period.end_date,
                )
                .order_by(EmployeeCompensation.effective_date.desc())
                .limit(1)
            )
        ).scalar_one_or_none()
        if compensation is None:
            raise MissingCompensation(
                f"Employee {employee_id} has no compensation effective by {period.end_date}",
                employee_id=employee_id,
                payroll_period_id=period.payroll_period_id,
            )

        cycle_type = CycleType(period.cycle_type)
        dtrs = []
        schedules = {}
        if cycle_type != CycleType.SUPPLEMENTAL:
            rows = (
                await self.session.execute(
                    select(DailyTimeRecord)
                    .where(
                        DailyTimeRecord.employee_id == employee_id,
                        DailyTimeRecord.work_date >= period.start_date,
                        DailyTimeRecord.work_date <= period.end_date,
                    )
                    .order_by(DailyTimeRecord.work_date)
                )
            ).scalars().all()
            dtrs = [row.to_snapshot() for row in rows]
            schedule_ids = {d.schedule_id for d in dtrs if d.schedule_id}
            if schedule_ids:
                versions = (
                    await self.session.execute(
                        select(ScheduleVersion).where(ScheduleVersion.schedule_id.in_(schedule_ids))
                    )
                ).scalars().all()
                schedules = {v.schedule_id: v.to_domain() for v in versions}

        adjustments = (
            await self.session.execute(
                select(EmployeeAdjustment).where(
                    EmployeeAdjustment.employee_id == employee_id,
                    EmployeeAdjustment.status == LedgerStatus.ACTIVE.value,
                )
            )
        ).scalars().all()
        applicable = [
            a.to_input()
            for a in adjustments
            if a.terms().applies_to(period.payroll_period_id, period.start_date, period.end_date)
        ]

        loans = (
            await self.session.execute(
                select(EmployeeLoan).where(
                    EmployeeLoan.employee_id == employee_id,
                    EmployeeLoan.status == LedgerStatus.ACTIVE.value,
                )
            )
        ).scalars().all()
        deductible = [
            loan.to_input()
            for loan in loans
            if is_loan_deductible(LedgerStatus(loan.status), Decimal(loan.remaining_balance))
        ]

        return EmployeePayInput(
            employee_id=employee_id,
            payroll_period_id=period.payroll_period_id,
            cycle_type=cycle_type,
            period_number=period.period_number,
            period_start=period.start_date,
            period_end=period.end_date,
            compensation=compensation.to_input(),
            dtrs=dtrs,
            schedules=schedules,
            adjustments=applicable,
            loans=deductible if cycle_type != CycleType.SUPPLEMENTAL else [],
            tax_method=self.tax_method,
            year_to_date=await self._year_to_date(employee_id, period),
        )

    async def _year_to_date(self, employee_id: UUID, period: PayrollPeriod) -> YearToDate:
        year_start = date(period.end_date.year, 1, 1)
        result = await self.session.execute(
            select(
                func.count(PayrollEntry.entry_id),
                func.coalesce(func.sum(PayrollEntry.taxable_income), 0),
                func.coalesce(func.sum(PayrollEntry.withholding_tax), 0),
            )
            .join(
                PayrollPeriod,
                PayrollPeriod.payroll_period_id == PayrollEntry.payroll_period_id,
            )
            .where(
                PayrollEntry.employee_id == employee_id,
                PayrollEntry.payroll_period_id != period.payroll_period_id,
                PayrollEntry.status.in_(
                    [PayrollEntryStatus.APPROVED.value, PayrollEntryStatus.PAID.value]
                ),
                PayrollPeriod.end_date >= year_start,
                PayrollPeriod.end_date < period.start_date,
                PayrollPeriod.cycle_type != CycleType.SUPPLEMENTAL.value,
            )
        )
        count, taxable, withheld = result.one()
        return YearToDate(
            taxable_income=LineItemBuilder.round_to_cents(Decimal(str(taxable))),
            tax_withheld=LineItemBuilder.round_to_cents(Decimal(str(withheld))),
            periods=count,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def get_period(self, payroll_period_id: UUID) -> PayrollPeriod:
        period = await self.session.get(PayrollPeriod, payroll_period_id)
        if period is None:
            raise RecordNotFoundError("Payroll period", payroll_period_id)
        return period

    async def get_entry(self, entry_id: UUID) -> PayrollEntry:
        entry = await self.session.get(PayrollEntry, entry_id)
        if entry is None:
            raise RecordNotFoundError("Payroll entry", entry_id)
        return entry

    async def get_entry_lines(self, entry_id: UUID) -> list[PayrollLineItem]:
        result = await self.session.execute(
            select(PayrollLineItem)
            .where(PayrollLineItem.entry_id == entry_id)
            .order_by(PayrollLineItem.sequence)
        )
        return list(result.scalars().all())

    async def generate_periods(
        self,
        cycle_type: CycleType,
        year: int,
        adjustment: PayDayAdjustment = PayDayAdjustment.BEFORE,
    ) -> list[PayrollPeriod]:
        """Create the draft periods of ``year``; periods that already exist are kept."""
        definitions = generate_periods(cycle_type, year, adjustment)
        result = await self.session.execute(
            select(PayrollPeriod.start_date).where(
                PayrollPeriod.cycle_type == CycleType(cycle_type).value,
                PayrollPeriod.start_date >= definitions[0].start_date,
                PayrollPeriod.start_date <= definitions[-1].start_date,
            )
        )
        existing = set(result.scalars().all())

        created = []
        for definition in definitions:
            if definition.start_date in existing:
                continue
            period = PayrollPeriod(
                name=definition.name,
                cycle_type=definition.cycle_type.value,
                period_number=definition.period_number,
                start_date=definition.start_date,
                end_date=definition.end_date,
                pay_date=definition.pay_date,
                status=PayrollPeriodStatus.DRAFT.value,
            )
            self.session.add(period)
            created.append(period)
        await self.session.flush()

        logger.info(
            "Generated %d %s period(s) for %d (%d already existed)",
            len(created),
            CycleType(cycle_type).value,
            year,
            len(definitions) - len(created),
        )
        return created

    async def find_period_for_date(
        self, cycle_type: CycleType, day: date
    ) -> PayrollPeriod | None:
        result = await self.session.execute(
            select(PayrollPeriod)
            .where(
                PayrollPeriod.cycle_type == CycleType(cycle_type).value,
                PayrollPeriod.start_date <= day,
                PayrollPeriod.end_date >= day,
            )
            .order_by(PayrollPeriod.start_date)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def current_open_period(self, cycle_type: CycleType) -> PayrollPeriod | None:
        """The latest open period of a cycle, if any."""
        result = await self.session.execute(
            select(PayrollPeriod)
            .where(
                PayrollPeriod.cycle_type == CycleType(cycle_type).value,
                PayrollPeriod.status == PayrollPeriodStatus.OPEN.value,
            )
            .order_by(PayrollPeriod.start_date.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def open_period(self, payroll_period_id: UUID) -> PayrollPeriod:
        period = await self.get_period(payroll_period_id)
        self._transition_period(period, PayrollPeriodStatus.OPEN)
        await self.session.flush()
        return period

    async def review_entry(self, entry_id: UUID) -> PayrollEntry:
        entry = await self.get_entry(entry_id)
        PayrollEntryStateMachine.validate_transition(entry.status, PayrollEntryStatus.REVIEWED)
        entry.status = PayrollEntryStatus.REVIEWED.value
        entry.reviewed_at = self.clock.now()
        await self.session.flush()
        return entry

    async def approve_entry(self, entry_id: UUID, approved_by: str | None = None) -> PayrollEntry:
        """Approve an entry and post its loan and adjustment deductions."""
        entry = await self.get_entry(entry_id)
        period = await self.get_period(entry.payroll_period_id)
        if period.status != PayrollPeriodStatus.COMPUTED:
            raise InvalidTransitionError(
                entry.status, PayrollEntryStatus.APPROVED, f"period is {period.status}"
            )
        PayrollEntryStateMachine.validate_transition(entry.status, PayrollEntryStatus.APPROVED)

        await self.ledger.apply_entry(entry, period.end_date)
        entry.status = PayrollEntryStatus.APPROVED.value
        entry.approved_at = self.clock.now()
        entry.approved_by = approved_by
        await self.session.flush()
        logger.info("Approved payroll entry %s (net %s)", entry_id, entry.net_pay)
        return entry

    async def void_entry(self, entry_id: UUID, reason: str) -> PayrollEntry:
        """Void an approved entry, reversing its ledger postings."""
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to void an entry", entry_id=entry_id)
        entry = await self.get_entry(entry_id)
        period = await self.get_period(entry.payroll_period_id)
        if period.status != PayrollPeriodStatus.COMPUTED:
            raise InvalidTransitionError(
                entry.status, PayrollEntryStatus.VOIDED, f"period is {period.status}"
            )
        PayrollEntryStateMachine.validate_transition(entry.status, PayrollEntryStatus.VOIDED)

        await self.ledger.reverse_entry(entry, period.end_date)
        entry.status = PayrollEntryStatus.VOIDED.value
        entry.voided_at = self.clock.now()
        entry.void_reason = reason
        await self.session.flush()
        await self._update_period_totals(period)
        await self.session.flush()
        logger.info("Voided payroll entry %s: %s", entry_id, reason)
        return entry

    async def approve_period(self, payroll_period_id: UUID) -> PayrollPeriod:
        period = await self.get_period(payroll_period_id)
        entries = list((await self._existing_entries(payroll_period_id)).values())
        errors = PayrollPeriodStateMachine.validate_period_for_transition(
            period, entries, PayrollPeriodStatus.APPROVED
        )
        if errors:
            raise InvalidTransitionError(
                period.status, PayrollPeriodStatus.APPROVED, "; ".join(errors)
            )
        self._transition_period(period, PayrollPeriodStatus.APPROVED)
        period.approved_at = self.clock.now()
        await self.session.flush()
        return period

    async def mark_period_paid(self, payroll_period_id: UUID) -> PayrollPeriod:
        period = await self.get_period(payroll_period_id)
        entries = list((await self._existing_entries(payroll_period_id)).values())
        errors = PayrollPeriodStateMachine.validate_period_for_transition(
            period, entries, PayrollPeriodStatus.PAID
        )
        if errors:
            raise InvalidTransitionError(period.status, PayrollPeriodStatus.PAID, "; ".join(errors))

        now = self.clock.now()
        for entry in entries:
            if entry.status == PayrollEntryStatus.APPROVED:
                PayrollEntryStateMachine.validate_transition(entry.status, PayrollEntryStatus.PAID)
                entry.status = PayrollEntryStatus.PAID.value
                entry.paid_at = now
        self._transition_period(period, PayrollPeriodStatus.PAID)
        period.paid_at = now
        await self.session.flush()
        return period

    async def close_period(self, payroll_period_id: UUID) -> PayrollPeriod:
        period = await self.get_period(payroll_period_id)
        self._transition_period(period, PayrollPeriodStatus.CLOSED)
        period.closed_at = self.clock.now()
        await self.session.flush()
        return period

    @staticmethod
    def _transition_period(period: PayrollPeriod, to_status: PayrollPeriodStatus) -> None:
        PayrollPeriodStateMachine.validate_transition(period.status, to_status)
        period.status = to_status.value
