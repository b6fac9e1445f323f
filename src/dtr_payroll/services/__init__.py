"""Services for attendance classification, payroll computation and ledgers."""

from dtr_payroll.services.attendance_service import AttendanceService, ClassificationResult
from dtr_payroll.services.ledger_service import LedgerService
from dtr_payroll.services.locking_service import (
    ComputationInProgress,
    LoanLockRegistry,
    PeriodLockRegistry,
)
from dtr_payroll.services.payroll_service import (
    CannotRecomputeApprovedEntry,
    MissingCompensation,
    PayrollComputationService,
    PeriodComputationResult,
)
from dtr_payroll.services.state_machine import (
    InvalidTransitionError,
    PayrollEntryStateMachine,
    PayrollEntryStatus,
    PayrollPeriodStateMachine,
    PayrollPeriodStatus,
)

__all__ = [
    "AttendanceService",
    "CannotRecomputeApprovedEntry",
    "ClassificationResult",
    "ComputationInProgress",
    "InvalidTransitionError",
    "LedgerService",
    "LoanLockRegistry",
    "MissingCompensation",
    "PayrollComputationService",
    "PayrollEntryStateMachine",
    "PayrollEntryStatus",
    "PayrollPeriodStateMachine",
    "PayrollPeriodStatus",
    "PeriodComputationResult",
    "PeriodLockRegistry",
]
