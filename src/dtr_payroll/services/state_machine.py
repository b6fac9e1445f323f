"""Payroll period and entry state machines with transition validation."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from dtr_payroll.errors import StateError

if TYPE_CHECKING:
    from dtr_payroll.models import PayrollEntry, PayrollPeriod


class PayrollPeriodStatus(str, Enum):
    """Payroll period status values."""

    DRAFT = "draft"
    OPEN = "open"
    COMPUTING = "computing"
    COMPUTED = "computed"
    APPROVED = "approved"
    PAID = "paid"
    CLOSED = "closed"


class PayrollEntryStatus(str, Enum):
    """Payroll entry status values."""

    DRAFT = "draft"
    REVIEWED = "reviewed"
    APPROVED = "approved"
    PAID = "paid"
    VOIDED = "voided"


class InvalidTransitionError(StateError):
    """Raised when an invalid state transition is attempted."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = str(getattr(from_status, "value", from_status))
        self.to_status = str(getattr(to_status, "value", to_status))
        self.reason = reason
        msg = f"Invalid transition from '{self.from_status}' to '{self.to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, from_status=self.from_status, to_status=self.to_status)


class PayrollPeriodStateMachine:
    """State machine for payroll period status transitions.

    Allowed transitions:
    - draft → open
    - open → computing
    - computing → computed
    - computing → open (run aborted before any entry was written)
    - computed → computing (recompute)
    - computed → approved
    - approved → paid
    - paid → closed
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PayrollPeriodStatus.DRAFT: [PayrollPeriodStatus.OPEN],
        PayrollPeriodStatus.OPEN: [PayrollPeriodStatus.COMPUTING],
        PayrollPeriodStatus.COMPUTING: [PayrollPeriodStatus.COMPUTED, PayrollPeriodStatus.OPEN],
        PayrollPeriodStatus.COMPUTED: [PayrollPeriodStatus.COMPUTING, PayrollPeriodStatus.APPROVED],
        PayrollPeriodStatus.APPROVED: [PayrollPeriodStatus.PAID],
        PayrollPeriodStatus.PAID: [PayrollPeriodStatus.CLOSED],
        PayrollPeriodStatus.CLOSED: [],  # Terminal state
    }

    # Statuses from which a computation run may start
    COMPUTATION_ALLOWED = {
        PayrollPeriodStatus.OPEN,
        PayrollPeriodStatus.COMPUTED,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(PayrollPeriodStatus(from_status), [])
        return PayrollPeriodStatus(to_status) in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def can_compute(cls, status: str) -> bool:
        return PayrollPeriodStatus(status) in cls.COMPUTATION_ALLOWED

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(PayrollPeriodStatus(current_status), [])

    @classmethod
    def validate_period_for_transition(
        cls, period: PayrollPeriod, entries: list[PayrollEntry], to_status: str
    ) -> list[str]:
        """Validate a period for a specific transition, returning any errors."""
        errors: list[str] = []
        from_status = period.status

        if not cls.can_transition(from_status, to_status):
            errors.append(f"Cannot transition from '{from_status}' to '{to_status}'")
            return errors

        live = [e for e in entries if e.status != PayrollEntryStatus.VOIDED]
        if to_status == PayrollPeriodStatus.APPROVED:
            if not live:
                errors.append("Payroll period has no entries")
            pending = [e for e in live if e.status != PayrollEntryStatus.APPROVED]
            if pending:
                errors.append(f"{len(pending)} entr(ies) not yet approved")

        elif to_status == PayrollPeriodStatus.PAID:
            unpaid = [e for e in live if e.status != PayrollEntryStatus.APPROVED]
            if unpaid:
                errors.append(f"{len(unpaid)} entr(ies) are not approved")

        return errors


class PayrollEntryStateMachine:
    """State machine for payroll entry status transitions.

    Allowed transitions:
    - draft → reviewed
    - draft → approved
    - reviewed → approved
    - approved → paid
    - approved → voided
    - voided is replaced by a forced recompute (new draft)
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PayrollEntryStatus.DRAFT: [PayrollEntryStatus.REVIEWED, PayrollEntryStatus.APPROVED],
        PayrollEntryStatus.REVIEWED: [PayrollEntryStatus.APPROVED],
        PayrollEntryStatus.APPROVED: [PayrollEntryStatus.PAID, PayrollEntryStatus.VOIDED],
        PayrollEntryStatus.PAID: [],  # Corrections go through a supplemental period
        PayrollEntryStatus.VOIDED: [PayrollEntryStatus.DRAFT],
    }

    # Statuses whose entry may be replaced by recompute without ceremony
    REPLACEABLE = {
        PayrollEntryStatus.DRAFT,
        PayrollEntryStatus.REVIEWED,
    }

    # Statuses whose amounts have hit ledgers
    RESULTS_IMMUTABLE = {
        PayrollEntryStatus.APPROVED,
        PayrollEntryStatus.PAID,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        allowed = cls.VALID_TRANSITIONS.get(PayrollEntryStatus(from_status), [])
        return PayrollEntryStatus(to_status) in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def is_replaceable(cls, status: str) -> bool:
        return PayrollEntryStatus(status) in cls.REPLACEABLE

    @classmethod
    def are_results_immutable(cls, status: str) -> bool:
        return PayrollEntryStatus(status) in cls.RESULTS_IMMUTABLE
