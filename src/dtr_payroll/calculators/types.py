"""Type definitions for the classification and payroll pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class ScheduleType(str, Enum):
    """Work schedule kinds."""

    FIXED = "fixed"
    FLEXIBLE = "flexible"
    SHIFTING = "shifting"
    COMPRESSED = "compressed"


class DtrStatus(str, Enum):
    """Daily time record status values."""

    PRESENT = "present"
    ABSENT = "absent"
    ON_LEAVE = "on_leave"
    HOLIDAY = "holiday"
    REST_DAY = "rest_day"


class HolidayType(str, Enum):
    REGULAR = "regular"
    SPECIAL = "special"


class PunchDirection(str, Enum):
    IN = "in"
    OUT = "out"


class ContributionType(str, Enum):
    """Statutory contribution and tax tables."""

    SSS = "sss"
    PHILHEALTH = "philhealth"
    PAGIBIG = "pagibig"
    WITHHOLDING_TAX = "withholding_tax"


class RateBasis(str, Enum):
    """What a bracket's rate is multiplied by."""

    COMPENSATION = "compensation"
    EXCESS_OVER_MIN = "excess_over_min"


class TaxMethod(str, Enum):
    """Withholding tax computation methods (configured per tenant)."""

    BRACKET = "bracket"
    CUMULATIVE_AVERAGE = "cumulative_average"


class CycleType(str, Enum):
    """Payroll period cycle."""

    SEMI_MONTHLY = "semi_monthly"
    MONTHLY = "monthly"
    SUPPLEMENTAL = "supplemental"


class PayType(str, Enum):
    """How an employee's basic pay is expressed."""

    MONTHLY = "monthly"
    SEMI_MONTHLY = "semi_monthly"
    WEEKLY = "weekly"
    DAILY = "daily"


class LineType(str, Enum):
    """Payroll line item types."""

    EARNING = "EARNING"
    EARNING_REDUCTION = "EARNING_REDUCTION"
    CONTRIBUTION = "CONTRIBUTION"
    TAX = "TAX"
    LOAN = "LOAN"
    DEDUCTION = "DEDUCTION"
    EMPLOYER_CONTRIBUTION = "EMPLOYER_CONTRIBUTION"


class LedgerStatus(str, Enum):
    """Lifecycle of loans and adjustments."""

    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AdjustmentCategory(str, Enum):
    EARNING = "earning"
    DEDUCTION = "deduction"


class AdjustmentKind(str, Enum):
    """Where an adjustment lands on the payslip."""

    ALLOWANCE = "allowance"
    BONUS = "bonus"
    DEDUCTION = "deduction"


class AdjustmentFrequency(str, Enum):
    ONE_TIME = "one_time"
    RECURRING = "recurring"


class PaymentSource(str, Enum):
    PAYROLL = "payroll"
    MANUAL = "manual"
    REVERSAL = "reversal"


@dataclass(frozen=True)
class Punch:
    """A single raw attendance scan."""

    timestamp: datetime
    direction: PunchDirection | None = None
    source: str = "device"

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "direction": self.direction.value if self.direction else None,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Punch:
        direction = data.get("direction")
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            direction=PunchDirection(direction) if direction else None,
            source=data.get("source", "device"),
        )


@dataclass(frozen=True)
class Holiday:
    holiday_date: date
    name: str
    holiday_type: HolidayType


class HolidayCalendar:
    """Lookup of holidays by date."""

    def __init__(self, holidays: list[Holiday] | None = None):
        self._by_date = {h.holiday_date: h for h in holidays or []}

    def lookup(self, day: date) -> Holiday | None:
        return self._by_date.get(day)

    def __len__(self) -> int:
        return len(self._by_date)


@dataclass(frozen=True)
class DtrSnapshot:
    """Current view of one employee-day.

    Produced by the time classifier and evolved only by folding review
    events over it.
    """

    employee_id: UUID
    work_date: date
    status: DtrStatus
    schedule_id: UUID | None = None
    shift_name: str | None = None
    first_in: datetime | None = None
    last_out: datetime | None = None
    punches: tuple[Punch, ...] = ()
    total_work_minutes: int = 0
    total_break_minutes: int = 0
    late_minutes: int = 0
    undertime_minutes: int = 0
    overtime_minutes: int = 0
    overtime_approved: bool = False
    overtime_denied: bool = False
    night_differential_minutes: int = 0
    overtime_night_minutes: int = 0
    holiday_type: HolidayType | None = None
    holiday_name: str | None = None
    needs_review: bool = False
    review_reason: str | None = None
    remarks: str | None = None

    @property
    def payable_overtime_minutes(self) -> int:
        """Overtime that payroll may pay (approved only)."""
        return self.overtime_minutes if self.overtime_approved else 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["employee_id"] = str(self.employee_id)
        data["work_date"] = self.work_date.isoformat()
        data["status"] = self.status.value
        data["schedule_id"] = str(self.schedule_id) if self.schedule_id else None
        data["first_in"] = self.first_in.isoformat() if self.first_in else None
        data["last_out"] = self.last_out.isoformat() if self.last_out else None
        data["punches"] = [p.to_dict() for p in self.punches]
        data["holiday_type"] = self.holiday_type.value if self.holiday_type else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DtrSnapshot:
        values = dict(data)
        values["employee_id"] = UUID(values["employee_id"])
        values["work_date"] = date.fromisoformat(values["work_date"])
        values["status"] = DtrStatus(values["status"])
        if values.get("schedule_id"):
            values["schedule_id"] = UUID(values["schedule_id"])
        for key in ("first_in", "last_out"):
            if values.get(key):
                values[key] = datetime.fromisoformat(values[key])
        values["punches"] = tuple(Punch.from_dict(p) for p in values.get("punches", []))
        if values.get("holiday_type"):
            values["holiday_type"] = HolidayType(values["holiday_type"])
        return cls(**values)


@dataclass
class LineCandidate:
    """A candidate payroll line before persistence."""

    line_type: LineType
    code: str
    amount: Decimal  # Final amount (signed per conventions)
    quantity: Decimal | None = None
    rate: Decimal | None = None
    source_id: str | None = None
    explanation: str | None = None
    is_taxable: bool = True

    def to_canonical_dict(self) -> dict[str, Any]:
        """Return canonical dict for hashing (deterministic ordering)."""
        return {
            "line_type": self.line_type.value,
            "code": self.code,
            "source_id": self.source_id,
            "quantity": str(self.quantity) if self.quantity is not None else None,
            "rate": str(self.rate) if self.rate is not None else None,
            "amount": str(self.amount),
            "is_taxable": self.is_taxable,
        }


@dataclass(frozen=True)
class ContributionAmounts:
    """Resolved employee/employer shares for one table."""

    table_type: ContributionType
    employee_share: Decimal
    employer_share: Decimal
    table_version_id: UUID | None = None
    salary_credit: Decimal | None = None


@dataclass(frozen=True)
class CompensationInput:
    basic_pay: Decimal
    pay_type: PayType


@dataclass(frozen=True)
class AdjustmentInput:
    """An adjustment already filtered to the period being computed."""

    adjustment_id: UUID
    category: AdjustmentCategory
    kind: AdjustmentKind
    name: str
    amount: Decimal
    is_taxable: bool = True
    remaining_balance: Decimal | None = None


@dataclass(frozen=True)
class LoanInput:
    loan_id: UUID
    loan_type: str
    installment_amount: Decimal
    remaining_balance: Decimal


@dataclass(frozen=True)
class YearToDate:
    """Prior approved figures within the tax year."""

    taxable_income: Decimal = Decimal("0")
    tax_withheld: Decimal = Decimal("0")
    periods: int = 0


@dataclass
class EmployeePayInput:
    """Everything the calculator needs for one employee and period."""

    employee_id: UUID
    payroll_period_id: UUID
    cycle_type: CycleType
    period_number: int
    period_start: date
    period_end: date
    compensation: CompensationInput
    dtrs: list[DtrSnapshot] = field(default_factory=list)
    schedules: dict[UUID, Any] = field(default_factory=dict)  # schedule_id -> WorkSchedule
    adjustments: list[AdjustmentInput] = field(default_factory=list)
    loans: list[LoanInput] = field(default_factory=list)
    tax_method: TaxMethod = TaxMethod.BRACKET
    year_to_date: YearToDate = field(default_factory=YearToDate)
