"""SQLAlchemy ORM models."""

from dtr_payroll.models.attendance import AttendanceLog, DailyTimeRecord, DtrEventRecord
from dtr_payroll.models.base import Base, TimestampMixin
from dtr_payroll.models.contribution import (
    ContributionBracketRow,
    ContributionTable,
    build_version,
)
from dtr_payroll.models.employee import Employee, EmployeeCompensation, LeaveApproval
from dtr_payroll.models.ledger import (
    AdjustmentApplication,
    EmployeeAdjustment,
    EmployeeLoan,
    LoanPayment,
)
from dtr_payroll.models.payroll import PayrollEntry, PayrollLineItem, PayrollPeriod
from dtr_payroll.models.schedule import (
    EmployeeScheduleAssignment,
    HolidayEntry,
    ScheduleVersion,
)

__all__ = [
    "AdjustmentApplication",
    "AttendanceLog",
    "Base",
    "ContributionBracketRow",
    "ContributionTable",
    "DailyTimeRecord",
    "DtrEventRecord",
    "Employee",
    "EmployeeAdjustment",
    "EmployeeCompensation",
    "EmployeeLoan",
    "EmployeeScheduleAssignment",
    "HolidayEntry",
    "LeaveApproval",
    "LoanPayment",
    "PayrollEntry",
    "PayrollLineItem",
    "PayrollPeriod",
    "ScheduleVersion",
    "TimestampMixin",
    "build_version",
]
