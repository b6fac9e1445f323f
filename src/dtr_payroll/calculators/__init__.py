"""Pure calculation core: schedules, classification, review and payroll."""

from dtr_payroll.calculators.contribution_resolver import ContributionTableResolver
from dtr_payroll.calculators.dtr_review import DtrReviewResolver
from dtr_payroll.calculators.engine import PayrollCalculator
from dtr_payroll.calculators.line_builder import LineItemBuilder
from dtr_payroll.calculators.time_classifier import TimeClassifier

__all__ = [
    "ContributionTableResolver",
    "DtrReviewResolver",
    "LineItemBuilder",
    "PayrollCalculator",
    "TimeClassifier",
]
