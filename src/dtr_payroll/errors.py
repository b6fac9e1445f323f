"""Error taxonomy for the DTR payroll engine.

Four families, each carrying a ``context`` dict naming the employee, date,
period or field involved:

- ConfigurationError: reference data is missing or malformed
  (contribution tables, schedules, assignments).
- DataIntegrityError: inputs exist but cannot be consumed as they are
  (unresolved DTRs, missing compensation, negative net pay).
- StateError: an action is not allowed in the record's current state.
- ValidationError: a caller-supplied value is malformed.

Concrete errors live next to the code that raises them and subclass one of
these families.
"""

from __future__ import annotations

from typing import Any


class PayrollEngineError(Exception):
    """Base class for all engine errors."""

    code: str = "PAYROLL_ENGINE_ERROR"

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context = context
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "context": {k: str(v) for k, v in self.context.items()},
        }


class ConfigurationError(PayrollEngineError):
    code = "CONFIGURATION_ERROR"


class DataIntegrityError(PayrollEngineError):
    code = "DATA_INTEGRITY_ERROR"


class StateError(PayrollEngineError):
    code = "STATE_ERROR"


class ValidationError(PayrollEngineError):
    code = "VALIDATION_ERROR"


class RecordNotFoundError(DataIntegrityError):
    """Raised when a referenced record does not exist."""

    code = "RECORD_NOT_FOUND"

    def __init__(self, kind: str, record_id: Any):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} {record_id} not found", kind=kind, record_id=record_id)
