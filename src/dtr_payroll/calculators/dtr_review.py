"""DTR review resolution as an append-only event log.

Every change to a daily time record after classification is an immutable
``DtrEvent``. The current view of a record is the fold of its events, so the
log doubles as the audit trail: who resolved what, when, and why.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Iterable

from dtr_payroll.calculators.schedule import DEFAULT_REQUIRED_MINUTES, WorkSchedule
from dtr_payroll.calculators.time_classifier import TimeClassifier
from dtr_payroll.calculators.types import DtrSnapshot, DtrStatus, HolidayCalendar
from dtr_payroll.clock import Clock
from dtr_payroll.errors import StateError, ValidationError

logger = logging.getLogger(__name__)


class DtrEventType(str, Enum):
    CLASSIFIED = "classified"
    REVIEW_RESOLVED = "review_resolved"
    OVERTIME_APPROVED = "overtime_approved"
    OVERTIME_DENIED = "overtime_denied"
    REMARKS_UPDATED = "remarks_updated"


# Decisions that a later reclassification must not silently overwrite
REVIEWER_EVENT_TYPES = frozenset(
    {
        DtrEventType.REVIEW_RESOLVED,
        DtrEventType.OVERTIME_APPROVED,
        DtrEventType.OVERTIME_DENIED,
    }
)


class ReviewResolution(str, Enum):
    NO_CHANGE = "no_change"
    MARK_ABSENT = "mark_absent"
    MARK_HALF_DAY = "mark_half_day"
    MANUAL_TIME_OUT = "manual_time_out"
    USE_SCHEDULE_END = "use_schedule_end"


class RecordNotFlagged(StateError):
    code = "RECORD_NOT_FLAGGED"

    def __init__(self, snapshot: DtrSnapshot):
        super().__init__(
            f"DTR for {snapshot.employee_id} on {snapshot.work_date} is not flagged for review",
            employee_id=snapshot.employee_id,
            work_date=snapshot.work_date,
        )


class NoOvertimeToAct(StateError):
    code = "NO_OVERTIME_TO_ACT"

    def __init__(self, snapshot: DtrSnapshot):
        super().__init__(
            f"DTR for {snapshot.employee_id} on {snapshot.work_date} has no overtime",
            employee_id=snapshot.employee_id,
            work_date=snapshot.work_date,
        )


class RemarksRequired(ValidationError):
    code = "REMARKS_REQUIRED"


class InvalidManualTimeOut(ValidationError):
    code = "INVALID_MANUAL_TIME_OUT"


@dataclass(frozen=True)
class DtrEvent:
    """One immutable change to a daily time record."""

    event_type: DtrEventType
    occurred_at: datetime
    actor_id: str | None = None
    remarks: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "occurred_at": self.occurred_at.isoformat(),
            "actor_id": self.actor_id,
            "remarks": self.remarks,
            "payload": self.payload,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DtrEvent:
        return cls(
            event_type=DtrEventType(data["event_type"]),
            occurred_at=datetime.fromisoformat(data["occurred_at"]),
            actor_id=data.get("actor_id"),
            remarks=data.get("remarks"),
            payload=data.get("payload") or {},
        )


def _append_remarks(existing: str | None, new: str | None) -> str | None:
    if not new:
        return existing
    return f"{existing}\n{new}" if existing else new


def _cleared(snapshot: DtrSnapshot, remarks: str | None) -> DtrSnapshot:
    return replace(
        snapshot,
        needs_review=False,
        review_reason=None,
        remarks=_append_remarks(snapshot.remarks, remarks),
    )


def apply_event(snapshot: DtrSnapshot | None, event: DtrEvent) -> DtrSnapshot:
    """Fold one event into the current view."""
    if event.event_type == DtrEventType.CLASSIFIED:
        classified = DtrSnapshot.from_dict(event.payload["snapshot"])
        if snapshot is not None and snapshot.remarks:
            classified = replace(classified, remarks=snapshot.remarks)
        return classified

    if snapshot is None:
        raise StateError(f"Event '{event.event_type.value}' precedes classification")

    if event.event_type == DtrEventType.REVIEW_RESOLVED:
        resolution = ReviewResolution(event.payload["resolution"])
        if resolution == ReviewResolution.NO_CHANGE:
            return _cleared(snapshot, event.remarks)
        if resolution == ReviewResolution.MARK_ABSENT:
            return _cleared(
                replace(
                    snapshot,
                    status=DtrStatus.ABSENT,
                    first_in=None,
                    last_out=None,
                    total_work_minutes=0,
                    total_break_minutes=0,
                    late_minutes=0,
                    undertime_minutes=0,
                    overtime_minutes=0,
                    overtime_approved=False,
                    overtime_denied=False,
                    night_differential_minutes=0,
                    overtime_night_minutes=0,
                ),
                event.remarks,
            )
        if resolution == ReviewResolution.MARK_HALF_DAY:
            half_day = int(event.payload["half_day_minutes"])
            required = int(event.payload["required_minutes"])
            return _cleared(
                replace(
                    snapshot,
                    status=DtrStatus.PRESENT,
                    total_work_minutes=half_day,
                    undertime_minutes=max(0, required - half_day),
                    overtime_minutes=0,
                    overtime_approved=False,
                    overtime_denied=False,
                    overtime_night_minutes=0,
                ),
                event.remarks,
            )
        recomputed = DtrSnapshot.from_dict(event.payload["snapshot"])
        return _cleared(replace(recomputed, remarks=snapshot.remarks), event.remarks)

    if event.event_type == DtrEventType.OVERTIME_APPROVED:
        return replace(
            snapshot,
            overtime_approved=True,
            overtime_denied=False,
            remarks=_append_remarks(snapshot.remarks, event.remarks),
        )

    if event.event_type == DtrEventType.OVERTIME_DENIED:
        return replace(
            snapshot,
            overtime_approved=False,
            overtime_denied=True,
            remarks=_append_remarks(snapshot.remarks, event.remarks),
        )

    if event.event_type == DtrEventType.REMARKS_UPDATED:
        return replace(snapshot, remarks=event.remarks)

    raise StateError(f"Unhandled DTR event type '{event.event_type}'")


def replay(events: Iterable[DtrEvent]) -> DtrSnapshot:
    """Fold an event log, oldest first, into the current view."""
    snapshot: DtrSnapshot | None = None
    for event in events:
        snapshot = apply_event(snapshot, event)
    if snapshot is None:
        raise StateError("Cannot replay an empty DTR event log")
    return snapshot


def reviewed_after(reviewed: bool, event: DtrEvent) -> bool:
    """Whether a reviewer decision stands once ``event`` is applied.

    A classification supersedes earlier decisions; a resolution or an
    overtime decision establishes one.
    """
    if event.event_type == DtrEventType.CLASSIFIED:
        return False
    return reviewed or event.event_type in REVIEWER_EVENT_TYPES


def is_reviewed(events: Iterable[DtrEvent]) -> bool:
    reviewed = False
    for event in events:
        reviewed = reviewed_after(reviewed, event)
    return reviewed


class DtrReviewResolver:
    """Validates reviewer actions and turns them into events.

    Each method checks preconditions first and raises before producing an
    event, so a rejected action never leaves a trace in the log.
    """

    def __init__(self, clock: Clock, classifier: TimeClassifier | None = None):
        self.clock = clock
        self.classifier = classifier or TimeClassifier()

    def classified(self, snapshot: DtrSnapshot, actor_id: str | None = None) -> DtrEvent:
        return DtrEvent(
            event_type=DtrEventType.CLASSIFIED,
            occurred_at=self.clock.now(),
            actor_id=actor_id,
            payload={"snapshot": snapshot.to_dict()},
        )

    def resolve(
        self,
        snapshot: DtrSnapshot,
        resolution: ReviewResolution,
        remarks: str,
        actor_id: str | None = None,
        schedule: WorkSchedule | None = None,
        holidays: HolidayCalendar | None = None,
        manual_time_out: datetime | None = None,
    ) -> DtrEvent:
        if not snapshot.needs_review:
            raise RecordNotFlagged(snapshot)
        if not remarks or not remarks.strip():
            raise RemarksRequired(
                "Remarks are required to resolve a flagged DTR",
                employee_id=snapshot.employee_id,
                work_date=snapshot.work_date,
            )

        resolution = ReviewResolution(resolution)
        payload: dict[str, Any] = {"resolution": resolution.value}

        if resolution == ReviewResolution.MARK_HALF_DAY:
            if schedule is not None:
                required = schedule.required_work_minutes(snapshot.work_date, snapshot.shift_name)
                required = required or DEFAULT_REQUIRED_MINUTES
            else:
                required = DEFAULT_REQUIRED_MINUTES
            payload["half_day_minutes"] = required // 2
            payload["required_minutes"] = required

        elif resolution in (ReviewResolution.MANUAL_TIME_OUT, ReviewResolution.USE_SCHEDULE_END):
            if schedule is None:
                raise InvalidManualTimeOut(
                    "A schedule is required to recompute with a time-out",
                    employee_id=snapshot.employee_id,
                    work_date=snapshot.work_date,
                )
            if resolution == ReviewResolution.USE_SCHEDULE_END:
                manual_time_out = schedule.expected_window(
                    snapshot.work_date, snapshot.shift_name
                ).end
            recomputed = self._recompute_with_time_out(
                snapshot, manual_time_out, schedule, holidays
            )
            payload["time_out"] = manual_time_out.isoformat()
            payload["snapshot"] = recomputed.to_dict()

        logger.info(
            "Resolved DTR %s/%s with %s",
            snapshot.employee_id,
            snapshot.work_date,
            resolution.value,
        )
        return DtrEvent(
            event_type=DtrEventType.REVIEW_RESOLVED,
            occurred_at=self.clock.now(),
            actor_id=actor_id,
            remarks=remarks,
            payload=payload,
        )

    def _recompute_with_time_out(
        self,
        snapshot: DtrSnapshot,
        time_out: datetime | None,
        schedule: WorkSchedule,
        holidays: HolidayCalendar | None,
    ) -> DtrSnapshot:
        context = {"employee_id": snapshot.employee_id, "work_date": snapshot.work_date}
        if time_out is None:
            raise InvalidManualTimeOut("Manual time-out is required", **context)
        if snapshot.first_in is None or time_out <= snapshot.first_in:
            raise InvalidManualTimeOut(
                f"Manual time-out {time_out} must be after time-in {snapshot.first_in}",
                **context,
            )
        recomputed = self.classifier.reclassify_with_time_out(
            snapshot, time_out, schedule, holidays
        )
        if recomputed.needs_review:
            raise InvalidManualTimeOut(
                f"Punches remain incomplete after time-out {time_out}: "
                f"{recomputed.review_reason}",
                **context,
            )
        return recomputed

    def approve_overtime(
        self, snapshot: DtrSnapshot, actor_id: str | None = None, remarks: str | None = None
    ) -> DtrEvent:
        if snapshot.overtime_minutes <= 0:
            raise NoOvertimeToAct(snapshot)
        return DtrEvent(
            event_type=DtrEventType.OVERTIME_APPROVED,
            occurred_at=self.clock.now(),
            actor_id=actor_id,
            remarks=remarks,
        )

    def deny_overtime(
        self, snapshot: DtrSnapshot, actor_id: str | None = None, remarks: str | None = None
    ) -> DtrEvent:
        if snapshot.overtime_minutes <= 0:
            raise NoOvertimeToAct(snapshot)
        return DtrEvent(
            event_type=DtrEventType.OVERTIME_DENIED,
            occurred_at=self.clock.now(),
            actor_id=actor_id,
            remarks=remarks,
        )

    def update_remarks(
        self, snapshot: DtrSnapshot, remarks: str | None, actor_id: str | None = None
    ) -> DtrEvent:
        return DtrEvent(
            event_type=DtrEventType.REMARKS_UPDATED,
            occurred_at=self.clock.now(),
            actor_id=actor_id,
            remarks=remarks,
        )
