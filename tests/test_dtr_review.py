"""Tests for DTR review actions and the event fold."""

from datetime import date, datetime
from uuid import uuid4

import pytest

from dtr_payroll.calculators.dtr_review import (
    DtrEvent,
    DtrEventType,
    DtrReviewResolver,
    InvalidManualTimeOut,
    NoOvertimeToAct,
    RecordNotFlagged,
    RemarksRequired,
    ReviewResolution,
    apply_event,
    is_reviewed,
    replay,
)
from dtr_payroll.calculators.time_classifier import TimeClassifier
from dtr_payroll.calculators.types import DtrStatus, Punch
from dtr_payroll.errors import StateError

MONDAY = date(2025, 1, 6)


def _at(hour, minute=0, day=6):
    return Punch(timestamp=datetime(2025, 1, day, hour, minute))


@pytest.fixture
def review(clock):
    return DtrReviewResolver(clock, TimeClassifier())


@pytest.fixture
def flagged(office_schedule):
    """08:00 time-in with no time-out."""
    return TimeClassifier().classify(uuid4(), MONDAY, [_at(8)], office_schedule)


@pytest.fixture
def overtime_day(office_schedule):
    """08:05-19:00: 120 minutes of pending overtime."""
    return TimeClassifier().classify(uuid4(), MONDAY, [_at(8, 5), _at(19)], office_schedule)


def _fold(review, snapshot, event):
    """Fold a classification event followed by ``event``."""
    return replay([review.classified(snapshot), event])


class TestResolveReview:
    def test_no_change_clears_flag(self, review, flagged):
        event = review.resolve(flagged, ReviewResolution.NO_CHANGE, "Verified with supervisor")
        result = _fold(review, flagged, event)

        assert result.needs_review is False
        assert result.review_reason is None
        assert result.remarks == "Verified with supervisor"
        assert result.first_in == flagged.first_in

    def test_resolution_is_idempotent_once_cleared(self, review, flagged):
        """A cleared record is no longer flagged, so a second resolve is rejected."""
        event = review.resolve(flagged, ReviewResolution.NO_CHANGE, "ok")
        cleared = _fold(review, flagged, event)

        with pytest.raises(RecordNotFlagged):
            review.resolve(cleared, ReviewResolution.NO_CHANGE, "again")

    def test_mark_absent_zeroes_minutes(self, review, flagged):
        event = review.resolve(flagged, ReviewResolution.MARK_ABSENT, "Did not report")
        result = _fold(review, flagged, event)

        assert flagged.first_in is not None
        assert result.status == DtrStatus.ABSENT
        assert result.first_in is None
        assert result.last_out is None
        assert result.total_work_minutes == 0
        assert result.late_minutes == 0
        assert result.overtime_minutes == 0
        assert result.needs_review is False

    def test_mark_half_day(self, review, flagged, office_schedule):
        event = review.resolve(
            flagged, ReviewResolution.MARK_HALF_DAY, "Left at noon", schedule=office_schedule
        )
        result = _fold(review, flagged, event)

        assert result.status == DtrStatus.PRESENT
        assert result.total_work_minutes == 240
        assert result.undertime_minutes == 240
        assert event.payload["half_day_minutes"] == 240

    def test_manual_time_out(self, review, flagged, office_schedule):
        event = review.resolve(
            flagged,
            ReviewResolution.MANUAL_TIME_OUT,
            "Forgot to scan out",
            actor_id="hr-1",
            schedule=office_schedule,
            manual_time_out=datetime(2025, 1, 6, 18, 0),
        )
        result = _fold(review, flagged, event)

        assert result.needs_review is False
        assert result.last_out == datetime(2025, 1, 6, 18, 0)
        assert result.total_work_minutes == 540
        assert result.overtime_minutes == 60
        assert result.overtime_approved is False
        assert event.actor_id == "hr-1"
        assert event.payload["time_out"] == "2025-01-06T18:00:00"

    def test_use_schedule_end(self, review, flagged, office_schedule):
        event = review.resolve(
            flagged, ReviewResolution.USE_SCHEDULE_END, "Per roster", schedule=office_schedule
        )
        result = _fold(review, flagged, event)

        assert result.last_out == datetime(2025, 1, 6, 17, 0)
        assert result.total_work_minutes == 480

    def test_manual_time_out_before_time_in(self, review, flagged, office_schedule):
        with pytest.raises(InvalidManualTimeOut):
            review.resolve(
                flagged,
                ReviewResolution.MANUAL_TIME_OUT,
                "typo",
                schedule=office_schedule,
                manual_time_out=datetime(2025, 1, 6, 7, 0),
            )

    def test_manual_time_out_required(self, review, flagged, office_schedule):
        with pytest.raises(InvalidManualTimeOut):
            review.resolve(
                flagged, ReviewResolution.MANUAL_TIME_OUT, "missing", schedule=office_schedule
            )

    def test_remarks_required(self, review, flagged):
        with pytest.raises(RemarksRequired):
            review.resolve(flagged, ReviewResolution.NO_CHANGE, "   ")

    def test_unflagged_record_rejected(self, review, overtime_day):
        with pytest.raises(RecordNotFlagged):
            review.resolve(overtime_day, ReviewResolution.NO_CHANGE, "nothing to do")


class TestOvertimeActions:
    def test_approve(self, review, overtime_day):
        event = review.approve_overtime(overtime_day, actor_id="sup-1", remarks="Month-end close")
        result = _fold(review, overtime_day, event)

        assert result.overtime_approved is True
        assert result.overtime_denied is False
        assert result.payable_overtime_minutes == 120
        assert result.remarks == "Month-end close"

    def test_deny_after_approve(self, review, overtime_day):
        approved = apply_event(
            apply_event(None, review.classified(overtime_day)),
            review.approve_overtime(overtime_day),
        )
        denied = apply_event(approved, review.deny_overtime(approved, remarks="Not authorized"))

        assert denied.overtime_approved is False
        assert denied.overtime_denied is True
        assert denied.payable_overtime_minutes == 0

    def test_no_overtime_to_act(self, review, office_schedule):
        day = TimeClassifier().classify(uuid4(), MONDAY, [_at(8), _at(17)], office_schedule)

        with pytest.raises(NoOvertimeToAct):
            review.approve_overtime(day)
        with pytest.raises(NoOvertimeToAct):
            review.deny_overtime(day)


class TestEventFold:
    """The current view is always the fold of the event log."""

    def test_remarks_survive_reclassification(self, review, overtime_day):
        events = [
            review.classified(overtime_day),
            review.update_remarks(overtime_day, "Client visit"),
            review.classified(overtime_day),
        ]
        assert replay(events).remarks == "Client visit"

    def test_remarks_accumulate(self, review, overtime_day):
        events = [
            review.classified(overtime_day),
            review.approve_overtime(overtime_day, remarks="first"),
            review.deny_overtime(overtime_day, remarks="second"),
        ]
        assert replay(events).remarks == "first\nsecond"

    def test_event_round_trip(self, review, overtime_day):
        event = review.approve_overtime(overtime_day, actor_id="sup-1", remarks="ok")
        assert DtrEvent.from_dict(event.to_dict()) == event

    def test_event_before_classification_rejected(self, review, overtime_day):
        with pytest.raises(StateError):
            apply_event(None, review.approve_overtime(overtime_day))

    def test_empty_log_rejected(self):
        with pytest.raises(StateError):
            replay([])

    def test_events_stamped_by_clock(self, review, clock, overtime_day):
        clock.advance(hours=3)
        event = review.approve_overtime(overtime_day)
        assert event.event_type == DtrEventType.OVERTIME_APPROVED
        assert event.occurred_at == clock.now()

    def test_reclassification_is_not_a_review(self, review, overtime_day):
        events = [review.classified(overtime_day), review.classified(overtime_day)]
        assert is_reviewed(events) is False

    def test_reviewer_decision_marks_reviewed(self, review, overtime_day):
        events = [
            review.classified(overtime_day),
            review.approve_overtime(overtime_day),
            review.update_remarks(overtime_day, "Client visit"),
        ]
        assert is_reviewed(events) is True

    def test_forced_reclassification_supersedes_review(self, review, overtime_day):
        events = [
            review.classified(overtime_day),
            review.deny_overtime(overtime_day),
            review.classified(overtime_day),
        ]
        assert is_reviewed(events) is False
