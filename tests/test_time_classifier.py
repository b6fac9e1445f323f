"""Tests for classifying punches into daily time records."""

from dataclasses import replace
from datetime import date, datetime
from uuid import uuid4

import pytest

from dtr_payroll.calculators.time_classifier import (
    REASON_MISSING_TIME_IN,
    REASON_MISSING_TIME_OUT,
    REASON_NO_SCHEDULE,
    REMARK_REST_DAY_WORK,
    TimeClassifier,
)
from dtr_payroll.calculators.types import (
    DtrStatus,
    Holiday,
    HolidayCalendar,
    HolidayType,
    Punch,
    PunchDirection,
)

MONDAY = date(2025, 1, 6)
SATURDAY = date(2025, 1, 11)


def _at(hour, minute=0, day=6, direction=None):
    return Punch(timestamp=datetime(2025, 1, day, hour, minute), direction=direction)


@pytest.fixture
def classifier():
    return TimeClassifier(duplicate_threshold_minutes=3)


@pytest.fixture
def employee_id():
    return uuid4()


class TestRegularDay:
    """Work days on the 08:00-17:00 office schedule."""

    def test_on_time_full_day(self, classifier, employee_id, office_schedule):
        dtr = classifier.classify(employee_id, MONDAY, [_at(8), _at(17)], office_schedule)

        assert dtr.status == DtrStatus.PRESENT
        assert dtr.needs_review is False
        assert dtr.total_work_minutes == 480
        assert dtr.total_break_minutes == 60
        assert dtr.late_minutes == 0
        assert dtr.undertime_minutes == 0
        assert dtr.overtime_minutes == 0
        assert dtr.schedule_id == office_schedule.schedule_id
        assert dtr.remarks is None

    def test_late_with_overtime(self, classifier, employee_id, office_schedule):
        """08:05 in, 19:00 out: five minutes late, two hours of unapproved overtime."""
        dtr = classifier.classify(employee_id, MONDAY, [_at(8, 5), _at(19)], office_schedule)

        assert dtr.late_minutes == 5
        assert dtr.overtime_minutes == 120
        assert dtr.overtime_approved is False
        assert dtr.payable_overtime_minutes == 0
        assert dtr.total_work_minutes == 595
        assert dtr.first_in == datetime(2025, 1, 6, 8, 5)
        assert dtr.last_out == datetime(2025, 1, 6, 19, 0)

    def test_grace_period(self, classifier, employee_id, office_schedule):
        schedule = replace(
            office_schedule,
            time_configuration=replace(
                office_schedule.time_configuration, grace_period_minutes=10
            ),
        )

        on_grace = classifier.classify(employee_id, MONDAY, [_at(8, 5), _at(17)], schedule)
        past_grace = classifier.classify(employee_id, MONDAY, [_at(8, 15), _at(17)], schedule)

        assert on_grace.late_minutes == 0
        assert past_grace.late_minutes == 5

    def test_undertime(self, classifier, employee_id, office_schedule):
        dtr = classifier.classify(employee_id, MONDAY, [_at(8), _at(16)], office_schedule)

        assert dtr.total_work_minutes == 420
        assert dtr.undertime_minutes == 60
        assert dtr.overtime_minutes == 0

    def test_break_not_deducted_when_span_misses_it(self, classifier, employee_id, office_schedule):
        dtr = classifier.classify(employee_id, MONDAY, [_at(8), _at(11)], office_schedule)

        assert dtr.total_work_minutes == 180
        assert dtr.total_break_minutes == 0
        assert dtr.undertime_minutes == 360

    def test_punched_lunch_break(self, classifier, employee_id, office_schedule):
        """A punched break is measured, not deducted a second time."""
        dtr = classifier.classify(
            employee_id, MONDAY, [_at(8), _at(12), _at(13), _at(17)], office_schedule
        )

        assert dtr.total_work_minutes == 480
        assert dtr.total_break_minutes == 60
        assert dtr.undertime_minutes == 0

    def test_duplicate_scans_collapsed(self, classifier, employee_id, office_schedule):
        dtr = classifier.classify(
            employee_id, MONDAY, [_at(8), _at(8, 1), _at(17)], office_schedule
        )

        assert dtr.needs_review is False
        assert len(dtr.punches) == 2
        assert dtr.total_work_minutes == 480

    def test_overtime_into_night(self, classifier, employee_id, office_schedule):
        """Overtime past 22:00 also earns night differential minutes."""
        dtr = classifier.classify(employee_id, MONDAY, [_at(8), _at(23)], office_schedule)

        assert dtr.overtime_minutes == 360
        assert dtr.night_differential_minutes == 60
        assert dtr.overtime_night_minutes == 60


class TestDaysWithoutPunches:
    def test_absent(self, classifier, employee_id, office_schedule):
        dtr = classifier.classify(employee_id, MONDAY, [], office_schedule)
        assert dtr.status == DtrStatus.ABSENT
        assert dtr.needs_review is False

    def test_on_leave(self, classifier, employee_id, office_schedule):
        dtr = classifier.classify(employee_id, MONDAY, [], office_schedule, on_leave=True)
        assert dtr.status == DtrStatus.ON_LEAVE

    def test_rest_day(self, classifier, employee_id, office_schedule):
        dtr = classifier.classify(employee_id, SATURDAY, [], office_schedule)
        assert dtr.status == DtrStatus.REST_DAY

    def test_holiday(self, classifier, employee_id, office_schedule):
        holidays = HolidayCalendar([Holiday(MONDAY, "Founding Day", HolidayType.REGULAR)])
        dtr = classifier.classify(employee_id, MONDAY, [], office_schedule, holidays)

        assert dtr.status == DtrStatus.HOLIDAY
        assert dtr.holiday_type == HolidayType.REGULAR
        assert dtr.holiday_name == "Founding Day"


class TestFlaggedRecords:
    """Records that need a reviewer before payroll may use them."""

    def test_missing_time_out(self, classifier, employee_id, office_schedule):
        dtr = classifier.classify(employee_id, MONDAY, [_at(8)], office_schedule)

        assert dtr.needs_review is True
        assert dtr.review_reason == REASON_MISSING_TIME_OUT
        assert dtr.status == DtrStatus.PRESENT
        assert dtr.first_in == datetime(2025, 1, 6, 8, 0)
        assert dtr.total_work_minutes == 0

    def test_odd_punch_count(self, classifier, employee_id, office_schedule):
        dtr = classifier.classify(
            employee_id, MONDAY, [_at(8), _at(12), _at(13)], office_schedule
        )
        assert dtr.needs_review is True
        assert dtr.review_reason == REASON_MISSING_TIME_OUT

    def test_odd_count_ending_in_out(self, classifier, employee_id, office_schedule):
        """Directions never turn an odd count into anything but a missing time-out."""
        dtr = classifier.classify(
            employee_id,
            MONDAY,
            [
                _at(8, direction=PunchDirection.IN),
                _at(12, direction=PunchDirection.OUT),
                _at(17, direction=PunchDirection.OUT),
            ],
            office_schedule,
        )
        assert dtr.needs_review is True
        assert dtr.review_reason == REASON_MISSING_TIME_OUT
        assert dtr.total_work_minutes == 0

    def test_single_out_is_missing_time_out(self, classifier, employee_id, office_schedule):
        dtr = classifier.classify(
            employee_id, MONDAY, [_at(17, direction=PunchDirection.OUT)], office_schedule
        )
        assert dtr.review_reason == REASON_MISSING_TIME_OUT

    def test_missing_time_in(self, classifier, employee_id, office_schedule):
        """An even count that opens with an OUT is missing its time-in."""
        dtr = classifier.classify(
            employee_id,
            MONDAY,
            [_at(8, direction=PunchDirection.OUT), _at(17, direction=PunchDirection.OUT)],
            office_schedule,
        )
        assert dtr.needs_review is True
        assert dtr.review_reason == REASON_MISSING_TIME_IN

    def test_no_schedule(self, classifier, employee_id):
        dtr = classifier.classify(employee_id, MONDAY, [_at(8), _at(17)], None)

        assert dtr.needs_review is True
        assert dtr.review_reason == REASON_NO_SCHEDULE
        assert dtr.schedule_id is None
        assert dtr.total_work_minutes == 540

    def test_manual_time_out_completes_record(self, classifier, employee_id, office_schedule):
        flagged = classifier.classify(employee_id, MONDAY, [_at(8)], office_schedule)
        fixed = classifier.reclassify_with_time_out(
            flagged, datetime(2025, 1, 6, 17, 0), office_schedule
        )

        assert fixed.needs_review is False
        assert fixed.total_work_minutes == 480
        assert fixed.last_out == datetime(2025, 1, 6, 17, 0)
        assert fixed.punches[-1].source == "manual"


class TestPremiumDays:
    """Rest days and holidays: all worked time is premium overtime."""

    def test_rest_day_work(self, classifier, employee_id, office_schedule):
        dtr = classifier.classify(employee_id, SATURDAY, [_at(8, day=11), _at(17, day=11)], office_schedule)

        assert dtr.status == DtrStatus.REST_DAY
        assert dtr.total_work_minutes == 480
        assert dtr.overtime_minutes == 480
        assert dtr.late_minutes == 0
        assert dtr.undertime_minutes == 0
        assert dtr.remarks == REMARK_REST_DAY_WORK

    def test_holiday_work(self, classifier, employee_id, office_schedule):
        holidays = HolidayCalendar([Holiday(MONDAY, "Special Day", HolidayType.SPECIAL)])
        dtr = classifier.classify(
            employee_id, MONDAY, [_at(9), _at(14)], office_schedule, holidays
        )

        assert dtr.status == DtrStatus.HOLIDAY
        assert dtr.holiday_type == HolidayType.SPECIAL
        assert dtr.total_work_minutes == 240
        assert dtr.overtime_minutes == 240
        assert dtr.late_minutes == 0
        assert dtr.remarks == "Worked on holiday Special Day, overtime pending approval"


class TestNightShift:
    def test_full_night_shift(self, classifier, employee_id, night_schedule):
        dtr = classifier.classify(
            employee_id, MONDAY, [_at(22), _at(6, day=7)], night_schedule, shift_name="night"
        )

        assert dtr.status == DtrStatus.PRESENT
        assert dtr.total_work_minutes == 480
        assert dtr.night_differential_minutes == 480
        assert dtr.overtime_minutes == 0
        assert dtr.overtime_night_minutes == 0
        assert dtr.late_minutes == 0

    def test_day_shift_has_no_night_minutes(self, classifier, employee_id, night_schedule):
        dtr = classifier.classify(
            employee_id, MONDAY, [_at(6), _at(14)], night_schedule, shift_name="day"
        )
        assert dtr.night_differential_minutes == 0
        assert dtr.total_work_minutes == 480
