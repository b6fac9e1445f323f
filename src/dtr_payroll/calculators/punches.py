"""Punch cleanup, pairing and day attribution."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta
from typing import Iterable

from dtr_payroll.calculators.schedule import ExpectedWindow
from dtr_payroll.calculators.types import Punch, PunchDirection

EARLY_ARRIVAL_ALLOWANCE = timedelta(hours=3)
LATE_DEPARTURE_GRACE = timedelta(hours=2)


@dataclass(frozen=True)
class PunchPair:
    time_in: datetime
    time_out: datetime

    @property
    def minutes(self) -> int:
        return max(0, int((self.time_out - self.time_in).total_seconds() // 60))


@dataclass
class PairingResult:
    pairs: list[PunchPair] = field(default_factory=list)
    unpaired_in: list[Punch] = field(default_factory=list)
    unpaired_out: list[Punch] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.unpaired_in and not self.unpaired_out

    @property
    def first_in(self) -> datetime | None:
        candidates = [p.time_in for p in self.pairs] + [p.timestamp for p in self.unpaired_in]
        return min(candidates) if candidates else None

    @property
    def last_out(self) -> datetime | None:
        candidates = [p.time_out for p in self.pairs] + [p.timestamp for p in self.unpaired_out]
        return max(candidates) if candidates else None

    @property
    def gap_minutes(self) -> int:
        """Minutes between consecutive pairs (punched breaks)."""
        total = 0
        for previous, current in zip(self.pairs, self.pairs[1:]):
            total += max(0, int((current.time_in - previous.time_out).total_seconds() // 60))
        return total


def collapse_duplicates(punches: Iterable[Punch], threshold_minutes: int) -> list[Punch]:
    """Merge scans closer than ``threshold_minutes`` to the previous kept scan.

    The earlier scan survives. Scans with opposing known directions are never
    merged.
    """
    ordered = sorted(punches, key=lambda p: p.timestamp)
    threshold = timedelta(minutes=threshold_minutes)
    kept: list[Punch] = []
    for punch in ordered:
        if kept:
            previous = kept[-1]
            same_direction = (
                previous.direction is None
                or punch.direction is None
                or previous.direction == punch.direction
            )
            if same_direction and punch.timestamp - previous.timestamp < threshold:
                continue
        kept.append(punch)
    return kept


def infer_directions(punches: list[Punch]) -> list[Punch]:
    """Fill in unknown directions by alternating from the last known one."""
    inferred: list[Punch] = []
    previous: PunchDirection | None = None
    for punch in punches:
        if punch.direction is None:
            direction = PunchDirection.OUT if previous == PunchDirection.IN else PunchDirection.IN
            punch = replace(punch, direction=direction)
        inferred.append(punch)
        previous = punch.direction
    return inferred


def pair_punches(punches: list[Punch]) -> PairingResult:
    """Pair sorted IN/OUT punches sequentially.

    Two INs in a row leave the first unpaired (missing time-out); an OUT with
    no open IN is unpaired (missing time-in).
    """
    result = PairingResult()
    open_in: Punch | None = None
    for punch in punches:
        if punch.direction == PunchDirection.IN:
            if open_in is not None:
                result.unpaired_in.append(open_in)
            open_in = punch
        elif open_in is not None:
            result.pairs.append(PunchPair(open_in.timestamp, punch.timestamp))
            open_in = None
        else:
            result.unpaired_out.append(punch)
    if open_in is not None:
        result.unpaired_in.append(open_in)
    return result


def punch_window(
    work_date: date,
    window: ExpectedWindow | None,
    previous_window: ExpectedWindow | None = None,
) -> tuple[datetime, datetime]:
    """Timestamps attributable to ``work_date``.

    A midnight-crossing shift owns punches from three hours before its start
    until two hours after its end, so post-midnight punches land on the
    shift's start date. Any other day owns its calendar day, minus whatever
    the previous day's midnight-crossing shift already claimed.
    """
    day_start = datetime.combine(work_date, time.min)
    lower, upper = day_start, day_start + timedelta(days=1)

    if window is not None and window.crosses_midnight and not window.is_rest_day:
        lower = max(lower, window.start - EARLY_ARRIVAL_ALLOWANCE)
        upper = window.end + LATE_DEPARTURE_GRACE

    if (
        previous_window is not None
        and previous_window.crosses_midnight
        and not previous_window.is_rest_day
    ):
        lower = max(lower, previous_window.end + LATE_DEPARTURE_GRACE)

    return lower, upper


def select_punches(punches: Iterable[Punch], lower: datetime, upper: datetime) -> list[Punch]:
    return sorted(
        (p for p in punches if lower <= p.timestamp < upper), key=lambda p: p.timestamp
    )
