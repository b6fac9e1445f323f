"""Injectable time source.

Services and calculators never call ``datetime.now()`` directly. Anything
that stamps a record receives a :class:`Clock`, and timestamps produced this
way are metadata only: they never flow into monetary figures or
fingerprints.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Abstract clock interface."""

    @abstractmethod
    def now(self) -> datetime:
        """Return the current time as a timezone-aware datetime."""
        ...


class SystemClock(Clock):
    """Production clock backed by the system time (UTC)."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock frozen at a given instant, for tests and replays."""

    def __init__(self, fixed: datetime | None = None):
        if fixed is None:
            fixed = datetime(2025, 1, 1, tzinfo=timezone.utc)
        elif fixed.tzinfo is None:
            fixed = fixed.replace(tzinfo=timezone.utc)
        self._now = fixed

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs: float) -> None:
        """Move the clock forward by a ``timedelta(**kwargs)``."""
        self._now = self._now + timedelta(**kwargs)

    def set(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self._now = instant
