"""Clock port: the single source of timestamps for the backoffice domain.

Workflows never call ``datetime.now`` directly; they ask the injected clock.
``FrozenClock`` keeps tests deterministic.
"""

import threading
from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta


class Clock(ABC):
    """Abstract clock interface."""

    @abstractmethod
    def now(self) -> datetime:
        """Return the current time as a timezone-aware UTC datetime."""
        ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(UTC)


class FrozenClock(Clock):
    """A clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2024, 1, 1, 9, 0, tzinfo=UTC)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, **delta) -> datetime:
        """Move the clock forward, e.g. ``clock.advance(minutes=5)``."""
        with self._lock:
            self._now = self._now + timedelta(**delta)
            return self._now

    def set(self, moment: datetime) -> None:
        with self._lock:
            self._now = moment


def to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def as_utc(value: datetime | None) -> datetime | None:
    """Read naive datetimes as UTC; aware ones pass through."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
