"""Wall-clock sources.

Every time-based transition in the engine (trial expiry, job completion,
retention purge, sliding-window pruning) reads the time from an injected
:class:`Clock` so that tests can drive the arithmetic deterministically.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Protocol for a timezone-aware UTC time source."""

    def now(self) -> datetime:
        """Return the current instant (UTC, timezone-aware)."""
        ...


class SystemClock:
    """Reads the host clock."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FrozenClock:
    """Manually advanced clock for tests and simulations.

    Parameters
    ----------
    start:
        Initial instant.  Naive datetimes are treated as UTC.
    """

    def __init__(self, start: datetime | None = None) -> None:
        start = start or datetime(2025, 1, 15, 9, 0, tzinfo=UTC)
        if start.tzinfo is None:
            start = start.replace(tzinfo=UTC)
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs: float) -> datetime:
        """Move the clock forward by ``timedelta(**kwargs)`` and return the new instant."""
        delta = timedelta(**kwargs)
        if delta < timedelta(0):
            raise ValueError("FrozenClock cannot move backwards")
        self._now = self._now + delta
        return self._now

    def set(self, instant: datetime) -> None:
        """Jump to *instant* (must not be earlier than the current time)."""
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=UTC)
        if instant < self._now:
            raise ValueError("FrozenClock cannot move backwards")
        self._now = instant


def period_key(instant: datetime) -> str:
    """Return the billing period key (UTC calendar month, ``YYYY-MM``) for *instant*."""
    return instant.astimezone(UTC).strftime("%Y-%m")
