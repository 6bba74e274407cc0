"""Tests for clocks and period keys."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from pilot_engine.clock import FrozenClock, SystemClock, period_key


class TestFrozenClock:
    def test_default_start_is_utc(self) -> None:
        assert FrozenClock().now().tzinfo is not None

    def test_naive_start_treated_as_utc(self) -> None:
        clock = FrozenClock(datetime(2025, 3, 1, 12, 0))
        assert clock.now() == datetime(2025, 3, 1, 12, 0, tzinfo=UTC)

    def test_advance(self) -> None:
        clock = FrozenClock(datetime(2025, 3, 1, tzinfo=UTC))
        assert clock.advance(hours=1, seconds=30) == datetime(2025, 3, 1, 1, 0, 30, tzinfo=UTC)

    def test_cannot_move_backwards(self) -> None:
        clock = FrozenClock(datetime(2025, 3, 1, tzinfo=UTC))
        with pytest.raises(ValueError):
            clock.advance(seconds=-1)
        with pytest.raises(ValueError):
            clock.set(datetime(2025, 2, 1, tzinfo=UTC))

    def test_set_forward(self) -> None:
        clock = FrozenClock(datetime(2025, 3, 1, tzinfo=UTC))
        clock.set(datetime(2025, 4, 1, tzinfo=UTC))
        assert clock.now().month == 4


class TestSystemClock:
    def test_is_timezone_aware(self) -> None:
        assert SystemClock().now().utcoffset() == timedelta(0)


class TestPeriodKey:
    def test_calendar_month(self) -> None:
        assert period_key(datetime(2025, 1, 31, 23, 59, tzinfo=UTC)) == "2025-01"

    def test_uses_utc_month_for_offset_times(self) -> None:
        # 2025-02-01 01:00 at +05:00 is still January in UTC.
        local = datetime(2025, 2, 1, 1, 0, tzinfo=timezone(timedelta(hours=5)))
        assert period_key(local) == "2025-01"
