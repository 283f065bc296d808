"""Unit tests for the injectable clocks."""

import pytest
from freezegun import freeze_time

from ratekeeper.clock import Clock, ManualClock, SystemClock, resolve_clock


class TestSystemClock:
    """Test wall-clock time source."""

    @freeze_time("2024-01-01 12:00:00")
    def test_now_is_epoch_milliseconds(self):
        """Test that now() returns integer milliseconds since the epoch."""
        assert SystemClock().now() == 1_704_110_400_000

    def test_now_moves_with_wall_clock(self):
        """Test that successive readings follow the wall clock."""
        clock = SystemClock()
        with freeze_time("2024-01-01 12:00:00") as frozen:
            first = clock.now()
            frozen.tick(1.5)
            assert clock.now() - first == 1500

    def test_satisfies_clock_protocol(self):
        assert isinstance(SystemClock(), Clock)


class TestManualClock:
    """Test the settable clock used by the rest of the suite."""

    def test_starts_at_given_instant(self):
        assert ManualClock(start=42).now() == 42
        assert ManualClock().now() == 0

    def test_advance_and_set(self):
        clock = ManualClock(start=1_000)
        clock.advance(250)
        assert clock.now() == 1_250

        clock.set(10)
        assert clock.now() == 10

    def test_advance_rejects_negative(self):
        clock = ManualClock(start=1_000)
        with pytest.raises(ValueError, match="backwards"):
            clock.advance(-1)
        assert clock.now() == 1_000

    def test_satisfies_clock_protocol(self):
        assert isinstance(ManualClock(), Clock)


def test_resolve_clock_defaults_to_system_clock():
    manual = ManualClock()
    assert resolve_clock(manual) is manual
    assert isinstance(resolve_clock(None), SystemClock)
