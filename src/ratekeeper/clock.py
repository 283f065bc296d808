"""Injectable time sources.

Algorithms and stores never read the wall clock directly. They receive a
``Clock`` and call ``now()``, which returns integer milliseconds since the
Unix epoch. Production code uses ``SystemClock``; tests use ``ManualClock``
to move time forward without sleeping.

Usage:
    ```python
    from ratekeeper.clock import ManualClock

    clock = ManualClock(start=0)
    algorithm = FixedWindowAlgorithm(store, limit=3, window_ms=10_000, clock=clock)
    clock.advance(10_000)
    ```
"""

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Source of the current instant in milliseconds since the epoch."""

    def now(self) -> int:
        """Return the current instant in milliseconds."""
        ...


class SystemClock:
    """Wall-clock time from ``time.time()``."""

    def now(self) -> int:
        return int(time.time() * 1000)


class ManualClock:
    """Clock whose value only changes when told to.

    Args:
        start: Initial instant in milliseconds (default: 0).
    """

    def __init__(self, start: int = 0) -> None:
        self._now = int(start)

    def now(self) -> int:
        return self._now

    def set(self, instant: int) -> None:
        """Jump to an absolute instant (milliseconds)."""
        self._now = int(instant)

    def advance(self, ms: int | float) -> None:
        """Move time forward by ``ms`` milliseconds.

        Raises:
            ValueError: If ``ms`` is negative.
        """
        if ms < 0:
            raise ValueError(f"Cannot move a clock backwards, got {ms}ms")
        self._now += int(ms)


def resolve_clock(clock: Clock | None) -> Clock:
    """Return ``clock`` or a new ``SystemClock`` when none was injected."""
    return clock if clock is not None else SystemClock()
