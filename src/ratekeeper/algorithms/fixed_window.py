"""Fixed window rate limiting algorithm.

Time is cut into clock-aligned windows of ``window_ms``. Each key gets one
counter per window, stored under ``f"{key}:{window_start}"``, so a new window
starts from zero with no cleanup step and the old counter simply expires.

Algorithm Overview:
    1. window_start = floor(now / window_ms) * window_ms
    2. Read the window's count (0 if absent)
    3. count >= limit: deny without touching the counter
    4. Otherwise increment with TTL = window_end - now
    5. The increment may overshoot under concurrency: deny if new count > limit

Example:
    limit=100, window=60s
    - 12:00:00-12:00:59: up to 100 requests admitted
    - 12:01:00: counter for the new window starts at 0

Trade-off:
    A client can get ``2 * limit`` admissions around a window boundary
    (``limit`` at the end of one window, ``limit`` at the start of the next).

Usage:
    ```python
    algorithm = FixedWindowAlgorithm(MemoryStore(), limit=100, window_ms=60_000)
    result = await algorithm.consume("192.168.1.1")
    ```
"""

from math import ceil

import structlog

from ratekeeper.algorithms.base import RateLimitAlgorithm
from ratekeeper.clock import Clock
from ratekeeper.config import FixedWindowConfig
from ratekeeper.constants import MS_PER_SECOND
from ratekeeper.models import RateLimitResult
from ratekeeper.stores.base import EntryStore

logger = structlog.get_logger(__name__)


class FixedWindowAlgorithm(RateLimitAlgorithm):
    """Fixed window counter.

    Raises:
        pydantic.ValidationError: If ``limit`` or ``window_ms`` is not positive.
    """

    def __init__(
        self,
        store: EntryStore,
        *,
        limit: int,
        window_ms: int,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(store, clock=clock)
        self.config = FixedWindowConfig(limit=limit, window_ms=window_ms)

    @property
    def limit(self) -> int:
        return self.config.limit

    def _window_start(self, now: int) -> int:
        return (now // self.config.window_ms) * self.config.window_ms

    @staticmethod
    def _storage_key(key: str, window_start: int) -> str:
        return f"{key}:{window_start}"

    def _denied(self, now: int, window_end: int) -> RateLimitResult:
        return RateLimitResult(
            allowed=False,
            limit=self.limit,
            remaining=0,
            reset_at=window_end,
            retry_after=ceil((window_end - now) / MS_PER_SECOND),
        )

    async def consume(self, key: str) -> RateLimitResult:
        now = self.clock.now()
        window_start = self._window_start(now)
        window_end = window_start + self.config.window_ms
        storage_key = self._storage_key(key, window_start)

        entry = await self.store.get(storage_key)
        current = entry.numeric("count") if entry is not None else 0
        if current >= self.limit:
            return self._denied(now, window_end)

        new_count = int(await self.store.increment(storage_key, "count", window_end - now))
        if new_count > self.limit:
            # Lost a race for the last slot; the overshooting increment stands.
            logger.debug("fixed_window_overshoot", key=key, count=new_count, limit=self.limit)
            return self._denied(now, window_end)

        return RateLimitResult(
            allowed=True,
            limit=self.limit,
            remaining=self.limit - new_count,
            reset_at=window_end,
        )

    async def reset(self, key: str) -> None:
        """Delete the current window's counter for ``key``."""
        window_start = self._window_start(self.clock.now())
        await self.store.delete(self._storage_key(key, window_start))
