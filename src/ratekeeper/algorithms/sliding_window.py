"""Sliding window log rate limiting algorithm.

Every admitted request's timestamp is kept per key. A request is admitted if
fewer than ``limit`` timestamps fall in the trailing window
``(now - window_ms, now]``. Exact, at the cost of O(limit) memory per key.

Usage:
    ```python
    algorithm = SlidingWindowAlgorithm(MemoryStore(), limit=5, window_ms=60_000)
    result = await algorithm.consume("user:42")
    ```
"""

from math import ceil

from ratekeeper.algorithms.base import RateLimitAlgorithm
from ratekeeper.clock import Clock
from ratekeeper.config import SlidingWindowConfig
from ratekeeper.constants import MS_PER_SECOND
from ratekeeper.models import EntryUpdate, RateLimitResult, StoreEntry
from ratekeeper.stores.base import EntryStore


class SlidingWindowAlgorithm(RateLimitAlgorithm):
    """Sliding window log.

    Denied requests are not recorded, so a client that keeps retrying while
    limited does not push its own reset time further out. Pruning, the limit
    check and the append run inside one ``EntryStore.update``, so concurrent
    consumers of a key never share the last slot.

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
        self.config = SlidingWindowConfig(limit=limit, window_ms=window_ms)

    @property
    def limit(self) -> int:
        return self.config.limit

    async def consume(self, key: str) -> RateLimitResult:
        now = self.clock.now()
        window_ms = self.config.window_ms
        cutoff = now - window_ms

        def admit(entry: StoreEntry | None) -> EntryUpdate[RateLimitResult]:
            logged = entry.timestamps if entry is not None and entry.timestamps else ()
            timestamps = [ts for ts in logged if ts > cutoff]

            if len(timestamps) >= self.limit:
                oldest = min(timestamps)
                return EntryUpdate(
                    value=RateLimitResult(
                        allowed=False,
                        limit=self.limit,
                        remaining=0,
                        reset_at=oldest + window_ms,
                        retry_after=max(1, ceil((oldest + window_ms - now) / MS_PER_SECOND)),
                    )
                )

            timestamps.append(now)
            return EntryUpdate(
                value=RateLimitResult(
                    allowed=True,
                    limit=self.limit,
                    remaining=self.limit - len(timestamps),
                    reset_at=min(timestamps) + window_ms,
                ),
                entry=StoreEntry(timestamps=tuple(timestamps), expires_at=now + window_ms),
                ttl_ms=window_ms,
            )

        return await self.store.update(key, admit)

    async def reset(self, key: str) -> None:
        await self.store.delete(key)
