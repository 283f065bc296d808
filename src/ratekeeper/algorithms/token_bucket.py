"""Token bucket rate limiting algorithm.

Allows bursts up to the bucket capacity while enforcing a long-run average
rate. Refill is computed lazily from the time elapsed since the last request,
so there is no timer per bucket.

Algorithm Overview:
    1. Bucket starts full (``capacity`` tokens)
    2. Tokens refill continuously at ``refill_rate`` per second
    3. Bucket never exceeds ``capacity``
    4. Each admitted request consumes 1 token
    5. A request is admitted if at least 1 whole token is available

Example:
    capacity=20, refill_rate=2.0 (1 token every 500ms)
    - Start: 20 tokens available
    - Burst of 20 requests: all admitted, 0 remaining
    - Request 21 immediately: denied, retry after 1 second
    - Wait 10 seconds: bucket full again

Usage:
    ```python
    algorithm = TokenBucketAlgorithm(MemoryStore(), capacity=20, refill_rate=2.0)
    result = await algorithm.consume("api-key:abc123")
    ```
"""

from math import ceil, floor

import structlog

from ratekeeper.algorithms.base import RateLimitAlgorithm
from ratekeeper.clock import Clock
from ratekeeper.config import TokenBucketConfig
from ratekeeper.constants import MIN_TTL_MS, MS_PER_SECOND, TTL_BUFFER_MULTIPLIER
from ratekeeper.models import EntryUpdate, RateLimitResult, StoreEntry
from ratekeeper.stores.base import EntryStore

logger = structlog.get_logger(__name__)


class TokenBucketAlgorithm(RateLimitAlgorithm):
    """Token bucket with lazy continuous refill.

    The recomputed bucket is persisted on denial too, so ``last_refill``
    always moves forward and refill is never counted twice. The read and the
    write happen in one ``EntryStore.update``, so concurrent consumers of a
    key never spend the same token.

    Raises:
        pydantic.ValidationError: If ``capacity`` or ``refill_rate`` is not
            positive.
    """

    def __init__(
        self,
        store: EntryStore,
        *,
        capacity: int,
        refill_rate: float,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(store, clock=clock)
        self.config = TokenBucketConfig(capacity=capacity, refill_rate=refill_rate)

    @property
    def limit(self) -> int:
        return self.config.capacity

    def _ms_until_full(self, tokens: float) -> float:
        return (self.config.capacity - tokens) / self.config.refill_rate * MS_PER_SECOND

    def _ttl_ms(self, tokens: float) -> int:
        """Entry TTL: time to refill completely plus a 10% buffer, at least a minute."""
        return ceil(max(self._ms_until_full(tokens) * TTL_BUFFER_MULTIPLIER, MIN_TTL_MS))

    async def consume(self, key: str) -> RateLimitResult:
        now = self.clock.now()
        capacity = self.config.capacity
        refill_rate = self.config.refill_rate

        def take_token(entry: StoreEntry | None) -> EntryUpdate[RateLimitResult]:
            if entry is None or entry.tokens is None or entry.last_refill is None:
                tokens = float(capacity)
                last_refill = now
            else:
                # A clock that stepped backward refills nothing.
                elapsed_seconds = max(0, now - entry.last_refill) / MS_PER_SECOND
                tokens = min(float(capacity), entry.tokens + elapsed_seconds * refill_rate)
                last_refill = max(now, entry.last_refill)

            allowed = tokens >= 1
            if allowed:
                tokens -= 1

            ttl_ms = self._ttl_ms(tokens)
            state = StoreEntry(tokens=tokens, last_refill=last_refill, expires_at=now + ttl_ms)
            reset_at = ceil(now + self._ms_until_full(tokens))

            if allowed:
                result = RateLimitResult(
                    allowed=True,
                    limit=capacity,
                    remaining=floor(tokens),
                    reset_at=reset_at,
                )
            else:
                result = RateLimitResult(
                    allowed=False,
                    limit=capacity,
                    remaining=0,
                    reset_at=reset_at,
                    retry_after=ceil((1 - tokens) / refill_rate),
                )
            return EntryUpdate(value=result, entry=state, ttl_ms=ttl_ms)

        result = await self.store.update(key, take_token)
        if not result.allowed:
            logger.debug("token_bucket_empty", key=key, retry_after=result.retry_after)
        return result

    async def reset(self, key: str) -> None:
        """Delete the bucket; the next request sees a full bucket."""
        await self.store.delete(key)
