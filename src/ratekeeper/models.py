"""Rate limiter data models.

``StoreEntry`` is the per-key record persisted through an ``EntryStore``. Its
fields are all optional because each algorithm uses a different subset:

    fixed window    count (the window start is part of the storage key)
    sliding window  timestamps, expires_at
    token bucket    tokens, last_refill, expires_at

``EntryUpdate`` is what an ``EntryStore.update`` callback returns: the value
for the caller and, optionally, the entry to write.

``RateLimitResult`` is the admission decision returned by ``consume``. It is
never stored.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from math import ceil
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict

from ratekeeper.constants import MS_PER_SECOND

IncrementableField = Literal["count", "tokens"]

T = TypeVar("T")


class StoreEntry(BaseModel):
    """Per-key rate limit state.

    Frozen so that a store can hand out the instance it holds without a copy.
    Update with ``model_copy(update={...})``.

    Attributes:
        count: Requests counted in the current fixed window.
        timestamps: Sliding window log, oldest first.
        tokens: Token bucket level (fractional between requests).
        last_refill: Instant (ms) of the last token bucket recomputation.
        window_start: Start instant (ms) of the fixed window.
        expires_at: Instant (ms) after which the algorithm considers the
            entry stale.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    count: int | None = None
    timestamps: tuple[int, ...] | None = None
    tokens: float | None = None
    last_refill: int | None = None
    window_start: int | None = None
    expires_at: int | None = None

    def numeric(self, field: IncrementableField) -> int | float:
        """Current value of a numeric field, 0 when unset."""
        value = getattr(self, field)
        return 0 if value is None else value


@dataclass(frozen=True, slots=True, kw_only=True)
class EntryUpdate(Generic[T]):
    """Outcome of one ``EntryStore.update`` callback run.

    Attributes:
        value: Returned to the caller of ``update``.
        entry: Entry to write, or None to leave the key untouched.
        ttl_ms: Time to live of the written entry, from now.
    """

    value: T
    entry: StoreEntry | None = None
    ttl_ms: int = 0


@dataclass(frozen=True, slots=True, kw_only=True)
class RateLimitResult:
    """Result of a single ``consume`` call.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Configured limit (window limit or bucket capacity).
        remaining: Requests or whole tokens left, never negative.
        reset_at: Instant (ms) when the full quota is next available.
        retry_after: Whole seconds to wait before retrying. Only set when
            the request was denied.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after: int | None = None

    @property
    def reset_at_datetime(self) -> datetime:
        """``reset_at`` as an aware UTC datetime."""
        return datetime.fromtimestamp(self.reset_at / MS_PER_SECOND, tz=UTC)

    @property
    def reset_at_epoch_seconds(self) -> int:
        """``reset_at`` floored to whole epoch seconds (X-RateLimit-Reset)."""
        return self.reset_at // MS_PER_SECOND

    def reset_after_seconds(self, now: int) -> int:
        """Whole seconds from ``now`` (ms) until ``reset_at``, never negative."""
        return max(0, ceil((self.reset_at - now) / MS_PER_SECOND))
