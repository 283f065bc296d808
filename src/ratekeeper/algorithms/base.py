"""Abstract base class for rate limiting algorithms.

This module defines the interface every algorithm implements, so the factory,
service and middleware can swap algorithms without code changes.

Key Design Decisions:
    1. Algorithms own state through an injected ``EntryStore``
       - The algorithm instance is long-lived and shared by every request
         for one rule
       - All per-key state lives in the store

    2. Algorithms don't know about HTTP
       - ``consume(key)`` takes an opaque key and returns a ``RateLimitResult``
       - No dependency on request/response objects

    3. Time comes from an injected ``Clock``
       - Tests drive time with ``ManualClock`` instead of sleeping

    4. Store failures propagate
       - ``StoreError`` is raised to the caller unchanged; the caller decides
         whether to fail open or closed

Usage:
    ```python
    from ratekeeper.algorithms.base import RateLimitAlgorithm

    class MyAlgorithm(RateLimitAlgorithm):
        async def consume(self, key):
            ...

        async def reset(self, key):
            ...
    ```
"""

from abc import ABC, abstractmethod

from ratekeeper.clock import Clock, resolve_clock
from ratekeeper.models import RateLimitResult
from ratekeeper.stores.base import EntryStore


class RateLimitAlgorithm(ABC):
    """Abstract base class for rate limiting algorithms.

    Contract Requirements (all implementations):
        1. ``consume`` decides admission and updates per-key state
        2. ``reset`` clears per-key state and is idempotent
        3. ``destroy`` releases the store's background resources
        4. ``StoreError`` raised by the store propagates unchanged

    Attributes:
        store: Backing entry store.
        clock: Time source.
    """

    def __init__(self, store: EntryStore, *, clock: Clock | None = None) -> None:
        self.store = store
        self.clock = resolve_clock(clock)

    @property
    @abstractmethod
    def limit(self) -> int:
        """Configured limit reported in results (window limit or capacity)."""
        ...

    @abstractmethod
    async def consume(self, key: str) -> RateLimitResult:
        """Attempt to admit one request for ``key``.

        Args:
            key: Opaque client key (IP address, user ID, API key...).

        Returns:
            The admission decision with remaining quota and reset time.

        Raises:
            StoreError: If the store cannot complete the operation.
        """
        ...

    @abstractmethod
    async def reset(self, key: str) -> None:
        """Clear rate limit state for ``key``.

        Raises:
            StoreError: If the store cannot complete the operation.
        """
        ...

    async def destroy(self) -> None:
        """Release resources held by the algorithm's store."""
        await self.store.destroy()
