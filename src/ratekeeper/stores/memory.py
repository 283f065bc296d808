"""In-memory entry store.

Concrete implementation using a Python dict with TTL tracking.
No external dependencies - suitable for single-process deployments and tests.

Expired entries are removed lazily on access and periodically by a sweep task
so memory stays bounded even when most keys are never seen again.
"""

import asyncio
import contextlib
from dataclasses import dataclass

import structlog

from ratekeeper.clock import Clock, resolve_clock
from ratekeeper.constants import DEFAULT_CLEANUP_INTERVAL_MS, MS_PER_SECOND
from ratekeeper.models import IncrementableField, StoreEntry
from ratekeeper.stores.base import EntryStore, EntryUpdater, T

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class _StoredItem:
    entry: StoreEntry
    expires_at: int


class MemoryStore(EntryStore):
    """In-memory dict store with TTL and a periodic sweep.

    Design Pattern:
        - Concrete implementation (no external dependencies)
        - Lazy expiry on read plus background sweep
        - Atomic increment and update via asyncio cooperative scheduling: no
          ``await`` happens between the read and the write

    The sweep is an ``asyncio.Task`` owned by the store. It starts at
    construction when an event loop is running, otherwise on the first store
    call. ``destroy()`` cancels it and drops all entries.

    Usage:
        ```python
        store = MemoryStore(cleanup_interval_ms=30_000)
        await store.set("k", StoreEntry(count=1), ttl_ms=60_000)
        await store.destroy()
        ```

    Note:
        Not shared across processes. Use RedisStore for multi-process or
        multi-host deployments.
    """

    def __init__(
        self,
        *,
        cleanup_interval_ms: int = DEFAULT_CLEANUP_INTERVAL_MS,
        clock: Clock | None = None,
    ) -> None:
        """Initialize in-memory store.

        Args:
            cleanup_interval_ms: Sweep interval in milliseconds. 0 disables
                the background sweep (lazy expiry still applies).
            clock: Time source. Defaults to the system clock.

        Raises:
            ValueError: If ``cleanup_interval_ms`` is negative.
        """
        if cleanup_interval_ms < 0:
            raise ValueError("cleanup_interval_ms must be >= 0")

        self._items: dict[str, _StoredItem] = {}
        self._clock = resolve_clock(clock)
        self._cleanup_interval_ms = cleanup_interval_ms
        self._sweep_task: asyncio.Task[None] | None = None
        self._destroyed = False

        with contextlib.suppress(RuntimeError):
            asyncio.get_running_loop()
            self._ensure_sweeper()

    def __len__(self) -> int:
        return len(self._items)

    @property
    def cleanup_interval_ms(self) -> int:
        return self._cleanup_interval_ms

    @property
    def sweeping(self) -> bool:
        """Whether the background sweep task is running."""
        return self._sweep_task is not None and not self._sweep_task.done()

    def _ensure_sweeper(self) -> None:
        if self._cleanup_interval_ms == 0 or self._destroyed or self.sweeping:
            return
        self._sweep_task = asyncio.get_running_loop().create_task(
            self._sweep_forever(), name="ratekeeper-memory-sweep"
        )

    async def _sweep_forever(self) -> None:
        interval = self._cleanup_interval_ms / MS_PER_SECOND
        while True:
            await asyncio.sleep(interval)
            removed = self.sweep()
            if removed:
                logger.debug("memory_store_swept", removed=removed, remaining=len(self))

    def sweep(self) -> int:
        """Remove every expired entry.

        Returns:
            Number of entries removed.
        """
        now = self._clock.now()
        expired = [key for key, item in self._items.items() if item.expires_at <= now]
        for key in expired:
            del self._items[key]
        return len(expired)

    def _live(self, key: str, now: int) -> _StoredItem | None:
        item = self._items.get(key)
        if item is None:
            return None
        if item.expires_at <= now:
            del self._items[key]
            return None
        return item

    async def get(self, key: str) -> StoreEntry | None:
        self._ensure_sweeper()
        item = self._live(key, self._clock.now())
        return item.entry if item is not None else None

    async def set(self, key: str, entry: StoreEntry, ttl_ms: int) -> None:
        self._ensure_sweeper()
        self._items[key] = _StoredItem(entry=entry, expires_at=self._clock.now() + ttl_ms)

    async def increment(
        self, key: str, field: IncrementableField, ttl_ms: int
    ) -> int | float:
        self._ensure_sweeper()
        now = self._clock.now()
        item = self._live(key, now)

        if item is None:
            value: int | float = 1
            self._items[key] = _StoredItem(
                entry=StoreEntry(**{field: value}), expires_at=now + ttl_ms
            )
        else:
            value = item.entry.numeric(field) + 1
            item.entry = item.entry.model_copy(update={field: value})
        return value

    async def update(self, key: str, updater: EntryUpdater[T]) -> T:
        self._ensure_sweeper()
        now = self._clock.now()
        item = self._live(key, now)

        change = updater(item.entry if item is not None else None)
        if change.entry is not None:
            self._items[key] = _StoredItem(entry=change.entry, expires_at=now + change.ttl_ms)
        return change.value

    async def delete(self, key: str) -> None:
        self._items.pop(key, None)

    async def destroy(self) -> None:
        """Cancel the sweep task and drop all entries. Safe to call twice."""
        self._destroyed = True
        task, self._sweep_task = self._sweep_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._items.clear()
