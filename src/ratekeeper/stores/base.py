"""Abstract base class for rate limiter entry stores.

This module defines the interface that every entry store must follow. Stores
are swappable: algorithms only ever talk to ``EntryStore``, so the same
algorithm instance logic runs against the in-process dictionary or a shared
Redis deployment.

Key Design Decisions:
    1. Entry-level API, not algorithm-level
       - Stores keep ``StoreEntry`` records with a TTL
       - They know nothing about windows, buckets or limits

    2. Two atomic primitives
       - ``increment`` adds 1 to a numeric field
       - ``update`` runs a caller-supplied read-modify-write on one entry
       - Memory: no ``await`` between read and write
       - Redis: WATCH/MULTI/EXEC with bounded retries

    3. Lazy expiry plus reclamation
       - ``get`` never returns an entry past its expiry
       - Memory reclaims with a periodic sweep, Redis with native TTL

    4. Failures propagate
       - A store that cannot answer raises ``StoreUnavailableError``
       - Unavailability is never reported as "absent"

Usage:
    ```python
    from ratekeeper.stores.base import EntryStore

    class MyStore(EntryStore):
        async def get(self, key):
            ...
    ```
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TypeVar

from ratekeeper.models import EntryUpdate, IncrementableField, StoreEntry

T = TypeVar("T")

EntryUpdater = Callable[[StoreEntry | None], EntryUpdate[T]]


class EntryStore(ABC):
    """Key-value store of ``StoreEntry`` records with per-key expiry.

    Contract Requirements (all implementations):
        1. ``get`` MUST treat an expired entry as absent
        2. ``set`` MUST replace the entry and reset its expiry
        3. ``increment`` and ``update`` MUST be atomic for concurrent callers
           on one key
        4. ``delete`` and ``destroy`` MUST be idempotent
        5. Backend failures MUST raise ``StoreError`` subclasses
    """

    @abstractmethod
    async def get(self, key: str) -> StoreEntry | None:
        """Return the live entry for ``key``.

        Args:
            key: Store key.

        Returns:
            The entry, or None if missing or expired.

        Raises:
            StoreUnavailableError: If the backend cannot be reached.
        """
        ...

    @abstractmethod
    async def set(self, key: str, entry: StoreEntry, ttl_ms: int) -> None:
        """Replace the entry for ``key`` and expire it ``ttl_ms`` from now.

        Args:
            key: Store key.
            entry: Entry to store.
            ttl_ms: Time to live in milliseconds.

        Raises:
            StoreUnavailableError: If the backend cannot be reached.
        """
        ...

    @abstractmethod
    async def increment(
        self, key: str, field: IncrementableField, ttl_ms: int
    ) -> int | float:
        """Atomically add 1 to a numeric field and return the new value.

        Missing or expired entries count as 0. When the entry is created by
        this call it holds only ``field`` and expires ``ttl_ms`` from now.
        When it already existed, its other fields and its expiry are kept.

        Args:
            key: Store key.
            field: Numeric field to increment.
            ttl_ms: Time to live for a newly created entry.

        Returns:
            The post-increment value.

        Raises:
            StoreUnavailableError: If the backend cannot be reached.
            IncrementConflictError: If optimistic retries are exhausted.
        """
        ...

    @abstractmethod
    async def update(self, key: str, updater: EntryUpdater[T]) -> T:
        """Atomically read, transform and optionally replace one entry.

        ``updater`` receives the live entry (None when missing or expired) and
        returns an ``EntryUpdate``. When its ``entry`` is set, that entry is
        stored with a fresh ``ttl_ms`` expiry; otherwise the key is left as
        is. No other writer can change the key between the read and the write.

        ``updater`` must be a pure function of its argument: a store may call
        it more than once when a concurrent write forces a retry.

        Args:
            key: Store key.
            updater: Read-modify-write callback.

        Returns:
            The ``value`` of the ``EntryUpdate`` that was applied.

        Raises:
            StoreUnavailableError: If the backend cannot be reached.
            IncrementConflictError: If optimistic retries are exhausted.
        """
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key`` immediately. Deleting a missing key is a no-op."""
        ...

    @abstractmethod
    async def destroy(self) -> None:
        """Release background resources held by the store."""
        ...
