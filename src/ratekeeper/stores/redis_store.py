"""Redis entry store with optimistic-concurrency increments.

This module implements the distributed entry store on top of ``redis.asyncio``.
Entries are JSON-encoded together with their absolute expiry so every field
round-trips exactly (ints stay ints, timestamp logs keep order and length).

Key Features:
    - Namespaced keys (default prefix ``"rl:"``)
    - Native ``PX`` expiry reclaims storage without a sweep
    - Stored expiry checked against the injected clock on reads, so a manual
      clock drives expiry in tests
    - ``increment`` and ``update`` via WATCH/MULTI/EXEC with bounded retries
    - Every Redis failure surfaces as ``StoreUnavailableError``, and a value
      that is not an entry envelope as ``StoreDataError``

Usage:
    ```python
    from redis.asyncio import Redis
    from ratekeeper.stores.redis_store import RedisStore

    redis_client = Redis.from_url("redis://localhost:6379/0")
    store = RedisStore(redis_client, prefix="rl:login:")
    count = await store.increment("1.2.3.4:1700000000000", "count", ttl_ms=60_000)
    ```
"""

import json
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from ratekeeper.clock import Clock, resolve_clock
from ratekeeper.constants import DEFAULT_KEY_PREFIX, MAX_INCREMENT_ATTEMPTS
from ratekeeper.errors import IncrementConflictError, StoreDataError, StoreUnavailableError
from ratekeeper.models import IncrementableField, StoreEntry
from ratekeeper.stores.base import EntryStore, EntryUpdater, T

logger = structlog.get_logger(__name__)


class RedisStore(EntryStore):
    """Redis-backed entry store.

    The Redis client is owned by the caller: ``destroy()`` does not close it,
    so one client can serve many stores (one per rule).

    Stored value format (JSON):
        ``{"entry": {<non-null StoreEntry fields>}, "expires_at": <ms>}``

    Attributes:
        prefix: Prepended to every key.
        max_attempts: WATCH/EXEC cycles ``increment`` and ``update`` try
            before giving up.
    """

    def __init__(
        self,
        redis_client: Redis,
        *,
        prefix: str = DEFAULT_KEY_PREFIX,
        clock: Clock | None = None,
        max_attempts: int = MAX_INCREMENT_ATTEMPTS,
    ) -> None:
        """Initialize Redis store.

        Args:
            redis_client: Async Redis client instance.
            prefix: Key namespace.
            clock: Time source. Defaults to the system clock.
            max_attempts: Optimistic increment attempts (must be positive).

        Raises:
            ValueError: If ``max_attempts`` is not positive.
        """
        if max_attempts <= 0:
            raise ValueError("max_attempts must be > 0")
        self._redis = redis_client
        self._clock = resolve_clock(clock)
        self.prefix = prefix
        self.max_attempts = max_attempts

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    @contextmanager
    def _unavailable(self, operation: str, key: str) -> Iterator[None]:
        try:
            yield
        except WatchError:
            raise
        except RedisError as e:
            logger.error(
                "redis_store_unavailable",
                operation=operation,
                key=key,
                error_type=type(e).__name__,
                error_message=str(e),
            )
            raise StoreUnavailableError(
                f"Redis {operation} failed for key '{key}': {e}",
                key=key,
                operation=operation,
            ) from e

    @staticmethod
    def _encode(entry: StoreEntry, expires_at: int) -> str:
        return json.dumps(
            {"entry": entry.model_dump(mode="json", exclude_none=True), "expires_at": expires_at}
        )

    def _decode(self, key: str, raw: Any) -> tuple[StoreEntry, int] | None:
        """Parse a stored value; None when absent or logically expired.

        Raises:
            StoreDataError: If the value is not an entry envelope.
        """
        if raw is None:
            return None
        try:
            envelope = json.loads(raw)
            expires_at = int(envelope["expires_at"])
            entry = StoreEntry.model_validate(envelope["entry"])
        except (ValueError, TypeError, KeyError) as e:
            logger.error(
                "redis_store_invalid_value",
                key=key,
                error_type=type(e).__name__,
                error_message=str(e),
            )
            raise StoreDataError(
                f"Stored value for key '{key}' is not a valid entry: {e}", key=key
            ) from e
        if expires_at <= self._clock.now():
            return None
        return entry, expires_at

    async def _optimistic(
        self,
        key: str,
        operation: str,
        plan: Callable[[tuple[StoreEntry, int] | None], tuple[T, str | None, int | None]],
    ) -> T:
        """Run ``plan`` on the watched value and commit its write with MULTI/EXEC.

        ``plan`` returns ``(value, payload, px)``. A None payload writes
        nothing; a None ``px`` keeps the key's current TTL. A concurrent write
        to the key between WATCH and EXEC aborts the transaction with
        ``WatchError`` and the whole read-compute-write cycle is retried.
        """
        redis_key = self._key(key)

        with self._unavailable(operation, key):
            async with self._redis.pipeline(transaction=True) as pipe:
                for attempt in range(1, self.max_attempts + 1):
                    try:
                        await pipe.watch(redis_key)
                        decoded = self._decode(key, await pipe.get(redis_key))
                        value, payload, px = plan(decoded)

                        if payload is None:
                            await pipe.reset()
                            return value

                        pipe.multi()
                        if px is None:
                            pipe.set(redis_key, payload, keepttl=True)
                        else:
                            pipe.set(redis_key, payload, px=px)
                        await pipe.execute()
                        return value
                    except WatchError:
                        logger.debug(
                            "redis_store_write_conflict",
                            key=key,
                            operation=operation,
                            attempt=attempt,
                        )
                        await pipe.reset()

        logger.warning(
            "redis_store_retries_exhausted",
            key=key,
            operation=operation,
            attempts=self.max_attempts,
        )
        raise IncrementConflictError(
            f"{operation.capitalize()} on key '{key}' lost {self.max_attempts} races",
            key=key,
            attempts=self.max_attempts,
        )

    async def get(self, key: str) -> StoreEntry | None:
        with self._unavailable("get", key):
            raw = await self._redis.get(self._key(key))
        decoded = self._decode(key, raw)
        return decoded[0] if decoded is not None else None

    async def set(self, key: str, entry: StoreEntry, ttl_ms: int) -> None:
        ttl_ms = max(1, ttl_ms)
        payload = self._encode(entry, self._clock.now() + ttl_ms)
        with self._unavailable("set", key):
            await self._redis.set(self._key(key), payload, px=ttl_ms)

    async def increment(
        self, key: str, field: IncrementableField, ttl_ms: int
    ) -> int | float:
        """Atomically add 1 to ``field`` using WATCH/MULTI/EXEC.

        An existing entry keeps its TTL; a new one expires ``ttl_ms`` from now.

        Raises:
            StoreUnavailableError: If Redis cannot be reached.
            StoreDataError: If the stored value is not a valid entry.
            IncrementConflictError: If all ``max_attempts`` cycles conflicted.
        """
        ttl_ms = max(1, ttl_ms)

        def plan(decoded: tuple[StoreEntry, int] | None) -> tuple[int | float, str, int | None]:
            if decoded is None:
                value: int | float = 1
                created = StoreEntry(**{field: value})
                return value, self._encode(created, self._clock.now() + ttl_ms), ttl_ms
            existing, expires_at = decoded
            value = existing.numeric(field) + 1
            updated = existing.model_copy(update={field: value})
            return value, self._encode(updated, expires_at), None

        return await self._optimistic(key, "increment", plan)

    async def update(self, key: str, updater: EntryUpdater[T]) -> T:
        """Read-modify-write one entry under WATCH/MULTI/EXEC.

        ``updater`` runs again on every retry, against the freshly read value.

        Raises:
            StoreUnavailableError: If Redis cannot be reached.
            StoreDataError: If the stored value is not a valid entry.
            IncrementConflictError: If all ``max_attempts`` cycles conflicted.
        """

        def plan(decoded: tuple[StoreEntry, int] | None) -> tuple[T, str | None, int | None]:
            change = updater(decoded[0] if decoded is not None else None)
            if change.entry is None:
                return change.value, None, None
            ttl_ms = max(1, change.ttl_ms)
            return change.value, self._encode(change.entry, self._clock.now() + ttl_ms), ttl_ms

        return await self._optimistic(key, "update", plan)

    async def delete(self, key: str) -> None:
        with self._unavailable("delete", key):
            await self._redis.delete(self._key(key))

    async def destroy(self) -> None:
        """No-op: the Redis client lifecycle is managed by the caller."""
