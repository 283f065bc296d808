"""Unit tests for the Redis entry store with fakeredis.

This module tests RedisStore against fakeredis (in-memory Redis emulation)
with a ManualClock, so logical expiry is deterministic.

Test Strategy:
    - Real Redis commands (WATCH/MULTI/EXEC, PX, KEEPTTL) through fakeredis
    - Concurrent increments from several coroutines on one key
    - Failure injection: a pipeline that always conflicts, and a fake server
      that refuses connections
"""

import asyncio
import json

import pytest
from redis.exceptions import WatchError

from ratekeeper.errors import IncrementConflictError, StoreDataError, StoreUnavailableError
from ratekeeper.models import EntryUpdate, StoreEntry
from ratekeeper.stores.redis_store import RedisStore


class AlwaysConflictingPipeline:
    """Pipeline double whose EXEC always reports a concurrent write."""

    def __init__(self):
        self.executions = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return None

    async def watch(self, *keys):
        return True

    async def get(self, key):
        return None

    def multi(self):
        return None

    def set(self, *args, **kwargs):
        return self

    async def execute(self):
        self.executions += 1
        raise WatchError("Watched variable changed.")

    async def reset(self):
        return None


class TestRedisStoreRoundTrip:
    """Test encoding and TTL handling."""

    @pytest.mark.asyncio
    async def test_get_missing_key(self, redis_store):
        assert await redis_store.get("missing") is None

    @pytest.mark.asyncio
    async def test_every_field_round_trips(self, redis_store):
        entry = StoreEntry(
            count=7,
            timestamps=(1_000, 1_000, 2_500, 9_999),
            tokens=2.5,
            last_refill=1_234,
            window_start=60_000,
            expires_at=120_000,
        )
        await redis_store.set("k", entry, ttl_ms=10_000)

        loaded = await redis_store.get("k")

        assert loaded == entry
        assert isinstance(loaded.count, int)
        assert loaded.timestamps == (1_000, 1_000, 2_500, 9_999)

    @pytest.mark.asyncio
    async def test_whole_token_count_stays_float(self, redis_store):
        await redis_store.set("k", StoreEntry(tokens=4.0), ttl_ms=10_000)
        loaded = await redis_store.get("k")
        assert loaded.tokens == 4.0
        assert isinstance(loaded.tokens, float)

    @pytest.mark.asyncio
    async def test_keys_are_prefixed(self, redis_client, clock):
        store = RedisStore(redis_client, prefix="rl:login:", clock=clock)
        await store.set("1.2.3.4", StoreEntry(count=1), ttl_ms=10_000)

        raw = await redis_client.get("rl:login:1.2.3.4")

        assert json.loads(raw)["entry"] == {"count": 1}
        assert await redis_client.get("1.2.3.4") is None

    @pytest.mark.asyncio
    async def test_native_ttl_is_set(self, redis_store, redis_client):
        await redis_store.set("k", StoreEntry(count=1), ttl_ms=10_000)
        assert 0 < await redis_client.pttl("rl:k") <= 10_000

    @pytest.mark.asyncio
    async def test_logical_expiry_follows_injected_clock(self, redis_store, clock):
        await redis_store.set("k", StoreEntry(count=1), ttl_ms=1_000)

        clock.advance(999)
        assert await redis_store.get("k") is not None

        clock.advance(1)
        assert await redis_store.get("k") is None

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, redis_store):
        await redis_store.set("k", StoreEntry(count=1), ttl_ms=1_000)
        await redis_store.delete("k")
        await redis_store.delete("k")
        assert await redis_store.get("k") is None

    @pytest.mark.asyncio
    async def test_destroy_leaves_client_usable(self, redis_store, redis_client):
        await redis_store.destroy()
        assert await redis_client.ping()

    @pytest.mark.asyncio
    async def test_max_attempts_must_be_positive(self, redis_client):
        with pytest.raises(ValueError):
            RedisStore(redis_client, max_attempts=0)


class TestRedisStoreIncrement:
    """Test optimistic increment-or-create."""

    @pytest.mark.asyncio
    async def test_increment_creates_entry_with_ttl(self, redis_store, redis_client):
        assert await redis_store.increment("k", "count", ttl_ms=5_000) == 1
        assert await redis_store.get("k") == StoreEntry(count=1)
        assert 0 < await redis_client.pttl("rl:k") <= 5_000

    @pytest.mark.asyncio
    async def test_increment_existing_keeps_fields_and_expiry(
        self, redis_store, redis_client, clock
    ):
        await redis_store.set("k", StoreEntry(count=3, window_start=7), ttl_ms=10_000)
        clock.advance(4_000)

        assert await redis_store.increment("k", "count", ttl_ms=60_000) == 4

        assert await redis_store.get("k") == StoreEntry(count=4, window_start=7)
        assert 0 < await redis_client.pttl("rl:k") <= 10_000

        clock.advance(6_000)
        assert await redis_store.get("k") is None

    @pytest.mark.asyncio
    async def test_increment_after_logical_expiry_starts_fresh(self, redis_store, clock):
        await redis_store.increment("k", "count", ttl_ms=1_000)
        await redis_store.increment("k", "count", ttl_ms=1_000)
        clock.advance(1_000)

        assert await redis_store.increment("k", "count", ttl_ms=1_000) == 1

    @pytest.mark.asyncio
    async def test_concurrent_increments_are_not_lost(self, redis_store):
        # Each attempt can only lose to another coroutine's commit, so
        # max_attempts coroutines always finish within max_attempts tries.
        contenders = redis_store.max_attempts

        results = await asyncio.gather(
            *(redis_store.increment("hot", "count", ttl_ms=10_000) for _ in range(contenders))
        )

        assert sorted(results) == list(range(1, contenders + 1))
        assert (await redis_store.get("hot")).count == contenders

    @pytest.mark.asyncio
    async def test_conflict_exhaustion_raises(self, redis_store, redis_client, monkeypatch):
        pipeline = AlwaysConflictingPipeline()
        monkeypatch.setattr(redis_client, "pipeline", lambda transaction=True: pipeline)

        with pytest.raises(IncrementConflictError) as exc_info:
            await redis_store.increment("hot", "count", ttl_ms=1_000)

        assert exc_info.value.key == "hot"
        assert exc_info.value.attempts == 5
        assert pipeline.executions == 5


class TestRedisStoreUpdate:
    """Test optimistic read-modify-write."""

    @staticmethod
    def append(entry):
        logged = entry.timestamps if entry is not None else ()
        return EntryUpdate(
            value=len(logged) + 1, entry=StoreEntry(timestamps=(*logged, 1)), ttl_ms=5_000
        )

    @pytest.mark.asyncio
    async def test_update_writes_entry_with_fresh_ttl(self, redis_store, redis_client):
        assert await redis_store.update("k", self.append) == 1
        assert await redis_store.update("k", self.append) == 2

        assert await redis_store.get("k") == StoreEntry(timestamps=(1, 1))
        assert 0 < await redis_client.pttl("rl:k") <= 5_000

    @pytest.mark.asyncio
    async def test_update_without_entry_leaves_key_untouched(self, redis_store, redis_client):
        await redis_store.set("k", StoreEntry(count=3), ttl_ms=10_000)

        seen = await redis_store.update("k", lambda entry: EntryUpdate(value=entry))

        assert seen == StoreEntry(count=3)
        assert await redis_store.get("k") == StoreEntry(count=3)
        assert await redis_store.update("missing", lambda entry: EntryUpdate(value=entry)) is None
        assert await redis_client.exists("rl:missing") == 0

    @pytest.mark.asyncio
    async def test_concurrent_updates_are_not_lost(self, redis_store):
        contenders = redis_store.max_attempts

        results = await asyncio.gather(
            *(redis_store.update("hot", self.append) for _ in range(contenders))
        )

        assert sorted(results) == list(range(1, contenders + 1))
        assert len((await redis_store.get("hot")).timestamps) == contenders

    @pytest.mark.asyncio
    async def test_update_conflict_exhaustion_raises(
        self, redis_store, redis_client, monkeypatch
    ):
        pipeline = AlwaysConflictingPipeline()
        monkeypatch.setattr(redis_client, "pipeline", lambda transaction=True: pipeline)

        with pytest.raises(IncrementConflictError) as exc_info:
            await redis_store.update("hot", self.append)

        assert exc_info.value.attempts == 5
        assert pipeline.executions == 5


class TestRedisStoreInvalidValues:
    """Test values under the prefix that are not entry envelopes."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "[1, 2]",
            '{"entry": {"count": 1}}',
            '{"entry": {"count": "x"}, "expires_at": 1}',
        ],
    )
    async def test_invalid_values_raise_store_data_error(self, redis_store, redis_client, raw):
        await redis_client.set("rl:k", raw)

        with pytest.raises(StoreDataError) as exc_info:
            await redis_store.get("k")
        assert exc_info.value.key == "k"

        with pytest.raises(StoreDataError):
            await redis_store.increment("k", "count", ttl_ms=1_000)


class TestRedisStoreUnavailable:
    """Test that connection failures surface as StoreUnavailableError."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("operation", "call"),
        [
            ("get", lambda store: store.get("k")),
            ("set", lambda store: store.set("k", StoreEntry(count=1), 1_000)),
            ("increment", lambda store: store.increment("k", "count", 1_000)),
            ("delete", lambda store: store.delete("k")),
            (
                "update",
                lambda store: store.update("k", lambda entry: EntryUpdate(value=None)),
            ),
        ],
    )
    async def test_operations_raise_when_server_down(
        self, redis_store, redis_server, operation, call
    ):
        redis_server.connected = False

        with pytest.raises(StoreUnavailableError) as exc_info:
            await call(redis_store)

        assert exc_info.value.operation == operation
        assert exc_info.value.key == "k"
