"""Rate limiter test configuration.

Fixtures shared by the unit tests in ``src/ratekeeper/tests/``. Time is
always driven by ``ManualClock`` and Redis by fakeredis (in-memory Redis
emulation), so no test sleeps or needs an external service.

Fixtures:
    - clock: ManualClock starting at a fixed, window-aligned instant
    - memory_store: MemoryStore with the sweep disabled
    - redis_server / redis_client: fakeredis server and async client
    - redis_store: RedisStore on the fakeredis client
    - store: memory_store or redis_store (parametrized)

Helpers:
    - mock_store: AsyncMock store whose ``update`` runs the callback on a
      fixed entry
"""

from collections.abc import AsyncIterator
from unittest.mock import AsyncMock

import fakeredis
import fakeredis.aioredis
import pytest
import pytest_asyncio

from ratekeeper.clock import ManualClock
from ratekeeper.models import StoreEntry
from ratekeeper.stores.memory import MemoryStore
from ratekeeper.stores.redis_store import RedisStore

# 2023-11-14T22:13:00Z, a whole number of minutes since the epoch.
START_MS = 1_699_999_980_000


@pytest.fixture
def clock() -> ManualClock:
    """Manual clock starting at START_MS."""
    return ManualClock(start=START_MS)


@pytest_asyncio.fixture
async def memory_store(clock: ManualClock) -> AsyncIterator[MemoryStore]:
    """MemoryStore without background sweep, destroyed after the test."""
    store = MemoryStore(cleanup_interval_ms=0, clock=clock)
    yield store
    await store.destroy()


@pytest.fixture
def redis_server() -> fakeredis.FakeServer:
    """Isolated fakeredis server (toggle ``connected`` to simulate outages)."""
    return fakeredis.FakeServer()


@pytest_asyncio.fixture
async def redis_client(
    redis_server: fakeredis.FakeServer,
) -> AsyncIterator[fakeredis.aioredis.FakeRedis]:
    """Async fakeredis client bound to ``redis_server``."""
    client = fakeredis.aioredis.FakeRedis(server=redis_server, decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def redis_store(redis_client: fakeredis.aioredis.FakeRedis, clock: ManualClock) -> RedisStore:
    """RedisStore on fakeredis with the manual clock."""
    return RedisStore(redis_client, clock=clock)


@pytest.fixture(params=["memory", "redis"])
def store(request, memory_store: MemoryStore, redis_store: RedisStore):
    """Each algorithm test runs once per store backend."""
    return memory_store if request.param == "memory" else redis_store


def mock_store(entry: StoreEntry | None = None) -> AsyncMock:
    """AsyncMock store whose ``update`` applies the callback to ``entry``.

    Every ``EntryUpdate`` the callback returns is appended to ``store.applied``.
    """
    store = AsyncMock()
    store.applied = []

    async def update(key, updater):
        change = updater(entry)
        store.applied.append(change)
        return change.value

    store.update.side_effect = update
    return store
