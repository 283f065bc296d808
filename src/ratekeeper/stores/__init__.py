"""Entry store backends.

Each backend implements the ``EntryStore`` interface and can be swapped
without changing algorithm or service code.

Available Stores:
    - MemoryStore: In-process dict with periodic sweep (single process)
    - RedisStore: redis.asyncio with optimistic increments and updates
      (distributed)

Usage:
    ```python
    from ratekeeper.stores import MemoryStore

    store = MemoryStore()
    count = await store.increment("client:1700000000000", "count", ttl_ms=60_000)
    ```
"""

from ratekeeper.stores.base import EntryStore
from ratekeeper.stores.memory import MemoryStore
from ratekeeper.stores.redis_store import RedisStore

__all__ = [
    "EntryStore",
    "MemoryStore",
    "RedisStore",
]
