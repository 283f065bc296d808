"""Rate limiting algorithms package.

Each algorithm implements the ``RateLimitAlgorithm`` interface and can be
swapped without changing the service or middleware.

Available Algorithms:
    - FixedWindowAlgorithm: Clock-aligned counters (cheapest, 2x edge bursts)
    - SlidingWindowAlgorithm: Timestamp log over a trailing window (exact)
    - TokenBucketAlgorithm: Continuous refill up to a capacity (bursty)

Usage:
    ```python
    from ratekeeper.algorithms import TokenBucketAlgorithm
    from ratekeeper.stores import MemoryStore

    algorithm = TokenBucketAlgorithm(MemoryStore(), capacity=20, refill_rate=2.0)
    result = await algorithm.consume("192.168.1.1")
    ```
"""

from ratekeeper.algorithms.base import RateLimitAlgorithm
from ratekeeper.algorithms.fixed_window import FixedWindowAlgorithm
from ratekeeper.algorithms.sliding_window import SlidingWindowAlgorithm
from ratekeeper.algorithms.token_bucket import TokenBucketAlgorithm

__all__ = [
    "RateLimitAlgorithm",
    "FixedWindowAlgorithm",
    "SlidingWindowAlgorithm",
    "TokenBucketAlgorithm",
]
