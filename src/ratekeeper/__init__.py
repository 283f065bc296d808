"""Generic admission-control (rate limiting) package.

Three algorithms over a pluggable entry store, with an injectable clock so
every time-dependent behavior is testable without sleeping.

**IMPORTANT**: This is a GENERIC component with NO application-specific rules.
Applications pass their own ``RateLimitRule`` mapping to the factory.

Architecture:
    - clock.py: Injectable time sources (SystemClock, ManualClock)
    - stores/: Entry stores (MemoryStore, RedisStore)
    - algorithms/: Fixed window, sliding window log, token bucket
    - config.py: Rule models and environment settings
    - factory.py: Builds stores and algorithms from rules
    - service.py: Endpoint-to-algorithm orchestrator returning Result values
    - middleware.py / keys.py: FastAPI/Starlette integration

Quick Start:
    ```python
    from ratekeeper import (
        RateLimitRule,
        RateLimitStrategy,
        get_rate_limiter_service,
    )

    rules = {
        "POST /api/v1/auth/login": RateLimitRule(
            strategy=RateLimitStrategy.SLIDING_WINDOW, limit=5, window="1m"
        ),
    }
    rate_limiter = get_rate_limiter_service(rules)
    result = await rate_limiter.is_allowed("POST /api/v1/auth/login", client_ip)
    ```
"""

# Time
from ratekeeper.clock import Clock, ManualClock, SystemClock

# Models and errors
from ratekeeper.errors import (
    ErrorCode,
    IncrementConflictError,
    KeyExtractionError,
    RateLimiterError,
    RateLimitError,
    StoreDataError,
    StoreError,
    StoreUnavailableError,
)
from ratekeeper.models import EntryUpdate, RateLimitResult, StoreEntry
from ratekeeper.result import Failure, Result, Success

# Configuration
from ratekeeper.config import (
    RateLimiterSettings,
    RateLimitRule,
    RateLimitStorage,
    RateLimitStrategy,
    get_settings,
)
from ratekeeper.duration import format_duration, parse_window

# Stores
from ratekeeper.stores import EntryStore, MemoryStore, RedisStore

# Algorithms
from ratekeeper.algorithms import (
    FixedWindowAlgorithm,
    RateLimitAlgorithm,
    SlidingWindowAlgorithm,
    TokenBucketAlgorithm,
)

# Service
from ratekeeper.factory import create_algorithm, create_store, get_rate_limiter_service
from ratekeeper.service import RateLimiterService

# Logging
from ratekeeper.logging_config import configure_logging

__all__ = [
    # Time
    "Clock",
    "ManualClock",
    "SystemClock",
    # Models and errors
    "ErrorCode",
    "IncrementConflictError",
    "KeyExtractionError",
    "RateLimiterError",
    "RateLimitError",
    "StoreDataError",
    "StoreError",
    "StoreUnavailableError",
    "EntryUpdate",
    "RateLimitResult",
    "StoreEntry",
    "Failure",
    "Result",
    "Success",
    # Configuration
    "RateLimiterSettings",
    "RateLimitRule",
    "RateLimitStorage",
    "RateLimitStrategy",
    "get_settings",
    "format_duration",
    "parse_window",
    # Stores
    "EntryStore",
    "MemoryStore",
    "RedisStore",
    # Algorithms
    "FixedWindowAlgorithm",
    "RateLimitAlgorithm",
    "SlidingWindowAlgorithm",
    "TokenBucketAlgorithm",
    # Service
    "create_algorithm",
    "create_store",
    "get_rate_limiter_service",
    "RateLimiterService",
    # Logging
    "configure_logging",
]
