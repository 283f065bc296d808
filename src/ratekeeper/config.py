"""Rate limiter configuration models.

This module defines the strategies, storage backends, per-algorithm
parameters and the per-endpoint rule structure. It carries NO
application-specific rules: applications build their own ``RateLimitRule``
mapping and hand it to the factory.

Key Design Decisions:
    1. Validation at construction
       - Non-positive limits, capacities and refill rates are rejected by
         Pydantic before any request is processed
       - Window strategies without a window and token bucket without a refill
         rate are rejected the same way

    2. Immutable rules (frozen Pydantic models)
       - Prevents accidental modification at runtime

    3. Environment settings via pydantic-settings
       - Deployment knobs (Redis URL, key prefix, sweep interval, logging)
         come from ``RATEKEEPER_*`` environment variables

Usage:
    ```python
    from ratekeeper.config import RateLimitRule, RateLimitStrategy, RateLimitStorage

    rules = {
        "POST /api/v1/auth/login": RateLimitRule(
            strategy=RateLimitStrategy.SLIDING_WINDOW,
            storage=RateLimitStorage.REDIS,
            limit=5,
            window="1m",
        ),
        "GET /api/v1/search": RateLimitRule(
            strategy=RateLimitStrategy.TOKEN_BUCKET,
            limit=20,
            refill_rate=2.0,
        ),
    }
    ```
"""

from enum import Enum
from functools import lru_cache
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ratekeeper.constants import (
    DEFAULT_CLEANUP_INTERVAL_MS,
    DEFAULT_KEY_PREFIX,
    MAX_INCREMENT_ATTEMPTS,
)
from ratekeeper.duration import parse_window


class RateLimitStrategy(str, Enum):
    """Rate limiter algorithm strategies.

    Attributes:
        FIXED_WINDOW: Clock-aligned counters. Cheap, allows 2x bursts at edges.
        SLIDING_WINDOW: Timestamp log over a trailing window. Exact, more memory.
        TOKEN_BUCKET: Continuous refill up to a capacity. Allows bursts.
    """

    FIXED_WINDOW = "fixed_window"
    SLIDING_WINDOW = "sliding_window"
    TOKEN_BUCKET = "token_bucket"


class RateLimitStorage(str, Enum):
    """Storage backend for rate limit state.

    Attributes:
        MEMORY: In-process dictionary (single process only).
        REDIS: Shared Redis instance (multi-process, multi-host).
    """

    MEMORY = "memory"
    REDIS = "redis"


class FixedWindowConfig(BaseModel):
    """Fixed window parameters."""

    model_config = ConfigDict(frozen=True)

    limit: int = Field(..., gt=0, description="Maximum requests per window")
    window_ms: int = Field(..., gt=0, description="Window length in milliseconds")


class SlidingWindowConfig(BaseModel):
    """Sliding window log parameters."""

    model_config = ConfigDict(frozen=True)

    limit: int = Field(..., gt=0, description="Maximum requests per trailing window")
    window_ms: int = Field(..., gt=0, description="Window length in milliseconds")


class TokenBucketConfig(BaseModel):
    """Token bucket parameters."""

    model_config = ConfigDict(frozen=True)

    capacity: int = Field(..., gt=0, description="Maximum tokens in the bucket")
    refill_rate: float = Field(..., gt=0, description="Tokens added per second")


class RateLimitRule(BaseModel):
    """Configuration for a single rate limit rule.

    One rule produces one independent store/algorithm pair.

    Attributes:
        strategy: Algorithm to use.
        storage: Storage backend for rule state.
        limit: Requests per window, or bucket capacity for token bucket.
        window: Human-readable window (``"15m"``). Required for window strategies.
        refill_rate: Tokens per second. Required for token bucket.
        enabled: Whether this rule is active.
        cleanup_interval_ms: Memory store sweep interval (0 disables the sweep).
        prefix: Redis key prefix for this rule's store.

    Examples:
        Login endpoint, 5 attempts per minute:
        ```python
        RateLimitRule(strategy=RateLimitStrategy.SLIDING_WINDOW, limit=5, window="1m")
        ```

        Search API, bursts of 20 then 2 per second:
        ```python
        RateLimitRule(strategy=RateLimitStrategy.TOKEN_BUCKET, limit=20, refill_rate=2.0)
        ```
    """

    model_config = ConfigDict(frozen=True)

    strategy: RateLimitStrategy = Field(
        RateLimitStrategy.FIXED_WINDOW, description="Rate limiter algorithm to use"
    )
    storage: RateLimitStorage = Field(
        RateLimitStorage.MEMORY, description="Storage backend for state"
    )
    limit: int = Field(..., gt=0, description="Requests per window or bucket capacity")
    window: str | None = Field(None, description="Window duration, e.g. '15m', '1h'")
    refill_rate: float | None = Field(
        None, gt=0, description="Token refill rate per second (token bucket only)"
    )
    enabled: bool = Field(True, description="Whether this rule is active")
    cleanup_interval_ms: int = Field(
        DEFAULT_CLEANUP_INTERVAL_MS,
        ge=0,
        description="Memory store sweep interval in milliseconds (0 disables)",
    )
    prefix: str = Field(DEFAULT_KEY_PREFIX, description="Redis key prefix")

    @field_validator("window")
    @classmethod
    def _window_must_parse(cls, value: str | None) -> str | None:
        if value is not None:
            parse_window(value)
        return value

    @model_validator(mode="after")
    def _check_strategy_parameters(self) -> Self:
        if self.strategy is RateLimitStrategy.TOKEN_BUCKET:
            if self.refill_rate is None:
                raise ValueError("Token bucket algorithm requires a positive refill_rate")
        elif self.window is None:
            raise ValueError(f"{self.strategy.value} algorithm requires a window")
        return self

    @property
    def window_ms(self) -> int | None:
        """Parsed window in milliseconds, ``None`` for token bucket rules."""
        return parse_window(self.window) if self.window is not None else None


class RateLimiterSettings(BaseSettings):
    """Deployment settings loaded from ``RATEKEEPER_*`` environment variables.

    Configuration precedence:
        1. Environment variables
        2. Default values
    """

    model_config = SettingsConfigDict(
        env_prefix="RATEKEEPER_",
        case_sensitive=False,
        extra="ignore",
    )

    redis_url: str | None = Field(
        default=None,
        description="Redis connection URL (e.g., redis://host:6379/0)",
    )
    key_prefix: str = Field(
        default=DEFAULT_KEY_PREFIX,
        description="Prefix prepended to every Redis key",
    )
    cleanup_interval_ms: int = Field(
        default=DEFAULT_CLEANUP_INTERVAL_MS,
        ge=0,
        description="Default memory store sweep interval (0 disables)",
    )
    max_increment_attempts: int = Field(
        default=MAX_INCREMENT_ATTEMPTS,
        gt=0,
        description="Optimistic increment attempts before IncrementConflictError",
    )
    fail_open: bool = Field(
        default=False,
        description="Admit requests when the store is unavailable (middleware)",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_json: bool = Field(
        default=False,
        description="Render logs as JSON instead of the console renderer",
    )


@lru_cache
def get_settings() -> RateLimiterSettings:
    """Return cached settings loaded from the environment."""
    return RateLimiterSettings()
