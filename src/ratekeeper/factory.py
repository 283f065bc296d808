"""Factory functions for rate limiter dependency injection.

This module creates concrete stores and algorithms from ``RateLimitRule``
objects and wires them into a ``RateLimiterService``.

**IMPORTANT**: This is a GENERIC factory. Rules are passed in by the
application; nothing here imports application configuration.

Usage:
    ```python
    from ratekeeper.factory import get_rate_limiter_service

    # Redis rules use a client built from RATEKEEPER_REDIS_URL
    rate_limiter = get_rate_limiter_service(RATE_LIMIT_RULES)
    ...
    await rate_limiter.close()
    ```
"""

from collections.abc import Mapping

import structlog
from redis.asyncio import Redis

from ratekeeper.algorithms.base import RateLimitAlgorithm
from ratekeeper.algorithms.fixed_window import FixedWindowAlgorithm
from ratekeeper.algorithms.sliding_window import SlidingWindowAlgorithm
from ratekeeper.algorithms.token_bucket import TokenBucketAlgorithm
from ratekeeper.clock import Clock
from ratekeeper.config import (
    RateLimiterSettings,
    RateLimitRule,
    RateLimitStorage,
    RateLimitStrategy,
    get_settings,
)
from ratekeeper.service import RateLimiterService
from ratekeeper.stores.base import EntryStore
from ratekeeper.stores.memory import MemoryStore
from ratekeeper.stores.redis_store import RedisStore

logger = structlog.get_logger(__name__)


def create_store(
    rule: RateLimitRule,
    *,
    redis_client: Redis | None = None,
    clock: Clock | None = None,
    settings: RateLimiterSettings | None = None,
    prefix: str | None = None,
) -> EntryStore:
    """Create the entry store selected by ``rule.storage``.

    Values the rule leaves at their defaults (sweep interval, key prefix) are
    taken from ``settings``.

    Args:
        rule: Rate limit rule.
        redis_client: Async Redis client. Required for Redis storage.
        clock: Time source shared with the algorithm.
        settings: Deployment settings. Defaults to ``get_settings()``.
        prefix: Explicit Redis key prefix, overriding rule and settings.

    Returns:
        A MemoryStore or RedisStore.

    Raises:
        ValueError: If Redis storage is selected without a client.
    """
    settings = settings or get_settings()

    if rule.storage is RateLimitStorage.MEMORY:
        cleanup_interval_ms = (
            rule.cleanup_interval_ms
            if "cleanup_interval_ms" in rule.model_fields_set
            else settings.cleanup_interval_ms
        )
        return MemoryStore(cleanup_interval_ms=cleanup_interval_ms, clock=clock)

    if redis_client is None:
        raise ValueError("redis_client required for redis storage")
    if prefix is None:
        prefix = rule.prefix if "prefix" in rule.model_fields_set else settings.key_prefix
    return RedisStore(
        redis_client,
        prefix=prefix,
        clock=clock,
        max_attempts=settings.max_increment_attempts,
    )


def create_algorithm(
    rule: RateLimitRule,
    store: EntryStore,
    *,
    clock: Clock | None = None,
) -> RateLimitAlgorithm:
    """Create the algorithm selected by ``rule.strategy`` over ``store``.

    For token bucket, ``rule.limit`` is the bucket capacity.
    """
    match rule.strategy:
        case RateLimitStrategy.FIXED_WINDOW:
            return FixedWindowAlgorithm(
                store, limit=rule.limit, window_ms=rule.window_ms, clock=clock
            )
        case RateLimitStrategy.SLIDING_WINDOW:
            return SlidingWindowAlgorithm(
                store, limit=rule.limit, window_ms=rule.window_ms, clock=clock
            )
        case RateLimitStrategy.TOKEN_BUCKET:
            return TokenBucketAlgorithm(
                store, capacity=rule.limit, refill_rate=rule.refill_rate, clock=clock
            )
    raise ValueError(f"Unsupported rate limit strategy: {rule.strategy!r}")


def get_rate_limiter_service(
    rules: Mapping[str, RateLimitRule],
    *,
    redis_client: Redis | None = None,
    clock: Clock | None = None,
    settings: RateLimiterSettings | None = None,
) -> RateLimiterService:
    """Create a RateLimiterService with one store/algorithm pair per rule.

    Disabled rules are skipped. Redis stores are namespaced per rule
    (``f"{prefix}{rule_name}:"``) so two rules never share a key.

    Args:
        rules: Application-specific rules keyed by endpoint.
        redis_client: Async Redis client for rules with Redis storage. Not
            closed by the service. When omitted, a client is created from
            ``settings.redis_url`` and closed by ``RateLimiterService.close``.
        clock: Time source shared by every store and algorithm.
        settings: Deployment settings. Defaults to ``get_settings()``.

    Returns:
        Configured RateLimiterService.

    Raises:
        ValueError: If a rule needs Redis and neither a client nor
            ``settings.redis_url`` was given.
    """
    settings = settings or get_settings()
    algorithms: dict[str, RateLimitAlgorithm] = {}
    owned_client: Redis | None = None

    for name, rule in rules.items():
        if not rule.enabled:
            logger.info("rate_limit_rule_disabled", endpoint=name)
            continue

        prefix = None
        if rule.storage is RateLimitStorage.REDIS:
            if redis_client is None and settings.redis_url:
                redis_client = owned_client = Redis.from_url(
                    settings.redis_url, decode_responses=True
                )
                logger.info("rate_limit_redis_client_created", endpoint=name)
            base = rule.prefix if "prefix" in rule.model_fields_set else settings.key_prefix
            prefix = f"{base}{name}:"

        store = create_store(
            rule, redis_client=redis_client, clock=clock, settings=settings, prefix=prefix
        )
        algorithms[name] = create_algorithm(rule, store, clock=clock)
        logger.debug(
            "rate_limit_rule_configured",
            endpoint=name,
            strategy=rule.strategy.value,
            storage=rule.storage.value,
            limit=rule.limit,
        )

    return RateLimiterService(algorithms, redis_client=owned_client)
