"""Rate limiter service orchestrator.

This module provides the ``RateLimiterService`` facade that maps endpoints to
independent algorithm instances and turns store failures into ``Result``
values.

Key Design Decisions:
    1. Dependency Injection
       - Algorithms (each with its own store) are injected via constructor
       - Enables testing with mocks
       - ``get_rate_limiter_service`` builds them from rules

    2. No HTTP/FastAPI dependencies
       - Takes generic parameters (endpoint, identifier)
       - Middleware or handlers turn results into responses

    3. Result types instead of fail-open
       - Store failures come back as ``Failure(RateLimitError)``
       - The caller chooses to admit (fail open) or reject (fail closed)

Usage:
    ```python
    from ratekeeper.factory import get_rate_limiter_service
    from ratekeeper.result import Failure, Success

    rate_limiter = get_rate_limiter_service(rules, redis_client=redis_client)

    match await rate_limiter.is_allowed("POST /api/v1/auth/login", client_ip):
        case Success(value=result) if result is not None and not result.allowed:
            raise HTTPException(
                status_code=429,
                headers={"Retry-After": str(result.retry_after)},
            )
        case Failure(error=error):
            logger.error("rate limiter unavailable", error=str(error))
    ```
"""

import time
from collections.abc import Mapping

import structlog
from redis.asyncio import Redis

from ratekeeper.algorithms.base import RateLimitAlgorithm
from ratekeeper.errors import ErrorCode, RateLimitError, StoreError, error_code_for
from ratekeeper.models import RateLimitResult
from ratekeeper.result import Failure, Result, Success

logger = structlog.get_logger(__name__)


class RateLimiterService:
    """Rate limiter service orchestrator.

    Each endpoint has its own algorithm instance and store, so rules never
    share state. The identifier is passed to the algorithm as the key.

    Examples:
        ```python
        service = RateLimiterService({"GET /search": algorithm})
        result = await service.is_allowed("GET /search", "192.168.1.1")
        ```
    """

    def __init__(
        self,
        algorithms: Mapping[str, RateLimitAlgorithm],
        *,
        redis_client: Redis | None = None,
    ) -> None:
        """Initialize rate limiter service.

        Args:
            algorithms: Mapping of endpoint identifiers to algorithm instances.
            redis_client: Redis client owned by the service, closed by
                ``close()``. Leave unset for clients the caller manages.
        """
        self.algorithms: dict[str, RateLimitAlgorithm] = dict(algorithms)
        self._redis_client = redis_client

    def get_algorithm(self, endpoint: str) -> RateLimitAlgorithm | None:
        """Return the algorithm configured for ``endpoint``, if any."""
        return self.algorithms.get(endpoint)

    async def is_allowed(
        self, endpoint: str, identifier: str
    ) -> Result[RateLimitResult | None, RateLimitError]:
        """Check if a request is allowed and consume quota if so.

        Args:
            endpoint: Endpoint identifier (e.g., "POST /api/v1/auth/login").
            identifier: Client identifier (IP address, user ID, API key).

        Returns:
            Success(None) if no rule applies to ``endpoint``.
            Success(RateLimitResult) with the admission decision.
            Failure(RateLimitError) if the store failed.
        """
        algorithm = self.algorithms.get(endpoint)
        if algorithm is None:
            logger.debug("rate_limit_no_rule", endpoint=endpoint, identifier=identifier)
            return Success(value=None)

        start_time = time.perf_counter()
        try:
            result = await algorithm.consume(identifier)
        except StoreError as e:
            execution_time_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                "rate_limit_check_failed",
                endpoint=endpoint,
                identifier=identifier,
                error_type=type(e).__name__,
                error_message=str(e),
                execution_time_ms=round(execution_time_ms, 2),
            )
            return Failure(
                error=RateLimitError(
                    code=error_code_for(e),
                    message=f"Rate limit check failed for {endpoint}",
                    details={"endpoint": endpoint, "identifier": identifier, "error": str(e)},
                )
            )

        execution_time_ms = round((time.perf_counter() - start_time) * 1000, 2)
        if result.allowed:
            logger.debug(
                "rate_limit_allowed",
                endpoint=endpoint,
                identifier=identifier,
                limit=result.limit,
                remaining=result.remaining,
                execution_time_ms=execution_time_ms,
            )
        else:
            logger.warning(
                "rate_limit_exceeded",
                endpoint=endpoint,
                identifier=identifier,
                limit=result.limit,
                retry_after=result.retry_after,
                execution_time_ms=execution_time_ms,
            )
        return Success(value=result)

    async def reset(self, endpoint: str, identifier: str) -> Result[None, RateLimitError]:
        """Clear rate limit state for ``identifier`` on ``endpoint``.

        Resetting an endpoint without a rule is a successful no-op.
        """
        algorithm = self.algorithms.get(endpoint)
        if algorithm is None:
            return Success(value=None)

        try:
            await algorithm.reset(identifier)
        except StoreError as e:
            logger.error(
                "rate_limit_reset_failed",
                endpoint=endpoint,
                identifier=identifier,
                error_type=type(e).__name__,
                error_message=str(e),
            )
            return Failure(
                error=RateLimitError(
                    code=ErrorCode.RATE_LIMIT_RESET_FAILED,
                    message=f"Rate limit reset failed for {endpoint}",
                    details={"endpoint": endpoint, "identifier": identifier, "error": str(e)},
                )
            )

        logger.info("rate_limit_reset", endpoint=endpoint, identifier=identifier)
        return Success(value=None)

    async def close(self) -> None:
        """Destroy every algorithm (and its store), then close an owned client."""
        for algorithm in self.algorithms.values():
            await algorithm.destroy()
        if self._redis_client is not None:
            await self._redis_client.aclose()
            self._redis_client = None
