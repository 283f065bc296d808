"""Rate limit middleware for FastAPI/Starlette.

This module provides HTTP middleware that enforces one rate limit algorithm
on every request it sees. It is HTTP glue only: key extraction, headers and
the 429 response live here, the admission decision lives in the algorithm.

Key Design Decisions:
    1. Middleware is HTTP-layer only (no algorithm logic)
       - Extracts the client key from the request
       - Calls ``algorithm.consume(key)``
       - Returns HTTP 429 or proceeds to the endpoint

    2. Standard HTTP rate limit headers
       - X-RateLimit-Limit: Maximum requests allowed
       - X-RateLimit-Remaining: Requests remaining (after this request)
       - X-RateLimit-Reset: Epoch seconds when the quota is fully available
       - Retry-After: Seconds until retry allowed (RFC 6585), on 429 only

    3. Explicit store failure policy
       - ``fail_open=False`` (default): store failure returns 503
       - ``fail_open=True``: store failure lets the request through

Usage:
    ```python
    from fastapi import FastAPI
    from ratekeeper.algorithms import SlidingWindowAlgorithm
    from ratekeeper.middleware import RateLimitMiddleware
    from ratekeeper.stores import MemoryStore

    app = FastAPI()
    app.add_middleware(
        RateLimitMiddleware,
        algorithm=SlidingWindowAlgorithm(MemoryStore(), limit=100, window_ms=60_000),
    )
    ```
"""

import inspect
from collections.abc import Awaitable, Callable

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from ratekeeper.algorithms.base import RateLimitAlgorithm
from ratekeeper.config import get_settings
from ratekeeper.errors import KeyExtractionError, StoreError
from ratekeeper.keys import KeyExtractor, ip_key_extractor
from ratekeeper.models import RateLimitResult

logger = structlog.get_logger(__name__)

SkipPredicate = Callable[[Request], bool]
LimitReachedHandler = Callable[[Request, RateLimitResult], Awaitable[None] | None]


def rate_limit_headers(
    result: RateLimitResult, *, retry_after: int | None = None
) -> dict[str, str]:
    """X-RateLimit-* headers (plus Retry-After on denial) for a result.

    ``retry_after`` overrides ``result.retry_after`` for the Retry-After header.
    """
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(max(0, result.remaining)),
        "X-RateLimit-Reset": str(result.reset_at_epoch_seconds),
    }
    if retry_after is None:
        retry_after = result.retry_after
    if not result.allowed and retry_after is not None:
        headers["Retry-After"] = str(retry_after)
    return headers


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Starlette middleware enforcing one rate limit algorithm.

    Responsibilities:
        - Skip requests matched by ``skip``
        - Extract the client key
        - Consume from the algorithm and attach the result to
          ``request.state.rate_limit``
        - Return 429 with headers and a JSON body when denied
        - Add rate limit headers to admitted responses

    skip_failed_requests:
        When enabled, an admitted request whose response has status >= 400
        resets the client's key. The algorithms expose no "undo one request"
        operation, so this clears the whole counter for the key.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        algorithm: RateLimitAlgorithm,
        key_extractor: KeyExtractor = ip_key_extractor,
        skip: SkipPredicate | None = None,
        on_limit_reached: LimitReachedHandler | None = None,
        skip_failed_requests: bool = False,
        headers: bool = True,
        message: str = "Too Many Requests",
        status_code: int = 429,
        fail_open: bool | None = None,
    ) -> None:
        """Initialize rate limit middleware.

        Args:
            app: FastAPI/Starlette application instance.
            algorithm: Algorithm shared by every request through this middleware.
            key_extractor: Maps a request to its rate limit key.
            skip: Requests for which this returns True bypass the limiter.
            on_limit_reached: Called (sync or async) for each denied request.
                Its errors are logged, never raised.
            skip_failed_requests: Reset the key after a >= 400 response.
            headers: Whether to send X-RateLimit-* and Retry-After headers.
            message: ``error`` field of the denial body.
            status_code: Status for denied requests.
            fail_open: Admit requests when the store fails. Defaults to the
                ``RATEKEEPER_FAIL_OPEN`` setting.
        """
        super().__init__(app)
        self.algorithm = algorithm
        self.key_extractor = key_extractor
        self.skip = skip
        self.on_limit_reached = on_limit_reached
        self.skip_failed_requests = skip_failed_requests
        self.send_headers = headers
        self.message = message
        self.status_code = status_code
        self.fail_open = get_settings().fail_open if fail_open is None else fail_open

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if self.skip is not None and self.skip(request):
            return await call_next(request)

        try:
            key = self.key_extractor(request)
        except KeyExtractionError as e:
            logger.warning("rate_limit_key_missing", path=request.url.path, error=str(e))
            return JSONResponse(status_code=400, content={"error": str(e)})

        try:
            result = await self.algorithm.consume(key)
        except StoreError as e:
            return await self._store_failure(request, call_next, key, e)

        request.state.rate_limit = result
        request.state.rate_limit_key = key

        if not result.allowed:
            return await self._limit_reached(request, key, result)

        response = await call_next(request)

        if self.send_headers:
            response.headers.update(rate_limit_headers(result))

        if self.skip_failed_requests and response.status_code >= 400:
            await self._reset_after_failure(key, response.status_code)

        return response

    async def _limit_reached(
        self, request: Request, key: str, result: RateLimitResult
    ) -> JSONResponse:
        logger.warning(
            "rate_limit_exceeded",
            key=key,
            path=request.url.path,
            method=request.method,
            retry_after=result.retry_after,
        )

        if self.on_limit_reached is not None:
            try:
                outcome = self.on_limit_reached(request, result)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(
                    "rate_limit_handler_failed",
                    key=key,
                    error_type=type(e).__name__,
                    error_message=str(e),
                )

        retry_after = result.retry_after
        if retry_after is None:
            retry_after = result.reset_after_seconds(self.algorithm.clock.now())

        body = {
            "error": self.message,
            "retry_after": retry_after,
            "limit": result.limit,
            "reset_at": result.reset_at_datetime.isoformat(timespec="milliseconds").replace(
                "+00:00", "Z"
            ),
        }
        headers = None
        if self.send_headers:
            headers = rate_limit_headers(result, retry_after=retry_after)
        return JSONResponse(status_code=self.status_code, content=body, headers=headers)

    async def _store_failure(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
        key: str,
        error: StoreError,
    ) -> Response:
        logger.error(
            "rate_limit_store_failed",
            key=key,
            path=request.url.path,
            fail_open=self.fail_open,
            error_type=type(error).__name__,
            error_message=str(error),
        )
        if self.fail_open:
            return await call_next(request)
        return JSONResponse(status_code=503, content={"error": "Rate limiter unavailable"})

    async def _reset_after_failure(self, key: str, status_code: int) -> None:
        try:
            await self.algorithm.reset(key)
        except StoreError as e:
            logger.warning(
                "rate_limit_reset_after_failure_failed",
                key=key,
                status_code=status_code,
                error_message=str(e),
            )
