"""Error types for the rate limiter.

Two families live here:

Exceptions (raised by stores, propagated by algorithms):
    RateLimiterError
    ├── StoreError
    │   ├── StoreUnavailableError   (backend unreachable, timed out, refused)
    │   ├── StoreDataError          (stored value could not be decoded)
    │   └── IncrementConflictError  (optimistic update retries exhausted)
    └── KeyExtractionError          (middleware could not derive a key)

Data errors (returned inside ``Failure`` by ``RateLimiterService``):
    RateLimitError with an ``ErrorCode``.

A denied request is NOT an error. It is a successful check whose result has
``allowed=False``. These types describe system failures only, and none of them
is ever converted into an admission decision by the engine.
"""

from dataclasses import dataclass
from enum import Enum


class RateLimiterError(Exception):
    """Base class for all rate limiter exceptions."""


class StoreError(RateLimiterError):
    """A store operation failed for a reason other than policy."""

    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


class StoreUnavailableError(StoreError):
    """The backing store could not be reached or did not answer.

    Attributes:
        key: Store key being accessed (unprefixed).
        operation: Store operation name (get, set, increment, delete).
    """

    def __init__(self, message: str, *, key: str | None = None, operation: str) -> None:
        super().__init__(message, key=key)
        self.operation = operation


class StoreDataError(StoreError):
    """A stored value under the store's namespace is not a valid entry."""


class IncrementConflictError(StoreError):
    """Every optimistic increment or update attempt lost a race on one key.

    Attributes:
        key: Store key being incremented (unprefixed).
        attempts: Number of WATCH/EXEC cycles tried.
    """

    def __init__(self, message: str, *, key: str, attempts: int) -> None:
        super().__init__(message, key=key)
        self.attempts = attempts


class KeyExtractionError(RateLimiterError):
    """A request did not carry what the key extractor needs."""


class ErrorCode(Enum):
    """Machine-readable rate limiter error codes."""

    RATE_LIMIT_STORE_UNAVAILABLE = "rate_limit_store_unavailable"
    RATE_LIMIT_INCREMENT_CONFLICT = "rate_limit_increment_conflict"
    RATE_LIMIT_RESET_FAILED = "rate_limit_reset_failed"


@dataclass(frozen=True, slots=True, kw_only=True)
class RateLimitError:
    """Rate limit system failure carried in a ``Failure`` result.

    Attributes:
        code: ErrorCode enum.
        message: Human-readable message.
        details: Additional context (endpoint, identifier, etc.).
    """

    code: ErrorCode
    message: str
    details: dict[str, str] | None = None

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


def error_code_for(exc: StoreError) -> ErrorCode:
    """Map a store exception to the error code reported by the service."""
    if isinstance(exc, IncrementConflictError):
        return ErrorCode.RATE_LIMIT_INCREMENT_CONFLICT
    return ErrorCode.RATE_LIMIT_STORE_UNAVAILABLE
