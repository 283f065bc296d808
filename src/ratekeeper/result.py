"""Result types for railway-oriented programming.

The service layer reports store failures as data instead of exceptions so
each caller decides between failing open and failing closed.

Usage:
    result = await service.is_allowed(endpoint="POST /login", identifier="1.2.3.4")
    match result:
        case Success(value=None):
            ...  # no rule for this endpoint
        case Success(value=decision):
            ...
        case Failure(error=error):
            ...
"""

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")  # Success type
E = TypeVar("E")  # Error type


@dataclass(frozen=True, slots=True, kw_only=True)
class Success(Generic[T]):
    """Represents a successful operation result.

    Attributes:
        value: The successful result value.
    """

    value: T


@dataclass(frozen=True, slots=True, kw_only=True)
class Failure(Generic[E]):
    """Represents a failed operation result.

    Attributes:
        error: The error that occurred.
    """

    error: E


type Result[T, E] = Success[T] | Failure[E]
