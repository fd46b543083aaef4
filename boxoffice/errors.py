"""Reservation error taxonomy and the result type returned by the core services.

Orchestrator and reconciler entry points return a ``Result`` instead of raising,
so callers branch on ``result.kind`` to tell a bad request (pick valid input)
apart from a conflict (pick another seat) or a missing booking.
"""

import enum
import functools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorKind(str, enum.Enum):
    """Kinds of business failure surfaced to callers."""

    VALIDATION = "VALIDATION"
    CONFLICT = "CONFLICT"
    NOT_FOUND = "NOT_FOUND"
    TRANSIENT = "TRANSIENT"


class ReservationError(Exception):
    """Base class for reservation failures."""

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ReservationError):
    """Bad input: unknown showing or seat, inactive seat, empty seat list."""

    kind = ErrorKind.VALIDATION


class ConflictError(ReservationError):
    """Seat already held or booked, or booking not in the expected state."""

    kind = ErrorKind.CONFLICT


class NotFoundError(ReservationError):
    """Draft, booking or payment id unknown."""

    kind = ErrorKind.NOT_FOUND


class TransientInfrastructureError(ReservationError):
    """Shared store, database or gateway unreachable."""

    kind = ErrorKind.TRANSIENT


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a core operation: a value or a ReservationError."""

    value: T | None = None
    error: ReservationError | None = None

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, error: ReservationError) -> "Result[T]":
        return cls(error=error)

    @property
    def is_ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> ErrorKind | None:
        return self.error.kind if self.error is not None else None

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


def returns_result(
    func: Callable[..., Awaitable[T]],
) -> Callable[..., Awaitable[Result[T]]]:
    """
    Wrap an async method so ReservationError becomes ``Result.fail``.

    A lost database connection surfaces as a TRANSIENT failure.
    """

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Result[T]:
        try:
            return Result.ok(await func(*args, **kwargs))
        except ReservationError as exc:
            return Result.fail(exc)
        except OperationalError as exc:
            logger.warning(f"Database unavailable in {func.__qualname__}: {exc.orig}")
            return Result.fail(database_unavailable(exc))

    return wrapper


def database_unavailable(exc: OperationalError) -> TransientInfrastructureError:
    error = TransientInfrastructureError(f"Database unavailable: {exc.orig}")
    error.__cause__ = exc
    return error
