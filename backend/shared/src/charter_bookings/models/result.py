"""Result type for operations whose failures are expected outcomes.

Ledger scans, refund allocation, price reconciliation and repository lookups
return ``Result[T]``: either ``Ok(value)`` or ``Err(error)``. Callers branch on
``isinstance(result, Err)`` and either propagate the error or unwrap the value.
Unexpected failures (bugs, gateway errors) are raised instead.

Usage:
    result = ledger.get_payments_to_refund(booking_id, amount, BookingType.TOUR)
    if isinstance(result, Err):
        return result
    plan = result.value
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar, Union

from .errors import BookingError, ErrorKind

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value."""

    value: T


@dataclass(frozen=True)
class Err:
    """Failed outcome carrying a BookingError."""

    error: BookingError

    @classmethod
    def of(
        cls,
        kind: ErrorKind,
        message: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
    ) -> "Err":
        """Build an Err from an error kind and message."""
        return cls(BookingError(kind, message, status_code=status_code))

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind

    @property
    def message(self) -> str:
        return self.error.message

    @property
    def status_code(self) -> int:
        return self.error.status_code


Result = Union[Ok[T], Err]


def unwrap(result: "Result[T]") -> T:
    """Return the value of an Ok or raise the BookingError of an Err."""
    if isinstance(result, Err):
        raise result.error
    return result.value
