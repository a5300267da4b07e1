"""Error kinds and error types for booking, payment and refund operations.

Every failure the reconciliation layer can report belongs to one of the
ErrorKind members below. Repositories and calculators return them inside an
``Err`` (see ``models.result``); refund executors raise ``BookingError``.
The API layer maps both to ``{"error": message}`` with the kind's HTTP status.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ErrorKind(str, Enum):
    """Closed set of failure kinds."""

    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    POLICY_INELIGIBLE = "policy_ineligible"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    CONFLICT = "conflict"
    GATEWAY_FAILURE = "gateway_failure"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    INTERNAL = "internal"


# Default HTTP status per kind
ERROR_KIND_STATUS: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.VALIDATION: 400,
    ErrorKind.POLICY_INELIGIBLE: 400,
    ErrorKind.INSUFFICIENT_FUNDS: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.GATEWAY_FAILURE: 500,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.INTERNAL: 500,
}

# Fallback messages when a caller does not supply one
ERROR_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.NOT_FOUND: "The requested resource was not found",
    ErrorKind.VALIDATION: "The request is invalid",
    ErrorKind.POLICY_INELIGIBLE: (
        "This booking is not eligible for a refund based on our cancellation policy"
    ),
    ErrorKind.INSUFFICIENT_FUNDS: "The requested refund exceeds the refundable amount",
    ErrorKind.CONFLICT: "A refund is already in progress for this payment",
    ErrorKind.GATEWAY_FAILURE: "Payment provider error occurred",
    ErrorKind.UNAUTHORIZED: "You must be logged in to perform this action",
    ErrorKind.FORBIDDEN: "You are not authorized to access this booking",
    ErrorKind.INTERNAL: "An unexpected error occurred",
}


class ErrorResponse(BaseModel):
    """JSON body returned for failed booking operations."""

    model_config = ConfigDict(strict=True)

    error: str
    kind: ErrorKind
    details: Optional[dict[str, str]] = None


class BookingError(Exception):
    """A booking, payment or refund failure of a known kind."""

    def __init__(
        self,
        kind: ErrorKind,
        message: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        details: Optional[dict[str, str]] = None,
    ):
        self.kind = kind
        self.message = message or ERROR_MESSAGES[kind]
        self.status_code = status_code or ERROR_KIND_STATUS[kind]
        self.details = details
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"BookingError({self.kind.value}, {self.message!r}, status={self.status_code})"

    def to_response(self) -> ErrorResponse:
        """Convert to the API error body."""
        return ErrorResponse(error=self.message, kind=self.kind, details=self.details)


# Stripe error code to user-friendly message mapping
STRIPE_ERROR_MESSAGES: dict[str, str] = {
    "charge_already_refunded": "This payment has already been fully refunded.",
    "charge_disputed": "This payment is under dispute and cannot be refunded right now.",
    "amount_too_large": "The refund amount is larger than the remaining charge.",
    "card_declined": "Your card was declined. Please try a different card.",
    "expired_card": "Your card has expired. Please use a different card.",
    "insufficient_funds": "Your card has insufficient funds. Please try a different card.",
    "processing_error": "A processing error occurred. Please try again.",
    "rate_limit": "Too many requests. Please wait a moment and try again.",
}


def get_user_friendly_stripe_message(
    stripe_error_code: Optional[str],
    default_message: str = "Payment could not be processed. Please try again.",
) -> str:
    """Message shown to the customer for a Stripe error code, e.g. a disputed charge."""
    if stripe_error_code and stripe_error_code in STRIPE_ERROR_MESSAGES:
        return STRIPE_ERROR_MESSAGES[stripe_error_code]
    return default_message
