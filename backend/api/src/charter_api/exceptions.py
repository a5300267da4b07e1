"""FastAPI exception handlers for converting domain errors to HTTP responses.

Every failure leaves the API as ``{"error": message}`` (plus ``kind`` for
booking errors) with the status of its ErrorKind:

- 400 Bad Request: validation, policy ineligibility, insufficient funds
- 401 Unauthorized: caller not identified
- 403 Forbidden: caller may not touch the booking
- 404 Not Found: booking, payment or catalog entry missing
- 409 Conflict: a refund on the payment is already in progress
- 500 Internal Server Error: gateway failures and unexpected errors

Usage:
    from charter_api.exceptions import register_exception_handlers
    register_exception_handlers(app)
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.status import HTTP_400_BAD_REQUEST, HTTP_500_INTERNAL_SERVER_ERROR

from charter_bookings.models import BookingError, get_user_friendly_stripe_message
from charter_bookings.services.stripe_service import StripeServiceError

logger = logging.getLogger(__name__)


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    """Convert a BookingError to its JSON error body and status code."""
    if exc.status_code >= HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("%s %s failed: %r", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(mode="json", exclude_none=True),
    )


async def stripe_error_handler(request: Request, exc: StripeServiceError) -> JSONResponse:
    """Report a gateway failure that escaped the services as a 500."""
    logger.error(
        "Stripe error on %s %s: %s (code=%s)",
        request.method,
        request.url.path,
        exc,
        exc.stripe_error_code,
    )
    message = get_user_friendly_stripe_message(exc.stripe_error_code, str(exc))
    return JSONResponse(
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": message, "kind": "gateway_failure"},
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report malformed request bodies as 400 with the offending fields."""
    fields = sorted(
        {".".join(str(p) for p in err["loc"] if p != "body") for err in exc.errors()}
    )
    return JSONResponse(
        status_code=HTTP_400_BAD_REQUEST,
        content={
            "error": f"Invalid request: {', '.join(fields) or 'body'}",
            "kind": "validation",
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app.

    Args:
        app: The FastAPI application instance.
    """
    app.add_exception_handler(BookingError, booking_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StripeServiceError, stripe_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
