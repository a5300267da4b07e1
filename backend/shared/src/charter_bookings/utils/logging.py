"""Structured logging utilities with correlation ID support.

Provides:
- Correlation ID context management for request tracing
- Structured logging formatter for consistent log output
- Helper functions for payment, refund and webhook logging

Usage:
    from charter_bookings.utils.logging import get_logger, set_correlation_id

    # In middleware/request handler:
    set_correlation_id(request.headers.get("X-Correlation-ID"))

    # In service code:
    logger = get_logger(__name__)
    log_refund_operation(logger, "process_refund", booking_id="BK-1", amount="50.00")
"""

import logging
import uuid
from contextvars import ContextVar
from typing import Any

# Context variable for correlation ID - thread-safe and async-safe
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def generate_correlation_id() -> str:
    """Generate a new UUID-based correlation ID."""
    return str(uuid.uuid4())


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set the correlation ID for the current request context.

    Args:
        correlation_id: Optional existing correlation ID. If None, generates new one.

    Returns:
        The correlation ID that was set
    """
    cid = correlation_id or generate_correlation_id()
    _correlation_id.set(cid)
    return cid


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def clear_correlation_id() -> None:
    """Clear the correlation ID context."""
    _correlation_id.set(None)


class CorrelationIdFilter(logging.Filter):
    """Logging filter that adds correlation_id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "no-correlation-id"
        return True


class StructuredFormatter(logging.Formatter):
    """Formatter that prefixes every line with the correlation ID."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = get_correlation_id() or "no-correlation-id"

        base = super().format(record)
        return f"[{record.correlation_id}] {base}"


def get_logger(name: str) -> logging.Logger:
    """Get a logger with correlation ID support.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if not any(isinstance(f, CorrelationIdFilter) for f in logger.filters):
        logger.addFilter(CorrelationIdFilter())

    return logger


def configure_logging(level: int = logging.INFO) -> None:
    """Install the structured formatter on the root logger.

    Safe to call more than once; an existing handler is reused.
    """
    root = logging.getLogger()
    root.setLevel(level)
    if not root.handlers:
        root.addHandler(logging.StreamHandler())
    for handler in root.handlers:
        handler.setFormatter(
            StructuredFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        if not any(isinstance(f, CorrelationIdFilter) for f in handler.filters):
            handler.addFilter(CorrelationIdFilter())


def _emit(
    logger: logging.Logger,
    title: str,
    context: dict[str, Any],
    *,
    failed: bool,
    warn: bool = False,
    hidden: tuple[str, ...] = ("operation",),
) -> None:
    msg_parts = [title]
    for key, value in context.items():
        if key not in hidden:
            msg_parts.append(f"{key}={value}")
    message = " | ".join(msg_parts)

    if failed:
        logger.error(message, extra=context)
    elif warn:
        logger.warning(message, extra=context)
    else:
        logger.info(message, extra=context)


def log_payment_operation(
    logger: logging.Logger,
    operation: str,
    *,
    payment_id: str | None = None,
    booking_id: str | None = None,
    amount: Any = None,
    status: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a payment operation with structured context.

    Args:
        logger: Logger instance
        operation: Operation name (e.g., "create_upcharge_intent")
        payment_id: Payment ID if available
        booking_id: Booking ID if available
        amount: Amount in the booking currency if relevant
        status: Payment/transaction status
        error: Error message if operation failed
        **extra: Additional context fields
    """
    context: dict[str, Any] = {"operation": operation}

    if payment_id:
        context["payment_id"] = payment_id
    if booking_id:
        context["booking_id"] = booking_id
    if amount is not None:
        context["amount"] = str(amount)
    if status:
        context["status"] = status
    if error:
        context["error"] = error

    context.update(extra)
    _emit(logger, f"Payment operation: {operation}", context, failed=bool(error))


def log_refund_operation(
    logger: logging.Logger,
    operation: str,
    *,
    booking_id: str | None = None,
    payment_id: str | None = None,
    refund_id: str | None = None,
    amount: Any = None,
    refund_type: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a refund step (claim, gateway call, finalize, release).

    Amounts are logged as strings so Decimal values keep their cents.
    """
    context: dict[str, Any] = {"operation": operation}

    if booking_id:
        context["booking_id"] = booking_id
    if payment_id:
        context["payment_id"] = payment_id
    if refund_id:
        context["refund_id"] = refund_id
    if amount is not None:
        context["amount"] = str(amount)
    if refund_type:
        context["refund_type"] = refund_type
    if error:
        context["error"] = error

    context.update(extra)
    _emit(logger, f"Refund operation: {operation}", context, failed=bool(error))


def log_webhook_event(
    logger: logging.Logger,
    event_type: str,
    event_id: str,
    *,
    booking_id: str | None = None,
    payment_id: str | None = None,
    result: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log the outcome of a Stripe webhook event.

    ``error`` results log at ERROR, ``duplicate`` and ``skipped`` at WARNING.
    """
    context: dict[str, Any] = {"event_type": event_type, "event_id": event_id}

    if result:
        context["result"] = result
    if booking_id:
        context["booking_id"] = booking_id
    if payment_id:
        context["payment_id"] = payment_id
    if error:
        context["error"] = error

    context.update(extra)
    _emit(
        logger,
        f"Webhook event: {event_type} ({event_id})",
        context,
        hidden=("event_type", "event_id"),
        failed=result == "error",
        warn=result in ("duplicate", "skipped"),
    )
