"""Shared utilities: money, dates, retry and logging."""

from .dates import parse_datetime, to_iso, utc_now
from .logging import (
    CorrelationIdFilter,
    StructuredFormatter,
    clear_correlation_id,
    configure_logging,
    get_correlation_id,
    get_logger,
    log_payment_operation,
    log_refund_operation,
    log_webhook_event,
    set_correlation_id,
)
from .money import CENT, ZERO, Money, format_amount, from_minor_units, quantize, to_minor_units
from .retry import RetryOutcome, RetryPolicy, run_with_retry

__all__ = [
    "CENT",
    "ZERO",
    "Money",
    "format_amount",
    "from_minor_units",
    "quantize",
    "to_minor_units",
    "parse_datetime",
    "to_iso",
    "utc_now",
    "RetryOutcome",
    "RetryPolicy",
    "run_with_retry",
    "CorrelationIdFilter",
    "StructuredFormatter",
    "clear_correlation_id",
    "configure_logging",
    "get_correlation_id",
    "get_logger",
    "log_payment_operation",
    "log_refund_operation",
    "log_webhook_event",
    "set_correlation_id",
]
