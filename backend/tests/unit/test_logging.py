"""Unit tests for structured logging helpers."""

import logging

import pytest

from charter_bookings.utils.logging import (
    CorrelationIdFilter,
    StructuredFormatter,
    clear_correlation_id,
    get_correlation_id,
    get_logger,
    log_refund_operation,
    log_webhook_event,
    set_correlation_id,
)


@pytest.fixture(autouse=True)
def _no_correlation_id():
    clear_correlation_id()
    yield
    clear_correlation_id()


def _record(message: str = "hello") -> logging.LogRecord:
    return logging.LogRecord("test", logging.INFO, __file__, 1, message, None, None)


class TestCorrelationId:
    def test_generates_id_when_none_given(self) -> None:
        cid = set_correlation_id()

        assert cid
        assert get_correlation_id() == cid

    def test_keeps_given_id(self) -> None:
        assert set_correlation_id("req-1") == "req-1"

    def test_filter_tags_records(self) -> None:
        set_correlation_id("req-2")
        record = _record()

        CorrelationIdFilter().filter(record)

        assert record.correlation_id == "req-2"

    def test_formatter_prefix(self) -> None:
        formatted = StructuredFormatter("%(message)s").format(_record("refund issued"))

        assert formatted == "[no-correlation-id] refund issued"

    def test_get_logger_installs_filter_once(self) -> None:
        logger = get_logger("charter.test")
        get_logger("charter.test")

        assert sum(isinstance(f, CorrelationIdFilter) for f in logger.filters) == 1


class TestOperationLogs:
    def test_refund_operation_fields(self, caplog) -> None:
        logger = logging.getLogger("charter.refunds")

        with caplog.at_level(logging.INFO, logger="charter.refunds"):
            log_refund_operation(
                logger, "process_refund", booking_id="BK-1", payment_id="PAY-1", amount="50.00"
            )

        record = caplog.records[-1]
        assert record.levelno == logging.INFO
        assert record.getMessage() == (
            "Refund operation: process_refund | booking_id=BK-1 | payment_id=PAY-1 | amount=50.00"
        )
        assert record.booking_id == "BK-1"

    def test_refund_error_logs_at_error(self, caplog) -> None:
        logger = logging.getLogger("charter.refunds")

        with caplog.at_level(logging.INFO, logger="charter.refunds"):
            log_refund_operation(logger, "release_claim", payment_id="PAY-1", error="card_declined")

        assert caplog.records[-1].levelno == logging.ERROR

    @pytest.mark.parametrize(
        ("result", "level"),
        [("success", logging.INFO), ("duplicate", logging.WARNING), ("error", logging.ERROR)],
    )
    def test_webhook_levels(self, caplog, result, level) -> None:
        logger = logging.getLogger("charter.webhooks")

        with caplog.at_level(logging.INFO, logger="charter.webhooks"):
            log_webhook_event(logger, "refund.updated", "evt_1", result=result)

        record = caplog.records[-1]
        assert record.levelno == level
        assert record.getMessage() == f"Webhook event: refund.updated (evt_1) | result={result}"
