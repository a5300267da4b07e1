"""Payment records for bookings paid by phone or at a point-of-sale terminal.

The booking is usually written moments before the record is requested, so
the first reads may not see it yet. Recording is retried with backoff for
that case and for DynamoDB throttling, and the outcome is logged.
"""

import logging

from charter_bookings.models import BookingType, Err, Payment
from charter_bookings.utils.logging import log_payment_operation
from charter_bookings.utils.retry import RetryOutcome, RetryPolicy, run_with_retry

from .booking_service import BookingService
from .dynamodb import is_transient_error
from .payment_service import PaymentService

logger = logging.getLogger(__name__)


class BookingNotVisibleError(Exception):
    """The booking could not be read yet."""

    def __init__(self, booking_id: str) -> None:
        self.booking_id = booking_id
        super().__init__(f"Booking {booking_id} not found")


def _is_retryable(error: Exception) -> bool:
    return isinstance(error, BookingNotVisibleError) or is_transient_error(error)


class ManualPaymentRecorder:
    """Creates the completed payment record for a manually collected booking."""

    def __init__(
        self,
        bookings: BookingService,
        payments: PaymentService,
        policy: RetryPolicy | None = None,
    ) -> None:
        self.bookings = bookings
        self.payments = payments
        self.policy = policy or RetryPolicy(retry_on=_is_retryable)

    def record_payment(self, booking_id: str, booking_type: BookingType) -> Payment | None:
        """Record the payment once.

        Returns:
            The new payment, or None if it was recorded before

        Raises:
            BookingNotVisibleError: If the booking cannot be read yet
        """
        booking_result = self.bookings.get_booking(booking_id, booking_type, consistent=True)
        if isinstance(booking_result, Err):
            raise BookingNotVisibleError(booking_id)
        booking = booking_result.value

        payment = self.payments.create_manual_payment(booking)
        if payment is None:
            logger.info("Manual payment for booking %s already recorded", booking_id)
        self.bookings.mark_payment_collected(booking)
        return payment

    def record_with_retry(
        self, booking_id: str, booking_type: BookingType, sleep=None
    ) -> RetryOutcome[Payment | None]:
        """Record the payment, retrying transient failures per the policy."""
        kwargs = {"sleep": sleep} if sleep is not None else {}
        outcome = run_with_retry(
            lambda: self.record_payment(booking_id, booking_type),
            self.policy,
            "record_manual_payment",
            **kwargs,
        )

        payment = outcome.value
        log_payment_operation(
            logger,
            "record_manual_payment",
            payment_id=payment.payment_id if payment else None,
            booking_id=booking_id,
            amount=payment.amount if payment else None,
            status="recorded" if outcome.succeeded else "failed",
            error=str(outcome.error) if outcome.error else None,
            attempts=outcome.attempts,
        )
        return outcome
