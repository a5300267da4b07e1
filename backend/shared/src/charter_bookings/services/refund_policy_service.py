"""Refund policy service for cancellation refunds.

Cancellation policy, based on hours left before the tour or event starts:
- Full refund (100%): more than 12 hours before
- Partial refund (50%): 12 hours or less before
- No refund (0%): once the tour or event has started

Downgrade refunds from booking edits do not go through this policy; the
customer receives the exact price difference instead.
"""

from datetime import datetime
from decimal import Decimal

from charter_bookings.models import BookingError, ErrorKind, RefundCalculation
from charter_bookings.utils.dates import parse_datetime, utc_now
from charter_bookings.utils.money import ZERO, quantize


class RefundPolicyService:
    """Calculates cancellation refund amounts from the time left before departure.

    Policy tiers:
    - FULL (1.0): more than 12 hours before
    - PARTIAL (0.5): more than 0 and at most 12 hours before
    - NONE (0): started or passed
    """

    # Policy threshold (hours before departure)
    FULL_REFUND_HOURS = 12

    FULL_REFUND_RATE = 1.0
    PARTIAL_REFUND_RATE = 0.5
    NO_REFUND_RATE = 0.0

    def hours_until(self, event_date: datetime | str, now: datetime | None = None) -> float:
        """Hours between now and the event, negative once it has started.

        Raises:
            BookingError: VALIDATION if the event date cannot be parsed.
        """
        try:
            event_utc = parse_datetime(event_date)
        except (TypeError, ValueError) as e:
            raise BookingError(
                ErrorKind.VALIDATION, f"Invalid event date: {event_date}"
            ) from e

        current = parse_datetime(now) if now is not None else utc_now()
        return (event_utc - current).total_seconds() / 3600

    def calculate_refundable_amount(
        self,
        payment_amount: Decimal,
        event_date: datetime | str,
        now: datetime | None = None,
    ) -> RefundCalculation:
        """Calculate the cancellation refund for a payment amount.

        Args:
            payment_amount: Amount eligible for refund
            event_date: Start of the tour or event (ISO string or datetime)
            now: Current instant, defaults to the system clock

        Returns:
            RefundCalculation with amount, rate and hours until the event
        """
        hours = self.hours_until(event_date, now)

        if hours > self.FULL_REFUND_HOURS:
            rate = self.FULL_REFUND_RATE
        elif hours > 0:
            rate = self.PARTIAL_REFUND_RATE
        else:
            rate = self.NO_REFUND_RATE

        if rate == self.NO_REFUND_RATE:
            amount = ZERO
        elif rate == self.FULL_REFUND_RATE:
            amount = quantize(payment_amount)
        else:
            amount = quantize(Decimal(payment_amount) * Decimal(str(rate)))

        return RefundCalculation(amount=amount, percentage=rate, hours_until_event=hours)

    def get_policy_description(self) -> str:
        """Get human-readable description of the refund policy."""
        return (
            "Cancellation Policy:\n"
            "• More than 12 hours before departure: Full refund (100%)\n"
            "• 12 hours or less before departure: Partial refund (50%)\n"
            "• After departure: No refund"
        )
