"""Booking cancellation: ledger scan, policy, allocation, refund, status update."""

import logging
from datetime import datetime

from charter_bookings.models import (
    Booking,
    BookingError,
    BookingStatus,
    BookingType,
    Err,
    ErrorKind,
    Ok,
    RefundResult,
    Result,
)
from charter_bookings.utils.logging import log_refund_operation

from .booking_service import BookingService
from .ledger_service import LedgerService
from .refund_policy_service import RefundPolicyService
from .refund_service import RefundService
from .stripe_service import StripeServiceError

logger = logging.getLogger(__name__)


class CancellationService:
    """Cancels a booking and refunds what the cancellation policy allows."""

    def __init__(
        self,
        bookings: BookingService,
        ledger: LedgerService,
        refunds: RefundService,
        policy: RefundPolicyService | None = None,
    ) -> None:
        self.bookings = bookings
        self.ledger = ledger
        self.refunds = refunds
        self.policy = policy or refunds.policy

    def cancel_booking(
        self,
        booking_id: str,
        booking_type: BookingType,
        *,
        user_id: str,
        is_admin: bool = False,
        now: datetime | None = None,
    ) -> Result[RefundResult]:
        """Cancel a booking on behalf of its owner or an admin.

        The policy is applied once to the booking's total available balance;
        the resulting amount is then split across payments, most recent first.
        The booking is only marked cancelled after the refunds were issued.

        Args:
            booking_id: Booking to cancel
            booking_type: Tour or event
            user_id: Caller's user ID
            is_admin: Whether the caller is an administrator
            now: Current instant for the policy, defaults to the system clock

        Returns:
            Ok(RefundResult) or Err with the reason the booking was not cancelled
        """
        booking_result = self.bookings.get_booking(booking_id, booking_type)
        if isinstance(booking_result, Err):
            return booking_result
        booking = booking_result.value

        is_owner = booking.user_id is not None and str(booking.user_id) == str(user_id)
        if not is_owner and not is_admin:
            return Err.of(ErrorKind.FORBIDDEN, "You are not authorized to cancel this booking")

        if booking.status == BookingStatus.CANCELLED:
            return Err.of(ErrorKind.VALIDATION, "Booking is already cancelled")

        ledger_result = self.ledger.calculate_refundable_amount(booking_id, booking_type)
        if isinstance(ledger_result, Err):
            return ledger_result
        available = ledger_result.value.available_for_refund
        if available <= 0:
            return Err.of(
                ErrorKind.VALIDATION, "No refundable amount available for this booking"
            )

        date_result = self.bookings.get_event_date(booking)
        if isinstance(date_result, Err):
            return date_result
        event_date = date_result.value

        calculation = self.policy.calculate_refundable_amount(available, event_date, now)
        if calculation.amount <= 0:
            return Err(self._ineligible(booking))

        plan_result = self.ledger.get_payments_to_refund(
            booking_id, calculation.amount, booking_type
        )
        if isinstance(plan_result, Err):
            return plan_result
        allocations = plan_result.value.payments_to_refund
        if not allocations:
            return Err.of(
                ErrorKind.VALIDATION, "No refundable payments found for this booking"
            )

        reason = f"{booking_type.value.capitalize()} Booking Cancelled"
        try:
            if len(allocations) == 1:
                allocation = allocations[0]
                refund = self.refunds.process_refund(
                    payment_intent_id=allocation.payment_intent_id,
                    payment_id=allocation.payment.payment_id,
                    payment_amount=allocation.payment.amount,
                    booking_id=booking_id,
                    event_date=event_date,
                    reason=reason,
                    booking_type=booking_type,
                    approved_amount=calculation.amount,
                )
            else:
                refund = self.refunds.process_multi_payment_refund(
                    payments_to_refund=allocations,
                    booking_id=booking_id,
                    event_date=event_date,
                    reason=reason,
                    booking_type=booking_type,
                    is_downgrade=False,
                )
        except BookingError as e:
            if e.kind == ErrorKind.POLICY_INELIGIBLE:
                return Err(self._ineligible(booking))
            return Err(e)
        except StripeServiceError as e:
            return Err.of(ErrorKind.GATEWAY_FAILURE, str(e))

        self.bookings.update_status(booking, BookingStatus.CANCELLED)

        log_refund_operation(
            logger,
            "cancel_booking",
            booking_id=booking_id,
            refund_id=refund.refund_id,
            amount=refund.amount,
            booking_reference=booking.booking_reference,
            policy_rate=calculation.percentage,
            hours_until_event=round(calculation.hours_until_event, 2),
        )
        return Ok(refund)

    @staticmethod
    def _ineligible(booking: Booking) -> BookingError:
        return BookingError(
            ErrorKind.POLICY_INELIGIBLE,
            "This booking is not eligible for a refund based on our cancellation "
            f"policy. The {booking.booking_type.value} may have already started or passed.",
        )
