"""Payment ledger for a booking: what was paid, what was refunded, what is left.

A booking can hold several completed payments, typically the original payment
plus upcharges from later edits. Refunds are split across them most recent
first, so an upcharge is given back before the original payment.
"""

import logging
from decimal import Decimal

from botocore.exceptions import BotoCoreError, ClientError

from charter_bookings.models import (
    AllocationPlan,
    BookingType,
    Err,
    ErrorKind,
    LedgerSummary,
    Ok,
    RefundAllocation,
    RefundStatus,
    Result,
)
from charter_bookings.utils.money import ZERO, format_amount

from .payment_service import PaymentService

logger = logging.getLogger(__name__)


class LedgerService:
    """Scans a booking's payments and allocates refunds across them."""

    def __init__(self, payments: PaymentService) -> None:
        self.payments = payments

    def calculate_refundable_amount(
        self, booking_id: str, booking_type: BookingType
    ) -> Result[LedgerSummary]:
        """Summarize the completed payments of a booking.

        Payments with a refund in flight count towards the totals but are never
        listed as refundable. Each refundable entry is a copy of the payment
        whose ``amount`` is its remaining balance.

        Args:
            booking_id: Booking to scan
            booking_type: Tour or event

        Returns:
            Ok(LedgerSummary), Err(NOT_FOUND, 400) without completed payments,
            or Err(INTERNAL, 500) if the payments cannot be read
        """
        try:
            payments = self.payments.get_completed_payments(booking_id, booking_type)
        except (ClientError, BotoCoreError):
            logger.exception("Failed to read payments for booking %s", booking_id)
            return Err.of(
                ErrorKind.INTERNAL,
                "Failed to calculate refundable amount",
                status_code=500,
            )

        if not payments:
            return Err.of(
                ErrorKind.NOT_FOUND,
                "No completed payments found for this booking",
                status_code=400,
            )

        total_paid = ZERO
        total_refunded = ZERO
        refundable = []

        for payment in payments:
            total_paid += payment.amount
            total_refunded += payment.refunded_amount
            remaining = payment.amount - payment.refunded_amount

            if remaining > 0 and payment.refund_status != RefundStatus.PENDING:
                refundable.append(payment.model_copy(update={"amount": remaining}))

        summary = LedgerSummary(
            total_paid=total_paid,
            total_already_refunded=total_refunded,
            available_for_refund=total_paid - total_refunded,
            refundable_payments=refundable,
            all_payments=payments,
        )
        logger.info(
            "Ledger for %s booking %s: paid=%s refunded=%s available=%s refundable_payments=%d",
            booking_type.value,
            booking_id,
            summary.total_paid,
            summary.total_already_refunded,
            summary.available_for_refund,
            len(refundable),
        )
        return Ok(summary)

    def get_payments_to_refund(
        self,
        booking_id: str,
        refund_amount: Decimal,
        booking_type: BookingType,
    ) -> Result[AllocationPlan]:
        """Split a refund across the booking's payments, most recent first.

        Payments without a payment intent cannot be refunded through the
        gateway and are skipped. The plan never adds up to more than
        ``refund_amount``.

        Returns:
            Ok(AllocationPlan) or Err(VALIDATION | INSUFFICIENT_FUNDS | ledger error)
        """
        if refund_amount <= 0:
            return Err.of(ErrorKind.VALIDATION, "Refund amount must be greater than zero")

        ledger_result = self.calculate_refundable_amount(booking_id, booking_type)
        if isinstance(ledger_result, Err):
            return ledger_result
        ledger = ledger_result.value

        if refund_amount > ledger.available_for_refund:
            return Err.of(
                ErrorKind.INSUFFICIENT_FUNDS,
                f"Refund amount {format_amount(refund_amount)} exceeds available "
                f"refund amount {format_amount(ledger.available_for_refund)}",
            )

        remaining_to_allocate = Decimal(refund_amount)
        allocations: list[RefundAllocation] = []

        for payment in ledger.refundable_payments:
            if remaining_to_allocate <= 0:
                break
            if not payment.stripe_payment_intent_id:
                logger.warning(
                    "Skipping payment %s without payment intent", payment.payment_id
                )
                continue

            allocated = min(remaining_to_allocate, payment.amount)
            allocations.append(
                RefundAllocation(
                    payment=payment,
                    payment_intent_id=payment.stripe_payment_intent_id,
                    refund_amount=allocated,
                )
            )
            remaining_to_allocate -= allocated

        if remaining_to_allocate > 0:
            return Err.of(
                ErrorKind.INSUFFICIENT_FUNDS,
                "Unable to process full refund. Missing "
                f"{format_amount(remaining_to_allocate)} in refundable payments",
            )

        return Ok(
            AllocationPlan(
                payments_to_refund=allocations,
                total_refund_amount=Decimal(refund_amount),
                available_for_refund=ledger.available_for_refund,
            )
        )
