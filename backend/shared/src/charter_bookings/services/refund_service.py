"""Refund execution against Stripe with per-payment refund state.

Each refund follows the same steps for one payment:

1. check the new refunded total stays within the payment amount
2. claim the payment (conditional update to ``refund_status = pending``)
3. create the Stripe refund
4. finalize the claim with the new refunded total, refund ID and a note

If Stripe rejects the refund the claim is released (``refund_status = failed``)
and the error is re-raised. The webhook handler later moves ``pending`` to
``refunded`` or ``failed`` once Stripe settles the refund.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable

from charter_bookings.models import (
    BookingError,
    BookingType,
    ErrorKind,
    IssuedRefund,
    Payment,
    RefundAllocation,
    RefundResult,
    RefundType,
)
from charter_bookings.utils.logging import log_refund_operation
from charter_bookings.utils.money import ZERO, format_amount, quantize, to_minor_units

from .payment_service import PaymentService, append_note
from .refund_policy_service import RefundPolicyService
from .stripe_service import StripeService, StripeServiceError

logger = logging.getLogger(__name__)

NOT_ELIGIBLE_MESSAGE = "This booking is not eligible for a refund"


def _format_percentage(percentage: float) -> str:
    return f"{round(percentage, 2):g}%"


class RefundService:
    """Issues refunds for one or several payments of a booking."""

    def __init__(
        self,
        payments: PaymentService,
        stripe_service: StripeService,
        policy: RefundPolicyService | None = None,
    ) -> None:
        """Initialize refund service.

        Args:
            payments: Payment repository
            stripe_service: Stripe gateway wrapper
            policy: Cancellation policy, defaults to RefundPolicyService()
        """
        self.payments = payments
        self.stripe = stripe_service
        self.policy = policy or RefundPolicyService()

    def process_refund(
        self,
        *,
        payment_intent_id: str,
        payment_id: str,
        payment_amount: Decimal,
        booking_id: str,
        event_date: datetime | str | None,
        reason: str,
        booking_type: BookingType,
        is_downgrade: bool = False,
        downgrade_difference: Decimal | None = None,
        approved_amount: Decimal | None = None,
    ) -> RefundResult:
        """Refund a single payment.

        The amount is, in order of precedence: the absolute downgrade
        difference for downgrades, ``approved_amount`` when the caller already
        applied the cancellation policy, or the policy result for
        ``event_date``.

        Args:
            payment_intent_id: Stripe PaymentIntent to refund
            payment_id: Payment record to update
            payment_amount: Refundable base amount of the payment
            booking_id: Booking the payment belongs to
            event_date: Start of the tour or event, used by the policy
            reason: Free-text reason stored in notes and metadata
            booking_type: Tour or event
            is_downgrade: Refund a price difference instead of applying the policy
            downgrade_difference: Negative price difference of the edit
            approved_amount: Amount already approved by the cancellation policy

        Returns:
            RefundResult for the issued refund

        Raises:
            BookingError: NOT_FOUND, POLICY_INELIGIBLE, INSUFFICIENT_FUNDS or CONFLICT
            StripeServiceError: If Stripe rejects the refund
        """
        current = self.payments.get_payment(payment_id, booking_type)
        if current is None:
            raise BookingError(ErrorKind.NOT_FOUND, "Payment not found")

        payment_amount = Decimal(payment_amount)
        if is_downgrade and downgrade_difference is not None:
            refund_type = RefundType.DOWNGRADE
            refund_amount = quantize(abs(Decimal(downgrade_difference)))
            percentage = float(refund_amount / payment_amount * 100) if payment_amount else 0.0
        elif approved_amount is not None:
            refund_type = RefundType.CANCELLATION
            refund_amount = quantize(approved_amount)
            percentage = float(refund_amount / payment_amount * 100) if payment_amount else 0.0
        else:
            if event_date is None:
                raise BookingError(ErrorKind.VALIDATION, "Event date is required")
            refund_type = RefundType.CANCELLATION
            calculation = self.policy.calculate_refundable_amount(payment_amount, event_date)
            refund_amount = calculation.amount
            percentage = calculation.percentage * 100

        if refund_amount <= 0:
            raise BookingError(ErrorKind.POLICY_INELIGIBLE, NOT_ELIGIBLE_MESSAGE)

        metadata: dict[str, Any] = {
            "refundPercentage": _format_percentage(percentage),
            "originalAmount": payment_amount,
        }
        if refund_type == RefundType.DOWNGRADE:
            metadata["downgradeDifference"] = downgrade_difference

            def note(refund_id: str) -> str:
                return (
                    f"Downgrade refund initiated: {refund_id} for "
                    f"{format_amount(refund_amount)} (price difference). Reason: {reason}"
                )
        else:

            def note(refund_id: str) -> str:
                return (
                    f"Refund initiated: {refund_id} for {format_amount(refund_amount)} "
                    f"({_format_percentage(percentage)} of original payment). Reason: {reason}"
                )

        issued = self._refund_payment(
            current,
            payment_intent_id=payment_intent_id,
            amount=refund_amount,
            booking_id=booking_id,
            booking_type=booking_type,
            reason=reason,
            refund_type=refund_type,
            extra_metadata=metadata,
            note=note,
        )

        if refund_type == RefundType.DOWNGRADE:
            message = "Downgrade refund initiated"
        elif percentage >= 100:
            message = "Full refund initiated"
        else:
            message = "Partial refund initiated"

        return RefundResult(
            success=True,
            refund_id=issued.refund_id,
            amount=issued.amount,
            percentage=percentage,
            message=message,
            refunds=[issued],
        )

    def process_multi_payment_refund(
        self,
        *,
        payments_to_refund: list[RefundAllocation],
        booking_id: str,
        event_date: datetime | str | None,
        reason: str,
        booking_type: BookingType,
        is_downgrade: bool = False,
    ) -> RefundResult:
        """Refund the allocated amount of each payment in an allocation plan.

        A payment that disappeared since allocation is logged and skipped. A
        Stripe failure stops the loop; refunds issued before it stay issued and
        are logged with the failure.

        Raises:
            BookingError: INSUFFICIENT_FUNDS or CONFLICT for a payment in the plan
            StripeServiceError: If Stripe rejects one of the refunds
        """
        refund_type = RefundType.DOWNGRADE if is_downgrade else RefundType.CANCELLATION
        issued_refunds: list[IssuedRefund] = []
        total = ZERO

        for allocation in payments_to_refund:
            amount = quantize(allocation.refund_amount)
            if amount <= 0:
                continue

            current = self.payments.get_payment(allocation.payment.payment_id, booking_type)
            if current is None:
                logger.error(
                    "Payment %s not found, skipping", allocation.payment.payment_id
                )
                continue

            if is_downgrade:

                def note(refund_id: str, amount: Decimal = amount) -> str:
                    return (
                        f"Downgrade refund initiated: {refund_id} for "
                        f"{format_amount(amount)} (partial refund). Reason: {reason}"
                    )
            else:

                def note(refund_id: str, amount: Decimal = amount) -> str:
                    return (
                        f"Refund initiated: {refund_id} for {format_amount(amount)}. "
                        f"Reason: {reason}"
                    )

            try:
                issued = self._refund_payment(
                    current,
                    payment_intent_id=allocation.payment_intent_id,
                    amount=amount,
                    booking_id=booking_id,
                    booking_type=booking_type,
                    reason=reason,
                    refund_type=refund_type,
                    extra_metadata={"multiPaymentRefund": "true"},
                    note=note,
                )
            except (BookingError, StripeServiceError) as e:
                log_refund_operation(
                    logger,
                    "multi_payment_refund_halted",
                    booking_id=booking_id,
                    payment_id=current.payment_id,
                    amount=amount,
                    refund_type=refund_type.value,
                    error=str(e),
                    completed_refunds=",".join(r.refund_id for r in issued_refunds) or "none",
                    completed_amount=str(total),
                )
                raise

            issued_refunds.append(issued)
            total += issued.amount

        log_refund_operation(
            logger,
            "multi_payment_refund",
            booking_id=booking_id,
            amount=total,
            refund_type=refund_type.value,
            refund_count=len(issued_refunds),
        )

        return RefundResult(
            success=True,
            refund_id=", ".join(r.refund_id for r in issued_refunds),
            amount=total,
            percentage=100.0,
            message="Refund initiated",
            refunds=issued_refunds,
        )

    def _refund_payment(
        self,
        current: Payment,
        *,
        payment_intent_id: str,
        amount: Decimal,
        booking_id: str,
        booking_type: BookingType,
        reason: str,
        refund_type: RefundType,
        extra_metadata: dict[str, Any],
        note: Callable[[str], str],
    ) -> IssuedRefund:
        existing = current.refunded_amount
        new_total = existing + amount
        if new_total > current.amount:
            raise BookingError(
                ErrorKind.INSUFFICIENT_FUNDS,
                f"Refund of {format_amount(amount)} exceeds the remaining "
                f"{format_amount(current.amount - existing)} on payment {current.payment_id}",
            )

        claimed = self.payments.claim_refund(current, booking_type)
        if claimed is None:
            log_refund_operation(
                logger,
                "claim_refund",
                booking_id=booking_id,
                payment_id=current.payment_id,
                amount=amount,
                error="payment already has a refund in progress or changed",
            )
            raise BookingError(ErrorKind.CONFLICT)

        metadata: dict[str, Any] = {
            "bookingId": booking_id,
            "bookingType": booking_type.value,
            "paymentId": current.payment_id,
            "refundAmount": amount,
            "existingRefundedAmount": existing,
            "totalRefundedAmount": new_total,
            "reason": reason,
            "refundType": refund_type.value,
            **extra_metadata,
        }

        try:
            refund = self.stripe.create_refund(
                payment_intent_id=payment_intent_id,
                amount_cents=to_minor_units(amount),
                metadata=metadata,
                idempotency_key=f"refund-{current.payment_id}-{to_minor_units(new_total)}",
            )
        except StripeServiceError as e:
            self.payments.release_refund_claim(
                current.payment_id,
                booking_type,
                append_note(
                    claimed.notes,
                    f"Refund of {format_amount(amount)} failed: {e}. Reason: {reason}",
                ),
            )
            log_refund_operation(
                logger,
                "create_refund",
                booking_id=booking_id,
                payment_id=current.payment_id,
                amount=amount,
                refund_type=refund_type.value,
                error=str(e),
            )
            raise

        refund_id = refund["refund_id"]
        finalized = self.payments.finalize_refund(
            current.payment_id,
            booking_type,
            refunded_amount=new_total,
            stripe_refund_id=refund_id,
            notes=append_note(claimed.notes, note(refund_id)),
        )
        if finalized is None:
            # Stripe has the refund; the record could not be updated.
            log_refund_operation(
                logger,
                "finalize_refund",
                booking_id=booking_id,
                payment_id=current.payment_id,
                refund_id=refund_id,
                amount=amount,
                error="payment left the pending state before the refund was recorded",
            )
            raise BookingError(
                ErrorKind.INTERNAL,
                f"Refund {refund_id} was issued but could not be recorded",
            )

        log_refund_operation(
            logger,
            "refund_initiated",
            booking_id=booking_id,
            payment_id=current.payment_id,
            refund_id=refund_id,
            amount=amount,
            refund_type=refund_type.value,
            total_refunded=str(new_total),
        )
        return IssuedRefund(refund_id=refund_id, payment_id=current.payment_id, amount=amount)
