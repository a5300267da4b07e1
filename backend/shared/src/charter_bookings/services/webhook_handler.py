"""Webhook handler for processing Stripe events.

Keeps the business logic of refund confirmations and payment outcomes apart
from HTTP routing so it can be unit tested without a request.

Handled events:
- charge.refunded, charge.refund.updated, refund.updated: refund settled or failed
- payment_intent.succeeded: regular or upcharge payment completed
- payment_intent.payment_failed: payment failed
"""

import datetime as dt
import json
import logging
from typing import Any

from pydantic import ValidationError

from charter_bookings.models import (
    BookingStatus,
    BookingType,
    Err,
    EventEditData,
    Payment,
    PaymentStatus,
    PaymentType,
    RefundStatus,
    TourEditData,
)
from charter_bookings.models.stripe_webhook import StripeWebhookEvent
from charter_bookings.utils.logging import log_webhook_event
from charter_bookings.utils.money import format_amount, from_minor_units

from .booking_edit_service import BookingEditService
from .booking_service import BookingService
from .dynamodb import DynamoDBService, model_to_item
from .payment_service import PaymentService

logger = logging.getLogger(__name__)

REFUND_EVENTS = frozenset({"charge.refunded", "charge.refund.updated", "refund.updated"})

# Stripe refund status to payment refund status; other statuses are still in flight
REFUND_STATUS_MAP: dict[str, RefundStatus] = {
    "succeeded": RefundStatus.REFUNDED,
    "failed": RefundStatus.FAILED,
    "canceled": RefundStatus.FAILED,
}


def _booking_types(metadata: dict[str, Any]) -> list[BookingType]:
    """Booking types to search, the one named in metadata first."""
    try:
        named = BookingType(metadata.get("bookingType", ""))
    except ValueError:
        return [BookingType.EVENT, BookingType.TOUR]
    return [named] + [t for t in BookingType if t != named]


class WebhookHandler:
    """Handler for processing Stripe webhook events.

    Ensures idempotent processing using event_id tracking.
    """

    WEBHOOK_EVENTS_TABLE = "stripe-webhook-events"

    def __init__(
        self,
        db: DynamoDBService,
        payments: PaymentService,
        bookings: BookingService,
        edits: BookingEditService,
    ) -> None:
        self._db = db
        self.payments = payments
        self.bookings = bookings
        self.edits = edits

    def is_event_already_processed(self, event_id: str) -> bool:
        """Check if webhook event was already processed successfully."""
        existing = self._db.get_item(self.WEBHOOK_EVENTS_TABLE, {"event_id": event_id})
        return existing is not None and existing.get("processing_result") == "success"

    def log_event(
        self,
        event_id: str,
        event_type: str,
        payload_hash: str,
        booking_id: str | None,
        payment_id: str | None,
        processing_result: str,
        error_message: str | None = None,
    ) -> None:
        """Log webhook event to DynamoDB for idempotency and audit trail."""
        record = StripeWebhookEvent(
            event_id=event_id,
            event_type=event_type,
            processed_at=dt.datetime.now(dt.UTC),
            payload_hash=payload_hash,
            booking_id=booking_id,
            payment_id=payment_id,
            processing_result=processing_result,
            error_message=error_message,
        )
        self._db.put_item(self.WEBHOOK_EVENTS_TABLE, model_to_item(record))

    def handle_event(self, event: dict, payload_hash: str) -> tuple[str, str | None]:
        """Dispatch a verified Stripe event.

        Args:
            event: Parsed Stripe webhook event
            payload_hash: SHA-256 of the raw payload

        Returns:
            Tuple of (processing_result, error_message)
        """
        event_id = event.get("id", "")
        event_type = event.get("type", "")

        if self.is_event_already_processed(event_id):
            log_webhook_event(logger, event_type, event_id, result="duplicate")
            return "duplicate", None

        obj = event.get("data", {}).get("object", {})
        booking_id = (obj.get("metadata") or {}).get("bookingId")

        if event_type in REFUND_EVENTS:
            result, error, payment = self.process_refund_event(event_type, obj)
        elif event_type == "payment_intent.succeeded":
            result, error, payment = self.process_payment_succeeded(obj)
        elif event_type == "payment_intent.payment_failed":
            result, error, payment = self.process_payment_failed(obj)
        else:
            result, error, payment = "skipped", f"Unhandled event type: {event_type}", None

        if payment is not None:
            booking_id = payment.booking_id

        self.log_event(
            event_id=event_id,
            event_type=event_type,
            payload_hash=payload_hash,
            booking_id=booking_id,
            payment_id=payment.payment_id if payment else None,
            processing_result=result,
            error_message=error,
        )
        log_webhook_event(
            logger,
            event_type,
            event_id,
            booking_id=booking_id,
            payment_id=payment.payment_id if payment else None,
            result=result,
            error=error,
        )
        return result, error

    # =========================================================================
    # Refunds
    # =========================================================================

    def process_refund_event(
        self, event_type: str, obj: dict
    ) -> tuple[str, str | None, Payment | None]:
        """Move refund-pending payments to refunded or failed.

        ``charge.refunded`` carries a Charge with its refunds; the refund events
        carry a single Refund.
        """
        if event_type == "charge.refunded":
            refunds = (obj.get("refunds") or {}).get("data") or []
            receipt_url = obj.get("receipt_url")
            charge_metadata = obj.get("metadata") or {}
        else:
            refunds = [obj]
            receipt_url = None
            charge_metadata = {}

        if not refunds:
            return "skipped", "No refund data available", None

        updated: Payment | None = None
        for refund in refunds:
            metadata = {**charge_metadata, **(refund.get("metadata") or {})}
            payment = self._apply_refund_status(refund, metadata, receipt_url)
            if payment is not None and updated is None:
                updated = payment

        if updated is None:
            return "skipped", "No payment awaiting these refunds", None
        return "success", None, updated

    def _apply_refund_status(
        self, refund: dict, metadata: dict[str, Any], receipt_url: str | None
    ) -> Payment | None:
        refund_id = refund.get("id")
        status = REFUND_STATUS_MAP.get(refund.get("status", ""))
        if not refund_id or status is None:
            return None

        for booking_type in _booking_types(metadata):
            payment = self.payments.get_payment_by_refund_id(refund_id, booking_type)
            if payment is None and refund.get("payment_intent"):
                payment = self.payments.get_payment_by_intent(
                    refund["payment_intent"], booking_type
                )
            if payment is None:
                continue

            if payment.stripe_refund_id != refund_id and (
                payment.stripe_refund_id or payment.refund_status == RefundStatus.PENDING
            ):
                # Only the payment's latest refund drives its refund status
                logger.info(
                    "Refund %s is not the latest on payment %s (%s), leaving status %s",
                    refund_id,
                    payment.payment_id,
                    payment.stripe_refund_id,
                    payment.refund_status.value,
                )
                return None
            if payment.refund_status == status:
                return payment

            amount = from_minor_units(refund.get("amount", 0))
            if status == RefundStatus.REFUNDED:
                note = f"Refund processed: {refund_id} for {format_amount(amount)}"
            else:
                note = f"Refund {refund_id} for {format_amount(amount)} failed"

            return self.payments.update_refund_status(
                payment,
                booking_type,
                status,
                note=note,
                refund_receipt_url=receipt_url,
            )

        logger.warning("No payment found for refund %s", refund_id)
        return None

    # =========================================================================
    # Payments
    # =========================================================================

    def _find_payment_by_intent(
        self, intent: dict
    ) -> tuple[Payment | None, BookingType | None]:
        intent_id = intent.get("id")
        if not intent_id:
            return None, None
        for booking_type in _booking_types(intent.get("metadata") or {}):
            payment = self.payments.get_payment_by_intent(intent_id, booking_type)
            if payment is not None:
                return payment, booking_type
        return None, None

    def process_payment_succeeded(
        self, intent: dict
    ) -> tuple[str, str | None, Payment | None]:
        """Confirm the booking or apply the paid-for edit, then complete the payment.

        The payment is marked completed last so that a delivery failing half
        way is redone in full when Stripe retries it. Applying the same edit
        twice writes the same fields.
        """
        payment, booking_type = self._find_payment_by_intent(intent)
        if payment is None or booking_type is None:
            return "skipped", f"No payment found for intent {intent.get('id')}", None

        metadata = intent.get("metadata") or {}
        is_upcharge = (
            payment.payment_type == PaymentType.UPCHARGE or metadata.get("paymentType") == "upcharge"
        )
        if payment.payment_status == PaymentStatus.COMPLETED and not is_upcharge:
            return "success", None, payment

        booking_result = self.bookings.get_booking(payment.booking_id, booking_type)
        if isinstance(booking_result, Err):
            return "error", booking_result.message, payment
        booking = booking_result.value

        if is_upcharge:
            error = self._apply_paid_edit(booking, metadata.get("editData"))
            if error:
                return "error", error, payment
        elif booking.status == BookingStatus.PENDING:
            self.bookings.update_status(booking, BookingStatus.CONFIRMED)

        if payment.payment_status != PaymentStatus.COMPLETED:
            payment = self.payments.mark_payment_completed(payment, booking_type) or payment
        return "success", None, payment

    def _apply_paid_edit(self, booking, edit_json: str | None) -> str | None:
        """Apply the edit serialized in an upcharge intent. Returns an error message on failure."""
        if not edit_json:
            return "Upcharge payment without edit data"

        model = EventEditData if booking.booking_type == BookingType.EVENT else TourEditData
        try:
            edit_data = model.model_validate(json.loads(edit_json))
        except (ValueError, ValidationError) as e:
            return f"Invalid edit data: {e}"

        price_result = self.edits.calculate_price_difference(booking, edit_data)
        if isinstance(price_result, Err):
            return price_result.message

        update_result = self.edits.update_booking_details(
            booking, edit_data, price_result.value.new_pricing
        )
        if isinstance(update_result, Err):
            return update_result.message
        return None

    def process_payment_failed(
        self, intent: dict
    ) -> tuple[str, str | None, Payment | None]:
        payment, booking_type = self._find_payment_by_intent(intent)
        if payment is None or booking_type is None:
            return "skipped", f"No payment found for intent {intent.get('id')}", None

        reason = (intent.get("last_payment_error") or {}).get("message")
        updated = self.payments.mark_payment_failed(payment, booking_type, reason)
        return "success", None, updated or payment
