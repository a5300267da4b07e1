"""Payment record repository for tour and event bookings.

Payments live in ``tour-booking-payments`` and ``event-booking-payments``.
Refund state changes go through a claim/finalize/release sequence of
conditional updates so that two requests can never refund the same payment
from the same starting balance.
"""

import datetime as dt
import logging
import secrets
import uuid
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from boto3.dynamodb.conditions import Attr, Key

from charter_bookings.models import (
    Booking,
    BookingType,
    Payment,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    RefundStatus,
)
from charter_bookings.utils.dates import parse_datetime

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = logging.getLogger(__name__)

BOOKING_INDEX = "booking-index"
PAYMENT_INTENT_INDEX = "payment-intent-index"
REFUND_INDEX = "refund-index"


def append_note(existing: str | None, line: str) -> str:
    """Append a line to a free-text notes log."""
    return f"{existing}\n{line}" if existing else line


class PaymentService:
    """Service for reading and updating booking payment records."""

    def __init__(self, db: "DynamoDBService") -> None:
        """Initialize payment service.

        Args:
            db: DynamoDB service instance
        """
        self.db = db

    def _generate_payment_id(self) -> str:
        """Generate a unique payment ID like PAY-ABC123DEF456."""
        return f"PAY-{uuid.uuid4().hex[:12].upper()}"

    def _generate_payment_reference(
        self, booking_type: BookingType, payment_type: PaymentType
    ) -> str:
        """Generate a reference like TOUR-UPCHARGE-PAY-482913-a1f3."""
        kind = "UPCHARGE-" if payment_type == PaymentType.UPCHARGE else ""
        number = secrets.randbelow(900000) + 100000
        return f"{booking_type.value.upper()}-{kind}PAY-{number}-{secrets.token_hex(2)}"

    # =========================================================================
    # Reads
    # =========================================================================

    def get_payment(
        self, payment_id: str, booking_type: BookingType, consistent: bool = True
    ) -> Payment | None:
        """Get a payment by ID.

        Args:
            payment_id: Payment ID
            booking_type: Selects the tour or event payments table
            consistent: Strongly consistent read (default: True)

        Returns:
            Payment or None if not found
        """
        item = self.db.get_item(
            booking_type.payments_table,
            {"payment_id": payment_id},
            consistent_read=consistent,
        )
        return self._item_to_payment(item) if item else None

    def get_completed_payments(
        self, booking_id: str, booking_type: BookingType
    ) -> list[Payment]:
        """Get all completed payments for a booking, most recent first."""
        items = self.db.query(
            booking_type.payments_table,
            Key("booking_id").eq(booking_id),
            index_name=BOOKING_INDEX,
            filter_expression=Attr("payment_status").eq(PaymentStatus.COMPLETED.value),
            scan_index_forward=False,
        )
        return [self._item_to_payment(item) for item in items]

    def get_payments_for_booking(
        self, booking_id: str, booking_type: BookingType
    ) -> list[Payment]:
        """Get every payment of a booking regardless of status, most recent first."""
        items = self.db.query(
            booking_type.payments_table,
            Key("booking_id").eq(booking_id),
            index_name=BOOKING_INDEX,
            scan_index_forward=False,
        )
        return [self._item_to_payment(item) for item in items]

    def get_payment_by_intent(
        self, payment_intent_id: str, booking_type: BookingType
    ) -> Payment | None:
        items = self.db.query_by_gsi(
            booking_type.payments_table,
            PAYMENT_INTENT_INDEX,
            "stripe_payment_intent_id",
            payment_intent_id,
        )
        return self._item_to_payment(items[0]) if items else None

    def get_payment_by_refund_id(
        self, refund_id: str, booking_type: BookingType
    ) -> Payment | None:
        items = self.db.query_by_gsi(
            booking_type.payments_table,
            REFUND_INDEX,
            "stripe_refund_id",
            refund_id,
        )
        return self._item_to_payment(items[0]) if items else None

    # =========================================================================
    # Refund state transitions
    # =========================================================================

    def claim_refund(self, payment: Payment, booking_type: BookingType) -> Payment | None:
        """Mark a payment as refund-pending if nobody else has touched it.

        The update only applies when the payment is not already pending and its
        refunded amount is still the one the caller read.

        Returns:
            The claimed payment, or None if the condition failed
        """
        now = dt.datetime.now(dt.UTC)
        attrs = self.db.update_item(
            booking_type.payments_table,
            {"payment_id": payment.payment_id},
            "SET refund_status = :pending, updated_at = :now",
            {
                ":pending": RefundStatus.PENDING.value,
                ":expected": payment.refunded_amount,
                ":now": now.isoformat(),
            },
            condition_expression=(
                "attribute_exists(payment_id) AND refund_status <> :pending "
                "AND refunded_amount = :expected"
            ),
        )
        return self._item_to_payment(attrs) if attrs else None

    def finalize_refund(
        self,
        payment_id: str,
        booking_type: BookingType,
        *,
        refunded_amount: Decimal,
        stripe_refund_id: str,
        notes: str,
    ) -> Payment | None:
        """Record an issued refund on a claimed payment.

        Returns:
            Updated payment, or None if the payment was no longer pending
        """
        now = dt.datetime.now(dt.UTC)
        attrs = self.db.update_item(
            booking_type.payments_table,
            {"payment_id": payment_id},
            "SET refunded_amount = :refunded, stripe_refund_id = :rid, "
            "notes = :notes, updated_at = :now",
            {
                ":refunded": refunded_amount,
                ":rid": stripe_refund_id,
                ":notes": notes,
                ":now": now.isoformat(),
                ":pending": RefundStatus.PENDING.value,
            },
            condition_expression="refund_status = :pending",
        )
        return self._item_to_payment(attrs) if attrs else None

    def release_refund_claim(
        self, payment_id: str, booking_type: BookingType, notes: str
    ) -> Payment | None:
        """Release a claim after the gateway rejected the refund."""
        now = dt.datetime.now(dt.UTC)
        attrs = self.db.update_item(
            booking_type.payments_table,
            {"payment_id": payment_id},
            "SET refund_status = :failed, notes = :notes, updated_at = :now",
            {
                ":failed": RefundStatus.FAILED.value,
                ":pending": RefundStatus.PENDING.value,
                ":notes": notes,
                ":now": now.isoformat(),
            },
            condition_expression="refund_status = :pending",
        )
        return self._item_to_payment(attrs) if attrs else None

    def update_refund_status(
        self,
        payment: Payment,
        booking_type: BookingType,
        status: RefundStatus,
        *,
        note: str | None = None,
        refund_receipt_url: str | None = None,
    ) -> Payment | None:
        """Set the refund status reported by the gateway.

        Args:
            payment: Payment the refund belongs to
            booking_type: Selects the payments table
            status: New refund status (refunded or failed)
            note: Optional line appended to the notes
            refund_receipt_url: Receipt URL from the refunded charge

        Returns:
            Updated payment or None if it no longer exists
        """
        now = dt.datetime.now(dt.UTC)
        expression = "SET refund_status = :status, updated_at = :now"
        values: dict[str, Any] = {":status": status.value, ":now": now.isoformat()}
        if note:
            expression += ", notes = :notes"
            values[":notes"] = append_note(payment.notes, note)
        if refund_receipt_url:
            expression += ", refund_receipt_url = :receipt"
            values[":receipt"] = refund_receipt_url

        attrs = self.db.update_item(
            booking_type.payments_table,
            {"payment_id": payment.payment_id},
            expression,
            values,
            condition_expression="attribute_exists(payment_id)",
        )
        return self._item_to_payment(attrs) if attrs else None

    # =========================================================================
    # Payment lifecycle
    # =========================================================================

    def create_upcharge_payment(
        self,
        booking: Booking,
        *,
        amount: Decimal,
        payment_intent_id: str,
        customer_id: str | None,
        user_id: str | None,
    ) -> Payment:
        """Create a pending payment record for an upcharge payment intent."""
        now = dt.datetime.now(dt.UTC)
        payment = Payment(
            payment_id=self._generate_payment_id(),
            booking_id=booking.booking_id,
            booking_type=booking.booking_type,
            payment_reference=self._generate_payment_reference(
                booking.booking_type, PaymentType.UPCHARGE
            ),
            user_id=user_id,
            amount=amount,
            currency=booking.pricing.currency,
            payment_status=PaymentStatus.PENDING,
            payment_method=PaymentMethod.CARD,
            payment_type=PaymentType.UPCHARGE,
            stripe_payment_intent_id=payment_intent_id,
            stripe_customer_id=customer_id,
            notes=f"Upcharge payment for booking {booking.booking_reference}",
            created_at=now,
        )
        self.db.put_item(booking.booking_type.payments_table, self._payment_to_item(payment))
        return payment

    def create_manual_payment(self, booking: Booking) -> Payment | None:
        """Record a payment collected by phone or POS.

        The payment ID is derived from the booking so a retried call cannot
        create a second record.

        Returns:
            The created payment, or None if it was already recorded
        """
        now = dt.datetime.now(dt.UTC)
        payment = Payment(
            payment_id=f"PAY-MANUAL-{booking.booking_id}",
            booking_id=booking.booking_id,
            booking_type=booking.booking_type,
            payment_reference=self._generate_payment_reference(
                booking.booking_type, PaymentType.REGULAR
            ),
            user_id=booking.user_id,
            amount=booking.pricing.total_amount,
            currency=booking.pricing.currency,
            payment_status=PaymentStatus.COMPLETED,
            payment_method=PaymentMethod.MANUAL_PHONE_POS,
            payment_type=PaymentType.REGULAR,
            transaction_id=f"MANUAL-{booking.booking_reference}",
            notes="Payment collected manually via phone/POS",
            payment_date=now,
            created_at=now,
        )
        created = self.db.put_item(
            booking.booking_type.payments_table,
            self._payment_to_item(payment),
            condition_expression="attribute_not_exists(payment_id)",
        )
        return payment if created else None

    def mark_payment_completed(
        self,
        payment: Payment,
        booking_type: BookingType,
        receipt_url: str | None = None,
    ) -> Payment | None:
        """Mark a payment completed after the gateway confirmed it."""
        now = dt.datetime.now(dt.UTC)
        expression = "SET payment_status = :status, payment_date = :now, updated_at = :now"
        values: dict[str, Any] = {
            ":status": PaymentStatus.COMPLETED.value,
            ":now": now.isoformat(),
        }
        if receipt_url:
            expression += ", receipt_url = :receipt"
            values[":receipt"] = receipt_url

        attrs = self.db.update_item(
            booking_type.payments_table,
            {"payment_id": payment.payment_id},
            expression,
            values,
        )
        return self._item_to_payment(attrs) if attrs else None

    def mark_payment_failed(
        self, payment: Payment, booking_type: BookingType, reason: str | None
    ) -> Payment | None:
        now = dt.datetime.now(dt.UTC)
        note = f"Payment failed: {reason}" if reason else "Payment failed"
        attrs = self.db.update_item(
            booking_type.payments_table,
            {"payment_id": payment.payment_id},
            "SET payment_status = :status, notes = :notes, updated_at = :now",
            {
                ":status": PaymentStatus.FAILED.value,
                ":notes": append_note(payment.notes, note),
                ":now": now.isoformat(),
            },
        )
        return self._item_to_payment(attrs) if attrs else None

    def save_payment(self, payment: Payment) -> None:
        """Write a payment record as-is (seeding and tests)."""
        self.db.put_item(payment.booking_type.payments_table, self._payment_to_item(payment))

    # Conversion helpers

    def _payment_to_item(self, payment: Payment) -> dict[str, Any]:
        """Convert Payment model to DynamoDB item.

        Index keys are only written when set; DynamoDB rejects empty or
        null GSI key attributes.
        """
        item: dict[str, Any] = {
            "payment_id": payment.payment_id,
            "booking_id": payment.booking_id,
            "booking_type": payment.booking_type.value,
            "payment_reference": payment.payment_reference,
            "amount": payment.amount,
            "currency": payment.currency,
            "payment_status": payment.payment_status.value,
            "payment_method": payment.payment_method.value,
            "payment_type": payment.payment_type.value,
            "refund_status": payment.refund_status.value,
            "refunded_amount": payment.refunded_amount,
            "created_at": payment.created_at.isoformat(),
        }
        optional = {
            "user_id": payment.user_id,
            "stripe_payment_intent_id": payment.stripe_payment_intent_id,
            "stripe_customer_id": payment.stripe_customer_id,
            "stripe_refund_id": payment.stripe_refund_id,
            "refund_receipt_url": payment.refund_receipt_url,
            "receipt_url": payment.receipt_url,
            "transaction_id": payment.transaction_id,
            "notes": payment.notes,
        }
        item.update({key: value for key, value in optional.items() if value})
        if payment.payment_date:
            item["payment_date"] = payment.payment_date.isoformat()
        if payment.updated_at:
            item["updated_at"] = payment.updated_at.isoformat()
        return item

    def _item_to_payment(self, item: dict[str, Any]) -> Payment:
        """Convert DynamoDB item to Payment model."""
        return Payment(
            payment_id=item["payment_id"],
            booking_id=item["booking_id"],
            booking_type=BookingType(item["booking_type"]),
            payment_reference=item.get("payment_reference", item["payment_id"]),
            user_id=item.get("user_id"),
            amount=Decimal(str(item["amount"])),
            currency=item.get("currency", "USD"),
            payment_status=PaymentStatus(item["payment_status"]),
            payment_method=PaymentMethod(item.get("payment_method", PaymentMethod.CARD.value)),
            payment_type=PaymentType(item.get("payment_type", PaymentType.REGULAR.value)),
            stripe_payment_intent_id=item.get("stripe_payment_intent_id"),
            stripe_customer_id=item.get("stripe_customer_id"),
            refund_status=RefundStatus(
                item.get("refund_status", RefundStatus.NOT_REFUNDED.value)
            ),
            refunded_amount=Decimal(str(item.get("refunded_amount", 0))),
            stripe_refund_id=item.get("stripe_refund_id"),
            refund_receipt_url=item.get("refund_receipt_url"),
            receipt_url=item.get("receipt_url"),
            transaction_id=item.get("transaction_id"),
            notes=item.get("notes"),
            payment_date=(
                parse_datetime(item["payment_date"]) if item.get("payment_date") else None
            ),
            created_at=parse_datetime(item["created_at"]),
            updated_at=(
                parse_datetime(item["updated_at"]) if item.get("updated_at") else None
            ),
        )
