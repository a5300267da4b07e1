"""Payment models for booking transactions, ledger views and refunds."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from charter_bookings.utils.money import Money

from .enums import (
    BookingType,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    RefundStatus,
)


class Payment(BaseModel):
    """One monetary transaction against a tour or event booking.

    A booking may have several completed payments (the original payment plus
    upcharges from edits). ``refunded_amount`` is cumulative and never exceeds
    ``amount``.
    """

    payment_id: str = Field(..., description="Unique payment ID")
    booking_id: str = Field(..., description="Reference to the booking")
    booking_type: BookingType = Field(..., description="Tour or event booking")
    payment_reference: str = Field(..., description="Human-facing payment reference")
    user_id: str | None = Field(default=None, description="Paying user")
    amount: Money = Field(..., ge=0, description="Amount in the booking currency")
    currency: str = Field(default="USD", description="Currency code")
    payment_status: PaymentStatus = Field(..., description="Transaction status")
    payment_method: PaymentMethod = Field(default=PaymentMethod.CARD)
    payment_type: PaymentType = Field(default=PaymentType.REGULAR)
    stripe_payment_intent_id: str | None = Field(
        default=None,
        description="Stripe PaymentIntent ID (pi_xxx)",
        examples=["pi_3ABC123DEF456"],
    )
    stripe_customer_id: str | None = Field(default=None, description="Stripe Customer ID")
    refund_status: RefundStatus = Field(default=RefundStatus.NOT_REFUNDED)
    refunded_amount: Money = Field(
        default=Decimal("0"),
        ge=0,
        description="Cumulative amount refunded so far",
    )
    stripe_refund_id: str | None = Field(
        default=None,
        description="Most recent Stripe Refund ID (re_xxx)",
        examples=["re_3ABC123DEF456"],
    )
    refund_receipt_url: str | None = None
    receipt_url: str | None = None
    transaction_id: str | None = None
    notes: str | None = None
    payment_date: datetime | None = None
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime | None = None

    @property
    def remaining_refundable(self) -> Decimal:
        """Amount not yet refunded."""
        return self.amount - self.refunded_amount


class RefundAllocation(BaseModel):
    """Part of a refund request assigned to a single payment.

    ``payment.amount`` holds the payment's remaining refundable amount at the
    time of the scan, not its original amount.
    """

    payment: Payment
    payment_intent_id: str
    refund_amount: Money


class LedgerSummary(BaseModel):
    """Aggregate view across a booking's completed payments."""

    total_paid: Money
    total_already_refunded: Money
    available_for_refund: Money
    refundable_payments: list[Payment]
    all_payments: list[Payment]


class AllocationPlan(BaseModel):
    """Refund amount split across payments, most recent first."""

    payments_to_refund: list[RefundAllocation]
    total_refund_amount: Money
    available_for_refund: Money


class IssuedRefund(BaseModel):
    """A refund created at the gateway for one payment."""

    refund_id: str
    payment_id: str
    amount: Money


class RefundResult(BaseModel):
    """Outcome of a refund execution."""

    success: bool
    refund_id: str = Field(..., description="Refund ID, comma-joined for multi-payment refunds")
    amount: Money
    percentage: float = Field(..., description="Refunded share of the payment, 0-100")
    message: str
    refunds: list[IssuedRefund] = Field(default_factory=list)

    @property
    def refund_ids(self) -> list[str]:
        return [refund.refund_id for refund in self.refunds]


class RefundCalculation(BaseModel):
    """Result of applying the cancellation policy to an amount."""

    amount: Money
    percentage: float = Field(..., description="1.0, 0.5 or 0")
    hours_until_event: float
