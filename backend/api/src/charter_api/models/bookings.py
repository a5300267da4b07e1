"""API models for booking cancellation, edit and ledger endpoints.

Request and response bodies use camelCase keys like the booking pages that
call them. Edit selections are validated against the booking type inside the
route (see ``parse_edit_data``).
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from charter_bookings.models import (
    BookingError,
    BookingPricing,
    BookingType,
    EditData,
    ErrorKind,
    EventEditData,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    PriceChangeType,
    RefundStatus,
    TourEditData,
)
from charter_bookings.utils.money import Money


class ApiModel(BaseModel):
    """Base model with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# === Requests ===


class CancelRequest(ApiModel):
    """Request to cancel a booking."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={"examples": [{"bookingId": "TB-2025-0042"}]},
    )

    booking_id: str = Field(..., min_length=1, description="Booking to cancel")


class EditRequest(ApiModel):
    """Request carrying a new selection for a booking."""

    booking_id: str = Field(..., min_length=1, description="Booking being edited")
    edit_data: dict[str, Any] = Field(
        ...,
        description="New selection: event or tour edit fields in camelCase",
    )


def parse_edit_data(booking_type: BookingType, raw: dict[str, Any]) -> EditData:
    """Validate raw edit fields against the model for the booking type.

    Raises:
        BookingError: VALIDATION if the fields do not form a valid edit
    """
    model = EventEditData if booking_type == BookingType.EVENT else TourEditData
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise BookingError(ErrorKind.VALIDATION, f"Invalid edit data: {fields}") from e


# === Responses ===


class CancelResponse(ApiModel):
    success: bool = True
    message: str
    refund_id: str | None = None
    refund_amount: Money | None = None


class PriceDifference(ApiModel):
    original_amount: Money
    new_amount: Money
    difference: Money
    type: PriceChangeType


class PriceCalculationResponse(ApiModel):
    """Price delta of an edit and the pricing it would produce."""

    price_difference: PriceDifference
    new_pricing: BookingPricing


class EditRefundResponse(ApiModel):
    success: bool = True
    message: str
    price_change: PriceChangeType
    refund_id: str | None = None
    refund_amount: Money | None = None
    updated_at: datetime | None = None


class UpchargePaymentResponse(ApiModel):
    """Client secret for confirming an upcharge payment in the browser."""

    client_secret: str
    payment_intent_id: str
    payment_id: str
    upcharge_amount: Money


class PaymentView(ApiModel):
    payment_id: str
    payment_reference: str
    amount: Money
    currency: str
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    payment_type: PaymentType
    refund_status: RefundStatus
    refunded_amount: Money
    remaining_refundable: Money
    receipt_url: str | None = None
    refund_receipt_url: str | None = None
    created_at: datetime


class PaymentLedgerResponse(ApiModel):
    """Payments of a booking with refund totals."""

    booking_id: str
    total_paid: Money
    total_already_refunded: Money
    available_for_refund: Money
    payments: list[PaymentView]


class CollectPaymentResponse(ApiModel):
    success: bool = True
    message: str
