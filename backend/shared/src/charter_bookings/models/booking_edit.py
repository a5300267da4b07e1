"""Booking edit models: new selections and price reconciliation results."""

from datetime import datetime
from typing import Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from charter_bookings.utils.money import Money

from .booking import BookingPricing
from .enums import PriceChangeType


class _EditModel(BaseModel):
    """Edit payloads arrive camelCased from the booking pages."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EventEditData(_EditModel):
    """New selection for an event booking."""

    event_id: str
    schedule_id: str
    adult_count: int = Field(..., ge=0)
    child_count: int = Field(default=0, ge=0)
    pickup_location_id: str
    pickup_time_id: str
    hotel_id: str | None = None


class TourEditData(_EditModel):
    """New selection for a tour booking."""

    tour_id: str
    tour_date_time: str = Field(..., description="ISO date-time of the tour")
    adult_count: int = Field(..., ge=0)
    child_count: int = Field(default=0, ge=0)
    pickup_location_id: str = Field(..., description="Hotel ID of the pickup")


EditData = Union[EventEditData, TourEditData]


class PriceCalculation(BaseModel):
    """Price delta between a booking and its edited selection.

    ``difference`` is ``new_amount - original_amount``: positive for an
    upcharge, negative for a downgrade.
    """

    original_amount: Money
    new_amount: Money
    difference: Money
    type: PriceChangeType
    new_pricing: BookingPricing


class UpchargeIntent(BaseModel):
    """Client-side handle for paying an upcharge."""

    client_secret: str
    payment_intent_id: str
    payment_id: str
    upcharge_amount: Money


class EditOutcome(BaseModel):
    """Result of applying a downgrade or no-change edit."""

    success: bool
    message: str
    price_change: PriceChangeType
    refund_amount: Money | None = None
    refund_ids: list[str] = Field(default_factory=list)
    updated_at: datetime | None = None
