"""Booking models for tour and event reservations."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from charter_bookings.utils.money import Money

from .enums import BookingStatus, BookingType


class BookingPricing(BaseModel):
    """Pricing snapshot stored on a booking.

    Prices are frozen at booking time; edits recompute them from the catalog.
    """

    adult_price: Money = Field(default=Decimal("0"), ge=0)
    children_price: Money = Field(default=Decimal("0"), ge=0)
    adult_total: Money = Field(default=Decimal("0"), ge=0)
    child_total: Money = Field(default=Decimal("0"), ge=0)
    total_amount: Money = Field(..., ge=0)
    currency: str = Field(default="USD")


class PickupDetails(BaseModel):
    """Selected pickup for a booking."""

    location_id: str | None = None
    hotel_id: str | None = None
    selected_time_id: str | None = None
    pickup_date_time: datetime | None = None
    tour_date_time: datetime | None = None


class Booking(BaseModel):
    """A customer reservation for a tour or an event.

    The refund subsystem only ever changes ``status``. Selection, counts and
    pricing change through the edit flow.
    """

    booking_id: str = Field(..., description="Unique booking ID")
    booking_type: BookingType
    booking_reference: str = Field(
        ..., description="Human-facing reference", examples=["EVT-20261018-4821"]
    )
    status: BookingStatus = BookingStatus.PENDING
    user_id: str | None = None
    tour_id: str | None = None
    event_id: str | None = None
    schedule_id: str | None = Field(default=None, description="Selected event schedule")
    scheduled_date: datetime | None = Field(default=None, description="Selected tour date")
    adult_count: int = Field(default=1, ge=0)
    child_count: int = Field(default=0, ge=0)
    pricing: BookingPricing
    pickup_details: PickupDetails = Field(default_factory=PickupDetails)
    notes: str | None = None
    payment_collected: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def product_id(self) -> str | None:
        """Tour or event ID depending on booking type."""
        return self.tour_id if self.booking_type == BookingType.TOUR else self.event_id

    @property
    def total_amount(self) -> Decimal:
        return self.pricing.total_amount
