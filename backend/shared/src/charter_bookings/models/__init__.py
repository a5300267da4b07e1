"""Pydantic models for charter tour and event bookings."""

from .booking import Booking, BookingPricing, PickupDetails
from .booking_edit import (
    EditData,
    EditOutcome,
    EventEditData,
    PriceCalculation,
    TourEditData,
    UpchargeIntent,
)
from .catalog import Event, EventPickup, EventSchedule, PickupTime, Tour, TourPickup, User
from .enums import (
    BookingStatus,
    BookingType,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    PriceChangeType,
    RefundStatus,
    RefundType,
    UserRole,
)
from .errors import (
    ERROR_KIND_STATUS,
    ERROR_MESSAGES,
    STRIPE_ERROR_MESSAGES,
    BookingError,
    ErrorKind,
    ErrorResponse,
    get_user_friendly_stripe_message,
)
from .payment import (
    AllocationPlan,
    IssuedRefund,
    LedgerSummary,
    Payment,
    RefundAllocation,
    RefundCalculation,
    RefundResult,
)
from .result import Err, Ok, Result, unwrap
from .stripe_webhook import StripeWebhookEvent

__all__ = [
    # Enums
    "BookingStatus",
    "BookingType",
    "PaymentMethod",
    "PaymentStatus",
    "PaymentType",
    "PriceChangeType",
    "RefundStatus",
    "RefundType",
    "UserRole",
    # Booking
    "Booking",
    "BookingPricing",
    "PickupDetails",
    # Edits
    "EditData",
    "EditOutcome",
    "EventEditData",
    "TourEditData",
    "PriceCalculation",
    "UpchargeIntent",
    # Catalog
    "Event",
    "EventPickup",
    "EventSchedule",
    "PickupTime",
    "Tour",
    "TourPickup",
    "User",
    # Payment
    "AllocationPlan",
    "IssuedRefund",
    "LedgerSummary",
    "Payment",
    "RefundAllocation",
    "RefundCalculation",
    "RefundResult",
    # Errors
    "BookingError",
    "ErrorKind",
    "ErrorResponse",
    "ERROR_KIND_STATUS",
    "ERROR_MESSAGES",
    "STRIPE_ERROR_MESSAGES",
    "get_user_friendly_stripe_message",
    # Result
    "Err",
    "Ok",
    "Result",
    "unwrap",
    # Stripe
    "StripeWebhookEvent",
]
