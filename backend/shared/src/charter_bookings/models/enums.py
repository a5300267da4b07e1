"""Enumeration types for charter booking data models."""

from enum import Enum


class BookingType(str, Enum):
    """Kind of product a booking was made for."""

    TOUR = "tour"
    EVENT = "event"

    @property
    def bookings_table(self) -> str:
        """DynamoDB table (without prefix) holding bookings of this type."""
        return f"{self.value}-bookings"

    @property
    def payments_table(self) -> str:
        """DynamoDB table (without prefix) holding payments of this type."""
        return f"{self.value}-booking-payments"

    @property
    def catalog_table(self) -> str:
        """DynamoDB table (without prefix) holding tours or events."""
        return f"{self.value}s"


class BookingStatus(str, Enum):
    """Status of a booking."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    """Status of a single payment transaction."""

    PENDING = "pending"
    FAILED = "failed"
    COMPLETED = "completed"


class RefundStatus(str, Enum):
    """Refund state of a payment record."""

    NOT_REFUNDED = "not_refunded"
    PENDING = "pending"  # Issued, waiting for gateway confirmation
    REFUNDED = "refunded"
    FAILED = "failed"

    @property
    def label(self) -> str:
        """Human-readable label for display."""
        return REFUND_STATUS_LABELS[self]


REFUND_STATUS_LABELS: dict[RefundStatus, str] = {
    RefundStatus.NOT_REFUNDED: "Not Refunded",
    RefundStatus.PENDING: "Refund Pending",
    RefundStatus.REFUNDED: "Refunded",
    RefundStatus.FAILED: "Refund Failed",
}


class PaymentMethod(str, Enum):
    """How a payment was collected."""

    CARD = "card"
    MANUAL_PHONE_POS = "manual_phone_pos"


class PaymentType(str, Enum):
    """Why a payment was taken."""

    REGULAR = "regular"
    UPCHARGE = "upcharge"


class RefundType(str, Enum):
    """Why a refund was issued."""

    CANCELLATION = "cancellation"
    DOWNGRADE = "downgrade"


class PriceChangeType(str, Enum):
    """Classification of a booking edit's price delta."""

    UPCHARGE = "upcharge"
    DOWNGRADE = "downgrade"
    NO_CHANGE = "no_change"


class UserRole(str, Enum):
    """Role of an authenticated caller."""

    CUSTOMER = "customer"
    ADMIN = "admin"
