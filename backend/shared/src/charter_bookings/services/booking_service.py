"""Booking repository for tour and event bookings."""

import datetime as dt
import logging
from typing import TYPE_CHECKING, Any

from charter_bookings.models import (
    Booking,
    BookingStatus,
    BookingType,
    Err,
    ErrorKind,
    Ok,
    Result,
)
from charter_bookings.utils.dates import parse_datetime

from .catalog_service import CatalogService
from .dynamodb import model_to_item, to_attribute_value
from .payment_service import append_note

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = logging.getLogger(__name__)


class BookingService:
    """Service for reading bookings and applying status and field updates."""

    def __init__(
        self,
        db: "DynamoDBService",
        catalog: CatalogService | None = None,
    ) -> None:
        """Initialize booking service.

        Args:
            db: DynamoDB service instance
            catalog: Catalog service, created from ``db`` when omitted
        """
        self.db = db
        self.catalog = catalog or CatalogService(db)

    def get_booking(
        self, booking_id: str, booking_type: BookingType, consistent: bool = False
    ) -> Result[Booking]:
        """Get a booking by ID.

        Returns:
            Ok(Booking) or Err(NOT_FOUND)
        """
        item = self.db.get_item(
            booking_type.bookings_table,
            {"booking_id": booking_id},
            consistent_read=consistent,
        )
        if not item:
            return Err.of(ErrorKind.NOT_FOUND, "Booking not found")
        return Ok(Booking.model_validate(item))

    def save_booking(self, booking: Booking) -> None:
        self.db.put_item(booking.booking_type.bookings_table, model_to_item(booking))

    def update_status(
        self, booking: Booking, status: BookingStatus
    ) -> Booking | None:
        """Move a booking to a new status.

        Returns:
            Updated booking or None if it no longer exists
        """
        return self.update_fields(booking, {"status": status.value})

    def update_fields(self, booking: Booking, fields: dict[str, Any]) -> Booking | None:
        """Set top-level attributes on a booking and bump ``updated_at``.

        Attribute names go through placeholders since several of them
        (status, pricing) are DynamoDB reserved words.
        """
        now = dt.datetime.now(dt.UTC)
        fields = {**fields, "updated_at": now.isoformat()}

        names: dict[str, str] = {}
        values: dict[str, Any] = {}
        assignments: list[str] = []
        for index, (name, value) in enumerate(fields.items()):
            names[f"#f{index}"] = name
            values[f":v{index}"] = to_attribute_value(value)
            assignments.append(f"#f{index} = :v{index}")

        attrs = self.db.update_item(
            booking.booking_type.bookings_table,
            {"booking_id": booking.booking_id},
            "SET " + ", ".join(assignments),
            values,
            expression_attribute_names=names,
            condition_expression="attribute_exists(booking_id)",
        )
        if attrs is None:
            logger.warning("Booking %s disappeared during update", booking.booking_id)
            return None
        return Booking.model_validate(attrs)

    def mark_payment_collected(self, booking: Booking) -> Booking | None:
        """Confirm a booking whose payment was collected outside Stripe."""
        note = f"Payment collected manually on {dt.datetime.now(dt.UTC).isoformat()}"
        return self.update_fields(
            booking,
            {
                "payment_collected": True,
                "status": BookingStatus.CONFIRMED.value,
                "notes": append_note(booking.notes, note),
            },
        )

    def get_event_date(self, booking: Booking) -> Result[dt.datetime]:
        """Resolve when the booked tour or event starts.

        Tours carry their date on the booking. Events are looked up through the
        selected schedule in the catalog.

        Returns:
            Ok(start instant in UTC), Err(NOT_FOUND) if the event is missing,
            or Err(VALIDATION) if no valid date can be determined
        """
        if booking.booking_type == BookingType.TOUR:
            raw = booking.pickup_details.tour_date_time or booking.scheduled_date
            if raw is None:
                return Err.of(
                    ErrorKind.VALIDATION,
                    "Cannot determine tour date for this booking. "
                    "Please contact support for assistance.",
                )
            return Ok(parse_datetime(raw))

        if not booking.event_id:
            return Err.of(ErrorKind.NOT_FOUND, "Event not found")
        event_result = self.catalog.get_event(booking.event_id)
        if isinstance(event_result, Err):
            return event_result

        schedule = (
            event_result.value.find_schedule(booking.schedule_id)
            if booking.schedule_id
            else None
        )
        if schedule is None:
            return Err.of(
                ErrorKind.VALIDATION,
                "Cannot determine event date for this booking. "
                "Please contact support for assistance.",
            )
        return Ok(parse_datetime(schedule.event_date_time))
