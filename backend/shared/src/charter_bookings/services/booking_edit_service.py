"""Booking edits and price reconciliation.

An edit selects a new schedule, pickup or party size. Prices are always taken
from the current catalog, not from the booking's frozen pricing. The delta
decides what happens next:

- upcharge: the customer pays the difference (see UpchargeService)
- downgrade: the difference is refunded, bypassing the cancellation policy
- no_change: only the booking fields are updated
"""

import datetime as dt
import logging
from decimal import Decimal

from botocore.exceptions import BotoCoreError, ClientError

from charter_bookings.models import (
    Booking,
    BookingError,
    BookingPricing,
    BookingStatus,
    BookingType,
    EditData,
    EditOutcome,
    Err,
    ErrorKind,
    EventEditData,
    Ok,
    PriceCalculation,
    PriceChangeType,
    RefundResult,
    Result,
    TourEditData,
)
from charter_bookings.utils.dates import parse_datetime, utc_now
from charter_bookings.utils.money import format_amount, quantize

from .booking_service import BookingService
from .catalog_service import CatalogService
from .ledger_service import LedgerService
from .refund_service import RefundService
from .stripe_service import StripeServiceError

logger = logging.getLogger(__name__)


class BookingEditService:
    """Recomputes prices for edited bookings and applies downgrade/no-change edits."""

    def __init__(
        self,
        catalog: CatalogService,
        bookings: BookingService,
        ledger: LedgerService | None = None,
        refunds: RefundService | None = None,
    ) -> None:
        self.catalog = catalog
        self.bookings = bookings
        self.ledger = ledger
        self.refunds = refunds

    @staticmethod
    def _check_edit_type(booking: Booking, edit_data: EditData) -> Err | None:
        expected = EventEditData if booking.booking_type == BookingType.EVENT else TourEditData
        if not isinstance(edit_data, expected):
            return Err.of(
                ErrorKind.VALIDATION,
                f"Edit data does not match a {booking.booking_type.value} booking",
            )
        return None

    def calculate_price_difference(
        self,
        booking: Booking,
        edit_data: EditData,
        now: dt.datetime | None = None,
    ) -> Result[PriceCalculation]:
        """Price the edited selection and classify the change.

        Args:
            booking: Booking being edited
            edit_data: New selection (event or tour edit)
            now: Current instant for the tour date check

        Returns:
            Ok(PriceCalculation), Err(NOT_FOUND) for missing catalog entries,
            or Err(VALIDATION) for an invalid or past tour date
        """
        mismatch = self._check_edit_type(booking, edit_data)
        if mismatch:
            return mismatch

        if isinstance(edit_data, EventEditData):
            event_result = self.catalog.get_event(edit_data.event_id)
            if isinstance(event_result, Err):
                return event_result
            schedule = event_result.value.find_schedule(edit_data.schedule_id)
            if schedule is None:
                return Err.of(ErrorKind.NOT_FOUND, "Schedule not found")
            pickup = schedule.find_pickup(edit_data.pickup_location_id)
            if pickup is None:
                return Err.of(ErrorKind.NOT_FOUND, "Pickup location not found")
            adult_price, children_price = pickup.adult_price, pickup.children_price
        else:
            tour_result = self.catalog.get_tour(edit_data.tour_id)
            if isinstance(tour_result, Err):
                return tour_result
            date_check = self._check_tour_date(edit_data.tour_date_time, now)
            if isinstance(date_check, Err):
                return date_check
            tour_pickup = tour_result.value.find_pickup(edit_data.pickup_location_id)
            if tour_pickup is None:
                return Err.of(ErrorKind.NOT_FOUND, "Pickup location not found")
            adult_price, children_price = tour_pickup.adult_price, tour_pickup.children_price

        adult_total = quantize(adult_price * edit_data.adult_count)
        child_total = quantize(children_price * edit_data.child_count)
        new_amount = adult_total + child_total
        original_amount = booking.pricing.total_amount
        difference = new_amount - original_amount

        if difference > 0:
            change = PriceChangeType.UPCHARGE
        elif difference < 0:
            change = PriceChangeType.DOWNGRADE
        else:
            change = PriceChangeType.NO_CHANGE

        return Ok(
            PriceCalculation(
                original_amount=original_amount,
                new_amount=new_amount,
                difference=difference,
                type=change,
                new_pricing=BookingPricing(
                    adult_price=adult_price,
                    children_price=children_price,
                    adult_total=adult_total,
                    child_total=child_total,
                    total_amount=new_amount,
                    currency=booking.pricing.currency,
                ),
            )
        )

    @staticmethod
    def _check_tour_date(value: str, now: dt.datetime | None) -> Result[dt.datetime]:
        try:
            tour_date = parse_datetime(value)
        except (TypeError, ValueError):
            return Err.of(ErrorKind.VALIDATION, "Invalid tour date")
        if tour_date <= (now or utc_now()):
            return Err.of(ErrorKind.VALIDATION, "Selected date is not available for booking")
        return Ok(tour_date)

    def validate_pickup_time(self, edit_data: EditData) -> Result[bool]:
        """Check that the selected pickup (and, for events, its time) exists."""
        if isinstance(edit_data, TourEditData):
            tour_result = self.catalog.get_tour(edit_data.tour_id)
            if isinstance(tour_result, Err):
                return tour_result
            if tour_result.value.find_pickup(edit_data.pickup_location_id) is None:
                return Err.of(ErrorKind.NOT_FOUND, "Pickup location not found")
            return Ok(True)

        event_result = self.catalog.get_event(edit_data.event_id)
        if isinstance(event_result, Err):
            return event_result
        schedule = event_result.value.find_schedule(edit_data.schedule_id)
        if schedule is None:
            return Err.of(ErrorKind.NOT_FOUND, "Schedule not found")
        pickup = schedule.find_pickup(edit_data.pickup_location_id)
        if pickup is None:
            return Err.of(ErrorKind.NOT_FOUND, "Pickup location not found")
        if pickup.find_time(edit_data.pickup_time_id) is None:
            return Err.of(ErrorKind.NOT_FOUND, "Pickup time not found")
        return Ok(True)

    def update_booking_details(
        self,
        booking: Booking,
        edit_data: EditData,
        new_pricing: BookingPricing,
    ) -> Result[Booking]:
        """Write the new selection, counts and pricing to the booking."""
        now = dt.datetime.now(dt.UTC)
        note = f"Booking updated on {now.isoformat()}"
        fields: dict = {
            "adult_count": edit_data.adult_count,
            "child_count": edit_data.child_count,
            "pricing": new_pricing.model_dump(),
            "notes": f"{booking.notes}\n\n{note}" if booking.notes else note,
        }

        if isinstance(edit_data, EventEditData):
            fields["event_id"] = edit_data.event_id
            fields["schedule_id"] = edit_data.schedule_id
            pickup_details = {
                "location_id": edit_data.pickup_location_id,
                "selected_time_id": edit_data.pickup_time_id,
            }
            if edit_data.hotel_id:
                pickup_details["hotel_id"] = edit_data.hotel_id
            fields["pickup_details"] = pickup_details
        else:
            tour_result = self.catalog.get_tour(edit_data.tour_id)
            if isinstance(tour_result, Err):
                return tour_result
            pickup = tour_result.value.find_pickup(edit_data.pickup_location_id)
            if pickup is None:
                return Err.of(
                    ErrorKind.NOT_FOUND,
                    f"Pickup location not found for hotel ID: {edit_data.pickup_location_id}",
                )
            try:
                tour_date = parse_datetime(edit_data.tour_date_time)
            except ValueError:
                return Err.of(ErrorKind.VALIDATION, "Invalid tour date")

            pickup_date_time = tour_date
            if pickup.pickup_time:
                hours, minutes = (int(part) for part in pickup.pickup_time.split(":")[:2])
                pickup_date_time = tour_date.replace(
                    hour=hours, minute=minutes, second=0, microsecond=0
                )

            fields["tour_id"] = edit_data.tour_id
            fields["scheduled_date"] = tour_date
            fields["pickup_details"] = {
                "location_id": edit_data.pickup_location_id,
                "hotel_id": pickup.hotel_id,
                "pickup_date_time": pickup_date_time,
                "tour_date_time": tour_date,
            }

        try:
            updated = self.bookings.update_fields(booking, fields)
        except (ClientError, BotoCoreError):
            logger.exception("Booking update failed for %s", booking.booking_id)
            return Err.of(ErrorKind.INTERNAL, "Failed to update booking")
        if updated is None:
            return Err.of(ErrorKind.NOT_FOUND, "Booking not found")
        return Ok(updated)

    def apply_edit(self, booking: Booking, edit_data: EditData) -> Result[EditOutcome]:
        """Apply a downgrade or no-change edit, refunding the difference if any.

        Upcharges are rejected; they go through the payment flow and are applied
        by the webhook handler once paid.

        Returns:
            Ok(EditOutcome) or Err describing why the edit was not applied
        """
        if self.ledger is None or self.refunds is None:
            raise RuntimeError("BookingEditService needs a ledger and refund service to apply edits")

        if booking.status == BookingStatus.CANCELLED:
            return Err.of(ErrorKind.VALIDATION, "Cancelled bookings cannot be edited")

        if isinstance(edit_data, EventEditData):
            valid = self.validate_pickup_time(edit_data)
            if isinstance(valid, Err):
                return valid

        price_result = self.calculate_price_difference(booking, edit_data)
        if isinstance(price_result, Err):
            return price_result
        calculation = price_result.value

        if calculation.type == PriceChangeType.UPCHARGE:
            return Err.of(
                ErrorKind.VALIDATION,
                f"This change increases the booking price by {format_amount(calculation.difference)}. "
                "Please complete the additional payment to update your booking.",
            )

        refund: RefundResult | None = None
        if calculation.type == PriceChangeType.DOWNGRADE:
            refund_result = self._refund_downgrade(booking, calculation.difference)
            if isinstance(refund_result, Err):
                return refund_result
            refund = refund_result.value

        update_result = self.update_booking_details(booking, edit_data, calculation.new_pricing)
        if isinstance(update_result, Err):
            if refund is not None:
                logger.error(
                    "Refund %s issued for booking %s but the booking update failed: %s",
                    refund.refund_id,
                    booking.booking_id,
                    update_result.message,
                )
                return Err.of(
                    ErrorKind.INTERNAL,
                    f"Refund {refund.refund_id} was issued but the booking could not be "
                    "updated. Please contact support.",
                )
            return update_result

        if refund is not None:
            message = (
                f"Booking updated. A refund of {format_amount(refund.amount)} "
                "has been initiated."
            )
        else:
            message = "Booking updated successfully"

        return Ok(
            EditOutcome(
                success=True,
                message=message,
                price_change=calculation.type,
                refund_amount=refund.amount if refund else None,
                refund_ids=refund.refund_ids if refund else [],
                updated_at=update_result.value.updated_at,
            )
        )

    def _refund_downgrade(self, booking: Booking, difference: Decimal) -> Result[RefundResult]:
        plan_result = self.ledger.get_payments_to_refund(
            booking.booking_id, abs(difference), booking.booking_type
        )
        if isinstance(plan_result, Err):
            return plan_result
        allocations = plan_result.value.payments_to_refund
        reason = f"Booking downgrade for {booking.booking_reference}"

        try:
            if len(allocations) == 1:
                allocation = allocations[0]
                result = self.refunds.process_refund(
                    payment_intent_id=allocation.payment_intent_id,
                    payment_id=allocation.payment.payment_id,
                    payment_amount=allocation.payment.amount,
                    booking_id=booking.booking_id,
                    event_date=None,
                    reason=reason,
                    booking_type=booking.booking_type,
                    is_downgrade=True,
                    downgrade_difference=difference,
                )
            else:
                result = self.refunds.process_multi_payment_refund(
                    payments_to_refund=allocations,
                    booking_id=booking.booking_id,
                    event_date=None,
                    reason=reason,
                    booking_type=booking.booking_type,
                    is_downgrade=True,
                )
        except BookingError as e:
            return Err(e)
        except StripeServiceError as e:
            return Err.of(ErrorKind.GATEWAY_FAILURE, str(e))

        return Ok(result)
