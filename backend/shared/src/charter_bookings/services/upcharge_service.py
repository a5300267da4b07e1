"""Upcharge payments for edits that raise a booking's price."""

import logging

from charter_bookings.models import (
    Booking,
    EditData,
    Err,
    ErrorKind,
    Ok,
    PaymentType,
    PriceChangeType,
    Result,
    UpchargeIntent,
    User,
)
from charter_bookings.utils.logging import log_payment_operation
from charter_bookings.utils.money import to_minor_units

from .booking_edit_service import BookingEditService
from .catalog_service import CatalogService
from .payment_service import PaymentService
from .stripe_service import StripeService, StripeServiceError

logger = logging.getLogger(__name__)


class UpchargeService:
    """Creates the payment intent and pending payment record for an upcharge.

    The edit itself is serialized into the intent metadata and applied by the
    webhook handler once Stripe reports the payment as succeeded.
    """

    def __init__(
        self,
        edits: BookingEditService,
        catalog: CatalogService,
        payments: PaymentService,
        stripe_service: StripeService,
    ) -> None:
        self.edits = edits
        self.catalog = catalog
        self.payments = payments
        self.stripe = stripe_service

    def get_or_create_customer(self, user: User) -> str:
        """Return the user's Stripe customer ID, creating the customer on first use.

        Raises:
            StripeServiceError: If the customer cannot be created
        """
        if user.stripe_customer_id:
            return user.stripe_customer_id

        customer_id = self.stripe.create_customer(
            email=user.email,
            name=user.name,
            metadata={"userId": user.user_id},
        )
        self.catalog.set_stripe_customer_id(user.user_id, customer_id)
        return customer_id

    def start_upcharge(
        self,
        booking: Booking,
        user: User | None,
        edit_data: EditData,
    ) -> Result[UpchargeIntent]:
        """Start paying the difference of an upcharge edit.

        The amount is recomputed here from the catalog; clients never supply it.

        Returns:
            Ok(UpchargeIntent) with the client secret, or Err(VALIDATION) if the
            edit is not an upcharge, or Err(GATEWAY_FAILURE)
        """
        price_result = self.edits.calculate_price_difference(booking, edit_data)
        if isinstance(price_result, Err):
            return price_result
        calculation = price_result.value

        if calculation.type != PriceChangeType.UPCHARGE:
            return Err.of(
                ErrorKind.VALIDATION,
                "This change does not require an additional payment",
            )

        upcharge_amount = calculation.difference
        metadata = {
            "bookingId": booking.booking_id,
            "bookingReference": booking.booking_reference,
            "bookingType": booking.booking_type.value,
            "paymentType": PaymentType.UPCHARGE.value,
            "originalAmount": calculation.original_amount,
            "newAmount": calculation.new_amount,
            "upchargeAmount": upcharge_amount,
            "userId": user.user_id if user else booking.user_id,
            "editData": edit_data.model_dump_json(by_alias=True, exclude_none=True),
        }

        try:
            customer_id = self.get_or_create_customer(user) if user else None
            intent = self.stripe.create_payment_intent(
                amount_cents=to_minor_units(upcharge_amount),
                customer_id=customer_id,
                description=f"Booking upgrade for {booking.booking_reference}",
                metadata=metadata,
            )
        except StripeServiceError as e:
            log_payment_operation(
                logger,
                "create_upcharge_intent",
                booking_id=booking.booking_id,
                amount=upcharge_amount,
                error=str(e),
            )
            return Err.of(ErrorKind.GATEWAY_FAILURE, str(e))

        payment = self.payments.create_upcharge_payment(
            booking,
            amount=upcharge_amount,
            payment_intent_id=intent["payment_intent_id"],
            customer_id=customer_id,
            user_id=user.user_id if user else booking.user_id,
        )

        log_payment_operation(
            logger,
            "create_upcharge_intent",
            payment_id=payment.payment_id,
            booking_id=booking.booking_id,
            amount=upcharge_amount,
            status=payment.payment_status.value,
            payment_intent_id=intent["payment_intent_id"],
        )

        return Ok(
            UpchargeIntent(
                client_secret=intent["client_secret"],
                payment_intent_id=intent["payment_intent_id"],
                payment_id=payment.payment_id,
                upcharge_amount=upcharge_amount,
            )
        )
