"""Booking endpoints for cancellation, edits and payment records.

Provides REST endpoints for:
- Cancelling a booking with a policy-based refund
- Pricing an edit, applying a downgrade/no-change edit with its refund
- Starting the payment of an upcharge edit
- Viewing a booking's payments and refundable balance
- Recording a payment collected by phone or POS (admin)

Every route exists for tours and events: ``/bookings/tours/...`` and
``/bookings/events/...``.
"""

import logging
from enum import Enum

from fastapi import APIRouter, BackgroundTasks, Depends
from starlette.status import HTTP_202_ACCEPTED

from charter_api.dependencies import (
    CurrentUser,
    get_booking_service,
    get_cancellation_service,
    get_catalog_service,
    get_current_user,
    get_edit_service,
    get_ledger_service,
    get_manual_payment_recorder,
    get_payment_service,
    get_upcharge_service,
    require_admin,
)
from charter_api.models.bookings import (
    CancelRequest,
    CancelResponse,
    CollectPaymentResponse,
    EditRefundResponse,
    EditRequest,
    PaymentLedgerResponse,
    PaymentView,
    PriceCalculationResponse,
    PriceDifference,
    UpchargePaymentResponse,
    parse_edit_data,
)
from charter_bookings.models import (
    Booking,
    BookingError,
    BookingType,
    Err,
    ErrorKind,
    unwrap,
)
from charter_bookings.services.booking_edit_service import BookingEditService
from charter_bookings.services.booking_service import BookingService
from charter_bookings.services.cancellation_service import CancellationService
from charter_bookings.services.catalog_service import CatalogService
from charter_bookings.services.ledger_service import LedgerService
from charter_bookings.services.manual_payment_service import ManualPaymentRecorder
from charter_bookings.services.payment_service import PaymentService
from charter_bookings.services.upcharge_service import UpchargeService
from charter_bookings.utils.money import ZERO

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["bookings"])


class BookingKind(str, Enum):
    """Booking type as it appears in URLs."""

    TOURS = "tours"
    EVENTS = "events"

    @property
    def booking_type(self) -> BookingType:
        return BookingType.TOUR if self == BookingKind.TOURS else BookingType.EVENT


def _load_booking(
    bookings: BookingService,
    booking_id: str,
    booking_type: BookingType,
    user: CurrentUser,
) -> Booking:
    """Fetch a booking the caller owns (or any booking for admins)."""
    booking = unwrap(bookings.get_booking(booking_id, booking_type))
    if not user.is_admin and str(booking.user_id) != str(user.user_id):
        raise BookingError(ErrorKind.FORBIDDEN)
    return booking


# === Cancellation ===


@router.post(
    "/{kind}/cancel",
    summary="Cancel a booking",
    description="""
Cancel a tour or event booking and refund what the cancellation policy allows.

**Policy:** 100% refund when cancelled more than 12 hours before the start,
50% within the last 12 hours, nothing once the tour or event has started.

The refund is split across the booking's payments, most recent first.
""",
    response_model=CancelResponse,
    responses={
        400: {"description": "Already cancelled, not refundable or invalid request"},
        401: {"description": "Caller not identified"},
        403: {"description": "Not the booking owner"},
        404: {"description": "Booking not found"},
        409: {"description": "A refund is already in progress"},
    },
)
async def cancel_booking(
    kind: BookingKind,
    body: CancelRequest,
    user: CurrentUser = Depends(get_current_user),
    cancellations: CancellationService = Depends(get_cancellation_service),
) -> CancelResponse:
    refund = unwrap(
        cancellations.cancel_booking(
            body.booking_id,
            kind.booking_type,
            user_id=user.user_id,
            is_admin=user.is_admin,
        )
    )
    return CancelResponse(
        message=refund.message,
        refund_id=refund.refund_id,
        refund_amount=refund.amount,
    )


# === Edits ===


@router.post(
    "/{kind}/edit/calculate-price",
    summary="Price an edit",
    response_model=PriceCalculationResponse,
)
async def calculate_price(
    kind: BookingKind,
    body: EditRequest,
    user: CurrentUser = Depends(get_current_user),
    bookings: BookingService = Depends(get_booking_service),
    edits: BookingEditService = Depends(get_edit_service),
) -> PriceCalculationResponse:
    """Compare the booking's price with the price of the new selection."""
    edit_data = parse_edit_data(kind.booking_type, body.edit_data)
    booking = _load_booking(bookings, body.booking_id, kind.booking_type, user)
    calculation = unwrap(edits.calculate_price_difference(booking, edit_data))
    return PriceCalculationResponse(
        price_difference=PriceDifference(
            original_amount=calculation.original_amount,
            new_amount=calculation.new_amount,
            difference=calculation.difference,
            type=calculation.type,
        ),
        new_pricing=calculation.new_pricing,
    )


@router.post(
    "/{kind}/edit/refund",
    summary="Apply an edit that lowers or keeps the price",
    description="""
Update the booking with the new selection. When the new price is lower the
difference is refunded in full, regardless of the cancellation policy.

Edits that raise the price are rejected; use `edit/payment` instead.
""",
    response_model=EditRefundResponse,
)
async def apply_edit(
    kind: BookingKind,
    body: EditRequest,
    user: CurrentUser = Depends(get_current_user),
    bookings: BookingService = Depends(get_booking_service),
    edits: BookingEditService = Depends(get_edit_service),
) -> EditRefundResponse:
    edit_data = parse_edit_data(kind.booking_type, body.edit_data)
    booking = _load_booking(bookings, body.booking_id, kind.booking_type, user)
    outcome = unwrap(edits.apply_edit(booking, edit_data))
    return EditRefundResponse(
        success=outcome.success,
        message=outcome.message,
        price_change=outcome.price_change,
        refund_id=", ".join(outcome.refund_ids) or None,
        refund_amount=outcome.refund_amount,
        updated_at=outcome.updated_at,
    )


@router.post(
    "/{kind}/edit/payment",
    summary="Start paying for an upcharge edit",
    description="""
Create a Stripe PaymentIntent for the price increase of an edit. The amount
is computed from the catalog. The booking is updated once Stripe reports the
payment as succeeded.
""",
    response_model=UpchargePaymentResponse,
)
async def start_upcharge_payment(
    kind: BookingKind,
    body: EditRequest,
    user: CurrentUser = Depends(get_current_user),
    bookings: BookingService = Depends(get_booking_service),
    catalog: CatalogService = Depends(get_catalog_service),
    upcharges: UpchargeService = Depends(get_upcharge_service),
) -> UpchargePaymentResponse:
    edit_data = parse_edit_data(kind.booking_type, body.edit_data)
    booking = _load_booking(bookings, body.booking_id, kind.booking_type, user)
    account = catalog.get_user(user.user_id)
    intent = unwrap(upcharges.start_upcharge(booking, account, edit_data))
    return UpchargePaymentResponse(
        client_secret=intent.client_secret,
        payment_intent_id=intent.payment_intent_id,
        payment_id=intent.payment_id,
        upcharge_amount=intent.upcharge_amount,
    )


# === Payments ===


@router.get(
    "/{kind}/{booking_id}/payments",
    summary="List a booking's payments",
    response_model=PaymentLedgerResponse,
)
async def get_booking_payments(
    kind: BookingKind,
    booking_id: str,
    user: CurrentUser = Depends(get_current_user),
    bookings: BookingService = Depends(get_booking_service),
    payments: PaymentService = Depends(get_payment_service),
    ledger: LedgerService = Depends(get_ledger_service),
) -> PaymentLedgerResponse:
    """All payments with their refund state, plus the refundable balance."""
    _load_booking(bookings, booking_id, kind.booking_type, user)

    summary = ledger.calculate_refundable_amount(booking_id, kind.booking_type)
    if isinstance(summary, Err):
        if summary.kind != ErrorKind.NOT_FOUND:
            raise summary.error
        total_paid = total_refunded = available = ZERO
    else:
        total_paid = summary.value.total_paid
        total_refunded = summary.value.total_already_refunded
        available = summary.value.available_for_refund

    return PaymentLedgerResponse(
        booking_id=booking_id,
        total_paid=total_paid,
        total_already_refunded=total_refunded,
        available_for_refund=available,
        payments=[
            PaymentView(
                payment_id=p.payment_id,
                payment_reference=p.payment_reference,
                amount=p.amount,
                currency=p.currency,
                payment_status=p.payment_status,
                payment_method=p.payment_method,
                payment_type=p.payment_type,
                refund_status=p.refund_status,
                refunded_amount=p.refunded_amount,
                remaining_refundable=p.remaining_refundable,
                receipt_url=p.receipt_url,
                refund_receipt_url=p.refund_receipt_url,
                created_at=p.created_at,
            )
            for p in payments.get_payments_for_booking(booking_id, kind.booking_type)
        ],
    )


@router.post(
    "/{kind}/{booking_id}/collect-payment",
    summary="Record a payment collected by phone or POS",
    description="""
**Administrators only.** Marks the booking as paid and creates its payment
record in the background. Recording is retried while the booking is not yet
readable or DynamoDB is throttling.
""",
    response_model=CollectPaymentResponse,
    status_code=HTTP_202_ACCEPTED,
)
async def collect_payment(
    kind: BookingKind,
    booking_id: str,
    background_tasks: BackgroundTasks,
    admin: CurrentUser = Depends(require_admin),
    recorder: ManualPaymentRecorder = Depends(get_manual_payment_recorder),
) -> CollectPaymentResponse:
    logger.info(
        "Manual payment collection for %s booking %s requested by %s",
        kind.booking_type.value,
        booking_id,
        admin.user_id,
    )
    background_tasks.add_task(recorder.record_with_retry, booking_id, kind.booking_type)
    return CollectPaymentResponse(message="Payment collection is being recorded")
