"""Webhook endpoint for Stripe events.

Handles refund confirmations and payment outcomes:
- charge.refunded, charge.refund.updated, refund.updated
- payment_intent.succeeded, payment_intent.payment_failed

This endpoint does NOT require caller headers as it receives signed payloads
from Stripe.
"""

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from charter_api.dependencies import get_stripe, get_webhook_handler
from charter_bookings.models import BookingError, ErrorKind
from charter_bookings.services.stripe_service import StripeService, StripeServiceError
from charter_bookings.services.webhook_handler import WebhookHandler
from charter_bookings.utils.logging import get_logger, log_webhook_event

logger = get_logger(__name__)

router = APIRouter(tags=["webhooks"])


class WebhookResponse(BaseModel):
    """Standard webhook response."""

    received: bool
    event_id: str | None = None
    event_type: str | None = None
    processing_result: str  # "success", "duplicate", "skipped", "error"
    message: str | None = None


@router.post(
    "/payments/webhooks",
    summary="Receive Stripe webhook events",
    description="""
Endpoint for Stripe webhook events.

**No authentication required** - signature is verified using the Stripe webhook secret.

**Idempotent**: Duplicate events (same event_id) return 200 with a 'duplicate' result.
""",
    response_model=WebhookResponse,
    responses={
        400: {"description": "Invalid signature or missing header"},
        500: {"description": "Event could not be processed; Stripe will retry"},
    },
)
async def handle_stripe_webhook(
    request: Request,
    stripe_service: StripeService = Depends(get_stripe),
    handler: WebhookHandler = Depends(get_webhook_handler),
) -> WebhookResponse:
    """Verify the signature and hand the event to the webhook handler."""
    signature = request.headers.get("Stripe-Signature")
    if not signature:
        logger.warning("Webhook request missing Stripe-Signature header")
        raise BookingError(ErrorKind.VALIDATION, "Missing stripe-signature header")

    payload = await request.body()

    try:
        event = stripe_service.verify_webhook_signature(payload, signature)
    except StripeServiceError as e:
        logger.warning("Webhook signature verification failed: %s", e)
        raise BookingError(ErrorKind.VALIDATION, "Invalid webhook signature") from e

    event_id = event.get("id")
    event_type = event.get("type")
    log_webhook_event(logger, event_type, event_id, result="received")

    try:
        result, error = handler.handle_event(
            event, StripeService.compute_payload_hash(payload)
        )
    except (ClientError, BotoCoreError) as e:
        log_webhook_event(logger, event_type, event_id, result="error", error=str(e))
        raise BookingError(ErrorKind.INTERNAL, "Webhook handler failed") from e

    return WebhookResponse(
        received=True,
        event_id=event_id,
        event_type=event_type,
        processing_result=result,
        message="Event already processed" if result == "duplicate" else error,
    )
