"""Stripe payment service for refunds, customers and upcharge payment intents.

Provides integration with Stripe using the v8+ StripeClient pattern.
Retrieves API keys from SSM Parameter Store.
"""

import hashlib
import json
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from functools import lru_cache
from typing import Any

import stripe
from stripe import StripeClient

from .ssm_service import SSMServiceError, get_ssm_service, stripe_parameter_path

logger = logging.getLogger(__name__)


class StripeServiceError(Exception):
    """Raised when a Stripe operation fails."""

    def __init__(self, message: str, stripe_error_code: str | None = None) -> None:
        """Initialize with message and optional Stripe error code.

        Args:
            message: Human-readable error message.
            stripe_error_code: Stripe-specific error code if available.
        """
        super().__init__(message)
        self.stripe_error_code = stripe_error_code


def _stringify_metadata(metadata: dict[str, Any] | None) -> dict[str, str]:
    """Stripe metadata values must be strings; drop empty values."""
    if not metadata:
        return {}
    return {key: str(value) for key, value in metadata.items() if value is not None}


@contextmanager
def _stripe_errors(action: str) -> Iterator[None]:
    """Translate SDK errors into StripeServiceError('Failed to {action}: ...')."""
    try:
        yield
    except stripe.StripeError as e:
        error_code = getattr(e, "code", None)
        logger.error("Stripe call failed, could not %s: %s (code: %s)", action, e, error_code)
        raise StripeServiceError(f"Failed to {action}: {e}", stripe_error_code=error_code) from e


class StripeService:
    """Service for Stripe payment operations.

    Handles:
    - Refund creation (single and multi-payment refunds)
    - Customer lookup/creation for upcharge payments
    - Payment intent creation for upcharges
    - Webhook signature validation

    Usage:
        stripe_svc = get_stripe_service()
        refund = stripe_svc.create_refund(
            payment_intent_id="pi_123",
            amount_cents=5000,
            metadata={"bookingId": "BK-1"},
        )
    """

    def __init__(
        self,
        environment: str | None = None,
        currency: str | None = None,
    ) -> None:
        """Initialize Stripe service with credentials from SSM.

        Args:
            environment: Environment name (dev, prod). Defaults to ENVIRONMENT env var.
            currency: Booking currency. Defaults to BOOKING_CURRENCY env var or usd.
        """
        self._environment = environment or os.environ.get("ENVIRONMENT", "dev")
        self.currency = (currency or os.environ.get("BOOKING_CURRENCY", "usd")).lower()
        self._ssm = get_ssm_service()
        self._client: StripeClient | None = None
        self._webhook_secret: str | None = None

    def _get_client(self) -> StripeClient:
        """Get or create the Stripe client (lazy initialization).

        Raises:
            StripeServiceError: If credentials cannot be retrieved.
        """
        if self._client is None:
            try:
                secret_key = self._ssm.get_parameter(
                    stripe_parameter_path(self._environment, "secret_key")
                )
                self._client = StripeClient(secret_key)
                logger.info("Stripe client initialized for environment: %s", self._environment)
            except SSMServiceError as e:
                raise StripeServiceError(f"Failed to initialize Stripe client: {e}") from e
        return self._client

    def _get_webhook_secret(self) -> str:
        if self._webhook_secret is None:
            try:
                self._webhook_secret = self._ssm.get_parameter(
                    stripe_parameter_path(self._environment, "webhook_secret")
                )
            except SSMServiceError as e:
                raise StripeServiceError(f"Failed to get webhook secret: {e}") from e
        return self._webhook_secret

    def create_refund(
        self,
        *,
        payment_intent_id: str,
        amount_cents: int,
        metadata: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> dict:
        """Create a partial or full refund against a payment intent.

        Args:
            payment_intent_id: Stripe PaymentIntent ID (pi_xxx).
            amount_cents: Refund amount in cents.
            metadata: Refund context (booking, payment, totals, reason).
            idempotency_key: Key that makes a retried request return the same refund.

        Returns:
            Dict with refund details:
                - refund_id: Stripe refund ID
                - amount: Refunded amount in cents
                - status: Refund status

        Raises:
            StripeServiceError: If refund creation fails.
        """
        client = self._get_client()

        params: dict[str, Any] = {
            "payment_intent": payment_intent_id,
            "amount": amount_cents,
            "reason": "requested_by_customer",
        }
        refund_metadata = _stringify_metadata(metadata)
        if refund_metadata:
            params["metadata"] = refund_metadata

        options: dict[str, Any] = {}
        if idempotency_key:
            options["idempotency_key"] = idempotency_key

        logger.info(
            "Creating refund for PaymentIntent %s, amount %d cents", payment_intent_id, amount_cents
        )
        with _stripe_errors("create refund"):
            refund = client.refunds.create(params=params, options=options)

        logger.info("Refund created: %s for PaymentIntent %s", refund.id, payment_intent_id)
        return {"refund_id": refund.id, "amount": refund.amount, "status": refund.status}

    def create_customer(
        self,
        *,
        email: str,
        name: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Create a Stripe customer and return its ID (cus_xxx).

        Raises:
            StripeServiceError: If customer creation fails.
        """
        client = self._get_client()

        params: dict[str, Any] = {"email": email}
        if name:
            params["name"] = name
        customer_metadata = _stringify_metadata(metadata)
        if customer_metadata:
            params["metadata"] = customer_metadata

        with _stripe_errors("create customer"):
            customer = client.customers.create(params=params)
        logger.info("Stripe customer created: %s", customer.id)
        return customer.id

    def create_payment_intent(
        self,
        *,
        amount_cents: int,
        customer_id: str | None = None,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> dict:
        """Create a payment intent with automatic payment methods.

        Args:
            amount_cents: Amount to charge in cents.
            customer_id: Stripe customer to attach the payment to.
            description: Statement description shown in the dashboard.
            metadata: Booking context read back by the webhook handler.
            idempotency_key: Key that makes a retried request return the same intent.

        Returns:
            Dict with payment_intent_id, client_secret and status.

        Raises:
            StripeServiceError: If creation fails.
        """
        client = self._get_client()

        params: dict[str, Any] = {
            "amount": amount_cents,
            "currency": self.currency,
            "automatic_payment_methods": {"enabled": True},
        }
        if customer_id:
            params["customer"] = customer_id
        if description:
            params["description"] = description
        intent_metadata = _stringify_metadata(metadata)
        if intent_metadata:
            params["metadata"] = intent_metadata

        options: dict[str, Any] = {}
        if idempotency_key:
            options["idempotency_key"] = idempotency_key

        logger.info("Creating PaymentIntent for %d cents", amount_cents)
        with _stripe_errors("create payment intent"):
            intent = client.payment_intents.create(params=params, options=options)
        logger.info("PaymentIntent created: %s", intent.id)
        return {
            "payment_intent_id": intent.id,
            "client_secret": intent.client_secret,
            "status": intent.status,
        }

    def verify_webhook_signature(self, payload: bytes, signature: str) -> dict:
        """Verify a webhook signature and parse the event.

        Args:
            payload: Raw request body bytes.
            signature: Stripe-Signature header value.

        Returns:
            Parsed Stripe event dictionary.

        Raises:
            StripeServiceError: If signature is invalid.
        """
        webhook_secret = self._get_webhook_secret()

        try:
            event = stripe.Webhook.construct_event(payload, signature, webhook_secret)
        except (stripe.SignatureVerificationError, ValueError) as e:
            logger.warning("Invalid webhook signature: %s", str(e))
            raise StripeServiceError("Invalid webhook signature") from e

        logger.info("Webhook signature verified for event: %s", event["id"])
        return json.loads(payload)

    @staticmethod
    def compute_payload_hash(payload: bytes) -> str:
        """Compute SHA-256 hash of webhook payload for deduplication."""
        return hashlib.sha256(payload).hexdigest()


@lru_cache(maxsize=1)
def get_stripe_service() -> StripeService:
    """Get the shared StripeService instance (singleton pattern)."""
    return StripeService()
