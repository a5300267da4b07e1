"""Backend services for charter tour and event bookings."""

from .booking_edit_service import BookingEditService
from .booking_service import BookingService
from .cancellation_service import CancellationService
from .catalog_service import CatalogService
from .dynamodb import DynamoDBService
from .ledger_service import LedgerService
from .manual_payment_service import BookingNotVisibleError, ManualPaymentRecorder
from .payment_service import PaymentService
from .refund_policy_service import RefundPolicyService
from .refund_service import RefundService
from .ssm_service import SSMService, SSMServiceError, get_ssm_service
from .stripe_service import StripeService, StripeServiceError, get_stripe_service
from .upcharge_service import UpchargeService
from .webhook_handler import WebhookHandler

__all__ = [
    "DynamoDBService",
    "BookingEditService",
    "BookingNotVisibleError",
    "BookingService",
    "CancellationService",
    "CatalogService",
    "LedgerService",
    "ManualPaymentRecorder",
    "PaymentService",
    "RefundPolicyService",
    "RefundService",
    "SSMService",
    "SSMServiceError",
    "get_ssm_service",
    "StripeService",
    "StripeServiceError",
    "get_stripe_service",
    "UpchargeService",
    "WebhookHandler",
]
