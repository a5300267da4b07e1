"""FastAPI dependency injection providers for booking services.

The DynamoDB and Stripe clients are attached to ``app.state`` by
``create_app``; every service is built per request on top of them.

Service Dependency Graph:
    DynamoDBService (app.state.db)
        ├── CatalogService
        │       └── BookingService
        ├── PaymentService
        │       ├── LedgerService
        │       └── RefundService  <── StripeService (app.state.stripe)
        ├── BookingEditService (catalog, bookings, ledger, refunds)
        ├── CancellationService (bookings, ledger, refunds)
        ├── UpchargeService (edits, catalog, payments, stripe)
        ├── ManualPaymentRecorder (bookings, payments)
        └── WebhookHandler (db, payments, bookings, edits)

Callers are identified by the X-User-Id and X-User-Role headers set by the
upstream authorizer.
"""

from fastapi import Depends, Header, Request
from pydantic import BaseModel

from charter_bookings.models import BookingError, ErrorKind, UserRole
from charter_bookings.services.booking_edit_service import BookingEditService
from charter_bookings.services.booking_service import BookingService
from charter_bookings.services.cancellation_service import CancellationService
from charter_bookings.services.catalog_service import CatalogService
from charter_bookings.services.dynamodb import DynamoDBService
from charter_bookings.services.ledger_service import LedgerService
from charter_bookings.services.manual_payment_service import ManualPaymentRecorder
from charter_bookings.services.payment_service import PaymentService
from charter_bookings.services.refund_service import RefundService
from charter_bookings.services.stripe_service import StripeService
from charter_bookings.services.upcharge_service import UpchargeService
from charter_bookings.services.webhook_handler import WebhookHandler

# === Clients ===


def get_db(request: Request) -> DynamoDBService:
    return request.app.state.db


def get_stripe(request: Request) -> StripeService:
    return request.app.state.stripe


# === Repositories ===


def get_catalog_service(db: DynamoDBService = Depends(get_db)) -> CatalogService:
    return CatalogService(db)


def get_payment_service(db: DynamoDBService = Depends(get_db)) -> PaymentService:
    return PaymentService(db)


def get_booking_service(
    db: DynamoDBService = Depends(get_db),
    catalog: CatalogService = Depends(get_catalog_service),
) -> BookingService:
    return BookingService(db, catalog)


# === Refund and edit services ===


def get_ledger_service(
    payments: PaymentService = Depends(get_payment_service),
) -> LedgerService:
    return LedgerService(payments)


def get_refund_service(
    payments: PaymentService = Depends(get_payment_service),
    stripe_service: StripeService = Depends(get_stripe),
) -> RefundService:
    return RefundService(payments, stripe_service)


def get_edit_service(
    catalog: CatalogService = Depends(get_catalog_service),
    bookings: BookingService = Depends(get_booking_service),
    ledger: LedgerService = Depends(get_ledger_service),
    refunds: RefundService = Depends(get_refund_service),
) -> BookingEditService:
    return BookingEditService(catalog, bookings, ledger, refunds)


def get_cancellation_service(
    bookings: BookingService = Depends(get_booking_service),
    ledger: LedgerService = Depends(get_ledger_service),
    refunds: RefundService = Depends(get_refund_service),
) -> CancellationService:
    return CancellationService(bookings, ledger, refunds)


def get_upcharge_service(
    edits: BookingEditService = Depends(get_edit_service),
    catalog: CatalogService = Depends(get_catalog_service),
    payments: PaymentService = Depends(get_payment_service),
    stripe_service: StripeService = Depends(get_stripe),
) -> UpchargeService:
    return UpchargeService(edits, catalog, payments, stripe_service)


def get_manual_payment_recorder(
    bookings: BookingService = Depends(get_booking_service),
    payments: PaymentService = Depends(get_payment_service),
) -> ManualPaymentRecorder:
    return ManualPaymentRecorder(bookings, payments)


def get_webhook_handler(
    db: DynamoDBService = Depends(get_db),
    payments: PaymentService = Depends(get_payment_service),
    bookings: BookingService = Depends(get_booking_service),
    edits: BookingEditService = Depends(get_edit_service),
) -> WebhookHandler:
    return WebhookHandler(db, payments, bookings, edits)


# === Caller identity ===


class CurrentUser(BaseModel):
    """Caller identity forwarded by the authorizer."""

    user_id: str
    role: UserRole = UserRole.CUSTOMER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def get_current_user(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> CurrentUser:
    """Identify the caller.

    Raises:
        BookingError: UNAUTHORIZED if no user ID was forwarded
    """
    if not x_user_id:
        raise BookingError(ErrorKind.UNAUTHORIZED)
    try:
        role = UserRole(x_user_role) if x_user_role else UserRole.CUSTOMER
    except ValueError:
        role = UserRole.CUSTOMER
    return CurrentUser(user_id=x_user_id, role=role)


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Allow administrators only.

    Raises:
        BookingError: FORBIDDEN for non-admin callers
    """
    if not user.is_admin:
        raise BookingError(ErrorKind.FORBIDDEN, "Administrator access required")
    return user
