"""Pytest configuration and fixtures for charter booking backend tests.

This module provides reusable fixtures for testing:
- DynamoDB mocking with moto (bookings, payments, catalog, webhook log)
- A mocked Stripe service that hands out sequential refund IDs
- Service instances wired the way the API wires them
- Factories for bookings, payments and catalog entries
"""

import datetime as dt
import itertools
import os
from decimal import Decimal
from typing import Any, Callable, Generator
from unittest.mock import MagicMock

import boto3
import pytest
from moto import mock_aws

# === Environment Setup ===

# Set environment variables for testing before imports
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
os.environ.setdefault("DYNAMODB_TABLE_PREFIX", "test-charter")
os.environ.setdefault("ENVIRONMENT", "test")

if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

from charter_bookings.models import (  # noqa: E402
    Booking,
    BookingPricing,
    BookingStatus,
    BookingType,
    Event,
    EventPickup,
    EventSchedule,
    Payment,
    PaymentStatus,
    PickupDetails,
    PickupTime,
    RefundStatus,
    Tour,
    TourPickup,
)
from charter_bookings.services.booking_edit_service import BookingEditService  # noqa: E402
from charter_bookings.services.booking_service import BookingService  # noqa: E402
from charter_bookings.services.cancellation_service import CancellationService  # noqa: E402
from charter_bookings.services.catalog_service import CatalogService  # noqa: E402
from charter_bookings.services.dynamodb import DynamoDBService  # noqa: E402
from charter_bookings.services.ledger_service import LedgerService  # noqa: E402
from charter_bookings.services.payment_service import PaymentService  # noqa: E402
from charter_bookings.services.refund_service import RefundService  # noqa: E402
from charter_bookings.services.stripe_service import (  # noqa: E402
    StripeService,
    get_stripe_service,
)

TABLE_PREFIX = os.environ["DYNAMODB_TABLE_PREFIX"]

# Fixed "now" used by time-dependent tests
NOW = dt.datetime(2026, 6, 1, 12, 0, tzinfo=dt.UTC)


# === Singletons ===


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Reset the cached Stripe service around each test."""
    get_stripe_service.cache_clear()
    yield
    get_stripe_service.cache_clear()


# === DynamoDB Fixtures ===


@pytest.fixture
def aws_credentials() -> None:
    """Mocked AWS Credentials for moto."""
    if not os.environ.get("AWS_PROFILE"):
        os.environ["AWS_ACCESS_KEY_ID"] = "testing"
        os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
        os.environ["AWS_SECURITY_TOKEN"] = "testing"
        os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "eu-west-1"


@pytest.fixture
def dynamodb_client(aws_credentials: None) -> Generator[Any, None, None]:
    """Create a mocked DynamoDB client."""
    with mock_aws():
        client = boto3.client("dynamodb", region_name="eu-west-1")
        yield client


def _simple_table(name: str, key: str) -> dict[str, Any]:
    return {
        "TableName": f"{TABLE_PREFIX}-{name}",
        "KeySchema": [{"AttributeName": key, "KeyType": "HASH"}],
        "AttributeDefinitions": [{"AttributeName": key, "AttributeType": "S"}],
        "BillingMode": "PAY_PER_REQUEST",
    }


def _payments_table(name: str) -> dict[str, Any]:
    return {
        "TableName": f"{TABLE_PREFIX}-{name}",
        "KeySchema": [{"AttributeName": "payment_id", "KeyType": "HASH"}],
        "AttributeDefinitions": [
            {"AttributeName": "payment_id", "AttributeType": "S"},
            {"AttributeName": "booking_id", "AttributeType": "S"},
            {"AttributeName": "created_at", "AttributeType": "S"},
            {"AttributeName": "stripe_payment_intent_id", "AttributeType": "S"},
            {"AttributeName": "stripe_refund_id", "AttributeType": "S"},
        ],
        "GlobalSecondaryIndexes": [
            {
                "IndexName": "booking-index",
                "KeySchema": [
                    {"AttributeName": "booking_id", "KeyType": "HASH"},
                    {"AttributeName": "created_at", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            },
            {
                "IndexName": "payment-intent-index",
                "KeySchema": [
                    {"AttributeName": "stripe_payment_intent_id", "KeyType": "HASH"}
                ],
                "Projection": {"ProjectionType": "ALL"},
            },
            {
                "IndexName": "refund-index",
                "KeySchema": [{"AttributeName": "stripe_refund_id", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
        "BillingMode": "PAY_PER_REQUEST",
    }


@pytest.fixture
def create_tables(dynamodb_client: Any) -> None:
    """Create all required DynamoDB tables for testing."""
    tables = [
        _simple_table("tour-bookings", "booking_id"),
        _simple_table("event-bookings", "booking_id"),
        _payments_table("tour-booking-payments"),
        _payments_table("event-booking-payments"),
        _simple_table("tours", "tour_id"),
        _simple_table("events", "event_id"),
        _simple_table("users", "user_id"),
        _simple_table("stripe-webhook-events", "event_id"),
    ]
    for table_config in tables:
        dynamodb_client.create_table(**table_config)


@pytest.fixture
def db(create_tables: None) -> DynamoDBService:
    """DynamoDBService bound to the mocked tables."""
    return DynamoDBService("test")


# === Stripe ===


@pytest.fixture
def mock_stripe() -> MagicMock:
    """StripeService double; refunds get IDs re_test_1, re_test_2, ..."""
    stripe_service = MagicMock(spec=StripeService)
    counter = itertools.count(1)

    def create_refund(*, payment_intent_id, amount_cents, metadata=None, idempotency_key=None):
        return {"refund_id": f"re_test_{next(counter)}", "amount": amount_cents, "status": "pending"}

    stripe_service.create_refund.side_effect = create_refund
    stripe_service.create_customer.return_value = "cus_test_123"
    stripe_service.create_payment_intent.return_value = {
        "payment_intent_id": "pi_upcharge_1",
        "client_secret": "pi_upcharge_1_secret_abc",
        "status": "requires_payment_method",
    }
    return stripe_service


# === Services ===


@pytest.fixture
def payment_service(db: DynamoDBService) -> PaymentService:
    return PaymentService(db)


@pytest.fixture
def catalog_service(db: DynamoDBService) -> CatalogService:
    return CatalogService(db)


@pytest.fixture
def booking_service(db: DynamoDBService, catalog_service: CatalogService) -> BookingService:
    return BookingService(db, catalog_service)


@pytest.fixture
def ledger_service(payment_service: PaymentService) -> LedgerService:
    return LedgerService(payment_service)


@pytest.fixture
def refund_service(payment_service: PaymentService, mock_stripe: MagicMock) -> RefundService:
    return RefundService(payment_service, mock_stripe)


@pytest.fixture
def edit_service(
    catalog_service: CatalogService,
    booking_service: BookingService,
    ledger_service: LedgerService,
    refund_service: RefundService,
) -> BookingEditService:
    return BookingEditService(catalog_service, booking_service, ledger_service, refund_service)


@pytest.fixture
def cancellation_service(
    booking_service: BookingService,
    ledger_service: LedgerService,
    refund_service: RefundService,
) -> CancellationService:
    return CancellationService(booking_service, ledger_service, refund_service)


# === Factories ===


@pytest.fixture
def make_payment(payment_service: PaymentService) -> Callable[..., Payment]:
    """Store a payment and return it.

    ``minutes_ago`` orders payments of a booking: smaller is more recent.
    """

    def _make(
        payment_id: str,
        amount: str | Decimal,
        *,
        booking_id: str = "BK-1",
        booking_type: BookingType = BookingType.TOUR,
        refunded: str | Decimal = "0",
        refund_status: RefundStatus = RefundStatus.NOT_REFUNDED,
        status: PaymentStatus = PaymentStatus.COMPLETED,
        intent: str | None = "default",
        minutes_ago: int = 60,
        stripe_refund_id: str | None = None,
    ) -> Payment:
        payment = Payment(
            payment_id=payment_id,
            booking_id=booking_id,
            booking_type=booking_type,
            payment_reference=f"REF-{payment_id}",
            user_id="user-1",
            amount=Decimal(amount),
            payment_status=status,
            stripe_payment_intent_id=f"pi_{payment_id}" if intent == "default" else intent,
            refund_status=refund_status,
            refunded_amount=Decimal(refunded),
            stripe_refund_id=stripe_refund_id,
            created_at=NOW - dt.timedelta(minutes=minutes_ago),
        )
        payment_service.save_payment(payment)
        return payment

    return _make


@pytest.fixture
def make_tour_booking(booking_service: BookingService) -> Callable[..., Booking]:
    """Store a tour booking; the tour departs in 48 hours unless ``tour_date`` is given."""

    def _make(
        booking_id: str = "BK-1",
        *,
        total: str | Decimal = "200.00",
        tour_date: dt.datetime | None = None,
        user_id: str = "user-1",
        status: BookingStatus = BookingStatus.CONFIRMED,
        adult_count: int = 2,
        child_count: int = 0,
    ) -> Booking:
        tour_date = tour_date or (dt.datetime.now(dt.UTC) + dt.timedelta(hours=48))
        total = Decimal(total)
        booking = Booking(
            booking_id=booking_id,
            booking_type=BookingType.TOUR,
            booking_reference=f"TB-{booking_id}",
            status=status,
            user_id=user_id,
            tour_id="tour-1",
            scheduled_date=tour_date,
            adult_count=adult_count,
            child_count=child_count,
            pricing=BookingPricing(
                adult_price=total / adult_count if adult_count else Decimal("0"),
                adult_total=total,
                total_amount=total,
            ),
            pickup_details=PickupDetails(
                location_id="hotel-1", hotel_id="hotel-1", tour_date_time=tour_date
            ),
            created_at=NOW,
        )
        booking_service.save_booking(booking)
        return booking

    return _make


@pytest.fixture
def make_event_booking(booking_service: BookingService) -> Callable[..., Booking]:
    def _make(
        booking_id: str = "EB-1",
        *,
        total: str | Decimal = "300.00",
        user_id: str = "user-1",
        status: BookingStatus = BookingStatus.CONFIRMED,
        adult_count: int = 3,
        child_count: int = 0,
    ) -> Booking:
        total = Decimal(total)
        booking = Booking(
            booking_id=booking_id,
            booking_type=BookingType.EVENT,
            booking_reference=f"EVB-{booking_id}",
            status=status,
            user_id=user_id,
            event_id="event-1",
            schedule_id="sched-1",
            adult_count=adult_count,
            child_count=child_count,
            pricing=BookingPricing(
                adult_price=Decimal("100.00"),
                adult_total=total,
                total_amount=total,
            ),
            pickup_details=PickupDetails(location_id="pickup-a", selected_time_id="t-1"),
            created_at=NOW,
        )
        booking_service.save_booking(booking)
        return booking

    return _make


@pytest.fixture
def sample_event(catalog_service: CatalogService) -> Event:
    """Event with two schedules; pickup-a costs $100/$50, pickup-b $125/$60."""
    starts = dt.datetime.now(dt.UTC) + dt.timedelta(days=10)
    pickups = [
        EventPickup(
            pickup_id="pickup-a",
            name="Harbour",
            adult_price=Decimal("100.00"),
            children_price=Decimal("50.00"),
            pickup_times=[PickupTime(time_id="t-1", time="18:30")],
        ),
        EventPickup(
            pickup_id="pickup-b",
            name="Old Town",
            hotel_id="hotel-9",
            adult_price=Decimal("125.00"),
            children_price=Decimal("60.00"),
            pickup_times=[PickupTime(time_id="t-2", time="19:00")],
        ),
    ]
    event = Event(
        event_id="event-1",
        name="Sunset Cruise",
        schedules=[
            EventSchedule(schedule_id="sched-1", event_date_time=starts, pickups=pickups),
            EventSchedule(
                schedule_id="sched-2",
                event_date_time=starts + dt.timedelta(days=7),
                pickups=pickups,
            ),
        ],
    )
    catalog_service.save_event(event)
    return event


@pytest.fixture
def sample_tour(catalog_service: CatalogService) -> Tour:
    """Tour with two hotel pickups: hotel-1 at $100/$50, hotel-2 at $125/$40."""
    tour = Tour(
        tour_id="tour-1",
        name="Island Day Trip",
        pickups=[
            TourPickup(
                hotel_id="hotel-1",
                hotel_name="Beach Resort",
                adult_price=Decimal("100.00"),
                children_price=Decimal("50.00"),
                pickup_time="07:45",
            ),
            TourPickup(
                hotel_id="hotel-2",
                hotel_name="Marina Hotel",
                adult_price=Decimal("125.00"),
                children_price=Decimal("40.00"),
                pickup_time="08:15",
            ),
        ],
    )
    catalog_service.save_tour(tour)
    return tour
