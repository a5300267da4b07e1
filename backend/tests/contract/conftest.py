"""Fixtures for API contract tests.

The app is built with the moto-backed DynamoDB service and the Stripe double
from the root conftest, so requests run end to end without network access.
"""

from typing import Any, Generator

import pytest
from fastapi.testclient import TestClient

from charter_api.dependencies import get_manual_payment_recorder
from charter_api.main import create_app
from charter_bookings.services.manual_payment_service import ManualPaymentRecorder
from charter_bookings.utils.retry import RetryPolicy


@pytest.fixture
def app(db, mock_stripe, booking_service, payment_service) -> Any:
    application = create_app(db=db, stripe_service=mock_stripe)
    # No backoff waits in background recording
    application.dependency_overrides[get_manual_payment_recorder] = lambda: ManualPaymentRecorder(
        booking_service,
        payment_service,
        RetryPolicy(max_attempts=2, base_delay=0),
    )
    return application


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as test_client:
        yield test_client
