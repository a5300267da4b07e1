"""FastAPI application for the charter booking REST API.

This package provides REST endpoints for:
- Health check
- Booking cancellation with policy-based refunds
- Booking edits (price reconciliation, downgrade refunds, upcharge payments)
- Booking payment records
- Stripe webhooks
"""

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from mangum import Mangum

from charter_api.exceptions import register_exception_handlers
from charter_api.middleware.correlation import CorrelationIdMiddleware
from charter_api.routes.bookings import router as bookings_router
from charter_api.routes.webhooks import router as webhooks_router
from charter_bookings.services.dynamodb import DynamoDBService
from charter_bookings.services.stripe_service import StripeService, get_stripe_service
from charter_bookings.utils.logging import configure_logging

logger = logging.getLogger(__name__)


def create_app(
    db: DynamoDBService | None = None,
    stripe_service: StripeService | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        db: DynamoDB service; a new one is built when omitted
        stripe_service: Stripe service; the shared instance is used when omitted

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Charter Booking API",
        description="REST API for booking cancellations, edits, refunds and payments",
        version="0.1.0",
    )
    app.state.db = db if db is not None else DynamoDBService()
    app.state.stripe = stripe_service if stripe_service is not None else get_stripe_service()

    # Configure CORS for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    register_exception_handlers(app)

    # Include routers under /api prefix
    app.include_router(bookings_router, prefix="/api")
    app.include_router(webhooks_router, prefix="/api")

    @app.get("/api/ping")
    async def ping() -> dict[str, Any]:
        """Health check endpoint at /api/ping."""
        return {
            "status": "ok",
            "timestamp": datetime.now(UTC).isoformat(),
            "service": "charter-booking-api",
        }

    return app


configure_logging()
app = create_app()

# Lambda handler - Mangum wraps FastAPI for AWS Lambda + API Gateway
handler = Mangum(app, lifespan="off")


def run_server(host: str = "0.0.0.0", port: int = 8080, reload: bool = True) -> None:
    """Run the FastAPI server.

    Args:
        host: Host to bind to (default: 0.0.0.0)
        port: Port to listen on (default: 8080)
        reload: Enable hot reload for development (default: True)
    """
    import uvicorn

    if reload:
        # Use string reference for reload mode (uvicorn requirement)
        uvicorn.run(
            "charter_api.main:app",
            host=host,
            port=port,
            reload=True,
            reload_dirs=["api/src", "shared/src"],
        )
    else:
        uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
