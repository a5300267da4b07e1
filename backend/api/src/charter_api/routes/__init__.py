"""API routes package.

Routers are organized by domain:

- bookings: Cancellation, edits and payment records for tours and events
- webhooks: Stripe webhook events

All routers are registered in main.py with /api prefix.
"""

from charter_api.routes.bookings import router as bookings_router
from charter_api.routes.webhooks import router as webhooks_router

__all__ = [
    "bookings_router",
    "webhooks_router",
]
