"""API-specific request/response models.

Domain models (Booking, Payment, RefundResult, etc.) are in
charter_bookings.models and are reused here where appropriate.

Modules:
- bookings: Cancellation, edit and payment ledger request/response models
"""

__all__: list[str] = []
