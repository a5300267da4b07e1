"""Refund and price reconciliation for charter tour and event bookings."""

__version__ = "0.1.0"
