"""Money helpers.

Amounts are kept as Decimal in the booking currency with two decimal places.
The payment gateway works in integer minor units (cents).
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from pydantic import PlainSerializer

CENT = Decimal("0.01")
ZERO = Decimal("0")

# Decimal amount that serializes to a JSON number
Money = Annotated[
    Decimal,
    PlainSerializer(lambda v: float(v), return_type=float, when_used="json"),
]


def quantize(amount: Decimal | int | str) -> Decimal:
    """Round an amount to whole cents (half-up)."""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Convert a currency amount to integer cents for the gateway.

    Args:
        amount: Amount in major units (e.g. Decimal("12.34"))

    Returns:
        Amount in cents (e.g. 1234)
    """
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount_cents: int) -> Decimal:
    """Convert integer cents from the gateway back to a currency amount."""
    return quantize(Decimal(amount_cents) / 100)


def format_amount(amount: Decimal) -> str:
    """Format an amount for messages and notes, e.g. ``$1,250.00``."""
    value = quantize(amount)
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"
