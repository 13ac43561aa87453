"""Booking price calculation."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Union

from ..models.seat import Seat

CENT = Decimal("0.01")

Amount = Union[Decimal, int, str]


def _as_decimal(value: Amount) -> Decimal:
    if isinstance(value, float):
        # Floats would carry binary rounding error into the sum
        raise TypeError("Monetary amounts must be Decimal, int or str, not float")
    return value if isinstance(value, Decimal) else Decimal(value)


def round_money(amount: Decimal) -> Decimal:
    """Round half-up to the currency's minor unit."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def seat_price(base_fare: Amount, seat: Seat) -> Decimal:
    """Unrounded price of one seat."""
    return _as_decimal(base_fare) + _as_decimal(seat.price_modifier)


def compute_total(base_fare: Amount, seats: Iterable[Seat]) -> Decimal:
    """
    Total for a booking, charged per seat.

    Each seat costs the flight's base fare plus its own price modifier. The
    sum is rounded once, half-up to two decimal places; individual seat
    prices are never rounded.

    Args:
        base_fare: Flight base fare
        seats: Reserved seats, one per passenger

    Returns:
        Total amount

    Raises:
        ValueError: If the total would be negative
    """
    total = sum((seat_price(base_fare, seat) for seat in seats), Decimal("0"))
    total = round_money(total)
    if total < 0:
        raise ValueError(f"Booking total cannot be negative: {total}")
    return total
