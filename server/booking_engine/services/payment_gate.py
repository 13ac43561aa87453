"""Payment form validation.

The gate only checks the shape of card-like input and that the card is still
valid at the time of booking. It never talks to a payment gateway and never
raises: anything malformed is simply not a valid payment.
"""

import calendar
import re
from datetime import date, datetime, time
from typing import Optional, Union

from ..core.clock import to_naive_utc

_CARD_SEPARATORS = re.compile(r"[\s-]")
_CARD_NUMBER = re.compile(r"[0-9]{16}")
_CCV = re.compile(r"[0-9]{3}")
_EXPIRY = re.compile(r"([0-9]{4})-([0-9]{2})")
_DATE_ONLY = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")

# Last representable millisecond of a day
_END_OF_DAY = time(23, 59, 59, 999000)

BookingDate = Union[str, date, datetime, None]


def _end_of_day(day: date) -> datetime:
    return datetime.combine(day, _END_OF_DAY)


def parse_expiry(expiry: Optional[str]) -> Optional[datetime]:
    """Return the last instant of the expiry month, or None when malformed."""
    if not isinstance(expiry, str):
        return None
    match = _EXPIRY.fullmatch(expiry.strip())
    if not match:
        return None

    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12 or year < 1:
        return None

    last_day = calendar.monthrange(year, month)[1]
    return _end_of_day(date(year, month, last_day))


def parse_booking_instant(booking_date: BookingDate) -> Optional[datetime]:
    """
    Interpret a booking date as a naive UTC instant.

    A bare calendar date stands for the whole booking day and is read as the
    last instant of that day. Date-times are taken as given, converted to UTC
    when they carry an offset.

    Args:
        booking_date: ``YYYY-MM-DD``, an ISO 8601 date-time, or a date/datetime

    Returns:
        The booking instant, or None if the value cannot be parsed
    """
    if isinstance(booking_date, datetime):
        try:
            return to_naive_utc(booking_date)
        except OverflowError:
            return None
    if isinstance(booking_date, date):
        return _end_of_day(booking_date)
    if not isinstance(booking_date, str):
        return None

    value = booking_date.strip()
    if not value:
        return None

    try:
        if _DATE_ONLY.fullmatch(value):
            return _end_of_day(date.fromisoformat(value))
        # Zulu suffix in either case
        if value.endswith(("Z", "z")):
            value = value[:-1] + "+00:00"
        return to_naive_utc(datetime.fromisoformat(value))
    except (ValueError, OverflowError):
        return None


def normalize_card_number(card_number: Optional[str]) -> Optional[str]:
    """Strip whitespace and hyphens; None when the result is not 16 digits."""
    if not isinstance(card_number, str):
        return None
    digits = _CARD_SEPARATORS.sub("", card_number)
    if not _CARD_NUMBER.fullmatch(digits):
        return None
    return digits


def validate_payment(
    card_number: Optional[str],
    expiry: Optional[str],
    ccv: Optional[str],
    booking_date: BookingDate,
) -> bool:
    """
    Check payment form fields against the booking date.

    The card expires at 23:59:59.999 on the last day of its expiry month and
    is accepted only when that instant is strictly later than the booking
    instant. With a date-only booking date on the last day of the expiry month
    the two instants are equal, so the payment is rejected.

    Args:
        card_number: 16 digits, optionally grouped with spaces or hyphens
        expiry: ``YYYY-MM``
        ccv: 3 digits
        booking_date: see :func:`parse_booking_instant`

    Returns:
        True when every field is well formed and the card has not expired
    """
    if normalize_card_number(card_number) is None:
        return False
    if not isinstance(ccv, str) or not _CCV.fullmatch(ccv):
        return False

    expires_at = parse_expiry(expiry)
    if expires_at is None:
        return False

    booked_at = parse_booking_instant(booking_date)
    if booked_at is None:
        return False

    return expires_at > booked_at
