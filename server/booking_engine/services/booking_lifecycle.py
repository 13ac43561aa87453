"""Booking lifecycle: CONFIRMED -> CANCELLED."""

from ..core.clock import utc_now
from ..core.exceptions import InvalidStateError
from ..models.booking import Booking, BookingStatus

# Allowed transitions, keyed by current status
TRANSITIONS = {
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED}),
    BookingStatus.CANCELLED: frozenset(),
}


class BookingLifecycle:
    """State machine for a booking. CANCELLED is terminal."""

    @staticmethod
    def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
        return BookingStatus(target) in TRANSITIONS[BookingStatus(current)]

    @staticmethod
    def is_active(booking: Booking) -> bool:
        """True while the booking still owns its seats."""
        return BookingStatus(booking.status) == BookingStatus.CONFIRMED

    @classmethod
    def cancel(cls, booking: Booking) -> Booking:
        """
        Move a booking to CANCELLED.

        Seat release is the caller's job and must be committed together with
        this change.

        Raises:
            InvalidStateError: If the booking is already cancelled
        """
        if not cls.can_transition(booking.status, BookingStatus.CANCELLED):
            raise InvalidStateError(
                booking_id=str(booking.id),
                current_status=BookingStatus(booking.status).value,
                action="cancel",
            )

        now = utc_now()
        booking.status = BookingStatus.CANCELLED
        booking.cancelled_at = now
        booking.updated_at = now
        return booking
