"""Models module exporting all database models."""

from .booking import Booking, BookingStatus, Passenger, SeatAssignment
from .event import BookingEvent, BookingEventStatus, BookingEventType
from .flight import BOOKABLE_FLIGHT_STATUSES, Flight, FlightStatus
from .seat import Seat, SeatClass

__all__ = [
    # Reference data (read-only for the booking engine)
    "Flight",
    "FlightStatus",
    "BOOKABLE_FLIGHT_STATUSES",

    # Seat inventory
    "Seat",
    "SeatClass",

    # Booking aggregate
    "Booking",
    "BookingStatus",
    "Passenger",
    "SeatAssignment",

    # Outbox
    "BookingEvent",
    "BookingEventStatus",
    "BookingEventType",
]
