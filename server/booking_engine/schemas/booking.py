"""Booking-related Pydantic schemas."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.booking import BookingStatus
from ..models.seat import SeatClass
from .common import Money


class BookingScope(str, Enum):
    """Filter for a user's booking list."""
    ALL = "all"
    UPCOMING = "upcoming"
    PAST = "past"


class CancellationOutcome(str, Enum):
    """Result of a cancel request."""
    CANCELLED = "cancelled"
    ALREADY_CANCELLED = "already_cancelled"


class PaymentDetails(BaseModel):
    """Card-like payment form fields, checked by the payment gate."""

    card_number: str = Field("", description="16-digit card number; spaces and hyphens allowed")
    expiry: str = Field("", description="Card expiry as YYYY-MM")
    ccv: str = Field("", description="3-digit card verification code")


class PassengerInput(BaseModel):
    """Passenger identity plus the seat they will occupy."""

    first_name: str = Field(..., min_length=1, max_length=100, description="Given name")
    last_name: str = Field(..., min_length=1, max_length=100, description="Family name")
    email: Optional[str] = Field(None, max_length=255, description="Contact e-mail")
    passport_number: Optional[str] = Field(None, max_length=32, description="Travel document number")
    date_of_birth: Optional[date] = Field(None, description="Date of birth")
    seat_number: Optional[str] = Field(None, max_length=8, description="Requested seat, e.g. 12A")


class CreateBookingRequest(BaseModel):
    """Request schema for creating a booking."""

    flight_id: str = Field("", description="Flight to book")
    passengers: List[PassengerInput] = Field(default_factory=list, description="One entry per seat")
    payment: PaymentDetails = Field(default_factory=PaymentDetails, description="Payment form fields")
    booking_date: str = Field("", description="Booking date (YYYY-MM-DD) or ISO 8601 date-time")
    seat_class: Optional[SeatClass] = Field(None, description="Require every seat to be of this class")


class CancelBookingRequest(BaseModel):
    """Request schema for cancelling a booking."""

    booking_id: str = Field(..., description="Booking to cancel")


class GetBookingRequest(BaseModel):
    """Request schema for getting a booking."""

    booking_id: str = Field(..., description="Booking to retrieve")


class ListBookingsRequest(BaseModel):
    """Request schema for listing the caller's bookings."""

    scope: BookingScope = Field(BookingScope.ALL, description="all, upcoming or past")


class AdminListBookingsRequest(BaseModel):
    """Request schema for listing every booking (admin only)."""

    status: Optional[BookingStatus] = Field(None, description="Only bookings in this status")
    flight_id: Optional[str] = Field(None, description="Only bookings on this flight")
    limit: int = Field(100, ge=1, le=500, description="Maximum number of bookings")


class InvoiceRequest(BaseModel):
    """Request schema for a booking's invoice line items."""

    booking_id: str = Field(..., description="Booking to invoice")


class Passenger(BaseModel):
    """Passenger response schema."""

    id: str = Field(..., description="Passenger ID")
    first_name: str
    last_name: str
    email: Optional[str] = None
    passport_number: Optional[str] = None
    date_of_birth: Optional[date] = None
    seat_number: str

    class Config:
        from_attributes = True


class Booking(BaseModel):
    """Booking response schema."""

    id: str = Field(..., description="Unique booking ID")
    booking_reference: str = Field(..., description="Human-facing booking reference")
    user_id: str = Field(..., description="Owning user")
    flight_id: str = Field(..., description="Booked flight")
    status: BookingStatus = Field(..., description="Booking status")
    total: Money = Field(..., description="Total charged for all seats")
    seat_numbers: List[str] = Field(..., description="Seats held (or released) by this booking")
    passengers: List[Passenger] = Field(..., description="Passengers on this booking")
    created_at: datetime = Field(..., description="Booking creation time (ISO 8601)")
    updated_at: datetime = Field(..., description="Last change (ISO 8601)")
    cancelled_at: Optional[datetime] = Field(None, description="Cancellation time (ISO 8601)")

    class Config:
        from_attributes = True


class CancelBookingResponse(BaseModel):
    """Cancel response; re-cancelling reports already_cancelled."""

    outcome: CancellationOutcome
    seats_released: int = Field(0, ge=0, description="Seats returned to inventory by this call")
    booking: Booking


class BookingList(BaseModel):
    """List of bookings."""

    items: List[Booking]


class FlightSummary(BaseModel):
    """Flight details printed on an invoice."""

    id: str
    flight_number: str
    airline_code: str
    route: str
    departure_time: datetime
    arrival_time: datetime


class InvoiceLine(BaseModel):
    """One seat on an invoice."""

    seat_number: str
    seat_class: SeatClass
    passenger_name: str
    base_fare: Decimal
    price_modifier: Decimal
    amount: Decimal


class InvoiceLines(BaseModel):
    """Canonical line items supplied to the invoice collaborator."""

    booking_id: str
    booking_reference: str
    user_id: str
    status: BookingStatus
    flight: FlightSummary
    lines: List[InvoiceLine]
    total: Money
    issued_for: datetime = Field(..., description="Booking creation time")
