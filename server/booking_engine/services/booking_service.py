"""Booking service: creates, cancels and reads bookings."""

import logging
import secrets
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utc_now
from ..core.config import settings
from ..core.exceptions import (
    FlightNotBookableError,
    ForbiddenError,
    InvalidPaymentError,
    InvalidStateError,
    NotFoundError,
    PersistenceFailureError,
    ValidationError,
)
from ..core.observability import metrics_collector
from ..models.booking import Booking, BookingStatus, Passenger
from ..models.event import BookingEventType
from ..models.flight import BOOKABLE_FLIGHT_STATUSES, Flight, FlightStatus
from ..models.seat import Seat, SeatClass
from ..schemas.auth import CurrentUser
from ..schemas.booking import (
    BookingScope,
    CancellationOutcome,
    CreateBookingRequest,
    FlightSummary,
    InvoiceLine,
    InvoiceLines,
)
from ..schemas.common import Money
from .booking_lifecycle import BookingLifecycle
from .event_service import EventService
from .inventory_service import InventoryService
from .payment_gate import validate_payment
from .pricing import compute_total, round_money
from .reference_data import ReferenceDataGateway, SqlReferenceDataGateway
from .saga import Saga

logger = logging.getLogger(__name__)

# No 0/O or 1/I
BOOKING_REFERENCE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


@dataclass
class CancellationResult:
    """Outcome of a cancel request; re-cancelling is not an error."""

    booking: Booking
    outcome: CancellationOutcome
    seats_released: int = 0


def parse_uuid(value, resource_type: str) -> UUID:
    """Parse an identifier; anything unparseable cannot exist, so it is NotFound."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise NotFoundError(resource_type=resource_type, resource_id=str(value)) from None


class BookingService:
    """Service for booking-related operations."""

    def __init__(self, db: AsyncSession, reference_data: Optional[ReferenceDataGateway] = None):
        self.db = db
        self.inventory = InventoryService(db)
        self.reference_data = reference_data or SqlReferenceDataGateway(db)
        self.events = EventService(db)

    def _generate_booking_reference(self, length: Optional[int] = None) -> str:
        """Generate a random human-facing booking reference."""
        length = length or settings.booking_reference_length
        return "".join(secrets.choice(BOOKING_REFERENCE_ALPHABET) for _ in range(length))

    async def _generate_unique_booking_reference(self) -> str:
        reference = self._generate_booking_reference()
        while await self.get_booking_by_reference(reference):
            reference = self._generate_booking_reference()
        return reference

    def _validate_structure(self, request: CreateBookingRequest) -> Tuple[UUID, List[str]]:
        """Check request completeness; returns the flight ID and normalized seat numbers."""
        errors: Dict[str, str] = {}
        flight_id: Optional[UUID] = None

        if not request.flight_id or not request.flight_id.strip():
            errors["flight_id"] = "is required"
        else:
            try:
                flight_id = UUID(request.flight_id.strip())
            except ValueError:
                errors["flight_id"] = "must be a valid UUID"

        if not request.passengers:
            errors["passengers"] = "must contain at least one passenger"

        seat_numbers: List[str] = []
        for index, passenger in enumerate(request.passengers):
            seat_number = (passenger.seat_number or "").strip().upper()
            if not seat_number:
                errors[f"passengers[{index}].seat_number"] = "is required"
                continue
            if seat_number in seat_numbers:
                errors[f"passengers[{index}].seat_number"] = f"seat {seat_number} is requested more than once"
                continue
            seat_numbers.append(seat_number)

        if errors:
            logger.warning("Booking request failed validation", extra={"errors": errors})
            raise ValidationError(detail="The booking request is incomplete", errors=errors)

        return flight_id, seat_numbers

    async def _get_bookable_flight(self, flight_id: UUID) -> Flight:
        flight = await self.reference_data.get_flight(flight_id)
        if flight is None:
            logger.warning("Flight not found for booking", extra={"flight_id": str(flight_id)})
            raise NotFoundError(resource_type="flight", resource_id=str(flight_id))

        if FlightStatus(flight.status) not in BOOKABLE_FLIGHT_STATUSES:
            logger.warning(
                "Flight not bookable",
                extra={"flight_id": str(flight_id), "flight_status": flight.status}
            )
            raise FlightNotBookableError(str(flight_id), reason=f"status {FlightStatus(flight.status).value}")

        if flight.departure_time <= utc_now():
            logger.warning(
                "Flight already departed",
                extra={"flight_id": str(flight_id), "departure_time": flight.departure_time.isoformat()}
            )
            raise FlightNotBookableError(str(flight_id), reason="already departed")

        return flight

    async def create_booking(self, request: CreateBookingRequest, user: CurrentUser) -> Booking:
        """
        Create a confirmed booking for the requested seats.

        Seats are reserved, priced and persisted with the booking, its
        passengers and seat assignments in one transaction. If that
        transaction cannot be committed the reservation is compensated, so
        seats are never left unavailable without a booking. The
        booking_created event is recorded afterwards and cannot undo the
        booking.

        Args:
            request: Booking creation request
            user: Authenticated caller; becomes the booking owner

        Returns:
            Created booking with passengers and seat assignments loaded

        Raises:
            ValidationError: If the request is incomplete
            NotFoundError: If the flight is missing or not bookable
            InvalidPaymentError: If the payment gate rejects the payment
            SeatUnavailableError: If any requested seat cannot be reserved
            PersistenceFailureError: If the booking could not be stored
        """
        flight_id, seat_numbers = self._validate_structure(request)
        flight = await self._get_bookable_flight(flight_id)

        if not validate_payment(
            request.payment.card_number,
            request.payment.expiry,
            request.payment.ccv,
            request.booking_date,
        ):
            metrics_collector.record_payment_rejected()
            logger.warning(
                "Payment rejected",
                extra={"flight_id": str(flight_id), "user_id": user.user_id}
            )
            raise InvalidPaymentError()

        # The reservation may roll the session back and expire the flight
        base_fare = flight.base_fare
        currency = flight.currency or settings.default_currency
        booking_id = uuid4()
        passengers = {(p.seat_number or "").strip().upper(): p for p in request.passengers}

        saga = Saga(
            "create_booking",
            context={"booking_id": str(booking_id), "flight_id": str(flight_id), "user_id": user.user_id},
        )

        async def reserve() -> List[Seat]:
            return await self.inventory.reserve_seats(
                flight_id, seat_numbers, required_class=request.seat_class, booking_id=booking_id
            )

        async def undo_reservation() -> None:
            await self.db.rollback()
            restored = await self.inventory.restore_unassigned_seats(flight_id, seat_numbers)
            await self.db.commit()
            logger.info(
                "Seat reservation compensated",
                extra={"booking_id": str(booking_id), "flight_id": str(flight_id), "restored": restored}
            )

        async def price(seats: List[Seat]):
            return compute_total(base_fare, seats)

        async def persist(seats: List[Seat], total) -> Booking:
            now = utc_now()
            booking = Booking(
                id=booking_id,
                booking_reference=await self._generate_unique_booking_reference(),
                user_id=user.user_id,
                flight_id=flight_id,
                status=BookingStatus.CONFIRMED,
                total_amount=total,
                currency=currency,
                created_at=now,
                updated_at=now,
            )
            self.db.add(booking)
            for seat in seats:
                passenger = passengers[seat.seat_number]
                self.db.add(Passenger(
                    booking_id=booking_id,
                    first_name=passenger.first_name,
                    last_name=passenger.last_name,
                    email=passenger.email,
                    passport_number=passenger.passport_number,
                    date_of_birth=passenger.date_of_birth,
                    seat_number=seat.seat_number,
                    seat_class=SeatClass(seat.seat_class),
                    base_fare=base_fare,
                    price_modifier=seat.price_modifier,
                    created_at=now,
                ))
            await self.db.commit()
            return booking

        seats = await saga.step("reserve_seats", reserve, compensation=undo_reservation)

        try:
            total = await saga.step("compute_total", lambda: price(seats))
            booking = await saga.step("persist_booking", lambda: persist(seats, total))
        except ValueError as e:
            raise ValidationError(detail=str(e), errors={"total_amount": str(e)}) from e
        except SQLAlchemyError as e:
            error = PersistenceFailureError(
                detail="The booking could not be stored; the seats were returned to inventory"
                if not saga.compensation_failed else
                "The booking could not be stored"
            )
            logger.error(
                "Booking persistence failed",
                exc_info=e,
                extra={
                    "booking_id": str(booking_id),
                    "flight_id": str(flight_id),
                    "seat_numbers": seat_numbers,
                    "error_id": error.problem_details["error_id"],
                    "compensation_failed": saga.compensation_failed,
                }
            )
            raise error from e

        metrics_collector.record_booking_created(str(flight_id), len(seat_numbers))
        logger.info(
            "Booking created successfully",
            extra={
                "booking_id": str(booking_id),
                "booking_reference": booking.booking_reference,
                "flight_id": str(flight_id),
                "user_id": user.user_id,
                "seat_numbers": seat_numbers,
                "total_amount": str(booking.total_amount),
            }
        )

        await self.events.record(BookingEventType.BOOKING_CREATED, booking)
        return await self.get_booking_by_id_or_raise(booking_id)

    async def cancel_booking(self, booking_id, user: CurrentUser) -> CancellationResult:
        """
        Cancel a booking and return its seats to inventory.

        Cancelling a booking that is already cancelled changes nothing and
        reports ``already_cancelled``.

        Args:
            booking_id: Booking to cancel
            user: Authenticated caller; must own the booking or be an admin

        Returns:
            The booking and the cancellation outcome

        Raises:
            NotFoundError: If the booking does not exist
            ForbiddenError: If the caller may not act on the booking
            InvalidStateError: If the flight has already departed
            PersistenceFailureError: If the cancellation could not be stored
        """
        booking = await self.get_booking(booking_id, user)

        if not BookingLifecycle.is_active(booking):
            logger.info(
                "Booking already cancelled",
                extra={"booking_id": str(booking.id), "user_id": user.user_id}
            )
            return CancellationResult(booking=booking, outcome=CancellationOutcome.ALREADY_CANCELLED)

        if booking.flight.departure_time <= utc_now():
            raise InvalidStateError(
                booking_id=str(booking.id),
                current_status=BookingStatus(booking.status).value,
                action="cancel",
                detail=f"Booking {booking.id} cannot be cancelled after its flight has departed",
            )

        booking_uuid = booking.id
        BookingLifecycle.cancel(booking)
        try:
            # Of several concurrent cancellations only one claims the booking
            claimed = await self.db.execute(
                update(Booking)
                .where(Booking.id == booking_uuid, Booking.status == BookingStatus.CONFIRMED.value)
                .values(
                    status=BookingStatus.CANCELLED.value,
                    cancelled_at=booking.cancelled_at,
                    updated_at=booking.updated_at,
                )
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount != 1:
                await self.db.rollback()
                logger.info(
                    "Booking cancelled by a concurrent request",
                    extra={"booking_id": str(booking_uuid), "user_id": user.user_id}
                )
                booking = await self.get_booking_by_id_or_raise(booking_uuid)
                return CancellationResult(booking=booking, outcome=CancellationOutcome.ALREADY_CANCELLED)

            released = await self.inventory.release_seats(booking_uuid)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            error = PersistenceFailureError(detail="The cancellation could not be stored; the booking is unchanged")
            logger.error(
                "Booking cancellation failed",
                exc_info=e,
                extra={"booking_id": str(booking_uuid), "error_id": error.problem_details["error_id"]}
            )
            raise error from e

        metrics_collector.record_booking_cancelled(released)
        logger.info(
            "Booking cancelled successfully",
            extra={
                "booking_id": str(booking_uuid),
                "booking_reference": booking.booking_reference,
                "user_id": user.user_id,
                "seats_released": released,
            }
        )

        await self.events.record(BookingEventType.BOOKING_CANCELLED, booking)
        booking = await self.get_booking_by_id_or_raise(booking_uuid)
        return CancellationResult(booking=booking, outcome=CancellationOutcome.CANCELLED, seats_released=released)

    async def get_booking(self, booking_id, user: CurrentUser) -> Booking:
        """
        Get a booking the caller is allowed to see.

        Raises:
            NotFoundError: If the booking does not exist
            ForbiddenError: If the caller is neither the owner nor an admin
        """
        booking = await self.get_booking_by_id_or_raise(parse_uuid(booking_id, "booking"))
        if not user.can_access(booking.user_id):
            logger.warning(
                "Booking access denied",
                extra={"booking_id": str(booking.id), "user_id": user.user_id}
            )
            raise ForbiddenError(detail="Only the booking owner or an admin may access this booking")
        return booking

    async def get_invoice_lines(self, booking_id, user: CurrentUser) -> InvoiceLines:
        """
        Canonical line items for the invoice collaborator.

        One line per passenger at the fare charged when the booking was made,
        so the lines always add up to the booking total. Cancelled bookings
        are still invoiced.

        Raises:
            NotFoundError: If the booking does not exist
            ForbiddenError: If the caller is neither the owner nor an admin
        """
        booking = await self.get_booking(booking_id, user)
        flight = booking.flight

        lines = [
            InvoiceLine(
                seat_number=passenger.seat_number,
                seat_class=SeatClass(passenger.seat_class),
                passenger_name=passenger.full_name,
                base_fare=passenger.base_fare,
                price_modifier=passenger.price_modifier,
                amount=round_money(passenger.fare),
            )
            for passenger in booking.passengers
        ]

        return InvoiceLines(
            booking_id=str(booking.id),
            booking_reference=booking.booking_reference,
            user_id=booking.user_id,
            status=BookingStatus(booking.status),
            flight=FlightSummary(
                id=str(flight.id),
                flight_number=flight.flight_number,
                airline_code=flight.airline_code,
                route=flight.route,
                departure_time=flight.departure_time,
                arrival_time=flight.arrival_time,
            ),
            lines=lines,
            total=Money(amount=booking.total_amount, currency=booking.currency),
            issued_for=booking.created_at,
        )

    async def list_bookings(self, user: CurrentUser, scope: BookingScope = BookingScope.ALL) -> List[Booking]:
        """
        List the caller's bookings.

        ``upcoming`` is confirmed bookings on flights that have not departed,
        soonest first. ``past`` is everything else, newest first.
        """
        now = utc_now()
        stmt = select(Booking).join(Flight, Booking.flight_id == Flight.id).where(Booking.user_id == user.user_id)

        scope = BookingScope(scope)
        if scope == BookingScope.UPCOMING:
            stmt = stmt.where(
                Booking.status == BookingStatus.CONFIRMED.value,
                Flight.departure_time > now,
            ).order_by(Flight.departure_time, Booking.created_at)
        elif scope == BookingScope.PAST:
            stmt = stmt.where(
                or_(Booking.status == BookingStatus.CANCELLED.value, Flight.departure_time <= now)
            ).order_by(Flight.departure_time.desc(), Booking.created_at.desc())
        else:
            stmt = stmt.order_by(Booking.created_at.desc())

        result = await self.db.execute(stmt.execution_options(populate_existing=True))
        return list(result.scalars())

    async def list_all_bookings(
        self,
        status: Optional[BookingStatus] = None,
        flight_id: Optional[UUID] = None,
        limit: int = 100,
    ) -> List[Booking]:
        """List bookings across all users, newest first. Admin only; the caller checks the role."""
        stmt = select(Booking)
        if status is not None:
            stmt = stmt.where(Booking.status == BookingStatus(status).value)
        if flight_id is not None:
            stmt = stmt.where(Booking.flight_id == flight_id)
        stmt = stmt.order_by(Booking.created_at.desc()).limit(limit).execution_options(populate_existing=True)

        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def get_booking_by_id(self, booking_id: UUID) -> Booking | None:
        """Get booking by ID with flight, passengers and seat assignments."""
        stmt = (
            select(Booking)
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_booking_by_id_or_raise(self, booking_id: UUID) -> Booking:
        """Get booking by ID or raise NotFoundError."""
        booking = await self.get_booking_by_id(booking_id)
        if not booking:
            logger.warning(
                "Booking not found",
                extra={"booking_id": str(booking_id)}
            )
            raise NotFoundError(
                resource_type="booking",
                resource_id=str(booking_id)
            )
        return booking

    async def get_booking_by_reference(self, reference: str) -> Booking | None:
        """Get booking by booking reference."""
        stmt = select(Booking).where(Booking.booking_reference == reference)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
