"""Seat inventory service: the only code that flips seat availability."""

import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from ..core.clock import utc_now
from ..core.exceptions import ConflictError, NotFoundError, SeatUnavailableError, ValidationError
from ..core.observability import metrics_collector
from ..models.booking import SeatAssignment
from ..models.seat import Seat, SeatClass

logger = logging.getLogger(__name__)

SEAT_LETTERS = "ABCDEF"

DEFAULT_PRICE_MODIFIERS: Dict[SeatClass, Decimal] = {
    SeatClass.FIRST: Decimal("150.00"),
    SeatClass.BUSINESS: Decimal("75.00"),
    SeatClass.ECONOMY: Decimal("0.00"),
}


def seat_class_for_row(row: int) -> SeatClass:
    """Rows 1-2 are first class, 3-6 business, the rest economy."""
    if row <= 2:
        return SeatClass.FIRST
    if row <= 6:
        return SeatClass.BUSINESS
    return SeatClass.ECONOMY


def _active_assignment_exists():
    """Correlated EXISTS: the seat row is held by an active assignment."""
    return (
        select(SeatAssignment.id)
        .where(
            SeatAssignment.flight_id == Seat.flight_id,
            SeatAssignment.seat_number == Seat.seat_number,
            SeatAssignment.active.is_(True),
        )
        .correlate(Seat)
        .exists()
    )


@dataclass
class ReconciliationReport:
    """Unavailable seats with no active assignment, and how many were released."""

    orphaned: List[Tuple[UUID, str]] = field(default_factory=list)
    repaired: int = 0


class InventoryService:
    """Service for per-flight seat inventory."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_seats(
        self,
        flight_id: UUID,
        seat_class: Optional[SeatClass] = None,
        available_only: bool = False,
    ) -> List[Seat]:
        """Get a flight's seats ordered by seat number."""
        stmt = select(Seat).where(Seat.flight_id == flight_id)
        if seat_class is not None:
            stmt = stmt.where(Seat.seat_class == SeatClass(seat_class).value)
        if available_only:
            stmt = stmt.where(Seat.is_available.is_(True))
        stmt = stmt.order_by(Seat.seat_number).execution_options(populate_existing=True)

        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def get_seat(self, flight_id: UUID, seat_number: str) -> Optional[Seat]:
        """Get a single seat."""
        stmt = (
            select(Seat)
            .where(Seat.flight_id == flight_id, Seat.seat_number == seat_number)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_seat_or_raise(self, flight_id: UUID, seat_number: str) -> Seat:
        """Get a single seat or raise NotFoundError."""
        seat = await self.get_seat(flight_id, seat_number)
        if not seat:
            logger.warning(
                "Seat not found",
                extra={"flight_id": str(flight_id), "seat_number": seat_number}
            )
            raise NotFoundError(
                resource_type="seat",
                resource_id=f"{flight_id}/{seat_number}"
            )
        return seat

    async def reserve_seats(
        self,
        flight_id: UUID,
        seat_numbers: Iterable[str],
        required_class: Optional[SeatClass] = None,
        booking_id: Optional[UUID] = None,
    ) -> List[Seat]:
        """
        Atomically mark every requested seat unavailable, or none of them.

        A single conditional UPDATE flips only seats that exist on the flight,
        are available and (when requested) are of the required class. If it
        touches fewer rows than requested, the unit of work is rolled back and
        the failing seats are reported. This must be the first write of the
        unit of work, since the rollback discards everything staged before it.

        On success nothing is committed; when ``booking_id`` is given one
        active SeatAssignment per seat is staged in the session.

        Args:
            flight_id: Flight to reserve on
            seat_numbers: Seats to reserve; duplicates are ignored
            required_class: Reject seats of any other class
            booking_id: Booking that will own the seats

        Returns:
            Reserved seats ordered by seat number

        Raises:
            ValidationError: If no seats were requested
            SeatUnavailableError: If any seat is missing, taken or of the wrong class
        """
        requested = list(dict.fromkeys(seat_numbers))
        if not requested:
            raise ValidationError(
                detail="At least one seat must be requested",
                errors={"seat_numbers": "must not be empty"}
            )

        stmt = (
            update(Seat)
            .where(
                Seat.flight_id == flight_id,
                Seat.seat_number.in_(requested),
                Seat.is_available.is_(True),
            )
            .values(is_available=False, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if required_class is not None:
            stmt = stmt.where(Seat.seat_class == SeatClass(required_class).value)

        result = await self.db.execute(stmt)

        if result.rowcount != len(requested):
            await self.db.rollback()
            failures = await self._diagnose_reservation(flight_id, requested, required_class)
            metrics_collector.record_seat_conflict(len(failures))
            logger.warning(
                "Seat reservation failed",
                extra={
                    "flight_id": str(flight_id),
                    "requested_seats": requested,
                    "reserved_count": result.rowcount,
                    "failures": failures,
                }
            )
            raise SeatUnavailableError(flight_id=str(flight_id), seats=failures)

        if booking_id is not None:
            for seat_number in requested:
                self.db.add(SeatAssignment(
                    booking_id=booking_id,
                    flight_id=flight_id,
                    seat_number=seat_number,
                    active=True,
                    created_at=utc_now(),
                ))

        seats = await self._load_seats(flight_id, requested)

        logger.info(
            "Seats reserved",
            extra={
                "flight_id": str(flight_id),
                "seat_numbers": requested,
                "booking_id": str(booking_id) if booking_id else None,
            }
        )
        return seats

    async def release_seats(self, booking_id: UUID) -> int:
        """
        Return every seat held by a booking to inventory.

        Marks the booking's active assignments inactive and makes their seats
        available. Flushes but does not commit. Calling it again for the same
        booking releases nothing.

        Args:
            booking_id: Booking whose seats to release

        Returns:
            Number of seats released
        """
        stmt = (
            select(SeatAssignment)
            .where(SeatAssignment.booking_id == booking_id, SeatAssignment.active.is_(True))
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        assignments = list(result.scalars())

        if not assignments:
            logger.info(
                "No active seat assignments to release",
                extra={"booking_id": str(booking_id)}
            )
            return 0

        await self.db.flush()

        now = utc_now()
        released: List[str] = []
        for assignment in assignments:
            # A concurrent release of the same booking must not free the seat twice
            deactivated = await self.db.execute(
                update(SeatAssignment)
                .where(SeatAssignment.id == assignment.id, SeatAssignment.active.is_(True))
                .values(active=False, released_at=now)
                .execution_options(synchronize_session=False)
            )
            if deactivated.rowcount != 1:
                continue

            await self.db.execute(
                update(Seat)
                .where(Seat.flight_id == assignment.flight_id, Seat.seat_number == assignment.seat_number)
                .values(is_available=True, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            set_committed_value(assignment, "active", False)
            set_committed_value(assignment, "released_at", now)
            released.append(assignment.seat_number)

        logger.info(
            "Seats released",
            extra={"booking_id": str(booking_id), "seat_numbers": released}
        )
        return len(released)

    async def update_seat_attributes(
        self,
        flight_id: UUID,
        seat_number: str,
        seat_class: Optional[SeatClass] = None,
        is_available: Optional[bool] = None,
        price_modifier: Optional[Decimal] = None,
    ) -> Seat:
        """
        Administrative override of seat attributes.

        Availability may only be changed when the seat ledger agrees: a seat
        held by an active assignment cannot be released here, and a seat
        cannot be blocked without one.

        Returns:
            Updated seat

        Raises:
            NotFoundError: If the seat does not exist
            ConflictError: If the availability change contradicts the ledger
        """
        seat = await self.get_seat_or_raise(flight_id, seat_number)

        if is_available is not None and is_available != seat.is_available:
            holder = await self._active_assignment_for(flight_id, seat_number)
            if is_available and holder is not None:
                raise ConflictError(
                    detail=f"Seat {seat_number} is held by booking {holder.booking_id}; cancel the booking instead",
                    conflicting_resource={
                        "flight_id": str(flight_id),
                        "seat_number": seat_number,
                        "booking_id": str(holder.booking_id),
                    }
                )
            if not is_available and holder is None:
                raise ConflictError(
                    detail=f"Seat {seat_number} has no booking; only bookings may take a seat out of inventory",
                    conflicting_resource={"flight_id": str(flight_id), "seat_number": seat_number}
                )
            seat.is_available = is_available

        if seat_class is not None:
            seat.seat_class = SeatClass(seat_class)
        if price_modifier is not None:
            seat.price_modifier = Decimal(price_modifier)
        seat.updated_at = utc_now()

        await self.db.commit()

        logger.info(
            "Seat attributes updated",
            extra={
                "flight_id": str(flight_id),
                "seat_number": seat_number,
                "seat_class": SeatClass(seat_class).value if seat_class is not None else None,
                "is_available": is_available,
                "price_modifier": str(price_modifier) if price_modifier is not None else None,
            }
        )
        return await self.get_seat_or_raise(flight_id, seat_number)

    async def restore_unassigned_seats(self, flight_id: UUID, seat_numbers: Sequence[str]) -> int:
        """
        Make the named seats available again unless an active assignment holds them.

        Used to compensate a booking that reserved seats but never committed.
        Seats since taken by another booking are left alone. Does not commit.

        Returns:
            Number of seats made available
        """
        if not seat_numbers:
            return 0

        stmt = (
            update(Seat)
            .where(
                Seat.flight_id == flight_id,
                Seat.seat_number.in_(list(seat_numbers)),
                Seat.is_available.is_(False),
                ~_active_assignment_exists(),
            )
            .values(is_available=True, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount

    async def find_orphaned_seats(self, flight_id: Optional[UUID] = None) -> List[Seat]:
        """Unavailable seats that no active assignment holds."""
        stmt = select(Seat).where(Seat.is_available.is_(False), ~_active_assignment_exists())
        if flight_id is not None:
            stmt = stmt.where(Seat.flight_id == flight_id)
        stmt = stmt.order_by(Seat.flight_id, Seat.seat_number).execution_options(populate_existing=True)

        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def reconcile(self, flight_id: Optional[UUID] = None, repair: bool = False) -> ReconciliationReport:
        """
        Audit the seat ledger and optionally release orphaned seats.

        Args:
            flight_id: Limit the audit to one flight
            repair: Release orphaned seats and commit

        Returns:
            Report of orphaned seats and how many were released
        """
        orphans = await self.find_orphaned_seats(flight_id)
        report = ReconciliationReport(orphaned=[(seat.flight_id, seat.seat_number) for seat in orphans])
        metrics_collector.set_orphaned_seats(len(orphans))

        if not orphans:
            return report

        logger.warning(
            "Orphaned seats found",
            extra={
                "flight_id": str(flight_id) if flight_id else None,
                "orphaned_count": len(orphans),
                "seats": [f"{fid}/{number}" for fid, number in report.orphaned],
                "repair": repair,
            }
        )

        if repair:
            by_flight: Dict[UUID, List[str]] = {}
            for fid, number in report.orphaned:
                by_flight.setdefault(fid, []).append(number)
            for fid, numbers in by_flight.items():
                report.repaired += await self.restore_unassigned_seats(fid, numbers)
            await self.db.commit()

            logger.info(
                "Orphaned seats released",
                extra={"repaired_count": report.repaired}
            )

        return report

    def generate_seat_map(
        self,
        flight_id: UUID,
        seat_capacity: int,
        price_modifiers: Optional[Dict[SeatClass, Decimal]] = None,
    ) -> List[Seat]:
        """
        Build and stage the seats of a new flight.

        Six seats per row (A-F), numbered ``<row><letter>``; the last row may
        be partial. Nothing is committed.

        Raises:
            ValueError: If seat_capacity is not positive
        """
        if seat_capacity <= 0:
            raise ValueError("seat_capacity must be > 0")

        modifiers = dict(DEFAULT_PRICE_MODIFIERS)
        if price_modifiers:
            modifiers.update(price_modifiers)

        seats: List[Seat] = []
        total_rows = math.ceil(seat_capacity / len(SEAT_LETTERS))
        for row in range(1, total_rows + 1):
            seat_class = seat_class_for_row(row)
            for letter in SEAT_LETTERS:
                if len(seats) == seat_capacity:
                    break
                seats.append(Seat(
                    flight_id=flight_id,
                    seat_number=f"{row}{letter}",
                    seat_class=seat_class,
                    price_modifier=modifiers[seat_class],
                    is_available=True,
                    updated_at=utc_now(),
                ))

        self.db.add_all(seats)
        return seats

    async def _load_seats(self, flight_id: UUID, seat_numbers: Sequence[str]) -> List[Seat]:
        stmt = (
            select(Seat)
            .where(Seat.flight_id == flight_id, Seat.seat_number.in_(list(seat_numbers)))
            .order_by(Seat.seat_number)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def _active_assignment_for(self, flight_id: UUID, seat_number: str) -> Optional[SeatAssignment]:
        stmt = select(SeatAssignment).where(
            SeatAssignment.flight_id == flight_id,
            SeatAssignment.seat_number == seat_number,
            SeatAssignment.active.is_(True),
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _diagnose_reservation(
        self,
        flight_id: UUID,
        requested: Sequence[str],
        required_class: Optional[SeatClass],
    ) -> List[Dict[str, str]]:
        """Explain, per seat, why a reservation could not take it."""
        found = {seat.seat_number: seat for seat in await self._load_seats(flight_id, requested)}

        failures: List[Dict[str, str]] = []
        for seat_number in requested:
            seat = found.get(seat_number)
            if seat is None:
                failures.append({"seat_number": seat_number, "reason": "not_found"})
            elif required_class is not None and SeatClass(seat.seat_class) != SeatClass(required_class):
                failures.append({"seat_number": seat_number, "reason": "wrong_class"})
            elif not seat.is_available:
                failures.append({"seat_number": seat_number, "reason": "unavailable"})

        if not failures:
            # Lost a race that has since been undone; report every seat
            failures = [{"seat_number": number, "reason": "unavailable"} for number in requested]
        return failures
