"""Concurrency tests for booking operations."""

import asyncio

import pytest
from sqlalchemy import select

from booking_engine.core.exceptions import SeatUnavailableError
from booking_engine.models.booking import SeatAssignment
from booking_engine.models.seat import Seat
from booking_engine.schemas.auth import CurrentUser
from booking_engine.services.booking_service import BookingService


async def assert_ledger_balanced(session_factory, flight_id):
    """Unavailable seats are exactly the seats held by active assignments."""
    async with session_factory() as session:
        unavailable = await session.execute(
            select(Seat.seat_number).where(Seat.flight_id == flight_id, Seat.is_available.is_(False))
        )
        held = await session.execute(
            select(SeatAssignment.seat_number).where(
                SeatAssignment.flight_id == flight_id, SeatAssignment.active.is_(True)
            )
        )
        held_seats = list(held.scalars())

    assert len(held_seats) == len(set(held_seats)), "seat held by more than one booking"
    assert set(unavailable.scalars()) == set(held_seats)


@pytest.mark.asyncio
async def test_concurrent_requests_for_one_seat(session_factory, flight, make_booking_request):
    """Exactly one of many simultaneous requests for 12A wins."""
    num_concurrent_requests = 10

    async def book(customer_id: int):
        async with session_factory() as session:
            try:
                return await BookingService(session).create_booking(
                    make_booking_request(flight.id, ["12A"]),
                    CurrentUser(user_id=f"customer_{customer_id}")
                )
            except SeatUnavailableError as e:
                return e

    results = await asyncio.gather(*(book(i) for i in range(num_concurrent_requests)))

    winners = [r for r in results if not isinstance(r, SeatUnavailableError)]
    losers = [r for r in results if isinstance(r, SeatUnavailableError)]
    assert len(winners) == 1
    assert len(losers) == num_concurrent_requests - 1
    assert all(e.seats == [{"seat_number": "12A", "reason": "unavailable"}] for e in losers)

    await assert_ledger_balanced(session_factory, flight.id)


@pytest.mark.asyncio
async def test_overlapping_requests_are_all_or_nothing(session_factory, flight, make_booking_request):
    """Two requests sharing 12B: one wins both its seats, the other gets none."""

    async def book(user_id: str, seats):
        async with session_factory() as session:
            try:
                return await BookingService(session).create_booking(
                    make_booking_request(flight.id, seats), CurrentUser(user_id=user_id)
                )
            except SeatUnavailableError as e:
                return e

    first, second = await asyncio.gather(
        book("customer_a", ["12A", "12B"]),
        book("customer_b", ["12B", "12C"]),
    )

    outcomes = [r for r in (first, second) if not isinstance(r, SeatUnavailableError)]
    assert len(outcomes) == 1
    winner = outcomes[0]

    async with session_factory() as session:
        result = await session.execute(
            select(Seat.seat_number).where(Seat.flight_id == flight.id, Seat.is_available.is_(False))
        )
        taken = sorted(result.scalars())
    assert taken == sorted(winner.seat_numbers)

    await assert_ledger_balanced(session_factory, flight.id)


@pytest.mark.asyncio
async def test_disjoint_requests_all_succeed(session_factory, flight, make_booking_request):
    seat_sets = [["12A"], ["12B", "12C"], ["13A"], ["13B", "13C", "13D"], ["1A"]]

    async def book(index: int, seats):
        async with session_factory() as session:
            return await BookingService(session).create_booking(
                make_booking_request(flight.id, seats), CurrentUser(user_id=f"customer_{index}")
            )

    bookings = await asyncio.gather(*(book(i, seats) for i, seats in enumerate(seat_sets)))

    assert len({b.booking_reference for b in bookings}) == len(seat_sets)
    await assert_ledger_balanced(session_factory, flight.id)


@pytest.mark.asyncio
async def test_concurrent_cancellations_release_seats_once(
    session_factory, flight, customer, make_booking_request
):
    async with session_factory() as session:
        booking = await BookingService(session).create_booking(
            make_booking_request(flight.id, ["12A", "12B"]), customer
        )

    async def cancel():
        async with session_factory() as session:
            return await BookingService(session).cancel_booking(booking.id, customer)

    results = await asyncio.gather(cancel(), cancel(), cancel())

    outcomes = sorted(r.outcome.value for r in results)
    assert outcomes == ["already_cancelled", "already_cancelled", "cancelled"]
    assert sum(r.seats_released for r in results) == 2
    assert all(r.booking.status == "CANCELLED" for r in results)
    await assert_ledger_balanced(session_factory, flight.id)


@pytest.mark.asyncio
async def test_booking_and_cancelling_concurrently(session_factory, flight, customer, make_booking_request):
    """A seat freed by a cancellation is either rebooked or free, never lost."""
    async with session_factory() as session:
        booking = await BookingService(session).create_booking(make_booking_request(flight.id, ["12A"]), customer)

    async def cancel():
        async with session_factory() as session:
            return await BookingService(session).cancel_booking(booking.id, customer)

    async def rebook(index: int):
        async with session_factory() as session:
            try:
                return await BookingService(session).create_booking(
                    make_booking_request(flight.id, ["12A"]), CurrentUser(user_id=f"customer_{index}")
                )
            except SeatUnavailableError:
                return None

    results = await asyncio.gather(cancel(), *(rebook(i) for i in range(5)))

    rebooked = [r for r in results[1:] if r is not None]
    assert len(rebooked) <= 1
    await assert_ledger_balanced(session_factory, flight.id)
