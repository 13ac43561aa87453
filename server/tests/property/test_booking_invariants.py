"""Property-based tests for booking system invariants."""

import asyncio
from datetime import timedelta
from decimal import Decimal

from hypothesis import given
from hypothesis import settings as hypothesis_settings
from hypothesis import strategies as st
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from booking_engine.core.clock import utc_now
from booking_engine.core.database import Base
from booking_engine.core.exceptions import SeatUnavailableError
from booking_engine.models.booking import SeatAssignment
from booking_engine.models.flight import Flight, FlightStatus
from booking_engine.models.seat import Seat
from booking_engine.schemas.auth import CurrentUser
from booking_engine.schemas.booking import CreateBookingRequest, PassengerInput, PaymentDetails
from booking_engine.services.booking_service import BookingService
from booking_engine.services.inventory_service import InventoryService
from booking_engine.services.payment_gate import validate_payment
from booking_engine.services.pricing import compute_total

SEAT_CAPACITY = 12
SEAT_NUMBERS = [f"{row}{letter}" for row in (1, 2) for letter in "ABCDEF"]

# Strategies for generating test data
seat_selections = st.lists(st.sampled_from(SEAT_NUMBERS), min_size=1, max_size=4, unique=True)
operations = st.lists(
    st.one_of(
        st.tuples(st.just("book"), seat_selections),
        st.tuples(st.just("cancel"), st.integers(min_value=0, max_value=20)),
    ),
    min_size=1,
    max_size=15,
)
modifiers = st.decimals(min_value=Decimal("0.00"), max_value=Decimal("500.00"), places=2)


async def _setup():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    departure_time = utc_now() + timedelta(days=30)
    async with session_factory() as session:
        flight = Flight(
            flight_number="BA117",
            airline_code="BA",
            origin_airport_code="LHR",
            destination_airport_code="JFK",
            departure_time=departure_time,
            arrival_time=departure_time + timedelta(hours=8),
            base_fare=Decimal("100.00"),
            currency="USD",
            status=FlightStatus.SCHEDULED,
        )
        session.add(flight)
        await session.flush()
        InventoryService(session).generate_seat_map(flight.id, SEAT_CAPACITY)
        await session.commit()

    return engine, session_factory, flight.id


async def _ledger(session: AsyncSession, flight_id):
    unavailable = await session.execute(
        select(Seat.seat_number).where(Seat.flight_id == flight_id, Seat.is_available.is_(False))
    )
    held = await session.execute(
        select(SeatAssignment.seat_number).where(
            SeatAssignment.flight_id == flight_id, SeatAssignment.active.is_(True)
        )
    )
    return set(unavailable.scalars()), list(held.scalars())


def _request(flight_id, seat_numbers) -> CreateBookingRequest:
    return CreateBookingRequest(
        flight_id=str(flight_id),
        passengers=[
            PassengerInput(first_name="Test", last_name=f"Passenger{i}", seat_number=seat)
            for i, seat in enumerate(seat_numbers)
        ],
        payment=PaymentDetails(card_number="4111111111111111", expiry="2099-12", ccv="123"),
        booking_date=utc_now().date().isoformat(),
    )


async def _run_operations(ops):
    engine, session_factory, flight_id = await _setup()
    user = CurrentUser(user_id="property-user")
    bookings = []
    expected_taken = set()

    try:
        for op, arg in ops:
            async with session_factory() as session:
                service = BookingService(session)
                if op == "book":
                    try:
                        booking = await service.create_booking(_request(flight_id, arg), user)
                    except SeatUnavailableError:
                        # All or nothing: some requested seat was already taken
                        assert expected_taken & set(arg)
                    else:
                        assert not expected_taken & set(arg)
                        bookings.append((booking.id, set(arg)))
                        expected_taken |= set(arg)
                elif bookings:
                    booking_id, seats = bookings[arg % len(bookings)]
                    result = await service.cancel_booking(booking_id, user)
                    if result.seats_released:
                        assert result.seats_released == len(seats)
                        expected_taken -= seats

            async with session_factory() as session:
                unavailable, held = await _ledger(session, flight_id)

            assert len(held) == len(set(held))
            assert unavailable == set(held) == expected_taken
    finally:
        await engine.dispose()


@hypothesis_settings(max_examples=25, deadline=None)
@given(ops=operations)
def test_seat_ledger_stays_balanced(ops):
    """Unavailable seats are exactly those held by active assignments after any sequence of operations."""
    asyncio.run(_run_operations(ops))


@given(
    card_number=st.one_of(st.none(), st.text(max_size=24)),
    expiry=st.one_of(st.none(), st.text(max_size=10)),
    ccv=st.one_of(st.none(), st.text(max_size=5)),
    booking_date=st.one_of(st.none(), st.text(max_size=32), st.dates(), st.datetimes()),
)
def test_payment_gate_never_raises(card_number, expiry, ccv, booking_date):
    """Malformed payment input is answered with False, never an exception."""
    assert validate_payment(card_number, expiry, ccv, booking_date) in (True, False)


@given(
    base_fare=st.decimals(min_value=Decimal("0.00"), max_value=Decimal("5000.00"), places=2),
    seat_modifiers=st.lists(modifiers, min_size=1, max_size=9),
)
def test_total_is_sum_of_seat_prices(base_fare, seat_modifiers):
    seats = [
        Seat(seat_number=f"{i + 1}A", price_modifier=modifier, is_available=False)
        for i, modifier in enumerate(seat_modifiers)
    ]

    total = compute_total(base_fare, seats)

    assert total == base_fare * len(seats) + sum(seat_modifiers)
    assert total >= base_fare * len(seats)
    assert total.as_tuple().exponent == -2
