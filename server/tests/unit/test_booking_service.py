"""Unit tests for the booking service."""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError

from booking_engine.core.clock import utc_now
from booking_engine.core.exceptions import (
    FlightNotBookableError,
    ForbiddenError,
    InvalidPaymentError,
    InvalidStateError,
    NotFoundError,
    PersistenceFailureError,
    SeatUnavailableError,
    ValidationError,
)
from booking_engine.models.booking import Booking, BookingStatus
from booking_engine.models.event import BookingEventStatus, BookingEventType
from booking_engine.models.flight import Flight, FlightStatus
from booking_engine.schemas.booking import BookingScope, CancellationOutcome, PaymentDetails
from booking_engine.services.booking_service import BOOKING_REFERENCE_ALPHABET, BookingService
from booking_engine.services.event_service import EventService
from booking_engine.services.inventory_service import InventoryService


async def _seat_available(session_factory, flight_id, seat_number) -> bool:
    async with session_factory() as session:
        seat = await InventoryService(session).get_seat(flight_id, seat_number)
        return seat.is_available


async def _booking_count(session_factory) -> int:
    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(Booking))
        return result.scalar_one()


@pytest.mark.asyncio
async def test_create_booking(test_session, session_factory, flight, customer, make_booking_request):
    """Test creating a booking."""
    service = BookingService(test_session)

    booking = await service.create_booking(make_booking_request(flight.id, ["12A", "1A"]), customer)

    assert booking.status == BookingStatus.CONFIRMED
    assert booking.user_id == customer.user_id
    assert booking.flight_id == flight.id
    # 100 + 0 for 12A, 100 + 150 for 1A
    assert booking.total_amount == Decimal("350.00")
    assert booking.currency == "USD"
    assert len(booking.booking_reference) == 12
    assert set(booking.booking_reference) <= set(BOOKING_REFERENCE_ALPHABET)
    assert sorted(booking.seat_numbers) == ["12A", "1A"]
    assert sorted(p.seat_number for p in booking.passengers) == ["12A", "1A"]
    assert booking.cancelled_at is None

    assert await _seat_available(session_factory, flight.id, "12A") is False
    assert await _seat_available(session_factory, flight.id, "1A") is False

    events = await EventService(test_session).get_events_for_booking(booking.id)
    assert [e.event_type for e in events] == [BookingEventType.BOOKING_CREATED]
    assert events[0].status == BookingEventStatus.PENDING
    assert events[0].amount == Decimal("350.00")


@pytest.mark.asyncio
async def test_create_booking_total_uses_seat_modifiers(test_session, flight, customer, make_booking_request):
    """Base 100 with seats at +20 and 0 costs 220.00."""
    await InventoryService(test_session).update_seat_attributes(flight.id, "12A", price_modifier=Decimal("20.00"))

    booking = await BookingService(test_session).create_booking(
        make_booking_request(flight.id, ["12A", "12B"]), customer
    )

    assert booking.total_amount == Decimal("220.00")


@pytest.mark.asyncio
async def test_create_booking_normalizes_seat_numbers(test_session, flight, customer, make_booking_request):
    booking = await BookingService(test_session).create_booking(
        make_booking_request(flight.id, [" 12a "]), customer
    )

    assert booking.seat_numbers == ["12A"]
    assert booking.passengers[0].seat_number == "12A"


@pytest.mark.asyncio
async def test_create_booking_with_required_class(test_session, flight, customer, make_booking_request):
    service = BookingService(test_session)

    with pytest.raises(SeatUnavailableError) as exc_info:
        await service.create_booking(make_booking_request(flight.id, ["12A"], seat_class="business"), customer)
    assert exc_info.value.seats == [{"seat_number": "12A", "reason": "wrong_class"}]

    booking = await service.create_booking(make_booking_request(flight.id, ["3A"], seat_class="business"), customer)
    assert booking.total_amount == Decimal("175.00")


@pytest.mark.asyncio
@pytest.mark.parametrize("overrides, field", [
    ({"passengers": []}, "passengers"),
    ({"flight_id": ""}, "flight_id"),
    ({"flight_id": "not-a-uuid"}, "flight_id"),
])
async def test_create_booking_validation(test_session, flight, customer, make_booking_request, overrides, field):
    request = make_booking_request(flight.id, ["12A"]).model_copy(update=overrides)

    with pytest.raises(ValidationError) as exc_info:
        await BookingService(test_session).create_booking(request, customer)

    assert field in exc_info.value.problem_details["errors"]
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_create_booking_rejects_duplicate_and_missing_seats(
    test_session, flight, customer, make_booking_request
):
    request = make_booking_request(flight.id, ["12A", "12a", ""])

    with pytest.raises(ValidationError) as exc_info:
        await BookingService(test_session).create_booking(request, customer)

    errors = exc_info.value.problem_details["errors"]
    assert "passengers[1].seat_number" in errors
    assert "passengers[2].seat_number" in errors


@pytest.mark.asyncio
async def test_create_booking_unknown_flight(test_session, flight, customer, make_booking_request):
    with pytest.raises(NotFoundError) as exc_info:
        await BookingService(test_session).create_booking(make_booking_request(uuid4(), ["12A"]), customer)

    assert not isinstance(exc_info.value, FlightNotBookableError)


@pytest.mark.asyncio
@pytest.mark.parametrize("status, departs_in, reason", [
    (FlightStatus.CANCELLED, timedelta(days=30), "status CANCELLED"),
    (FlightStatus.DEPARTED, timedelta(days=30), "status DEPARTED"),
    (FlightStatus.SCHEDULED, timedelta(hours=-1), "already departed"),
])
async def test_create_booking_flight_not_bookable(
    test_session, flight_factory, customer, make_booking_request, status, departs_in, reason
):
    flight = await flight_factory(status=status, departs_in=departs_in)

    with pytest.raises(FlightNotBookableError) as exc_info:
        await BookingService(test_session).create_booking(make_booking_request(flight.id, ["12A"]), customer)

    assert exc_info.value.status_code == 404
    assert exc_info.value.problem_details["reason"] == reason


@pytest.mark.asyncio
async def test_create_booking_on_delayed_flight(test_session, flight_factory, customer, make_booking_request):
    flight = await flight_factory(status=FlightStatus.DELAYED)

    booking = await BookingService(test_session).create_booking(make_booking_request(flight.id, ["12A"]), customer)

    assert booking.status == BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_create_booking_invalid_payment(
    test_session, session_factory, flight, customer, make_booking_request
):
    request = make_booking_request(
        flight.id, ["12A"], payment=PaymentDetails(card_number="4111111111111111", expiry="2020-01", ccv="123")
    )

    with pytest.raises(InvalidPaymentError) as exc_info:
        await BookingService(test_session).create_booking(request, customer)

    assert exc_info.value.status_code == 402
    assert await _seat_available(session_factory, flight.id, "12A") is True
    assert await _booking_count(session_factory) == 0


@pytest.mark.asyncio
async def test_create_booking_seat_taken(
    test_session, session_factory, flight, customer, other_customer, make_booking_request
):
    service = BookingService(test_session)
    await service.create_booking(make_booking_request(flight.id, ["12A"]), customer)

    with pytest.raises(SeatUnavailableError) as exc_info:
        await service.create_booking(make_booking_request(flight.id, ["12B", "12A"]), other_customer)

    assert exc_info.value.seats == [{"seat_number": "12A", "reason": "unavailable"}]
    assert await _seat_available(session_factory, flight.id, "12B") is True
    assert await _booking_count(session_factory) == 1


@pytest.mark.asyncio
async def test_create_booking_persistence_failure_returns_seats(
    test_session, session_factory, flight, customer, make_booking_request, monkeypatch
):
    """A failed commit after reservation compensates and reports a persistence failure."""
    original_commit = test_session.commit
    commits = []

    async def failing_commit():
        commits.append(True)
        if len(commits) == 1:
            raise OperationalError("COMMIT", {}, Exception("disk I/O error"))
        await original_commit()

    monkeypatch.setattr(test_session, "commit", failing_commit)

    with pytest.raises(PersistenceFailureError) as exc_info:
        await BookingService(test_session).create_booking(make_booking_request(flight.id, ["12A", "12B"]), customer)

    assert exc_info.value.status_code == 503
    assert exc_info.value.problem_details["code"] == "PERSISTENCE_FAILURE"
    assert "error_id" in exc_info.value.problem_details
    assert await _seat_available(session_factory, flight.id, "12A") is True
    assert await _seat_available(session_factory, flight.id, "12B") is True
    assert await _booking_count(session_factory) == 0


def fail_outbox_commit(session, monkeypatch):
    """Let the next commit through and fail the one after it."""
    original_commit = session.commit
    commits = []

    async def commit():
        commits.append(True)
        if len(commits) == 2:
            raise OperationalError("COMMIT", {}, Exception("database is locked"))
        await original_commit()

    monkeypatch.setattr(session, "commit", commit)


@pytest.mark.asyncio
async def test_event_failure_does_not_undo_booking(
    test_session, session_factory, flight, customer, make_booking_request, monkeypatch
):
    fail_outbox_commit(test_session, monkeypatch)

    booking = await BookingService(test_session).create_booking(make_booking_request(flight.id, ["12A"]), customer)

    assert booking.status == BookingStatus.CONFIRMED
    assert booking.seat_numbers == ["12A"]
    assert await _booking_count(session_factory) == 1
    assert await _seat_available(session_factory, flight.id, "12A") is False
    async with session_factory() as session:
        assert await EventService(session).get_events_for_booking(booking.id) == []


@pytest.mark.asyncio
async def test_event_failure_does_not_undo_cancellation(
    test_session, session_factory, flight, customer, make_booking_request, monkeypatch
):
    service = BookingService(test_session)
    booking = await service.create_booking(make_booking_request(flight.id, ["12A"]), customer)
    fail_outbox_commit(test_session, monkeypatch)

    result = await service.cancel_booking(booking.id, customer)

    assert result.outcome == CancellationOutcome.CANCELLED
    assert result.seats_released == 1
    assert result.booking.status == BookingStatus.CANCELLED
    assert await _seat_available(session_factory, flight.id, "12A") is True
    async with session_factory() as session:
        events = await EventService(session).get_events_for_booking(booking.id)
    assert [e.event_type for e in events] == [BookingEventType.BOOKING_CREATED]


@pytest.mark.asyncio
async def test_create_then_cancel_round_trip(
    test_session, session_factory, flight, customer, make_booking_request
):
    """Creating and cancelling a booking leaves every seat as it was."""
    service = BookingService(test_session)
    booking = await service.create_booking(make_booking_request(flight.id, ["12A", "12B"]), customer)

    result = await service.cancel_booking(str(booking.id), customer)

    assert result.outcome == CancellationOutcome.CANCELLED
    assert result.seats_released == 2
    assert result.booking.status == BookingStatus.CANCELLED
    assert result.booking.cancelled_at is not None
    assert await _seat_available(session_factory, flight.id, "12A") is True
    assert await _seat_available(session_factory, flight.id, "12B") is True

    events = await EventService(test_session).get_events_for_booking(booking.id)
    assert [e.event_type for e in events] == [BookingEventType.BOOKING_CREATED, BookingEventType.BOOKING_CANCELLED]

    # The seats can be booked again
    rebooked = await service.create_booking(make_booking_request(flight.id, ["12A", "12B"]), customer)
    assert rebooked.status == BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_cancel_twice_reports_already_cancelled(test_session, flight, customer, make_booking_request):
    service = BookingService(test_session)
    booking = await service.create_booking(make_booking_request(flight.id, ["12A"]), customer)
    await service.cancel_booking(booking.id, customer)

    result = await service.cancel_booking(booking.id, customer)

    assert result.outcome == CancellationOutcome.ALREADY_CANCELLED
    assert result.seats_released == 0
    assert result.booking.status == BookingStatus.CANCELLED
    events = await EventService(test_session).get_events_for_booking(booking.id)
    assert len(events) == 2


@pytest.mark.asyncio
async def test_cancel_requires_owner_or_admin(
    test_session, flight, customer, other_customer, admin, make_booking_request
):
    service = BookingService(test_session)
    booking = await service.create_booking(make_booking_request(flight.id, ["12A"]), customer)

    with pytest.raises(ForbiddenError):
        await service.cancel_booking(booking.id, other_customer)

    result = await service.cancel_booking(booking.id, admin)
    assert result.outcome == CancellationOutcome.CANCELLED


@pytest.mark.asyncio
@pytest.mark.parametrize("booking_id", ["not-a-uuid", str(uuid4())])
async def test_cancel_unknown_booking(test_session, customer, booking_id):
    with pytest.raises(NotFoundError):
        await BookingService(test_session).cancel_booking(booking_id, customer)


@pytest.mark.asyncio
async def test_cancel_after_departure_is_refused(
    test_session, session_factory, flight, customer, make_booking_request
):
    booking = await BookingService(test_session).create_booking(make_booking_request(flight.id, ["12A"]), customer)
    async with session_factory() as session:
        await session.execute(
            update(Flight).where(Flight.id == flight.id).values(departure_time=utc_now() - timedelta(hours=1))
        )
        await session.commit()

    async with session_factory() as session:
        with pytest.raises(InvalidStateError):
            await BookingService(session).cancel_booking(booking.id, customer)

    assert await _seat_available(session_factory, flight.id, "12A") is False


@pytest.mark.asyncio
async def test_get_booking_access(test_session, flight, customer, other_customer, admin, make_booking_request):
    service = BookingService(test_session)
    booking = await service.create_booking(make_booking_request(flight.id, ["12A"]), customer)

    assert (await service.get_booking(str(booking.id), customer)).id == booking.id
    assert (await service.get_booking(booking.id, admin)).id == booking.id
    with pytest.raises(ForbiddenError):
        await service.get_booking(booking.id, other_customer)


@pytest.mark.asyncio
async def test_list_bookings_scopes(
    test_session, flight, flight_factory, customer, other_customer, make_booking_request
):
    service = BookingService(test_session)
    later_flight = await flight_factory(departs_in=timedelta(days=60), flight_number="BA178")

    upcoming = await service.create_booking(make_booking_request(flight.id, ["12A"]), customer)
    later = await service.create_booking(make_booking_request(later_flight.id, ["12A"]), customer)
    cancelled = await service.create_booking(make_booking_request(flight.id, ["12B"]), customer)
    await service.cancel_booking(cancelled.id, customer)
    await service.create_booking(make_booking_request(flight.id, ["12C"]), other_customer)

    all_ids = {b.id for b in await service.list_bookings(customer, BookingScope.ALL)}
    upcoming_ids = [b.id for b in await service.list_bookings(customer, BookingScope.UPCOMING)]
    past_ids = [b.id for b in await service.list_bookings(customer, "past")]

    assert all_ids == {upcoming.id, later.id, cancelled.id}
    assert upcoming_ids == [upcoming.id, later.id]
    assert past_ids == [cancelled.id]


@pytest.mark.asyncio
async def test_list_all_bookings(test_session, flight, customer, other_customer, make_booking_request):
    service = BookingService(test_session)
    first = await service.create_booking(make_booking_request(flight.id, ["12A"]), customer)
    second = await service.create_booking(make_booking_request(flight.id, ["12B"]), other_customer)
    await service.cancel_booking(second.id, other_customer)

    assert {b.id for b in await service.list_all_bookings()} == {first.id, second.id}
    assert [b.id for b in await service.list_all_bookings(status=BookingStatus.CANCELLED)] == [second.id]
    assert await service.list_all_bookings(flight_id=uuid4()) == []
    assert len(await service.list_all_bookings(limit=1)) == 1


@pytest.mark.asyncio
async def test_invoice_lines(test_session, flight, customer, other_customer, make_booking_request):
    service = BookingService(test_session)
    booking = await service.create_booking(make_booking_request(flight.id, ["1A", "12A"]), customer)

    invoice = await service.get_invoice_lines(booking.id, customer)

    assert invoice.booking_reference == booking.booking_reference
    assert invoice.flight.route == "LHR-JFK"
    assert [(line.seat_number, line.amount) for line in invoice.lines] == [
        ("12A", Decimal("100.00")),
        ("1A", Decimal("250.00")),
    ]
    assert sum(line.amount for line in invoice.lines) == invoice.total.amount == Decimal("350.00")

    with pytest.raises(ForbiddenError):
        await service.get_invoice_lines(booking.id, other_customer)


@pytest.mark.asyncio
async def test_invoice_lines_keep_the_price_paid(test_session, flight, customer, make_booking_request):
    """Later seat repricing does not change an existing booking's invoice."""
    service = BookingService(test_session)
    booking = await service.create_booking(make_booking_request(flight.id, ["12A"]), customer)
    await InventoryService(test_session).update_seat_attributes(flight.id, "12A", price_modifier=Decimal("40.00"))

    invoice = await service.get_invoice_lines(booking.id, customer)

    assert invoice.lines[0].price_modifier == Decimal("0.00")
    assert invoice.lines[0].amount == Decimal("100.00")
    assert invoice.total.amount == Decimal("100.00")
