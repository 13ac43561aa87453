"""Test configuration and fixtures."""

import os

# Settings are read at import time
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["WORKERS_ENABLED"] = "false"
os.environ["BEARER_TOKEN_SECRET"] = "test-secret"
os.environ["COMPENSATION_BACKOFF_SECONDS"] = "0"

from datetime import timedelta
from decimal import Decimal

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from booking_engine.core.clock import utc_now
from booking_engine.core.config import settings
from booking_engine.core.database import Base, get_db
from booking_engine.models import *  # noqa: F403 - Import all models
from booking_engine.models import Flight, FlightStatus
from booking_engine.schemas.auth import CurrentUser
from booking_engine.schemas.booking import CreateBookingRequest, PassengerInput, PaymentDetails
from booking_engine.services.inventory_service import InventoryService

VALID_PAYMENT = {
    "card_number": "4111 1111 1111 1111",
    "expiry": "2099-12",
    "ccv": "123",
}


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """
    Create a test database engine.

    A file-backed database gives every session its own connection, so
    concurrent sessions really contend for the seat rows.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'booking_engine.db'}",
        echo=False,
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine):
    """Session factory bound to the test database."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def test_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def flight_factory(session_factory):
    """Create a flight with a generated seat map; returns the flight."""

    async def create(
        base_fare: Decimal = Decimal("100.00"),
        seat_capacity: int = 78,
        departs_in: timedelta = timedelta(days=30),
        status: FlightStatus = FlightStatus.SCHEDULED,
        flight_number: str = "BA117",
    ) -> Flight:
        departure_time = utc_now() + departs_in
        async with session_factory() as session:
            flight = Flight(
                flight_number=flight_number,
                airline_code=flight_number[:2],
                origin_airport_code="LHR",
                destination_airport_code="JFK",
                departure_time=departure_time,
                arrival_time=departure_time + timedelta(hours=8),
                base_fare=base_fare,
                currency="USD",
                status=status,
            )
            session.add(flight)
            await session.flush()
            InventoryService(session).generate_seat_map(flight.id, seat_capacity)
            await session.commit()
            return flight

    return create


@pytest_asyncio.fixture(scope="function")
async def flight(flight_factory):
    """Scheduled flight 30 days out: base fare 100.00, 78 seats (rows 1-13)."""
    return await flight_factory()


@pytest.fixture
def customer():
    return CurrentUser(user_id="user-1", role="customer")


@pytest.fixture
def other_customer():
    return CurrentUser(user_id="user-2", role="customer")


@pytest.fixture
def admin():
    return CurrentUser(user_id="admin-1", role=settings.admin_role)


@pytest.fixture
def make_booking_request():
    """Build a valid booking request for the given seats."""

    def build(flight_id, seat_numbers, **overrides) -> CreateBookingRequest:
        data = {
            "flight_id": str(flight_id),
            "passengers": [
                PassengerInput(
                    first_name=f"Passenger{index}",
                    last_name="Traveller",
                    email=f"passenger{index}@example.com",
                    seat_number=seat_number,
                )
                for index, seat_number in enumerate(seat_numbers)
            ],
            "payment": PaymentDetails(**VALID_PAYMENT),
            "booking_date": utc_now().date().isoformat(),
        }
        data.update(overrides)
        return CreateBookingRequest(**data)

    return build


@pytest.fixture
def make_token():
    """Issue a bearer token the way the auth collaborator does."""

    def issue(user_id: str = "user-1", role: str = "customer") -> str:
        return jwt.encode({"sub": user_id, "role": role}, settings.bearer_token_secret, algorithm="HS256")

    return issue


@pytest.fixture
def auth_headers(make_token):
    """Authorization header for a user."""

    def headers(user_id: str = "user-1", role: str = "customer") -> dict:
        return {"Authorization": f"Bearer {make_token(user_id, role)}"}

    return headers


@pytest_asyncio.fixture(scope="function")
async def test_app(session_factory):
    """Create a test FastAPI application."""
    from fastapi import FastAPI
    from fastapi.exceptions import RequestValidationError

    from booking_engine.core.exceptions import (
        ProblemDetailsException,
        generic_exception_handler,
        problem_details_handler,
        request_validation_handler,
    )
    from booking_engine.core.middleware import setup_middleware
    from booking_engine.routers import booking, health, metrics, payment, seat

    # Create a simplified test app without lifespan
    app = FastAPI(
        title="Airline Booking Engine (Test)",
        description="Test version of the API",
        version="1.0.0-test",
    )

    setup_middleware(app, enable_logging=True)

    # Register exception handlers
    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # Register API routers
    app.include_router(health.router)
    app.include_router(booking.router)
    app.include_router(seat.router)
    app.include_router(payment.router)
    app.include_router(metrics.router)

    # One session per request, like the real dependency
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
