"""Flight model definition."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, Numeric, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .seat import Seat


class FlightStatus(str, Enum):
    """Flight status enumeration."""
    SCHEDULED = "SCHEDULED"
    DELAYED = "DELAYED"
    CANCELLED = "CANCELLED"
    DEPARTED = "DEPARTED"


BOOKABLE_FLIGHT_STATUSES = frozenset({FlightStatus.SCHEDULED, FlightStatus.DELAYED})


class Flight(Base):
    """Flight entity owned by reference-data management.

    The booking engine only reads flights; the route is denormalized as the
    origin and destination airport codes.
    """

    __tablename__ = "flights"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    flight_number: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    airline_code: Mapped[str] = mapped_column(String(3), nullable=False, index=True)

    # Route
    origin_airport_code: Mapped[str] = mapped_column(String(3), nullable=False)
    destination_airport_code: Mapped[str] = mapped_column(String(3), nullable=False)

    # Schedule
    departure_time: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    arrival_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # Fare per seat before seat modifiers
    base_fare: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    status: Mapped[FlightStatus] = mapped_column(
        String(20),
        nullable=False,
        default=FlightStatus.SCHEDULED,
        index=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        server_onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("base_fare >= 0", name="ck_flight_base_fare_non_negative"),
        CheckConstraint("arrival_time > departure_time", name="ck_flight_arrival_after_departure"),
        CheckConstraint(
            "origin_airport_code != destination_airport_code",
            name="ck_flight_route_distinct_airports"
        ),
        CheckConstraint("length(currency) = 3", name="ck_flight_currency_length"),
    )

    seats: Mapped[list["Seat"]] = relationship(
        "Seat",
        back_populates="flight",
        cascade="all, delete-orphan",
        order_by="Seat.seat_number"
    )

    @property
    def route(self) -> str:
        """Route label such as ``JFK-LHR``."""
        return f"{self.origin_airport_code}-{self.destination_airport_code}"

    def __repr__(self) -> str:
        return (
            f"<Flight(id={self.id}, flight_number='{self.flight_number}', "
            f"route={self.route}, departure_time={self.departure_time}, status={self.status})>"
        )
