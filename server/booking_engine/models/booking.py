"""Booking, Passenger and SeatAssignment model definitions."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    ForeignKeyConstraint,
    Index,
    Numeric,
    String,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .flight import Flight


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class Booking(Base):
    """Booking aggregate root.

    Created together with its passengers and seat assignments in one
    transaction. Cancelled bookings are kept; they are never deleted.
    """

    __tablename__ = "bookings"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    booking_reference: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    flight_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("flights.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    status: Mapped[BookingStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BookingStatus.CONFIRMED,
        index=True
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

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
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_booking_total_amount_non_negative"),
        CheckConstraint("length(booking_reference) > 0", name="ck_booking_reference_not_empty"),
        CheckConstraint("length(user_id) > 0", name="ck_booking_user_id_not_empty"),
        CheckConstraint("status IN ('CONFIRMED', 'CANCELLED')", name="ck_booking_status_valid"),
    )

    flight: Mapped["Flight"] = relationship("Flight", lazy="joined")
    passengers: Mapped[list["Passenger"]] = relationship(
        "Passenger",
        back_populates="booking",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Passenger.seat_number"
    )
    seat_assignments: Mapped[list["SeatAssignment"]] = relationship(
        "SeatAssignment",
        back_populates="booking",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="SeatAssignment.seat_number"
    )

    @property
    def seat_numbers(self) -> list[str]:
        """Seat numbers assigned to this booking, active or released."""
        return [assignment.seat_number for assignment in self.seat_assignments]

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, reference='{self.booking_reference}', "
            f"flight_id={self.flight_id}, status={self.status}, total={self.total_amount})>"
        )


class Passenger(Base):
    """Passenger travelling on a booking, seated in one seat."""

    __tablename__ = "passengers"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    passport_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    seat_number: Mapped[str] = mapped_column(String(8), nullable=False)

    # Fare snapshot taken when the booking was priced
    seat_class: Mapped[str] = mapped_column(String(16), nullable=False)
    base_fare: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    price_modifier: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("length(first_name) > 0", name="ck_passenger_first_name_not_empty"),
        CheckConstraint("length(last_name) > 0", name="ck_passenger_last_name_not_empty"),
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="passengers")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def fare(self) -> Decimal:
        """Price paid for this passenger's seat."""
        return self.base_fare + self.price_modifier

    def __repr__(self) -> str:
        return f"<Passenger(id={self.id}, booking_id={self.booking_id}, seat='{self.seat_number}')>"


class SeatAssignment(Base):
    """Link between a booking and a seat; an active row is what "sold" means."""

    __tablename__ = "seat_assignments"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    flight_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    seat_number: Mapped[str] = mapped_column(String(8), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )
    released_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        ForeignKeyConstraint(
            ["flight_id", "seat_number"],
            ["seats.flight_id", "seats.seat_number"],
            ondelete="RESTRICT",
            name="fk_seat_assignment_seat"
        ),
        # At most one active assignment per seat
        Index(
            "uq_seat_assignments_active_seat",
            "flight_id",
            "seat_number",
            unique=True,
            postgresql_where=text("active"),
            sqlite_where=text("active"),
        ),
        Index("ix_seat_assignments_flight_active", "flight_id", "active"),
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="seat_assignments")

    def __repr__(self) -> str:
        return (
            f"<SeatAssignment(booking_id={self.booking_id}, flight_id={self.flight_id}, "
            f"seat='{self.seat_number}', active={self.active})>"
        )
