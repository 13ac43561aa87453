"""Seat model definition."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Numeric, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .flight import Flight


class SeatClass(str, Enum):
    """Cabin class of a seat."""
    ECONOMY = "economy"
    BUSINESS = "business"
    FIRST = "first"


class Seat(Base):
    """Seat on a specific flight.

    ``is_available`` is only ever flipped by the inventory service. It is false
    exactly when an active seat assignment holds the seat.
    """

    __tablename__ = "seats"

    flight_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("flights.id", ondelete="CASCADE"),
        primary_key=True
    )
    seat_number: Mapped[str] = mapped_column(String(8), primary_key=True)

    seat_class: Mapped[SeatClass] = mapped_column(
        String(16),
        nullable=False,
        default=SeatClass.ECONOMY
    )
    price_modifier: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00")
    )
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        server_onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("length(seat_number) > 0", name="ck_seat_number_not_empty"),
        CheckConstraint(
            "seat_class IN ('economy', 'business', 'first')",
            name="ck_seat_class_valid"
        ),
        Index("ix_seats_flight_available", "flight_id", "is_available"),
    )

    flight: Mapped["Flight"] = relationship("Flight", back_populates="seats")

    def __repr__(self) -> str:
        return (
            f"<Seat(flight_id={self.flight_id}, seat_number='{self.seat_number}', "
            f"class={self.seat_class}, available={self.is_available})>"
        )
