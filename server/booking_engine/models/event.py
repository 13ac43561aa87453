"""Outbound booking event (outbox) model definition."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, Numeric, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class BookingEventType(str, Enum):
    """Facts emitted to downstream collaborators."""
    BOOKING_CREATED = "booking_created"
    BOOKING_CANCELLED = "booking_cancelled"


class BookingEventStatus(str, Enum):
    """Delivery status of an outbox event."""
    PENDING = "PENDING"
    DISPATCHED = "DISPATCHED"
    FAILED = "FAILED"


class BookingEvent(Base):
    """Booking fact waiting for delivery to notification and invoice collaborators.

    Rows are written after the booking transaction commits and are drained by
    the event dispatch worker. Delivery failures never touch the booking.
    """

    __tablename__ = "booking_events"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    event_type: Mapped[BookingEventType] = mapped_column(String(32), nullable=False)
    booking_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    flight_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    status: Mapped[BookingEventStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BookingEventStatus.PENDING
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )
    dispatched_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "event_type IN ('booking_created', 'booking_cancelled')",
            name="ck_booking_event_type_valid"
        ),
        CheckConstraint("attempts >= 0", name="ck_booking_event_attempts_non_negative"),
        Index("ix_booking_events_status_created", "status", "created_at"),
    )

    def to_payload(self) -> dict:
        """Wire shape consumed by the notification collaborator."""
        return {
            "event": BookingEventType(self.event_type).value,
            "booking_id": str(self.booking_id),
            "user_id": self.user_id,
            "flight_id": str(self.flight_id),
            "amount": str(self.amount),
        }

    def __repr__(self) -> str:
        return (
            f"<BookingEvent(id={self.id}, type={self.event_type}, booking_id={self.booking_id}, "
            f"status={self.status}, attempts={self.attempts})>"
        )
