"""Outbound booking events: outbox writes and delivery to collaborators."""

import logging
from typing import Any, Callable, Dict, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utc_now
from ..core.config import settings
from ..core.observability import metrics_collector
from ..models.booking import Booking
from ..models.event import BookingEvent, BookingEventStatus, BookingEventType

logger = logging.getLogger(__name__)


class NotificationPublisher(Protocol):
    """Consumes ``{event, booking_id, user_id, flight_id, amount}``."""

    async def publish(self, payload: Dict[str, Any]) -> None:
        ...


class InvoicePublisher(Protocol):
    """Asked to produce an invoice for a new booking; it pulls the line items itself."""

    async def request_invoice(self, booking_id: str, user_id: str) -> None:
        ...


class LoggingNotificationPublisher:
    """Default notification collaborator: writes the payload to the log."""

    async def publish(self, payload: Dict[str, Any]) -> None:
        logger.info("Booking notification published", extra={"notification": payload})


class LoggingInvoicePublisher:
    """Default invoice collaborator: writes the request to the log."""

    async def request_invoice(self, booking_id: str, user_id: str) -> None:
        logger.info(
            "Invoice requested",
            extra={"booking_id": booking_id, "user_id": user_id}
        )


class EventService:
    """Writes booking facts to the outbox table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(self, event_type: BookingEventType, booking: Booking) -> Optional[BookingEvent]:
        """
        Store a booking fact for later delivery, in its own transaction.

        Must be called after the booking itself has been committed. Failures
        are logged and swallowed: a booking with a missed notification stays
        confirmed.

        Args:
            event_type: booking_created or booking_cancelled
            booking: Committed booking

        Returns:
            The stored event, or None if it could not be written
        """
        # A failed commit expires the booking, so read it up front
        event_type = BookingEventType(event_type)
        booking_id = booking.id
        event = BookingEvent(
            event_type=event_type,
            booking_id=booking_id,
            user_id=booking.user_id,
            flight_id=booking.flight_id,
            amount=booking.total_amount,
            status=BookingEventStatus.PENDING,
            attempts=0,
            created_at=utc_now(),
        )

        try:
            self.db.add(event)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "Failed to record booking event",
                extra={
                    "event_type": event_type.value,
                    "booking_id": str(booking_id),
                    "error": str(e),
                }
            )
            return None

        logger.info(
            "Booking event recorded",
            extra={
                "event_id": str(event.id),
                "event_type": event_type.value,
                "booking_id": str(booking_id),
            }
        )
        return event

    async def get_pending(self, limit: int = 100) -> list[BookingEvent]:
        """Pending events, oldest first."""
        stmt = (
            select(BookingEvent)
            .where(BookingEvent.status == BookingEventStatus.PENDING.value)
            .order_by(BookingEvent.created_at, BookingEvent.id)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def get_events_for_booking(self, booking_id) -> list[BookingEvent]:
        """All events of a booking, oldest first."""
        stmt = (
            select(BookingEvent)
            .where(BookingEvent.booking_id == booking_id)
            .order_by(BookingEvent.created_at, BookingEvent.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())


class EventDispatcher:
    """
    Delivers pending outbox events to the notification and invoice collaborators.

    Delivery is at least once: an event whose invoice request fails after the
    notification went out is retried as a whole. Events that keep failing are
    marked FAILED after ``max_attempts``.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        notification_publisher: Optional[NotificationPublisher] = None,
        invoice_publisher: Optional[InvoicePublisher] = None,
        max_attempts: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.notification_publisher = notification_publisher or LoggingNotificationPublisher()
        self.invoice_publisher = invoice_publisher or LoggingInvoicePublisher()
        self.max_attempts = max_attempts or settings.event_max_attempts

    async def dispatch_pending(self, batch_size: Optional[int] = None) -> int:
        """
        Deliver one batch of pending events.

        Args:
            batch_size: Maximum events to deliver

        Returns:
            Number of events delivered
        """
        batch_size = batch_size or settings.event_dispatch_batch_size
        delivered = 0

        async with self.session_factory() as session:
            events = await EventService(session).get_pending(batch_size)

            for event in events:
                if await self._deliver(event):
                    event.status = BookingEventStatus.DISPATCHED
                    event.dispatched_at = utc_now()
                    delivered += 1
                await session.commit()

        if delivered:
            logger.info(
                "Event dispatch batch completed",
                extra={"delivered_count": delivered, "batch_size": batch_size}
            )
        return delivered

    async def _deliver(self, event: BookingEvent) -> bool:
        event_type = BookingEventType(event.event_type)
        payload = event.to_payload()
        event.attempts += 1

        try:
            await self.notification_publisher.publish(payload)
            if event_type == BookingEventType.BOOKING_CREATED:
                await self.invoice_publisher.request_invoice(payload["booking_id"], payload["user_id"])
        except Exception as e:
            event.last_error = str(e)[:1000]
            if event.attempts >= self.max_attempts:
                event.status = BookingEventStatus.FAILED
            metrics_collector.record_event_dispatch(event_type.value, delivered=False)
            logger.warning(
                "Booking event delivery failed",
                extra={
                    "event_id": str(event.id),
                    "event_type": event_type.value,
                    "booking_id": payload["booking_id"],
                    "attempts": event.attempts,
                    "gave_up": event.status == BookingEventStatus.FAILED,
                    "error": str(e),
                }
            )
            return False

        metrics_collector.record_event_dispatch(event_type.value, delivered=True)
        return True
