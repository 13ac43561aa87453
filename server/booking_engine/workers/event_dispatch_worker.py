"""Background worker that drains the booking event outbox."""

import logging
from typing import Optional

from ..core.config import settings
from ..core.database import async_session_factory
from ..services.event_service import EventDispatcher
from .base import BaseWorker

logger = logging.getLogger(__name__)


class EventDispatchWorker(BaseWorker):
    """
    Delivers booking_created and booking_cancelled facts to the notification
    and invoice collaborators, outside of any booking transaction.
    """

    def __init__(
        self,
        interval_seconds: Optional[float] = None,
        dispatcher: Optional[EventDispatcher] = None,
        batch_size: Optional[int] = None,
    ):
        super().__init__(
            name="EventDispatch",
            interval_seconds=interval_seconds or settings.event_dispatch_interval_seconds,
        )
        self.dispatcher = dispatcher or EventDispatcher(async_session_factory)
        self.batch_size = batch_size or settings.event_dispatch_batch_size

    async def process(self) -> None:
        """Deliver one batch of pending events."""
        delivered = await self.dispatcher.dispatch_pending(self.batch_size)
        if delivered:
            logger.info(
                "Booking events delivered",
                extra={"delivered_count": delivered, "worker": self.name}
            )
