"""Background worker that audits the seat ledger."""

import logging
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.database import async_session_factory
from ..services.inventory_service import InventoryService
from .base import BaseWorker

logger = logging.getLogger(__name__)


class SeatReconciliationWorker(BaseWorker):
    """
    Periodically looks for seats marked unavailable without an active
    assignment. It only reports; releasing them is an admin decision made
    through the reconcile endpoint.
    """

    def __init__(
        self,
        interval_seconds: Optional[float] = None,
        session_factory: Callable[[], AsyncSession] = async_session_factory,
    ):
        super().__init__(
            name="SeatReconciliation",
            interval_seconds=interval_seconds or settings.reconciliation_interval_seconds,
        )
        self.session_factory = session_factory
        self.last_orphan_count = 0

    async def process(self) -> None:
        """Run one report-only audit."""
        async with self.session_factory() as db:
            report = await InventoryService(db).reconcile(repair=False)

        self.last_orphan_count = len(report.orphaned)
        if report.orphaned:
            logger.error(
                "Seat ledger out of balance",
                extra={"orphaned_count": len(report.orphaned), "worker": self.name}
            )
