"""Read-only access to flight reference data."""

import logging
from typing import Optional, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.flight import Flight

logger = logging.getLogger(__name__)


class ReferenceDataGateway(Protocol):
    """Flight lookup supplied by reference-data management."""

    async def get_flight(self, flight_id: UUID) -> Optional[Flight]:
        ...


class SqlReferenceDataGateway:
    """Reads flights from the shared ``flights`` table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_flight(self, flight_id: UUID) -> Optional[Flight]:
        """Get flight by ID."""
        stmt = select(Flight).where(Flight.id == flight_id)
        result = await self.db.execute(stmt)
        flight = result.scalar_one_or_none()
        if flight is None:
            logger.debug("Flight not found", extra={"flight_id": str(flight_id)})
        return flight
