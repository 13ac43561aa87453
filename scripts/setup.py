#!/usr/bin/env python3
"""Setup script for the airline booking engine."""

import asyncio
import logging
import sys
from datetime import timedelta
from decimal import Decimal
from pathlib import Path

# Add the server directory to the Python path
server_dir = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_dir))

from alembic import command
from alembic.config import Config
from sqlalchemy import func, select

from booking_engine.core.clock import utc_now
from booking_engine.core.database import async_session_factory, close_db
from booking_engine.models import Flight, FlightStatus
from booking_engine.services.inventory_service import InventoryService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SAMPLE_FLIGHTS = [
    # flight_number, origin, destination, days out, base fare, seats
    ("BA117", "LHR", "JFK", 30, Decimal("420.00"), 180),
    ("BA178", "JFK", "LHR", 33, Decimal("395.00"), 180),
    ("AA100", "JFK", "LAX", 14, Decimal("199.00"), 120),
]


def run_migrations():
    """Upgrade the schema to the latest revision."""
    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))

    logger.info("Running database migrations...")
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


async def create_sample_data():
    """Create sample flights with generated seat maps."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        try:
            existing = await db.execute(select(func.count()).select_from(Flight))
            if existing.scalar_one() > 0:
                logger.info("Sample data already exists, skipping...")
                return

            inventory = InventoryService(db)
            base_date = utc_now().replace(minute=0, second=0, microsecond=0)

            for flight_number, origin, destination, days_out, base_fare, capacity in SAMPLE_FLIGHTS:
                departure_time = base_date + timedelta(days=days_out)
                flight = Flight(
                    flight_number=flight_number,
                    airline_code=flight_number[:2],
                    origin_airport_code=origin,
                    destination_airport_code=destination,
                    departure_time=departure_time,
                    arrival_time=departure_time + timedelta(hours=7),
                    base_fare=base_fare,
                    currency="USD",
                    status=FlightStatus.SCHEDULED,
                )
                db.add(flight)
                await db.flush()

                seats = inventory.generate_seat_map(flight.id, capacity)
                logger.info(f"Flight {flight_number} {origin}-{destination}: {len(seats)} seats")

            await db.commit()
            logger.info("Sample data created successfully!")

        except Exception as e:
            await db.rollback()
            logger.error(f"Failed to create sample data: {e}")
            raise
    await close_db()


def main():
    """Main setup function."""
    logger.info("Starting airline booking engine setup...")

    # env.py drives its own event loop, so migrate before entering ours
    run_migrations()

    asyncio.run(create_sample_data())

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: cd server && uvicorn booking_engine.main:app --reload")


if __name__ == "__main__":
    main()
