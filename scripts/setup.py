#!/usr/bin/env python3
"""Setup script for the tour booking API."""

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

# Add the server directory to the Python path
server_dir = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_dir))

from alembic import command
from alembic.config import Config
from sqlalchemy import func, select

from tourops.core.database import async_session_factory, close_db, init_db
from tourops.models import Operator, ScheduleStatus, Tour, TourSchedule

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def run_migrations():
    """Apply Alembic migrations up to head."""
    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))

    logger.info("Running database migrations...")
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


async def create_sample_data():
    """Create a sample operator with one tour and a few departures."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        try:
            existing_tours = await db.execute(select(func.count(Tour.id)))
            if existing_tours.scalar_one() > 0:
                logger.info("Sample data already exists, skipping...")
                return

            operator = Operator(
                company_name="Desert Trails Co.",
                contact_email="ops@deserttrails.example",
            )
            db.add(operator)
            await db.flush()

            tour = Tour(
                operator_id=operator.id,
                title="Edge of the World Sunset Hike",
                slug="edge-of-the-world-sunset-hike",
                description="Guided hike to the Tuwaiq escarpment with sunset views",
                meeting_point="Kingdom Centre, north entrance",
                meeting_point_instructions="Look for the guide holding a green flag",
                max_capacity=12,
                base_price=Decimal("350.00"),
                currency="SAR",
            )
            db.add(tour)
            await db.flush()

            base_date = datetime.now(timezone.utc).replace(hour=14, minute=0, second=0, microsecond=0)
            for i in range(5):
                db.add(TourSchedule(
                    tour_id=tour.id,
                    departure_datetime=base_date + timedelta(days=7 * (i + 1)),
                    available_spots=tour.max_capacity,
                    # Weekend departures carry a premium
                    price_override=Decimal("420.00") if i % 2 else None,
                    status=ScheduleStatus.AVAILABLE.value,
                ))

            await db.commit()
            logger.info(
                "Sample data created successfully!",
                extra={"operator_id": str(operator.id), "tour_id": str(tour.id)}
            )

        except Exception as e:
            await db.rollback()
            logger.error(f"Failed to create sample data: {e}")
            raise


async def seed(create_tables: bool):
    try:
        if create_tables:
            await init_db()
            logger.info("Tables created from model metadata")
        await create_sample_data()
    finally:
        await close_db()


def main():
    """Main setup function."""
    parser = argparse.ArgumentParser(description="Prepare the booking database")
    parser.add_argument(
        "--no-migrate",
        action="store_true",
        help="Create tables from model metadata instead of running Alembic",
    )
    args = parser.parse_args()

    logger.info("Starting tour booking API setup...")

    # Alembic's env.py drives its own event loop
    if not args.no_migrate:
        run_migrations()

    asyncio.run(seed(create_tables=args.no_migrate))

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: cd server && uvicorn tourops.main:app --reload")


if __name__ == "__main__":
    main()
