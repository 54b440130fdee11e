"""Schedule service for creating and listing tour departures."""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.schedule import ScheduleStatus, TourSchedule
from ..schemas.schedule import CreateScheduleRequest
from .tour_service import TourService

logger = logging.getLogger(__name__)


class ScheduleService:
    """Service for tour schedule operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.tour_service = TourService(db)

    async def create_schedule(self, request: CreateScheduleRequest, operator_id: UUID) -> TourSchedule:
        """
        Create a departure for one of the operator's tours.

        The schedule starts with every seat of the tour available.

        Args:
            request: Schedule creation request
            operator_id: Operator creating the schedule

        Returns:
            Created schedule entity

        Raises:
            NotFoundError: If the tour does not exist or belongs to another operator
        """
        tour = await self.tour_service.get_owned_tour_or_raise(request.tour_id, operator_id)

        schedule = TourSchedule(
            tour_id=tour.id,
            departure_datetime=request.departure_datetime,
            available_spots=tour.max_capacity,
            price_override=request.price_override,
            status=ScheduleStatus.AVAILABLE.value,
        )

        self.db.add(schedule)
        await self.db.commit()

        logger.info(
            "Schedule created successfully",
            extra={
                "schedule_id": str(schedule.id),
                "tour_id": str(tour.id),
                "operator_id": str(operator_id),
                "departure_datetime": schedule.departure_datetime.isoformat(),
                "available_spots": schedule.available_spots
            }
        )

        return schedule

    async def list_schedules(self, tour_id: UUID, operator_id: UUID) -> list[TourSchedule]:
        """
        List the schedules of an operator's tour ordered by departure time.

        Raises:
            NotFoundError: If the tour does not exist or belongs to another operator
        """
        await self.tour_service.get_owned_tour_or_raise(tour_id, operator_id)

        stmt = (
            select(TourSchedule)
            .where(TourSchedule.tour_id == tour_id)
            .order_by(TourSchedule.departure_datetime.asc())
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def get_schedule_by_id(self, schedule_id: UUID) -> TourSchedule | None:
        """
        Get schedule by ID, refreshing any copy already in the session.

        The seat counter is changed with bulk UPDATEs, so a cached instance may
        be stale; this read always reflects the database.
        """
        stmt = (
            select(TourSchedule)
            .where(TourSchedule.id == schedule_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
