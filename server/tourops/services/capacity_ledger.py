"""Capacity ledger: the only writer of a schedule's available-seat counter."""

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy import and_, case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import ConflictError, NotFoundError
from ..models.schedule import ScheduleStatus, TourSchedule
from ..models.tour import Tour

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReservationOutcome:
    """Result of a successful counter change on a schedule."""

    schedule_id: UUID
    reserved_guests: int
    remaining_spots: int


class ScheduleNotFoundError(NotFoundError):
    """Exception when the referenced schedule does not exist."""

    def __init__(self, schedule_id: str):
        super().__init__(
            resource_type="schedule",
            resource_id=schedule_id,
            detail="Schedule not found",
            code="SCHEDULE_NOT_FOUND"
        )


class InsufficientCapacityError(ConflictError):
    """Exception when a schedule has fewer remaining seats than requested."""

    def __init__(self, schedule_id: str, requested_guests: int, available_spots: int):
        super().__init__(
            detail=f"Only {available_spots} spots available",
            code="INSUFFICIENT_CAPACITY",
            schedule_id=schedule_id,
            requested_guests=requested_guests,
            available_spots=available_spots
        )
        self.available_spots = available_spots
        self.requested_guests = requested_guests


class CapacityOverflowError(ConflictError):
    """Exception when releasing seats would exceed the tour's capacity."""

    def __init__(self, schedule_id: str, released_guests: int):
        super().__init__(
            detail=f"Releasing {released_guests} seats would exceed the capacity of schedule {schedule_id}",
            code="CAPACITY_OVERFLOW"
        )


class CapacityLedger:
    """
    Guards the invariant ``0 <= available_spots <= tour.max_capacity``.

    Every change is a single conditional UPDATE whose affected-row count is the
    gate, so two concurrent callers can never both consume the last seats: the
    second UPDATE blocks on the first one's row lock and then re-evaluates its
    WHERE clause against the committed value. Methods run inside the caller's
    transaction and never commit; the caller owns commit and rollback.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def try_reserve(self, schedule_id: UUID, requested_guests: int) -> ReservationOutcome:
        """
        Take ``requested_guests`` seats from a schedule.

        Args:
            schedule_id: Schedule to reserve on
            requested_guests: Seats to take, at least 1

        Returns:
            The reservation outcome with the seats left afterwards

        Raises:
            ValueError: If requested_guests is less than 1
            ScheduleNotFoundError: If the schedule does not exist
            InsufficientCapacityError: If fewer seats remain than requested
        """
        if requested_guests < 1:
            raise ValueError("requested_guests must be at least 1")

        remaining = TourSchedule.available_spots - requested_guests
        stmt = (
            update(TourSchedule)
            .where(
                TourSchedule.id == schedule_id,
                TourSchedule.available_spots >= requested_guests
            )
            .values(
                available_spots=remaining,
                status=case(
                    (
                        and_(remaining == 0, TourSchedule.status == ScheduleStatus.AVAILABLE.value),
                        ScheduleStatus.FULL.value
                    ),
                    else_=TourSchedule.status
                ),
                updated_at=func.now()
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)

        if result.rowcount == 0:
            # Read inside the same transaction to report the precise count
            available = await self.available_spots(schedule_id)
            if available is None:
                raise ScheduleNotFoundError(str(schedule_id))

            logger.warning(
                "Reservation rejected - insufficient capacity",
                extra={
                    "schedule_id": str(schedule_id),
                    "requested_guests": requested_guests,
                    "available_spots": available
                }
            )
            raise InsufficientCapacityError(
                schedule_id=str(schedule_id),
                requested_guests=requested_guests,
                available_spots=available
            )

        remaining_spots = await self.available_spots(schedule_id)

        logger.debug(
            "Seats reserved",
            extra={
                "schedule_id": str(schedule_id),
                "reserved_guests": requested_guests,
                "remaining_spots": remaining_spots
            }
        )

        return ReservationOutcome(
            schedule_id=schedule_id,
            reserved_guests=requested_guests,
            remaining_spots=remaining_spots
        )

    async def release(self, schedule_id: UUID, released_guests: int) -> ReservationOutcome:
        """
        Return ``released_guests`` seats to a schedule, e.g. on cancellation.

        Raises:
            ValueError: If released_guests is less than 1
            ScheduleNotFoundError: If the schedule does not exist
            CapacityOverflowError: If the counter would exceed the tour's max capacity
        """
        if released_guests < 1:
            raise ValueError("released_guests must be at least 1")

        max_capacity = (
            select(Tour.max_capacity)
            .where(Tour.id == TourSchedule.tour_id)
            .scalar_subquery()
        )
        stmt = (
            update(TourSchedule)
            .where(
                TourSchedule.id == schedule_id,
                TourSchedule.available_spots + released_guests <= max_capacity
            )
            .values(
                available_spots=TourSchedule.available_spots + released_guests,
                status=case(
                    (TourSchedule.status == ScheduleStatus.FULL.value, ScheduleStatus.AVAILABLE.value),
                    else_=TourSchedule.status
                ),
                updated_at=func.now()
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)

        if result.rowcount == 0:
            if await self.available_spots(schedule_id) is None:
                raise ScheduleNotFoundError(str(schedule_id))

            logger.error(
                "Seat release rejected - would exceed tour capacity",
                extra={"schedule_id": str(schedule_id), "released_guests": released_guests}
            )
            raise CapacityOverflowError(str(schedule_id), released_guests)

        remaining_spots = await self.available_spots(schedule_id)

        logger.info(
            "Seats released",
            extra={
                "schedule_id": str(schedule_id),
                "released_guests": released_guests,
                "remaining_spots": remaining_spots
            }
        )

        return ReservationOutcome(
            schedule_id=schedule_id,
            reserved_guests=-released_guests,
            remaining_spots=remaining_spots
        )

    async def available_spots(self, schedule_id: UUID) -> Optional[int]:
        """
        Read the current seat counter, or None if the schedule does not exist.

        Outside a reservation transaction the value is advisory only and must
        not be used to decide a write.
        """
        stmt = select(TourSchedule.available_spots).where(TourSchedule.id == schedule_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
