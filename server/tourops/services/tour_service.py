"""Catalog operations on tours."""

import logging
import math
from typing import Optional
from uuid import UUID

from sqlalchemy import Select, exists, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.exceptions import ConflictError, NotFoundError
from ..models.schedule import TourSchedule
from ..models.tour import Tour
from ..schemas.common import Pagination
from ..schemas.tour import CreateTourRequest, ListToursRequest, UpdateTourRequest

logger = logging.getLogger(__name__)


def slug_taken(slug: str) -> ConflictError:
    return ConflictError(detail=f"Tour with slug '{slug}' already exists", code="SLUG_TAKEN")


class CapacityLockedError(ConflictError):
    """Exception when max capacity changes after departures were scheduled."""

    def __init__(self, tour_id: str):
        super().__init__(
            detail="max_capacity cannot change once the tour has schedules",
            code="CAPACITY_LOCKED",
            tour_id=tour_id
        )


class TourService:
    """Tours are owned by exactly one operator; slugs are unique platform-wide."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _first(self, stmt: Select) -> Optional[Tour]:
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def create_tour(self, request: CreateTourRequest, operator_id: UUID) -> Tour:
        """
        Add a tour to ``operator_id``'s catalog.

        The slug is checked up front, and the unique index catches the case where
        a concurrent request claims it between the check and the commit.

        Raises:
            ConflictError: SLUG_TAKEN when the slug is already in use
        """
        if await self.get_tour_by_slug(request.slug) is not None:
            logger.warning("Slug already in use", extra={"slug": request.slug})
            raise slug_taken(request.slug)

        tour = Tour(
            operator_id=operator_id,
            currency=request.currency or settings.default_currency,
            is_active=True,
            **request.model_dump(exclude={"currency"}),
        )
        self.db.add(tour)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning("Slug claimed concurrently", extra={"slug": request.slug})
            raise slug_taken(request.slug) from e

        logger.info(
            "Tour created",
            extra={"tour_id": str(tour.id), "operator_id": str(operator_id), "max_capacity": tour.max_capacity}
        )
        return tour

    async def get_tour_by_slug(self, slug: str) -> Optional[Tour]:
        return await self._first(select(Tour).where(Tour.slug == slug))

    async def get_owned_tour_or_raise(self, tour_id: UUID, operator_id: UUID) -> Tour:
        """
        Load a tour that belongs to ``operator_id``.

        Another operator's tour is reported exactly like a missing one so that
        tenants cannot probe each other's catalog.

        Raises:
            NotFoundError: If the tour does not exist or is owned by someone else
        """
        tour = await self._first(select(Tour).where(Tour.id == tour_id, Tour.operator_id == operator_id))
        if tour is None:
            logger.warning("Tour not visible to operator", extra={"tour_id": str(tour_id), "operator_id": str(operator_id)})
            raise NotFoundError(resource_type="tour", resource_id=str(tour_id))
        return tour

    async def list_tours(self, request: ListToursRequest, operator_id: UUID) -> tuple[list[Tour], Pagination]:
        """List the operator's tours, newest first, optionally filtered."""
        conditions = [Tour.operator_id == operator_id]
        if request.is_active is not None:
            conditions.append(Tour.is_active == request.is_active)
        if request.search:
            pattern = f"%{request.search}%"
            conditions.append(or_(Tour.title.ilike(pattern), Tour.description.ilike(pattern)))

        total = (await self.db.execute(select(func.count(Tour.id)).where(*conditions))).scalar_one()

        stmt = (
            select(Tour)
            .where(*conditions)
            .order_by(Tour.created_at.desc(), Tour.id.desc())
            .offset((request.page - 1) * request.limit)
            .limit(request.limit)
        )
        tours = list((await self.db.execute(stmt)).scalars())

        pagination = Pagination(
            page=request.page,
            limit=request.limit,
            total=total,
            total_pages=math.ceil(total / request.limit),
        )
        return tours, pagination

    async def update_tour(self, request: UpdateTourRequest, operator_id: UUID) -> Tour:
        """
        Apply a partial update to one of the operator's tours.

        Every schedule's seat counter was seeded from ``max_capacity`` and the
        ledger caps releases against it, so the value is frozen as soon as the
        tour has a schedule.

        Raises:
            NotFoundError: If the tour does not exist or is owned by someone else
            CapacityLockedError: If max_capacity changes while schedules exist
        """
        tour = await self.get_owned_tour_or_raise(request.tour_id, operator_id)
        changes = request.changes()

        new_capacity = changes.get("max_capacity")
        if new_capacity is not None and new_capacity != tour.max_capacity and await self.has_schedules(tour.id):
            logger.warning(
                "Capacity change rejected - tour already scheduled",
                extra={"tour_id": str(tour.id), "max_capacity": tour.max_capacity, "requested": new_capacity}
            )
            raise CapacityLockedError(str(tour.id))

        for field_name, value in changes.items():
            setattr(tour, field_name, value)
        tour.updated_at = func.now()
        await self.db.commit()

        logger.info("Tour updated", extra={"tour_id": str(tour.id), "fields": sorted(changes)})
        return tour

    async def archive_tour(self, tour_id: UUID, operator_id: UUID) -> Tour:
        """
        Soft-delete a tour by clearing its active flag.

        Schedules and bookings are kept; archiving twice is a no-op.
        """
        tour = await self.get_owned_tour_or_raise(tour_id, operator_id)
        if tour.is_active:
            tour.is_active = False
            tour.updated_at = func.now()
            await self.db.commit()
            logger.info("Tour archived", extra={"tour_id": str(tour_id), "operator_id": str(operator_id)})
        return tour

    async def has_schedules(self, tour_id: UUID) -> bool:
        return (await self.db.execute(select(exists().where(TourSchedule.tour_id == tour_id)))).scalar_one()
