"""Departure (schedule) endpoints."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import DatabaseSession, OperatorContext, RequiredOperator
from ..core.exceptions import unexpected_errors_as_problem
from ..schemas.common import problem_responses
from ..schemas.schedule import (
    CreateScheduleRequest,
    ListSchedulesRequest,
    ListSchedulesResponse,
    Schedule,
)
from ..services.schedule_service import ScheduleService

router = APIRouter(prefix="/v1/schedule", tags=["schedule"])


@router.post("/create", response_model=Schedule, status_code=201, responses=problem_responses(404))
async def create_schedule(
    request: CreateScheduleRequest,
    operator: OperatorContext = RequiredOperator,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """
    Create a departure for one of the operator's tours.

    Every seat of the tour starts out available.
    """
    with unexpected_errors_as_problem("schedule creation", tour_id=str(request.tour_id)):
        schedule = await ScheduleService(db).create_schedule(request, operator.operator_id)

    return JSONResponse(status_code=201, content=Schedule.model_validate(schedule).model_dump(mode="json"))


@router.post("/list", response_model=ListSchedulesResponse, responses=problem_responses(404))
async def list_schedules(
    request: ListSchedulesRequest,
    operator: OperatorContext = RequiredOperator,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """Seat counts are a snapshot and may change before a booking is attempted."""
    with unexpected_errors_as_problem("schedule listing", tour_id=str(request.tour_id)):
        schedules = await ScheduleService(db).list_schedules(request.tour_id, operator.operator_id)

    listing = ListSchedulesResponse(items=[Schedule.model_validate(s) for s in schedules])
    return JSONResponse(status_code=200, content=listing.model_dump(mode="json"))
