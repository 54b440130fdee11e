"""Tour catalog endpoints."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import DatabaseSession, OperatorContext, RequiredOperator
from ..core.exceptions import unexpected_errors_as_problem
from ..schemas.common import problem_responses
from ..schemas.tour import (
    ArchiveTourRequest,
    CreateTourRequest,
    GetTourRequest,
    ListToursRequest,
    ListToursResponse,
    Tour,
    UpdateTourRequest,
)
from ..services.tour_service import TourService

router = APIRouter(prefix="/v1/tour", tags=["tour"])


def tour_json(tour, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=Tour.model_validate(tour).model_dump(mode="json"))


@router.post("/create", response_model=Tour, status_code=201, responses=problem_responses(409))
async def create_tour(
    request: CreateTourRequest,
    operator: OperatorContext = RequiredOperator,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """
    Create a new tour for the calling operator.

    Slugs are globally unique; reusing one is a conflict.
    """
    with unexpected_errors_as_problem("tour creation", slug=request.slug, operator_id=str(operator.operator_id)):
        tour = await TourService(db).create_tour(request, operator.operator_id)

    return tour_json(tour, status_code=201)


@router.post("/get", response_model=Tour, responses=problem_responses(404))
async def get_tour(
    request: GetTourRequest,
    operator: OperatorContext = RequiredOperator,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """Tours of other operators are reported as not found."""
    with unexpected_errors_as_problem("tour retrieval", tour_id=str(request.tour_id)):
        tour = await TourService(db).get_owned_tour_or_raise(request.tour_id, operator.operator_id)
    return tour_json(tour)


@router.post("/list", response_model=ListToursResponse)
async def list_tours(
    request: ListToursRequest,
    operator: OperatorContext = RequiredOperator,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """List the operator's tours, newest first."""
    with unexpected_errors_as_problem("tour listing", operator_id=str(operator.operator_id)):
        tours, pagination = await TourService(db).list_tours(request, operator.operator_id)

    page = ListToursResponse(items=[Tour.model_validate(t) for t in tours], pagination=pagination)
    return JSONResponse(status_code=200, content=page.model_dump(mode="json"))


@router.post("/update", response_model=Tour, responses=problem_responses(404, 409))
async def update_tour(
    request: UpdateTourRequest,
    operator: OperatorContext = RequiredOperator,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """
    Change some fields of a tour.

    ``max_capacity`` is fixed once the tour has a schedule; changing it then
    is a CAPACITY_LOCKED conflict.
    """
    with unexpected_errors_as_problem("tour update", tour_id=str(request.tour_id)):
        tour = await TourService(db).update_tour(request, operator.operator_id)
    return tour_json(tour)


@router.post("/archive", response_model=Tour, responses=problem_responses(404))
async def archive_tour(
    request: ArchiveTourRequest,
    operator: OperatorContext = RequiredOperator,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """Deactivate a tour. Existing schedules and bookings are untouched."""
    with unexpected_errors_as_problem("tour archive", tour_id=str(request.tour_id)):
        tour = await TourService(db).archive_tour(request.tour_id, operator.operator_id)
    return tour_json(tour)
