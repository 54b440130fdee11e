"""Booking endpoints: create, read, list and cancel."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import DatabaseSession, OperatorContext, RequiredOperator
from ..core.exceptions import unexpected_errors_as_problem
from ..schemas.booking import (
    Booking,
    CancelBookingRequest,
    CreateBookingRequest,
    GetBookingRequest,
    ListBookingsRequest,
    ListBookingsResponse,
)
from ..schemas.common import problem_responses
from ..services.booking_service import BookingService

router = APIRouter(prefix="/v1/booking", tags=["booking"])


def booking_json(booking, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=Booking.model_validate(booking).model_dump(mode="json"))


@router.post("/create", response_model=Booking, status_code=201, responses=problem_responses(400, 403, 404, 409, 503))
async def create_booking(
    request: CreateBookingRequest,
    operator: OperatorContext = RequiredOperator,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """
    Book seats on a schedule.

    Seats are taken atomically with the booking insert, so a schedule can
    never be oversold. Confirmation emails are sent after the response.
    """
    # BookingService already maps every failure onto a problem type
    booking = await BookingService(db).create_booking(request, operator.operator_id)
    return booking_json(booking, status_code=201)


@router.post("/get", response_model=Booking, responses=problem_responses(404))
async def get_booking(
    request: GetBookingRequest,
    operator: OperatorContext = RequiredOperator,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """Bookings of other operators are reported as not found."""
    with unexpected_errors_as_problem("booking retrieval", booking_id=str(request.booking_id)):
        booking = await BookingService(db).get_booking(request.booking_id, operator.operator_id)
    return booking_json(booking)


@router.post("/list", response_model=ListBookingsResponse)
async def list_bookings(
    request: ListBookingsRequest,
    operator: OperatorContext = RequiredOperator,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """List the operator's bookings, newest first."""
    with unexpected_errors_as_problem("booking listing", operator_id=str(operator.operator_id)):
        bookings, pagination = await BookingService(db).list_bookings(request, operator.operator_id)

    page = ListBookingsResponse(items=[Booking.model_validate(b) for b in bookings], pagination=pagination)
    return JSONResponse(status_code=200, content=page.model_dump(mode="json"))


@router.post("/cancel", response_model=Booking, responses=problem_responses(404, 409))
async def cancel_booking(
    request: CancelBookingRequest,
    operator: OperatorContext = RequiredOperator,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """
    Cancel a booking and return its seats to the schedule.

    Cancelling an already cancelled booking returns it unchanged.
    """
    with unexpected_errors_as_problem("booking cancellation", booking_id=str(request.booking_id)):
        booking = await BookingService(db).cancel_booking(request.booking_id, operator.operator_id)

    return booking_json(booking)
