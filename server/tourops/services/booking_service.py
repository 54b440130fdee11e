"""Booking service: the capacity-safe reservation engine and booking lifecycle."""

import asyncio
import logging
import math
import re
import secrets
import string
import time
import uuid
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.config import settings
from ..core.database import is_transient_error
from ..core.exceptions import (
    AuthorizationError,
    ConflictError,
    InternalServerError,
    NotFoundError,
    ProblemDetailsException,
    ServiceUnavailableError,
    ValidationError,
)
from ..core.observability import metrics_collector
from ..models.booking import Booking, BookingGuest, BookingStatus, PaymentStatus, can_transition
from ..models.schedule import TourSchedule
from ..models.tour import Tour
from ..schemas.booking import CreateBookingRequest, GuestInput, ListBookingsRequest
from ..schemas.common import Pagination
from .capacity_ledger import CapacityLedger, ScheduleNotFoundError
from .notification_service import BookingNotice, ContactInfo, NotificationDispatcher, notification_dispatcher

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
REQUIRED_FIELDS = ("schedule_id", "customer_name", "customer_email", "num_guests")
REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


class MissingFieldsError(ValidationError):
    """Exception when required booking fields are absent."""

    def __init__(self, missing: list[str]):
        super().__init__(
            detail=f"Missing required fields: {', '.join(missing)}",
            code="MISSING_FIELDS",
            missing=missing
        )
        self.missing = missing


class InvalidGuestCountError(ValidationError):
    """Exception when the guest count is not a positive integer."""

    def __init__(self, num_guests: int):
        super().__init__(
            detail="num_guests must be at least 1",
            code="INVALID_GUEST_COUNT",
            num_guests=num_guests
        )


class InvalidEmailFormatError(ValidationError):
    """Exception when the customer email is malformed."""

    def __init__(self):
        super().__init__(detail="Invalid email format", code="INVALID_EMAIL_FORMAT")


class UnauthorizedScheduleError(AuthorizationError):
    """Exception when a schedule belongs to another operator."""

    def __init__(self):
        super().__init__(detail="Unauthorized", code="UNAUTHORIZED")


class TransactionConflictError(ServiceUnavailableError):
    """Exception when every booking attempt hit a transient store conflict."""

    def __init__(self, attempts: int):
        super().__init__(
            detail="The booking could not be completed due to concurrent activity, please retry",
            code="TRANSACTION_CONFLICT",
            retry_after=1,
            attempts=attempts
        )


class UnexpectedBookingError(InternalServerError):
    """Exception for any failure outside the booking error taxonomy."""

    def __init__(self, error_id: Optional[str] = None):
        super().__init__(detail="Failed to create booking", code="UNEXPECTED", error_id=error_id)


class InvalidBookingTransitionError(ConflictError):
    """Exception when a booking cannot move to the requested status."""

    def __init__(self, booking_id: str, current: str, target: str):
        super().__init__(
            detail=f"Booking {booking_id} cannot change from {current} to {target}",
            code="INVALID_STATE_TRANSITION",
            current_status=current,
            target_status=target
        )


def calculate_total_price(unit_price: Decimal, num_guests: int, quantum: Decimal | None = None) -> Decimal:
    """Multiply a per-guest price by the guest count in exact decimal arithmetic."""
    total = Decimal(unit_price) * num_guests
    return total.quantize(quantum or settings.price_quantum, rounding=ROUND_HALF_UP)


def generate_booking_reference(prefix: str | None = None, suffix_length: int = 9) -> str:
    """
    Generate a reference like ``BKG-1718031234567-X7K2QP9AB``.

    Millisecond timestamp plus a random suffix makes collisions overwhelmingly
    unlikely; the UNIQUE constraint on the column catches the rest.
    """
    millis = int(time.time() * 1000)
    suffix = ''.join(secrets.choice(REFERENCE_ALPHABET) for _ in range(suffix_length))
    return f"{prefix or settings.booking_reference_prefix}-{millis}-{suffix}"


def _is_reference_collision(exc: BaseException) -> bool:
    return isinstance(exc, IntegrityError) and "booking_reference" in str(exc.orig)


class BookingService:
    """Service for booking-related operations."""

    def __init__(self, db: AsyncSession, dispatcher: Optional[NotificationDispatcher] = None):
        self.db = db
        self.ledger = CapacityLedger(db)
        self.dispatcher = dispatcher or notification_dispatcher
        self.max_attempts = settings.booking_max_attempts
        self.retry_backoff = settings.booking_retry_backoff_seconds

    async def create_booking(self, request: CreateBookingRequest, operator_id: UUID) -> Booking:
        """
        Reserve seats and persist a booking with its guests as one unit of work.

        Request validation happens before the store is touched. The reservation
        itself (schedule lookup, tenant check, seat decrement, pricing, booking
        and guest inserts) runs in a single transaction that is retried on
        transient conflicts. After commit the notification is dispatched
        without being awaited.

        Args:
            request: Booking creation request
            operator_id: Operator the caller acts for

        Returns:
            The committed booking with schedule, tour and guests loaded

        Raises:
            MissingFieldsError: If required fields are absent
            InvalidGuestCountError: If num_guests is below 1
            InvalidEmailFormatError: If the customer email is malformed
            ScheduleNotFoundError: If the schedule does not exist
            UnauthorizedScheduleError: If the schedule belongs to another operator
            InsufficientCapacityError: If fewer seats remain than requested
            TransactionConflictError: If all attempts hit transient conflicts
            UnexpectedBookingError: For anything else
        """
        try:
            schedule_id = self._validate_request(request)
            booking = await self._create_with_retries(request, schedule_id, operator_id)

        except ProblemDetailsException as e:
            metrics_collector.record_booking_rejected(e.code or str(e.status_code))
            raise

        except Exception as e:
            error_id = str(uuid.uuid4())
            logger.error(
                "Unexpected error in booking creation",
                extra={
                    "error_id": error_id,
                    "schedule_id": request.schedule_id,
                    "operator_id": str(operator_id),
                    "num_guests": request.num_guests,
                    "error": str(e)
                },
                exc_info=True
            )
            metrics_collector.record_booking_rejected("UNEXPECTED")
            raise UnexpectedBookingError(error_id=error_id) from e

        # Committed from here on: nothing below may report the booking as failed
        booking = await self._reload_committed(booking)
        metrics_collector.record_booking_created(booking.num_guests)

        logger.info(
            "Booking created successfully",
            extra={
                "booking_id": str(booking.id),
                "booking_reference": booking.booking_reference,
                "schedule_id": str(booking.schedule_id),
                "operator_id": str(operator_id),
                "num_guests": booking.num_guests,
                "total_price": str(booking.total_price)
            }
        )

        self._dispatch_notification(booking)
        return booking

    def _validate_request(self, request: CreateBookingRequest) -> UUID:
        """Fail fast on client-correctable input; returns the parsed schedule ID."""
        missing = []
        for field_name in REQUIRED_FIELDS:
            value = getattr(request, field_name)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(field_name)
        if missing:
            raise MissingFieldsError(missing)

        if request.num_guests < 1:
            raise InvalidGuestCountError(request.num_guests)

        if not EMAIL_PATTERN.match(request.customer_email.strip()):
            raise InvalidEmailFormatError()

        try:
            return UUID(request.schedule_id.strip())
        except ValueError:
            # A malformed ID cannot name an existing schedule
            raise ScheduleNotFoundError(request.schedule_id)

    async def _create_with_retries(
        self,
        request: CreateBookingRequest,
        schedule_id: UUID,
        operator_id: UUID,
    ) -> Booking:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._reserve_and_persist(request, schedule_id, operator_id)
            except DBAPIError as e:
                if not (is_transient_error(e) or _is_reference_collision(e)):
                    raise

                if attempt == self.max_attempts:
                    logger.error(
                        "Booking transaction conflict - retries exhausted",
                        extra={
                            "schedule_id": str(schedule_id),
                            "attempts": attempt,
                            "error": str(e)
                        }
                    )
                    raise TransactionConflictError(attempts=attempt) from e

                metrics_collector.record_transaction_retry()
                logger.warning(
                    "Booking transaction conflict - retrying",
                    extra={
                        "schedule_id": str(schedule_id),
                        "attempt": attempt,
                        "max_attempts": self.max_attempts,
                        "error": str(e)
                    }
                )
                await asyncio.sleep(self.retry_backoff * attempt)

        # Unreachable: the loop either returns or raises
        raise TransactionConflictError(attempts=self.max_attempts)

    async def _reserve_and_persist(
        self,
        request: CreateBookingRequest,
        schedule_id: UUID,
        operator_id: UUID,
    ) -> Booking:
        """Run one booking attempt in its own transaction; rolls back on any failure."""
        try:
            schedule = await self._load_schedule(schedule_id)
            if schedule is None:
                raise ScheduleNotFoundError(str(schedule_id))

            if schedule.tour.operator_id != operator_id:
                logger.warning(
                    "Booking rejected - schedule belongs to another operator",
                    extra={
                        "schedule_id": str(schedule_id),
                        "operator_id": str(operator_id)
                    }
                )
                raise UnauthorizedScheduleError()

            outcome = await self.ledger.try_reserve(schedule_id, request.num_guests)

            unit_price = (
                schedule.price_override
                if schedule.price_override is not None
                else schedule.tour.base_price
            )
            total_price = calculate_total_price(unit_price, request.num_guests)

            booking = Booking(
                id=uuid.uuid4(),
                schedule=schedule,
                customer_name=request.customer_name.strip(),
                customer_email=request.customer_email.strip(),
                customer_phone=request.customer_phone or "",
                num_guests=request.num_guests,
                total_price=total_price,
                booking_reference=generate_booking_reference(),
                booking_notes=request.booking_notes,
                booking_status=BookingStatus.PENDING.value,
                payment_status=PaymentStatus.UNPAID.value,
                guests=self._build_guests(request.guests),
            )
            self.db.add(booking)

            await self.db.flush()
            await self.db.commit()

        except Exception:
            await self.db.rollback()
            raise

        logger.debug(
            "Booking transaction committed",
            extra={
                "booking_id": str(booking.id),
                "schedule_id": str(schedule_id),
                "remaining_spots": outcome.remaining_spots
            }
        )

        return booking

    @staticmethod
    def _build_guests(guests: Optional[list[GuestInput]]) -> list[BookingGuest]:
        return [
            BookingGuest(
                position=position,
                guest_name=guest.name,
                guest_age=guest.age,
                guest_nationality=guest.nationality,
            )
            for position, guest in enumerate(guests or [])
        ]

    async def _load_schedule(self, schedule_id: UUID) -> Optional[TourSchedule]:
        """Load a schedule with its tour and the tour's operator."""
        stmt = (
            select(TourSchedule)
            .options(selectinload(TourSchedule.tour).selectinload(Tour.operator))
            .where(TourSchedule.id == schedule_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _load_booking(self, booking_id: UUID) -> Booking:
        """Load a booking with everything needed to render it."""
        stmt = (
            select(Booking)
            .options(
                selectinload(Booking.guests),
                selectinload(Booking.schedule).selectinload(TourSchedule.tour).selectinload(Tour.operator),
            )
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def _reload_committed(self, booking: Booking) -> Booking:
        """
        Re-read a committed booking, falling back to the in-memory copy.

        The copy already holds its guests, schedule, tour and server timestamps,
        so it can be rendered as-is when the re-read fails.
        """
        try:
            return await self._load_booking(booking.id)
        except Exception as e:
            logger.warning(
                "Could not re-read committed booking - returning in-memory copy",
                extra={
                    "booking_id": str(booking.id),
                    "booking_reference": booking.booking_reference,
                    "error": str(e)
                },
                exc_info=True
            )
            return booking

    def _dispatch_notification(self, booking: Booking) -> None:
        tour = booking.schedule.tour
        notice = BookingNotice(
            booking_id=str(booking.id),
            booking_reference=booking.booking_reference,
            tour_title=tour.title,
            departure_datetime=booking.schedule.departure_datetime,
            num_guests=booking.num_guests,
            total_price=booking.total_price,
            currency=tour.currency,
            meeting_point=tour.meeting_point,
            meeting_point_instructions=tour.meeting_point_instructions,
        )
        customer = ContactInfo(
            name=booking.customer_name,
            email=booking.customer_email,
            phone=booking.customer_phone or None,
        )
        operator = ContactInfo(
            name=tour.operator.company_name,
            email=tour.operator.contact_email,
        )

        try:
            self.dispatcher.dispatch_booking_created(notice, customer, operator)
        except Exception as e:
            # The booking is already committed
            logger.error(
                "Failed to dispatch booking notification",
                extra={
                    "booking_id": str(booking.id),
                    "booking_reference": booking.booking_reference,
                    "error": str(e)
                },
                exc_info=True
            )

    async def get_booking(self, booking_id: UUID, operator_id: UUID) -> Booking:
        """
        Get one of the operator's bookings.

        Raises:
            NotFoundError: If the booking does not exist or belongs to another operator
        """
        stmt = (
            select(Booking)
            .join(Booking.schedule)
            .join(TourSchedule.tour)
            .options(
                selectinload(Booking.guests),
                selectinload(Booking.schedule).selectinload(TourSchedule.tour),
            )
            .where(Booking.id == booking_id, Tour.operator_id == operator_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        booking = result.scalar_one_or_none()

        if not booking:
            logger.warning(
                "Booking not found",
                extra={"booking_id": str(booking_id), "operator_id": str(operator_id)}
            )
            raise NotFoundError(
                resource_type="booking",
                resource_id=str(booking_id)
            )
        return booking

    async def list_bookings(
        self,
        request: ListBookingsRequest,
        operator_id: UUID,
    ) -> tuple[list[Booking], Pagination]:
        """List the operator's bookings, newest first, with optional status filters."""
        conditions = [Tour.operator_id == operator_id]
        if request.booking_status:
            conditions.append(Booking.booking_status == request.booking_status.value)
        if request.payment_status:
            conditions.append(Booking.payment_status == request.payment_status.value)

        count_stmt = (
            select(func.count(Booking.id))
            .join(Booking.schedule)
            .join(TourSchedule.tour)
            .where(*conditions)
        )
        total = (await self.db.execute(count_stmt)).scalar_one()

        stmt = (
            select(Booking)
            .join(Booking.schedule)
            .join(TourSchedule.tour)
            .options(
                selectinload(Booking.guests),
                selectinload(Booking.schedule).selectinload(TourSchedule.tour),
            )
            .where(*conditions)
            .order_by(Booking.created_at.desc(), Booking.id.desc())
            .offset((request.page - 1) * request.limit)
            .limit(request.limit)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        bookings = list(result.scalars())

        pagination = Pagination(
            page=request.page,
            limit=request.limit,
            total=total,
            total_pages=math.ceil(total / request.limit),
        )

        logger.info(
            "Booking list retrieved",
            extra={
                "operator_id": str(operator_id),
                "returned": len(bookings),
                "total": total,
                "page": request.page
            }
        )

        return bookings, pagination

    async def cancel_booking(self, booking_id: UUID, operator_id: UUID) -> Booking:
        """
        Cancel a booking and give its seats back to the schedule.

        The status change and the seat release commit together. Cancelling an
        already cancelled booking returns it unchanged.

        Raises:
            NotFoundError: If the booking does not exist or belongs to another operator
            InvalidBookingTransitionError: If the booking can no longer be cancelled
            ConflictError: If the booking changed concurrently
        """
        target = BookingStatus.CANCELLED.value

        try:
            booking = await self.get_booking(booking_id, operator_id)
            current = booking.booking_status

            if current == target:
                logger.info(
                    "Booking already cancelled - returning existing booking",
                    extra={"booking_id": str(booking_id)}
                )
                return booking

            if not can_transition(current, target):
                raise InvalidBookingTransitionError(str(booking_id), current, target)

            # Conditional on the observed status so two cancels cannot both release seats
            result = await self.db.execute(
                update(Booking)
                .where(Booking.id == booking_id, Booking.booking_status == current)
                .values(booking_status=target, updated_at=func.now())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise ConflictError(
                    detail=f"Booking {booking_id} was modified concurrently, please retry",
                    code="CONCURRENT_MODIFICATION",
                    retryable=True
                )

            outcome = await self.ledger.release(booking.schedule_id, booking.num_guests)
            await self.db.commit()

        except Exception:
            await self.db.rollback()
            raise

        metrics_collector.record_booking_cancelled()

        logger.info(
            "Booking cancelled successfully",
            extra={
                "booking_id": str(booking_id),
                "booking_reference": booking.booking_reference,
                "seats_released": booking.num_guests,
                "remaining_spots": outcome.remaining_spots
            }
        )

        return await self.get_booking(booking_id, operator_id)
