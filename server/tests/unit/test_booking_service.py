"""Unit tests for the booking reservation engine."""

import re
import sqlite3
from decimal import Decimal
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError

from tourops.core.exceptions import NotFoundError
from tourops.core.observability import REGISTRY
from tourops.models.booking import Booking, BookingGuest, BookingStatus
from tourops.models.schedule import ScheduleStatus
from tourops.schemas.booking import Booking as BookingSchema
from tourops.schemas.booking import CreateBookingRequest, ListBookingsRequest
from tourops.services import booking_service as booking_module
from tourops.services.booking_service import (
    BookingService,
    InvalidBookingTransitionError,
    InvalidEmailFormatError,
    InvalidGuestCountError,
    MissingFieldsError,
    TransactionConflictError,
    UnauthorizedScheduleError,
    UnexpectedBookingError,
    calculate_total_price,
    generate_booking_reference,
)
from tourops.services.capacity_ledger import CapacityLedger, InsufficientCapacityError, ScheduleNotFoundError
from tourops.services.notification_service import NotificationDispatcher
from tourops.services.schedule_service import ScheduleService

from factories import RecordingEmailSender, booking_request, create_tour_with_schedule, guests


async def _available(session, schedule_id) -> int:
    return await CapacityLedger(session).available_spots(schedule_id)


async def _booking_count(session) -> int:
    return (await session.execute(select(func.count(Booking.id)))).scalar_one()


def _metric(name: str, **labels) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


@pytest.mark.asyncio
async def test_create_booking_reserves_seats(test_session, operator, tour_and_schedule, dispatcher):
    """Test a successful booking decrements the schedule and prices the party."""
    _, schedule = tour_and_schedule
    service = BookingService(test_session, dispatcher=dispatcher)

    booking = await service.create_booking(
        booking_request(schedule.id, num_guests=3, guests=guests("Layla", "Omar", "Sara")),
        operator.id,
    )

    assert booking.num_guests == 3
    assert booking.total_price == Decimal("300.00")
    assert booking.booking_status == BookingStatus.PENDING.value
    assert booking.payment_status == "unpaid"
    assert booking.schedule.id == schedule.id
    assert [guest.guest_name for guest in booking.guests] == ["Layla", "Omar", "Sara"]
    assert await _available(test_session, schedule.id) == 7


@pytest.mark.asyncio
async def test_create_booking_uses_price_override(test_session, operator):
    """Test a schedule's price override replaces the tour base price."""
    _, schedule = await create_tour_with_schedule(
        test_session, operator.id, base_price=Decimal("100.00"), price_override=Decimal("125.50")
    )
    service = BookingService(test_session, dispatcher=NotificationDispatcher(enabled=False))

    booking = await service.create_booking(booking_request(schedule.id, num_guests=2), operator.id)

    assert booking.total_price == Decimal("251.00")


@pytest.mark.asyncio
async def test_create_booking_prices_exactly(test_session, operator):
    """Test totals carry no binary floating-point error."""
    _, schedule = await create_tour_with_schedule(test_session, operator.id, base_price=Decimal("19.99"))
    service = BookingService(test_session, dispatcher=NotificationDispatcher(enabled=False))

    booking = await service.create_booking(booking_request(schedule.id, num_guests=3), operator.id)

    assert booking.total_price == Decimal("59.97")


@pytest.mark.asyncio
async def test_create_booking_insufficient_capacity(test_session, operator, tour_and_schedule):
    """Test requesting more seats than remain changes nothing."""
    _, schedule = tour_and_schedule
    schedule_id = schedule.id
    service = BookingService(test_session, dispatcher=NotificationDispatcher(enabled=False))
    await service.create_booking(booking_request(schedule_id, num_guests=8), operator.id)

    with pytest.raises(InsufficientCapacityError) as exc_info:
        await service.create_booking(booking_request(schedule_id, num_guests=3), operator.id)

    assert exc_info.value.message == "Only 2 spots available"
    assert exc_info.value.problem_details["available_spots"] == 2
    assert await _available(test_session, schedule_id) == 2
    assert await _booking_count(test_session) == 1


@pytest.mark.asyncio
async def test_create_booking_last_seats_marks_schedule_full(test_session, operator, tour_and_schedule):
    """Test booking the final seats flips the schedule to full."""
    _, schedule = tour_and_schedule
    service = BookingService(test_session, dispatcher=NotificationDispatcher(enabled=False))

    await service.create_booking(booking_request(schedule.id, num_guests=10), operator.id)

    refreshed = await ScheduleService(test_session).get_schedule_by_id(schedule.id)
    assert refreshed.available_spots == 0
    assert refreshed.status == ScheduleStatus.FULL.value


@pytest.mark.asyncio
async def test_create_booking_foreign_schedule(test_session, other_operator, tour_and_schedule):
    """Test an operator cannot book another operator's schedule."""
    _, schedule = tour_and_schedule
    schedule_id = schedule.id
    service = BookingService(test_session, dispatcher=NotificationDispatcher(enabled=False))

    with pytest.raises(UnauthorizedScheduleError) as exc_info:
        await service.create_booking(booking_request(schedule_id, num_guests=1), other_operator.id)

    assert exc_info.value.status_code == 403
    assert exc_info.value.code == "UNAUTHORIZED"
    assert await _available(test_session, schedule_id) == 10
    assert await _booking_count(test_session) == 0


@pytest.mark.asyncio
async def test_create_booking_unknown_schedule(test_session, operator):
    """Test booking a schedule that does not exist."""
    service = BookingService(test_session, dispatcher=NotificationDispatcher(enabled=False))

    with pytest.raises(ScheduleNotFoundError):
        await service.create_booking(booking_request(uuid4()), operator.id)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "request_fields, expected_error",
    [
        ({"customer_email": "not-an-email"}, InvalidEmailFormatError),
        ({"customer_email": "a@b"}, InvalidEmailFormatError),
        ({"customer_email": None}, MissingFieldsError),
        ({"customer_name": "   "}, MissingFieldsError),
        ({"num_guests": None}, MissingFieldsError),
        ({"num_guests": 0}, InvalidGuestCountError),
        ({"schedule_id": "abc"}, ScheduleNotFoundError),
    ],
)
async def test_create_booking_rejects_bad_input_before_store_access(request_fields, expected_error):
    """Test request validation fails fast without touching the store."""
    db = AsyncMock()
    service = BookingService(db, dispatcher=NotificationDispatcher(enabled=False))
    fields = {
        "schedule_id": str(uuid4()),
        "customer_name": "Layla Haddad",
        "customer_email": "layla@example.com",
        "num_guests": 2,
    }
    fields.update(request_fields)

    with pytest.raises(expected_error):
        await service.create_booking(CreateBookingRequest(**fields), uuid4())

    db.execute.assert_not_called()
    db.commit.assert_not_called()


@pytest.mark.asyncio
async def test_missing_fields_lists_every_absent_field():
    """Test all missing fields are reported together."""
    service = BookingService(AsyncMock(), dispatcher=NotificationDispatcher(enabled=False))

    with pytest.raises(MissingFieldsError) as exc_info:
        await service.create_booking(CreateBookingRequest(customer_name="Layla"), uuid4())

    assert exc_info.value.missing == ["schedule_id", "customer_email", "num_guests"]
    assert exc_info.value.code == "MISSING_FIELDS"


@pytest.mark.asyncio
async def test_failure_after_reservation_rolls_back(test_session, operator, tour_and_schedule, monkeypatch):
    """Test a failure after the seat decrement leaves no partial state."""
    _, schedule = tour_and_schedule
    schedule_id = schedule.id

    def broken_reference(*args, **kwargs):
        raise RuntimeError("reference generator exploded")

    monkeypatch.setattr(booking_module, "generate_booking_reference", broken_reference)
    service = BookingService(test_session, dispatcher=NotificationDispatcher(enabled=False))

    with pytest.raises(UnexpectedBookingError) as exc_info:
        await service.create_booking(booking_request(schedule_id, num_guests=4), operator.id)

    assert exc_info.value.status_code == 500
    assert exc_info.value.code == "UNEXPECTED"
    assert "exploded" not in exc_info.value.message
    assert await _available(test_session, schedule_id) == 10
    assert await _booking_count(test_session) == 0


@pytest.mark.asyncio
async def test_guest_insert_failure_rolls_back(test_session, operator, tour_and_schedule):
    """Test a guest row violating a constraint undoes the seat decrement."""
    _, schedule = tour_and_schedule
    schedule_id = schedule.id
    service = BookingService(test_session, dispatcher=NotificationDispatcher(enabled=False))
    request = booking_request(schedule_id, num_guests=2, guests=guests("Layla"))
    # Bypass schema validation to hit the table's CHECK constraint
    request.guests[0].age = -1

    with pytest.raises(UnexpectedBookingError):
        await service.create_booking(request, operator.id)

    assert await _available(test_session, schedule_id) == 10
    assert await _booking_count(test_session) == 0
    assert (await test_session.execute(select(func.count(BookingGuest.id)))).scalar_one() == 0


@pytest.mark.asyncio
async def test_reference_collision_is_retried(test_session, operator, tour_and_schedule, monkeypatch):
    """Test a duplicate booking reference triggers a fresh attempt."""
    _, schedule = tour_and_schedule
    schedule_id = schedule.id
    service = BookingService(test_session, dispatcher=NotificationDispatcher(enabled=False))
    service.retry_backoff = 0

    references = iter(["BKG-1-DUPLICATE", "BKG-1-DUPLICATE", "BKG-2-UNIQUE"])
    monkeypatch.setattr(booking_module, "generate_booking_reference", lambda *a, **kw: next(references))

    operator_id = operator.id

    first = await service.create_booking(booking_request(schedule_id, num_guests=1), operator_id)
    first_reference = first.booking_reference
    # The collision rolls back the session, expiring ``first``
    second = await service.create_booking(booking_request(schedule_id, num_guests=2), operator_id)

    assert first_reference == "BKG-1-DUPLICATE"
    assert second.booking_reference == "BKG-2-UNIQUE"
    assert await _available(test_session, schedule_id) == 7
    assert await _booking_count(test_session) == 2


@pytest.mark.asyncio
async def test_transient_conflict_exhausts_retries(test_session, operator, tour_and_schedule, monkeypatch):
    """Test persistent lock contention surfaces as a retryable conflict."""
    _, schedule = tour_and_schedule
    schedule_id = schedule.id
    service = BookingService(test_session, dispatcher=NotificationDispatcher(enabled=False))
    service.retry_backoff = 0
    calls = []

    async def locked(schedule_id, requested_guests):
        calls.append(schedule_id)
        raise OperationalError("UPDATE tour_schedules", {}, sqlite3.OperationalError("database is locked"))

    monkeypatch.setattr(service.ledger, "try_reserve", locked)
    retries_before = _metric("booking_transaction_retries_total")

    with pytest.raises(TransactionConflictError) as exc_info:
        await service.create_booking(booking_request(schedule_id, num_guests=1), operator.id)

    assert exc_info.value.status_code == 503
    assert exc_info.value.code == "TRANSACTION_CONFLICT"
    assert exc_info.value.problem_details["retryable"] is True
    assert len(calls) == service.max_attempts
    assert _metric("booking_transaction_retries_total") - retries_before == service.max_attempts - 1
    assert await _available(test_session, schedule_id) == 10


@pytest.mark.asyncio
async def test_transient_conflict_then_success(test_session, operator, tour_and_schedule, monkeypatch):
    """Test one transient failure is absorbed by the retry loop."""
    _, schedule = tour_and_schedule
    schedule_id = schedule.id
    service = BookingService(test_session, dispatcher=NotificationDispatcher(enabled=False))
    service.retry_backoff = 0
    real_try_reserve = service.ledger.try_reserve
    attempts = []

    async def flaky(schedule_id, requested_guests):
        attempts.append(requested_guests)
        if len(attempts) == 1:
            raise OperationalError("UPDATE tour_schedules", {}, sqlite3.OperationalError("database is locked"))
        return await real_try_reserve(schedule_id, requested_guests)

    monkeypatch.setattr(service.ledger, "try_reserve", flaky)

    booking = await service.create_booking(booking_request(schedule_id, num_guests=2), operator.id)

    assert booking.num_guests == 2
    assert len(attempts) == 2
    assert await _available(test_session, schedule_id) == 8


@pytest.mark.asyncio
async def test_reload_failure_after_commit_still_returns_booking(
    test_session, operator, tour_and_schedule, monkeypatch
):
    """Test a committed booking is never reported as failed."""
    _, schedule = tour_and_schedule
    schedule_id = schedule.id
    service = BookingService(test_session, dispatcher=NotificationDispatcher(enabled=False))

    async def broken_reload(booking_id):
        raise RuntimeError("connection dropped after commit")

    monkeypatch.setattr(service, "_load_booking", broken_reload)

    booking = await service.create_booking(
        booking_request(schedule_id, num_guests=3, guests=guests("Layla", "Omar")), operator.id
    )

    body = BookingSchema.model_validate(booking).model_dump(mode="json")
    assert body["booking_reference"] == booking.booking_reference
    assert body["schedule"]["id"] == str(schedule_id)
    assert body["schedule"]["tour"]["title"] == "Sunset Hike"
    assert [guest["guest_name"] for guest in body["guests"]] == ["Layla", "Omar"]
    assert body["created_at"] is not None
    assert await _available(test_session, schedule_id) == 7
    assert await _booking_count(test_session) == 1


@pytest.mark.asyncio
async def test_notification_dispatched_after_commit(test_session, operator, tour_and_schedule, dispatcher, email_sender):
    """Test customer and operator are both notified about a new booking."""
    _, schedule = tour_and_schedule
    service = BookingService(test_session, dispatcher=dispatcher)

    booking = await service.create_booking(booking_request(schedule.id, num_guests=2), operator.id)
    await dispatcher.drain()

    recipients = sorted(message.recipient for message in email_sender.messages)
    assert recipients == sorted(["layla@example.com", operator.contact_email])
    assert all(booking.booking_reference in message.subject for message in email_sender.messages)


@pytest.mark.asyncio
async def test_notification_failure_does_not_affect_booking(test_session, operator, tour_and_schedule):
    """Test a failing email sender never changes the booking outcome."""
    _, schedule = tour_and_schedule
    dispatcher = NotificationDispatcher(sender=RecordingEmailSender(fail=True), enabled=True)
    service = BookingService(test_session, dispatcher=dispatcher)
    failures_before = _metric("notification_failures_total")

    booking = await service.create_booking(booking_request(schedule.id, num_guests=1), operator.id)
    await dispatcher.drain()

    assert booking.id is not None
    assert await _booking_count(test_session) == 1
    assert _metric("notification_failures_total") - failures_before == 1


def test_generate_booking_reference_format():
    """Test references follow PREFIX-millis-SUFFIX."""
    reference = generate_booking_reference()

    assert re.fullmatch(r"BKG-\d{13}-[A-Z0-9]{9}", reference)
    assert generate_booking_reference(prefix="TST").startswith("TST-")


@pytest.mark.parametrize(
    "unit_price, num_guests, expected",
    [
        ("19.99", 3, "59.97"),
        ("0.10", 3, "0.30"),
        ("350.00", 1, "350.00"),
        ("99.95", 7, "699.65"),
    ],
)
def test_calculate_total_price(unit_price, num_guests, expected):
    """Test price totals use exact decimal arithmetic."""
    assert calculate_total_price(Decimal(unit_price), num_guests) == Decimal(expected)


@pytest.mark.asyncio
async def test_get_booking_is_scoped_to_operator(test_session, operator, other_operator, tour_and_schedule):
    """Test another operator's booking looks like a missing one."""
    _, schedule = tour_and_schedule
    service = BookingService(test_session, dispatcher=NotificationDispatcher(enabled=False))
    booking = await service.create_booking(booking_request(schedule.id, num_guests=1), operator.id)

    found = await service.get_booking(booking.id, operator.id)
    assert found.booking_reference == booking.booking_reference

    with pytest.raises(NotFoundError):
        await service.get_booking(booking.id, other_operator.id)


@pytest.mark.asyncio
async def test_list_bookings_paginates_and_filters(test_session, operator, other_operator, tour_and_schedule):
    """Test listing returns only the operator's bookings with pagination."""
    _, schedule = tour_and_schedule
    service = BookingService(test_session, dispatcher=NotificationDispatcher(enabled=False))
    created = [
        await service.create_booking(booking_request(schedule.id, num_guests=1), operator.id)
        for _ in range(3)
    ]
    await service.cancel_booking(created[0].id, operator.id)

    first_page, pagination = await service.list_bookings(ListBookingsRequest(page=1, limit=2), operator.id)
    second_page, _ = await service.list_bookings(ListBookingsRequest(page=2, limit=2), operator.id)
    assert pagination.total == 3
    assert pagination.total_pages == 2
    assert len(first_page) == 2
    assert len(second_page) == 1
    assert {b.id for b in first_page + second_page} == {b.id for b in created}

    cancelled, cancelled_pagination = await service.list_bookings(
        ListBookingsRequest(booking_status=BookingStatus.CANCELLED), operator.id
    )
    assert [b.id for b in cancelled] == [created[0].id]
    assert cancelled_pagination.total == 1

    foreign, foreign_pagination = await service.list_bookings(ListBookingsRequest(), other_operator.id)
    assert foreign == []
    assert foreign_pagination.total == 0
    assert foreign_pagination.total_pages == 0


@pytest.mark.asyncio
async def test_cancel_booking_releases_seats(test_session, operator, tour_and_schedule):
    """Test cancelling returns exactly the booked seats and is idempotent."""
    _, schedule = tour_and_schedule
    service = BookingService(test_session, dispatcher=NotificationDispatcher(enabled=False))
    booking = await service.create_booking(booking_request(schedule.id, num_guests=10), operator.id)

    cancelled = await service.cancel_booking(booking.id, operator.id)

    assert cancelled.booking_status == BookingStatus.CANCELLED.value
    refreshed = await ScheduleService(test_session).get_schedule_by_id(schedule.id)
    assert refreshed.available_spots == 10
    assert refreshed.status == ScheduleStatus.AVAILABLE.value

    again = await service.cancel_booking(booking.id, operator.id)
    assert again.booking_status == BookingStatus.CANCELLED.value
    assert await _available(test_session, schedule.id) == 10


@pytest.mark.asyncio
async def test_cancel_completed_booking_is_rejected(test_session, operator, tour_and_schedule):
    """Test a completed booking cannot be cancelled."""
    _, schedule = tour_and_schedule
    schedule_id = schedule.id
    service = BookingService(test_session, dispatcher=NotificationDispatcher(enabled=False))
    booking = await service.create_booking(booking_request(schedule_id, num_guests=2), operator.id)
    await test_session.execute(
        update(Booking)
        .where(Booking.id == booking.id)
        .values(booking_status=BookingStatus.COMPLETED.value)
    )
    await test_session.commit()

    with pytest.raises(InvalidBookingTransitionError) as exc_info:
        await service.cancel_booking(booking.id, operator.id)

    assert exc_info.value.code == "INVALID_STATE_TRANSITION"
    assert await _available(test_session, schedule_id) == 8


@pytest.mark.asyncio
async def test_cancel_foreign_booking_is_not_found(test_session, operator, other_operator, tour_and_schedule):
    """Test operators cannot cancel each other's bookings."""
    _, schedule = tour_and_schedule
    schedule_id = schedule.id
    service = BookingService(test_session, dispatcher=NotificationDispatcher(enabled=False))
    booking = await service.create_booking(booking_request(schedule_id, num_guests=2), operator.id)

    with pytest.raises(NotFoundError):
        await service.cancel_booking(booking.id, other_operator.id)

    assert await _available(test_session, schedule_id) == 8
