"""Fire-and-forget booking notifications."""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Protocol

from ..core.config import settings
from ..core.observability import get_logger, metrics_collector

logger = get_logger(__name__)


@dataclass(frozen=True)
class ContactInfo:
    """Where to reach a party of the booking."""

    name: str
    email: str
    phone: Optional[str] = None


@dataclass(frozen=True)
class BookingNotice:
    """
    Snapshot of a committed booking for notification purposes.

    Holds plain values only, so rendering never touches the ORM session that
    created the booking.
    """

    booking_id: str
    booking_reference: str
    tour_title: str
    departure_datetime: datetime
    num_guests: int
    total_price: Decimal
    currency: str
    meeting_point: Optional[str] = None
    meeting_point_instructions: Optional[str] = None


@dataclass(frozen=True)
class EmailMessage:
    """Rendered email ready to hand to a sender."""

    sender: str
    recipient: str
    subject: str
    body: str


class EmailSender(Protocol):
    """Transport used by the dispatcher; delivery itself is external."""

    async def send(self, message: EmailMessage) -> None:
        ...


class LoggingEmailSender:
    """Sender that records outgoing mail in the log instead of delivering it."""

    async def send(self, message: EmailMessage) -> None:
        logger.info(
            "email_queued",
            recipient=message.recipient,
            subject=message.subject,
        )


def render_customer_confirmation(notice: BookingNotice, customer: ContactInfo) -> EmailMessage:
    """Render the confirmation sent to the customer."""
    lines = [
        f"Dear {customer.name},",
        "",
        "Thank you for your booking. Your reservation has been received.",
        "",
        f"Booking reference: {notice.booking_reference}",
        f"Tour: {notice.tour_title}",
        f"Departure: {notice.departure_datetime:%A, %d %B %Y %H:%M}",
        f"Number of guests: {notice.num_guests}",
        f"Total price: {notice.currency} {notice.total_price:,.2f}",
    ]
    if notice.meeting_point:
        lines.append(f"Meeting point: {notice.meeting_point}")
    if notice.meeting_point_instructions:
        lines.extend(["", notice.meeting_point_instructions])

    return EmailMessage(
        sender=settings.notification_sender_email,
        recipient=customer.email,
        subject=f"Booking received - {notice.booking_reference}",
        body="\n".join(lines),
    )


def render_operator_notification(
    notice: BookingNotice,
    customer: ContactInfo,
    operator: ContactInfo,
) -> EmailMessage:
    """Render the new-booking alert sent to the operator."""
    body = "\n".join([
        f"Hello {operator.name},",
        "",
        "A new booking has been made.",
        "",
        f"Booking reference: {notice.booking_reference}",
        f"Tour: {notice.tour_title}",
        f"Departure: {notice.departure_datetime:%A, %d %B %Y %H:%M}",
        f"Customer: {customer.name} <{customer.email}>",
        f"Phone: {customer.phone or 'Not provided'}",
        f"Guests: {notice.num_guests}",
        f"Total price: {notice.currency} {notice.total_price:,.2f}",
    ])

    return EmailMessage(
        sender=settings.notification_sender_email,
        recipient=operator.email,
        subject=f"New booking {notice.booking_reference} for {notice.tour_title}",
        body=body,
    )


class NotificationDispatcher:
    """
    Sends booking notifications in detached tasks.

    ``dispatch_booking_created`` returns immediately. Failures inside the task
    are logged and counted, never raised to whoever dispatched it.
    """

    def __init__(self, sender: Optional[EmailSender] = None, enabled: Optional[bool] = None):
        self.sender = sender or LoggingEmailSender()
        self.enabled = settings.notifications_enabled if enabled is None else enabled
        self._tasks: set[asyncio.Task] = set()

    async def notify_booking_created(
        self,
        notice: BookingNotice,
        customer: ContactInfo,
        operator: ContactInfo,
    ) -> None:
        """Send the customer confirmation and the operator alert."""
        await asyncio.gather(
            self.sender.send(render_customer_confirmation(notice, customer)),
            self.sender.send(render_operator_notification(notice, customer, operator)),
        )

    def dispatch_booking_created(
        self,
        notice: BookingNotice,
        customer: ContactInfo,
        operator: ContactInfo,
    ) -> Optional[asyncio.Task]:
        """Schedule ``notify_booking_created`` without waiting for it."""
        if not self.enabled:
            return None

        task = asyncio.create_task(
            self._run_safely(notice, customer, operator),
            name=f"notify-booking-{notice.booking_reference}",
        )
        # The loop only keeps weak references to tasks
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_safely(self, notice: BookingNotice, customer: ContactInfo, operator: ContactInfo) -> None:
        try:
            await self.notify_booking_created(notice, customer, operator)
        except asyncio.CancelledError:
            raise
        except Exception:
            metrics_collector.record_notification_failure()
            logger.exception(
                "booking_notification_failed",
                booking_id=notice.booking_id,
                booking_reference=notice.booking_reference,
            )
        else:
            logger.info(
                "booking_notification_sent",
                booking_id=notice.booking_id,
                booking_reference=notice.booking_reference,
            )

    @property
    def pending(self) -> int:
        """Number of notifications still in flight."""
        return len(self._tasks)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight notifications, e.g. during shutdown."""
        if not self._tasks:
            return
        done, not_done = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in not_done:
            task.cancel()
        if not_done:
            logger.warning("notifications_abandoned", count=len(not_done))


# Global dispatcher instance
notification_dispatcher = NotificationDispatcher()
