"""Booking and BookingGuest model definitions."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Integer, Numeric, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .schedule import TourSchedule


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    """Payment status enumeration."""
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"


# Forward transitions recognised for a booking once created
BOOKING_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    """Return True if a booking may move from ``current`` to ``target``."""
    return BookingStatus(target) in BOOKING_TRANSITIONS[BookingStatus(current)]


class Booking(Base):
    """Customer reservation against one tour schedule."""

    __tablename__ = "bookings"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    schedule_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("tour_schedules.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Customer identity
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    customer_phone: Mapped[str] = mapped_column(String(64), nullable=False, default="")

    # Booking details
    num_guests: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    booking_reference: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    booking_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    booking_status: Mapped[BookingStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BookingStatus.PENDING.value,
        index=True
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.UNPAID.value,
        index=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        server_onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("num_guests >= 1", name="ck_booking_num_guests_positive"),
        CheckConstraint("total_price >= 0", name="ck_booking_total_price_non_negative"),
        CheckConstraint("length(booking_reference) > 0", name="ck_booking_reference_not_empty"),
        CheckConstraint("length(customer_name) > 0", name="ck_booking_customer_name_not_empty"),
    )

    # Server timestamps are fetched at flush so a committed booking renders without a reload
    __mapper_args__ = {"eager_defaults": True}

    # Relationships
    schedule: Mapped["TourSchedule"] = relationship("TourSchedule", back_populates="bookings")
    guests: Mapped[list["BookingGuest"]] = relationship(
        "BookingGuest",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingGuest.position"
    )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, reference='{self.booking_reference}', "
            f"schedule_id={self.schedule_id}, num_guests={self.num_guests}, "
            f"status={self.booking_status})>"
        )


class BookingGuest(Base):
    """Named companion attached to a booking; immutable once created."""

    __tablename__ = "booking_guests"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Order in which guests were supplied
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    guest_name: Mapped[str] = mapped_column(String(255), nullable=False)
    guest_age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    guest_nationality: Mapped[str | None] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        CheckConstraint("length(guest_name) > 0", name="ck_booking_guest_name_not_empty"),
        CheckConstraint("guest_age IS NULL OR guest_age >= 0", name="ck_booking_guest_age_non_negative"),
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="guests")

    def __repr__(self) -> str:
        return f"<BookingGuest(id={self.id}, booking_id={self.booking_id}, name='{self.guest_name}')>"
