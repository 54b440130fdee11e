"""Tour schedule model definition."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, Numeric, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .booking import Booking
    from .tour import Tour


class ScheduleStatus(str, Enum):
    """Schedule status enumeration. Informational only, never a capacity gate."""
    AVAILABLE = "available"
    FULL = "full"
    CANCELLED = "cancelled"


class TourSchedule(Base):
    """One bookable departure of a tour with its own seat counter."""

    __tablename__ = "tour_schedules"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    tour_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("tours.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    departure_datetime: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    # Written only by CapacityLedger
    available_spots: Mapped[int] = mapped_column(Integer, nullable=False)

    price_override: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    status: Mapped[ScheduleStatus] = mapped_column(
        String(20),
        nullable=False,
        default=ScheduleStatus.AVAILABLE.value,
        index=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        server_onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("available_spots >= 0", name="ck_schedule_available_spots_non_negative"),
        CheckConstraint(
            "price_override IS NULL OR price_override >= 0",
            name="ck_schedule_price_override_non_negative"
        ),
        CheckConstraint(
            "status IN ('available', 'full', 'cancelled')",
            name="ck_schedule_status_valid"
        ),
    )

    # Relationships
    tour: Mapped["Tour"] = relationship("Tour", back_populates="schedules")
    bookings: Mapped[list["Booking"]] = relationship(
        "Booking",
        back_populates="schedule",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return (
            f"<TourSchedule(id={self.id}, tour_id={self.tour_id}, "
            f"departure={self.departure_datetime}, available_spots={self.available_spots}, "
            f"status={self.status})>"
        )
