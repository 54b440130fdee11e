"""Tour model definition."""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, Numeric, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import expression

from ..core.database import Base

if TYPE_CHECKING:
    from .operator import Operator
    from .schedule import TourSchedule


class Tour(Base):
    """Operator-owned tour product definition."""

    __tablename__ = "tours"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    operator_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("operators.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Tour information
    title: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    meeting_point: Mapped[str | None] = mapped_column(String(255), nullable=True)
    meeting_point_instructions: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Assumed immutable once schedules exist
    max_capacity: Mapped[int] = mapped_column(Integer, nullable=False)

    base_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="SAR")

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=expression.true()
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
        CheckConstraint("max_capacity > 0", name="ck_tour_max_capacity_positive"),
        CheckConstraint("base_price >= 0", name="ck_tour_base_price_non_negative"),
        CheckConstraint("length(currency) = 3", name="ck_tour_currency_length"),
    )

    # Relationships
    operator: Mapped["Operator"] = relationship("Operator", back_populates="tours")
    schedules: Mapped[list["TourSchedule"]] = relationship(
        "TourSchedule",
        back_populates="tour",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Tour(id={self.id}, title='{self.title}', max_capacity={self.max_capacity})>"
