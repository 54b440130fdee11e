"""Operator model definition."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .tour import Tour


class Operator(Base):
    """Tour operator: the tenant that owns tours and their schedules."""

    __tablename__ = "operators"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_email: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )

    tours: Mapped[list["Tour"]] = relationship(
        "Tour",
        back_populates="operator",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Operator(id={self.id}, company_name='{self.company_name}')>"
