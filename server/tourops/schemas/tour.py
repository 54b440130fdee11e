"""Tour-related Pydantic schemas."""

from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .common import Pagination


class CreateTourRequest(BaseModel):
    """Request schema for creating a tour."""

    title: str = Field(..., min_length=1, max_length=255, description="Tour title")
    slug: str = Field(..., min_length=1, max_length=255, pattern=r"^[a-z0-9-]+$", description="URL-friendly slug")
    description: str | None = Field(None, max_length=4000, description="Tour description")
    max_capacity: int = Field(..., ge=1, le=1000, description="Seats per departure")
    base_price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2, description="Price per guest")
    currency: str | None = Field(None, pattern=r"^[A-Z]{3}$", description="ISO 4217 currency code")
    meeting_point: str | None = Field(None, max_length=255, description="Where guests meet")
    meeting_point_instructions: str | None = Field(None, max_length=2000, description="How to find the meeting point")


class Tour(BaseModel):
    """Tour response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Unique tour ID")
    operator_id: UUID = Field(..., description="Owning operator ID")
    title: str = Field(..., description="Tour title")
    slug: str = Field(..., description="URL-friendly slug")
    description: str | None = Field(None, description="Tour description")
    max_capacity: int = Field(..., description="Seats per departure")
    base_price: Decimal = Field(..., description="Price per guest")
    currency: str = Field(..., description="ISO 4217 currency code")
    meeting_point: str | None = Field(None, description="Where guests meet")
    is_active: bool = Field(..., description="Whether the tour is bookable")


class GetTourRequest(BaseModel):
    """Request schema for getting a tour."""

    tour_id: UUID = Field(..., description="Tour to retrieve")


class ArchiveTourRequest(BaseModel):
    """Request schema for archiving a tour."""

    tour_id: UUID = Field(..., description="Tour to archive")


class ListToursRequest(BaseModel):
    """Request schema for listing the operator's tours."""

    page: int = Field(1, ge=1, description="Page number (1-based)")
    limit: int = Field(10, ge=1, le=100, description="Results per page")
    is_active: bool | None = Field(None, description="Filter by active flag")
    search: str | None = Field(None, min_length=1, max_length=255, description="Case-insensitive title or description match")


class UpdateTourRequest(BaseModel):
    """
    Request schema for a partial tour update.

    Only fields present in the request are changed. The slug cannot be changed.
    """

    tour_id: UUID = Field(..., description="Tour to update")
    title: str | None = Field(None, min_length=1, max_length=255, description="Tour title")
    description: str | None = Field(None, max_length=4000, description="Tour description")
    max_capacity: int | None = Field(None, ge=1, le=1000, description="Seats per departure, fixed once scheduled")
    base_price: Decimal | None = Field(None, ge=0, max_digits=10, decimal_places=2, description="Price per guest")
    currency: str | None = Field(None, pattern=r"^[A-Z]{3}$", description="ISO 4217 currency code")
    meeting_point: str | None = Field(None, max_length=255, description="Where guests meet")
    meeting_point_instructions: str | None = Field(None, max_length=2000, description="How to find the meeting point")
    is_active: bool | None = Field(None, description="Whether the tour is bookable")

    @field_validator("title", "max_capacity", "base_price", "currency", "is_active")
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError("may be omitted but not null")
        return value

    def changes(self) -> dict:
        """Fields the caller actually sent, minus the tour ID."""
        return self.model_dump(exclude_unset=True, exclude={"tour_id"})


class ListToursResponse(BaseModel):
    """Response schema for tour listing."""

    items: list[Tour] = Field(..., description="Tours, newest first")
    pagination: Pagination = Field(..., description="Pagination metadata")
