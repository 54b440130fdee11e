"""Tour schedule Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..models.schedule import ScheduleStatus


class CreateScheduleRequest(BaseModel):
    """Request schema for creating a departure of a tour."""

    tour_id: UUID = Field(..., description="Tour to schedule")
    departure_datetime: datetime = Field(..., description="Departure time (ISO 8601)")
    price_override: Decimal | None = Field(
        None, ge=0, max_digits=10, decimal_places=2, description="Per-guest price replacing the tour base price"
    )


class ListSchedulesRequest(BaseModel):
    """Request schema for listing a tour's schedules."""

    tour_id: UUID = Field(..., description="Tour whose schedules to list")


class Schedule(BaseModel):
    """Tour schedule response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Unique schedule ID")
    tour_id: UUID = Field(..., description="Owning tour ID")
    departure_datetime: datetime = Field(..., description="Departure time (ISO 8601)")
    available_spots: int = Field(..., ge=0, description="Seats still bookable (advisory)")
    price_override: Decimal | None = Field(None, description="Per-guest price override")
    status: ScheduleStatus = Field(..., description="Schedule status")


class ListSchedulesResponse(BaseModel):
    """Response schema for schedule listing."""

    items: list[Schedule] = Field(..., description="Schedules ordered by departure time")
