"""Booking-related Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..models.booking import BookingStatus, PaymentStatus
from .common import Pagination


class GuestInput(BaseModel):
    """Companion travelling on a booking."""

    name: str = Field(..., min_length=1, max_length=255, description="Guest full name")
    age: int | None = Field(None, ge=0, le=130, description="Guest age")
    nationality: str | None = Field(None, max_length=64, description="Guest nationality")


class CreateBookingRequest(BaseModel):
    """
    Request schema for creating a booking.

    Required fields are declared optional here so that their absence is
    reported by the reservation engine as a single MISSING_FIELDS problem.
    """

    schedule_id: str | None = Field(None, description="Schedule to book")
    customer_name: str | None = Field(None, max_length=255, description="Lead customer name")
    customer_email: str | None = Field(None, max_length=255, description="Lead customer email")
    customer_phone: str | None = Field(None, max_length=64, description="Lead customer phone")
    num_guests: int | None = Field(None, description="Number of seats to reserve")
    guests: list[GuestInput] | None = Field(None, description="Named guests")
    booking_notes: str | None = Field(None, max_length=2000, description="Free-text notes")


class GetBookingRequest(BaseModel):
    """Request schema for getting a booking."""

    booking_id: UUID = Field(..., description="Booking to retrieve")


class CancelBookingRequest(BaseModel):
    """Request schema for cancelling a booking."""

    booking_id: UUID = Field(..., description="Booking to cancel")


class ListBookingsRequest(BaseModel):
    """Request schema for listing the operator's bookings."""

    page: int = Field(1, ge=1, description="Page number (1-based)")
    limit: int = Field(10, ge=1, le=100, description="Results per page")
    booking_status: BookingStatus | None = Field(None, description="Filter by booking status")
    payment_status: PaymentStatus | None = Field(None, description="Filter by payment status")


class BookingGuest(BaseModel):
    """Booking guest response schema."""

    model_config = ConfigDict(from_attributes=True)

    guest_name: str = Field(..., description="Guest full name")
    guest_age: int | None = Field(None, description="Guest age")
    guest_nationality: str | None = Field(None, description="Guest nationality")


class BookedTour(BaseModel):
    """Tour summary embedded in a booking."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    currency: str
    meeting_point: str | None = None


class BookedSchedule(BaseModel):
    """Schedule summary embedded in a booking."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    departure_datetime: datetime
    tour: BookedTour


class Booking(BaseModel):
    """Booking response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Unique booking ID")
    schedule_id: UUID = Field(..., description="Booked schedule ID")
    booking_reference: str = Field(..., description="Human-readable booking reference")
    customer_name: str = Field(..., description="Lead customer name")
    customer_email: str = Field(..., description="Lead customer email")
    customer_phone: str = Field("", description="Lead customer phone")
    num_guests: int = Field(..., ge=1, description="Seats reserved")
    total_price: Decimal = Field(..., description="Unit price times number of guests")
    booking_status: BookingStatus = Field(..., description="Booking status")
    payment_status: PaymentStatus = Field(..., description="Payment status")
    booking_notes: str | None = Field(None, description="Free-text notes")
    created_at: datetime = Field(..., description="Booking creation time (ISO 8601)")
    schedule: BookedSchedule = Field(..., description="Booked schedule and tour")
    guests: list[BookingGuest] = Field(default_factory=list, description="Named guests")


class ListBookingsResponse(BaseModel):
    """Response schema for booking listing."""

    items: list[Booking] = Field(..., description="Bookings, newest first")
    pagination: Pagination = Field(..., description="Pagination metadata")
