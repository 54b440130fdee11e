"""Models module exporting all database models."""

from .booking import BOOKING_TRANSITIONS, Booking, BookingGuest, BookingStatus, PaymentStatus, can_transition
from .operator import Operator
from .schedule import ScheduleStatus, TourSchedule
from .tour import Tour

__all__ = [
    # Tenant and catalog
    "Operator",
    "Tour",
    "TourSchedule",
    "ScheduleStatus",

    # Booking entities
    "Booking",
    "BookingGuest",
    "BookingStatus",
    "PaymentStatus",
    "BOOKING_TRANSITIONS",
    "can_transition",
]
