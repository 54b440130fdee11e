"""Service layer package."""

from .booking_service import BookingService
from .capacity_ledger import CapacityLedger
from .notification_service import NotificationDispatcher, notification_dispatcher
from .schedule_service import ScheduleService
from .tour_service import TourService

__all__ = [
    "BookingService",
    "CapacityLedger",
    "NotificationDispatcher",
    "ScheduleService",
    "TourService",
    "notification_dispatcher",
]
