"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .booking import BookingService, DayLockRegistry
from .schedules import ScheduleService
from .slot_availability import (
    AppointmentStoreProtocol,
    BusinessDirectoryProtocol,
    SlotAvailabilityEngine,
)

__all__ = [
    "AppointmentStoreProtocol",
    "BookingService",
    "BusinessDirectoryProtocol",
    "DayLockRegistry",
    "ScheduleService",
    "SlotAvailabilityEngine",
]
