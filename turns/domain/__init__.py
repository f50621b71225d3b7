"""
Domain layer - Pure business logic without external dependencies.
"""

from .exceptions import (
    ConflictError,
    InvalidIntervalError,
    InvalidTransitionError,
    NotFoundError,
    OutOfScheduleError,
    ScheduleValidationError,
    StoreError,
    TurnsError,
)
from .models import (
    Appointment,
    AppointmentStatus,
    Business,
    Service,
    Slot,
    TimeRange,
    WeeklySchedule,
)
from .slot_calculator import SlotCalculator

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "Business",
    "ConflictError",
    "InvalidIntervalError",
    "InvalidTransitionError",
    "NotFoundError",
    "OutOfScheduleError",
    "ScheduleValidationError",
    "Service",
    "Slot",
    "SlotCalculator",
    "StoreError",
    "TimeRange",
    "TurnsError",
    "WeeklySchedule",
]
