"""
Application services for computing and re-validating bookable slots.

The engine coordinates lookups through small collaborator protocols and
delegates the actual partitioning and overlap arithmetic to the domain-level
``SlotCalculator``. Collaborators and the clock are injected so tests can run
against in-memory fakes and a frozen "now".
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable, ContextManager, Iterable, List, Optional, Protocol

import pendulum
from pendulum import DateTime

from ..domain.exceptions import (
    ConflictError,
    InvalidIntervalError,
    NotFoundError,
    OutOfScheduleError,
)
from ..domain.models import (
    BLOCKING_STATUSES,
    Appointment,
    AppointmentStatus,
    Business,
    Service,
    Slot,
    TimeRange,
    WeeklySchedule,
    weekday_index,
)
from ..domain.slot_calculator import SlotCalculator

logger = logging.getLogger(__name__)

Clock = Callable[[], DateTime]


class BusinessDirectoryProtocol(Protocol):
    """Protocol describing the catalog lookups needed by the engine."""

    def get_business(self, business_id: str) -> Business:
        """Return the business or raise ``NotFoundError``."""

    def get_service(self, service_id: str) -> Service:
        """Return the service or raise ``NotFoundError``."""

    def list_services(self, business_id: str) -> List[Service]:
        """Return every service of a business, active or not."""

    def get_schedule(self, business_id: str, day_of_week: int) -> Optional[WeeklySchedule]:
        """Return the schedule row for a weekday, if any."""


class AppointmentStoreProtocol(Protocol):
    """Protocol describing the appointment persistence used by the services."""

    def list_appointments(
        self,
        business_id: str,
        start: Optional[DateTime] = None,
        end: Optional[DateTime] = None,
        statuses: Optional[Iterable[AppointmentStatus]] = None,
    ) -> List[Appointment]:
        """Return appointments overlapping [start, end), sorted by start time."""

    def get(self, appointment_id: str) -> Appointment:
        """Return one appointment or raise ``NotFoundError``."""

    def add(self, appointment: Appointment) -> Appointment:
        """Insert a new appointment."""

    def update(self, appointment: Appointment) -> Appointment:
        """Replace an existing appointment."""

    def locked(self) -> ContextManager[None]:
        """
        Exclusive, re-entrant section over the whole store. Reads inside it
        see every write committed before it was entered, by any process.
        """


class SlotAvailabilityEngine:
    """
    Computes bookable slots for a business, service and day, and re-checks a
    proposed booking against the current appointment list.

    Nothing is cached: every call reads a fresh snapshot from the store.
    """

    def __init__(
        self,
        directory: BusinessDirectoryProtocol,
        appointment_store: AppointmentStoreProtocol,
        slot_calculator: Optional[SlotCalculator] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._directory = directory
        self._appointment_store = appointment_store
        self._slot_calculator = slot_calculator or SlotCalculator()
        self._clock = clock or pendulum.now

    def now(self, timezone: str) -> DateTime:
        """Current instant expressed in ``timezone``."""
        return self._clock().in_timezone(timezone)

    def compute_available_slots(
        self,
        business_id: str,
        service_id: str,
        day: date,
    ) -> List[Slot]:
        """
        Compute the ordered slot list for one calendar day.

        Args:
            business_id: Business to book at
            service_id: Service whose duration sizes the slots
            day: Calendar day in the business timezone

        Returns:
            Slots in ascending order, each flagged available or not. Empty if
            the business has no active opening hours that weekday.
        """
        business = self._directory.get_business(business_id)
        service = self.resolve_service(business, service_id)

        schedule = self._directory.get_schedule(business.id, weekday_index(day))
        if schedule is None or not schedule.is_active:
            logger.debug("No opening hours for %s on %s", business.id, day)
            return []

        window = schedule.window_for(day, business.timezone)
        occupied = [
            appointment.time_range
            for appointment in self.fetch_blocking_appointments(business, day)
        ]

        slots = self._slot_calculator.build_slots(
            window=window,
            duration_minutes=service.duration_minutes,
            occupied=occupied,
            now=self.now(business.timezone),
        )
        logger.debug(
            "Computed %d slots (%d available) for %s/%s on %s",
            len(slots),
            sum(1 for slot in slots if slot.available),
            business.id,
            service.id,
            day,
        )
        return slots

    def validate_booking_slot(
        self,
        business_id: str,
        proposed_start: DateTime,
        proposed_end: DateTime,
        *,
        service_id: Optional[str] = None,
        existing_appointments: Optional[Iterable[Appointment]] = None,
        exclude_appointment_id: Optional[str] = None,
    ) -> None:
        """
        Re-validate a proposed booking at commit time.

        Must run inside the same critical section as the write that follows.

        Raises:
            InvalidIntervalError: If start is not before end, or the length
                differs from the service duration (without ``service_id``,
                from every active service of the business)
            OutOfScheduleError: If the interval is not one of the day's slots
            ConflictError: If the interval overlaps a PENDING or CONFIRMED
                appointment
        """
        if proposed_start >= proposed_end:
            raise InvalidIntervalError(
                f"Start time {proposed_start} must be before end time {proposed_end}"
            )
        proposed = TimeRange(start=proposed_start, end=proposed_end)

        business = self._directory.get_business(business_id)
        if service_id is not None:
            service = self.resolve_service(business, service_id)
            duration_minutes = service.duration_minutes
            if (proposed_end - proposed_start).total_seconds() != duration_minutes * 60:
                raise InvalidIntervalError(
                    f"Booking must last {duration_minutes} minutes for service {service.id}"
                )
        else:
            # Without a service, the length must match one the business offers
            offered = {
                service.duration_minutes
                for service in self._directory.list_services(business.id)
                if service.is_active
            }
            duration_minutes = proposed.duration_minutes()
            if (
                duration_minutes not in offered
                or (proposed_end - proposed_start).total_seconds() != duration_minutes * 60
            ):
                raise InvalidIntervalError(
                    f"No active service of {business.id} lasts {duration_minutes} minutes"
                )

        day = proposed_start.in_timezone(business.timezone).date()
        schedule = self._directory.get_schedule(business.id, weekday_index(day))
        if schedule is None or not schedule.is_active:
            raise OutOfScheduleError(f"{business.name} is closed on {day}")

        window = schedule.window_for(day, business.timezone)
        if not self._slot_calculator.is_on_boundary(window, proposed, duration_minutes):
            raise OutOfScheduleError(
                f"{proposed} is not a bookable slot (opening hours {schedule.format_hours()})"
            )

        if existing_appointments is None:
            candidates = self.fetch_blocking_appointments(business, day)
        else:
            candidates = [a for a in existing_appointments if a.is_blocking()]

        occupied = [
            appointment.time_range
            for appointment in candidates
            if appointment.id != exclude_appointment_id
        ]
        if self._slot_calculator.find_conflicts(proposed, occupied):
            logger.warning("Booking conflict for %s at %s", business.id, proposed)
            raise ConflictError(
                f"The slot {proposed} is no longer available, please choose another"
            )

    def resolve_service(self, business: Business, service_id: str) -> Service:
        """Look up a service and check it is active and offered by ``business``."""
        service = self._directory.get_service(service_id)
        if service.business_id != business.id or not service.is_active:
            raise NotFoundError(f"Service {service_id} not found for business {business.id}")
        return service

    def fetch_blocking_appointments(self, business: Business, day: date) -> List[Appointment]:
        """PENDING and CONFIRMED appointments overlapping ``day``, sorted by start."""
        day_range = TimeRange.for_day(day, business.timezone)
        appointments = self._appointment_store.list_appointments(
            business.id,
            start=day_range.start,
            end=day_range.end,
            statuses=BLOCKING_STATUSES,
        )
        return sorted(appointments, key=lambda a: a.start_time)
