"""
Appointment lifecycle: booking, rescheduling and status changes.

Every write that can occupy an interval runs validate-then-write while holding
the lock for ``(business_id, local date)`` and the store's own ``locked()``
section, so two customers racing for the same slot cannot both pass the
conflict check. Moving an appointment holds the locks of both days involved.
"""

from __future__ import annotations

import logging
import threading
import uuid
from contextlib import ExitStack, contextmanager
from dataclasses import replace
from datetime import date
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from pendulum import DateTime

from ..domain.exceptions import InvalidTransitionError, OutOfScheduleError
from ..domain.models import (
    Appointment,
    AppointmentStatus,
    Business,
    TimeRange,
)
from .slot_availability import (
    AppointmentStoreProtocol,
    BusinessDirectoryProtocol,
    SlotAvailabilityEngine,
)

logger = logging.getLogger(__name__)

class DayLockRegistry:
    """
    Hands out one lock per business and calendar day.

    Entries are reference counted and dropped once no thread holds or waits
    on them.
    """

    def __init__(self) -> None:
        self._locks: Dict[Tuple[str, date], threading.Lock] = {}
        self._users: Dict[Tuple[str, date], int] = {}
        self._registry_lock = threading.Lock()

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._locks)

    @contextmanager
    def hold(self, business_id: str, *days: date) -> Iterator[None]:
        """
        Hold the locks of one or more days of a business.

        Locks are taken in date order so two callers asking for the same
        pair of days cannot deadlock.
        """
        keys = sorted({(business_id, day) for day in days})
        with ExitStack() as stack:
            for key in keys:
                lock = self._checkout(key)
                stack.callback(self._checkin, key)
                lock.acquire()
                stack.callback(lock.release)
            yield

    def _checkout(self, key: Tuple[str, date]) -> threading.Lock:
        with self._registry_lock:
            if key not in self._locks:
                self._locks[key] = threading.Lock()
            self._users[key] = self._users.get(key, 0) + 1
            return self._locks[key]

    def _checkin(self, key: Tuple[str, date]) -> None:
        with self._registry_lock:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


class BookingService:
    """
    Orchestrates appointment writes around the availability engine.
    """

    def __init__(
        self,
        engine: SlotAvailabilityEngine,
        directory: BusinessDirectoryProtocol,
        appointment_store: AppointmentStoreProtocol,
        locks: Optional[DayLockRegistry] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self._engine = engine
        self._directory = directory
        self._appointment_store = appointment_store
        self._locks = locks if locks is not None else DayLockRegistry()
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))

    def create_appointment(
        self,
        *,
        business_id: str,
        service_id: str,
        start_time: DateTime,
        customer: str,
        notes: Optional[str] = None,
    ) -> Appointment:
        """
        Book a slot as a PENDING appointment.

        The end time is derived from the service duration.

        Raises:
            NotFoundError: If the business or service does not resolve
            OutOfScheduleError: If the start is in the past or off the slot grid
            ConflictError: If the slot was taken in the meantime
        """
        customer = customer.strip()
        if not customer:
            raise ValueError("A customer is required to book an appointment.")

        business = self._directory.get_business(business_id)
        service = self._engine.resolve_service(business, service_id)

        start = start_time.in_timezone(business.timezone)
        end = start.add(minutes=service.duration_minutes)
        self._ensure_future(business, start)

        with self._locks.hold(business.id, start.date()), self._appointment_store.locked():
            self._engine.validate_booking_slot(
                business.id, start, end, service_id=service.id
            )
            appointment = self._appointment_store.add(
                Appointment(
                    id=self._id_factory(),
                    business_id=business.id,
                    service_id=service.id,
                    customer=customer,
                    start_time=start,
                    end_time=end,
                    status=AppointmentStatus.PENDING,
                    notes=notes,
                    created_at=self._engine.now(business.timezone),
                )
            )

        logger.info(
            "Booked appointment %s for %s at %s (%s)",
            appointment.id,
            business.id,
            appointment.time_range,
            service.id,
        )
        return appointment

    def reschedule_appointment(
        self,
        appointment_id: str,
        new_start: DateTime,
        notes: Optional[str] = None,
    ) -> Appointment:
        """
        Move a PENDING or CONFIRMED appointment to another slot.

        The appointment goes back to PENDING and its own current interval is
        ignored by the conflict check. Both the old and the new day stay
        locked until the move is written.
        """
        current = self._appointment_store.get(appointment_id)
        business = self._directory.get_business(current.business_id)
        service = self._engine.resolve_service(business, current.service_id)

        start = new_start.in_timezone(business.timezone)
        end = start.add(minutes=service.duration_minutes)
        self._ensure_future(business, start)

        with self._hold_appointment(appointment_id, business, start.date()) as current:
            if not current.is_blocking():
                raise InvalidTransitionError(
                    f"Cannot reschedule a {current.status.value} appointment"
                )
            self._engine.validate_booking_slot(
                business.id,
                start,
                end,
                service_id=service.id,
                exclude_appointment_id=current.id,
            )
            updated = self._appointment_store.update(
                replace(
                    current,
                    start_time=start,
                    end_time=end,
                    status=AppointmentStatus.PENDING,
                    notes=notes or current.notes,
                )
            )

        logger.info("Rescheduled appointment %s to %s", updated.id, updated.time_range)
        return updated

    def get_appointment(self, appointment_id: str) -> Appointment:
        return self._appointment_store.get(appointment_id)

    def confirm_appointment(self, appointment_id: str) -> Appointment:
        return self._transition(appointment_id, AppointmentStatus.CONFIRMED)

    def cancel_appointment(self, appointment_id: str) -> Appointment:
        """Cancel an appointment, releasing its slot."""
        return self._transition(appointment_id, AppointmentStatus.CANCELLED)

    def complete_appointment(self, appointment_id: str) -> Appointment:
        return self._transition(appointment_id, AppointmentStatus.COMPLETED)

    def mark_no_show(self, appointment_id: str) -> Appointment:
        return self._transition(appointment_id, AppointmentStatus.NO_SHOW)

    def list_appointments(
        self,
        business_id: str,
        day: Optional[date] = None,
        status: Optional[AppointmentStatus] = None,
    ) -> List[Appointment]:
        """List a business's appointments, optionally for one day and status."""
        business = self._directory.get_business(business_id)
        start = end = None
        if day is not None:
            day_range = TimeRange.for_day(day, business.timezone)
            start, end = day_range.start, day_range.end

        return self._appointment_store.list_appointments(
            business.id,
            start=start,
            end=end,
            statuses=[status] if status is not None else None,
        )

    def _transition(self, appointment_id: str, target: AppointmentStatus) -> Appointment:
        business = self._directory.get_business(
            self._appointment_store.get(appointment_id).business_id
        )

        with self._hold_appointment(appointment_id, business) as current:
            if not current.can_transition_to(target):
                raise InvalidTransitionError(
                    f"Cannot change appointment {current.id} from "
                    f"{current.status.value} to {target.value}"
                )

            now = self._engine.now(business.timezone)
            changes = {"status": target}
            if target is AppointmentStatus.CANCELLED:
                changes["cancelled_at"] = now
            elif target is AppointmentStatus.COMPLETED:
                changes["completed_at"] = now

            updated = self._appointment_store.update(replace(current, **changes))

        logger.info(
            "Appointment %s moved from %s to %s",
            updated.id,
            current.status.value,
            target.value,
        )
        return updated

    @contextmanager
    def _hold_appointment(
        self,
        appointment_id: str,
        business: Business,
        *extra_days: date,
    ) -> Iterator[Appointment]:
        """
        Lock the appointment's current day (plus ``extra_days``) and the store,
        then yield a fresh copy of the appointment.

        If the appointment was moved to another day while waiting, the locks
        are released and taken again for its new day.
        """
        while True:
            day = self._local_day(self._appointment_store.get(appointment_id), business)
            with self._locks.hold(business.id, day, *extra_days), self._appointment_store.locked():
                current = self._appointment_store.get(appointment_id)
                if self._local_day(current, business) == day:
                    yield current
                    return
            logger.debug("Appointment %s moved while waiting for its lock, retrying", appointment_id)

    @staticmethod
    def _local_day(appointment: Appointment, business: Business) -> date:
        return appointment.start_time.in_timezone(business.timezone).date()

    def _ensure_future(self, business: Business, start: DateTime) -> None:
        if start <= self._engine.now(business.timezone):
            raise OutOfScheduleError(f"Cannot book {start.format('DD/MM/YYYY HH:mm')}: it is in the past")
