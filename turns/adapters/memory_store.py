"""
In-memory appointment store.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional

from pendulum import DateTime

from ..domain.exceptions import NotFoundError
from ..domain.models import Appointment, AppointmentStatus


class InMemoryAppointmentStore:
    """
    Dict-backed appointment store, safe to share between threads.

    Callers that check-then-write wrap both steps in ``locked()``; single
    reads and writes take it on their own.
    """

    def __init__(self, appointments: Optional[Iterable[Appointment]] = None):
        self._lock = threading.RLock()
        self._appointments: Dict[str, Appointment] = {}
        for appointment in appointments or []:
            self._appointments[appointment.id] = appointment

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the store exclusively. Re-entrant within one thread."""
        with self._lock:
            self._refresh()
            yield

    def list_appointments(
        self,
        business_id: str,
        start: Optional[DateTime] = None,
        end: Optional[DateTime] = None,
        statuses: Optional[Iterable[AppointmentStatus]] = None,
    ) -> List[Appointment]:
        """
        Appointments of a business overlapping [start, end), sorted by start.

        ``None`` bounds and ``None`` statuses mean "no filter".
        """
        status_filter = set(statuses) if statuses is not None else None

        with self.locked():
            candidates = list(self._appointments.values())

        matches = [
            appointment
            for appointment in candidates
            if appointment.business_id == business_id
            and (status_filter is None or appointment.status in status_filter)
            and (start is None or appointment.end_time > start)
            and (end is None or appointment.start_time < end)
        ]
        return sorted(matches, key=lambda a: (a.start_time, a.id))

    def get(self, appointment_id: str) -> Appointment:
        with self.locked():
            appointment = self._appointments.get(appointment_id)
        if appointment is None:
            raise NotFoundError(f"Appointment not found: {appointment_id}")
        return appointment

    def add(self, appointment: Appointment) -> Appointment:
        with self.locked():
            if appointment.id in self._appointments:
                raise ValueError(f"Appointment {appointment.id} already exists")
            self._commit(appointment)
        return appointment

    def update(self, appointment: Appointment) -> Appointment:
        with self.locked():
            if appointment.id not in self._appointments:
                raise NotFoundError(f"Appointment not found: {appointment.id}")
            self._commit(appointment)
        return appointment

    def all(self) -> List[Appointment]:
        with self.locked():
            return sorted(self._appointments.values(), key=lambda a: (a.start_time, a.id))

    def _commit(self, appointment: Appointment) -> None:
        appointments = dict(self._appointments)
        appointments[appointment.id] = appointment
        self._persist(appointments)
        self._appointments = appointments

    def _refresh(self) -> None:
        """Hook called on entering ``locked()``, before any read."""

    def _persist(self, appointments: Dict[str, Appointment]) -> None:
        """Hook called with the lock held before a write becomes visible."""
