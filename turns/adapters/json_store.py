"""
Appointment store persisted to a JSON file.
"""

import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import pendulum
from filelock import FileLock, Timeout
from pendulum import DateTime

from ..domain.exceptions import StoreError
from ..domain.models import Appointment, AppointmentStatus
from .memory_store import InMemoryAppointmentStore

logger = logging.getLogger(__name__)


class JsonAppointmentStore(InMemoryAppointmentStore):
    """
    Appointment store backed by a JSON file shared between processes.

    Every ``locked()`` section holds an OS-level lock on ``<data_file>.lock``
    and re-reads the file first, so each CLI invocation validates against
    what other processes have written. Writes rewrite the whole file.

    File format: a list of appointment objects with ISO 8601 timestamps, e.g.
    {
        "id": "...",
        "businessId": "barberia-centro",
        "serviceId": "corte",
        "customer": "Lucía",
        "startTime": "2025-11-10T10:00:00-03:00",
        "endTime": "2025-11-10T10:30:00-03:00",
        "status": "PENDING"
    }
    """

    def __init__(self, data_file: Path, lock_timeout: float = 10):
        self.data_file = data_file
        try:
            self.data_file.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreError(f"Could not create {self.data_file.parent}: {exc}") from exc
        self._file_lock = FileLock(
            str(data_file.with_name(data_file.name + ".lock")),
            timeout=lock_timeout,
        )
        super().__init__()
        # Fail fast on a corrupt file
        with self.locked():
            pass

    @contextmanager
    def locked(self) -> Iterator[None]:
        try:
            self._file_lock.acquire()
        except Timeout as exc:
            raise StoreError(f"Timed out waiting for the lock on {self.data_file}") from exc
        try:
            with super().locked():
                yield
        finally:
            self._file_lock.release()

    def _refresh(self) -> None:
        self._appointments = {appointment.id: appointment for appointment in self._load()}

    def _load(self) -> List[Appointment]:
        if not self.data_file.exists():
            return []

        try:
            with open(self.data_file, "r", encoding="utf-8") as f:
                records = json.load(f)
        except (json.JSONDecodeError, OSError) as exc:
            raise StoreError(f"Could not read appointments from {self.data_file}: {exc}") from exc

        if not isinstance(records, list):
            raise StoreError(f"{self.data_file} must contain a list of appointments")

        appointments = []
        for record in records:
            try:
                appointments.append(self._deserialize(record))
            except (KeyError, ValueError, TypeError) as exc:
                raise StoreError(f"Invalid appointment record in {self.data_file}: {exc}") from exc

        logger.debug("Loaded %d appointments from %s", len(appointments), self.data_file)
        return appointments

    def _persist(self, appointments: Dict[str, Appointment]) -> None:
        records = [
            self._serialize(appointment)
            for appointment in sorted(appointments.values(), key=lambda a: (a.start_time, a.id))
        ]
        tmp_file = self.data_file.with_name(self.data_file.name + ".tmp")
        try:
            self.data_file.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_file, "w", encoding="utf-8") as f:
                json.dump(records, f, ensure_ascii=False, indent=2)
            tmp_file.replace(self.data_file)
        except OSError as exc:
            raise StoreError(f"Could not write appointments to {self.data_file}: {exc}") from exc

    @staticmethod
    def _serialize(appointment: Appointment) -> Dict[str, Any]:
        def timestamp(value: Optional[DateTime]) -> Optional[str]:
            return value.to_iso8601_string() if value is not None else None

        return {
            "id": appointment.id,
            "businessId": appointment.business_id,
            "serviceId": appointment.service_id,
            "customer": appointment.customer,
            "startTime": timestamp(appointment.start_time),
            "endTime": timestamp(appointment.end_time),
            "status": appointment.status.value,
            "notes": appointment.notes,
            "createdAt": timestamp(appointment.created_at),
            "cancelledAt": timestamp(appointment.cancelled_at),
            "completedAt": timestamp(appointment.completed_at),
        }

    @staticmethod
    def _deserialize(record: Dict[str, Any]) -> Appointment:
        def timestamp(value: Optional[str]) -> Optional[DateTime]:
            if value is None:
                return None
            parsed = pendulum.parse(value)
            if not isinstance(parsed, DateTime):
                raise ValueError(f"Could not parse datetime: {value}")
            return parsed

        return Appointment(
            id=record["id"],
            business_id=record["businessId"],
            service_id=record["serviceId"],
            customer=record["customer"],
            start_time=timestamp(record["startTime"]),
            end_time=timestamp(record["endTime"]),
            status=AppointmentStatus(record.get("status", AppointmentStatus.PENDING.value)),
            notes=record.get("notes"),
            created_at=timestamp(record.get("createdAt")),
            cancelled_at=timestamp(record.get("cancelledAt")),
            completed_at=timestamp(record.get("completedAt")),
        )
