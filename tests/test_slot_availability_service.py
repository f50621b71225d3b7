"""
Tests for the SlotAvailabilityEngine orchestration layer.
"""

from dataclasses import replace
from typing import Dict, List, Optional

import pendulum
import pytest

from turns.adapters.memory_store import InMemoryAppointmentStore
from turns.domain.exceptions import (
    ConflictError,
    InvalidIntervalError,
    NotFoundError,
    OutOfScheduleError,
)
from turns.domain.models import (
    Appointment,
    AppointmentStatus,
    Business,
    Service,
    WeeklySchedule,
)
from turns.services.slot_availability import SlotAvailabilityEngine

TZ = "America/Argentina/Buenos_Aires"
MONDAY = pendulum.date(2025, 11, 10)
TUESDAY = pendulum.date(2025, 11, 11)


class StubDirectory:
    """Minimal stub matching BusinessDirectoryProtocol."""

    def __init__(self, schedules: List[WeeklySchedule]):
        self.business = Business(id="barberia", name="Barbería", timezone=TZ)
        self.services: Dict[str, Service] = {
            "corte": Service(id="corte", business_id="barberia", name="Corte", duration_minutes=30),
            "color": Service(id="color", business_id="barberia", name="Color", duration_minutes=90),
            "inactivo": Service(
                id="inactivo", business_id="barberia", name="Viejo", duration_minutes=30, is_active=False
            ),
            "ajeno": Service(id="ajeno", business_id="otro", name="Ajeno", duration_minutes=30),
        }
        self.schedules = schedules
        self.schedule_calls: List[int] = []

    def get_business(self, business_id: str) -> Business:
        if business_id != self.business.id:
            raise NotFoundError(f"Business not found: {business_id}")
        return self.business

    def get_service(self, service_id: str) -> Service:
        if service_id not in self.services:
            raise NotFoundError(f"Service not found: {service_id}")
        return self.services[service_id]

    def list_services(self, business_id: str) -> List[Service]:
        return [s for s in self.services.values() if s.business_id == business_id]

    def get_schedule(self, business_id: str, day_of_week: int) -> Optional[WeeklySchedule]:
        self.schedule_calls.append(day_of_week)
        for schedule in self.schedules:
            if schedule.day_of_week == day_of_week:
                return schedule
        return None


def _appointment(
    appointment_id: str,
    start: str,
    end: str,
    status: AppointmentStatus = AppointmentStatus.CONFIRMED,
) -> Appointment:
    return Appointment(
        id=appointment_id,
        business_id="barberia",
        service_id="corte",
        customer="cliente@example.com",
        start_time=pendulum.parse(start, tz=TZ),
        end_time=pendulum.parse(end, tz=TZ),
        status=status,
    )


def _build_engine(
    appointments: Optional[List[Appointment]] = None,
    now: str = "2025-11-05 12:00",
    schedules: Optional[List[WeeklySchedule]] = None,
):
    if schedules is None:
        schedules = [
            WeeklySchedule.from_strings(1, "09:00", "18:00"),  # Monday
            WeeklySchedule.from_strings(2, "09:00", "13:00", is_active=False),  # Tuesday
        ]
    directory = StubDirectory(schedules)
    store = InMemoryAppointmentStore(appointments or [])
    frozen_now = pendulum.parse(now, tz=TZ)
    engine = SlotAvailabilityEngine(
        directory=directory,
        appointment_store=store,
        clock=lambda: frozen_now,
    )
    return engine, store, directory


def _availability(slots) -> Dict[str, bool]:
    return {slot.start_time.format("HH:mm"): slot.available for slot in slots}


class TestComputeAvailableSlots:
    """Tests for compute_available_slots."""

    def test_monday_nine_to_six(self):
        """A 09:00-18:00 day with a 30 minute service has 18 free slots."""
        engine, _, directory = _build_engine()

        slots = engine.compute_available_slots("barberia", "corte", MONDAY)

        assert directory.schedule_calls == [1]
        assert len(slots) == 18
        assert all(slot.available for slot in slots)
        assert slots[0].start_time == pendulum.parse("2025-11-10 09:00", tz=TZ)
        assert slots[-1].end_time == pendulum.parse("2025-11-10 18:00", tz=TZ)

    def test_no_schedule_returns_empty(self):
        engine, _, _ = _build_engine()

        assert engine.compute_available_slots("barberia", "corte", pendulum.date(2025, 11, 9)) == []

    def test_inactive_schedule_returns_empty(self):
        engine, _, _ = _build_engine()

        assert engine.compute_available_slots("barberia", "corte", TUESDAY) == []

    def test_confirmed_appointment_blocks_its_slot(self):
        engine, _, _ = _build_engine(
            appointments=[_appointment("a1", "2025-11-10 10:00", "2025-11-10 10:30")]
        )

        availability = _availability(engine.compute_available_slots("barberia", "corte", MONDAY))

        assert availability["10:00"] is False
        assert availability["09:30"] is True
        assert availability["10:30"] is True

    def test_pending_appointment_blocks_longer_service(self):
        engine, _, _ = _build_engine(
            appointments=[
                _appointment("a1", "2025-11-10 10:00", "2025-11-10 10:30", AppointmentStatus.PENDING)
            ]
        )

        availability = _availability(engine.compute_available_slots("barberia", "color", MONDAY))

        # 90 minute slots: 09:00, 10:30, 12:00, 13:30, 15:00, 16:30
        assert list(availability) == ["09:00", "10:30", "12:00", "13:30", "15:00", "16:30"]
        assert availability["09:00"] is False
        assert availability["10:30"] is True

    @pytest.mark.parametrize(
        "status",
        [AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW],
    )
    def test_released_statuses_do_not_block(self, status):
        engine, _, _ = _build_engine(
            appointments=[_appointment("a1", "2025-11-10 10:00", "2025-11-10 10:30", status)]
        )

        slots = engine.compute_available_slots("barberia", "corte", MONDAY)

        assert all(slot.available for slot in slots)

    def test_cancelling_frees_the_slot_on_next_query(self):
        booked = _appointment("a1", "2025-11-10 10:00", "2025-11-10 10:30")
        engine, store, _ = _build_engine(appointments=[booked])

        before = _availability(engine.compute_available_slots("barberia", "corte", MONDAY))
        store.update(replace(booked, status=AppointmentStatus.CANCELLED))
        after = _availability(engine.compute_available_slots("barberia", "corte", MONDAY))

        assert before["10:00"] is False
        assert after["10:00"] is True

    def test_other_days_appointments_are_ignored(self):
        engine, _, _ = _build_engine(
            appointments=[_appointment("a1", "2025-11-17 10:00", "2025-11-17 10:30")]
        )

        slots = engine.compute_available_slots("barberia", "corte", MONDAY)

        assert all(slot.available for slot in slots)

    def test_repeated_calls_are_identical(self):
        engine, _, _ = _build_engine(
            appointments=[_appointment("a1", "2025-11-10 12:00", "2025-11-10 13:00")]
        )

        first = engine.compute_available_slots("barberia", "corte", MONDAY)
        second = engine.compute_available_slots("barberia", "corte", MONDAY)

        assert first == second

    def test_today_hides_slots_not_after_now(self):
        engine, _, _ = _build_engine(now="2025-11-10 10:00")

        availability = _availability(engine.compute_available_slots("barberia", "corte", MONDAY))

        assert availability["09:30"] is False
        assert availability["10:00"] is False
        assert availability["10:30"] is True

    def test_past_day_has_no_available_slots(self):
        engine, _, _ = _build_engine(now="2025-11-12 08:00")

        slots = engine.compute_available_slots("barberia", "corte", MONDAY)

        assert len(slots) == 18
        assert not any(slot.available for slot in slots)

    def test_slots_never_overlap(self):
        engine, _, _ = _build_engine()

        slots = engine.compute_available_slots("barberia", "color", MONDAY)

        for i, first in enumerate(slots):
            for second in slots[i + 1:]:
                assert not first.time_range.overlaps(second.time_range)

    @pytest.mark.parametrize("service_id", ["missing", "inactivo", "ajeno"])
    def test_unknown_or_foreign_service_raises(self, service_id):
        engine, _, _ = _build_engine()

        with pytest.raises(NotFoundError):
            engine.compute_available_slots("barberia", service_id, MONDAY)

    def test_unknown_business_raises(self):
        engine, _, _ = _build_engine()

        with pytest.raises(NotFoundError):
            engine.compute_available_slots("nadie", "corte", MONDAY)


class TestValidateBookingSlot:
    """Tests for validate_booking_slot."""

    def _validate(self, engine, start: str, end: str, **kwargs):
        return engine.validate_booking_slot(
            "barberia",
            pendulum.parse(start, tz=TZ),
            pendulum.parse(end, tz=TZ),
            **kwargs,
        )

    def test_free_slot_passes(self):
        engine, _, _ = _build_engine()

        assert self._validate(engine, "2025-11-10 17:30", "2025-11-10 18:00", service_id="corte") is None

    def test_start_not_before_end(self):
        engine, _, _ = _build_engine()

        with pytest.raises(InvalidIntervalError):
            self._validate(engine, "2025-11-10 10:00", "2025-11-10 10:00")

    def test_duration_mismatch(self):
        engine, _, _ = _build_engine()

        with pytest.raises(InvalidIntervalError, match="30 minutes"):
            self._validate(engine, "2025-11-10 10:00", "2025-11-10 11:00", service_id="corte")

    def test_closed_day(self):
        engine, _, _ = _build_engine()

        with pytest.raises(OutOfScheduleError):
            self._validate(engine, "2025-11-11 10:00", "2025-11-11 10:30", service_id="corte")

    def test_off_grid_start(self):
        engine, _, _ = _build_engine()

        with pytest.raises(OutOfScheduleError):
            self._validate(engine, "2025-11-10 10:10", "2025-11-10 10:40", service_id="corte")

    def test_past_closing_time(self):
        engine, _, _ = _build_engine()

        with pytest.raises(OutOfScheduleError):
            self._validate(engine, "2025-11-10 18:00", "2025-11-10 18:30", service_id="corte")

    def test_conflict_with_current_appointments(self):
        engine, _, _ = _build_engine(
            appointments=[_appointment("a1", "2025-11-10 10:15", "2025-11-10 10:45")]
        )

        with pytest.raises(ConflictError):
            self._validate(engine, "2025-11-10 10:30", "2025-11-10 11:00", service_id="corte")

    def test_excluded_appointment_is_ignored(self):
        engine, _, _ = _build_engine(
            appointments=[_appointment("a1", "2025-11-10 10:00", "2025-11-10 10:30")]
        )

        self._validate(
            engine,
            "2025-11-10 10:00",
            "2025-11-10 10:30",
            service_id="corte",
            exclude_appointment_id="a1",
        )

    def test_uses_supplied_appointments(self):
        """A supplied list replaces the store lookup; released ones are skipped."""
        engine, _, _ = _build_engine()
        supplied = [
            _appointment("x1", "2025-11-10 11:00", "2025-11-10 11:30"),
            _appointment("x2", "2025-11-10 12:00", "2025-11-10 12:30", AppointmentStatus.CANCELLED),
        ]

        with pytest.raises(ConflictError):
            self._validate(
                engine, "2025-11-10 11:00", "2025-11-10 11:30", existing_appointments=supplied
            )
        self._validate(engine, "2025-11-10 12:00", "2025-11-10 12:30", existing_appointments=supplied)

    def test_interval_given_in_another_timezone(self):
        """The proposed interval is mapped onto the business's local day."""
        engine, _, _ = _build_engine(
            appointments=[_appointment("a1", "2025-11-10 10:00", "2025-11-10 10:30")]
        )

        with pytest.raises(ConflictError):
            engine.validate_booking_slot(
                "barberia",
                pendulum.parse("2025-11-10T13:00:00+00:00"),
                pendulum.parse("2025-11-10T13:30:00+00:00"),
                service_id="corte",
            )

    def test_without_service_length_must_match_an_offered_service(self):
        """The whole day is not a slot just because it starts at opening time."""
        engine, _, _ = _build_engine()

        with pytest.raises(InvalidIntervalError, match="No active service"):
            self._validate(engine, "2025-11-10 09:00", "2025-11-10 18:00")

    def test_without_service_any_offered_duration_is_accepted(self):
        engine, _, _ = _build_engine()

        self._validate(engine, "2025-11-10 10:30", "2025-11-10 12:00")
        with pytest.raises(OutOfScheduleError):
            self._validate(engine, "2025-11-10 10:00", "2025-11-10 11:30")
