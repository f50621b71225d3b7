"""
Domain models for businesses, weekly opening hours, appointments and slots.
"""

import re
from dataclasses import dataclass
from datetime import date, time
from enum import Enum
from typing import Dict, FrozenSet, Optional

import pendulum
from pendulum import DateTime

from .exceptions import ScheduleValidationError

CLOCK_PATTERN = re.compile(r"^([0-1][0-9]|2[0-3]):([0-5][0-9])$")

# 0=Sunday, 6=Saturday
WEEKDAY_NAMES = {
    0: "Domingo",
    1: "Lunes",
    2: "Martes",
    3: "Miércoles",
    4: "Jueves",
    5: "Viernes",
    6: "Sábado",
}


def parse_clock_time(value: str) -> time:
    """Parse an ``HH:MM`` wall-clock string (00:00 - 23:59)."""
    match = CLOCK_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ScheduleValidationError(
            f"Invalid time format {value!r}. Expected HH:MM (00:00 - 23:59)"
        )
    return time(hour=int(match.group(1)), minute=int(match.group(2)))


def weekday_index(day: date) -> int:
    """Return the weekday of ``day`` with 0=Sunday ... 6=Saturday."""
    return day.isoweekday() % 7


def local_datetime(day: date, clock: time, timezone: str) -> DateTime:
    """Place a wall-clock time on a calendar day in the given timezone."""
    return pendulum.datetime(
        day.year, day.month, day.day, clock.hour, clock.minute, tz=timezone
    )


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable half-open time range [start, end).

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    @classmethod
    def for_day(cls, day: date, timezone: str) -> "TimeRange":
        """The whole calendar day in the given timezone."""
        start = pendulum.datetime(day.year, day.month, day.day, tz=timezone)
        return cls(start=start, end=start.add(days=1))

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another."""
        return self.start < other.end and other.start < self.end

    def contains(self, other: "TimeRange") -> bool:
        """Check whether ``other`` lies entirely inside this range."""
        return self.start <= other.start and other.end <= self.end

    def __str__(self) -> str:
        return f"{self.start.format('DD/MM/YYYY HH:mm')} - {self.end.format('HH:mm')}"


@dataclass(frozen=True)
class WeeklySchedule:
    """
    Recurring opening hours of a business for one weekday.
    """
    day_of_week: int  # 0=Sunday, 6=Saturday
    start_time: time
    end_time: time
    is_active: bool = True

    def __post_init__(self):
        if self.day_of_week not in range(7):
            raise ScheduleValidationError(
                f"day_of_week must be between 0 and 6, got {self.day_of_week}"
            )
        if self.start_time >= self.end_time:
            raise ScheduleValidationError(
                f"Opening time {self.start_time:%H:%M} must be before "
                f"closing time {self.end_time:%H:%M}"
            )

    @classmethod
    def from_strings(
        cls,
        day_of_week: int,
        start_time: str,
        end_time: str,
        is_active: bool = True,
    ) -> "WeeklySchedule":
        """Build a schedule from ``HH:MM`` strings."""
        return cls(
            day_of_week=day_of_week,
            start_time=parse_clock_time(start_time),
            end_time=parse_clock_time(end_time),
            is_active=is_active,
        )

    def duration_minutes(self) -> int:
        start = self.start_time.hour * 60 + self.start_time.minute
        end = self.end_time.hour * 60 + self.end_time.minute
        return end - start

    def window_for(self, day: date, timezone: str) -> TimeRange:
        """
        Get the opening hours as a concrete range on ``day``.

        Raises:
            ValueError: If ``day`` falls on a different weekday
        """
        if weekday_index(day) != self.day_of_week:
            raise ValueError(
                f"{day} is not a {WEEKDAY_NAMES[self.day_of_week]}"
            )
        return TimeRange(
            start=local_datetime(day, self.start_time, timezone),
            end=local_datetime(day, self.end_time, timezone),
        )

    def format_hours(self) -> str:
        return f"{self.start_time:%H:%M} - {self.end_time:%H:%M}"


@dataclass(frozen=True)
class Business:
    """A business that takes bookings."""
    id: str
    name: str
    timezone: str = "America/Argentina/Buenos_Aires"
    is_active: bool = True


@dataclass(frozen=True)
class Service:
    """A bookable service offered by a business."""
    id: str
    business_id: str
    name: str
    duration_minutes: int
    is_active: bool = True
    price: Optional[float] = None

    def __post_init__(self):
        if self.duration_minutes <= 0:
            raise ValueError(
                f"Service duration must be positive, got {self.duration_minutes}"
            )


class AppointmentStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"


BLOCKING_STATUSES: FrozenSet[AppointmentStatus] = frozenset(
    {AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED}
)

ALLOWED_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {
            AppointmentStatus.CANCELLED,
            AppointmentStatus.COMPLETED,
            AppointmentStatus.NO_SHOW,
        }
    ),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}


@dataclass
class Appointment:
    """
    A booking of a service at a business.

    Only PENDING and CONFIRMED appointments occupy their interval.
    """
    id: str
    business_id: str
    service_id: str
    customer: str
    start_time: DateTime
    end_time: DateTime
    status: AppointmentStatus = AppointmentStatus.PENDING
    notes: Optional[str] = None
    created_at: Optional[DateTime] = None
    cancelled_at: Optional[DateTime] = None
    completed_at: Optional[DateTime] = None

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start_time, end=self.end_time)

    def is_blocking(self) -> bool:
        """Whether this appointment still occupies its interval."""
        return self.status in BLOCKING_STATUSES

    def can_transition_to(self, status: AppointmentStatus) -> bool:
        return status in ALLOWED_TRANSITIONS[self.status]


@dataclass(frozen=True)
class Slot:
    """
    A candidate bookable interval, generated fresh on every query.
    """
    time_range: TimeRange
    available: bool = True

    @property
    def start_time(self) -> DateTime:
        return self.time_range.start

    @property
    def end_time(self) -> DateTime:
        return self.time_range.end

    def format_display(self) -> str:
        """
        Format the slot for display.
        Format: Día, DD/MM/YYYY | HH:MM – HH:MM hs
        """
        start = self.time_range.start
        end = self.time_range.end

        weekday = WEEKDAY_NAMES[weekday_index(start)]
        date_str = start.format("DD/MM/YYYY")
        time_str = f"{start.format('HH:mm')} – {end.format('HH:mm')} hs"

        return f"{weekday}, {date_str} | {time_str}"
