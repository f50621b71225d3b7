"""
Management of a business's weekly opening hours.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol, Sequence

from ..domain.exceptions import ScheduleValidationError
from ..domain.models import WeeklySchedule

logger = logging.getLogger(__name__)

MIN_OPENING_MINUTES = 60


class ScheduleRepositoryProtocol(Protocol):
    """Protocol for reading and replacing a business's schedule rows."""

    def list_schedules(self, business_id: str) -> List[WeeklySchedule]:
        """Return all schedule rows, raising ``NotFoundError`` for unknown ids."""

    def replace_schedules(self, business_id: str, schedules: Sequence[WeeklySchedule]) -> None:
        """Atomically swap all schedule rows of a business."""


def validate_schedules(schedules: Sequence[WeeklySchedule]) -> None:
    """
    Check a full week of opening hours.

    Raises:
        ScheduleValidationError: On duplicate weekdays or a window shorter
            than one hour
    """
    seen_days: set[int] = set()
    for schedule in schedules:
        if schedule.day_of_week in seen_days:
            raise ScheduleValidationError(
                f"Duplicate schedule for day_of_week {schedule.day_of_week}"
            )
        seen_days.add(schedule.day_of_week)

        if schedule.duration_minutes() < MIN_OPENING_MINUTES:
            raise ScheduleValidationError(
                f"Opening hours {schedule.format_hours()} must span at least "
                f"{MIN_OPENING_MINUTES} minutes"
            )


class ScheduleService:
    """Validates and applies changes to weekly opening hours."""

    def __init__(self, repository: ScheduleRepositoryProtocol) -> None:
        self._repository = repository

    def list_schedules(self, business_id: str) -> List[WeeklySchedule]:
        """Schedule rows ordered by weekday (Sunday first)."""
        return sorted(
            self._repository.list_schedules(business_id),
            key=lambda s: s.day_of_week,
        )

    def get_schedule(self, business_id: str, day_of_week: int) -> Optional[WeeklySchedule]:
        for schedule in self._repository.list_schedules(business_id):
            if schedule.day_of_week == day_of_week:
                return schedule
        return None

    def replace_schedules(
        self,
        business_id: str,
        schedules: Sequence[WeeklySchedule],
    ) -> List[WeeklySchedule]:
        """Replace the whole week at once."""
        validate_schedules(schedules)
        self._repository.replace_schedules(business_id, list(schedules))
        logger.info("Replaced schedules of %s (%d days)", business_id, len(schedules))
        return self.list_schedules(business_id)

    def set_schedule(self, business_id: str, schedule: WeeklySchedule) -> List[WeeklySchedule]:
        """Create or update the row for one weekday."""
        others = [
            existing
            for existing in self._repository.list_schedules(business_id)
            if existing.day_of_week != schedule.day_of_week
        ]
        return self.replace_schedules(business_id, others + [schedule])

    def remove_schedule(self, business_id: str, day_of_week: int) -> List[WeeklySchedule]:
        """Delete the row for one weekday; the business is closed that day."""
        remaining = [
            existing
            for existing in self._repository.list_schedules(business_id)
            if existing.day_of_week != day_of_week
        ]
        return self.replace_schedules(business_id, remaining)
