"""
Core business logic for partitioning opening hours into bookable slots.

Pure domain logic without any external dependencies (no store, no clock,
no I/O). Everything it needs is passed in by the caller.
"""

from typing import Iterable, List, Optional

from pendulum import DateTime

from .models import Slot, TimeRange


class SlotCalculator:
    """
    Calculates candidate slots for one opening window.

    Algorithm:
    1. Partition the window into consecutive blocks of the service duration
    2. Drop a trailing block that would run past closing time
    3. Mark every block overlapping an occupied range as unavailable
    4. Mark every block that does not start strictly after "now" as unavailable
    """

    def partition(self, window: TimeRange, duration_minutes: int) -> List[TimeRange]:
        """
        Split a window into back-to-back ranges of ``duration_minutes``.

        Example (30 minutes):
        Window: 09:00 - 10:45
        Result: [09:00-09:30, 09:30-10:00, 10:00-10:30]
        """
        if duration_minutes <= 0:
            raise ValueError(f"Duration must be positive, got {duration_minutes}")

        blocks: List[TimeRange] = []
        current = window.start

        while True:
            block_end = current.add(minutes=duration_minutes)
            # Half-open: a block may end exactly at closing time
            if block_end > window.end:
                break
            blocks.append(TimeRange(start=current, end=block_end))
            current = block_end

        return blocks

    def build_slots(
        self,
        window: TimeRange,
        duration_minutes: int,
        occupied: Iterable[TimeRange],
        now: Optional[DateTime] = None,
    ) -> List[Slot]:
        """
        Build the ordered slot list for a window.

        Args:
            window: Opening hours on the requested day
            duration_minutes: Length of each slot
            occupied: Ranges held by blocking appointments
            now: Current instant; slots starting at or before it are unavailable

        Returns:
            List of Slot objects in ascending start order
        """
        sorted_occupied = sorted(occupied, key=lambda r: r.start)
        slots: List[Slot] = []

        for block in self.partition(window, duration_minutes):
            available = not self.find_conflicts(block, sorted_occupied)
            if available and now is not None and block.start <= now:
                available = False
            slots.append(Slot(time_range=block, available=available))

        return slots

    def find_conflicts(
        self,
        proposed: TimeRange,
        occupied: Iterable[TimeRange],
    ) -> List[TimeRange]:
        """Return every occupied range intersecting ``proposed``."""
        return [busy for busy in occupied if proposed.overlaps(busy)]

    def is_on_boundary(
        self,
        window: TimeRange,
        proposed: TimeRange,
        duration_minutes: int,
    ) -> bool:
        """
        Check that ``proposed`` is exactly one of the blocks produced by
        ``partition(window, duration_minutes)``.
        """
        if not window.contains(proposed):
            return False
        if (proposed.end - proposed.start).total_seconds() != duration_minutes * 60:
            return False

        offset_seconds = (proposed.start - window.start).total_seconds()
        return offset_seconds % (duration_minutes * 60) == 0
