"""
Domain-specific exception hierarchy for the booking engine.
"""


class TurnsError(Exception):
    """Base class for all application-level errors."""


class NotFoundError(TurnsError):
    """Raised when a business, service or appointment reference does not resolve."""


class InvalidIntervalError(TurnsError):
    """Raised when a proposed interval is malformed or has the wrong length."""


class OutOfScheduleError(TurnsError):
    """Raised when a proposed interval does not match the weekly opening hours."""


class ConflictError(TurnsError):
    """Raised when a proposed interval overlaps an occupied appointment."""


class InvalidTransitionError(TurnsError):
    """Raised when an appointment status change is not allowed."""


class ScheduleValidationError(TurnsError):
    """Raised when weekly opening hours are malformed."""


class StoreError(TurnsError):
    """Raised when appointment data cannot be read or written."""
