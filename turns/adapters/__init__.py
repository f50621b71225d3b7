"""
Adapters layer - Business catalog and appointment persistence.
"""

from .catalog import ConfigBusinessDirectory
from .json_store import JsonAppointmentStore
from .memory_store import InMemoryAppointmentStore

__all__ = ["ConfigBusinessDirectory", "InMemoryAppointmentStore", "JsonAppointmentStore"]
