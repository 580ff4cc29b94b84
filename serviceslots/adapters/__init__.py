"""
Adapters layer - External integrations (booking backend API, local data).
"""

from .api_store import ApiAppointmentStore
from .memory_store import InMemoryAppointmentStore

__all__ = ["ApiAppointmentStore", "InMemoryAppointmentStore"]
