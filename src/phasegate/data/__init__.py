"""Data structures for phasegate.

Pure data + normalization helpers, plus light persistence adapters
(file and memory stores) so components can be unit-tested without a CLI.
"""

from .phase_types import Contract, Phase
from .event_log import Event, EventLog
from .status_store import StatusStore, StatusStorePaths, FileStatusStore, MemoryStatusStore

__all__ = [
    "Contract",
    "Phase",
    "Event",
    "EventLog",
    "StatusStore",
    "StatusStorePaths",
    "FileStatusStore",
    "MemoryStatusStore",
]
