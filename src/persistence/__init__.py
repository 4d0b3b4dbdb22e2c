"""
Persistence Layer

Provides JSON document storage, diagnostic run tracking and the GAP
snapshot archive.
"""

from .storage import StorageBackend, FileStorage, MemoryStorage, get_storage_backend
from .diagnostic_runs import DiagnosticRun, DiagnosticRunStatus, DiagnosticRunTracker
from .snapshots import SnapshotExistsError, SnapshotStore

__all__ = [
    "StorageBackend",
    "FileStorage",
    "MemoryStorage",
    "get_storage_backend",
    "DiagnosticRun",
    "DiagnosticRunStatus",
    "DiagnosticRunTracker",
    "SnapshotExistsError",
    "SnapshotStore",
]
