"""Tracking store persistence."""

from .database import DatabaseManager, init_database
from .models import Base, SyncHistoryModel, TrackedFileModel
from .service import HistoryEntry, TrackingStore

__all__ = [
    "Base",
    "DatabaseManager",
    "HistoryEntry",
    "SyncHistoryModel",
    "TrackedFileModel",
    "TrackingStore",
    "init_database",
]
