"""Tracking store service used by the sync engine."""

import asyncio
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .database import DatabaseManager
from .operations import SyncHistoryRepository, TrackedFileRepository
from ..core.models import SyncAction, SyncStatus, TrackedRecord
from ..utils.logging import get_logger


@dataclass
class HistoryEntry:
    """One row of the sync history log."""

    timestamp: float
    action: SyncAction
    relative_path: str
    success: bool
    name: Optional[str] = None
    error: Optional[str] = None
    bytes_transferred: int = 0
    duration_ms: int = 0


class TrackingStore:
    """Persistent ledger of the last agreed state per relative path.

    Every call is serialized through one asyncio lock so concurrent
    transfers never interleave writes for the same path.
    """

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager
        self._lock = asyncio.Lock()
        self.logger = get_logger(self.__class__.__name__)

    @contextmanager
    def transaction(self):
        """Context manager for database transactions."""
        with self.db_manager.session_scope() as session:
            yield session

    async def get_all(self) -> List[TrackedRecord]:
        async with self._lock:
            with self.transaction() as session:
                return TrackedFileRepository(session).get_all()

    async def get(self, relative_path: str) -> Optional[TrackedRecord]:
        async with self._lock:
            with self.transaction() as session:
                return TrackedFileRepository(session).get(relative_path)

    async def save(self, record: TrackedRecord) -> None:
        async with self._lock:
            with self.transaction() as session:
                TrackedFileRepository(session).upsert(record)

    async def save_all(self, records: Iterable[TrackedRecord]) -> int:
        """Upsert several records in one transaction."""
        count = 0
        async with self._lock:
            with self.transaction() as session:
                repo = TrackedFileRepository(session)
                for record in records:
                    repo.upsert(record)
                    count += 1
        return count

    async def update_status(self, relative_path: str, status: SyncStatus) -> bool:
        async with self._lock:
            with self.transaction() as session:
                return TrackedFileRepository(session).update_status(relative_path, status)

    async def delete(self, relative_path: str) -> bool:
        async with self._lock:
            with self.transaction() as session:
                return TrackedFileRepository(session).delete(relative_path)

    async def delete_many(self, relative_paths: Iterable[str]) -> int:
        deleted = 0
        async with self._lock:
            with self.transaction() as session:
                repo = TrackedFileRepository(session)
                for path in relative_paths:
                    if repo.delete(path):
                        deleted += 1
        return deleted

    async def clear(self) -> int:
        async with self._lock:
            with self.transaction() as session:
                return TrackedFileRepository(session).delete_all()

    async def count_by_status(self) -> Dict[str, int]:
        async with self._lock:
            with self.transaction() as session:
                return TrackedFileRepository(session).count_by_status()

    async def get_conflicts(self) -> List[TrackedRecord]:
        async with self._lock:
            with self.transaction() as session:
                return TrackedFileRepository(session).get_by_status(SyncStatus.CONFLICT)

    async def log_action(
        self,
        action: SyncAction,
        relative_path: str,
        success: bool,
        name: Optional[str] = None,
        error: Optional[str] = None,
        bytes_transferred: int = 0,
        duration_ms: int = 0
    ) -> None:
        """Append one row to the sync history."""
        async with self._lock:
            with self.transaction() as session:
                SyncHistoryRepository(session).add(
                    action,
                    relative_path,
                    success,
                    name=name,
                    error=error,
                    bytes_transferred=bytes_transferred,
                    duration_ms=duration_ms,
                )

    async def recent_history(self, limit: int = 50) -> List[HistoryEntry]:
        async with self._lock:
            with self.transaction() as session:
                rows = SyncHistoryRepository(session).get_recent(limit)
                return [
                    HistoryEntry(
                        timestamp=row.timestamp,
                        action=SyncAction(row.action),
                        relative_path=row.relative_path,
                        success=bool(row.success),
                        name=row.name,
                        error=row.error,
                        bytes_transferred=row.bytes_transferred or 0,
                        duration_ms=row.duration_ms or 0,
                    )
                    for row in rows
                ]
