"""Repository classes mapping rows to tracking records."""

import time
from typing import Dict, List, Optional

from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from .models import SyncHistoryModel, TrackedFileModel
from ..core.models import SyncAction, SyncStatus, TrackedRecord
from ..utils.logging import get_logger


logger = get_logger("database.operations")


def to_record(row: TrackedFileModel) -> TrackedRecord:
    """Convert a database row to a TrackedRecord."""
    return TrackedRecord(
        relative_path=row.relative_path,
        is_directory=bool(row.is_directory),
        size=row.size or 0,
        local_modified_time=row.local_modified_time or 0.0,
        remote_id=row.remote_id,
        remote_modified_time=row.remote_modified_time,
        local_hash=row.local_hash,
        remote_hash=row.remote_hash,
        status=SyncStatus(row.status),
        last_sync_time=row.last_sync_time,
        name=row.name,
        mime_type=row.mime_type,
    )


class TrackedFileRepository:
    """Repository for tracked file operations."""

    def __init__(self, session: Session):
        self.session = session

    def get_all(self) -> List[TrackedRecord]:
        rows = self.session.query(TrackedFileModel).order_by(TrackedFileModel.relative_path).all()
        return [to_record(row) for row in rows]

    def get(self, relative_path: str) -> Optional[TrackedRecord]:
        row = self.session.get(TrackedFileModel, relative_path)
        return to_record(row) if row else None

    def get_by_status(self, status: SyncStatus) -> List[TrackedRecord]:
        rows = (
            self.session.query(TrackedFileModel)
            .filter(TrackedFileModel.status == status.value)
            .order_by(TrackedFileModel.relative_path)
            .all()
        )
        return [to_record(row) for row in rows]

    def upsert(self, record: TrackedRecord) -> None:
        """Insert or replace the row for a record's path."""
        row = self.session.get(TrackedFileModel, record.relative_path)
        if row is None:
            row = TrackedFileModel(relative_path=record.relative_path)
            self.session.add(row)

        row.name = record.name
        row.is_directory = record.is_directory
        row.size = record.size
        row.mime_type = record.mime_type
        row.local_modified_time = record.local_modified_time
        row.local_hash = record.local_hash
        row.remote_id = record.remote_id
        row.remote_modified_time = record.remote_modified_time
        row.remote_hash = record.remote_hash
        row.status = SyncStatus(record.status).value
        row.last_sync_time = record.last_sync_time
        row.updated_at = time.time()

    def update_status(self, relative_path: str, status: SyncStatus) -> bool:
        row = self.session.get(TrackedFileModel, relative_path)
        if row is None:
            return False
        row.status = status.value
        row.updated_at = time.time()
        return True

    def delete(self, relative_path: str) -> bool:
        row = self.session.get(TrackedFileModel, relative_path)
        if row is None:
            return False
        self.session.delete(row)
        return True

    def delete_all(self) -> int:
        deleted = self.session.query(TrackedFileModel).delete()
        logger.info("Tracking records cleared", count=deleted)
        return deleted

    def count_by_status(self) -> Dict[str, int]:
        rows = (
            self.session.query(TrackedFileModel.status, func.count(TrackedFileModel.relative_path))
            .group_by(TrackedFileModel.status)
            .all()
        )
        return {status: count for status, count in rows}


class SyncHistoryRepository:
    """Repository for the append-only sync history."""

    def __init__(self, session: Session):
        self.session = session

    def add(
        self,
        action: SyncAction,
        relative_path: str,
        success: bool,
        name: Optional[str] = None,
        error: Optional[str] = None,
        bytes_transferred: int = 0,
        duration_ms: int = 0,
        timestamp: Optional[float] = None
    ) -> SyncHistoryModel:
        entry = SyncHistoryModel(
            timestamp=timestamp or time.time(),
            action=action.value,
            relative_path=relative_path,
            name=name,
            success=success,
            error=error,
            bytes_transferred=bytes_transferred,
            duration_ms=duration_ms,
        )
        self.session.add(entry)
        self.session.flush()
        return entry

    def get_recent(self, limit: int = 50) -> List[SyncHistoryModel]:
        return (
            self.session.query(SyncHistoryModel)
            .order_by(desc(SyncHistoryModel.timestamp), desc(SyncHistoryModel.id))
            .limit(limit)
            .all()
        )

