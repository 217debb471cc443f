"""Sync planning: three-way comparison of local tree, remote tree and tracking."""

import time
from enum import Enum
from typing import Dict, Iterable, List, Optional, TypeVar

from .models import (
    ConflictItem,
    LocalEntry,
    PENDING_DOWNLOAD_STATUSES,
    PENDING_UPLOAD_STATUSES,
    RemoteEntry,
    SyncPlan,
    SyncStatus,
    TrackedRecord,
    UploadItem,
    path_depth,
)
from ..utils.logging import get_logger

T = TypeVar("T")

DEFAULT_TIME_TOLERANCE = 2.0


class FileComparison(str, Enum):
    """Outcome of comparing one file present on both sides."""
    IDENTICAL = "identical"
    LOCAL_NEWER = "local_newer"
    REMOTE_NEWER = "remote_newer"
    CONFLICT = "conflict"


def _index(items: Iterable[T], path_of) -> Dict[str, T]:
    """Key items by lowercase relative path, skipping blank paths."""
    indexed: Dict[str, T] = {}
    for item in items:
        path = path_of(item)
        if not path or not path.strip():
            continue
        indexed[path.lower()] = item
    return indexed


def _union(*maps: Dict[str, T]) -> List[str]:
    keys: List[str] = []
    seen = set()
    for mapping in maps:
        for key in mapping:
            if key not in seen:
                seen.add(key)
                keys.append(key)
    return keys


class SyncPlanner:
    """Builds a SyncPlan from a snapshot of both trees and the tracking store.

    The planner is pure: it never reads or writes the tracking store itself.
    Remote entries must already carry their local-equivalent paths (see
    ``native_docs.normalize_remote_entry``).
    """

    def __init__(self, time_tolerance: float = DEFAULT_TIME_TOLERANCE):
        self.time_tolerance = time_tolerance
        self.logger = get_logger(self.__class__.__name__)

    def create_plan(
        self,
        local_entries: Iterable[LocalEntry],
        remote_entries: Iterable[RemoteEntry],
        tracked_records: Iterable[TrackedRecord],
        now: Optional[float] = None
    ) -> SyncPlan:
        """Compute the actions needed to reconcile both sides.

        Args:
            local_entries: Scanned local files and folders
            remote_entries: Listed remote files and folders
            tracked_records: Snapshot of the tracking store
            now: Timestamp stamped on refreshed unchanged records

        Returns:
            SyncPlan with folder creates ordered shallow-first and deletions
            ordered deep-first
        """
        now = time.time() if now is None else now

        local_map = _index(local_entries, lambda entry: entry.relative_path)
        remote_map = _index(remote_entries, lambda entry: entry.relative_path)
        tracked_map = _index(tracked_records, lambda record: record.relative_path)

        plan = SyncPlan()

        self._plan_files(
            {k: v for k, v in local_map.items() if not v.is_directory},
            {k: v for k, v in remote_map.items() if not v.is_directory},
            {k: v for k, v in tracked_map.items() if not v.is_directory},
            plan,
            now
        )
        self._plan_folders(
            {k: v for k, v in local_map.items() if v.is_directory},
            {k: v for k, v in remote_map.items() if v.is_directory},
            {k: v for k, v in tracked_map.items() if v.is_directory},
            plan,
            now
        )

        plan.create_folder_local.sort(key=lambda entry: path_depth(entry.relative_path))
        plan.create_folder_remote.sort(key=lambda entry: path_depth(entry.relative_path))
        plan.delete_local.sort(key=lambda record: path_depth(record.relative_path), reverse=True)
        plan.delete_remote.sort(key=lambda record: path_depth(record.relative_path), reverse=True)

        self.logger.debug("Sync plan created", **plan.summary())
        return plan

    def _plan_files(
        self,
        local_files: Dict[str, LocalEntry],
        remote_files: Dict[str, RemoteEntry],
        tracked_files: Dict[str, TrackedRecord],
        plan: SyncPlan,
        now: float
    ) -> None:
        for key in _union(local_files, remote_files, tracked_files):
            local = local_files.get(key)
            remote = remote_files.get(key)
            tracked = tracked_files.get(key)

            if local is not None and remote is not None:
                comparison = self.compare_files(local, remote, tracked)
                if comparison == FileComparison.IDENTICAL:
                    plan.unchanged.append(self._synced_record(local, remote, now))
                elif comparison == FileComparison.LOCAL_NEWER:
                    plan.uploads.append(UploadItem(local, existing_remote_id=remote.id))
                elif comparison == FileComparison.REMOTE_NEWER:
                    plan.downloads.append(remote)
                else:
                    plan.conflicts.append(ConflictItem(local, remote, tracked))

            elif local is not None:
                if tracked is not None and tracked.remote_id is not None:
                    if tracked.status in PENDING_UPLOAD_STATUSES:
                        plan.uploads.append(UploadItem(local, existing_remote_id=tracked.remote_id))
                    else:
                        plan.delete_local.append(tracked)
                else:
                    plan.uploads.append(UploadItem(local))

            elif remote is not None:
                if tracked is not None and tracked.status not in PENDING_DOWNLOAD_STATUSES:
                    plan.delete_remote.append(tracked)
                else:
                    plan.downloads.append(remote)

            elif tracked is not None:
                plan.stale.append(tracked)

    def _plan_folders(
        self,
        local_folders: Dict[str, LocalEntry],
        remote_folders: Dict[str, RemoteEntry],
        tracked_folders: Dict[str, TrackedRecord],
        plan: SyncPlan,
        now: float
    ) -> None:
        for key in _union(local_folders, remote_folders, tracked_folders):
            local = local_folders.get(key)
            remote = remote_folders.get(key)
            tracked = tracked_folders.get(key)

            if local is not None and remote is not None:
                plan.unchanged.append(self._synced_record(local, remote, now))
            elif local is not None:
                if tracked is not None and tracked.remote_id is not None:
                    plan.delete_local.append(tracked)
                else:
                    plan.create_folder_remote.append(local)
            elif remote is not None:
                if tracked is not None:
                    plan.delete_remote.append(tracked)
                else:
                    plan.create_folder_local.append(remote)
            elif tracked is not None:
                plan.stale.append(tracked)

    def compare_files(
        self,
        local: LocalEntry,
        remote: RemoteEntry,
        tracked: Optional[TrackedRecord] = None
    ) -> FileComparison:
        """Decide which side of a file present on both sides is current."""
        local_hash = local.content_hash
        remote_hash = remote.content_hash
        if local_hash is not None and remote_hash is not None and local_hash == remote_hash:
            return FileComparison.IDENTICAL

        local_modified = local.modified_time
        remote_modified = remote.modified_time or 0.0

        if tracked is not None and tracked.last_sync_time is not None:
            local_changed = local_modified > tracked.last_sync_time
            remote_changed = remote_modified > tracked.last_sync_time
            if local_changed and remote_changed:
                return FileComparison.CONFLICT
            if local_changed:
                return FileComparison.LOCAL_NEWER
            if remote_changed:
                return FileComparison.REMOTE_NEWER
            return FileComparison.IDENTICAL

        # Best effort without tracking: equal timestamps with no hashes look identical.
        difference = local_modified - remote_modified
        if abs(difference) < self.time_tolerance:
            if local_hash is not None and remote_hash is not None:
                return FileComparison.CONFLICT
            return FileComparison.IDENTICAL
        if difference > 0:
            return FileComparison.LOCAL_NEWER
        return FileComparison.REMOTE_NEWER

    @staticmethod
    def _synced_record(local: LocalEntry, remote: RemoteEntry, now: float) -> TrackedRecord:
        return TrackedRecord(
            relative_path=local.relative_path,
            is_directory=local.is_directory,
            size=0 if local.is_directory else local.size,
            local_modified_time=local.modified_time,
            remote_id=remote.id,
            remote_modified_time=remote.modified_time,
            local_hash=local.content_hash,
            remote_hash=remote.content_hash,
            status=SyncStatus.SYNCED,
            last_sync_time=now,
            name=local.name,
            mime_type=local.mime_type,
        )
