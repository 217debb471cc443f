"""Data model shared by the scanner, planner, resolver and engine."""

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Tuple


class SyncStatus(str, Enum):
    """Tracked status of a single path."""
    SYNCED = "synced"
    LOCAL_MODIFIED = "local_modified"
    REMOTE_MODIFIED = "remote_modified"
    CONFLICT = "conflict"
    PENDING_UPLOAD = "pending_upload"
    PENDING_DOWNLOAD = "pending_download"
    UPLOADING = "uploading"
    DOWNLOADING = "downloading"
    ERROR = "error"


PENDING_UPLOAD_STATUSES = frozenset({SyncStatus.PENDING_UPLOAD, SyncStatus.UPLOADING, SyncStatus.ERROR})
PENDING_DOWNLOAD_STATUSES = frozenset({SyncStatus.PENDING_DOWNLOAD, SyncStatus.DOWNLOADING, SyncStatus.ERROR})


class SyncAction(str, Enum):
    """Actions written to the sync history log."""
    UPLOAD = "upload"
    UPDATE = "update"
    DOWNLOAD = "download"
    DELETE_LOCAL = "delete_local"
    DELETE_REMOTE = "delete_remote"
    CREATE_FOLDER_LOCAL = "create_folder_local"
    CREATE_FOLDER_REMOTE = "create_folder_remote"
    CONFLICT_RESOLVED = "conflict_resolved"
    SKIP = "skip"


class SyncState(str, Enum):
    """Lifecycle state of the sync engine."""
    IDLE = "idle"
    SCANNING = "scanning"
    COMPARING = "comparing"
    SYNCING = "syncing"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


class ConflictResolutionStrategy(str, Enum):
    """Strategy for resolving sync conflicts."""
    KEEP_LOCAL = "keep_local"
    KEEP_REMOTE = "keep_remote"
    KEEP_NEWEST = "keep_newest"
    KEEP_BOTH = "keep_both"
    ASK_USER = "ask_user"


class SyncErrorType(str, Enum):
    """Classification of per-item errors."""
    NETWORK_ERROR = "network_error"
    AUTH_ERROR = "auth_error"
    CHECKSUM_MISMATCH = "checksum_mismatch"
    RATE_LIMITED = "rate_limited"
    PERMISSION_DENIED = "permission_denied"
    FILE_NOT_FOUND = "file_not_found"
    UNKNOWN = "unknown"


def path_depth(relative_path: str) -> int:
    """Number of path separators in a relative path."""
    return relative_path.count("/")


def parent_parts(relative_path: str) -> List[str]:
    """Folder names leading to a relative path, excluding the final name."""
    parts = [part for part in relative_path.split("/") if part]
    return parts[:-1]


@dataclass
class LocalEntry:
    """A file or folder found by scanning the local root."""

    relative_path: str
    name: str
    is_directory: bool
    size: int
    modified_time: float
    content_hash: Optional[str] = None
    mime_type: Optional[str] = None


@dataclass
class RemoteEntry:
    """A file or folder listed under the remote root."""

    id: str
    relative_path: str
    name: str
    is_directory: bool
    size: Optional[int] = None
    modified_time: Optional[float] = None
    content_hash: Optional[str] = None
    mime_type: Optional[str] = None
    native_doc_type: Optional[str] = None
    parents: Tuple[str, ...] = ()

    def with_path(self, relative_path: str, name: str) -> "RemoteEntry":
        """Copy of this entry at a different path."""
        return replace(self, relative_path=relative_path, name=name)


@dataclass
class TrackedRecord:
    """Last confirmed synchronized state of one path."""

    relative_path: str
    is_directory: bool = False
    size: int = 0
    local_modified_time: float = 0.0
    remote_id: Optional[str] = None
    remote_modified_time: Optional[float] = None
    local_hash: Optional[str] = None
    remote_hash: Optional[str] = None
    status: SyncStatus = SyncStatus.SYNCED
    last_sync_time: Optional[float] = None
    name: Optional[str] = None
    mime_type: Optional[str] = None

    def with_status(self, status: SyncStatus) -> "TrackedRecord":
        return replace(self, status=status)


@dataclass
class UploadItem:
    """A local file to upload; an existing remote id means update in place."""

    local: LocalEntry
    existing_remote_id: Optional[str] = None

    @property
    def is_update(self) -> bool:
        return self.existing_remote_id is not None


@dataclass
class ConflictItem:
    """A path changed on both sides."""

    local: LocalEntry
    remote: RemoteEntry
    tracked: Optional[TrackedRecord] = None


@dataclass
class SyncPlan:
    """Categorized actions computed for one sync run."""

    uploads: List[UploadItem] = field(default_factory=list)
    downloads: List[RemoteEntry] = field(default_factory=list)
    delete_local: List[TrackedRecord] = field(default_factory=list)
    delete_remote: List[TrackedRecord] = field(default_factory=list)
    create_folder_local: List[RemoteEntry] = field(default_factory=list)
    create_folder_remote: List[LocalEntry] = field(default_factory=list)
    conflicts: List[ConflictItem] = field(default_factory=list)
    unchanged: List[TrackedRecord] = field(default_factory=list)
    stale: List[TrackedRecord] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(
            self.uploads or self.downloads or self.delete_local or self.delete_remote
            or self.create_folder_local or self.create_folder_remote or self.conflicts
        )

    @property
    def total_actions(self) -> int:
        return (
            len(self.uploads) + len(self.downloads) + len(self.delete_local)
            + len(self.delete_remote) + len(self.create_folder_local)
            + len(self.create_folder_remote) + len(self.conflicts)
        )

    def summary(self) -> dict:
        """Counts per section, for logging."""
        return {
            "uploads": len(self.uploads),
            "downloads": len(self.downloads),
            "delete_local": len(self.delete_local),
            "delete_remote": len(self.delete_remote),
            "create_folder_local": len(self.create_folder_local),
            "create_folder_remote": len(self.create_folder_remote),
            "conflicts": len(self.conflicts),
            "unchanged": len(self.unchanged),
            "stale": len(self.stale),
        }


@dataclass
class ConflictInfo:
    """Snapshot of a path left in CONFLICT for an external decision."""

    local: LocalEntry
    remote: RemoteEntry

    @property
    def relative_path(self) -> str:
        return self.local.relative_path

    @property
    def file_name(self) -> str:
        return self.local.name

    @property
    def remote_id(self) -> str:
        return self.remote.id

    @property
    def local_modified_time(self) -> float:
        return self.local.modified_time

    @property
    def remote_modified_time(self) -> float:
        return self.remote.modified_time or 0.0

    @property
    def local_size(self) -> int:
        return self.local.size

    @property
    def remote_size(self) -> int:
        return self.remote.size or 0

    @property
    def local_hash(self) -> Optional[str]:
        return self.local.content_hash

    @property
    def remote_hash(self) -> Optional[str]:
        return self.remote.content_hash


@dataclass
class SyncError:
    """A failure recorded for one item."""

    path: str
    name: str
    error_type: SyncErrorType
    message: str


@dataclass
class SyncResult:
    """Outcome of one sync run."""

    success: bool
    state: SyncState = SyncState.COMPLETED
    uploaded: int = 0
    downloaded: int = 0
    deleted: int = 0
    folders_created: int = 0
    conflicts: List[ConflictInfo] = field(default_factory=list)
    errors: List[SyncError] = field(default_factory=list)
    duration: float = 0.0
    message: Optional[str] = None
    already_running: bool = False
    completed_at: Optional[float] = None

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def total_changes(self) -> int:
        return self.uploaded + self.downloaded + self.deleted


@dataclass
class SyncProgress:
    """Live progress snapshot of the running sync."""

    state: SyncState = SyncState.IDLE
    message: Optional[str] = None
    current_path: Optional[str] = None
    processed: int = 0
    total: int = 0
    uploaded: int = 0
    downloaded: int = 0
    deleted: int = 0
    conflicts: int = 0
    errors: int = 0
    updated_at: float = field(default_factory=time.time)

    @property
    def percent(self) -> float:
        if self.total <= 0:
            return 0.0
        return (self.processed / self.total) * 100

    @property
    def is_active(self) -> bool:
        return self.state in (SyncState.SCANNING, SyncState.COMPARING, SyncState.SYNCING)
