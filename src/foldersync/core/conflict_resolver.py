"""Conflict resolution for files changed on both sides since the last sync."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from .models import ConflictResolutionStrategy, LocalEntry, RemoteEntry

CONFLICT_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


class ConflictAction(str, Enum):
    """What the engine does with a conflicting path."""
    UPLOAD_LOCAL = "upload_local"
    DOWNLOAD_REMOTE = "download_remote"
    KEEP_BOTH = "keep_both"
    PENDING_USER_INPUT = "pending_user_input"


@dataclass
class ConflictResolution:
    """Decision for one conflict; ``new_name`` is only set for KEEP_BOTH."""

    action: ConflictAction
    local: LocalEntry
    remote: RemoteEntry
    new_name: Optional[str] = None


class ConflictResolver:
    """Maps a conflict and a strategy to a single action.

    Resolution is pure: nothing is transferred here.
    """

    def resolve(
        self,
        local: LocalEntry,
        remote: RemoteEntry,
        strategy: ConflictResolutionStrategy,
        now: Optional[datetime] = None
    ) -> ConflictResolution:
        if strategy == ConflictResolutionStrategy.KEEP_LOCAL:
            return ConflictResolution(ConflictAction.UPLOAD_LOCAL, local, remote)

        if strategy == ConflictResolutionStrategy.KEEP_REMOTE:
            return ConflictResolution(ConflictAction.DOWNLOAD_REMOTE, local, remote)

        if strategy == ConflictResolutionStrategy.KEEP_NEWEST:
            # Ties go to the local copy
            if local.modified_time >= (remote.modified_time or 0.0):
                return ConflictResolution(ConflictAction.UPLOAD_LOCAL, local, remote)
            return ConflictResolution(ConflictAction.DOWNLOAD_REMOTE, local, remote)

        if strategy == ConflictResolutionStrategy.KEEP_BOTH:
            return ConflictResolution(
                ConflictAction.KEEP_BOTH,
                local,
                remote,
                new_name=self.conflict_file_name(local.name, now)
            )

        return ConflictResolution(ConflictAction.PENDING_USER_INPUT, local, remote)

    def resolve_batch(
        self,
        conflicts: Iterable[Tuple[LocalEntry, RemoteEntry]],
        strategy: ConflictResolutionStrategy,
        now: Optional[datetime] = None
    ) -> List[ConflictResolution]:
        """Resolve several conflicts with the same strategy and timestamp."""
        now = now or datetime.now()
        return [self.resolve(local, remote, strategy, now) for local, remote in conflicts]

    @staticmethod
    def conflict_file_name(name: str, now: Optional[datetime] = None) -> str:
        """Insert a timestamped conflict suffix before the final extension.

        Example: ``report.docx`` becomes ``report_conflict_20261019_120000.docx``.
        Names without an extension, and dot-files such as ``.env``, get the
        suffix appended instead.
        """
        suffix = "conflict_" + (now or datetime.now()).strftime(CONFLICT_TIMESTAMP_FORMAT)
        dot = name.rfind(".")
        if dot > 0:
            return f"{name[:dot]}_{suffix}{name[dot:]}"
        return f"{name}_{suffix}"
