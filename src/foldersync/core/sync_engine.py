"""Sync engine orchestrating two-way synchronization of one folder pair."""

import asyncio
import posixpath
import time
from dataclasses import replace
from functools import partial
from typing import Awaitable, Callable, Iterable, List, Optional, TypeVar

from .conflict_resolver import ConflictAction, ConflictResolution, ConflictResolver
from .filesystem import PARTIAL_SUFFIX, FileSystemProvider
from .hasher import ContentHasher
from .models import (
    ConflictInfo,
    ConflictItem,
    ConflictResolutionStrategy,
    LocalEntry,
    RemoteEntry,
    SyncAction,
    SyncError,
    SyncErrorType,
    SyncPlan,
    SyncProgress,
    SyncResult,
    SyncState,
    SyncStatus,
    TrackedRecord,
    UploadItem,
    parent_parts,
)
from .native_docs import export_rule_for, normalize_remote_entry
from .network import NetworkMonitor
from .planner import SyncPlanner
from .scanner import LocalTreeScanner
from ..api_clients.base import CredentialProvider, RemoteStorageClient
from ..config.settings import SyncSettings, get_settings
from ..database.service import TrackingStore
from ..exceptions import (
    AuthenticationError,
    ChecksumMismatchError,
    FolderSyncError,
    NotFoundError,
    PreconditionError,
    RateLimitError,
    RemoteAPIError,
)
from ..utils.logging import get_logger

T = TypeVar("T")

ProgressListener = Callable[[SyncProgress], None]


class _SyncCancelled(Exception):
    """Raised internally when a cancel request is observed between items."""


class SyncEngine:
    """Core sync engine for reconciling a local folder with a remote folder.

    Collaborators are passed in explicitly; the engine keeps no global state
    beyond the single-flight lock and the progress snapshot.
    """

    def __init__(
        self,
        filesystem: FileSystemProvider,
        remote: RemoteStorageClient,
        store: TrackingStore,
        credentials: CredentialProvider,
        network: NetworkMonitor,
        sync_settings: Optional[SyncSettings] = None,
        scanner: Optional[LocalTreeScanner] = None,
        planner: Optional[SyncPlanner] = None,
        resolver: Optional[ConflictResolver] = None,
        hasher: Optional[ContentHasher] = None,
        clock: Optional[Callable[[], float]] = None
    ):
        """Initialize sync engine.

        Args:
            filesystem: Local filesystem provider
            remote: Remote storage client
            store: Tracking store for the folder pair
            credentials: Credential provider used for the authentication check
            network: Network monitor used for the connectivity checks
            sync_settings: Conflict strategy, network policy and concurrency
            scanner: Local tree scanner, built from filesystem when omitted
            planner: Sync planner, built from sync_settings when omitted
            resolver: Conflict resolver
            hasher: Content hasher used for download verification
            clock: Time source returning POSIX seconds
        """
        self.filesystem = filesystem
        self.remote = remote
        self.store = store
        self.credentials = credentials
        self.network = network
        self.sync_settings = sync_settings or get_settings().sync
        self.hasher = hasher or ContentHasher()
        self.scanner = scanner or LocalTreeScanner(filesystem, self.hasher)
        self.planner = planner or SyncPlanner(self.sync_settings.time_tolerance_seconds)
        self.resolver = resolver or ConflictResolver()
        self.clock = clock or time.time

        self.logger = get_logger(self.__class__.__name__)

        self._lock = asyncio.Lock()
        self._cancel_requested = False
        self._progress = SyncProgress(updated_at=self.clock())
        self._listeners: List[ProgressListener] = []

    # Public API

    @property
    def progress(self) -> SyncProgress:
        return self._progress

    @property
    def state(self) -> SyncState:
        return self._progress.state

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def add_progress_listener(self, listener: ProgressListener) -> None:
        self._listeners.append(listener)

    def remove_progress_listener(self, listener: ProgressListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def cancel(self) -> None:
        """Request cancellation; the current item finishes, the next is skipped."""
        if self._lock.locked():
            self.logger.info("Sync cancellation requested")
            self._cancel_requested = True

    async def sync(self, local_root: str, remote_root_id: str) -> SyncResult:
        """Run one full two-way sync of a folder pair.

        Args:
            local_root: Local directory to synchronize
            remote_root_id: Remote folder id to synchronize with

        Returns:
            SyncResult; ``success`` is True only with no errors and no
            unresolved conflicts

        Raises:
            PreconditionError: Not authenticated, offline, or blocked by the
                network policy. Raised before anything is read or written.
            AuthenticationError: Credentials were rejected mid-run.
        """
        await self._check_preconditions()

        if self._lock.locked():
            self.logger.warning("Sync already in progress", local_root=str(local_root))
            return SyncResult(
                success=False,
                state=self.state,
                already_running=True,
                message="Sync already in progress"
            )

        async with self._lock:
            return await self._guarded_run(
                local_root,
                remote_root_id,
                lambda result: self._execute_sync(local_root, remote_root_id, result)
            )

    async def resolve_conflict(
        self,
        conflict: ConflictInfo,
        strategy: ConflictResolutionStrategy,
        local_root: str,
        remote_root_id: str
    ) -> SyncResult:
        """Apply a decision for a conflict returned by an earlier sync.

        Args:
            conflict: Conflict reported in a previous SyncResult
            strategy: Any strategy except ASK_USER
            local_root: Local directory of the pair
            remote_root_id: Remote folder id of the pair

        Returns:
            SyncResult describing the transfers made for this conflict
        """
        if strategy == ConflictResolutionStrategy.ASK_USER:
            raise ValueError("A concrete strategy is required to resolve a conflict")

        await self._check_preconditions()

        if self._lock.locked():
            return SyncResult(
                success=False,
                state=self.state,
                already_running=True,
                message="Sync already in progress"
            )

        async with self._lock:
            return await self._guarded_run(
                local_root,
                remote_root_id,
                lambda result: self._execute_resolution(conflict, strategy, local_root, remote_root_id, result)
            )

    # Run lifecycle

    async def _check_preconditions(self) -> None:
        if not await self.credentials.get_access_token():
            raise PreconditionError("Not authenticated", PreconditionError.NOT_AUTHENTICATED)

        if not await self.network.is_online():
            raise PreconditionError("No network connection", PreconditionError.OFFLINE)

        if self.sync_settings.unmetered_only and not await self.network.is_unmetered():
            raise PreconditionError(
                "Unmetered-only mode enabled, but the current connection is metered",
                PreconditionError.NETWORK_POLICY
            )

    async def _guarded_run(
        self,
        local_root: str,
        remote_root_id: str,
        body: Callable[[SyncResult], Awaitable[SyncResult]]
    ) -> SyncResult:
        self._cancel_requested = False
        started = self.clock()
        result = SyncResult(success=False)

        try:
            result = await body(result)

        except _SyncCancelled:
            self.logger.info("Sync cancelled", local_root=str(local_root))
            self._update_progress(state=SyncState.CANCELLED, message="Sync cancelled")
            result.state = SyncState.CANCELLED
            result.success = False
            result.message = "Sync cancelled"

        except asyncio.CancelledError:
            self._update_progress(state=SyncState.CANCELLED, message="Sync cancelled")
            self._reset_progress()
            raise

        except AuthenticationError as e:
            self.logger.error("Sync aborted, credentials rejected", error=str(e))
            self._update_progress(state=SyncState.ERROR, message=str(e))
            self._reset_progress()
            raise

        except Exception as e:
            self.logger.error(
                "Sync failed with unexpected error",
                local_root=str(local_root),
                remote_root_id=remote_root_id,
                error=str(e),
                exc_info=True
            )
            self._update_progress(state=SyncState.ERROR, message=str(e))
            result.state = SyncState.ERROR
            result.success = False
            result.message = f"Sync failed: {e}"

        finally:
            self._cancel_requested = False

        result.duration = self.clock() - started
        result.completed_at = self.clock()
        self._reset_progress()
        return result

    def _finish(self, result: SyncResult, message: Optional[str] = None) -> SyncResult:
        result.state = SyncState.COMPLETED
        result.success = not result.errors and not result.conflicts
        if message:
            result.message = message
        elif result.conflicts:
            result.message = f"{len(result.conflicts)} conflicts need resolution"
        elif result.errors:
            result.message = f"{len(result.errors)} errors occurred"
        else:
            result.message = (
                f"Synced: {result.uploaded} uploaded, {result.downloaded} downloaded, "
                f"{result.deleted} deleted"
            )
        self._update_progress(state=SyncState.COMPLETED, message=result.message, current_path=None)
        self.logger.info(
            "Sync completed",
            success=result.success,
            uploaded=result.uploaded,
            downloaded=result.downloaded,
            deleted=result.deleted,
            folders_created=result.folders_created,
            conflicts=len(result.conflicts),
            errors=len(result.errors)
        )
        return result

    def _ensure_not_cancelled(self) -> None:
        if self._cancel_requested:
            raise _SyncCancelled()

    # Sync run

    async def _execute_sync(self, local_root: str, remote_root_id: str, result: SyncResult) -> SyncResult:
        self.logger.info("Starting sync", local_root=str(local_root), remote_root_id=remote_root_id)

        self._update_progress(state=SyncState.SCANNING, message="Scanning local and remote folders")
        local_entries, remote_entries = await asyncio.gather(
            self.scanner.scan(local_root),
            self.remote.list_tree(remote_root_id)
        )
        remote_entries = [normalize_remote_entry(entry) for entry in remote_entries]
        self._ensure_not_cancelled()

        self._update_progress(state=SyncState.COMPARING, message="Comparing with sync history")
        tracked = await self.store.get_all()
        plan = self.planner.create_plan(local_entries, remote_entries, tracked, now=self.clock())
        self.logger.info("Sync plan created", **plan.summary())

        if plan.stale:
            dropped = await self.store.delete_many(record.relative_path for record in plan.stale)
            self.logger.info("Dropped tracking for paths gone from both sides", count=dropped)

        if not plan.has_changes:
            if plan.unchanged:
                await self.store.save_all(plan.unchanged)
            return self._finish(result, "Already in sync")

        self._update_progress(
            state=SyncState.SYNCING,
            message="Syncing",
            processed=0,
            total=plan.total_actions
        )
        await self._execute_plan(plan, local_root, remote_root_id, result)
        return self._finish(result)

    async def _execute_plan(
        self,
        plan: SyncPlan,
        local_root: str,
        remote_root_id: str,
        result: SyncResult
    ) -> None:
        for folder in plan.create_folder_remote:
            self._ensure_not_cancelled()
            await self._create_remote_folder(folder, remote_root_id, result)

        for remote_folder in plan.create_folder_local:
            self._ensure_not_cancelled()
            await self._create_local_folder(remote_folder, local_root, result)

        await self._run_transfers(
            plan.uploads,
            lambda item: self._upload_item(item, local_root, remote_root_id, result)
        )
        await self._run_transfers(
            plan.downloads,
            lambda remote: self._download_item(remote, local_root, result)
        )

        for record in plan.delete_local:
            self._ensure_not_cancelled()
            await self._delete_local_item(record, local_root, result)

        for record in plan.delete_remote:
            self._ensure_not_cancelled()
            await self._delete_remote_item(record, result)

        strategy = self.sync_settings.conflict_strategy
        for conflict in plan.conflicts:
            self._ensure_not_cancelled()
            await self._handle_conflict(conflict, strategy, local_root, remote_root_id, result)

        self._ensure_not_cancelled()
        if plan.unchanged:
            await self.store.save_all(plan.unchanged)

    async def _run_transfers(self, items: Iterable[T], worker: Callable[[T], Awaitable[bool]]) -> None:
        """Run transfers with at most ``max_concurrent_transfers`` in flight."""
        items = list(items)
        if not items:
            return

        limit = self.sync_settings.max_concurrent_transfers
        if limit <= 1:
            for item in items:
                self._ensure_not_cancelled()
                await worker(item)
            return

        semaphore = asyncio.Semaphore(limit)

        async def guarded(item: T) -> None:
            async with semaphore:
                if self._cancel_requested:
                    return
                await worker(item)

        tasks = [asyncio.ensure_future(guarded(item)) for item in items]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        self._ensure_not_cancelled()

    # Folder actions

    async def _create_remote_folder(self, folder: LocalEntry, remote_root_id: str, result: SyncResult) -> None:
        started = self.clock()
        self._update_progress(current_path=folder.relative_path, message=f"Creating folder {folder.name}")
        try:
            folder_id = await self.remote.find_or_create_folder_path(
                remote_root_id, folder.relative_path.split("/")
            )
        except AuthenticationError as e:
            await self._record_failure(folder.relative_path, folder.name, SyncAction.CREATE_FOLDER_REMOTE, e, result, started)
            raise
        except Exception as e:
            await self._record_failure(folder.relative_path, folder.name, SyncAction.CREATE_FOLDER_REMOTE, e, result, started)
            return

        await self.store.save(TrackedRecord(
            relative_path=folder.relative_path,
            is_directory=True,
            local_modified_time=folder.modified_time,
            remote_id=folder_id,
            status=SyncStatus.SYNCED,
            last_sync_time=self.clock(),
            name=folder.name,
        ))
        result.folders_created += 1
        await self._record_success(SyncAction.CREATE_FOLDER_REMOTE, folder.relative_path, folder.name, 0, started)

    async def _create_local_folder(self, folder: RemoteEntry, local_root: str, result: SyncResult) -> None:
        started = self.clock()
        self._update_progress(current_path=folder.relative_path, message=f"Creating folder {folder.name}")
        try:
            self.filesystem.ensure_path(local_root, folder.relative_path)
        except Exception as e:
            await self._record_failure(folder.relative_path, folder.name, SyncAction.CREATE_FOLDER_LOCAL, e, result, started)
            return

        await self.store.save(TrackedRecord(
            relative_path=folder.relative_path,
            is_directory=True,
            local_modified_time=self.clock(),
            remote_id=folder.id,
            remote_modified_time=folder.modified_time,
            status=SyncStatus.SYNCED,
            last_sync_time=self.clock(),
            name=folder.name,
        ))
        result.folders_created += 1
        await self._record_success(SyncAction.CREATE_FOLDER_LOCAL, folder.relative_path, folder.name, 0, started)

    # Uploads

    async def _upload_item(
        self,
        item: UploadItem,
        local_root: str,
        remote_root_id: str,
        result: SyncResult,
        target_name: Optional[str] = None
    ) -> bool:
        local = item.local
        action = SyncAction.UPDATE if item.is_update else SyncAction.UPLOAD
        started = self.clock()
        self._update_progress(current_path=local.relative_path, message=f"Uploading {local.name}")

        await self.store.save(TrackedRecord(
            relative_path=local.relative_path,
            size=local.size,
            local_modified_time=local.modified_time,
            remote_id=item.existing_remote_id,
            local_hash=local.content_hash,
            status=SyncStatus.PENDING_UPLOAD,
            name=local.name,
            mime_type=local.mime_type,
        ))

        try:
            uploaded = await self._push(local, local_root, remote_root_id, item.existing_remote_id, target_name)
        except AuthenticationError as e:
            await self._record_failure(local.relative_path, local.name, action, e, result, started)
            raise
        except Exception as e:
            await self._record_failure(local.relative_path, local.name, action, e, result, started)
            return False

        await self.store.save(TrackedRecord(
            relative_path=local.relative_path,
            size=local.size,
            local_modified_time=local.modified_time,
            remote_id=uploaded.id,
            remote_modified_time=uploaded.modified_time,
            local_hash=local.content_hash,
            remote_hash=uploaded.content_hash,
            status=SyncStatus.SYNCED,
            last_sync_time=self.clock(),
            name=local.name,
            mime_type=local.mime_type,
        ))
        result.uploaded += 1
        self._update_progress(uploaded=result.uploaded)
        await self._record_success(action, local.relative_path, local.name, local.size, started)
        return True

    async def _push(
        self,
        local: LocalEntry,
        local_root: str,
        remote_root_id: str,
        existing_remote_id: Optional[str],
        target_name: Optional[str] = None
    ) -> RemoteEntry:
        open_source = partial(self.filesystem.open, local_root, local.relative_path)
        on_progress = self._transfer_progress(local.relative_path, "Uploading")

        if existing_remote_id:
            try:
                return await self.remote.update_file(
                    existing_remote_id,
                    open_source,
                    local.size,
                    mime_type=local.mime_type,
                    name=target_name or local.name,
                    on_progress=on_progress
                )
            except NotFoundError:
                self.logger.warning(
                    "Remote file disappeared, uploading as new",
                    path=local.relative_path,
                    remote_id=existing_remote_id
                )

        parents = parent_parts(local.relative_path)
        parent_id = remote_root_id
        if parents:
            parent_id = await self.remote.find_or_create_folder_path(remote_root_id, parents)

        return await self.remote.upload_file(
            target_name or local.name,
            parent_id,
            open_source,
            local.size,
            mime_type=local.mime_type,
            on_progress=on_progress
        )

    # Downloads

    async def _download_item(self, remote: RemoteEntry, local_root: str, result: SyncResult) -> bool:
        path = remote.relative_path
        started = self.clock()
        self._update_progress(current_path=path, message=f"Downloading {remote.name}")

        await self.store.save(TrackedRecord(
            relative_path=path,
            size=remote.size or 0,
            remote_id=remote.id,
            remote_modified_time=remote.modified_time,
            remote_hash=remote.content_hash,
            status=SyncStatus.PENDING_DOWNLOAD,
            name=remote.name,
            mime_type=remote.mime_type,
        ))

        try:
            local = await self._pull(remote, local_root)
        except AuthenticationError as e:
            await self._record_failure(path, remote.name, SyncAction.DOWNLOAD, e, result, started)
            raise
        except Exception as e:
            await self._record_failure(path, remote.name, SyncAction.DOWNLOAD, e, result, started)
            return False

        await self.store.save(TrackedRecord(
            relative_path=path,
            size=local.size,
            local_modified_time=local.modified_time,
            remote_id=remote.id,
            remote_modified_time=remote.modified_time,
            local_hash=local.content_hash,
            remote_hash=remote.content_hash,
            status=SyncStatus.SYNCED,
            last_sync_time=self.clock(),
            name=local.name,
            mime_type=local.mime_type,
        ))
        result.downloaded += 1
        self._update_progress(downloaded=result.downloaded)
        await self._record_success(SyncAction.DOWNLOAD, path, local.name, local.size, started)
        return True

    async def _pull(self, remote: RemoteEntry, local_root: str) -> LocalEntry:
        """Download into a partial file, verify it, then move it into place."""
        path = remote.relative_path
        partial_path = path + PARTIAL_SUFFIX
        rule = export_rule_for(remote.native_doc_type)

        offset = 0
        if rule is None:
            offset = self.filesystem.size(local_root, partial_path) or 0
            if remote.size is not None and offset > remote.size:
                offset = 0
        if offset:
            self.logger.info("Resuming partial download", path=path, offset=offset)

        def open_sink(append: bool):
            return self.filesystem.create(local_root, partial_path, remote.mime_type, append=append)

        await self.remote.download_file(
            remote.id,
            open_sink,
            offset=offset,
            export_mime_type=rule.export_mime_type if rule else None,
            on_progress=self._transfer_progress(path, "Downloading"),
            size=remote.size
        )

        actual = await self.hasher.hash_opened_async(partial(self.filesystem.open, local_root, partial_path))
        if rule is None and remote.content_hash and actual.lower() != remote.content_hash.lower():
            self.filesystem.delete(local_root, partial_path)
            raise ChecksumMismatchError(path, remote.content_hash, actual)

        self.filesystem.move(local_root, partial_path, path)
        entry = self.filesystem.stat(local_root, path)
        return replace(entry, content_hash=actual)

    # Deletes

    async def _delete_local_item(self, record: TrackedRecord, local_root: str, result: SyncResult) -> None:
        started = self.clock()
        name = record.name or posixpath.basename(record.relative_path)
        self._update_progress(current_path=record.relative_path, message=f"Deleting {name}")
        try:
            removed = self.filesystem.delete(local_root, record.relative_path)
        except Exception as e:
            # Status stays as is so the next run retries the delete
            await self._record_failure(
                record.relative_path, name, SyncAction.DELETE_LOCAL, e, result, started, mark_error=False
            )
            return

        await self.store.delete(record.relative_path)
        if removed:
            result.deleted += 1
            self._update_progress(deleted=result.deleted)
        await self._record_success(SyncAction.DELETE_LOCAL, record.relative_path, name, 0, started)

    async def _delete_remote_item(self, record: TrackedRecord, result: SyncResult) -> None:
        started = self.clock()
        name = record.name or posixpath.basename(record.relative_path)
        self._update_progress(current_path=record.relative_path, message=f"Deleting {name}")
        try:
            if record.remote_id:
                await self.remote.delete_file(
                    record.remote_id,
                    permanent=not self.sync_settings.trash_instead_of_delete
                )
        except AuthenticationError as e:
            await self._record_failure(
                record.relative_path, name, SyncAction.DELETE_REMOTE, e, result, started, mark_error=False
            )
            raise
        except Exception as e:
            await self._record_failure(
                record.relative_path, name, SyncAction.DELETE_REMOTE, e, result, started, mark_error=False
            )
            return

        await self.store.delete(record.relative_path)
        result.deleted += 1
        self._update_progress(deleted=result.deleted)
        await self._record_success(SyncAction.DELETE_REMOTE, record.relative_path, name, 0, started)

    # Conflicts

    async def _handle_conflict(
        self,
        conflict: ConflictItem,
        strategy: ConflictResolutionStrategy,
        local_root: str,
        remote_root_id: str,
        result: SyncResult
    ) -> None:
        if strategy == ConflictResolutionStrategy.ASK_USER:
            result.conflicts.append(ConflictInfo(conflict.local, conflict.remote))
            self._update_progress(conflicts=len(result.conflicts))
            await self.store.save(self._conflict_record(conflict))
            self.logger.info("Conflict needs user decision", path=conflict.local.relative_path)
            return

        resolution = self.resolver.resolve(conflict.local, conflict.remote, strategy)
        await self._apply_resolution(resolution, local_root, remote_root_id, result)

    def _conflict_record(self, conflict: ConflictItem) -> TrackedRecord:
        if conflict.tracked is not None:
            return conflict.tracked.with_status(SyncStatus.CONFLICT)
        local, remote = conflict.local, conflict.remote
        return TrackedRecord(
            relative_path=local.relative_path,
            size=local.size,
            local_modified_time=local.modified_time,
            remote_id=remote.id,
            remote_modified_time=remote.modified_time,
            local_hash=local.content_hash,
            remote_hash=remote.content_hash,
            status=SyncStatus.CONFLICT,
            name=local.name,
            mime_type=local.mime_type,
        )

    async def _apply_resolution(
        self,
        resolution: ConflictResolution,
        local_root: str,
        remote_root_id: str,
        result: SyncResult
    ) -> bool:
        local, remote = resolution.local, resolution.remote
        started = self.clock()

        if resolution.action == ConflictAction.UPLOAD_LOCAL:
            succeeded = await self._upload_item(
                UploadItem(local, existing_remote_id=remote.id), local_root, remote_root_id, result
            )

        elif resolution.action == ConflictAction.DOWNLOAD_REMOTE:
            succeeded = await self._download_item(remote, local_root, result)

        elif resolution.action == ConflictAction.KEEP_BOTH:
            succeeded = await self._keep_both(resolution, local_root, remote_root_id, result)

        else:
            return False

        if succeeded:
            await self.store.log_action(
                SyncAction.CONFLICT_RESOLVED,
                local.relative_path,
                True,
                name=local.name,
                duration_ms=int((self.clock() - started) * 1000)
            )
        return succeeded

    async def _keep_both(
        self,
        resolution: ConflictResolution,
        local_root: str,
        remote_root_id: str,
        result: SyncResult
    ) -> bool:
        """Keep both versions on both sides under distinct names."""
        local, remote = resolution.local, resolution.remote
        directory = posixpath.dirname(local.relative_path)
        conflict_path = posixpath.join(directory, resolution.new_name) if directory else resolution.new_name

        try:
            self.filesystem.move(local_root, local.relative_path, conflict_path)
        except Exception as e:
            await self._record_failure(
                local.relative_path, local.name, SyncAction.CONFLICT_RESOLVED, e, result, self.clock()
            )
            return False

        await self.store.delete(local.relative_path)
        self.logger.info("Kept both versions", path=local.relative_path, conflict_copy=conflict_path)

        renamed = replace(local, relative_path=conflict_path, name=resolution.new_name)
        uploaded = await self._upload_item(UploadItem(renamed), local_root, remote_root_id, result)
        downloaded = await self._download_item(remote, local_root, result)
        return uploaded and downloaded

    async def _execute_resolution(
        self,
        conflict: ConflictInfo,
        strategy: ConflictResolutionStrategy,
        local_root: str,
        remote_root_id: str,
        result: SyncResult
    ) -> SyncResult:
        self._update_progress(state=SyncState.SYNCING, message="Resolving conflict", processed=0, total=1)

        current = self.filesystem.stat(local_root, conflict.relative_path)
        if current is None or current.is_directory:
            result.errors.append(SyncError(
                path=conflict.relative_path,
                name=conflict.file_name,
                error_type=SyncErrorType.FILE_NOT_FOUND,
                message="Local file no longer exists"
            ))
            return self._finish(result)

        current_hash = await self.hasher.hash_opened_async(
            partial(self.filesystem.open, local_root, conflict.relative_path)
        )
        local = replace(current, content_hash=current_hash)
        resolution = self.resolver.resolve(local, conflict.remote, strategy)
        await self._apply_resolution(resolution, local_root, remote_root_id, result)
        return self._finish(result)

    # Bookkeeping

    async def _record_success(
        self,
        action: SyncAction,
        path: str,
        name: str,
        bytes_transferred: int,
        started: float
    ) -> None:
        self._item_processed()
        await self.store.log_action(
            action,
            path,
            True,
            name=name,
            bytes_transferred=bytes_transferred,
            duration_ms=int((self.clock() - started) * 1000)
        )

    async def _record_failure(
        self,
        path: str,
        name: str,
        action: SyncAction,
        error: Exception,
        result: SyncResult,
        started: float,
        mark_error: bool = True
    ) -> None:
        error_type = self._classify_error(error)
        self.logger.error(
            "Sync item failed",
            path=path,
            action=action.value,
            error_type=error_type.value,
            error=str(error)
        )
        result.errors.append(SyncError(path=path, name=name, error_type=error_type, message=str(error)))
        if mark_error:
            await self.store.update_status(path, SyncStatus.ERROR)
        self._item_processed()
        self._update_progress(errors=len(result.errors))
        await self.store.log_action(
            action,
            path,
            False,
            name=name,
            error=str(error),
            duration_ms=int((self.clock() - started) * 1000)
        )

    @staticmethod
    def _classify_error(error: Exception) -> SyncErrorType:
        if isinstance(error, AuthenticationError):
            return SyncErrorType.AUTH_ERROR
        if isinstance(error, ChecksumMismatchError):
            return SyncErrorType.CHECKSUM_MISMATCH
        if isinstance(error, RateLimitError):
            return SyncErrorType.RATE_LIMITED
        if isinstance(error, (NotFoundError, FileNotFoundError)):
            return SyncErrorType.FILE_NOT_FOUND
        if isinstance(error, PermissionError):
            return SyncErrorType.PERMISSION_DENIED
        if isinstance(error, RemoteAPIError):
            if error.status_code == 403:
                return SyncErrorType.PERMISSION_DENIED
            return SyncErrorType.NETWORK_ERROR
        if isinstance(error, (OSError, FolderSyncError)):
            return SyncErrorType.NETWORK_ERROR
        return SyncErrorType.UNKNOWN

    # Progress

    def _transfer_progress(self, path: str, verb: str) -> Callable[[int, int], None]:
        def report(done: int, total: int) -> None:
            if total > 0:
                message = f"{verb} {posixpath.basename(path)}: {int(done * 100 / total)}%"
            else:
                message = f"{verb} {posixpath.basename(path)}"
            self._update_progress(current_path=path, message=message)
        return report

    def _item_processed(self) -> None:
        self._update_progress(processed=self._progress.processed + 1)

    def _update_progress(self, **changes) -> None:
        self._progress = replace(self._progress, updated_at=self.clock(), **changes)
        for listener in list(self._listeners):
            try:
                listener(self._progress)
            except Exception as e:
                self.logger.warning("Progress listener failed", error=str(e))

    def _reset_progress(self) -> None:
        self._update_progress(state=SyncState.IDLE, current_path=None)
