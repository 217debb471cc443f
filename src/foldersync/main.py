"""Command line entry point."""

import argparse
import asyncio
import signal
import sys
from datetime import datetime
from typing import List, Optional

from .api_clients.credentials import GoogleCredentialProvider
from .api_clients.google_drive import GoogleDriveClient
from .config.loader import ConfigLoader, SyncPairConfig
from .config.settings import AppSettings, get_settings
from .core.filesystem import LocalFileSystem
from .core.models import ConflictResolutionStrategy, SyncResult
from .core.network import ConnectivityNetworkMonitor
from .core.sync_engine import SyncEngine
from .database import DatabaseManager, TrackingStore, init_database
from .exceptions import AuthenticationError, ConfigurationError, PreconditionError
from .utils.logging import get_logger, setup_logging

EXIT_OK = 0
EXIT_INCOMPLETE = 1
EXIT_PRECONDITION = 2
EXIT_AUTH = 3
EXIT_CONFIG = 4


class FolderSyncApp:
    """Wires settings, tracking store, Drive client and engine together."""

    def __init__(self, settings: Optional[AppSettings] = None):
        self.settings = settings or get_settings()
        self.logger = get_logger("FolderSync")
        self.db_manager: Optional[DatabaseManager] = None
        self.store: Optional[TrackingStore] = None
        self.remote: Optional[GoogleDriveClient] = None
        self.engine: Optional[SyncEngine] = None

    def startup(self) -> None:
        self.logger.info(
            "Starting folder sync",
            version=self.settings.version,
            environment=self.settings.environment
        )
        self.db_manager = init_database(self.settings.database.url, create_tables=True)
        self.store = TrackingStore(self.db_manager)

    async def shutdown(self) -> None:
        if self.remote:
            await self.remote.close()
        if self.db_manager:
            self.db_manager.close()
        self.logger.info("Folder sync stopped")

    def build_engine(self, pair: SyncPairConfig) -> SyncEngine:
        overrides = {}
        if pair.conflict_strategy is not None:
            overrides["conflict_strategy"] = pair.conflict_strategy
        if pair.unmetered_only is not None:
            overrides["unmetered_only"] = pair.unmetered_only
        sync_settings = self.settings.sync.model_copy(update=overrides)

        credentials = GoogleCredentialProvider.from_authorized_user_file(
            self.settings.credentials.token_file,
            scopes=self.settings.credentials.scopes
        )
        self.remote = GoogleDriveClient(credentials, drive_settings=self.settings.drive)
        self.engine = SyncEngine(
            filesystem=LocalFileSystem(),
            remote=self.remote,
            store=self.store,
            credentials=credentials,
            network=ConnectivityNetworkMonitor(unmetered=not sync_settings.metered_connection),
            sync_settings=sync_settings,
        )
        return self.engine

    async def run_sync(self, pair: SyncPairConfig) -> int:
        engine = self.build_engine(pair)
        setup_signal_handlers(engine)

        try:
            result = await engine.sync(pair.local_root, pair.remote_root_id)
        except PreconditionError as e:
            self.logger.error("Sync cannot start", reason=e.reason, error=str(e))
            print(f"Sync cannot start: {e}")
            return EXIT_PRECONDITION
        except AuthenticationError as e:
            self.logger.error("Authentication failed", error=str(e))
            print(f"Authentication failed: {e}")
            return EXIT_AUTH

        print_result(result)
        return EXIT_OK if result.success else EXIT_INCOMPLETE

    async def show_status(self) -> int:
        counts = await self.store.count_by_status()
        conflicts = await self.store.get_conflicts()

        if not counts:
            print("No tracked files")
        for status, count in sorted(counts.items()):
            print(f"{status:>18}: {count}")
        if conflicts:
            print("\nPending conflicts:")
            for record in conflicts:
                print(f"  {record.relative_path}")
        return EXIT_OK

    async def show_history(self, limit: int) -> int:
        entries = await self.store.recent_history(limit)
        for entry in entries:
            when = datetime.fromtimestamp(entry.timestamp).strftime("%Y-%m-%d %H:%M:%S")
            outcome = "ok" if entry.success else f"failed: {entry.error}"
            print(
                f"{when}  {entry.action.value:<20} {entry.relative_path}  "
                f"{entry.bytes_transferred}B {entry.duration_ms}ms  {outcome}"
            )
        return EXIT_OK


def print_result(result: SyncResult) -> None:
    print(result.message or result.state.value)
    print(
        f"uploaded={result.uploaded} downloaded={result.downloaded} deleted={result.deleted} "
        f"folders={result.folders_created} conflicts={len(result.conflicts)} "
        f"errors={len(result.errors)} duration={result.duration:.1f}s"
    )
    for conflict in result.conflicts:
        print(f"  conflict: {conflict.relative_path}")
    for error in result.errors:
        print(f"  error: {error.path} ({error.error_type.value}): {error.message}")


def setup_signal_handlers(engine: SyncEngine) -> None:
    """Turn SIGINT and SIGTERM into a cooperative cancel."""
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, engine.cancel)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform's event loop
            pass


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="foldersync", description="Two-way folder sync with Google Drive")
    parser.add_argument("--log-level", help="Override the configured log level")
    parser.add_argument("--log-format", choices=["console", "json"], help="Override the log format")

    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Run one sync for the configured folder pair")
    sync_parser.add_argument("--config", "-c", help="Sync pair file (YAML or JSON)")
    sync_parser.add_argument("--local-root", help="Local directory to synchronize")
    sync_parser.add_argument("--remote-root-id", help="Drive folder id to synchronize with")
    sync_parser.add_argument(
        "--strategy",
        choices=[strategy.value for strategy in ConflictResolutionStrategy],
        help="Conflict resolution strategy for this run"
    )

    subparsers.add_parser("status", help="Show tracked files by status and pending conflicts")

    history_parser = subparsers.add_parser("history", help="Show recent sync actions")
    history_parser.add_argument("--limit", type=int, default=20)

    return parser


def load_pair(args: argparse.Namespace) -> SyncPairConfig:
    loader = ConfigLoader()
    if args.config:
        pair = loader.load_from_file(args.config)
    else:
        data = {}
        if args.local_root:
            data["local_root"] = args.local_root
        if args.remote_root_id:
            data["remote_root_id"] = args.remote_root_id
        pair = loader.load_from_dict(data)

    if args.strategy:
        pair = pair.model_copy(update={"conflict_strategy": ConflictResolutionStrategy(args.strategy)})
    return pair


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    setup_logging(log_level=args.log_level, log_format=args.log_format)
    logger = get_logger("main")

    app = FolderSyncApp()
    try:
        app.startup()
        if args.command == "sync":
            try:
                pair = load_pair(args)
            except ConfigurationError as e:
                logger.error("Invalid configuration", error=str(e))
                print(f"Invalid configuration: {e}")
                return EXIT_CONFIG
            return await app.run_sync(pair)
        if args.command == "status":
            return await app.show_status()
        return await app.show_history(args.limit)
    finally:
        await app.shutdown()


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
        sys.exit(130)


if __name__ == "__main__":
    run()
