"""Tests for conflict resolution."""

from datetime import datetime

from foldersync.core.conflict_resolver import ConflictAction, ConflictResolver
from foldersync.core.models import ConflictResolutionStrategy, LocalEntry, RemoteEntry

NOW = datetime(2026, 10, 19, 12, 0, 0)


def make_pair(local_time=100.0, remote_time=100.0, name="report.docx"):
    local = LocalEntry(relative_path=f"docs/{name}", name=name, is_directory=False,
                       size=10, modified_time=local_time, content_hash="local")
    remote = RemoteEntry(id="remote-1", relative_path=f"docs/{name}", name=name,
                         is_directory=False, size=12, modified_time=remote_time, content_hash="remote")
    return local, remote


class TestConflictResolver:
    """Test cases for ConflictResolver."""

    def setup_method(self):
        self.resolver = ConflictResolver()

    def test_keep_local_and_keep_remote(self):
        local, remote = make_pair()

        assert self.resolver.resolve(
            local, remote, ConflictResolutionStrategy.KEEP_LOCAL
        ).action == ConflictAction.UPLOAD_LOCAL
        assert self.resolver.resolve(
            local, remote, ConflictResolutionStrategy.KEEP_REMOTE
        ).action == ConflictAction.DOWNLOAD_REMOTE

    def test_keep_newest(self):
        local, remote = make_pair(local_time=200.0, remote_time=100.0)
        assert self.resolver.resolve(
            local, remote, ConflictResolutionStrategy.KEEP_NEWEST
        ).action == ConflictAction.UPLOAD_LOCAL

        local, remote = make_pair(local_time=100.0, remote_time=200.0)
        assert self.resolver.resolve(
            local, remote, ConflictResolutionStrategy.KEEP_NEWEST
        ).action == ConflictAction.DOWNLOAD_REMOTE

    def test_keep_newest_tie_goes_to_local(self):
        local, remote = make_pair(local_time=150.0, remote_time=150.0)
        resolution = self.resolver.resolve(local, remote, ConflictResolutionStrategy.KEEP_NEWEST)
        assert resolution.action == ConflictAction.UPLOAD_LOCAL

    def test_keep_both_preserves_extension(self):
        local, remote = make_pair()

        resolution = self.resolver.resolve(local, remote, ConflictResolutionStrategy.KEEP_BOTH, NOW)

        assert resolution.action == ConflictAction.KEEP_BOTH
        assert resolution.new_name == "report_conflict_20261019_120000.docx"
        assert resolution.local is local
        assert resolution.remote is remote

    def test_ask_user_is_pending(self):
        local, remote = make_pair()
        resolution = self.resolver.resolve(local, remote, ConflictResolutionStrategy.ASK_USER)

        assert resolution.action == ConflictAction.PENDING_USER_INPUT
        assert resolution.new_name is None

    def test_resolve_batch_uses_one_timestamp(self):
        pairs = [make_pair(name="a.txt"), make_pair(name="b.txt")]

        resolutions = self.resolver.resolve_batch(pairs, ConflictResolutionStrategy.KEEP_BOTH, NOW)

        assert [r.new_name for r in resolutions] == [
            "a_conflict_20261019_120000.txt",
            "b_conflict_20261019_120000.txt",
        ]


class TestConflictFileName:
    """Test cases for conflict copy naming."""

    def test_only_final_extension_is_kept(self):
        name = ConflictResolver.conflict_file_name("archive.tar.gz", NOW)
        assert name == "archive.tar_conflict_20261019_120000.gz"

    def test_no_extension(self):
        assert ConflictResolver.conflict_file_name("Makefile", NOW) == "Makefile_conflict_20261019_120000"

    def test_dotfile(self):
        assert ConflictResolver.conflict_file_name(".env", NOW) == ".env_conflict_20261019_120000"

    def test_defaults_to_current_time(self):
        name = ConflictResolver.conflict_file_name("notes.md")
        assert name.startswith("notes_conflict_")
        assert name.endswith(".md")
        assert len(name) == len("notes_conflict_YYYYMMDD_HHMMSS.md")
