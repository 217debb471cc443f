"""Tests for content hashing and native document export rules."""

import io

import pytest

from foldersync.core.hasher import ContentHasher
from foldersync.core.models import RemoteEntry
from foldersync.core.native_docs import (
    FOLDER_MIME_TYPE,
    export_rule_for,
    is_exportable,
    is_folder,
    is_native_document,
    local_path_for,
    normalize_remote_entry,
)

HELLO_MD5 = "5d41402abc4b2a76b9719d911017c592"

DOCUMENT = "application/vnd.google-apps.document"
FORM = "application/vnd.google-apps.form"


class TestContentHasher:
    """Test cases for ContentHasher."""

    def setup_method(self):
        # Tiny chunks force the streaming loop through several reads
        self.hasher = ContentHasher(chunk_size=2)

    def test_hash_bytes_and_stream_agree(self):
        assert self.hasher.hash_bytes(b"hello") == HELLO_MD5
        assert self.hasher.hash_stream(io.BytesIO(b"hello")) == HELLO_MD5

    def test_hash_stream_starts_at_current_position(self):
        stream = io.BytesIO(b"xxhello")
        stream.seek(2)
        assert self.hasher.hash_stream(stream) == HELLO_MD5

    def test_hash_file(self, tmp_path):
        path = tmp_path / "hello.txt"
        path.write_bytes(b"hello")
        assert self.hasher.hash_file(path) == HELLO_MD5

    def test_hash_opened_closes_stream(self):
        stream = io.BytesIO(b"hello")
        assert self.hasher.hash_opened(lambda: stream) == HELLO_MD5
        assert stream.closed

    @pytest.mark.asyncio
    async def test_async_variants(self, tmp_path):
        path = tmp_path / "hello.txt"
        path.write_bytes(b"hello")

        assert await self.hasher.hash_file_async(path) == HELLO_MD5
        assert await self.hasher.hash_opened_async(lambda: open(path, "rb")) == HELLO_MD5

    def test_other_algorithm(self):
        hasher = ContentHasher("sha256")
        assert hasher.hash_bytes(b"") == (
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )

    def test_unknown_algorithm_rejected(self):
        with pytest.raises(ValueError):
            ContentHasher("not-a-hash")


class TestNativeDocs:
    """Test cases for native document rules."""

    def _entry(self, path, mime_type, is_directory=False):
        return RemoteEntry(
            id="id-1",
            relative_path=path,
            name=path.rsplit("/", 1)[-1],
            is_directory=is_directory,
            mime_type=mime_type,
            native_doc_type=mime_type if is_native_document(mime_type) else None,
        )

    def test_type_checks(self):
        assert is_folder(FOLDER_MIME_TYPE)
        assert not is_native_document(FOLDER_MIME_TYPE)
        assert is_native_document(DOCUMENT)
        assert not is_native_document("text/plain")
        assert not is_native_document(None)

    def test_export_rules(self):
        assert export_rule_for(DOCUMENT).extension == ".docx"
        assert export_rule_for("application/vnd.google-apps.spreadsheet").extension == ".xlsx"
        assert export_rule_for("application/vnd.google-apps.presentation").extension == ".pptx"
        assert export_rule_for("application/vnd.google-apps.drawing").export_mime_type == "image/png"
        assert export_rule_for(None) is None
        assert is_exportable(DOCUMENT)
        assert not is_exportable(FORM)

    def test_local_path_for_native_document(self):
        assert local_path_for(self._entry("Reports/Q3", DOCUMENT)) == "Reports/Q3.docx"

    def test_extension_not_doubled(self):
        assert local_path_for(self._entry("Q3.DOCX", DOCUMENT)) == "Q3.DOCX"

    def test_regular_files_untouched(self):
        entry = self._entry("notes.txt", "text/plain")
        assert local_path_for(entry) == "notes.txt"
        assert normalize_remote_entry(entry) is entry

    def test_normalize_updates_path_and_name(self):
        normalized = normalize_remote_entry(self._entry("Reports/Q3", DOCUMENT))

        assert normalized.relative_path == "Reports/Q3.docx"
        assert normalized.name == "Q3.docx"
        assert normalized.id == "id-1"
        assert normalized.native_doc_type == DOCUMENT
