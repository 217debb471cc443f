"""Tests for the Google Drive REST client with a fake transport."""

import io
import json
from collections import deque
from unittest.mock import AsyncMock, patch

import pytest

from foldersync.api_clients.credentials import StaticTokenProvider
from foldersync.api_clients.google_drive import (
    DriveResponse,
    GoogleDriveClient,
    parse_range_header,
    parse_timestamp,
)
from foldersync.api_clients.rate_limiter import BackoffPolicy
from foldersync.config.settings import DriveSettings
from foldersync.core.native_docs import FOLDER_MIME_TYPE
from foldersync.exceptions import AuthenticationError, NotFoundError, RateLimitError, RemoteAPIError

DOCUMENT = "application/vnd.google-apps.document"


def json_response(payload, status=200, headers=None):
    return DriveResponse(status, headers or {}, json.dumps(payload).encode("utf-8"))


class FakeTransport:
    """Replays queued responses and records every request."""

    def __init__(self, *responses):
        self.responses = deque(responses)
        self.requests = []

    def queue(self, *responses):
        self.responses.extend(responses)

    async def send(self, method, url, headers, params=None, data=None, json_body=None, sink=None, on_chunk=None):
        self.requests.append({
            "method": method,
            "url": url,
            "headers": dict(headers),
            "params": dict(params or {}),
            "data": data,
            "json": json_body,
        })
        response = self.responses.popleft()

        if sink is not None and 200 <= response.status < 300:
            with sink(response.status) as stream:
                stream.write(response.body)
            if on_chunk:
                on_chunk(len(response.body))
            return DriveResponse(response.status, response.headers, b"", len(response.body))
        return response


class TestDriveHelpers:
    """Test cases for module level helpers."""

    def test_parse_timestamp(self):
        assert parse_timestamp("1970-01-01T00:01:40.000Z") == 100.0
        assert parse_timestamp(None) is None

    def test_parse_range_header(self):
        assert parse_range_header("bytes=0-5") == 6
        assert parse_range_header(None) is None
        assert parse_range_header("garbage") is None


class TestGoogleDriveClient:
    """Test cases for GoogleDriveClient."""

    def setup_method(self):
        self.credentials = StaticTokenProvider("token-1", refreshed_tokens=["token-2"])
        self.sleep = AsyncMock()
        self.client = GoogleDriveClient(
            self.credentials,
            drive_settings=DriveSettings(
                page_size=2,
                multipart_threshold_bytes=8,
                chunk_size_bytes=4
            ),
            backoff=BackoffPolicy(max_attempts=3, base_delay=1.0, max_delay=4.0, jitter=0.0, sleep=self.sleep)
        )
        self.transport = FakeTransport()

    def _patched(self):
        return patch.object(self.client, "_send", new=self.transport.send)

    @pytest.mark.asyncio
    async def test_list_tree_follows_pages_and_folders(self):
        self.transport.queue(
            json_response({
                "files": [
                    {"id": "folder-docs", "name": "Docs", "mimeType": FOLDER_MIME_TYPE},
                    {"id": "file-a", "name": "a.txt", "mimeType": "text/plain", "size": "5",
                     "md5Checksum": "abc", "modifiedTime": "1970-01-01T00:01:40Z"},
                ],
                "nextPageToken": "page-2",
            }),
            json_response({
                "files": [
                    {"id": "doc-notes", "name": "Notes", "mimeType": DOCUMENT},
                    {"id": "form-1", "name": "Survey", "mimeType": "application/vnd.google-apps.form"},
                ],
            }),
            json_response({
                "files": [{"id": "file-c", "name": "c.txt", "mimeType": "text/plain", "size": "1"}],
            }),
        )

        with self._patched():
            entries = await self.client.list_tree("root")

        paths = [entry.relative_path for entry in entries]
        assert paths == ["Docs", "a.txt", "Notes", "Docs/c.txt"]

        by_path = {entry.relative_path: entry for entry in entries}
        assert by_path["Docs"].is_directory
        assert by_path["a.txt"].size == 5
        assert by_path["a.txt"].content_hash == "abc"
        assert by_path["a.txt"].modified_time == 100.0
        assert by_path["Notes"].native_doc_type == DOCUMENT

        assert self.transport.requests[1]["params"]["pageToken"] == "page-2"
        assert "'folder-docs' in parents" in self.transport.requests[2]["params"]["q"]
        assert self.transport.requests[0]["headers"]["Authorization"] == "Bearer token-1"
        assert self.client._folder_cache[("root", "docs")] == "folder-docs"

    @pytest.mark.asyncio
    async def test_small_upload_is_multipart(self):
        self.transport.queue(json_response({
            "id": "new-file", "name": "a.txt", "mimeType": "text/plain", "size": "5", "md5Checksum": "m5"
        }))
        progress = []

        with self._patched():
            entry = await self.client.upload_file(
                "a.txt", "parent-1", lambda: io.BytesIO(b"hello"), 5,
                mime_type="text/plain", on_progress=lambda done, total: progress.append((done, total))
            )

        request = self.transport.requests[0]
        assert request["method"] == "POST"
        assert request["url"].endswith("/upload/drive/v3/files")
        assert request["params"]["uploadType"] == "multipart"
        assert request["data"] is not None
        assert entry.id == "new-file"
        assert entry.content_hash == "m5"
        assert progress == [(5, 5)]

    @pytest.mark.asyncio
    async def test_large_upload_is_resumable_and_reseeks(self):
        content = b"0123456789"
        self.transport.queue(
            DriveResponse(200, {"Location": "https://upload.example/session-1"}),
            DriveResponse(308, {"Range": "bytes=0-3"}),
            # Server only kept six bytes of the second chunk
            DriveResponse(308, {"Range": "bytes=0-5"}),
            json_response({"id": "big-file", "name": "big.bin", "mimeType": "application/octet-stream",
                           "size": "10", "md5Checksum": "m5"}),
        )

        with self._patched():
            entry = await self.client.upload_file("big.bin", "parent-1", lambda: io.BytesIO(content), len(content))

        init, first, second, third = self.transport.requests
        assert init["params"]["uploadType"] == "resumable"
        assert init["headers"]["X-Upload-Content-Length"] == "10"
        assert init["json"] == {"name": "big.bin", "parents": ["parent-1"]}

        assert first["url"] == "https://upload.example/session-1"
        assert first["headers"]["Content-Range"] == "bytes 0-3/10"
        assert second["headers"]["Content-Range"] == "bytes 4-7/10"
        assert third["headers"]["Content-Range"] == "bytes 6-9/10"
        assert third["data"] == b"6789"
        assert entry.id == "big-file"

    @pytest.mark.asyncio
    async def test_update_keeps_file_id(self):
        self.transport.queue(json_response({"id": "file-1", "name": "a.txt", "mimeType": "text/plain"}))

        with self._patched():
            entry = await self.client.update_file("file-1", lambda: io.BytesIO(b"hi"), 2, name="a.txt")

        request = self.transport.requests[0]
        assert request["method"] == "PATCH"
        assert request["url"].endswith("/files/file-1")
        assert entry.id == "file-1"

    @pytest.mark.asyncio
    async def test_download_resumes_with_range(self, tmp_path):
        target = tmp_path / "part"
        target.write_bytes(b"hello ")
        self.transport.queue(DriveResponse(206, {}, b"world"))

        def open_sink(append):
            return open(target, "ab" if append else "wb")

        with self._patched():
            total = await self.client.download_file("file-1", open_sink, offset=6, size=11)

        assert total == 11
        assert target.read_bytes() == b"hello world"
        request = self.transport.requests[0]
        assert request["headers"]["Range"] == "bytes=6-"
        assert request["params"] == {"alt": "media"}

    @pytest.mark.asyncio
    async def test_download_full_body_replaces_partial(self, tmp_path):
        target = tmp_path / "part"
        target.write_bytes(b"stale")
        self.transport.queue(DriveResponse(200, {}, b"fresh content"))

        with self._patched():
            total = await self.client.download_file(
                "file-1", lambda append: open(target, "ab" if append else "wb"), offset=5
            )

        assert total == len(b"fresh content")
        assert target.read_bytes() == b"fresh content"

    @pytest.mark.asyncio
    async def test_download_already_complete(self, tmp_path):
        self.transport.queue(DriveResponse(416, {}, b""))

        with self._patched():
            total = await self.client.download_file("file-1", lambda append: open(tmp_path / "x", "ab"), offset=42)

        assert total == 42

    @pytest.mark.asyncio
    async def test_export_never_resumes(self, tmp_path):
        target = tmp_path / "doc.docx"
        self.transport.queue(DriveResponse(200, {}, b"exported"))

        with self._patched():
            await self.client.download_file(
                "doc-1",
                lambda append: open(target, "ab" if append else "wb"),
                offset=3,
                export_mime_type="application/pdf"
            )

        request = self.transport.requests[0]
        assert request["url"].endswith("/files/doc-1/export")
        assert request["params"] == {"mimeType": "application/pdf"}
        assert "Range" not in request["headers"]
        assert target.read_bytes() == b"exported"

    @pytest.mark.asyncio
    async def test_delete_trashes_by_default(self):
        self.transport.queue(json_response({"id": "file-1", "trashed": True}))

        with self._patched():
            assert await self.client.delete_file("file-1") is True

        request = self.transport.requests[0]
        assert request["method"] == "PATCH"
        assert request["json"] == {"trashed": True}

    @pytest.mark.asyncio
    async def test_permanent_delete(self):
        self.transport.queue(DriveResponse(204, {}, b""))

        with self._patched():
            assert await self.client.delete_file("file-1", permanent=True) is True

        assert self.transport.requests[0]["method"] == "DELETE"

    @pytest.mark.asyncio
    async def test_delete_missing_file_is_noop(self):
        self.client._folder_cache[("root", "docs")] = "folder-1"
        self.client._folder_cache[("root", "docs/inner")] = "folder-2"
        self.transport.queue(DriveResponse(404, {}, b'{"error": "notFound"}'))

        with self._patched():
            assert await self.client.delete_file("folder-1") is False

        assert self.client._folder_cache == {}

    @pytest.mark.asyncio
    async def test_expired_token_refreshed_once(self):
        self.transport.queue(
            DriveResponse(401, {}, b""),
            json_response({"id": "file-1", "name": "a.txt", "mimeType": "text/plain"}),
        )

        with self._patched():
            entry = await self.client.get_metadata("file-1")

        assert entry.id == "file-1"
        assert self.transport.requests[1]["headers"]["Authorization"] == "Bearer token-2"
        assert self.credentials.auth_failures == 0

    @pytest.mark.asyncio
    async def test_rejected_after_refresh_raises(self):
        self.transport.queue(DriveResponse(401, {}, b""), DriveResponse(401, {}, b""))

        with self._patched():
            with pytest.raises(AuthenticationError):
                await self.client.get_metadata("file-1")

        assert len(self.transport.requests) == 2
        assert self.credentials.auth_failures == 1

    @pytest.mark.asyncio
    async def test_no_token_fails_without_request(self):
        self.client.credentials = StaticTokenProvider(None)

        with self._patched():
            with pytest.raises(AuthenticationError):
                await self.client.get_metadata("file-1")

        assert self.transport.requests == []

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self):
        self.transport.queue(
            DriveResponse(429, {"Retry-After": "3"}, b""),
            json_response({"id": "file-1", "name": "a.txt", "mimeType": "text/plain"}),
        )

        with self._patched():
            entry = await self.client.get_metadata("file-1")

        assert entry.id == "file-1"
        assert self.sleep.await_count == 1
        assert self.sleep.await_args.args[0] >= 3.0

    @pytest.mark.asyncio
    async def test_forbidden_rate_limit_body(self):
        self.transport.queue(
            DriveResponse(403, {}, b'{"error": {"errors": [{"reason": "rateLimitExceeded"}]}}'),
            DriveResponse(403, {}, b'{"error": {"errors": [{"reason": "rateLimitExceeded"}]}}'),
            DriveResponse(403, {}, b'{"error": {"errors": [{"reason": "rateLimitExceeded"}]}}'),
        )

        with self._patched():
            with pytest.raises(RateLimitError):
                await self.client.get_metadata("file-1")

        assert len(self.transport.requests) == 3
        assert self.client.backoff.quota_hits == 3

    @pytest.mark.asyncio
    async def test_not_found_and_server_errors(self):
        self.transport.queue(DriveResponse(404, {}, b""), DriveResponse(500, {}, b"oops"))

        with self._patched():
            with pytest.raises(NotFoundError):
                await self.client.get_metadata("missing")
            with pytest.raises(RemoteAPIError) as exc_info:
                await self.client.get_metadata("broken")

        assert exc_info.value.status_code == 500
        assert exc_info.value.body == "oops"
        self.sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_find_or_create_folder_path(self):
        self.client._folder_cache[("root", "projects")] = "folder-projects"
        self.transport.queue(
            json_response({"files": []}),
            json_response({"id": "folder-2026", "name": "2026", "mimeType": FOLDER_MIME_TYPE}),
        )

        with self._patched():
            folder_id = await self.client.find_or_create_folder_path("root", ["Projects", "2026"])
            # Second lookup is answered from the cache
            again = await self.client.find_or_create_folder_path("root", ["projects", "2026"])

        assert folder_id == "folder-2026"
        assert again == "folder-2026"
        find, create = self.transport.requests
        assert "'folder-projects' in parents" in find["params"]["q"]
        assert create["json"]["parents"] == ["folder-projects"]
        assert create["json"]["mimeType"] == FOLDER_MIME_TYPE

    @pytest.mark.asyncio
    async def test_quota_info_and_health_check(self):
        payload = {
            "user": {"emailAddress": "someone@example.com"},
            "storageQuota": {"limit": "100", "usage": "40", "usageInDrive": "30", "usageInDriveTrash": "5"},
        }
        self.transport.queue(json_response(payload), json_response(payload), DriveResponse(500, {}, b""))

        with self._patched():
            info = await self.client.get_quota_info()
            assert await self.client.health_check() is True
            assert await self.client.health_check() is False

        assert info == {
            "user_email": "someone@example.com",
            "limit": 100,
            "usage": 40,
            "usage_in_drive": 30,
            "usage_in_trash": 5,
        }
