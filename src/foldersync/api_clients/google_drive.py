"""Google Drive v3 REST client built on aiohttp."""

import asyncio
import json
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import (
    Any, AsyncGenerator, BinaryIO, Callable, Dict, List, Mapping, Optional, Sequence, Tuple
)

import aiohttp

from .base import (
    CredentialProvider,
    ProgressCallback,
    RemoteStorageClient,
    SinkOpener,
    SourceOpener,
)
from .rate_limiter import BackoffPolicy
from ..config.settings import DriveSettings, get_settings
from ..core.models import RemoteEntry
from ..core.native_docs import FOLDER_MIME_TYPE, is_exportable, is_folder, is_native_document
from ..exceptions import (
    AuthenticationError,
    FolderSyncError,
    NotFoundError,
    RateLimitError,
    RemoteAPIError,
    TransferError,
)
from ..utils.logging import log_async_execution_time

FILE_FIELDS = "id,name,mimeType,modifiedTime,size,md5Checksum,parents"
RATE_LIMIT_STATUSES = (429, 503)
RESUME_INCOMPLETE = 308
DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass
class DriveResponse:
    """Response as seen by the client once the body has been consumed."""

    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""
    bytes_written: int = 0

    def json(self) -> Dict[str, Any]:
        if not self.body:
            return {}
        return json.loads(self.body)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


def parse_timestamp(value: Optional[str]) -> Optional[float]:
    """Convert an RFC 3339 timestamp from the API to POSIX seconds."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()


def escape_query_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def parse_range_header(value: Optional[str]) -> Optional[int]:
    """Number of bytes the server holds, from a ``Range: bytes=0-N`` header."""
    if not value or "-" not in value:
        return None
    try:
        return int(value.rsplit("-", 1)[1]) + 1
    except ValueError:
        return None


class GoogleDriveClient(RemoteStorageClient):
    """Google Drive API client for two-way folder synchronization."""

    def __init__(
        self,
        credentials: CredentialProvider,
        drive_settings: Optional[DriveSettings] = None,
        backoff: Optional[BackoffPolicy] = None,
        session: Optional[aiohttp.ClientSession] = None
    ):
        """Initialize Google Drive client.

        Args:
            credentials: Source of bearer tokens
            drive_settings: API endpoints and transfer sizes
            backoff: Retry policy for rate-limited calls
            session: Existing aiohttp session to reuse
        """
        super().__init__(credentials)
        settings = get_settings()
        self.drive_settings = drive_settings or settings.drive
        self.backoff = backoff or BackoffPolicy.from_settings(settings.retry)
        self.session = session
        self._owns_session = session is None

        self.api_base_url = self.drive_settings.api_base_url.rstrip("/")
        self.upload_base_url = self.drive_settings.upload_base_url.rstrip("/")
        self.page_size = self.drive_settings.page_size
        self.multipart_threshold = self.drive_settings.multipart_threshold_bytes
        self.chunk_size = self.drive_settings.chunk_size_bytes

        # (root_id, lowercase relative path) -> folder id
        self._folder_cache: Dict[Tuple[str, str], str] = {}
        self._folder_lock = asyncio.Lock()

    async def __aenter__(self):
        """Async context manager entry."""
        await self._get_session()
        return self

    async def close(self) -> None:
        if self.session and self._owns_session:
            await self.session.close()
        self.session = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None:
            timeout = aiohttp.ClientTimeout(total=self.drive_settings.request_timeout_seconds)
            self.session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self.session

    # Transport

    async def _send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        params: Optional[Dict[str, str]] = None,
        data: Any = None,
        json_body: Any = None,
        sink: Optional[Callable[[int], BinaryIO]] = None,
        on_chunk: Optional[Callable[[int], None]] = None
    ) -> DriveResponse:
        """Perform one HTTP exchange.

        When ``sink`` is given and the response is successful, the body is
        streamed into the stream returned by ``sink(status)`` instead of being
        buffered.
        """
        session = await self._get_session()
        try:
            async with session.request(
                method, url, headers=headers, params=params, data=data, json=json_body
            ) as response:
                if sink is not None and 200 <= response.status < 300:
                    written = 0
                    with sink(response.status) as stream:
                        async for chunk in response.content.iter_chunked(self.chunk_size):
                            stream.write(chunk)
                            written += len(chunk)
                            if on_chunk:
                                on_chunk(len(chunk))
                    return DriveResponse(response.status, dict(response.headers), b"", written)

                body = await response.read()
                return DriveResponse(response.status, dict(response.headers), body)

        except aiohttp.ClientError as e:
            raise RemoteAPIError(f"Network error: {e}")
        except asyncio.TimeoutError:
            raise RemoteAPIError(f"Request timed out: {method} {url}")

    async def _request(
        self,
        method: str,
        url: str,
        operation: str,
        params: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[Callable[[], Any]] = None,
        json_body: Any = None,
        sink: Optional[Callable[[int], BinaryIO]] = None,
        on_chunk: Optional[Callable[[int], None]] = None,
        allow_incomplete: bool = False
    ) -> DriveResponse:
        """Authorized request wrapped in rate-limit backoff.

        ``body`` is a factory so the payload can be rebuilt for a retry.
        """
        async def attempt() -> DriveResponse:
            response = await self._authorized_send(
                method, url, params, headers, body, json_body, sink, on_chunk
            )
            return self._check_response(response, operation, allow_incomplete)

        return await self.backoff.run(operation, attempt)

    async def _authorized_send(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, str]],
        headers: Optional[Dict[str, str]],
        body: Optional[Callable[[], Any]],
        json_body: Any,
        sink: Optional[Callable[[int], BinaryIO]],
        on_chunk: Optional[Callable[[int], None]]
    ) -> DriveResponse:
        token = await self.credentials.get_access_token()
        if not token:
            raise AuthenticationError("No access token available")

        async def send(bearer: str) -> DriveResponse:
            request_headers = {"Authorization": f"Bearer {bearer}"}
            request_headers.update(headers or {})
            return await self._send(
                method,
                url,
                headers=request_headers,
                params=params,
                data=body() if body else None,
                json_body=json_body,
                sink=sink,
                on_chunk=on_chunk
            )

        response = await send(token)
        if response.status != 401:
            return response

        self.logger.info("Access token rejected, refreshing", url=url)
        token = await self.credentials.refresh()
        if token:
            response = await send(token)
            if response.status != 401:
                return response

        await self.credentials.on_auth_failure()
        raise AuthenticationError("Drive rejected credentials after refresh")

    def _check_response(self, response: DriveResponse, operation: str, allow_incomplete: bool) -> DriveResponse:
        status = response.status
        if 200 <= status < 300:
            return response
        if status == RESUME_INCOMPLETE and allow_incomplete:
            return response

        if status in RATE_LIMIT_STATUSES or (status == 403 and "ratelimitexceeded" in response.text.lower()):
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                f"Rate limit exceeded during {operation}",
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None
            )
        if status == 404:
            raise NotFoundError(f"Not found during {operation}", status_code=status, body=response.text)

        raise RemoteAPIError(
            f"Drive API request failed during {operation}: {status}",
            status_code=status,
            body=response.text
        )

    # Metadata

    def _parse_entry(self, item: Dict[str, Any], parent_path: str = "") -> RemoteEntry:
        name = item.get("name", "")
        mime_type = item.get("mimeType")
        size = item.get("size")
        return RemoteEntry(
            id=item["id"],
            relative_path=f"{parent_path}/{name}" if parent_path else name,
            name=name,
            is_directory=is_folder(mime_type),
            size=int(size) if size is not None else None,
            modified_time=parse_timestamp(item.get("modifiedTime")),
            content_hash=item.get("md5Checksum"),
            mime_type=mime_type,
            native_doc_type=mime_type if is_native_document(mime_type) else None,
            parents=tuple(item.get("parents", ())),
        )

    async def list_folder(self, folder_id: str, parent_path: str = "") -> AsyncGenerator[RemoteEntry, None]:
        """Yield the direct children of a folder, following every page.

        Args:
            folder_id: Remote folder to list
            parent_path: Relative path of that folder below the sync root

        Yields:
            RemoteEntry objects; native types without an export rule are skipped
        """
        page_token = None
        pages = 0

        while True:
            params = {
                "q": f"'{escape_query_value(folder_id)}' in parents and trashed = false",
                "fields": f"nextPageToken,files({FILE_FIELDS})",
                "pageSize": str(self.page_size),
            }
            if page_token:
                params["pageToken"] = page_token

            response = await self._request("GET", f"{self.api_base_url}/files", "list_folder", params=params)
            payload = response.json()
            pages += 1

            for item in payload.get("files", []):
                mime_type = item.get("mimeType")
                if is_native_document(mime_type) and not is_exportable(mime_type):
                    self.logger.debug(
                        "Skipping native document without export format",
                        name=item.get("name"),
                        mime_type=mime_type
                    )
                    continue
                yield self._parse_entry(item, parent_path)

            page_token = payload.get("nextPageToken")
            if not page_token:
                break

        self.logger.debug("Listed remote folder", folder_id=folder_id, pages=pages)

    @log_async_execution_time
    async def list_tree(self, root_id: str) -> List[RemoteEntry]:
        entries: List[RemoteEntry] = []
        queue = deque([(root_id, "")])

        while queue:
            folder_id, path = queue.popleft()
            async for entry in self.list_folder(folder_id, path):
                entries.append(entry)
                if entry.is_directory:
                    self._folder_cache[(root_id, entry.relative_path.lower())] = entry.id
                    queue.append((entry.id, entry.relative_path))

        self.logger.info("Listed remote tree", root_id=root_id, entries=len(entries))
        return entries

    async def get_metadata(self, file_id: str) -> RemoteEntry:
        response = await self._request(
            "GET", f"{self.api_base_url}/files/{file_id}", "get_metadata", params={"fields": FILE_FIELDS}
        )
        return self._parse_entry(response.json())

    # Folders

    async def create_folder(self, name: str, parent_id: str) -> RemoteEntry:
        response = await self._request(
            "POST",
            f"{self.api_base_url}/files",
            "create_folder",
            params={"fields": FILE_FIELDS},
            json_body={"name": name, "mimeType": FOLDER_MIME_TYPE, "parents": [parent_id]}
        )
        entry = self._parse_entry(response.json())
        self.logger.info("Remote folder created", name=name, folder_id=entry.id)
        return entry

    async def find_folder(self, name: str, parent_id: str) -> Optional[str]:
        params = {
            "q": (
                f"name = '{escape_query_value(name)}' and '{escape_query_value(parent_id)}' in parents"
                f" and mimeType = '{FOLDER_MIME_TYPE}' and trashed = false"
            ),
            "fields": "files(id,name)",
            "pageSize": "1",
        }
        response = await self._request("GET", f"{self.api_base_url}/files", "find_folder", params=params)
        files = response.json().get("files", [])
        return files[0]["id"] if files else None

    async def find_or_create_folder_path(self, root_id: str, parts: Sequence[str]) -> str:
        async with self._folder_lock:
            parent_id = root_id
            path = ""
            for part in parts:
                path = f"{path}/{part}" if path else part
                key = (root_id, path.lower())
                cached = self._folder_cache.get(key)
                if cached:
                    parent_id = cached
                    continue

                folder_id = await self.find_folder(part, parent_id)
                if folder_id is None:
                    folder_id = (await self.create_folder(part, parent_id)).id
                self._folder_cache[key] = folder_id
                parent_id = folder_id
            return parent_id

    # Uploads

    @log_async_execution_time
    async def upload_file(
        self,
        name: str,
        parent_id: str,
        open_source: SourceOpener,
        size: int,
        mime_type: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None
    ) -> RemoteEntry:
        metadata = {"name": name, "parents": [parent_id]}
        url = f"{self.upload_base_url}/files"
        return await self._upload("POST", url, metadata, open_source, size, mime_type, on_progress, "upload_file")

    @log_async_execution_time
    async def update_file(
        self,
        file_id: str,
        open_source: SourceOpener,
        size: int,
        mime_type: Optional[str] = None,
        name: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None
    ) -> RemoteEntry:
        # PATCH keeps the file id, sharing and revision history intact
        metadata = {"name": name} if name else {}
        url = f"{self.upload_base_url}/files/{file_id}"
        return await self._upload("PATCH", url, metadata, open_source, size, mime_type, on_progress, "update_file")

    async def _upload(
        self,
        method: str,
        url: str,
        metadata: Dict[str, Any],
        open_source: SourceOpener,
        size: int,
        mime_type: Optional[str],
        on_progress: Optional[ProgressCallback],
        operation: str
    ) -> RemoteEntry:
        mime_type = mime_type or DEFAULT_MIME_TYPE
        if size <= self.multipart_threshold:
            return await self._multipart_upload(
                method, url, metadata, open_source, size, mime_type, on_progress, operation
            )
        return await self._resumable_upload(
            method, url, metadata, open_source, size, mime_type, on_progress, operation
        )

    async def _multipart_upload(
        self,
        method: str,
        url: str,
        metadata: Dict[str, Any],
        open_source: SourceOpener,
        size: int,
        mime_type: str,
        on_progress: Optional[ProgressCallback],
        operation: str
    ) -> RemoteEntry:
        with open_source() as stream:
            content = stream.read()

        def build_body() -> aiohttp.MultipartWriter:
            writer = aiohttp.MultipartWriter("related")
            writer.append_json(metadata)
            writer.append(content, {"Content-Type": mime_type})
            return writer

        response = await self._request(
            method,
            url,
            operation,
            params={"uploadType": "multipart", "fields": FILE_FIELDS},
            body=build_body
        )
        if on_progress:
            on_progress(len(content), size)
        return self._parse_entry(response.json())

    async def _resumable_upload(
        self,
        method: str,
        url: str,
        metadata: Dict[str, Any],
        open_source: SourceOpener,
        size: int,
        mime_type: str,
        on_progress: Optional[ProgressCallback],
        operation: str
    ) -> RemoteEntry:
        response = await self._request(
            method,
            url,
            operation,
            params={"uploadType": "resumable", "fields": FILE_FIELDS},
            headers={
                "X-Upload-Content-Type": mime_type,
                "X-Upload-Content-Length": str(size),
            },
            json_body=metadata
        )
        session_url = response.headers.get("Location") or response.headers.get("location")
        if not session_url:
            raise RemoteAPIError("Resumable upload session URL missing", status_code=response.status)

        self.logger.debug("Resumable upload session opened", operation=operation, size=size)

        sent = 0
        with open_source() as stream:
            while sent < size:
                chunk = stream.read(self.chunk_size)
                if not chunk:
                    raise TransferError(f"Source ended after {sent} of {size} bytes")

                end = sent + len(chunk) - 1
                response = await self._request(
                    "PUT",
                    session_url,
                    operation,
                    headers={"Content-Range": f"bytes {sent}-{end}/{size}"},
                    body=lambda data=chunk: data,
                    allow_incomplete=True
                )
                sent = end + 1

                if response.status == RESUME_INCOMPLETE:
                    received = parse_range_header(response.headers.get("Range"))
                    if received is not None and received != sent:
                        stream.seek(received)
                        sent = received
                    if on_progress:
                        on_progress(sent, size)
                    continue

                if on_progress:
                    on_progress(size, size)
                return self._parse_entry(response.json())

        raise RemoteAPIError("Upload session ended without final metadata", status_code=RESUME_INCOMPLETE)

    # Downloads

    @log_async_execution_time
    async def download_file(
        self,
        file_id: str,
        open_sink: SinkOpener,
        offset: int = 0,
        export_mime_type: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        size: Optional[int] = None
    ) -> int:
        if export_mime_type:
            # Exports are generated on the fly and cannot be resumed
            url = f"{self.api_base_url}/files/{file_id}/export"
            params = {"mimeType": export_mime_type}
            offset = 0
        else:
            url = f"{self.api_base_url}/files/{file_id}"
            params = {"alt": "media"}

        headers = {"Range": f"bytes={offset}-"} if offset > 0 else {}
        progress = {"base": 0, "done": 0}

        def sink(status: int) -> BinaryIO:
            if status == 206:
                progress["base"] = offset
                return open_sink(True)
            # A full body replaces whatever partial content was there
            progress["base"] = 0
            return open_sink(False)

        def on_chunk(length: int) -> None:
            progress["done"] += length
            if on_progress:
                on_progress(progress["base"] + progress["done"], size or 0)

        try:
            response = await self._request(
                "GET", url, "download_file", params=params, headers=headers, sink=sink, on_chunk=on_chunk
            )
        except RemoteAPIError as e:
            if e.status_code == 416 and offset > 0:
                self.logger.debug("Partial download already complete", file_id=file_id, offset=offset)
                return offset
            raise

        return progress["base"] + response.bytes_written

    # Deletes

    async def delete_file(self, file_id: str, permanent: bool = False) -> bool:
        try:
            if permanent:
                await self._request("DELETE", f"{self.api_base_url}/files/{file_id}", "delete_file")
            else:
                await self._request(
                    "PATCH",
                    f"{self.api_base_url}/files/{file_id}",
                    "trash_file",
                    params={"fields": "id,trashed"},
                    json_body={"trashed": True}
                )
        except NotFoundError:
            self.logger.info("Remote file already gone", file_id=file_id)
            self._forget_folder(file_id)
            return False

        self._forget_folder(file_id)
        self.logger.info("Remote file deleted", file_id=file_id, permanent=permanent)
        return True

    def _forget_folder(self, file_id: str) -> None:
        stale = [key for key, value in self._folder_cache.items() if value == file_id]
        for key in stale:
            prefix = key[1] + "/"
            for other in [k for k in self._folder_cache if k[0] == key[0] and k[1].startswith(prefix)]:
                del self._folder_cache[other]
            del self._folder_cache[key]

    # Account

    async def get_quota_info(self) -> Dict[str, Any]:
        response = await self._request(
            "GET", f"{self.api_base_url}/about", "get_quota_info", params={"fields": "storageQuota,user"}
        )
        payload = response.json()
        quota = payload.get("storageQuota", {})
        return {
            "user_email": payload.get("user", {}).get("emailAddress"),
            "limit": int(quota["limit"]) if "limit" in quota else None,
            "usage": int(quota.get("usage", 0)),
            "usage_in_drive": int(quota.get("usageInDrive", 0)),
            "usage_in_trash": int(quota.get("usageInDriveTrash", 0)),
        }

    async def health_check(self) -> bool:
        try:
            info = await self.get_quota_info()
            self.logger.info("Drive health check passed", user_email=info.get("user_email"))
            return True
        except FolderSyncError as e:
            self.logger.error("Drive health check failed", error=str(e))
            return False
