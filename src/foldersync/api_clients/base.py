"""Remote storage and credential interfaces."""

from abc import ABC, abstractmethod
from typing import Any, BinaryIO, Callable, Dict, List, Optional, Sequence

from ..core.models import RemoteEntry
from ..utils.logging import get_logger

# Called with (bytes_done, bytes_total) while a transfer runs.
ProgressCallback = Callable[[int, int], None]

# Opens the local file being uploaded.
SourceOpener = Callable[[], BinaryIO]

# Opens the local download target; True means append to what is there.
SinkOpener = Callable[[bool], BinaryIO]


class CredentialProvider(ABC):
    """Supplies access tokens; never runs the OAuth consent flow itself."""

    @abstractmethod
    async def get_access_token(self) -> Optional[str]:
        """Current access token, or None when the user is not signed in."""
        pass

    @abstractmethod
    async def refresh(self) -> Optional[str]:
        """Force a token refresh and return the new token, or None on failure."""
        pass

    @abstractmethod
    async def on_auth_failure(self) -> None:
        """Called when the provider rejected a freshly refreshed token."""
        pass


class RemoteStorageClient(ABC):
    """Abstract base class for remote storage clients used by the sync engine."""

    def __init__(self, credentials: CredentialProvider):
        self.credentials = credentials
        self.logger = get_logger(self.__class__.__name__)

    @abstractmethod
    async def list_tree(self, root_id: str) -> List[RemoteEntry]:
        """List every file and folder below a root folder.

        Args:
            root_id: Remote folder id of the sync root

        Returns:
            RemoteEntry objects with relative paths built from folder names
        """
        pass

    @abstractmethod
    async def get_metadata(self, file_id: str) -> RemoteEntry:
        pass

    @abstractmethod
    async def create_folder(self, name: str, parent_id: str) -> RemoteEntry:
        pass

    @abstractmethod
    async def find_or_create_folder_path(self, root_id: str, parts: Sequence[str]) -> str:
        """Return the id of the folder at ``parts`` below root, creating it if needed."""
        pass

    @abstractmethod
    async def upload_file(
        self,
        name: str,
        parent_id: str,
        open_source: SourceOpener,
        size: int,
        mime_type: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None
    ) -> RemoteEntry:
        """Create a new remote file."""
        pass

    @abstractmethod
    async def update_file(
        self,
        file_id: str,
        open_source: SourceOpener,
        size: int,
        mime_type: Optional[str] = None,
        name: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None
    ) -> RemoteEntry:
        """Replace the content of an existing remote file in place."""
        pass

    @abstractmethod
    async def download_file(
        self,
        file_id: str,
        open_sink: SinkOpener,
        offset: int = 0,
        export_mime_type: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        size: Optional[int] = None
    ) -> int:
        """Stream a remote file into a local sink.

        Returns:
            Total size of the local file after the download
        """
        pass

    @abstractmethod
    async def delete_file(self, file_id: str, permanent: bool = False) -> bool:
        """Trash (or permanently delete) a remote file; missing files are a no-op."""
        pass

    async def get_quota_info(self) -> Dict[str, Any]:
        return {}

    async def health_check(self) -> bool:
        """Check if the remote service is accessible."""
        return True

    async def close(self) -> None:
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
