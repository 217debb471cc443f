"""Remote storage clients and credential providers."""

from .base import CredentialProvider, RemoteStorageClient
from .credentials import GoogleCredentialProvider, StaticTokenProvider
from .google_drive import GoogleDriveClient
from .rate_limiter import BackoffPolicy

__all__ = [
    "BackoffPolicy",
    "CredentialProvider",
    "GoogleCredentialProvider",
    "GoogleDriveClient",
    "RemoteStorageClient",
    "StaticTokenProvider",
]
