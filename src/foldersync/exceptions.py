"""Exception hierarchy for the folder sync engine."""

from typing import Optional


class FolderSyncError(Exception):
    """Base exception for all folder sync errors."""
    pass


class PreconditionError(FolderSyncError):
    """Raised before any I/O when a sync cannot start.

    Covers missing credentials, no network, and a network policy that the
    current connection does not satisfy. Nothing has been mutated when this
    is raised.
    """

    NOT_AUTHENTICATED = "not_authenticated"
    OFFLINE = "offline"
    NETWORK_POLICY = "network_policy"

    def __init__(self, message: str, reason: str):
        super().__init__(message)
        self.reason = reason


class TransferError(FolderSyncError):
    """Raised when a single item fails to transfer."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class RateLimitError(TransferError):
    """Raised when the provider keeps rate limiting a request."""

    def __init__(self, message: str, retry_after: Optional[float] = None, path: Optional[str] = None):
        super().__init__(message, path=path)
        self.retry_after = retry_after


class ChecksumMismatchError(TransferError):
    """Raised when a downloaded file does not hash to the provider's value."""

    def __init__(self, path: str, expected: str, actual: str):
        super().__init__(
            f"Checksum mismatch for {path}: expected {expected}, got {actual}",
            path=path
        )
        self.expected = expected
        self.actual = actual


class RemoteAPIError(TransferError):
    """Raised when the remote API returns an unexpected response."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        path: Optional[str] = None
    ):
        super().__init__(message, path=path)
        self.status_code = status_code
        self.body = body


class NotFoundError(RemoteAPIError):
    """Raised when the remote API reports that a file does not exist."""
    pass


class AuthenticationError(FolderSyncError):
    """Raised when the provider rejects credentials even after a refresh."""
    pass


class ConfigurationError(FolderSyncError):
    """Raised when configuration loading fails."""
    pass
