"""Credential providers."""

import asyncio
import os
from typing import List, Optional

import google.auth.exceptions
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from .base import CredentialProvider
from ..utils.logging import get_logger


class StaticTokenProvider(CredentialProvider):
    """Hands out a fixed token; refresh returns the next queued token if any."""

    def __init__(self, token: Optional[str], refreshed_tokens: Optional[List[str]] = None):
        self.token = token
        self.refreshed_tokens = list(refreshed_tokens or [])
        self.auth_failures = 0

    async def get_access_token(self) -> Optional[str]:
        return self.token

    async def refresh(self) -> Optional[str]:
        if self.refreshed_tokens:
            self.token = self.refreshed_tokens.pop(0)
        return self.token

    async def on_auth_failure(self) -> None:
        self.auth_failures += 1


class GoogleCredentialProvider(CredentialProvider):
    """Wraps previously authorized Google user credentials.

    Refreshes run in the default executor because google-auth uses
    blocking HTTP.
    """

    def __init__(self, credentials: Optional[Credentials]):
        self.credentials = credentials
        self.logger = get_logger(self.__class__.__name__)
        self._lock = asyncio.Lock()

    @classmethod
    def from_authorized_user_file(cls, path: str, scopes: Optional[List[str]] = None) -> "GoogleCredentialProvider":
        """Load credentials saved by an earlier sign-in; missing file means signed out."""
        if not os.path.exists(path):
            get_logger(cls.__name__).warning("Authorized user file not found", path=path)
            return cls(None)
        return cls(Credentials.from_authorized_user_file(path, scopes=scopes))

    async def get_access_token(self) -> Optional[str]:
        if self.credentials is None:
            return None
        if not self.credentials.valid:
            return await self.refresh()
        return self.credentials.token

    async def refresh(self) -> Optional[str]:
        if self.credentials is None or not self.credentials.refresh_token:
            return None

        async with self._lock:
            loop = asyncio.get_running_loop()
            try:
                await loop.run_in_executor(None, self.credentials.refresh, Request())
            except google.auth.exceptions.RefreshError as e:
                self.logger.error("Token refresh failed", error=str(e))
                return None
            except google.auth.exceptions.TransportError as e:
                self.logger.error("Token refresh transport error", error=str(e))
                return None

        self.logger.info("Access token refreshed")
        return self.credentials.token

    async def on_auth_failure(self) -> None:
        self.logger.warning("Credentials rejected after refresh, clearing token")
        if self.credentials is not None:
            self.credentials.token = None
