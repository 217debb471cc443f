"""Configuration package for folder sync."""

from .settings import (
    DatabaseSettings,
    DriveSettings,
    RetrySettings,
    SyncSettings,
    CredentialSettings,
    LoggingSettings,
    AppSettings,
    get_settings
)

__all__ = [
    "DatabaseSettings",
    "DriveSettings",
    "RetrySettings",
    "SyncSettings",
    "CredentialSettings",
    "LoggingSettings",
    "AppSettings",
    "get_settings"
]
