"""Application configuration settings."""

from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..core.models import ConflictResolutionStrategy


class DatabaseSettings(BaseSettings):
    """Tracking store database configuration."""

    url: str = Field(default="sqlite:///./data/foldersync.db")

    model_config = SettingsConfigDict(env_prefix="FOLDERSYNC_DB_")


class DriveSettings(BaseSettings):
    """Google Drive REST API configuration."""

    api_base_url: str = Field(default="https://www.googleapis.com/drive/v3")
    upload_base_url: str = Field(default="https://www.googleapis.com/upload/drive/v3")
    page_size: int = Field(default=200)
    multipart_threshold_bytes: int = Field(default=5 * 1024 * 1024)
    chunk_size_bytes: int = Field(default=2 * 1024 * 1024)
    request_timeout_seconds: float = Field(default=300.0)

    model_config = SettingsConfigDict(env_prefix="FOLDERSYNC_DRIVE_")


class RetrySettings(BaseSettings):
    """Rate-limit backoff configuration."""

    max_attempts: int = Field(default=5)
    base_delay_seconds: float = Field(default=1.0)
    max_delay_seconds: float = Field(default=32.0)
    jitter_seconds: float = Field(default=0.5)

    model_config = SettingsConfigDict(env_prefix="FOLDERSYNC_RETRY_")


class SyncSettings(BaseSettings):
    """Sync engine behaviour."""

    conflict_strategy: ConflictResolutionStrategy = Field(default=ConflictResolutionStrategy.ASK_USER)
    unmetered_only: bool = Field(default=False)
    time_tolerance_seconds: float = Field(default=2.0)
    max_concurrent_transfers: int = Field(default=1, ge=1)
    trash_instead_of_delete: bool = Field(default=True)
    metered_connection: bool = Field(default=False)

    model_config = SettingsConfigDict(env_prefix="FOLDERSYNC_SYNC_")


class CredentialSettings(BaseSettings):
    """Where previously authorized user credentials are stored."""

    token_file: str = Field(default="./secrets/authorized_user.json")
    scopes: list[str] = Field(default_factory=lambda: ["https://www.googleapis.com/auth/drive"])

    model_config = SettingsConfigDict(env_prefix="FOLDERSYNC_CREDENTIALS_")


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field(default="INFO")
    format: str = Field(default="console")
    file_path: Optional[str] = Field(default="./logs/foldersync.log")
    max_file_bytes: int = Field(default=10 * 1024 * 1024, ge=1024)
    backup_count: int = Field(default=5, ge=0)

    model_config = SettingsConfigDict(env_prefix="FOLDERSYNC_LOG_")


class AppSettings(BaseSettings):
    """Main application settings."""

    name: str = Field(default="Folder Sync")
    version: str = Field(default="1.0.0")
    environment: str = Field(default="development")

    # Sub-settings
    database: DatabaseSettings = DatabaseSettings()
    drive: DriveSettings = DriveSettings()
    retry: RetrySettings = RetrySettings()
    sync: SyncSettings = SyncSettings()
    credentials: CredentialSettings = CredentialSettings()
    logging: LoggingSettings = LoggingSettings()

    model_config = SettingsConfigDict(
        env_prefix="FOLDERSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
settings = AppSettings()


def get_settings() -> AppSettings:
    """Get application settings."""
    return settings
