"""Configuration loader for sync pair files and environment variables."""

import os
import json
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..core.models import ConflictResolutionStrategy
from ..exceptions import ConfigurationError
from ..utils.logging import get_logger


class SyncPairConfig(BaseModel):
    """One local root paired with one remote folder."""

    local_root: str = Field(..., description="Local directory to synchronize")
    remote_root_id: str = Field(..., description="Drive folder id to synchronize with")
    conflict_strategy: Optional[ConflictResolutionStrategy] = Field(
        None, description="Overrides the default conflict strategy"
    )
    unmetered_only: Optional[bool] = Field(
        None, description="Only sync on unmetered connections"
    )
    description: Optional[str] = Field(None, description="Optional description")

    @field_validator("local_root")
    @classmethod
    def validate_local_root(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("local_root must not be empty")
        return str(Path(v).expanduser())

    @field_validator("remote_root_id")
    @classmethod
    def validate_remote_root_id(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("remote_root_id must not be empty")
        return v.strip()


class ConfigLoader:
    """Loads and validates sync pair configuration from various sources."""

    ENV_OVERRIDES = {
        "FOLDERSYNC_LOCAL_ROOT": "local_root",
        "FOLDERSYNC_REMOTE_ROOT_ID": "remote_root_id",
        "FOLDERSYNC_CONFLICT_STRATEGY": "conflict_strategy",
    }

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    def load_from_file(self, file_path: Union[str, Path]) -> SyncPairConfig:
        """Load configuration from a JSON or YAML file.

        Args:
            file_path: Path to configuration file

        Returns:
            Validated SyncPairConfig object

        Raises:
            ConfigurationError: If file cannot be loaded or validated
        """
        file_path = Path(file_path)

        if not file_path.exists():
            raise ConfigurationError(f"Configuration file not found: {file_path}")

        self.logger.info("Loading configuration from file", file_path=str(file_path))

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                if file_path.suffix.lower() in ['.yaml', '.yml']:
                    data = yaml.safe_load(f)
                elif file_path.suffix.lower() == '.json':
                    data = json.load(f)
                else:
                    raise ConfigurationError(f"Unsupported file format: {file_path.suffix}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML format: {e}")
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON format: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {file_path}")

        return self.load_from_dict(data)

    def load_from_dict(self, data: Dict[str, Any]) -> SyncPairConfig:
        """Load configuration from a dictionary.

        Args:
            data: Configuration data as dictionary

        Returns:
            Validated SyncPairConfig object
        """
        data = self._apply_env_overrides(dict(data))

        try:
            config = SyncPairConfig(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid sync pair configuration: {e}")

        self.logger.info(
            "Configuration loaded",
            local_root=config.local_root,
            remote_root_id=config.remote_root_id
        )
        return config

    def load_from_env(self) -> SyncPairConfig:
        """Load configuration purely from environment variables."""
        return self.load_from_dict({})

    def _apply_env_overrides(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration data."""
        for env_name, key in self.ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if value:
                self.logger.debug("Applying environment override", key=key, env=env_name)
                data[key] = value
        return data
