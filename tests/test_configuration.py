"""Tests for settings and sync pair configuration loading."""

import json
import os
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from foldersync.config import AppSettings, SyncSettings
from foldersync.config.loader import ConfigLoader, SyncPairConfig
from foldersync.core.models import ConflictResolutionStrategy
from foldersync.exceptions import ConfigurationError

PAIR_ENV = ("FOLDERSYNC_LOCAL_ROOT", "FOLDERSYNC_REMOTE_ROOT_ID", "FOLDERSYNC_CONFLICT_STRATEGY")


def create_test_pair_data():
    """Create test sync pair data."""
    return {
        "local_root": "/data/shared",
        "remote_root_id": "drive-folder-1",
        "conflict_strategy": "keep_newest",
        "unmetered_only": True,
        "description": "Team documents",
    }


class TestSettings:
    """Test cases for application settings."""

    def test_defaults(self):
        settings = AppSettings()

        assert settings.sync.conflict_strategy == ConflictResolutionStrategy.ASK_USER
        assert settings.sync.unmetered_only is False
        assert settings.sync.max_concurrent_transfers == 1
        assert settings.sync.trash_instead_of_delete is True
        assert settings.retry.max_attempts == 5
        assert settings.drive.api_base_url == "https://www.googleapis.com/drive/v3"
        assert settings.database.url.startswith("sqlite:///")

    def test_environment_overrides(self):
        env = {
            "FOLDERSYNC_SYNC_CONFLICT_STRATEGY": "keep_both",
            "FOLDERSYNC_SYNC_MAX_CONCURRENT_TRANSFERS": "4",
        }
        with patch.dict(os.environ, env):
            settings = SyncSettings()

        assert settings.conflict_strategy == ConflictResolutionStrategy.KEEP_BOTH
        assert settings.max_concurrent_transfers == 4

    def test_concurrency_must_be_positive(self):
        with pytest.raises(ValueError):
            SyncSettings(max_concurrent_transfers=0)


class TestConfigLoader:
    """Test cases for ConfigLoader."""

    def setup_method(self):
        self.loader = ConfigLoader()
        self.temp_dir = tempfile.TemporaryDirectory()
        self.env = patch.dict(os.environ)
        self.env.start()
        for name in PAIR_ENV:
            os.environ.pop(name, None)

    def teardown_method(self):
        self.env.stop()
        self.temp_dir.cleanup()

    def _write(self, name, text):
        path = Path(self.temp_dir.name) / name
        path.write_text(text, encoding="utf-8")
        return path

    def test_load_from_dict(self):
        config = self.loader.load_from_dict(create_test_pair_data())

        assert isinstance(config, SyncPairConfig)
        assert config.local_root == str(Path("/data/shared"))
        assert config.remote_root_id == "drive-folder-1"
        assert config.conflict_strategy == ConflictResolutionStrategy.KEEP_NEWEST
        assert config.unmetered_only is True

    def test_optional_fields_default_to_none(self):
        config = self.loader.load_from_dict({"local_root": "/data", "remote_root_id": "root-1"})

        assert config.conflict_strategy is None
        assert config.unmetered_only is None

    def test_home_directory_expanded(self):
        config = self.loader.load_from_dict({"local_root": "~/Drive", "remote_root_id": "root-1"})
        assert not config.local_root.startswith("~")

    def test_load_yaml_file(self):
        path = self._write("pair.yaml", yaml.dump(create_test_pair_data()))
        config = self.loader.load_from_file(path)
        assert config.remote_root_id == "drive-folder-1"

    def test_load_json_file(self):
        path = self._write("pair.json", json.dumps(create_test_pair_data()))
        config = self.loader.load_from_file(path)
        assert config.description == "Team documents"

    def test_missing_file(self):
        with pytest.raises(ConfigurationError):
            self.loader.load_from_file(Path(self.temp_dir.name) / "missing.yaml")

    def test_unsupported_format(self):
        path = self._write("pair.toml", "local_root = '/data'")
        with pytest.raises(ConfigurationError):
            self.loader.load_from_file(path)

    def test_malformed_files(self):
        with pytest.raises(ConfigurationError):
            self.loader.load_from_file(self._write("bad.json", "{not json"))
        with pytest.raises(ConfigurationError):
            self.loader.load_from_file(self._write("list.yaml", "- a\n- b\n"))

    def test_validation_errors(self):
        with pytest.raises(ConfigurationError):
            self.loader.load_from_dict({"local_root": "  ", "remote_root_id": "root-1"})
        with pytest.raises(ConfigurationError):
            self.loader.load_from_dict({"local_root": "/data"})
        with pytest.raises(ConfigurationError):
            self.loader.load_from_dict({
                "local_root": "/data", "remote_root_id": "root-1", "conflict_strategy": "flip_a_coin"
            })

    def test_environment_overrides(self):
        os.environ["FOLDERSYNC_REMOTE_ROOT_ID"] = "from-env"
        os.environ["FOLDERSYNC_CONFLICT_STRATEGY"] = "keep_remote"

        config = self.loader.load_from_dict(create_test_pair_data())

        assert config.remote_root_id == "from-env"
        assert config.conflict_strategy == ConflictResolutionStrategy.KEEP_REMOTE

    def test_load_from_env(self):
        os.environ["FOLDERSYNC_LOCAL_ROOT"] = "/env/root"
        os.environ["FOLDERSYNC_REMOTE_ROOT_ID"] = "env-folder"

        config = self.loader.load_from_env()

        assert config.local_root == str(Path("/env/root"))
        assert config.remote_root_id == "env-folder"
