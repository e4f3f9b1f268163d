"""Tests for the INI configuration manager."""

import configparser

import pytest

from sweep_sync.exceptions import ConfigurationError
from sweep_sync.models.config import DEFAULT_API_BASE, SyncConfig
from sweep_sync.storage.config_manager import ConfigManager


@pytest.fixture
def config_file(tmp_path):
    return tmp_path / "sweep-sync" / "config.ini"


class TestLoadConfig:
    def test_missing_file_uses_defaults(self, config_file):
        config = ConfigManager(config_file).load_config()

        assert config.api_base == DEFAULT_API_BASE
        assert config.backoff_base_ms == 2000
        assert config.config_path == str(config_file.parent)
        assert not config_file.exists()

    def test_saved_settings_round_trip(self, config_file):
        manager = ConfigManager(config_file)
        manager.save_new_config(
            {"api_base": "https://api.example.test/", "structured_log": True}
        )

        config = ConfigManager(config_file).load_config()
        assert config.api_base == "https://api.example.test"
        assert config.structured_log is True
        assert config.token_skew_s == 60

    def test_missing_keys_are_migrated(self, config_file):
        config_file.parent.mkdir(parents=True)
        config_file.write_text(
            "[DEFAULT]\napi_base = https://api.example.test\nbackoff_cap_ms = 30000\n",
            encoding="utf-8",
        )

        config = ConfigManager(config_file).load_config()
        assert config.backoff_cap_ms == 30000

        parser = configparser.ConfigParser()
        parser.read(config_file)
        assert parser["DEFAULT"]["backoff_cap_ms"] == "30000"
        assert parser["DEFAULT"]["backoff_jitter_ms"] == "400"
        assert parser["DEFAULT"]["structured_log"] == "false"

    def test_cli_options_override_file(self, config_file):
        ConfigManager(config_file).save_new_config({"api_base": "https://api.example.test"})

        config = ConfigManager(config_file).load_config({"api_base": "http://localhost:4000"})
        assert config.api_base == "http://localhost:4000"

    def test_unparseable_value(self, config_file):
        config_file.parent.mkdir(parents=True)
        config_file.write_text("[DEFAULT]\nbackoff_base_ms = soon\n", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="Invalid value"):
            ConfigManager(config_file).load_config()

    def test_failed_validation(self, config_file):
        ConfigManager(config_file).save_new_config(
            {"backoff_base_ms": 5000, "backoff_cap_ms": 1000}
        )
        with pytest.raises(ConfigurationError, match="validation failed"):
            ConfigManager(config_file).load_config()

    def test_relative_api_base_is_rejected(self, config_file):
        with pytest.raises(ConfigurationError):
            ConfigManager(config_file).load_config({"api_base": "api.example.test"})


class TestSyncConfig:
    def test_negative_jitter_is_rejected(self):
        with pytest.raises(ValueError):
            SyncConfig(backoff_jitter_ms=-1)

    def test_ini_keys_exclude_internal_fields(self):
        keys = SyncConfig.get_ini_keys()
        assert "config_path" not in keys
        assert "api_base" in keys
