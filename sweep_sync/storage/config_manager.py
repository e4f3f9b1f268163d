"""
Reads and writes the INI settings file, filling in settings added by newer
versions and validating everything through `SyncConfig`.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from sweep_sync.exceptions import ConfigurationError
from sweep_sync.models.config import SyncConfig

log = logging.getLogger(__name__)


def _ini_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class ConfigManager:
    """Owns the `[DEFAULT]` section of the settings file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser()

    @staticmethod
    def _defaults() -> dict[str, Any]:
        defaults = SyncConfig.model_construct()
        return {key: getattr(defaults, key) for key in sorted(SyncConfig.get_ini_keys())}

    def load_config(self, cli_options: dict[str, Any] | None = None) -> SyncConfig:
        """
        Loads the file (if any), applies command-line overrides, and validates.

        Args:
            cli_options: Settings given on the command line; they win over the file.

        Raises:
            ConfigurationError: The file cannot be parsed or a value is invalid.
        """
        values: dict[str, Any] = {}
        if self.config_file_path.is_file():
            try:
                self._parser.read(self.config_file_path, encoding="utf-8")
            except configparser.Error as e:
                raise ConfigurationError(f"Error parsing configuration file: {e}") from e
            if self._add_missing_keys():
                log.info("[yellow]Configuration file was updated with new settings.[/yellow]")
            values = self.get_config_as_dict()

        values.update(cli_options or {})
        try:
            return SyncConfig(**values, config_path=str(self.config_file_path.parent))
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Writes a complete settings file; keys missing from `settings` get defaults.

        Raises:
            ConfigurationError: The file cannot be written.
        """
        parser = configparser.ConfigParser()
        parser["DEFAULT"] = {
            key: _ini_value(settings.get(key, default))
            for key, default in self._defaults().items()
            if settings.get(key, default) is not None
        }
        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as f:
                parser.write(f)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def get_config_as_dict(self) -> dict[str, Any]:
        """
        Reads the loaded file into values of the types `SyncConfig` declares.

        Raises:
            ConfigurationError: A value cannot be converted.
        """
        section = self._parser["DEFAULT"]
        values: dict[str, Any] = {}
        for key in SyncConfig.get_ini_keys():
            if key not in section:
                continue
            kind = SyncConfig.model_fields[key].annotation
            try:
                if kind is bool:
                    values[key] = section.getboolean(key)
                elif kind is int:
                    values[key] = section.getint(key)
                elif kind is float:
                    values[key] = section.getfloat(key)
                else:
                    values[key] = section.get(key)
            except ValueError as e:
                raise ConfigurationError(f"Invalid value in configuration file: {e}") from e
        return values

    def _add_missing_keys(self) -> bool:
        """Writes defaults for settings the file does not have yet."""
        section = self._parser["DEFAULT"]
        missing = {k: v for k, v in self._defaults().items() if k not in section}
        if not missing:
            return False

        for key, value in missing.items():
            section[key] = _ini_value(value)
            log.debug(f"Config migration: added '{key}' = '{section[key]}'.")
        try:
            with open(self.config_file_path, "w", encoding="utf-8") as f:
                self._parser.write(f)
        except OSError as e:
            log.error(f"Could not save migrated configuration file: {e}")
            return False
        return True
