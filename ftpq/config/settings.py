"""Saved command line defaults for ftpq.

The settings file is a flat JSON object. Values that fail validation
(hand edits, older versions) fall back to the built-in defaults instead
of aborting the run.
"""

import json
import logging
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Optional

from ftpq.config.paths import get_settings_path
from ftpq.utils.logging import level_from_name
from ftpq.utils.validators import validate_parallel, validate_port, validate_timeout

logger = logging.getLogger("ftpq.settings")

_FIELD_CHECKS = {
    "last_port": validate_port,
    "timeout": validate_timeout,
    "parallel_connections": validate_parallel,
}


@dataclass
class AppSettings:
    """Defaults remembered between command line runs."""

    # Connection defaults
    last_host: str = ""
    last_port: int = 21
    last_username: str = "anonymous"
    timeout: int = 30

    # FTPS
    cert_file: str = ""
    use_tls: bool = False

    # Parallel transfers (-1 = one connection per file)
    parallel_connections: int = 4

    log_level: str = "INFO"

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "AppSettings":
        """Build settings from a decoded file, keeping only valid known keys."""
        defaults = cls()
        values = {}
        for field in fields(cls):
            if field.name not in data:
                continue
            value = data[field.name]
            if not isinstance(value, type(getattr(defaults, field.name))):
                logger.warning(f"Ignoring setting {field.name}={value!r}: wrong type")
                continue
            check = _FIELD_CHECKS.get(field.name)
            if check is not None:
                is_valid, error = check(value)
                if not is_valid:
                    logger.warning(f"Ignoring setting {field.name}: {error}")
                    continue
            values[field.name] = value
        return cls(**values)

    @property
    def logging_level(self) -> int:
        return level_from_name(self.log_level)


class SettingsManager:
    """Loads and stores AppSettings as JSON."""

    def __init__(self, config_path: Optional[Path] = None):
        """
        Args:
            config_path: Optional custom path, defaults to platform standard
        """
        self._config_path = config_path or get_settings_path()
        self._settings: Optional[AppSettings] = None

    @property
    def config_path(self) -> Path:
        return self._config_path

    @property
    def settings(self) -> AppSettings:
        if self._settings is None:
            return self.load()
        return self._settings

    def load(self) -> AppSettings:
        """
        Load settings from disk.

        Returns:
            AppSettings instance (defaults if the file is missing or unreadable)
        """
        self._settings = AppSettings()
        if self._config_path.exists():
            try:
                with open(self._config_path, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except (json.JSONDecodeError, OSError) as e:
                logger.warning(f"Could not read {self._config_path}: {e}")
            else:
                if isinstance(data, dict):
                    self._settings = AppSettings.from_dict(data)
                else:
                    logger.warning(f"Ignoring {self._config_path}: not a JSON object")
        return self._settings

    def save(self, settings: AppSettings) -> None:
        self._settings = settings
        self._config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self._config_path, "w", encoding="utf-8") as f:
            json.dump(settings.to_dict(), f, indent=2)

    def remember_connection(
        self,
        host: str,
        port: int,
        username: str,
        timeout: int,
        cert_file: str = "",
        use_tls: bool = False
    ) -> AppSettings:
        """Store the connection parameters of a successful login as the new defaults."""
        settings = self.settings
        settings.last_host = host
        settings.last_port = port
        settings.last_username = username
        settings.timeout = timeout
        settings.cert_file = cert_file
        settings.use_tls = use_tls
        self.save(settings)
        return settings

    def forget_connection(self) -> AppSettings:
        """Drop remembered connection parameters, keeping transfer and log preferences."""
        current = self.settings
        settings = AppSettings(
            parallel_connections=current.parallel_connections,
            log_level=current.log_level,
        )
        self.save(settings)
        return settings
