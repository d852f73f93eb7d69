"""
Process-wide holder for the current AppConfig.

Readers take a snapshot (the frozen AppConfig instance) at the start of a
request; reload() builds a new AppConfig from the config file and swaps the
reference. Nothing mutates a published snapshot.
"""

import logging
import threading
from pathlib import Path

from job_runner.core.config import AppConfig, load_config
from job_runner.core.errors import ReloadNotSupported

_log = logging.getLogger(__name__)


class ConfigStore:
    """Thread-safe snapshot/swap container for AppConfig."""

    def __init__(self, config: AppConfig | None = None, config_file: str | Path = "") -> None:
        self._config = config if config is not None else AppConfig()
        self._config_file = str(config_file or "")
        self._lock = threading.Lock()

    @classmethod
    def from_file(cls, config_file: str | Path = "") -> "ConfigStore":
        return cls(load_config(config_file), config_file)

    @property
    def config_file(self) -> str:
        return self._config_file

    def snapshot(self) -> AppConfig:
        with self._lock:
            return self._config

    def replace(self, config: AppConfig) -> None:
        with self._lock:
            self._config = config

    def reload(self) -> AppConfig:
        """
        Re-read the config file and swap it in.

        Raises ReloadNotSupported when no file was configured and ConfigError
        when the file cannot be read or parsed (the current config is kept).
        """
        if not self._config_file:
            raise ReloadNotSupported(
                "Configuration reload not supported: no config file path specified at startup."
            )
        new_config = load_config(self._config_file)
        self.replace(new_config)
        _log.info("Configuration reloaded successfully from %s", self._config_file)
        return new_config
