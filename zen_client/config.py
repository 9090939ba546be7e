"""
Configuration Management for the Zen session client.

This module handles client configuration including the server URL, token
storage and logging settings, with support for configuration files and
environment variables.
"""

import os
import json
import logging
from pathlib import Path
from typing import Optional, Dict, Any
from configparser import ConfigParser

from zen_shared.exceptions import ConfigurationError
from zen_shared.logging_config import LogLevel, LogFormat
from zen_client.auth.token_storage import STORAGE_BACKENDS, default_storage_dir

logger = logging.getLogger(__name__)


def default_config_path() -> Path:
    return default_storage_dir() / 'client.conf'


class ClientConfiguration:
    """
    Configuration manager for the Zen session client.

    Supports configuration from:
    1. Runtime overrides (highest priority)
    2. Environment variables
    3. Configuration file
    4. Default values (lowest priority)
    """

    ENV_MAPPINGS = {
        'ZEN_SERVER_URL': ('server', 'url'),
        'ZEN_SERVER_TIMEOUT': ('server', 'timeout'),
        'ZEN_STORAGE_BACKEND': ('auth', 'storage_backend'),
        'ZEN_STORAGE_DIR': ('auth', 'storage_dir'),
        'ZEN_SINGLE_FLIGHT': ('auth', 'single_flight'),
        'ZEN_COOKIE_FILE': ('auth', 'cookie_file'),
        'ZEN_LOG_LEVEL': ('logging', 'level'),
        'ZEN_LOG_FORMAT': ('logging', 'format'),
        'ZEN_SHOW_NOTIFICATIONS': ('ui', 'show_notifications'),
    }

    def __init__(self, config_file: Optional[str] = None):
        self._config_file = str(Path(config_file).expanduser()) if config_file else str(default_config_path())
        self._config_data: Dict[str, Any] = {}
        self._overrides: Dict[str, Any] = {}

        self._load_configuration()

    def _load_configuration(self) -> None:
        """Load configuration from file and environment variables."""
        if os.path.exists(self._config_file):
            try:
                self._load_from_file()
                logger.info(f"Configuration loaded from: {self._config_file}")
            except Exception as e:
                logger.warning(f"Failed to load configuration file: {e}")
        else:
            logger.debug(f"Configuration file not found: {self._config_file}")

        self._load_from_environment()
        self._set_defaults()

    def _load_from_file(self) -> None:
        """Load configuration from INI file."""
        config = ConfigParser()
        config.read(self._config_file)

        for section_name in config.sections():
            section_data = {}
            for key, value in config[section_name].items():
                # JSON for typed values, plain string otherwise
                try:
                    section_data[key] = json.loads(value)
                except (json.JSONDecodeError, ValueError):
                    section_data[key] = value

            self._config_data[section_name] = section_data

    def _load_from_environment(self) -> None:
        """Load configuration from environment variables."""
        for env_var, (section, key) in self.ENV_MAPPINGS.items():
            value = os.environ.get(env_var)
            if value is None:
                continue

            section_data = self._config_data.setdefault(section, {})

            if value.lower() in ('true', 'false'):
                section_data[key] = value.lower() == 'true'
            elif value.isdigit():
                section_data[key] = int(value)
            else:
                section_data[key] = value

    def _set_defaults(self) -> None:
        """Set default configuration values."""
        defaults = {
            'server': {
                'url': 'http://localhost:8080',
                'timeout': 30.0,
            },
            'auth': {
                'storage_backend': 'auto',
                'storage_dir': str(default_storage_dir()),
                'single_flight': True,
                'cookie_file': None,
            },
            'logging': {
                'level': 'INFO',
                'format': 'standard',
                'file': None,
                'audit_file': None,
                'max_size': 10485760,  # 10MB
                'backup_count': 3,
            },
            'ui': {
                'show_notifications': True,
            },
        }

        for section, section_defaults in defaults.items():
            section_data = self._config_data.setdefault(section, {})
            for key, default_value in section_defaults.items():
                if key not in section_data:
                    section_data[key] = default_value

    def get_config(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key in format 'section.key'
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        if key in self._overrides:
            return self._overrides[key]

        if '.' not in key:
            return self._config_data.get(key, default)

        section, config_key = key.split('.', 1)
        return self._config_data.get(section, {}).get(config_key, default)

    def set_config(self, key: str, value: Any) -> None:
        """
        Set configuration value using dot notation.

        Args:
            key: Configuration key in format 'section.key'
            value: Value to set
        """
        if '.' not in key:
            raise ConfigurationError(f"Configuration key must be 'section.key': {key}", config_key=key)

        section, config_key = key.split('.', 1)
        self._config_data.setdefault(section, {})[config_key] = value

    def set_override(self, key: str, value: Any) -> None:
        """
        Set configuration override (highest priority).

        Args:
            key: Configuration key in format 'section.key'
            value: Override value
        """
        self._overrides[key] = value

    def save_configuration(self) -> None:
        """Save current configuration to file."""
        config = ConfigParser()

        for section_name, section_data in self._config_data.items():
            config.add_section(section_name)
            for key, value in section_data.items():
                if value is None:
                    continue
                if isinstance(value, str):
                    config.set(section_name, key, value)
                else:
                    config.set(section_name, key, json.dumps(value))

        config_path = Path(self._config_file)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, 'w') as f:
            config.write(f)

        logger.info(f"Configuration saved to: {self._config_file}")

    def reload_configuration(self) -> None:
        """Reload configuration from file and environment."""
        self._config_data.clear()
        self._load_configuration()
        logger.info("Configuration reloaded")

    def get_config_file_path(self) -> str:
        return self._config_file

    # Convenience accessors

    def get_server_url(self) -> str:
        return str(self.get_config('server.url') or '')

    def get_server_timeout(self) -> float:
        value = self.get_config('server.timeout', 30.0)
        try:
            timeout = float(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid server timeout: {value!r}", config_key='server.timeout')
        if timeout <= 0:
            raise ConfigurationError(f"Server timeout must be positive: {value!r}", config_key='server.timeout')
        return timeout

    def get_storage_backend(self) -> str:
        backend = str(self.get_config('auth.storage_backend', 'auto')).lower()
        if backend not in STORAGE_BACKENDS:
            raise ConfigurationError(
                f"Unknown token storage backend '{backend}'", config_key='auth.storage_backend'
            )
        return backend

    def get_storage_dir(self) -> str:
        return str(self.get_config('auth.storage_dir') or default_storage_dir())

    def is_single_flight_enabled(self) -> bool:
        return bool(self.get_config('auth.single_flight', True))

    def get_cookie_file(self) -> Optional[str]:
        return self.get_config('auth.cookie_file')

    def get_log_level(self) -> LogLevel:
        value = str(self.get_config('logging.level', 'INFO')).upper()
        try:
            return LogLevel(value)
        except ValueError:
            raise ConfigurationError(f"Invalid log level: {value}", config_key='logging.level')

    def get_log_format(self) -> LogFormat:
        value = str(self.get_config('logging.format', 'standard')).lower()
        try:
            return LogFormat(value)
        except ValueError:
            raise ConfigurationError(f"Invalid log format: {value}", config_key='logging.format')

    def get_log_file(self) -> Optional[str]:
        return self.get_config('logging.file')

    def get_audit_file(self) -> Optional[str]:
        return self.get_config('logging.audit_file')

    def should_show_notifications(self) -> bool:
        return bool(self.get_config('ui.show_notifications', True))
