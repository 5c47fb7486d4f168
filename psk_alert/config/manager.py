"""Configuration management for PSKAlert."""

import os
import configparser
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from psk_alert.config.settings import PSKAlertSettings
from psk_alert.core.exceptions import ConfigurationError

ENV_PREFIX = "PSK_ALERT_"
DEFAULT_CONFIG_PATH = Path("config/config.ini")


class ConfigurationManager:
    """Manages application configuration from multiple sources.

    Precedence, lowest first: built-in defaults, INI file, environment.
    """

    def __init__(self, config_path: Optional[Union[str, Path]] = None, use_environment: bool = True,
                 load_file: bool = True):
        """Initialize configuration manager.

        Args:
            config_path: Path to configuration file. If None, looks for config/config.ini
            use_environment: Apply PSK_ALERT_* environment overrides
            load_file: Read the configuration file when it exists
        """
        self._config = {}
        self._config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        self._load_defaults()
        if load_file:
            self._load_from_file()
        if use_environment:
            self._load_from_environment()

    @property
    def config_path(self) -> Path:
        return self._config_path

    def _load_defaults(self) -> None:
        """Load default configuration values."""
        self._config = {
            # Listener Settings
            'listener': {
                'host': '0.0.0.0',
                'port': 4739,
                'receive_timeout_seconds': 10.0,
                'buffer_size': 65535,
                'queue_size': 1000,
            },

            # Watch-list Settings
            'watchlist': {
                'monitored_callsigns': '',
                'refresh_seconds': 5.0,
            },

            # Alert Settings
            'alert': {
                'enabled': True,
                'snr_threshold': 10,
                'distance_threshold': 1000,
                'recipients': '',
                'notifier': 'log',
                'subject_prefix': 'PSKReporter Alert',
                'sweep_interval_seconds': 300.0,
            },

            # Email Settings
            'email': {
                'smtp_host': None,
                'smtp_port': 587,
                'username': None,
                'password': None,
                'use_tls': True,
                'from_address': 'psk-alert@localhost',
                'timeout_seconds': 20.0,
            },

            # MQTT Settings
            'mqtt': {
                'enabled': False,
                'broker_host': 'localhost',
                'broker_port': 1883,
                'username': None,
                'password': None,
                'client_id': 'psk_alert',
                'topic_prefix': 'psk_alert',
                'qos': 1,
                'keepalive_seconds': 60,
                'tls_enabled': False,
            },

            # Storage Settings
            'storage': {
                'database_path': 'data/psk_alert.db',
                'log_directory': 'logs',
                'retention_days': 30,
            },

            # Logging Settings
            'logging': {
                'level': 'INFO',
                'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                'file_enabled': True,
                'console_enabled': True,
                'max_file_size_mb': 10,
                'backup_count': 5,
            },

            # Core Settings
            'core': {
                'environment': 'development',
            }
        }

    def _load_from_file(self) -> None:
        """Load configuration from INI file."""
        if not self._config_path.exists():
            return

        try:
            # Interpolation off so log formats with %(...)s survive
            parser = configparser.ConfigParser(interpolation=None)
            parser.read(self._config_path)

            for section_name in parser.sections():
                section = self._section_key(section_name)
                if section not in self._config:
                    self._config[section] = {}

                for key, value in parser[section_name].items():
                    # Try to convert to appropriate type
                    self._config[section][key] = self._convert_value(value)

        except configparser.Error as e:
            raise ConfigurationError(f"Error loading config file: {e}", cause=e)

    def _load_from_environment(self) -> None:
        """Load configuration from environment variables."""
        for key, value in os.environ.items():
            if key.startswith(ENV_PREFIX):
                # Parse nested keys: PSK_ALERT_ALERT__SNR_THRESHOLD
                config_key = key[len(ENV_PREFIX):].lower()
                parts = config_key.split('__')

                if len(parts) == 2:
                    section, setting = parts
                    if section not in self._config:
                        self._config[section] = {}
                    self._config[section][setting] = self._convert_value(value)
                elif len(parts) == 1:
                    # Direct setting
                    self._config['core'][parts[0]] = self._convert_value(value)

    @staticmethod
    def _section_key(section_name: str) -> str:
        section = section_name.lower()
        return 'core' if section == 'general' else section

    def _convert_value(self, value: str) -> Any:
        """Convert string value to appropriate type."""
        if value.lower() in ('true', 'false'):
            return value.lower() == 'true'

        if value.lower() in ('null', 'none', ''):
            return None

        # Try numeric conversion
        try:
            if '.' in value:
                return float(value)
            else:
                return int(value)
        except ValueError:
            pass

        # Return as string
        return value

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Get a configuration setting.

        Args:
            key: Setting key in format 'section.setting' or 'setting'
            default: Default value if setting not found

        Returns:
            Setting value or default
        """
        parts = key.split('.')

        if len(parts) == 1:
            # Direct key
            return self._config.get('core', {}).get(parts[0], default)
        elif len(parts) == 2:
            # Section.key
            section, setting = parts
            return self._config.get(section, {}).get(setting, default)
        else:
            raise ConfigurationError(f"Invalid setting key format: {key}")

    def set_setting(self, key: str, value: Any) -> None:
        """Set a configuration setting.

        Args:
            key: Setting key in format 'section.setting' or 'setting'
            value: Value to set
        """
        parts = key.split('.')

        if len(parts) == 1:
            if 'core' not in self._config:
                self._config['core'] = {}
            self._config['core'][parts[0]] = value
        elif len(parts) == 2:
            section, setting = parts
            if section not in self._config:
                self._config[section] = {}
            self._config[section][setting] = value
        else:
            raise ConfigurationError(f"Invalid setting key format: {key}")

    def save_configuration(self, config_path: Optional[Union[str, Path]] = None) -> Path:
        """Save current configuration to file.

        Args:
            config_path: Path to save config. If None, uses default path.
        """
        save_path = Path(config_path) if config_path else self._config_path
        save_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            parser = configparser.ConfigParser(interpolation=None)

            for section_name, section_data in self._config.items():
                if section_name == 'core':
                    section_name = 'GENERAL'
                else:
                    section_name = section_name.upper()

                parser.add_section(section_name)
                for key, value in section_data.items():
                    if isinstance(value, (list, tuple)):
                        value = ', '.join(str(item) for item in value)
                    parser.set(section_name, key, '' if value is None else str(value))

            with open(save_path, 'w') as f:
                parser.write(f)

        except (OSError, configparser.Error) as e:
            raise ConfigurationError(f"Error saving config file: {e}", cause=e)
        return save_path

    def to_settings(self) -> PSKAlertSettings:
        """Build validated settings from the merged configuration."""
        data: Dict[str, Any] = {
            name: {k: v for k, v in values.items() if v is not None}
            for name, values in self._config.items()
            if name != 'core'
        }
        data.update({k: v for k, v in self._config.get('core', {}).items() if v is not None})
        try:
            return PSKAlertSettings(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}", cause=e)

    def validate_configuration(self) -> bool:
        """Validate current configuration.

        Returns:
            True if configuration is valid

        Raises:
            ConfigurationError: If configuration is invalid
        """
        settings = self.to_settings()
        errors = []

        if settings.alert.enabled and settings.alert.notifier.value == 'email':
            if not settings.email.smtp_host:
                errors.append("SMTP host is required when the email notifier is selected")
            if not settings.alert.recipients:
                errors.append("At least one recipient is required for email alerts")

        # Validate MQTT settings if enabled
        if settings.alert.notifier.value == 'mqtt' or settings.mqtt.enabled:
            if not settings.mqtt.broker_host:
                errors.append("MQTT broker host is required when MQTT is enabled")

        if not settings.watchlist.monitored_callsigns:
            errors.append("No monitored callsigns configured")

        if errors:
            raise ConfigurationError("Configuration validation failed: " + "; ".join(errors))

        return True

    def to_dict(self) -> Dict[str, Any]:
        """Get configuration as dictionary."""
        return {section: dict(values) for section, values in self._config.items()}
