"""Configuration layer for PSKAlert."""

from psk_alert.config.manager import ConfigurationManager
from psk_alert.config.settings import PSKAlertSettings

__all__ = [
    "ConfigurationManager",
    "PSKAlertSettings",
]
