"""Custom exceptions for PSKAlert system."""

from typing import Any, Dict, Optional


class PSKAlertError(Exception):
    """Base exception for all PSKAlert errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause


class ConfigurationError(PSKAlertError):
    """Raised when configuration is invalid or missing."""
    pass


class ListenerError(PSKAlertError):
    """Raised when the UDP listener is used out of lifecycle order."""
    pass


class BindError(ListenerError):
    """Raised when the listener cannot bind its UDP endpoint."""
    pass


class TransientSocketError(ListenerError):
    """Raised for non-timeout receive errors while the listener is running."""
    pass


class DecodeError(PSKAlertError):
    """Raised when a datagram or one of its sets is malformed."""
    pass


class PersistenceError(PSKAlertError):
    """Raised when report or watch-list storage operations fail."""
    pass


class NotificationError(PSKAlertError):
    """Raised when an alert cannot be delivered."""
    pass


class NetworkError(PSKAlertError):
    """Raised when network operations fail."""
    pass


class MonitoringError(PSKAlertError):
    """Raised when process or host metrics cannot be read."""
    pass
