"""Shared utilities."""

from psk_alert.utils.logger import log_performance, setup_logging

__all__ = ["log_performance", "setup_logging"]
