"""Infrastructure layer for PSKAlert."""

from psk_alert.infrastructure.listener import UDPListener
from psk_alert.infrastructure.storage import SQLiteReportStore, SQLiteWatchList
from psk_alert.infrastructure.messaging import EmailNotifier, LogNotifier, MQTTNotifier, build_notifier
from psk_alert.infrastructure.monitoring import ServiceMonitor

__all__ = [
    "UDPListener",
    "SQLiteReportStore",
    "SQLiteWatchList",
    "EmailNotifier",
    "LogNotifier",
    "MQTTNotifier",
    "build_notifier",
    "ServiceMonitor",
]
