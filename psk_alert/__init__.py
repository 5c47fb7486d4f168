"""PSKAlert - PSKReporter reception monitoring and alerting.

Listens to the PSKReporter UDP feed, decodes its template-based (IPFIX)
datagrams, keeps receptions of watched transmitter callsigns and sends an
alert when a reception crosses the configured SNR or distance thresholds.

Architecture:
- core: domain models, wire codec, geospatial maths and ports
- application: reception filter, alert evaluator, ingestion pipeline
- infrastructure: UDP listener, SQLite storage, notifiers, monitoring
- cli: typer command line interface
"""

__version__ = "1.0.0"
__license__ = "MIT"

# Public API exports
from psk_alert.core.domain.models import (
    DecodedReception,
    EnrichedReport,
    WatchEntry,
    WatchListSnapshot,
)
from psk_alert.core.exceptions import (
    PSKAlertError,
    BindError,
    DecodeError,
    ConfigurationError,
)

__all__ = [
    "DecodedReception",
    "EnrichedReport",
    "WatchEntry",
    "WatchListSnapshot",
    "PSKAlertError",
    "BindError",
    "DecodeError",
    "ConfigurationError",
]
