"""
Alert evaluation use case for PSKAlert
"""

import logging
import threading
from typing import List, Optional, Sequence

from psk_alert.config.settings import AlertSettings
from psk_alert.core.domain.models import (
    AlertDecision, AlertThresholds, EnrichedReport, WatchListSnapshot
)
from psk_alert.core.exceptions import NotificationError
from psk_alert.core.ports import Notifier, ReportStore, WatchList

logger = logging.getLogger(__name__)

ALERT_BODY_TEMPLATE = """\
PSKReporter Alert

Alert Condition Met: {reason}

Reception Details:
- Transmitter: {transmitter}
- Receiver: {receiver}
- Frequency: {frequency_hz:,} Hz ({frequency_mhz:.3f} MHz)
- Mode: {mode}
- SNR: {snr} dB
- Distance: {distance} km
- Timestamp: {timestamp}

Transmitter Location: {transmitter_location}
Receiver Location: {receiver_location}

This is an automated alert from PSKAlert.
"""


def format_location(lat: Optional[float], lon: Optional[float]) -> str:
    if lat is None or lon is None:
        return "Unknown"
    return f"{lat:.4f}°, {lon:.4f}°"


def build_alert_body(report: EnrichedReport, reason: str) -> str:
    """Plain-text alert message for one report."""
    return ALERT_BODY_TEMPLATE.format(
        reason=reason,
        transmitter=report.transmitter_callsign,
        receiver=report.receiver_callsign,
        frequency_hz=report.frequency_hz,
        frequency_mhz=report.frequency_mhz,
        mode=report.mode or "Unknown",
        snr=report.snr_db if report.snr_db is not None else 0,
        distance=report.distance_km if report.distance_km is not None else 0,
        timestamp=report.timestamp.isoformat(),
        transmitter_location=format_location(report.transmitter_latitude, report.transmitter_longitude),
        receiver_location=format_location(report.receiver_latitude, report.receiver_longitude),
    )


class AlertEvaluator:
    """Decides whether a report crosses its thresholds and notifies at most once.

    Evaluations run one at a time, so the inline path and the sweep job
    cannot both deliver an alert for the same report.
    """

    def __init__(self, settings: AlertSettings, notifier: Notifier,
                 store: ReportStore, watchlist: WatchList):
        self.settings = settings
        self.notifier = notifier
        self.store = store
        self.watchlist = watchlist
        self._lock = threading.Lock()

    @property
    def recipients(self) -> Sequence[str]:
        return self.settings.recipients

    def thresholds_for(self, callsign: str,
                       snapshot: Optional[WatchListSnapshot] = None) -> AlertThresholds:
        """Per-entry overrides where set, global thresholds otherwise."""
        snapshot = snapshot if snapshot is not None else self.watchlist.snapshot()
        entry = snapshot.get(callsign)
        snr = self.settings.snr_threshold
        distance = self.settings.distance_threshold
        if entry is not None:
            if entry.snr_threshold is not None:
                snr = entry.snr_threshold
            if entry.distance_threshold is not None:
                distance = entry.distance_threshold
        return AlertThresholds(snr_db=snr, distance_km=distance)

    @staticmethod
    def check_conditions(report: EnrichedReport, thresholds: AlertThresholds) -> List[str]:
        """Every satisfied condition, in a fixed order. Absent values never satisfy."""
        reasons = []
        if report.snr_db is not None and report.snr_db >= thresholds.snr_db:
            reasons.append(
                f"SNR {report.snr_db} dB exceeds threshold of {thresholds.snr_db} dB."
            )
        if report.distance_km is not None and report.distance_km >= thresholds.distance_km:
            reasons.append(
                f"Distance {report.distance_km} km exceeds threshold of {thresholds.distance_km} km."
            )
        return reasons

    def evaluate(self, report: EnrichedReport,
                 snapshot: Optional[WatchListSnapshot] = None) -> AlertDecision:
        """Notify for the report if its conditions are met and it was never notified.

        A failed delivery leaves ``notified`` False so a later sweep retries
        it. Errors from the report store propagate.
        """
        if not self.settings.enabled:
            logger.debug("Alerts are disabled")
            return AlertDecision(notified=False, reason="Alerts are disabled")

        with self._lock:
            if report.notified or self._already_notified(report):
                logger.debug(f"Alert already sent for report {report.id}")
                return AlertDecision(notified=False, reason="Already notified")

            thresholds = self.thresholds_for(report.transmitter_callsign, snapshot)
            reasons = self.check_conditions(report, thresholds)
            if not reasons:
                return AlertDecision(notified=False, reason="")
            reason = " ".join(reasons)

            if not self._deliver(report, reason):
                return AlertDecision(notified=False, reason=reason)

            if report.id is not None:
                self.store.mark_notified(report.id)
            report.notified = True

        logger.info(
            f"Alert sent for callsign {report.transmitter_callsign} "
            f"(report {report.id}) to {list(self.recipients)}"
        )
        return AlertDecision(notified=True, reason=reason)

    def _already_notified(self, report: EnrichedReport) -> bool:
        if report.id is None:
            return False
        stored = self.store.get(report.id)
        if stored is not None and stored.notified:
            report.notified = True
            return True
        return False

    def _deliver(self, report: EnrichedReport, reason: str) -> bool:
        subject = f"{self.settings.subject_prefix}: {report.transmitter_callsign}"
        body = build_alert_body(report, reason)
        try:
            delivered = self.notifier.send(self.recipients, subject, body)
        except NotificationError as e:
            logger.error(f"Failed to send alert for report {report.id}: {e.message}")
            return False
        except Exception:
            logger.exception(f"Unexpected notifier error for report {report.id}")
            return False
        if not delivered:
            logger.warning(f"Notifier did not deliver alert for report {report.id}")
        return bool(delivered)
