"""
Orchestration services for PSKAlert: the ingestion pipeline and the alert sweep
"""

import logging
import threading
from typing import Dict, List, Optional

from psk_alert.application.use_cases.alert_evaluation import AlertEvaluator
from psk_alert.application.use_cases.reception_filter import ReceptionFilter
from psk_alert.core.domain.models import (
    AlertThresholds, DecodedReception, EnrichedReport, WatchListSnapshot
)
from psk_alert.core.exceptions import PSKAlertError
from psk_alert.core.ports import ReportStore, WatchList
from psk_alert.utils.logger import log_performance

logger = logging.getLogger(__name__)


class IngestionPipeline:
    """Filter, persist and evaluate one decoded reception.

    Instances are the sink the UDP listener forwards receptions to.
    """

    def __init__(self, watchlist: WatchList, store: ReportStore, evaluator: AlertEvaluator,
                 reception_filter: Optional[ReceptionFilter] = None):
        self.watchlist = watchlist
        self.store = store
        self.evaluator = evaluator
        self.reception_filter = reception_filter or ReceptionFilter()
        self._lock = threading.Lock()
        self._counters = {'seen': 0, 'dropped': 0, 'persisted': 0, 'notified': 0}

    @property
    def counters(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def _count(self, name: str) -> None:
        with self._lock:
            self._counters[name] += 1

    def handle(self, reception: DecodedReception) -> Optional[EnrichedReport]:
        """Returns the persisted report, or None when the transmitter is not watched."""
        self._count('seen')
        snapshot = self.watchlist.snapshot()

        report = self.reception_filter.process(reception, snapshot)
        if report is None:
            self._count('dropped')
            return None

        self.store.save(report)
        self._count('persisted')
        logger.info(
            f"Saved reception report: {report.transmitter_callsign} -> {report.receiver_callsign} "
            f"on {report.frequency_hz} Hz, SNR: {report.snr_db} dB, Distance: {report.distance_km} km"
        )

        decision = self.evaluator.evaluate(report, snapshot)
        if decision.notified:
            self._count('notified')
        return report


class AlertSweepJob:
    """Periodically re-evaluates stored reports that were never notified.

    Picks up reports whose delivery failed and reports that cross a
    threshold changed after they were stored.
    """

    def __init__(self, evaluator: AlertEvaluator, store: ReportStore, watchlist: WatchList,
                 interval_seconds: float = 300.0):
        self.evaluator = evaluator
        self.store = store
        self.watchlist = watchlist
        self.interval_seconds = interval_seconds
        self.failed_runs = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _group_by_thresholds(self, snapshot: WatchListSnapshot) -> Dict[AlertThresholds, List[str]]:
        groups: Dict[AlertThresholds, List[str]] = {}
        for callsign in snapshot.callsigns:
            thresholds = self.evaluator.thresholds_for(callsign, snapshot)
            groups.setdefault(thresholds, []).append(callsign)
        return groups

    @log_performance
    def run_once(self) -> int:
        """One pass over pending reports; returns how many alerts were delivered."""
        snapshot = WatchListSnapshot.from_entries(self.watchlist.active_entries())
        if not len(snapshot):
            logger.debug("Sweep skipped, watch-list is empty")
            return 0

        notified = 0
        for thresholds, callsigns in self._group_by_thresholds(snapshot).items():
            pending = self.store.find_pending_alerts(
                callsigns, thresholds.snr_db, thresholds.distance_km
            )
            for report in pending:
                if self.evaluator.evaluate(report, snapshot).notified:
                    notified += 1

        if notified:
            logger.info(f"Alert sweep delivered {notified} pending alert(s)")
        return notified

    def start(self) -> None:
        if self.interval_seconds <= 0:
            logger.info("Alert sweep disabled")
            return
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="psk-sweep", daemon=True)
        self._thread.start()
        logger.info(f"Alert sweep running every {self.interval_seconds:.0f}s")

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.run_once()
            except PSKAlertError as e:
                self.failed_runs += 1
                logger.error(f"Alert sweep failed: {e.message}")
            except Exception:
                self.failed_runs += 1
                logger.exception("Unexpected error in alert sweep")
