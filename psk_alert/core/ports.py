"""Ports (interfaces) used by the ingestion-and-alert pipeline.

Ports define the minimal contracts for storage and notification adapters so
that the pipeline can be reused with different backends.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Protocol, Sequence

from psk_alert.core.domain.models import EnrichedReport, WatchEntry, WatchListSnapshot


class ReportStore(Protocol):
    """Durable record of enriched receptions."""

    def save(self, report: EnrichedReport) -> int:
        ...

    def mark_notified(self, report_id: int) -> None:
        ...

    def get(self, report_id: int) -> Optional[EnrichedReport]:
        ...

    def find_pending_alerts(
        self, callsigns: Iterable[str], snr_threshold: int, distance_threshold: int
    ) -> List[EnrichedReport]:
        ...


class WatchList(Protocol):
    """Monitored callsigns, read by the filter through snapshots."""

    def snapshot(self) -> WatchListSnapshot:
        ...

    def active_entries(self) -> List[WatchEntry]:
        ...

    def add(
        self,
        callsign: str,
        snr_threshold: Optional[int] = None,
        distance_threshold: Optional[int] = None,
    ) -> WatchEntry:
        ...

    def remove(self, callsign: str) -> Optional[WatchEntry]:
        ...

    def seed(self, callsigns: Iterable[str]) -> int:
        ...


class Notifier(Protocol):
    """Delivers an alert to a set of recipients."""

    def send(self, recipients: Sequence[str], subject: str, body: str) -> bool:
        ...
