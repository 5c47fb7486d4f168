from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

import pytest

from psk_alert.config.settings import AlertSettings
from psk_alert.core.domain.models import (
    DecodedReception,
    EnrichedReport,
    WatchEntry,
    WatchListSnapshot,
    normalize_callsign,
)
from psk_alert.core.exceptions import NotificationError


class FakeStore:
    def __init__(self) -> None:
        self.reports: dict[int, EnrichedReport] = {}
        self.marked: list[int] = []
        self._next_id = 1

    def save(self, report: EnrichedReport) -> int:
        report.id = self._next_id
        self._next_id += 1
        self.reports[report.id] = report.model_copy()
        return report.id

    def mark_notified(self, report_id: int) -> None:
        self.marked.append(report_id)
        self.reports[report_id].notified = True

    def get(self, report_id: int) -> Optional[EnrichedReport]:
        report = self.reports.get(report_id)
        return report.model_copy() if report else None

    def find_pending_alerts(
        self, callsigns: Iterable[str], snr_threshold: int, distance_threshold: int
    ) -> List[EnrichedReport]:
        wanted = {normalize_callsign(c) for c in callsigns}
        return [
            r.model_copy()
            for r in self.reports.values()
            if not r.notified
            and r.transmitter_callsign in wanted
            and (
                (r.snr_db is not None and r.snr_db >= snr_threshold)
                or (r.distance_km is not None and r.distance_km >= distance_threshold)
            )
        ]


class FakeWatchList:
    def __init__(self, *callsigns: str) -> None:
        self.entries: dict[str, WatchEntry] = {}
        for callsign in callsigns:
            self.add(callsign)

    def snapshot(self) -> WatchListSnapshot:
        return WatchListSnapshot.from_entries(list(self.entries.values()))

    def active_entries(self) -> List[WatchEntry]:
        return [e for e in self.entries.values() if e.active]

    def add(self, callsign: str, snr_threshold: Optional[int] = None,
            distance_threshold: Optional[int] = None) -> WatchEntry:
        entry = WatchEntry(
            callsign=callsign, snr_threshold=snr_threshold, distance_threshold=distance_threshold
        )
        self.entries[entry.callsign] = entry
        return entry

    def remove(self, callsign: str) -> Optional[WatchEntry]:
        entry = self.entries.get(normalize_callsign(callsign))
        if entry is None or not entry.active:
            return None
        removed = entry.model_copy(update={"active": False})
        self.entries[entry.callsign] = removed
        return removed


class FakeNotifier:
    """Records sent alerts. ``result`` False or an exception simulates failure."""

    def __init__(self, result=True) -> None:
        self.result = result
        self.sent: list[tuple[Sequence[str], str, str]] = []
        self.calls = 0

    def send(self, recipients: Sequence[str], subject: str, body: str) -> bool:
        self.calls += 1
        if isinstance(self.result, Exception):
            raise self.result
        if self.result:
            self.sent.append((list(recipients), subject, body))
        return bool(self.result)


def make_reception(**overrides) -> DecodedReception:
    data = dict(
        transmitter_callsign="K2ABC",
        receiver_callsign="W3XYZ",
        frequency_hz=14_074_000,
        snr_db=-5,
        mode="FT8",
        timestamp=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
    )
    data.update(overrides)
    return DecodedReception(**data)


def make_report(**overrides) -> EnrichedReport:
    distance = overrides.pop("distance_km", None)
    return EnrichedReport.from_reception(make_reception(**overrides), distance)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def alert_settings() -> AlertSettings:
    return AlertSettings(snr_threshold=10, distance_threshold=1000, recipients=["ops@example.com"])


@pytest.fixture
def failing_notifier() -> FakeNotifier:
    return FakeNotifier(result=NotificationError("smtp down"))
