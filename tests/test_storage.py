from __future__ import annotations

from datetime import timedelta

import pytest

from psk_alert.core.domain.models import utcnow
from psk_alert.core.exceptions import PersistenceError
from psk_alert.infrastructure.storage import SQLiteReportStore, SQLiteWatchList

from conftest import make_report


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "data" / "psk_alert.db"


@pytest.fixture
def report_store(db_path) -> SQLiteReportStore:
    return SQLiteReportStore(db_path)


@pytest.fixture
def watchlist(db_path) -> SQLiteWatchList:
    return SQLiteWatchList(db_path, refresh_seconds=60)


class TestReportStore:
    def test_save_assigns_id_and_get_returns_same_report(self, report_store, db_path) -> None:
        report = make_report(
            snr_db=-7, distance_km=812, transmitter_locator="FN20",
            transmitter_latitude=40.5, transmitter_longitude=-75.0,
        )

        report_id = report_store.save(report)
        stored = report_store.get(report_id)

        assert db_path.exists()
        assert report.id == report_id
        assert stored.model_dump() == report.model_dump()
        assert stored.timestamp.tzinfo is not None

    def test_get_unknown_id(self, report_store) -> None:
        assert report_store.get(12345) is None

    def test_mark_notified_sets_flag(self, report_store) -> None:
        report_id = report_store.save(make_report())

        report_store.mark_notified(report_id)

        assert report_store.get(report_id).notified is True

    def test_mark_notified_unknown_id_fails(self, report_store) -> None:
        with pytest.raises(PersistenceError):
            report_store.mark_notified(999)

    def test_find_pending_alerts(self, report_store) -> None:
        strong = report_store.save(make_report(snr_db=12))
        distant = report_store.save(make_report(snr_db=-20, distance_km=4000))
        report_store.save(make_report(snr_db=-20, distance_km=50))
        report_store.save(make_report(transmitter_callsign="W3XYZ", snr_db=30))
        done = report_store.save(make_report(snr_db=30))
        report_store.mark_notified(done)

        pending = report_store.find_pending_alerts(["k2abc"], 10, 1000)

        assert sorted(r.id for r in pending) == [strong, distant]

    def test_find_pending_alerts_without_callsigns(self, report_store) -> None:
        report_store.save(make_report(snr_db=30))
        assert report_store.find_pending_alerts([], 0, 0) == []

    def test_recent_is_newest_first_and_filtered(self, report_store) -> None:
        now = utcnow()
        old = report_store.save(make_report(timestamp=now - timedelta(hours=5)))
        new = report_store.save(make_report(timestamp=now - timedelta(minutes=5)))
        report_store.save(make_report(transmitter_callsign="N4QRS", timestamp=now))

        assert [r.id for r in report_store.recent(callsign="k2abc")] == [new, old]
        assert [r.id for r in report_store.recent(callsign="K2ABC", since=now - timedelta(hours=1))] == [new]
        assert len(report_store.recent(limit=2)) == 2
        assert report_store.count() == 3

    def test_cleanup_old_reports(self, report_store) -> None:
        now = utcnow()
        report_store.save(make_report(timestamp=now - timedelta(days=40)))
        kept = report_store.save(make_report(timestamp=now - timedelta(days=1)))

        assert report_store.cleanup_old_reports(30) == 1
        assert [r.id for r in report_store.recent()] == [kept]

    def test_unwritable_path_raises_persistence_error(self, tmp_path) -> None:
        with pytest.raises(PersistenceError):
            SQLiteReportStore(tmp_path)


class TestWatchList:
    def test_add_normalizes_and_lists(self, watchlist) -> None:
        entry = watchlist.add(" k2abc ", snr_threshold=5)

        assert entry.callsign == "K2ABC"
        assert entry.snr_threshold == 5
        assert entry.distance_threshold is None
        assert [e.callsign for e in watchlist.active_entries()] == ["K2ABC"]

    def test_add_twice_keeps_one_entry_and_existing_overrides(self, watchlist) -> None:
        watchlist.add("K2ABC", snr_threshold=5)
        entry = watchlist.add("K2ABC", distance_threshold=200)

        assert entry.snr_threshold == 5
        assert entry.distance_threshold == 200
        assert len(watchlist.all_entries()) == 1

    def test_remove_deactivates(self, watchlist) -> None:
        watchlist.add("K2ABC")

        removed = watchlist.remove("k2abc")

        assert removed.active is False
        assert watchlist.active_entries() == []
        assert [e.callsign for e in watchlist.all_entries()] == ["K2ABC"]
        assert watchlist.remove("K2ABC") is None
        assert watchlist.remove("NOBODY") is None

    def test_add_reactivates_removed_callsign(self, watchlist) -> None:
        watchlist.add("K2ABC")
        watchlist.remove("K2ABC")

        assert watchlist.add("K2ABC").active is True
        assert watchlist.snapshot().contains("K2ABC")

    def test_seed_only_inserts_unknown_callsigns(self, watchlist) -> None:
        watchlist.add("K2ABC")
        watchlist.remove("K2ABC")

        added = watchlist.seed(["K2ABC", "n4qrs", " "])

        assert added == 1
        # Seeding does not undo an explicit removal
        assert watchlist.snapshot().callsigns == ["N4QRS"]

    def test_snapshot_is_cached_until_refresh(self, watchlist, db_path) -> None:
        watchlist.add("K2ABC")
        first = watchlist.snapshot()

        SQLiteWatchList(db_path).add("N4QRS")

        assert watchlist.snapshot() is first
        assert not watchlist.snapshot().contains("N4QRS")

        watchlist.add("W3XYZ")
        assert watchlist.snapshot().callsigns == ["K2ABC", "N4QRS", "W3XYZ"]

    def test_zero_refresh_reads_every_time(self, db_path) -> None:
        reader = SQLiteWatchList(db_path, refresh_seconds=0)
        reader.snapshot()

        SQLiteWatchList(db_path).add("K2ABC")

        assert reader.snapshot().contains("K2ABC")

    def test_removed_callsign_stays_inactive_after_restart(self, watchlist, db_path) -> None:
        watchlist.seed(["K2ABC"])
        watchlist.remove("K2ABC")

        restarted = SQLiteWatchList(db_path)

        assert restarted.seed(["K2ABC"]) == 0
        assert restarted.active_entries() == []
