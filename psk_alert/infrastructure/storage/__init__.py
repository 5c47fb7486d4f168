"""
SQLite storage for reception reports and the watch-list
"""

import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Union

from psk_alert.core.domain.models import (
    EnrichedReport, WatchEntry, WatchListSnapshot, normalize_callsign, utcnow
)
from psk_alert.core.exceptions import PersistenceError

logger = logging.getLogger(__name__)

_REPORT_COLUMNS = (
    "transmitter_callsign", "receiver_callsign", "frequency_hz", "snr_db", "mode",
    "transmitter_locator", "receiver_locator",
    "transmitter_latitude", "transmitter_longitude",
    "receiver_latitude", "receiver_longitude",
    "distance_km", "timestamp", "notified",
)


def _to_db_time(value: datetime) -> str:
    # Fixed-width UTC text so string comparison orders chronologically
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class _SQLiteBase:
    """Connection handling shared by the SQLite adapters."""

    def __init__(self, db_path: Union[str, Path]) -> None:
        self._db_path = str(db_path)
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self._db_path, timeout=30)
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open database {self._db_path}: {e}", cause=e)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.Error as e:
            logger.error(f"Database error on {self._db_path}: {e}")
            raise PersistenceError(f"Database operation failed: {e}", cause=e)
        finally:
            conn.close()


class SQLiteReportStore(_SQLiteBase):
    """Durable record of enriched receptions."""

    def __init__(self, db_path: Union[str, Path]) -> None:
        super().__init__(db_path)
        self.init_db()

    def init_db(self) -> None:
        """Create the reports table and its indexes if they do not exist."""
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS reports (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    transmitter_callsign TEXT NOT NULL,
                    receiver_callsign TEXT NOT NULL,
                    frequency_hz INTEGER NOT NULL,
                    snr_db INTEGER,
                    mode TEXT,
                    transmitter_locator TEXT,
                    receiver_locator TEXT,
                    transmitter_latitude REAL,
                    transmitter_longitude REAL,
                    receiver_latitude REAL,
                    receiver_longitude REAL,
                    distance_km INTEGER,
                    timestamp TEXT NOT NULL,
                    notified INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_reports_tx_time "
                "ON reports (transmitter_callsign, timestamp)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_reports_pending "
                "ON reports (notified, transmitter_callsign)"
            )

    def save(self, report: EnrichedReport) -> int:
        """Insert a report and assign its id."""
        values = [getattr(report, column) for column in _REPORT_COLUMNS]
        values[_REPORT_COLUMNS.index("timestamp")] = _to_db_time(report.timestamp)
        values[_REPORT_COLUMNS.index("notified")] = int(report.notified)
        placeholders = ", ".join("?" for _ in _REPORT_COLUMNS)

        with self._connect() as conn:
            cur = conn.execute(
                f"INSERT INTO reports ({', '.join(_REPORT_COLUMNS)}, created_at) "
                f"VALUES ({placeholders}, ?)",
                (*values, _to_db_time(utcnow())),
            )
            report_id = int(cur.lastrowid)

        report.id = report_id
        logger.debug(f"Saved report {report_id} for {report.transmitter_callsign}")
        return report_id

    def mark_notified(self, report_id: int) -> None:
        """Set the notified flag. Never clears it."""
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE reports SET notified = 1 WHERE id = ?", (report_id,)
            )
            if cur.rowcount == 0:
                raise PersistenceError(f"Report {report_id} not found", details={"id": report_id})

    def get(self, report_id: int) -> Optional[EnrichedReport]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM reports WHERE id = ?", (report_id,)).fetchone()
        return self._row_to_report(row) if row else None

    def find_pending_alerts(
        self, callsigns: Iterable[str], snr_threshold: int, distance_threshold: int
    ) -> List[EnrichedReport]:
        """Un-notified reports for the callsigns that meet either threshold."""
        normalized = sorted({normalize_callsign(c) for c in callsigns if c and c.strip()})
        if not normalized:
            return []

        placeholders = ", ".join("?" for _ in normalized)
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM reports
                WHERE notified = 0
                  AND transmitter_callsign IN ({placeholders})
                  AND ((snr_db IS NOT NULL AND snr_db >= ?)
                       OR (distance_km IS NOT NULL AND distance_km >= ?))
                ORDER BY timestamp, id
                """,
                (*normalized, snr_threshold, distance_threshold),
            ).fetchall()
        return [self._row_to_report(row) for row in rows]

    def recent(self, callsign: Optional[str] = None, limit: int = 50,
               since: Optional[datetime] = None) -> List[EnrichedReport]:
        """Newest reports first, optionally for one transmitter and after a time."""
        clauses = []
        params: list = []
        if callsign:
            clauses.append("transmitter_callsign = ?")
            params.append(normalize_callsign(callsign))
        if since is not None:
            clauses.append("timestamp >= ?")
            params.append(_to_db_time(since))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM reports {where} ORDER BY timestamp DESC, id DESC LIMIT ?",
                (*params, limit),
            ).fetchall()
        return [self._row_to_report(row) for row in rows]

    def count(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS n FROM reports").fetchone()
        return int(row["n"])

    def cleanup_old_reports(self, max_age_days: int) -> int:
        """Delete reports observed more than max_age_days ago and return the number removed."""
        cutoff = utcnow() - timedelta(days=max_age_days)
        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM reports WHERE timestamp < ?", (_to_db_time(cutoff),)
            )
            removed = cur.rowcount
        logger.info(f"Cleanup complete (>{max_age_days}d): removed {removed} reports")
        return removed

    @staticmethod
    def _row_to_report(row: sqlite3.Row) -> EnrichedReport:
        data = {column: row[column] for column in _REPORT_COLUMNS}
        data["timestamp"] = datetime.fromisoformat(row["timestamp"])
        data["notified"] = bool(row["notified"])
        return EnrichedReport(id=row["id"], **data)


class SQLiteWatchList(_SQLiteBase):
    """Watch-list backed by SQLite with cached immutable snapshots.

    Snapshots are swapped under a lock. A cached snapshot is reused for
    ``refresh_seconds`` so edits made by another process show up without
    reading the table for every reception; local edits invalidate it.
    """

    def __init__(self, db_path: Union[str, Path], refresh_seconds: float = 5.0) -> None:
        super().__init__(db_path)
        self.refresh_seconds = refresh_seconds
        self._lock = threading.Lock()
        self._snapshot: Optional[WatchListSnapshot] = None
        self._snapshot_loaded_at = 0.0
        self.init_db()

    def init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS watch_entries (
                    callsign TEXT PRIMARY KEY,
                    active INTEGER NOT NULL DEFAULT 1,
                    snr_threshold INTEGER,
                    distance_threshold INTEGER,
                    created_at TEXT NOT NULL
                )
                """
            )

    def add(self, callsign: str, snr_threshold: Optional[int] = None,
            distance_threshold: Optional[int] = None) -> WatchEntry:
        """Add or re-activate a callsign. Given overrides replace stored ones."""
        entry = WatchEntry(
            callsign=callsign,
            snr_threshold=snr_threshold,
            distance_threshold=distance_threshold,
        )
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO watch_entries (callsign, active, snr_threshold, distance_threshold, created_at)
                VALUES (?, 1, ?, ?, ?)
                ON CONFLICT(callsign) DO UPDATE SET
                    active = 1,
                    snr_threshold = COALESCE(excluded.snr_threshold, watch_entries.snr_threshold),
                    distance_threshold = COALESCE(excluded.distance_threshold, watch_entries.distance_threshold)
                """,
                (entry.callsign, entry.snr_threshold, entry.distance_threshold,
                 _to_db_time(entry.created_at)),
            )
            row = conn.execute(
                "SELECT * FROM watch_entries WHERE callsign = ?", (entry.callsign,)
            ).fetchone()

        self._invalidate()
        logger.info(f"Monitoring callsign {entry.callsign}")
        return self._row_to_entry(row)

    def remove(self, callsign: str) -> Optional[WatchEntry]:
        """Deactivate a callsign. Returns None when it was not actively monitored."""
        normalized = normalize_callsign(callsign)
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE watch_entries SET active = 0 WHERE callsign = ? AND active = 1",
                (normalized,),
            )
            if cur.rowcount == 0:
                return None
            row = conn.execute(
                "SELECT * FROM watch_entries WHERE callsign = ?", (normalized,)
            ).fetchone()

        self._invalidate()
        logger.info(f"Stopped monitoring callsign {normalized}")
        return self._row_to_entry(row)

    def seed(self, callsigns: Iterable[str]) -> int:
        """Insert configured callsigns that are not known yet; returns how many were added.

        A callsign removed through the watch-list stays inactive across
        restarts even when it is still configured; use add() to re-activate it.
        """
        added = 0
        now = _to_db_time(utcnow())
        with self._connect() as conn:
            for callsign in callsigns:
                normalized = normalize_callsign(callsign)
                if not normalized:
                    continue
                cur = conn.execute(
                    "INSERT OR IGNORE INTO watch_entries (callsign, active, created_at) VALUES (?, 1, ?)",
                    (normalized, now),
                )
                if cur.rowcount:
                    added += 1
                    logger.info(f"Added monitored callsign: {normalized}")
                else:
                    logger.debug(f"Callsign {normalized} already known")

        self._invalidate()
        return added

    def active_entries(self) -> List[WatchEntry]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM watch_entries WHERE active = 1 ORDER BY callsign"
            ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def all_entries(self) -> List[WatchEntry]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM watch_entries ORDER BY callsign").fetchall()
        return [self._row_to_entry(row) for row in rows]

    def snapshot(self) -> WatchListSnapshot:
        """Return a complete, immutable view of the active entries."""
        with self._lock:
            fresh = (
                self._snapshot is not None
                and time.monotonic() - self._snapshot_loaded_at < self.refresh_seconds
            )
            if not fresh:
                self._snapshot = WatchListSnapshot.from_entries(self.active_entries())
                self._snapshot_loaded_at = time.monotonic()
            return self._snapshot

    def _invalidate(self) -> None:
        with self._lock:
            self._snapshot = None

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> WatchEntry:
        return WatchEntry(
            callsign=row["callsign"],
            active=bool(row["active"]),
            snr_threshold=row["snr_threshold"],
            distance_threshold=row["distance_threshold"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )


__all__ = ["SQLiteReportStore", "SQLiteWatchList"]
