"""SQLite-backed trip store: monitored trips, their tracking samples and a
status log.

``SqliteTripStore`` serves as both the ``TripSource`` and the
``NotificationSink`` for the fleet monitor.  Each call opens its own
connection, so the store can be shared freely between worker threads.
"""

from __future__ import annotations

import datetime
import json
import logging
import sqlite3
import threading
from contextlib import closing, contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

from triptracker.ingest.itinerary import parse_itinerary
from triptracker.models import (
    Itinerary,
    MonitoredTrip,
    RiderProfile,
    TrackedJourney,
    TrackingLocation,
    TripStatus,
)
from triptracker.tracking.instructions import TripInstruction, render_instruction

logger = logging.getLogger(__name__)

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS monitored_trips (
        trip_id TEXT PRIMARY KEY,
        itinerary_json TEXT NOT NULL,
        mobility_mode TEXT,
        locale TEXT NOT NULL DEFAULT 'en',
        end_time TEXT,
        end_condition TEXT
    );
    CREATE TABLE IF NOT EXISTS tracking_locations (
        trip_id TEXT NOT NULL,
        lat REAL NOT NULL,
        lon REAL NOT NULL,
        timestamp TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS idx_tracking_trip
        ON tracking_locations (trip_id, timestamp);
    CREATE TABLE IF NOT EXISTS status_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        trip_id TEXT NOT NULL,
        checked_at TEXT NOT NULL,
        status TEXT NOT NULL,
        previous_status TEXT,
        instruction TEXT
    );
"""


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class SqliteTripStore:
    """Trip source and notification sink over a single SQLite file."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        # trip_id -> (itinerary JSON, parsed itinerary).  Reusing the parsed
        # legs keeps their cached segments alive across analysis ticks.
        self._itineraries: dict[str, tuple[str, Itinerary]] = {}
        self._itineraries_lock = threading.Lock()
        with self._connect() as conn:
            conn.executescript(_SCHEMA)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        with closing(sqlite3.connect(str(self.db_path), timeout=30)) as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            with conn:
                yield conn

    # ── Writing trips ───────────────────────────────────────────────

    def add_trip(
        self,
        trip_id: str,
        itinerary_data: dict[str, Any],
        rider: Optional[RiderProfile] = None,
    ) -> None:
        """Register (or replace) a monitored trip from its itinerary JSON."""
        parse_itinerary(itinerary_data)  # reject bad itineraries up front
        rider = rider or RiderProfile()
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO monitored_trips "
                "(trip_id, itinerary_json, mobility_mode, locale) VALUES (?, ?, ?, ?)",
                (trip_id, json.dumps(itinerary_data), rider.mobility_mode, rider.locale),
            )
        self._forget_itinerary(trip_id)
        logger.info("Stored monitored trip %s", trip_id)

    def add_locations(self, trip_id: str, locations: Iterable[TrackingLocation]) -> int:
        """Append tracking samples to a trip's journey; returns the count."""
        rows = [(trip_id, loc.lat, loc.lon, loc.timestamp.isoformat()) for loc in locations]
        with self._connect() as conn:
            conn.executemany(
                "INSERT INTO tracking_locations (trip_id, lat, lon, timestamp) VALUES (?, ?, ?, ?)",
                rows,
            )
        return len(rows)

    def end_journey(
        self,
        trip_id: str,
        end_condition: str = "COMPLETED",
        end_time: Optional[datetime.datetime] = None,
    ) -> None:
        end_time = end_time or _now()
        with self._connect() as conn:
            conn.execute(
                "UPDATE monitored_trips SET end_time = ?, end_condition = ? WHERE trip_id = ?",
                (end_time.isoformat(), end_condition, trip_id),
            )

    def remove_trip(self, trip_id: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM tracking_locations WHERE trip_id = ?", (trip_id,))
            conn.execute("DELETE FROM status_log WHERE trip_id = ?", (trip_id,))
            conn.execute("DELETE FROM monitored_trips WHERE trip_id = ?", (trip_id,))
        self._forget_itinerary(trip_id)

    # ── TripSource ──────────────────────────────────────────────────

    def monitored_trip_ids(self) -> list[str]:
        with self._connect() as conn:
            rows = conn.execute("SELECT trip_id FROM monitored_trips ORDER BY trip_id").fetchall()
        return [r[0] for r in rows]

    def load_trip(self, trip_id: str) -> MonitoredTrip:
        """Load a trip; raises ``KeyError`` if it is not monitored."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT itinerary_json, mobility_mode, locale, end_time, end_condition "
                "FROM monitored_trips WHERE trip_id = ?",
                (trip_id,),
            ).fetchone()
            if row is None:
                raise KeyError(trip_id)
            loc_rows = conn.execute(
                "SELECT lat, lon, timestamp FROM tracking_locations "
                "WHERE trip_id = ? ORDER BY timestamp, rowid",
                (trip_id,),
            ).fetchall()

        itinerary_json, mobility_mode, locale, end_time, end_condition = row
        journey = TrackedJourney(
            trip_id=trip_id,
            locations=[
                TrackingLocation(lat=lat, lon=lon, timestamp=datetime.datetime.fromisoformat(ts))
                for lat, lon, ts in loc_rows
            ],
            end_time=datetime.datetime.fromisoformat(end_time) if end_time else None,
            end_condition=end_condition,
        )
        return MonitoredTrip(
            id=trip_id,
            itinerary=self._itinerary(trip_id, itinerary_json),
            journey=journey,
            rider=RiderProfile(mobility_mode=mobility_mode, locale=locale),
        )

    def _itinerary(self, trip_id: str, itinerary_json: str) -> Itinerary:
        """Parsed itinerary for a trip, reused while its stored JSON is unchanged."""
        with self._itineraries_lock:
            cached = self._itineraries.get(trip_id)
        if cached is not None and cached[0] == itinerary_json:
            return cached[1]

        itinerary = parse_itinerary(json.loads(itinerary_json))
        with self._itineraries_lock:
            self._itineraries[trip_id] = (itinerary_json, itinerary)
        return itinerary

    def _forget_itinerary(self, trip_id: str) -> None:
        with self._itineraries_lock:
            self._itineraries.pop(trip_id, None)

    # ── NotificationSink ────────────────────────────────────────────

    def previous_status(self, trip_id: str) -> Optional[TripStatus]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT status FROM status_log WHERE trip_id = ? ORDER BY id DESC LIMIT 1",
                (trip_id,),
            ).fetchone()
        return TripStatus(row[0]) if row else None

    def notify(
        self,
        trip_id: str,
        status: TripStatus,
        instruction: Optional[TripInstruction],
        previous_status: Optional[TripStatus],
    ) -> None:
        text = render_instruction(instruction) if instruction is not None else None
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO status_log (trip_id, checked_at, status, previous_status, instruction) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    trip_id,
                    _now().isoformat(),
                    status.value,
                    previous_status.value if previous_status else None,
                    text,
                ),
            )

    def status_history(self, trip_id: str) -> list[tuple[str, Optional[str]]]:
        """(status, instruction text) pairs for a trip, oldest first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT status, instruction FROM status_log WHERE trip_id = ? ORDER BY id",
                (trip_id,),
            ).fetchall()
        return [(status, instruction) for status, instruction in rows]
