"""
SQLite persistence gateway.

Tables:
- events: one row per NormalizedEvent, unique on unique_key
- source_status: current health per source, unique on source_name
- source_status_log: append-only run log

Datetimes are stored as ISO 8601 text with their offset; a UTC copy of the
start time is kept for ordering and range filters.
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, Optional

import structlog

from ..models import EventQuery, NormalizedEvent, SourceStatusEntry, StatusLogEntry
from .gateway import PersistenceError, PersistenceGateway

logger = structlog.get_logger()

SCHEMA = """
CREATE TABLE IF NOT EXISTS events (
    unique_key TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    start_time TEXT NOT NULL,
    start_utc TEXT NOT NULL,
    end_time TEXT,
    location TEXT,
    price_text TEXT,
    description TEXT,
    source_name TEXT NOT NULL,
    source_url TEXT,
    category TEXT,
    image_url TEXT,
    fetched_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS source_status (
    source_name TEXT PRIMARY KEY,
    last_run_at TEXT NOT NULL,
    last_success_at TEXT,
    error_count INTEGER NOT NULL DEFAULT 0,
    consecutive_failures INTEGER NOT NULL DEFAULT 0,
    last_error TEXT,
    last_event_count INTEGER NOT NULL DEFAULT 0,
    enabled INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS source_status_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source_name TEXT NOT NULL,
    status TEXT NOT NULL,
    message TEXT,
    events_found INTEGER NOT NULL DEFAULT 0,
    duration_ms INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_start ON events(start_utc);
CREATE INDEX IF NOT EXISTS idx_events_source ON events(source_name);
CREATE INDEX IF NOT EXISTS idx_events_category ON events(category);
CREATE INDEX IF NOT EXISTS idx_status_log_source ON source_status_log(source_name);
"""

EVENT_COLUMNS = (
    "unique_key", "title", "start_time", "start_utc", "end_time", "location",
    "price_text", "description", "source_name", "source_url", "category",
    "image_url", "fetched_at",
)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _utc(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SqliteGateway(PersistenceGateway):
    """Gateway backed by a single SQLite database file."""

    def __init__(self, db_path: str | Path = "harvester.db"):
        """
        Args:
            db_path: Database file, or ":memory:" for a throwaway database
        """
        self.db_path = str(db_path)
        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(self.db_path, timeout=30.0, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("PRAGMA journal_mode=WAL;")
            self.conn.execute("PRAGMA synchronous=NORMAL;")
            self.conn.executescript(SCHEMA)
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(f"Could not open database {self.db_path}: {e}") from e
        logger.debug("database_opened", path=self.db_path)

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            with self.conn:
                yield self.conn
        except sqlite3.Error as e:
            raise PersistenceError(str(e)) from e

    # Events

    def upsert_event(self, event: NormalizedEvent) -> None:
        row = (
            event.unique_key,
            event.title,
            event.start_time.isoformat(),
            _utc(event.start_time),
            _iso(event.end_time),
            event.location,
            event.price_text,
            event.description,
            event.source_name,
            event.source_url,
            event.category,
            event.image_url,
            event.fetched_at.isoformat(),
        )
        updates = ", ".join(f"{c} = excluded.{c}" for c in EVENT_COLUMNS[1:])
        with self._transaction() as conn:
            conn.execute(
                f"INSERT INTO events ({', '.join(EVENT_COLUMNS)}) "
                f"VALUES ({', '.join('?' for _ in EVENT_COLUMNS)}) "
                f"ON CONFLICT(unique_key) DO UPDATE SET {updates}",
                row,
            )

    def clear_events_for_source(self, source_name: str, keep: Iterable[str] = ()) -> int:
        keep = set(keep)
        with self._transaction() as conn:
            if not keep:
                cursor = conn.execute("DELETE FROM events WHERE source_name = ?", (source_name,))
                return cursor.rowcount
            rows = conn.execute(
                "SELECT unique_key FROM events WHERE source_name = ?", (source_name,)
            ).fetchall()
            doomed = [(row["unique_key"],) for row in rows if row["unique_key"] not in keep]
            conn.executemany("DELETE FROM events WHERE unique_key = ?", doomed)
            return len(doomed)

    def query_events(self, query: Optional[EventQuery] = None) -> list[NormalizedEvent]:
        query = query or EventQuery()
        sql = "SELECT * FROM events WHERE 1=1"
        params: list = []

        if query.source:
            sql += " AND source_name = ?"
            params.append(query.source)
        if query.category:
            sql += " AND category = ?"
            params.append(query.category)
        if query.date_from:
            sql += " AND start_utc >= ?"
            params.append(_utc(query.date_from))
        if query.date_to:
            sql += " AND start_utc <= ?"
            params.append(_utc(query.date_to))
        if query.search:
            sql += " AND (title LIKE ? OR description LIKE ? OR location LIKE ?)"
            term = f"%{query.search}%"
            params.extend([term, term, term])

        sql += " ORDER BY start_utc ASC"
        if query.limit is not None:
            sql += " LIMIT ?"
            params.append(query.limit)

        with self._transaction() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_event(row) for row in rows]

    def clear_all_events(self) -> int:
        with self._transaction() as conn:
            return conn.execute("DELETE FROM events").rowcount

    def event_stats(self) -> dict[str, int]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT source_name, COUNT(*) AS n FROM events GROUP BY source_name"
            ).fetchall()
        stats = {row["source_name"]: row["n"] for row in rows}
        stats["total"] = sum(stats.values())
        return stats

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> NormalizedEvent:
        return NormalizedEvent(
            title=row["title"],
            start_time=_dt(row["start_time"]),
            end_time=_dt(row["end_time"]),
            location=row["location"],
            price_text=row["price_text"],
            description=row["description"],
            source_name=row["source_name"],
            source_url=row["source_url"],
            category=row["category"],
            image_url=row["image_url"],
            fetched_at=_dt(row["fetched_at"]),
        )

    # Source status

    def get_status(self, source_name: str) -> Optional[SourceStatusEntry]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM source_status WHERE source_name = ?", (source_name,)
            ).fetchone()
        return self._row_to_status(row) if row else None

    def list_status(self) -> list[SourceStatusEntry]:
        with self._transaction() as conn:
            rows = conn.execute("SELECT * FROM source_status ORDER BY source_name").fetchall()
        return [self._row_to_status(row) for row in rows]

    def upsert_status(self, entry: SourceStatusEntry) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO source_status (
                    source_name, last_run_at, last_success_at, error_count,
                    consecutive_failures, last_error, last_event_count, enabled
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(source_name) DO UPDATE SET
                    last_run_at = excluded.last_run_at,
                    last_success_at = excluded.last_success_at,
                    error_count = excluded.error_count,
                    consecutive_failures = excluded.consecutive_failures,
                    last_error = excluded.last_error,
                    last_event_count = excluded.last_event_count,
                    enabled = excluded.enabled
                """,
                (
                    entry.source_name,
                    entry.last_run_at.isoformat(),
                    _iso(entry.last_success_at),
                    entry.error_count,
                    entry.consecutive_failures,
                    entry.last_error,
                    entry.last_event_count,
                    int(entry.enabled),
                ),
            )

    def append_status_log(self, entry: StatusLogEntry) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO source_status_log "
                "(source_name, status, message, events_found, duration_ms, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    entry.source_name,
                    entry.status,
                    entry.message,
                    entry.events_found,
                    entry.duration_ms,
                    entry.created_at.isoformat(),
                ),
            )

    def list_status_logs(
        self, source_name: Optional[str] = None, limit: int = 100
    ) -> list[StatusLogEntry]:
        sql = "SELECT * FROM source_status_log"
        params: list = []
        if source_name:
            sql += " WHERE source_name = ?"
            params.append(source_name)
        sql += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        with self._transaction() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [
            StatusLogEntry(
                source_name=row["source_name"],
                status=row["status"],
                message=row["message"],
                events_found=row["events_found"],
                duration_ms=row["duration_ms"],
                created_at=_dt(row["created_at"]),
            )
            for row in rows
        ]

    def delete_status(self, source_name: Optional[str] = None) -> int:
        with self._transaction() as conn:
            if source_name is None:
                return conn.execute("DELETE FROM source_status").rowcount
            return conn.execute(
                "DELETE FROM source_status WHERE source_name = ?", (source_name,)
            ).rowcount

    @staticmethod
    def _row_to_status(row: sqlite3.Row) -> SourceStatusEntry:
        return SourceStatusEntry(
            source_name=row["source_name"],
            last_run_at=_dt(row["last_run_at"]),
            last_success_at=_dt(row["last_success_at"]),
            error_count=row["error_count"],
            consecutive_failures=row["consecutive_failures"],
            last_error=row["last_error"],
            last_event_count=row["last_event_count"],
            enabled=bool(row["enabled"]),
        )

    def close(self) -> None:
        self.conn.close()
