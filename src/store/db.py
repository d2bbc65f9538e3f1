"""SQLite schema and connection wrapper for channel activity.

Four event tables (one per Slack event kind, deduplicated by event_id)
and the daily_summaries table (one row per channel and date).
"""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Any

# SQL schema for activity tables
SCHEMA_SQL = """
-- Event tables: one row per delivered Slack event, event_id is the dedup key
CREATE TABLE IF NOT EXISTS reaction_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id TEXT UNIQUE NOT NULL,
    channel_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    reaction TEXT NOT NULL,
    event_ts TEXT NOT NULL,
    raw_event TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_reaction_channel_ts ON reaction_events(channel_id, event_ts);

CREATE TABLE IF NOT EXISTS member_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id TEXT UNIQUE NOT NULL,
    channel_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    event_type TEXT NOT NULL,
    event_ts TEXT NOT NULL,
    raw_event TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_member_channel_ts ON member_events(channel_id, event_type, event_ts);

CREATE TABLE IF NOT EXISTS message_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id TEXT UNIQUE NOT NULL,
    channel_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    message_ts TEXT NOT NULL,
    raw_event TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_message_channel_ts ON message_events(channel_id, message_ts);

CREATE TABLE IF NOT EXISTS file_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id TEXT UNIQUE NOT NULL,
    channel_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    file_id TEXT,
    file_name TEXT,
    event_ts TEXT NOT NULL,
    raw_event TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_file_channel_ts ON file_events(channel_id, event_ts);

-- Summaries table: upserted per (channel_id, stat_date), never deleted
CREATE TABLE IF NOT EXISTS daily_summaries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    channel_id TEXT NOT NULL,
    stat_date TEXT NOT NULL,
    reaction_count INTEGER NOT NULL DEFAULT 0,
    new_member_count INTEGER NOT NULL DEFAULT 0,
    member_removed_count INTEGER NOT NULL DEFAULT 0,
    message_count INTEGER NOT NULL DEFAULT 0,
    file_upload_count INTEGER NOT NULL DEFAULT 0,
    message_ts TEXT,
    created_at TEXT NOT NULL,
    UNIQUE(channel_id, stat_date)
);
"""


class ActivityDB:
    """One shared SQLite connection for the event and summary tables.

    The schema is applied on open and the journal runs in WAL mode. All
    statements take ``?`` parameters. Every call holds an internal lock,
    so stores may be used from ``asyncio.to_thread`` workers.
    """

    def __init__(self, db_path: str) -> None:
        """Open (creating if needed) the database at ``db_path``."""
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()
        self._open()

    @property
    def path(self) -> str:
        return self._db_path

    def _open(self) -> None:
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        # Aggregation and dispatch run queries from worker threads
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        self._conn.execute("PRAGMA journal_mode=WAL")

        self._conn.executescript(SCHEMA_SQL)
        self._conn.commit()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise sqlite3.ProgrammingError("ActivityDB is closed")
        return self._conn

    def execute(self, sql: str, params: tuple[Any, ...] = ()) -> int:
        """Run one write statement and commit it.

        Returns:
            The cursor rowcount (0 when ON CONFLICT DO NOTHING skipped the row).
        """
        with self._lock:
            conn = self._connection()
            cursor = conn.execute(sql, params)
            conn.commit()
            return cursor.rowcount

    def execute_returning(
        self, sql: str, params: tuple[Any, ...] = ()
    ) -> dict[str, Any] | None:
        """Run a write with a RETURNING clause; return its first row as a dict.

        SQLite only yields the RETURNING row if it is read before the commit.
        """
        with self._lock:
            conn = self._connection()
            cursor = conn.execute(sql, params)
            row = cursor.fetchone()
            conn.commit()
        if row is None:
            return None
        return dict(row)

    def fetch_one(self, sql: str, params: tuple[Any, ...] = ()) -> dict[str, Any] | None:
        """Fetch a single row as a dictionary, or None if no row matched."""
        with self._lock:
            row = self._connection().execute(sql, params).fetchone()
        if row is None:
            return None
        return dict(row)

    def fetch_all(self, sql: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        """Fetch all rows as a list of dictionaries."""
        with self._lock:
            rows = self._connection().execute(sql, params).fetchall()
        return [dict(row) for row in rows]

    def fetch_scalar(self, sql: str, params: tuple[Any, ...] = ()) -> Any:
        """Fetch the first column of the first row, or None."""
        with self._lock:
            row = self._connection().execute(sql, params).fetchone()
        return None if row is None else row[0]

    def close(self) -> None:
        """Close the connection; later calls raise ProgrammingError."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> ActivityDB:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        self.close()
