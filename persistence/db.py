"""SQLite persistence layer for the smart home simulator.

Stores named JSON blobs (state snapshots). The whole simulator state is
written as a single row on every mutation, so the schema stays minimal.
Uses synchronous sqlite3; callers serialise access through the store lock,
and a connection-level lock guards the odd concurrent reader.
"""

import logging
import os
import sqlite3
import threading
from datetime import UTC, datetime

logger = logging.getLogger("homesim.persistence")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS snapshots (
    key TEXT PRIMARY KEY,
    data JSON NOT NULL,
    updated_at TEXT NOT NULL
);
"""


def _now() -> str:
    return datetime.now(UTC).isoformat()


class Database:
    """Synchronous SQLite database for simulator snapshots."""

    def __init__(self, db_path: str = "/app/data/homesim.db"):
        directory = os.path.dirname(db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def connect(self):
        """Open the database and apply schema."""
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(SCHEMA_SQL)
        self._conn.commit()
        logger.info("Database opened: %s", self.db_path)

    def close(self):
        if self._conn:
            self._conn.close()
            self._conn = None

    @property
    def conn(self) -> sqlite3.Connection:
        if not self._conn:
            raise RuntimeError("Database not connected")
        return self._conn

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def write_blob(self, key: str, data: str):
        """Insert or replace the blob stored under key."""
        with self._lock:
            self.conn.execute(
                """INSERT INTO snapshots (key, data, updated_at) VALUES (?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET data = excluded.data,
                                                  updated_at = excluded.updated_at""",
                (key, data, _now()),
            )
            self.conn.commit()

    def read_blob(self, key: str) -> str | None:
        with self._lock:
            row = self.conn.execute(
                "SELECT data FROM snapshots WHERE key = ?", (key,)
            ).fetchone()
        return row["data"] if row else None
