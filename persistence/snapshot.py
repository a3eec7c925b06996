"""Snapshot adapter — write-through persistence of the whole store.

The entire state is serialised into one JSON blob under a fixed key.
Failures never propagate: the simulator keeps running in memory and the
error is logged. Loading is best-effort; anything unreadable yields None
so the caller starts from defaults.

Blob layout: {"version": 1, "state": {...}}. A bare state dict (no
envelope) is also accepted when loading.
"""

import json
import logging
import sqlite3

from .db import Database

logger = logging.getLogger("homesim.persistence")

SNAPSHOT_KEY = "smarthome_state"
SNAPSHOT_VERSION = 1


class SnapshotAdapter:
    """Saves and restores store snapshots through the Database."""

    def __init__(self, db: Database, key: str = SNAPSHOT_KEY):
        self.db = db
        self.key = key
        self.save_count = 0
        self.failure_count = 0

    def save_snapshot(self, store) -> bool:
        """Serialise the store. Returns False (and logs) on any failure."""
        try:
            blob = json.dumps({"version": SNAPSHOT_VERSION, "state": store.snapshot()})
            self.db.write_blob(self.key, blob)
        except (TypeError, ValueError, sqlite3.Error, RuntimeError) as e:
            self.failure_count += 1
            logger.error("Snapshot save failed: %s", e)
            return False
        self.save_count += 1
        return True

    def load_snapshot(self) -> dict | None:
        """Return the persisted state, or None when missing or corrupt."""
        try:
            raw = self.db.read_blob(self.key)
        except (sqlite3.Error, RuntimeError) as e:
            logger.error("Snapshot read failed: %s", e)
            return None
        if raw is None:
            logger.info("No snapshot found under '%s'", self.key)
            return None

        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.warning("Corrupt snapshot ignored: %s", e)
            return None

        if not isinstance(data, dict):
            logger.warning("Snapshot is not an object, ignoring")
            return None

        if "version" in data and "state" in data:
            if data["version"] != SNAPSHOT_VERSION:
                logger.warning(
                    "Snapshot version %s differs from %d, loading anyway",
                    data["version"],
                    SNAPSHOT_VERSION,
                )
            state = data["state"]
            return state if isinstance(state, dict) else None
        return data
