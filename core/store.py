"""Store — the keyed, observable state container.

Every collection the simulator knows about lives under one key here
(devices, scenes, notifications, analytics, automation rules, ...).
Writers replace whole values; readers subscribe per key and receive the
full new value after each mutation.

Every mutation is persisted through the optional on_persist callback
(write-through, not batched) and then delivered to subscribers of the
mutated key only, in subscription order.

Thread-safe: mutations are serialised by a re-entrant lock so that timer
threads never interleave with each other, while a cascade running on the
same thread (rule → update → rule) re-enters freely.
"""

import copy
import itertools
import logging
import threading
from collections.abc import Callable
from datetime import datetime
from typing import Any

logger = logging.getLogger("homesim.store")


def now_iso() -> str:
    """Current local time as an ISO-8601 string with UTC offset."""
    return datetime.now().astimezone().isoformat()


def default_settings() -> dict:
    return {
        "energy": {
            "cost_per_kwh": 3000,
            "currency": "VND",
            "alert_threshold": 150,
            "savings_goal": 20,
        },
        "automation": {
            "enabled": True,
            "learning_mode": True,
            "maintenance_reminders": True,
        },
        "notifications": {
            "enabled": True,
        },
    }


# Empty value for each known key. Unknown keys fall back to the caller's default.
DEFAULT_STATE: dict[str, Any] = {
    "homes": [],
    "current_home": None,
    "devices": [],
    "scenes": [],
    "notifications": [],
    "analytics": {},
    "automation_rules": [],
    "settings": default_settings(),
}


class Store:
    """Keyed state container with per-key subscribers."""

    def __init__(
        self,
        initial: dict | None = None,
        on_persist: Callable[["Store"], Any] | None = None,
    ):
        self._state: dict[str, Any] = copy.deepcopy(DEFAULT_STATE)
        if initial:
            self._state.update(copy.deepcopy(initial))
        self._on_persist = on_persist
        # key -> list of (token, callback)
        self._listeners: dict[str, list[tuple[int, Callable]]] = {}
        self._tokens = itertools.count(1)
        self.lock = threading.RLock()

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for key, or an empty default. Never raises."""
        if key in self._state:
            return self._state[key]
        if key in DEFAULT_STATE:
            return copy.deepcopy(DEFAULT_STATE[key])
        return default

    def snapshot(self) -> dict:
        """Deep copy of the entire state (used by persistence)."""
        with self.lock:
            return copy.deepcopy(self._state)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def set(self, key: str, value: Any):
        """Replace the value of key, persist, and notify its subscribers."""
        with self.lock:
            self._state[key] = value
            self._persist()
            self._notify(key, value)

    def update(self, key: str, partial: Any):
        """Shallow-merge partial into a dict value; replace anything else."""
        with self.lock:
            current = self._state.get(key)
            if isinstance(current, dict) and isinstance(partial, dict):
                value = {**current, **partial}
            else:
                value = partial
            self._state[key] = value
            self._persist()
            self._notify(key, value)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, key: str, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Register callback for key. Returns a function removing this subscription only."""
        token = next(self._tokens)
        with self.lock:
            self._listeners.setdefault(key, []).append((token, callback))

        def unsubscribe():
            with self.lock:
                entries = self._listeners.get(key)
                if not entries:
                    return
                self._listeners[key] = [e for e in entries if e[0] != token]
                if not self._listeners[key]:
                    del self._listeners[key]

        return unsubscribe

    def subscriber_count(self, key: str) -> int:
        return len(self._listeners.get(key, []))

    def _notify(self, key: str, value: Any):
        # Copy: callbacks may unsubscribe while we iterate
        for _, callback in list(self._listeners.get(key, [])):
            try:
                callback(value)
            except Exception:
                logger.exception("Subscriber for '%s' raised", key)

    def _persist(self):
        if self._on_persist:
            self._on_persist(self)
