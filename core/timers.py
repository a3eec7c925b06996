"""Timer primitives for the simulator.

PeriodicTask runs a callback on a daemon thread at a fixed interval and can
be cancelled from any thread. call_later schedules a one-shot callback.

Both sleep in small increments so a stop request is honoured quickly,
the same way the scenario threads poll their running flag.
"""

import logging
import threading
import time
from collections.abc import Callable

logger = logging.getLogger("homesim.timers")

# Granularity of the interruptible sleep loop
_POLL_SECONDS = 0.5


class PeriodicTask:
    """Repeating callback on a background thread."""

    def __init__(self, name: str, interval: float, callback: Callable[[], None]):
        self.name = name
        self.interval = interval
        self._callback = callback
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self):
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=f"task-{self.name}", daemon=True)
        self._thread.start()
        logger.debug("Task started: %s (every %.1fs)", self.name, self.interval)

    def cancel(self, wait: bool = True):
        """Signal the thread to stop.

        With wait, joins the thread briefly, except when called from the task
        itself. A tick already in progress still finishes either way.
        """
        self._stop.set()
        thread = self._thread
        if wait and thread and thread is not threading.current_thread():
            thread.join(timeout=_POLL_SECONDS * 2)
        logger.debug("Task cancelled: %s", self.name)

    @property
    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive() and not self._stop.is_set())

    def _run(self):
        while not self._stop.is_set():
            # Sleep first: the first tick happens one interval after start
            deadline = time.time() + self.interval
            while not self._stop.is_set() and time.time() < deadline:
                time.sleep(min(_POLL_SECONDS, max(0.0, deadline - time.time())))
            if self._stop.is_set():
                break
            try:
                self._callback()
            except Exception:
                logger.exception("Task %s failed", self.name)


def call_later(delay: float, callback: Callable[[], None], name: str = "delayed") -> threading.Timer | None:
    """Run callback after delay seconds on a daemon timer thread.

    A delay of 0 (or less) runs the callback inline and returns None.
    """
    if delay <= 0:
        callback()
        return None
    timer = threading.Timer(delay, callback)
    timer.name = f"timer-{name}"
    timer.daemon = True
    timer.start()
    return timer
