"""
src/agent/watermark.py

Purpose: Last-processed timestamp shared by the log watcher and retainer
Context: The watcher publishes the wall-clock time each time it ingests a
         line; the retainer treats archives older than that as forwarded.
"""

import threading
import time
from typing import Callable, Optional


class Watermark:
    """Lock-protected, monotonically advancing timestamp (epoch seconds)"""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._value: Optional[float] = None
        self._lock = threading.Lock()

    def advance(self) -> float:
        """Publish now(); never moves the value backwards"""
        now = self._clock()
        with self._lock:
            if self._value is None or now > self._value:
                self._value = now
            return self._value

    def get(self) -> Optional[float]:
        """Current value, or None if nothing has been ingested yet"""
        with self._lock:
            return self._value
