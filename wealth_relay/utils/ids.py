"""
Time-based identifiers that stay unique under rapid calls.
"""
import threading
import time
from typing import Callable, Optional


class MonotonicIdGenerator:
    """Produce ``<prefix><epoch-ms>`` ids.

    Two calls within the same millisecond would collide with a plain
    timestamp, so the generator hands out ``max(now_ms, last + 1)``.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.time
        self._last = 0
        self._lock = threading.Lock()

    def next_value(self) -> int:
        with self._lock:
            now_ms = int(self._clock() * 1000)
            value = max(now_ms, self._last + 1)
            self._last = value
            return value

    def next_id(self, prefix: str) -> str:
        return f"{prefix}{self.next_value()}"
