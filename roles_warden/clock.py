from __future__ import annotations

import threading
import time


class MonotonicClock:
    """Unix-millisecond timestamps that never go backwards inside one process."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last_ms = 0

    @staticmethod
    def wall_ms() -> int:
        return time.time_ns() // 1_000_000

    def now_ms(self) -> int:
        current = self.wall_ms()
        with self._lock:
            if current <= self._last_ms:
                current = self._last_ms + 1
            self._last_ms = current
            return current
