from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, Tuple


class StatisticsCache:
    """Process-local memo for dashboard statistics with a time-to-live."""

    def __init__(self, ttl_seconds: float = 3600) -> None:
        self.ttl_seconds = ttl_seconds
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str, factory: Callable[[], Any]) -> Any:
        now = time.monotonic()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry[0] > now:
                return entry[1]
        value = factory()
        if self.ttl_seconds > 0:
            with self._lock:
                self._entries[key] = (time.monotonic() + self.ttl_seconds, value)
        return value

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> int:
        with self._lock:
            cleared = len(self._entries)
            self._entries.clear()
        return cleared

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and entry[0] > time.monotonic()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
