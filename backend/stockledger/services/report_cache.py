# Overview: In-process TTL cache for computed reports.

from __future__ import annotations

import copy
import threading
import time
from typing import Any, Callable, Hashable


class ReportCache:
    """
    Key -> (value, expiry) map shared by request threads.

    Values are deep-copied on the way in and out so callers can never mutate
    a cached report. Concurrent writers for the same key: last one wins.
    Entries leave only by expiry, invalidate() or clear().
    """

    def __init__(self, ttl_seconds: float = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return copy.deepcopy(value)

    def set(self, key: Hashable, value: Any) -> None:
        stored = copy.deepcopy(value)
        with self._lock:
            self._entries[key] = (stored, self._clock() + self.ttl_seconds)

    def invalidate(self, key: Hashable) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for _, expires_at in self._entries.values() if now < expires_at)
