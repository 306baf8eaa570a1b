"""In-process TTL cache.

Owned by whoever creates it and passed in explicitly; there is no
module-level instance. The clock is injectable so expiry can be tested
without sleeping.
"""

from __future__ import annotations

import time
from typing import Callable, Generic, Hashable, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    """Mapping whose entries expire ``ttl`` seconds after being set."""

    def __init__(
        self,
        ttl: float,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl < 0:
            raise ValueError(f"ttl must be >= 0, got {ttl}")
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._data: dict[Hashable, tuple[float, V]] = {}

    def get(self, key: Hashable) -> V | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    def set(self, key: Hashable, value: V) -> None:
        if self.ttl == 0:
            return
        if key not in self._data and len(self._data) >= self.max_entries:
            self._evict()
        self._data[key] = (self._clock() + self.ttl, value)

    def invalidate(self, key: Hashable) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)

    def _evict(self) -> None:
        now = self._clock()
        expired = [k for k, (exp, _) in self._data.items() if now >= exp]
        for key in expired:
            del self._data[key]
        # Still full: drop the entry closest to expiry
        if len(self._data) >= self.max_entries:
            oldest = min(self._data, key=lambda k: self._data[k][0])
            del self._data[oldest]
