"""In-memory TTL cache for artist and genre lookups against external APIs."""

from __future__ import annotations

import time
from collections import OrderedDict
from threading import RLock
from typing import Any, Callable, Hashable, Tuple

MISSING = object()


class TTLCache:
    """Thread-safe TTL cache with LRU eviction.

    ``None`` is a legitimate cached value (a lookup that found nothing), so
    callers test against ``MISSING`` rather than falsiness.
    """

    def __init__(self, maxsize: int = 128, ttl: float = 300.0) -> None:
        if maxsize <= 0:
            raise ValueError("maxsize must be positive")
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.maxsize = maxsize
        self.ttl = ttl
        self._entries: "OrderedDict[Hashable, Tuple[Any, float]]" = OrderedDict()
        self._lock = RLock()
        self.hits = 0
        self.misses = 0

    def _purge(self, now: float) -> None:
        stale = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in stale:
            del self._entries[key]

    def get(self, key: Hashable, default: Any = MISSING) -> Any:
        with self._lock:
            now = time.time()
            self._purge(now)
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return default
            self._entries.move_to_end(key)
            self.hits += 1
            return entry[0]

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries[key] = (value, time.time() + self.ttl)
            self._entries.move_to_end(key)
            while len(self._entries) > self.maxsize:
                self._entries.popitem(last=False)

    def get_or_load(self, key: Hashable, loader: Callable[[], Any], *, cache_none: bool = False) -> Any:
        """Return the cached value or call ``loader`` and remember its result.

        Failed lookups (``None``) are only cached when ``cache_none`` is set so
        that a transient outage is retried on the next call.
        """
        cached = self.get(key)
        if cached is not MISSING:
            return cached
        value = loader()
        if value is not None or cache_none:
            self.set(key, value)
        return value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            self._purge(time.time())
            return len(self._entries)


__all__ = ["TTLCache", "MISSING"]
