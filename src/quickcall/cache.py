"""In-memory TTL cache for successful responses.

Entries expire when ``now - stored_at >= ttl`` and are evicted lazily on
read. :meth:`CacheStore.purge_expired` is an optional sweep for callers who
set TTLs far longer than their traffic would otherwise evict. Which
responses are eligible (cache flag, idempotent method) is decided by the
executor, not here.
"""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Hashable, Union


@dataclass
class CacheEntry:
    value: Any
    stored_at: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now - self.stored_at >= self.ttl


class CacheStore:
    """Keyed TTL store, safe to share between threads and event loops.

    Args:
        max_entries: Optional bound; when exceeded the oldest stored entry
            is dropped.
    """

    def __init__(self, max_entries: Union[int, None] = None):
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._entries: "OrderedDict[Hashable, CacheEntry]" = OrderedDict()
        self._max_entries = max_entries
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def _now(self) -> float:
        return time.monotonic()

    def get(self, key: Hashable) -> Any:
        """Return the stored value, or None if absent or expired."""
        now = self._now()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.expired(now):
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry.value

    def set(self, key: Hashable, value: Any, ttl: float) -> None:
        if ttl <= 0:
            return
        now = self._now()
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(value=value, stored_at=now, ttl=ttl)
            if self._max_entries is not None:
                while len(self._entries) > self._max_entries:
                    self._entries.popitem(last=False)

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def purge_expired(self) -> int:
        """Drop every expired entry; return how many were removed."""
        now = self._now()
        with self._lock:
            stale = [k for k, e in self._entries.items() if e.expired(now)]
            for k in stale:
                del self._entries[k]
        return len(stale)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "size": len(self._entries),
                "max_entries": self._max_entries,
                "hits": self._hits,
                "misses": self._misses,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
