"""Thread-safe bounded cache with per-entry expiry."""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Hashable, List, Optional, Tuple, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass
class CacheStats:
    """Hit, miss and eviction counters for one cache instance."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def reset(self) -> None:
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "hit_rate": round(self.hit_rate, 4),
        }


class TTLCache(Generic[K, V]):
    """
    Insertion-ordered cache with a size bound and a time-to-live.

    When full, the oldest inserted entry is evicted. Expired entries are
    dropped when they are read or by ``cleanup_expired``. All operations
    hold a per-instance lock.

    Usage:
        cache = TTLCache[str, dict](max_size=100, ttl=300)
        cache.set("key", {"data": "value"})
        result = cache.get("key")
    """

    def __init__(
        self,
        max_size: int = 100,
        ttl: Optional[float] = 300,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the cache.

        Args:
            max_size: Maximum number of entries
            ttl: Seconds an entry stays valid (None disables expiry)
            clock: Time source, injectable for tests
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._max_size = max_size
        self._ttl = ttl
        self._clock = clock
        self._entries: "OrderedDict[K, Tuple[V, float]]" = OrderedDict()
        self._lock = threading.RLock()
        self._stats = CacheStats()

    @property
    def stats(self) -> CacheStats:
        return self._stats

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def ttl(self) -> Optional[float]:
        return self._ttl

    def _expired(self, stored_at: float, now: float) -> bool:
        return self._ttl is not None and now - stored_at > self._ttl

    def get(self, key: K, default: Optional[V] = None) -> Optional[V]:
        """
        Get an entry from the cache.

        Args:
            key: Cache key
            default: Returned when the key is missing or expired

        Returns:
            Cached value or default
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats.misses += 1
                return default

            value, stored_at = entry
            if self._expired(stored_at, self._clock()):
                del self._entries[key]
                self._stats.misses += 1
                return default

            self._stats.hits += 1
            return value

    def set(self, key: K, value: V) -> None:
        """Store an entry, evicting the oldest ones when over capacity."""
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            self._entries[key] = (value, self._clock())

            while len(self._entries) > self._max_size:
                self._entries.popitem(last=False)
                self._stats.evictions += 1

    def delete(self, key: K) -> bool:
        """Remove an entry; returns False when it was not present."""
        with self._lock:
            if key in self._entries:
                del self._entries[key]
                return True
            return False

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._stats.reset()

    def cleanup_expired(self) -> int:
        """
        Remove all expired entries.

        Returns:
            Number of entries removed
        """
        if self._ttl is None:
            return 0

        with self._lock:
            now = self._clock()
            expired = [
                key for key, (_, stored_at) in self._entries.items()
                if self._expired(stored_at, now)
            ]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def keys(self) -> List[K]:
        with self._lock:
            return list(self._entries.keys())

    def __contains__(self, key: object) -> bool:
        with self._lock:
            entry = self._entries.get(key)  # type: ignore[arg-type]
            if entry is None:
                return False
            return not self._expired(entry[1], self._clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def info(self) -> Dict[str, Any]:
        """Size, limits and counters for metrics endpoints."""
        with self._lock:
            data = {"size": len(self._entries), "max_size": self._max_size, "ttl": self._ttl}
        data.update(self._stats.to_dict())
        return data
