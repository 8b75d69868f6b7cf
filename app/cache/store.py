"""
Single cache tier: a TTL and capacity bounded key-value map.

Built on cachetools.TLRUCache so each entry carries its own TTL. When the
tier is full the least recently used live entry is evicted.
"""
import logging
import math
import threading
import time
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

from cachetools import TLRUCache

from .core import CacheEntry

logger = logging.getLogger("cache.store")

EVENTS = ("set", "del", "expired", "evicted")

Listener = Callable[[str, Any], None]


def _entry_expiry(key: str, entry: CacheEntry, now: float) -> float:
    # TTL <= 0 never expires
    if entry.ttl_seconds <= 0:
        return math.inf
    return now + entry.ttl_seconds


class _NotifyingTLRUCache(TLRUCache):
    """TLRUCache that reports expired and evicted entries."""

    def __init__(self, maxsize, ttu, timer, on_expired, on_evicted):
        super().__init__(maxsize=maxsize, ttu=ttu, timer=timer)
        self._on_expired = on_expired
        self._on_evicted = on_evicted

    def expire(self, time=None):
        expired = super().expire(time)
        for key, entry in expired or ():
            self._on_expired(key, entry)
        return expired

    def popitem(self):
        key, entry = super().popitem()
        self._on_evicted(key, entry)
        return key, entry


class TierStore:
    """
    Thread-safe tier store with node-style change events.

    Usage:
        store = TierStore("memory", default_ttl=300, max_keys=1000)
        store.on("expired", lambda key, value: ...)
        store.set("user:1", {"name": "Ana"}, ttl=60)
        store.get("user:1")
    """

    def __init__(
        self,
        name: str,
        default_ttl: float,
        max_keys: int,
        timer: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the tier.

        Args:
            name: Tier name used in logs and stats
            default_ttl: TTL in seconds when set() gets none
            max_keys: Capacity before LRU eviction kicks in
            timer: Monotonic clock, injectable for tests
        """
        self.name = name
        self.default_ttl = default_ttl
        self.max_keys = max_keys
        self._lock = threading.RLock()
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        self._timer = timer
        self._hits = 0
        self._misses = 0
        self._cache = self._new_cache()

    def _new_cache(self) -> _NotifyingTLRUCache:
        return _NotifyingTLRUCache(
            maxsize=self.max_keys,
            ttu=_entry_expiry,
            timer=self._timer,
            on_expired=lambda key, entry: self._emit("expired", key, entry.value),
            on_evicted=lambda key, entry: self._emit("evicted", key, entry.value),
        )

    def on(self, event: str, listener: Listener) -> None:
        """Register a listener for one of: set, del, expired, evicted."""
        if event not in EVENTS:
            raise ValueError(f"Unknown cache event: {event}")
        self._listeners[event].append(listener)

    def _emit(self, event: str, key: str, value: Any) -> None:
        for listener in self._listeners.get(event, ()):
            try:
                listener(key, value)
            except Exception as e:
                logger.warning(f"Listener for '{event}' on tier {self.name} failed: {e}")

    def get(self, key: str) -> Optional[Any]:
        """Return the live value for key, or None."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._misses += 1
                return None
            self._hits += 1
            return entry.value

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._cache

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        """
        Store value under key with ttl seconds (tier default when None).

        A ttl of 0 or less keeps the entry until it is deleted or evicted.
        Returns False if the entry is not live after the write.
        """
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._cache[key] = CacheEntry(value=value, ttl_seconds=ttl)
            if key not in self._cache:
                return False
            self._emit("set", key, value)
            return True

    def delete(self, key: str) -> int:
        """Remove key. Returns the number of entries removed (0 or 1)."""
        with self._lock:
            entry = self._cache.pop(key, None)
            if entry is None:
                return 0
            self._emit("del", key, entry.value)
            return 1

    def keys(self) -> List[str]:
        """Live keys, after purging anything past its TTL."""
        with self._lock:
            self._cache.expire()
            return list(self._cache.keys())

    def flush_all(self) -> None:
        with self._lock:
            self._cache = self._new_cache()
            self._hits = 0
            self._misses = 0

    def __len__(self) -> int:
        with self._lock:
            self._cache.expire()
            return len(self._cache)

    def get_stats(self) -> Dict[str, Any]:
        """Store statistics: live keys, hits, misses, total key length."""
        with self._lock:
            keys = self.keys()
            return {
                "keys": len(keys),
                "hits": self._hits,
                "misses": self._misses,
                "ksize": sum(len(k) for k in keys),
                "max_keys": self.max_keys,
            }
