"""
Core cache data structures.
"""
import threading
from dataclasses import dataclass, field
from typing import Any, Dict
from enum import Enum


class CacheTier(Enum):
    """Independent key spaces, in fallback probe order."""
    MEMORY = "memory"             # hot, short-lived data
    APPLICATION = "application"   # entity and API payloads
    LONG_TERM = "longTerm"        # static content (images, QR codes)


TIER_ORDER = (CacheTier.MEMORY, CacheTier.APPLICATION, CacheTier.LONG_TERM)


@dataclass(frozen=True)
class TierConfig:
    """Default TTL and capacity of a single tier."""
    ttl_seconds: int
    max_keys: int


DEFAULT_TIER_CONFIG: Dict[CacheTier, TierConfig] = {
    CacheTier.MEMORY: TierConfig(ttl_seconds=300, max_keys=1000),
    CacheTier.APPLICATION: TierConfig(ttl_seconds=1800, max_keys=5000),
    CacheTier.LONG_TERM: TierConfig(ttl_seconds=7200, max_keys=10000),
}


@dataclass
class CacheEntry:
    """
    A stored value with its own TTL.

    The TTL is read by the tier store to compute the expiry time, so two
    entries in one tier can live for different durations. A TTL of 0 or
    less means the entry never expires.
    """
    value: Any
    ttl_seconds: float


def empty_counters() -> Dict[str, int]:
    """Per-tier counter dict, keyed by tier name."""
    return {tier.value: 0 for tier in TIER_ORDER}


@dataclass
class CacheStats:
    """
    Hit/miss/set/delete bookkeeping for all tiers.

    Sync route handlers run in a thread pool while middleware reads run on
    the event loop, so every update goes through the lock.
    """
    hits: Dict[str, int] = field(default_factory=empty_counters)
    misses: Dict[str, int] = field(default_factory=empty_counters)
    sets: Dict[str, int] = field(default_factory=empty_counters)
    deletes: Dict[str, int] = field(default_factory=empty_counters)
    size: Dict[str, int] = field(default_factory=empty_counters)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def incr(self, counter: str, tier: str, amount: int = 1) -> None:
        """Add amount to one tier's hits, misses, sets or deletes."""
        with self._lock:
            getattr(self, counter)[tier] += amount

    def set_size(self, tier: str, size: int) -> None:
        with self._lock:
            self.size[tier] = size

    def reset(self) -> None:
        with self._lock:
            for counters in (self.hits, self.misses, self.sets, self.deletes, self.size):
                for name in counters:
                    counters[name] = 0

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "hits": dict(self.hits),
                "misses": dict(self.misses),
                "sets": dict(self.sets),
                "deletes": dict(self.deletes),
                "size": dict(self.size),
            }
