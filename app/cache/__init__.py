"""
Tiered in-process caching: strategies, tier stores, manager and HTTP middleware.
"""
from .core import CacheEntry, CacheStats, CacheTier, TierConfig, TIER_ORDER
from .store import TierStore
from .strategies import CacheStrategy, STRATEGY_CONFIG, build_key
from .manager import CacheManager, WarmupTask, invalidation_patterns
from .specialized import (
    ImageUrlCache,
    RestaurantCache,
    SearchCache,
    SessionCache,
    default_warmup_tasks,
)
from .middleware import CacheRule, ResponseCacheMiddleware

__all__ = [
    # Core types
    "CacheEntry",
    "CacheStats",
    "CacheTier",
    "TierConfig",
    "TIER_ORDER",
    # Storage
    "TierStore",
    # Strategies
    "CacheStrategy",
    "STRATEGY_CONFIG",
    "build_key",
    # Manager
    "CacheManager",
    "WarmupTask",
    "invalidation_patterns",
    # Specialized caches
    "ImageUrlCache",
    "RestaurantCache",
    "SearchCache",
    "SessionCache",
    "default_warmup_tasks",
    # HTTP
    "CacheRule",
    "ResponseCacheMiddleware",
]
