"""
Tiered cache orchestration with cross-tier fallback reads and invalidation.
"""
import inspect
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Union

import psutil

from .core import CacheStats, CacheTier, DEFAULT_TIER_CONFIG, TIER_ORDER, TierConfig
from .store import TierStore
from .strategies import CacheStrategy, build_key

logger = logging.getLogger("cache.manager")

Fallback = Callable[[], Union[Any, Awaitable[Any]]]

# Prefixes swept by a cascading invalidation of each resource type
CASCADE_RULES: Dict[str, tuple] = {
    "restaurant": ("menu", "menuitem", "public"),
    "menu": ("menuitem",),
    "user": ("restaurant",),
}


@dataclass
class WarmupTask:
    """One entry of a cache warmup batch."""
    strategy: CacheStrategy
    key_params: Any
    data_loader: Fallback


def invalidation_patterns(resource: str, resource_id: Any) -> List[str]:
    """Substring patterns removed when a resource changes."""
    patterns = [f"{resource}:{resource_id}"]
    if resource == "restaurant":
        patterns += [f"menu:{resource_id}", f"public:restaurants:{resource_id}"]
    elif resource == "menu":
        patterns += [f"menuitem:{resource_id}", "api:menus"]
    elif resource == "user":
        patterns += [f"api:users:{resource_id}"]
    return patterns


def fallback_order(preferred: CacheTier) -> List[CacheTier]:
    """The other two tiers, in declaration order."""
    return [tier for tier in TIER_ORDER if tier is not preferred]


async def _call(fn: Fallback) -> Any:
    """Run a sync or async callable and return its result."""
    result = fn()
    if inspect.isawaitable(result):
        result = await result
    return result


class CacheManager:
    """
    Three-tier in-process cache:
    - memory / application / longTerm tiers, each TTL and capacity bounded
    - strategy-derived keys with a preferred tier and default TTL
    - fallthrough reads across tiers, with copy-back into the preferred tier
    - substring and cascade invalidation

    The cache is never authoritative. Every failure inside it is logged and
    reported as a miss, so callers always keep a way to compute the value.
    There is no single-flight: concurrent misses on one key each run their
    fallback.
    """

    def __init__(
        self,
        tier_config: Optional[Mapping[CacheTier, TierConfig]] = None,
        promotion_probability: float = 0.1,
        rng: Optional[random.Random] = None,
        timer: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache manager.

        Args:
            tier_config: TTL and capacity per tier (defaults: 300s/1000,
                1800s/5000, 7200s/10000)
            promotion_probability: Chance a longTerm hit is copied into
                the application tier
            rng: Random source for promotion decisions
            timer: Clock shared by the tier stores
        """
        config = dict(DEFAULT_TIER_CONFIG)
        config.update(tier_config or {})
        self._tier_config = config
        self.promotion_probability = promotion_probability
        self._rng = rng or random.Random()

        self._tiers: Dict[CacheTier, TierStore] = {
            tier: TierStore(
                tier.value,
                default_ttl=config[tier].ttl_seconds,
                max_keys=config[tier].max_keys,
                timer=timer,
            )
            for tier in TIER_ORDER
        }
        for store in self._tiers.values():
            self._attach_event_logging(store)

        self._stats = CacheStats()

    @staticmethod
    def _attach_event_logging(store: TierStore) -> None:
        name = store.name
        store.on("set", lambda key, _: logger.debug(f"Cache [{name}] SET: {key}"))
        store.on("del", lambda key, _: logger.debug(f"Cache [{name}] DEL: {key}"))
        store.on("expired", lambda key, _: logger.debug(f"Cache [{name}] EXPIRED: {key}"))
        store.on("evicted", lambda key, _: logger.debug(f"Cache [{name}] EVICTED: {key}"))

    def tier(self, tier: CacheTier) -> TierStore:
        """Direct access to a tier's store."""
        return self._tiers[tier]

    async def get(
        self,
        strategy: CacheStrategy,
        key_params: Any,
        fallback: Optional[Fallback] = None,
        refresh: bool = False,
    ) -> Any:
        """
        Read through the tiers, falling back to the caller's loader.

        Args:
            strategy: Cache strategy (key builder, TTL, preferred tier)
            key_params: Parameters for the key builder
            fallback: Sync or async loader used on a miss
            refresh: Bypass every tier and call the fallback

        Returns:
            Cached value, fallback result, or None
        """
        preferred = strategy.tier

        if refresh:
            self._stats.incr("misses", preferred.value)
            logger.debug(f"Cache REFRESH [{preferred.value}]: {strategy.value}")
            return await _call(fallback) if fallback else None

        key = None
        try:
            key = build_key(strategy, key_params)

            value = self._tiers[preferred].get(key)
            if value is not None:
                self._stats.incr("hits", preferred.value)
                logger.debug(f"Cache HIT [{preferred.value}]: {key}")
                self._promote_if_needed(key, value, preferred)
                return value

            for tier in fallback_order(preferred):
                value = self._tiers[tier].get(key)
                if value is not None:
                    self._stats.incr("hits", tier.value)
                    logger.debug(f"Cache HIT [{tier.value}]: {key} (fallback)")
                    self.set(strategy, key_params, value, silent=True)
                    return value

            self._stats.incr("misses", preferred.value)
            logger.debug(f"Cache MISS [{preferred.value}]: {key}")
        except Exception as e:
            logger.error(f"Cache get error for key {key}: {e}", exc_info=True)

        if fallback is None:
            return None

        result = await _call(fallback)
        if result is not None:
            self.set(strategy, key_params, result, silent=True)
        return result

    def _promote_if_needed(self, key: str, value: Any, current: CacheTier) -> None:
        """Occasionally copy a longTerm hit into the application tier."""
        if current is not CacheTier.LONG_TERM:
            return
        if self._rng.random() < self.promotion_probability:
            ttl = self._tier_config[CacheTier.APPLICATION].ttl_seconds
            self._tiers[CacheTier.APPLICATION].set(key, value, ttl)
            logger.debug(f"Cache PROMOTE: {key} from {current.value} to application")

    def set(
        self,
        strategy: CacheStrategy,
        key_params: Any,
        value: Any,
        ttl: Optional[float] = None,
        silent: bool = False,
    ) -> bool:
        """
        Store a value in the strategy's tier.

        Returns:
            True on success, False if the write failed
        """
        tier = strategy.tier
        ttl = strategy.ttl if ttl is None else ttl
        key = None
        try:
            key = build_key(strategy, key_params)
            store = self._tiers[tier]
            if not store.set(key, value, ttl):
                logger.warning(f"Cache set skipped for key {key}: entry not stored")
                return False
            self._stats.incr("sets", tier.value)
            self._stats.set_size(tier.value, len(store))
            if not silent:
                logger.debug(f"Cache SET [{tier.value}]: {key} (TTL: {ttl}s)")
            return True
        except Exception as e:
            logger.error(f"Cache set error for key {key}: {e}", exc_info=True)
            return False

    def delete(
        self,
        strategy: CacheStrategy,
        key_params: Any,
        pattern: bool = False,
        all_tiers: bool = False,
    ) -> bool:
        """
        Delete the derived key from the strategy's tier or from every tier.

        Args:
            pattern: Delete every key containing the derived key as a substring
            all_tiers: Target all tiers instead of the strategy's one

        Returns:
            True if at least one entry was removed
        """
        key = None
        try:
            key = build_key(strategy, key_params)
            targets = list(TIER_ORDER) if all_tiers else [strategy.tier]
            deleted_total = 0

            for tier in targets:
                store = self._tiers[tier]
                if pattern:
                    deleted = sum(store.delete(k) for k in store.keys() if key in k)
                else:
                    deleted = store.delete(key)
                self._stats.incr("deletes", tier.value, deleted)
                self._stats.set_size(tier.value, len(store))
                deleted_total += deleted

            scope = "all" if all_tiers else strategy.tier.value
            logger.debug(f"Cache DELETE [{scope}]: {key} ({deleted_total} keys)")
            return deleted_total > 0
        except Exception as e:
            logger.error(f"Cache delete error for key {key}: {e}", exc_info=True)
            return False

    def invalidate_related(
        self,
        resource: str,
        resource_id: Any,
        cascade: bool = True,
    ) -> int:
        """
        Remove every entry related to a changed resource, across all tiers.

        A key goes if it contains one of the resource's patterns, or, with
        cascade, if it starts with a dependent prefix from CASCADE_RULES.
        This is a linear scan over every key (O(total keys)) and is not
        atomic across tiers.

        Returns:
            Number of entries deleted
        """
        try:
            patterns = invalidation_patterns(resource, resource_id)
            prefixes = CASCADE_RULES.get(resource, ()) if cascade else ()
            total_deleted = 0

            for tier, store in self._tiers.items():
                doomed = [
                    k for k in store.keys()
                    if any(p in k for p in patterns) or k.startswith(prefixes)
                ]
                deleted = sum(store.delete(k) for k in doomed)
                self._stats.incr("deletes", tier.value, deleted)
                self._stats.set_size(tier.value, len(store))
                total_deleted += deleted

            logger.info(
                f"Cache invalidation: {total_deleted} entries for {resource}:{resource_id}"
            )
            return total_deleted
        except Exception as e:
            logger.error(f"Cache invalidation error for {resource}:{resource_id}: {e}", exc_info=True)
            return 0

    async def warm_cache(self, tasks: Iterable[WarmupTask]) -> Dict[str, int]:
        """
        Pre-load entries, one task at a time.

        A loader returning None or raising counts as failed; the batch
        always runs to the end.
        """
        tasks = list(tasks)
        results = {"successful": 0, "failed": 0, "total": len(tasks)}
        logger.info(f"Starting cache warmup ({len(tasks)} tasks)")

        for task in tasks:
            try:
                data = await _call(task.data_loader)
            except Exception as e:
                logger.error(f"Cache warmup error for {task.strategy.value}: {e}", exc_info=True)
                results["failed"] += 1
                continue

            if data is not None and self.set(task.strategy, task.key_params, data, silent=True):
                results["successful"] += 1
            else:
                results["failed"] += 1

        logger.info(
            f"Cache warmup completed: {results['successful']}/{results['total']} successful"
        )
        return results

    def get_stats(self) -> Dict[str, Any]:
        """Counters per tier, store stats and process memory."""
        for tier, store in self._tiers.items():
            self._stats.set_size(tier.value, len(store))

        counters = self._stats.to_dict()
        total_hits = sum(counters["hits"].values())
        total_misses = sum(counters["misses"].values())
        total_requests = total_hits + total_misses
        hit_rate = (total_hits / total_requests * 100) if total_requests > 0 else 0

        store_stats = {tier.value: store.get_stats() for tier, store in self._tiers.items()}
        tiers = []
        for tier in TIER_ORDER:
            hits = counters["hits"][tier.value]
            lookups = hits + counters["misses"][tier.value]
            tiers.append({
                "name": tier.value,
                "stats": store_stats[tier.value],
                "hit_rate": round(hits / lookups * 100, 2) if lookups else 0,
            })

        memory_info = psutil.Process().memory_info()
        return {
            "hit_rate": round(hit_rate, 2),
            "total_requests": total_requests,
            "stats": counters,
            "tiers": tiers,
            "memory": {
                "tiers": store_stats,
                "process": {"rss": memory_info.rss, "vms": memory_info.vms},
            },
        }

    def clear_all(self) -> None:
        """Flush every tier and zero all counters."""
        for store in self._tiers.values():
            store.flush_all()
        self._stats.reset()
        logger.info("All caches cleared")

    def close(self) -> None:
        """Release cached data on shutdown."""
        self.clear_all()
