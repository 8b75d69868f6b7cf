"""
Purpose-built caches on top of the tiered CacheManager.
"""
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from .manager import CacheManager, Fallback, WarmupTask
from .strategies import CacheStrategy

SESSION_TTL_SECONDS = 3600


class SessionCache:
    """User session payloads in the memory tier."""

    def __init__(self, manager: CacheManager):
        self._manager = manager

    async def get(self, user_id: Any) -> Optional[Dict[str, Any]]:
        return await self._manager.get(CacheStrategy.USER, [user_id, "session"])

    def set(self, user_id: Any, session_data: Dict[str, Any]) -> bool:
        return self._manager.set(
            CacheStrategy.USER, [user_id, "session"], session_data, ttl=SESSION_TTL_SECONDS
        )

    def delete(self, user_id: Any) -> bool:
        return self._manager.delete(CacheStrategy.USER, [user_id, "session"])


def _include_suffix(include: Iterable[str]) -> str:
    return ",".join(sorted(include))


class RestaurantCache:
    """
    Restaurant documents, optionally with populated relations.

    The set of included relations is part of the key, so
    ``get(id, ["menus"])`` and ``get(id)`` are separate entries.
    """

    def __init__(self, manager: CacheManager):
        self._manager = manager

    async def get(
        self,
        restaurant_id: Any,
        include: Iterable[str] = (),
        fallback: Optional[Fallback] = None,
    ) -> Optional[Any]:
        return await self._manager.get(
            CacheStrategy.RESTAURANT,
            [restaurant_id, _include_suffix(include)],
            fallback=fallback,
        )

    def set(self, restaurant_id: Any, data: Any, include: Iterable[str] = ()) -> bool:
        return self._manager.set(
            CacheStrategy.RESTAURANT, [restaurant_id, _include_suffix(include)], data
        )

    def invalidate(self, restaurant_id: Any) -> int:
        """Drop the restaurant plus its menus, items and public listings."""
        return self._manager.invalidate_related("restaurant", restaurant_id, cascade=True)


class SearchCache:
    """Search results keyed by query, filters and pagination."""

    def __init__(self, manager: CacheManager):
        self._manager = manager

    @staticmethod
    def _key_params(query: str, filters: Optional[Mapping], pagination: Optional[Mapping]) -> List[Any]:
        return [query, {**(filters or {}), **(pagination or {})}]

    async def get(
        self,
        query: str,
        filters: Optional[Mapping] = None,
        pagination: Optional[Mapping] = None,
    ) -> Optional[Any]:
        return await self._manager.get(
            CacheStrategy.SEARCH, self._key_params(query, filters, pagination)
        )

    def set(
        self,
        query: str,
        filters: Optional[Mapping],
        pagination: Optional[Mapping],
        results: Any,
    ) -> bool:
        return self._manager.set(
            CacheStrategy.SEARCH, self._key_params(query, filters, pagination), results
        )

    def invalidate_pattern(self, pattern: str) -> bool:
        """Drop cached results for an unfiltered query, from every tier."""
        return self._manager.delete(
            CacheStrategy.SEARCH, [pattern], pattern=True, all_tiers=True
        )


class ImageUrlCache:
    """
    Transformed image URLs in the long-term tier.

    ``url_builder(public_id, transformations)`` produces the URL on a miss,
    e.g. a call into the image CDN's URL helper.
    """

    def __init__(
        self,
        manager: CacheManager,
        url_builder: Callable[[str, Dict[str, Any]], Any],
    ):
        self._manager = manager
        self._url_builder = url_builder

    async def get(self, public_id: str, transformations: Optional[Dict[str, Any]] = None) -> Optional[str]:
        transformations = transformations or {}
        return await self._manager.get(
            CacheStrategy.STATIC,
            ["image", public_id, "transformed", transformations],
            fallback=lambda: self._url_builder(public_id, transformations),
        )


def default_warmup_tasks(
    featured_restaurants_loader: Fallback,
    global_stats_loader: Fallback,
) -> List[WarmupTask]:
    """Warmup batch for the public landing data."""
    return [
        WarmupTask(
            strategy=CacheStrategy.PUBLIC,
            key_params=["restaurants", "featured"],
            data_loader=featured_restaurants_loader,
        ),
        WarmupTask(
            strategy=CacheStrategy.PUBLIC,
            key_params=["stats", "global"],
            data_loader=global_stats_loader,
        ),
    ]
