"""
Cache strategies: key derivation, default TTL and preferred tier per data type.
"""
import hashlib
import json
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Sequence, Tuple

from .core import CacheTier


class CacheStrategy(Enum):
    """Named caching policies for QrBites data."""
    USER = "user"
    RESTAURANT = "restaurant"
    MENU = "menu"
    MENU_ITEM = "menuitem"
    PUBLIC = "public"
    STATIC = "static"
    API = "api"
    SEARCH = "search"

    @property
    def ttl(self) -> int:
        return STRATEGY_CONFIG[self]["ttl"]

    @property
    def tier(self) -> CacheTier:
        return STRATEGY_CONFIG[self]["tier"]

    def key(self, *params: Any) -> str:
        return build_key(self, params)


# Default TTL (seconds) and preferred tier per strategy
STRATEGY_CONFIG: Dict[CacheStrategy, Dict[str, Any]] = {
    CacheStrategy.USER: {
        "ttl": 300,               # 5 minutes
        "tier": CacheTier.MEMORY,
    },
    CacheStrategy.RESTAURANT: {
        "ttl": 1800,              # 30 minutes
        "tier": CacheTier.APPLICATION,
    },
    CacheStrategy.MENU: {
        "ttl": 1800,
        "tier": CacheTier.APPLICATION,
    },
    CacheStrategy.MENU_ITEM: {
        "ttl": 1800,
        "tier": CacheTier.APPLICATION,
    },
    CacheStrategy.PUBLIC: {
        "ttl": 3600,              # 1 hour
        "tier": CacheTier.APPLICATION,
    },
    CacheStrategy.STATIC: {
        "ttl": 7200,              # 2 hours, images and QR codes
        "tier": CacheTier.LONG_TERM,
    },
    CacheStrategy.API: {
        "ttl": 600,               # 10 minutes
        "tier": CacheTier.APPLICATION,
    },
    CacheStrategy.SEARCH: {
        "ttl": 900,               # 15 minutes
        "tier": CacheTier.APPLICATION,
    },
}


def canonical_json(value: Any) -> str:
    """Stable JSON rendering: sorted keys, compact separators."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def content_hash(text: str) -> str:
    """MD5 hex digest. Keeps keys short; not a security boundary."""
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def _render_part(part: Any) -> str:
    if isinstance(part, Mapping):
        return content_hash(canonical_json(part)) if part else ""
    return str(part)


def _scoped_key(prefix: str, params: Tuple[Any, ...]) -> str:
    """prefix:part[:part...], dropping empty parts."""
    if not params:
        raise ValueError(f"'{prefix}' keys need at least one parameter")
    parts = [_render_part(p) for p in params if p is not None]
    return ":".join([prefix] + [p for p in parts if p != ""])


def _api_key(params: Tuple[Any, ...]) -> str:
    """api:<endpoint>[:md5(params)]; also accepts one {"endpoint", "params"} mapping."""
    if params and isinstance(params[0], Mapping) and "endpoint" in params[0]:
        request = params[0]
        params = (request["endpoint"], request.get("params") or {}) + params[1:]
    if not params:
        raise ValueError("'api' keys need an endpoint")

    endpoint = str(params[0])
    query: Dict[str, Any] = {}
    for extra in params[1:]:
        if isinstance(extra, Mapping):
            query.update(extra)
        elif extra not in (None, ""):
            endpoint += f":{extra}"

    key = f"api:{endpoint}"
    if query:
        key += ":" + content_hash(canonical_json(query))
    return key


def _search_key(params: Tuple[Any, ...]) -> str:
    """search:md5(query + canonical filters)."""
    if not params:
        raise ValueError("'search' keys need a query")
    query = "" if params[0] is None else str(params[0])
    filters: Dict[str, Any] = {}
    for extra in params[1:]:
        if isinstance(extra, Mapping):
            filters.update(extra)
    return f"search:{content_hash(query + canonical_json(filters))}"


_KEY_BUILDERS: Dict[CacheStrategy, Callable[[Tuple[Any, ...]], str]] = {
    CacheStrategy.USER: lambda p: _scoped_key("user", p),
    CacheStrategy.RESTAURANT: lambda p: _scoped_key("restaurant", p),
    CacheStrategy.MENU: lambda p: _scoped_key("menu", p),
    CacheStrategy.MENU_ITEM: lambda p: _scoped_key("menuitem", p),
    CacheStrategy.PUBLIC: lambda p: _scoped_key("public", p),
    CacheStrategy.STATIC: lambda p: _scoped_key("static", p),
    CacheStrategy.API: _api_key,
    CacheStrategy.SEARCH: _search_key,
}


def normalize_key_params(key_params: Any) -> Tuple[Any, ...]:
    """A list/tuple is spread into positional params; anything else is one param."""
    if isinstance(key_params, (list, tuple)):
        return tuple(key_params)
    return (key_params,)


def build_key(strategy: CacheStrategy, key_params: Any) -> str:
    """
    Derive the cache key for a strategy.

    Args:
        strategy: The cache strategy
        key_params: Single value or sequence of values

    Returns:
        Cache key string, a pure function of the inputs
    """
    return _KEY_BUILDERS[strategy](normalize_key_params(key_params))


def merge_vary_params(
    strategy: CacheStrategy,
    key_params: Sequence[Any],
    vary: Mapping[str, Any],
) -> Tuple[Any, ...]:
    """
    Fold request "vary by" values into key params.

    API and SEARCH merge them into their trailing mapping; the scoped
    strategies get them as an extra hashed suffix.
    """
    params = normalize_key_params(key_params)
    if not vary:
        return params
    if strategy in (CacheStrategy.API, CacheStrategy.SEARCH):
        if len(params) >= 2 and isinstance(params[-1], Mapping):
            return params[:-1] + ({**params[-1], **vary},)
    return params + (dict(vary),)
