"""
HTTP response caching on top of the tiered CacheManager.

Each CacheRule binds a path prefix to a strategy and a key generator. GET
responses for matching paths are served from cache with ``X-Cache: HIT``;
misses run the handler and store 2xx JSON bodies (``X-Cache: MISS``).
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from .strategies import CacheStrategy, merge_vary_params

logger = logging.getLogger("cache.middleware")

DEFAULT_SKIP_METHODS = ("POST", "PUT", "DELETE", "PATCH")


def path_and_query(request: Request) -> List[Any]:
    """Default key generator: request path plus its query parameters."""
    return [request.url.path, dict(request.query_params)]


@dataclass
class CacheRule:
    """Which requests to cache, and how to key them."""
    path_prefix: str
    strategy: CacheStrategy = CacheStrategy.API
    key_generator: Callable[[Request], Any] = path_and_query
    vary_by: Sequence[str] = ()
    condition: Optional[Callable[[Request], bool]] = None
    skip_methods: Sequence[str] = DEFAULT_SKIP_METHODS
    ttl: Optional[int] = None

    def matches(self, request: Request) -> bool:
        if request.method.upper() in self.skip_methods:
            return False
        if not request.url.path.startswith(self.path_prefix):
            return False
        return self.condition is None or bool(self.condition(request))


async def _json_body(request: Request) -> Dict[str, Any]:
    if "application/json" not in request.headers.get("content-type", ""):
        return {}
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


async def vary_values(request: Request, fields: Sequence[str]) -> Dict[str, Any]:
    """Look each field up in headers, then query params, then a JSON body."""
    values: Dict[str, Any] = {}
    body: Optional[Dict[str, Any]] = None
    for field in fields:
        value = request.headers.get(field)
        if value is None:
            value = request.query_params.get(field)
        if value is None:
            if body is None:
                body = await _json_body(request)
            value = body.get(field)
        if value is not None:
            values[field] = value
    return values


class ResponseCacheMiddleware(BaseHTTPMiddleware):
    """
    Serve and store JSON responses through the app's CacheManager.

    The manager is read from ``request.app.state.cache_manager``. Errors in
    the caching path are logged and the request proceeds uncached.
    """

    def __init__(self, app, rules: Sequence[CacheRule] = ()):
        super().__init__(app)
        self.rules = list(rules)

    def _match(self, request: Request) -> Optional[CacheRule]:
        for rule in self.rules:
            if rule.matches(request):
                return rule
        return None

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rule = self._match(request)
        if rule is None:
            return await call_next(request)

        try:
            manager = request.app.state.cache_manager
            key_params = merge_vary_params(
                rule.strategy,
                rule.key_generator(request),
                await vary_values(request, rule.vary_by),
            )
            cached = await manager.get(rule.strategy, key_params)
        except Exception as e:
            logger.error(f"Cache middleware error for {request.url.path}: {e}", exc_info=True)
            return await call_next(request)

        if cached is not None:
            logger.debug(f"Cache hit for {request.url.path}")
            return JSONResponse(
                cached,
                headers={"X-Cache": "HIT", "X-Cache-Layer": rule.strategy.tier.value},
            )

        logger.debug(f"Cache miss for {request.url.path}")
        response = await call_next(request)

        content_type = response.headers.get("content-type", "")
        if not (200 <= response.status_code < 300) or "application/json" not in content_type:
            return response

        body = b"".join([chunk async for chunk in response.body_iterator])
        headers = dict(response.headers)
        try:
            if manager.set(rule.strategy, key_params, json.loads(body), ttl=rule.ttl):
                headers["X-Cache"] = "MISS"
        except ValueError as e:
            logger.warning(f"Response for {request.url.path} is not valid JSON: {e}")

        return Response(
            content=body,
            status_code=response.status_code,
            headers=headers,
            media_type=response.media_type,
        )
