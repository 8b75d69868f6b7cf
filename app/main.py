"""
QrBites Cache Service - Main FastAPI Application
Tiered response/data caching and monitoring for the QrBites menu platform
"""
import logging
import random
from contextlib import asynccontextmanager
from enum import Enum
from typing import Optional, Sequence

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.middleware.gzip import GZipMiddleware

from app.cache import CacheManager, CacheRule, CacheStrategy, CacheTier, ResponseCacheMiddleware, TierConfig
from app.monitoring import MonitoringService, RequestMetricsMiddleware
from config.settings import Settings, settings

# Version tracking
APP_VERSION = "v1.0.0"
APP_NAME = "QrBites Cache Service"

logger = logging.getLogger("app")

router = APIRouter()


class InvalidationResource(str, Enum):
    """Resources whose changes can be pushed into the cache."""
    RESTAURANT = "restaurant"
    MENU = "menu"
    MENU_ITEM = "menuitem"
    USER = "user"


def build_cache_manager(config: Settings) -> CacheManager:
    """Create a CacheManager from settings."""
    tier_config = {
        CacheTier.MEMORY: TierConfig(config.cache_memory_ttl, config.cache_memory_max_keys),
        CacheTier.APPLICATION: TierConfig(
            config.cache_application_ttl, config.cache_application_max_keys
        ),
        CacheTier.LONG_TERM: TierConfig(config.cache_long_term_ttl, config.cache_long_term_max_keys),
    }
    return CacheManager(
        tier_config=tier_config,
        promotion_probability=config.cache_promotion_probability,
        rng=random.Random(config.cache_random_seed),
    )


def default_cache_rules(config: Settings) -> Sequence[CacheRule]:
    """Short-lived caching of the health evaluation."""
    if not config.response_cache_enabled:
        return []
    return [
        CacheRule(
            path_prefix="/monitoring/health",
            strategy=CacheStrategy.API,
            ttl=config.monitoring_cache_ttl_seconds,
        ),
    ]


def get_cache_manager(request: Request) -> CacheManager:
    """Dependency: the app's CacheManager."""
    return request.app.state.cache_manager


def get_monitoring(request: Request) -> MonitoringService:
    """Dependency: the app's MonitoringService."""
    return request.app.state.monitoring


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"{APP_NAME} {APP_VERSION} starting")
    yield
    app.state.cache_manager.close()
    logger.info(f"{APP_NAME} stopped")


def create_app(
    config: Settings = settings,
    cache_rules: Optional[Sequence[CacheRule]] = None,
) -> FastAPI:
    """Build the application with its own cache manager and monitoring."""
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    application = FastAPI(
        title=APP_NAME,
        description="Tiered caching and monitoring for QrBites",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    application.state.cache_manager = build_cache_manager(config)
    application.state.monitoring = MonitoringService(config)

    # Last added runs first: gzip -> metrics -> response cache -> routes
    rules = default_cache_rules(config) if cache_rules is None else cache_rules
    application.add_middleware(ResponseCacheMiddleware, rules=rules)
    application.add_middleware(RequestMetricsMiddleware)
    application.add_middleware(GZipMiddleware, minimum_size=1024)

    application.include_router(router)
    return application


@router.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok", "service": "qrbites-cache"}


@router.get("/version")
def version_info():
    """Version information endpoint."""
    return {
        "name": APP_NAME,
        "version": APP_VERSION,
        "full": f"{APP_NAME} {APP_VERSION}",
    }


@router.get("/cache/stats")
def cache_stats(cache: CacheManager = Depends(get_cache_manager)):
    """Get cache statistics."""
    return cache.get_stats()


@router.delete("/cache")
def clear_cache(cache: CacheManager = Depends(get_cache_manager)):
    """Flush every tier and reset counters."""
    cache.clear_all()
    return {"cleared": True}


@router.post("/cache/invalidate/{resource}/{resource_id}")
def invalidate_resource(
    resource: InvalidationResource,
    resource_id: str,
    cascade: bool = Query(True, description="Also drop dependent resource keys"),
    cache: CacheManager = Depends(get_cache_manager),
):
    """Drop cached data related to a changed resource."""
    deleted = cache.invalidate_related(resource.value, resource_id, cascade=cascade)
    return {"resource": resource.value, "id": resource_id, "deleted": deleted}


@router.get("/monitoring/metrics")
def monitoring_metrics(monitoring: MonitoringService = Depends(get_monitoring)):
    """Request counters, averages and recent alerts."""
    return monitoring.get_system_metrics()


@router.get("/monitoring/health")
def monitoring_health(
    request: Request,
    monitoring: MonitoringService = Depends(get_monitoring),
):
    """Threshold-based health evaluation."""
    return monitoring.get_health_status(request.app.state.cache_manager)


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
