"""Configuration management using pydantic-settings."""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Logging
    log_level: str = "INFO"

    # Cache tiers (TTL in seconds, capacity in entries)
    cache_memory_ttl: int = 300
    cache_memory_max_keys: int = 1000
    cache_application_ttl: int = 1800
    cache_application_max_keys: int = 5000
    cache_long_term_ttl: int = 7200
    cache_long_term_max_keys: int = 10000

    # Chance that a longTerm hit is copied into the application tier
    cache_promotion_probability: float = 0.1

    # Optional seed for the promotion RNG (tests, reproducible runs)
    cache_random_seed: Optional[int] = None

    # Monitoring thresholds
    alert_error_rate_percent: float = 5.0
    alert_response_time_ms: float = 2000.0
    alert_memory_percent: float = 90.0
    slow_request_ms: float = 1000.0
    cache_hit_rate_warning_percent: float = 70.0

    # Monitoring bookkeeping
    health_check_interval_seconds: int = 30
    response_sample_size: int = 1000
    alert_history_size: int = 100

    # Default response-cache rules; off means every route runs uncached
    response_cache_enabled: bool = True

    # Seconds a /monitoring/health response is served from cache
    monitoring_cache_ttl_seconds: int = 5

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
