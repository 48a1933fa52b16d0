from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_REPORT_TTLS: dict[str, int] = {
    "sales": 600,  # 10 min
    "stock": 900,  # 15 min
    "financial": 1800,  # 30 min
    "topproducts": 3600,  # 1 hour
    "customers": 1800,  # 30 min
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BIZCACHE_", env_file=".env", extra="ignore")

    app_name: str = "bizcache"
    env: str = "dev"

    # Redis (remote backend is disabled when no URL is configured)
    redis_url: str | None = Field(default=None, validation_alias="REDIS_URL")
    redis_connect_timeout: float = Field(default=1.0, gt=0)
    redis_operation_timeout: float = Field(default=0.25, gt=0)
    redis_scan_timeout: float = Field(default=2.0, gt=0)
    redis_health_check_interval: float = Field(default=5.0, gt=0)

    # In-memory fallback
    cache_default_ttl: int = Field(default=3600, gt=0)
    memory_cache_high_water_mark: int = Field(default=1000, gt=0)

    # Sessions
    session_lifetime_seconds: int = Field(default=86400, gt=0)  # 24 hours
    session_cache_ttl: int = Field(default=3600, gt=0)

    # Memoized data TTLs (seconds)
    ttl_dashboard: int = Field(default=300, gt=0)
    ttl_products: int = Field(default=120, gt=0)
    ttl_notifications: int = Field(default=120, gt=0)
    ttl_unread_notifications: int = Field(default=60, gt=0)
    report_ttls: dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_REPORT_TTLS))

    # Observability
    enable_metrics: bool = True
    enable_tracing: bool = False
    otlp_endpoint: str | None = Field(default=None, validation_alias="OTLP_ENDPOINT")
    log_level: str = "INFO"
    log_json: bool = True

    @field_validator("report_ttls")
    @classmethod
    def _check_report_ttls(cls, value: dict[str, int]) -> dict[str, int]:
        for kind, ttl in value.items():
            if ttl <= 0:
                raise ValueError(f"report TTL for {kind!r} must be positive, got {ttl}")
        return value


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings, loaded once from the environment."""
    return Settings()
