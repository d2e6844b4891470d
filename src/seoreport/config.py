"""Configuration settings for the SEO report service."""

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SEOREPORT_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    # Server
    host: str = "127.0.0.1"
    port: int = 8080
    debug: bool = False

    # DataForSEO credentials (the bare names are what the hosted deployment sets)
    dataforseo_login: str = Field(
        "", validation_alias=AliasChoices("SEOREPORT_DATAFORSEO_LOGIN", "DATAFORSEO_LOGIN")
    )
    dataforseo_password: str = Field(
        "", validation_alias=AliasChoices("SEOREPORT_DATAFORSEO_PASSWORD", "DATAFORSEO_PASSWORD")
    )

    # Upstream
    dataforseo_base_url: str = "https://api.dataforseo.com/v3"
    upstream_timeout_seconds: float = 30.0
    upstream_max_retries: int = Field(0, ge=0, le=5)
    upstream_retry_base_delay_seconds: float = 0.5
    location_code: int = 2840
    language_code: str = "en"
    maps_region: str = "Connecticut"
    history_date_from: str = "2025-01-01"
    ranked_keywords_limit: int = 100
    competitor_search_depth: int = 20
    log_account_balance: bool = False

    # Rate limiting
    rate_limit: int = Field(10, ge=1)
    rate_limit_window_seconds: int = Field(3600, ge=1)
    rate_limit_backend: str = "memory"

    # Redis (only used when rate_limit_backend == "redis")
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str = ""
    redis_db: int = 0
    redis_pool_size: int = 20

    # Report assembly
    report_timeout_seconds: float = 120.0

    # Usage tracking
    tracking_enabled: bool = True
    tracking_webhook_url: str = ""

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # Metrics
    metrics_enabled: bool = True


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
