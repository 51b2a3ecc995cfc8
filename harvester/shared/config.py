"""
Harvester - Shared Configuration Module

Centralized settings management using Pydantic Settings.
Loads configuration from environment variables and .env files.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from harvester.shared import constants


class AppSettings(BaseSettings):
    """Core application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "harvester"
    app_env: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_reload: bool = False

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


class RateLimitSettings(BaseSettings):
    """Request budget against the external source."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    requests_per_hour: int = Field(default=constants.DEFAULT_REQUESTS_PER_HOUR, gt=0)
    cooldown_period_ms: int = Field(default=constants.DEFAULT_COOLDOWN_PERIOD_MS, ge=0)
    cooldown_jitter_ms: int = Field(default=constants.DEFAULT_COOLDOWN_JITTER_MS, ge=0)


class BatchSettings(BaseSettings):
    """Batch scheduling defaults."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    batch_size: int = Field(default=constants.DEFAULT_BATCH_SIZE, gt=0)
    concurrency: int = Field(default=constants.DEFAULT_CONCURRENCY, gt=0)
    pause_between_batches_ms: int = Field(default=constants.DEFAULT_PAUSE_BETWEEN_BATCHES_MS, ge=0)
    max_items: int = Field(default=0, ge=0)  # 0 = unbounded


class RetrySettings(BaseSettings):
    """Retry and timeout defaults for scraper calls."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    max_retries: int = Field(default=constants.DEFAULT_MAX_RETRIES, ge=0)
    retry_base_delay_ms: int = Field(default=constants.DEFAULT_RETRY_BASE_DELAY_MS, ge=0)
    per_call_timeout_ms: int = Field(default=constants.DEFAULT_PER_CALL_TIMEOUT_MS, gt=0)


class ScraperSettings(BaseSettings):
    """Connection settings for the HTTP scraper."""

    model_config = SettingsConfigDict(env_file=".env", env_prefix="scraper_", extra="ignore")

    base_url: str = "http://localhost:9000"
    list_path: str = "/sources/{source_id}/items"
    login_path: str | None = None
    username: str | None = None
    password: SecretStr | None = None
    user_agent: str = constants.DEFAULT_USER_AGENT
    download_attachments: bool = False
    download_dir: str = "output/attachments"


class StorageSettings(BaseSettings):
    """Result persistence and export locations."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    results_path: str = "output/records.jsonl"
    export_dir: str = "output/reports"


class Settings(BaseSettings):
    """Aggregated settings from all configuration classes."""

    app: AppSettings = Field(default_factory=AppSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    batch: BatchSettings = Field(default_factory=BatchSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    scraper: ScraperSettings = Field(default_factory=ScraperSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance (singleton pattern)."""
    return Settings()


# Convenience exports
settings = get_settings()
