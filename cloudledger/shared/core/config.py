from functools import lru_cache
from threading import Lock
from typing import Annotated, Optional

import structlog
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Environment Constants
ENV_PRODUCTION = "production"
ENV_STAGING = "staging"
ENV_DEVELOPMENT = "development"
ENV_LOCAL = "local"


@lru_cache
def get_settings() -> "Settings":
    """Returns a singleton instance of the application settings."""
    return Settings()


_settings_reload_lock = Lock()


def reload_settings_from_environment() -> "Settings":
    """
    Atomically rebuild and replace cached settings from environment values.

    This avoids mutating the cached singleton instance in-place.
    """
    logger = structlog.get_logger()
    with _settings_reload_lock:
        logger.info("settings_reload_started")
        get_settings.cache_clear()
        refreshed = get_settings()
        logger.info("settings_reload_completed")
        return refreshed


class Settings(BaseSettings):
    """
    Main configuration for cloudledger.
    Uses Pydantic-Settings for environment variable parsing from .env.
    """

    APP_NAME: str = "cloudledger"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    # ENVIRONMENT options: local, development, staging, production
    ENVIRONMENT: str = ENV_DEVELOPMENT
    TESTING: bool = False

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./cloudledger.sqlite"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_SLOW_QUERY_THRESHOLD_SECONDS: float = 1.0

    # DigitalOcean
    DO_API_TOKEN: Optional[str] = None
    DO_API_BASE_URL: str = "https://api.digitalocean.com"
    DO_PAGE_SIZE: int = 200
    DO_RATE_LIMIT_PER_SECOND: float = 5.0

    # GCP
    GCP_PROJECT_IDS: Annotated[list[str], NoDecode] = []
    GCP_SERVICE_ACCOUNT_JSON: Optional[str] = None
    GCP_PAGE_SIZE: int = 500
    GCP_RATE_LIMIT_PER_SECOND: float = 10.0

    # Fetching
    HTTP_TIMEOUT_SECONDS: float = 30.0
    HTTP_MAX_RETRIES: int = 3
    # Hard stop for runaway pagination; exceeding it fails the fetch.
    FETCH_MAX_PAGES: int = 10_000

    # Orchestration
    INVENTORY_SYNC_INTERVAL_MINUTES: int = 60
    UNIT_TIMEOUT_SECONDS: float = 3600.0
    UNIT_HEARTBEAT_TIMEOUT_SECONDS: float = 120.0
    RETRY_INITIAL_INTERVAL_SECONDS: float = 1.0
    RETRY_BACKOFF_COEFFICIENT: float = 2.0
    RETRY_MAX_INTERVAL_SECONDS: float = 60.0
    RETRY_MAX_ATTEMPTS: int = 3

    # Prometheus exposition port for `serve`; 0 disables it.
    METRICS_PORT: int = 9108

    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    @field_validator("GCP_PROJECT_IDS", mode="before")
    @classmethod
    def _split_project_ids(cls, value: object) -> object:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @model_validator(mode="after")
    def validate_all_config(self) -> "Settings":
        """Centralized validation, grouped by concern."""
        if self.TESTING and self.ENVIRONMENT in {ENV_PRODUCTION, ENV_STAGING}:
            raise ValueError(
                "TESTING must be false in staging/production runtime environments."
            )

        self._validate_database_config()
        self._validate_fetch_config()
        self._validate_orchestration_config()
        return self

    def _validate_database_config(self) -> None:
        if self.is_production and self.DATABASE_URL.startswith("sqlite"):
            raise ValueError("A server database is required in production (got sqlite).")
        if self.DB_SLOW_QUERY_THRESHOLD_SECONDS <= 0:
            raise ValueError("DB_SLOW_QUERY_THRESHOLD_SECONDS must be > 0.")

    def _validate_fetch_config(self) -> None:
        for name in ("DO_PAGE_SIZE", "GCP_PAGE_SIZE", "FETCH_MAX_PAGES"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0.")
        if self.DO_RATE_LIMIT_PER_SECOND <= 0 or self.GCP_RATE_LIMIT_PER_SECOND <= 0:
            raise ValueError("Provider rate limits must be > 0 requests per second.")
        if self.HTTP_MAX_RETRIES < 1:
            raise ValueError("HTTP_MAX_RETRIES must be >= 1.")

    def _validate_orchestration_config(self) -> None:
        if self.RETRY_MAX_ATTEMPTS < 1:
            raise ValueError("RETRY_MAX_ATTEMPTS must be >= 1.")
        if self.RETRY_BACKOFF_COEFFICIENT < 1:
            raise ValueError("RETRY_BACKOFF_COEFFICIENT must be >= 1.")
        if self.RETRY_MAX_INTERVAL_SECONDS < self.RETRY_INITIAL_INTERVAL_SECONDS:
            raise ValueError(
                "RETRY_MAX_INTERVAL_SECONDS must be >= RETRY_INITIAL_INTERVAL_SECONDS."
            )
        if self.UNIT_HEARTBEAT_TIMEOUT_SECONDS > self.UNIT_TIMEOUT_SECONDS:
            raise ValueError(
                "UNIT_HEARTBEAT_TIMEOUT_SECONDS cannot exceed UNIT_TIMEOUT_SECONDS."
            )
        if self.INVENTORY_SYNC_INTERVAL_MINUTES < 1:
            raise ValueError("INVENTORY_SYNC_INTERVAL_MINUTES must be >= 1.")

    @property
    def is_production(self) -> bool:
        """True only when ENVIRONMENT is explicitly set to 'production'."""
        return self.ENVIRONMENT == ENV_PRODUCTION
