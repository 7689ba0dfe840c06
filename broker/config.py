from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from functools import lru_cache
from typing import List, Optional

from .exceptions import ConfigurationError


class FeedContext:
    """Which catalog partition a request runs against"""
    BACK_OFFICE = "back_office"
    PUBLIC = "public"


class Settings(BaseSettings):
    # Environment
    environment: str = Field(default="development", alias="ENVIRONMENT")

    # Database - PostgreSQL for production, SQLite for development
    database_url: str = Field(
        default="sqlite:///./broker.db",
        alias="DATABASE_URL"
    )

    # CORS - Frontend URLs (comma-separated)
    allowed_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        alias="ALLOWED_ORIGINS"
    )

    # ==============================================
    # Royal API (upstream provider) - Server-Side Only!
    # ==============================================
    royal_api_base_url: str = Field(
        default="https://test-api.etscore.com",
        alias="ROYAL_API_BASE_URL"
    )
    royal_api_username: str = Field(default="", alias="ROYAL_API_USERNAME")
    royal_api_password: str = Field(default="", alias="ROYAL_API_PASSWORD")

    # Feed ids: back-office (B2B) is preferred, public (B2C) is the fallback
    royal_api_feed_id_b2b: str = Field(default="", alias="ROYAL_API_FEED_ID_B2B")
    royal_api_feed_id_b2c: str = Field(default="", alias="ROYAL_API_FEED_ID_B2C")

    # HTTP timeout and retry budget for upstream requests
    royal_api_timeout_seconds: float = Field(default=20.0, alias="ROYAL_API_TIMEOUT_SECONDS")
    royal_api_max_retries: int = Field(default=3, alias="ROYAL_API_MAX_RETRIES")

    # Refresh the access token this many seconds before it expires
    royal_api_token_skew_seconds: int = Field(default=60, alias="ROYAL_API_TOKEN_SKEW_SECONDS")

    # ==============================================
    # Booking orchestration
    # ==============================================
    quote_ttl_minutes: int = Field(default=30, alias="QUOTE_TTL_MINUTES")

    # PENDING rows younger than this are assumed to still be in flight
    reconcile_grace_seconds: int = Field(default=120, alias="RECONCILE_GRACE_SECONDS")
    reconcile_batch_size: int = Field(default=50, alias="RECONCILE_BATCH_SIZE")

    # Local commit attempts after an upstream-confirmed booking
    booking_persist_retries: int = Field(default=3, alias="BOOKING_PERSIST_RETRIES")

    # ==============================================
    # Scheduler
    # ==============================================
    scheduler_enabled: bool = Field(default=True, alias="SCHEDULER_ENABLED")
    scheduler_timezone: str = Field(default="Europe/Istanbul", alias="SCHEDULER_TIMEZONE")
    sync_cron_hour: int = Field(default=3, alias="SYNC_CRON_HOUR")
    reconcile_interval_minutes: int = Field(default=5, alias="RECONCILE_INTERVAL_MINUTES")
    purge_interval_minutes: int = Field(default=15, alias="PURGE_INTERVAL_MINUTES")

    # ==============================================
    # Logging & rate limits
    # ==============================================
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=True, alias="LOG_JSON")
    rate_limit_search: str = Field(default="30/minute", alias="RATE_LIMIT_SEARCH")
    rate_limit_booking: str = Field(default="10/minute", alias="RATE_LIMIT_BOOKING")
    rate_limit_storage_uri: str = Field(default="memory://", alias="RATE_LIMIT_STORAGE_URI")

    @field_validator("royal_api_base_url")
    @classmethod
    def strip_base_url(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("quote_ttl_minutes")
    @classmethod
    def validate_quote_ttl(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("QUOTE_TTL_MINUTES must be positive")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def has_royal_credentials(self) -> bool:
        return bool(self.royal_api_username and self.royal_api_password)

    @property
    def cors_origins(self) -> List[str]:
        """Parse allowed origins from comma-separated string."""
        origins = []
        for origin in self.allowed_origins.split(","):
            origin = origin.strip().rstrip("/")
            if origin and origin not in origins:
                origins.append(origin)
        return origins

    def resolve_feed_id(
        self,
        context: str = FeedContext.BACK_OFFICE,
        agency_feed_id: Optional[str] = None
    ) -> str:
        """
        Pick the feed id for a request.

        Agency feed ids win when present. Back-office requests prefer the B2B
        feed and fall back to B2C; public requests use B2C only.

        Raises:
            ConfigurationError: no usable feed id is configured
        """
        if agency_feed_id:
            return agency_feed_id

        if context == FeedContext.BACK_OFFICE:
            feed_id = self.royal_api_feed_id_b2b or self.royal_api_feed_id_b2c
        else:
            feed_id = self.royal_api_feed_id_b2c

        if not feed_id:
            raise ConfigurationError(f"No feed id configured for {context} context")
        return feed_id

    class Config:
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Initialize settings on module load
settings = get_settings()
