"""Configuration module using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from quotagate.tiers import ModelTier, QuotaWindowLimits


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Durable store
    store_backend: str = "sql"  # "sql", "redis" or "memory"
    database_url: str = "sqlite:///data/quotagate.db"
    redis_url: str | None = None  # e.g. redis://localhost:6379/0
    redis_prefix: str = "quotagate:"

    # Generation provider
    gemini_api_key: str | None = None
    gemini_timeout_seconds: float | None = 60.0
    primary_model_id: str = "gemini-3-pro-preview"
    secondary_model_id: str = "gemini-3-flash-preview"
    system_instruction: str = (
        "You are a B2B auditor. Always answer in plain JSON."
    )

    # Quota windows per tier
    primary_rpm: int = 2
    primary_rpd: int = 50
    secondary_rpm: int = 15
    secondary_rpd: int = 1500
    quota_retention_hours: float = 24  # Also the hard block duration
    fallback_wait_threshold_seconds: int = 15

    # Retry policy
    default_retry_budget: int = 3
    retry_backoff_seconds: float = 2.0

    # Response cache
    cache_ttl_hours: float = 24

    # Maintenance
    maintenance_interval_minutes: int = 60

    # Logging
    log_level: str = "INFO"

    @property
    def data_dir(self) -> Path:
        """Get the data directory path."""
        if self.database_url.startswith("sqlite:///"):
            db_path = Path(self.database_url.replace("sqlite:///", ""))
            return db_path.parent
        return Path("data")

    def tier_limits(self) -> dict[ModelTier, QuotaWindowLimits]:
        """Per-tier request caps."""
        return {
            ModelTier.PRIMARY: QuotaWindowLimits(rpm=self.primary_rpm, rpd=self.primary_rpd),
            ModelTier.SECONDARY: QuotaWindowLimits(rpm=self.secondary_rpm, rpd=self.secondary_rpd),
        }

    def model_ids(self) -> dict[ModelTier, str]:
        """Concrete provider model identifier for each tier."""
        return {
            ModelTier.PRIMARY: self.primary_model_id,
            ModelTier.SECONDARY: self.secondary_model_id,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience function for quick access
settings = get_settings()
