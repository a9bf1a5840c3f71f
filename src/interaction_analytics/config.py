"""Configuration management using pydantic-settings."""

import logging
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Instances are frozen; components receive the instance (or the values
    they need) at construction time instead of importing a module global.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Application
    APP_NAME: str = "Interaction Analytics"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    CORS_ALLOW_ORIGINS: str = "*"  # Comma-separated

    # Database (event store + aggregate tables)
    DATABASE_URL: str = "sqlite+aiosqlite:///./analytics.db"
    DB_CONNECT_ATTEMPTS: int = 5

    # Redis (evaluation work queue)
    REDIS_URL: str = "redis://localhost:6379/0"
    EVAL_QUEUE_PREFIX: str = "eval:"
    EVAL_QUEUE_TTL_SECONDS: int = 3600  # Unprocessed items silently expire after this

    # Batch classifier
    EVAL_BATCH_SIZE: int = 50
    EVAL_INTERVAL_SECONDS: float = 60.0
    EVAL_SCHEDULER_ENABLED: bool = True

    # Quality model (Gemini REST API); empty key disables the model tier
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.5-flash-lite-preview-06-17"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    QUALITY_MODEL_TIMEOUT: float = 10.0  # Hard timeout, no retry

    # Detached side-effects (queue enqueue, aggregate updates)
    BACKGROUND_CONCURRENCY: int = 8
    BACKGROUND_MAX_PENDING: int = 1000

    @property
    def quality_model_enabled(self) -> bool:
        """Check if a quality-model credential is configured."""
        return bool(self.GEMINI_API_KEY)

    @property
    def cors_origin_list(self) -> list[str]:
        """Get allowed CORS origins as a list."""
        return [o.strip() for o in self.CORS_ALLOW_ORIGINS.split(",") if o.strip()]

    @model_validator(mode="after")
    def check_batch_settings(self) -> "Settings":
        """Validate classifier and dispatcher limits."""
        if self.EVAL_BATCH_SIZE < 1:
            raise ValueError("EVAL_BATCH_SIZE must be at least 1")
        if self.BACKGROUND_CONCURRENCY < 1:
            raise ValueError("BACKGROUND_CONCURRENCY must be at least 1")
        if self.EVAL_QUEUE_TTL_SECONDS < 60:
            logging.warning(
                f"EVAL_QUEUE_TTL_SECONDS={self.EVAL_QUEUE_TTL_SECONDS} is shorter than "
                "a typical classifier interval; queued items may expire unprocessed"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Load settings once per process."""
    return Settings()
