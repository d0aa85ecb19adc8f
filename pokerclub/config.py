"""Application configuration."""
from functools import lru_cache
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # App
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_debug: bool = True
    log_level: str = "DEBUG"

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./pokerclub.db",
        description="SQLAlchemy async database URL",
    )
    db_pool_size: int = Field(
        default=20,
        description="DB connection pool size (ignored for SQLite)",
    )
    db_max_overflow: int = Field(
        default=10,
        description="Max overflow connections (ignored for SQLite)",
    )

    # Redis (optional event stream sink)
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis URL; when set, domain events are also appended to a Redis Stream",
    )
    redis_socket_timeout: float = 5.0

    # Tournament clock
    clock_tick_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Interval of the background clock ticker in seconds",
    )
    clock_ticker_enabled: bool = Field(
        default=True,
        description="Start the background clock ticker with the application",
    )
    stale_tournament_hours: int = Field(
        default=24,
        ge=1,
        description="In-progress tournaments untouched for this long are force-finished",
    )
    stale_sweep_interval_seconds: int = Field(
        default=3600,
        ge=1,
        description="How often the stale tournament sweep runs",
    )

    # Seating
    seating_history_default_limit: int = 100
    seating_history_max_limit: int = 1000

    # Sentry Error Tracking
    sentry_dsn: str | None = Field(
        default=None,
        description="Sentry DSN for error tracking",
    )
    sentry_traces_sample_rate: float = Field(
        default=0.05,
        description="Sentry transaction sampling rate (0.0-1.0)",
    )

    # CORS
    cors_origins: str = "http://localhost:3000"

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate settings for production environment."""
        if self.app_env == "production":
            if self.app_debug:
                raise ValueError(
                    "app_debug must be False in production environment"
                )

            origins = [o.strip() for o in self.cors_origins.split(",")]
            if "*" in origins:
                raise ValueError(
                    "CORS wildcard '*' is not allowed in production environment. "
                    "Specify explicit allowed origins."
                )

        if self.seating_history_default_limit > self.seating_history_max_limit:
            raise ValueError(
                "seating_history_default_limit cannot exceed seating_history_max_limit"
            )

        return self

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
