import os
import sys
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _should_load_env_file() -> str | None:
    """Determine if .env should be loaded.

    For local development, load `.env` automatically so `SECRET_KEY` can be
    provided from `backend/.env` (convenience). **SECRET_KEY remains required**
    and must be set in production via environment variables.

    Do NOT auto-load `.env` when running under pytest or in CI (so tests
    that validate missing secrets continue to fail fast).
    """
    if any("pytest" in str(x) for x in sys.argv if x):
        return None
    if os.environ.get("CI") in ("1", "true", "True"):
        return None
    return ".env"


class Settings(BaseSettings):
    # Environment configuration
    ENVIRONMENT: str = Field(
        default="development",
        description="Environment: 'development', 'staging', 'production' or 'test'",
    )

    DATABASE_URL: str = "sqlite:///./data/civicpulse.db"
    SECRET_KEY: str = Field(
        ...,  # Required, no default
        description="JWT secret key - must be set via SECRET_KEY environment variable",
    )
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    CORS_ORIGINS: List[str] = Field(
        default=["http://localhost:5173"],
        description="Allowed CORS origins (comma-separated in env var)",
    )

    # Database connection pool settings
    DB_POOL_SIZE: int = Field(
        default=5,
        description="Number of persistent connections in pool",
    )
    DB_MAX_OVERFLOW: int = Field(
        default=10,
        description="Extra connections when pool exhausted",
    )
    DB_POOL_TIMEOUT: int = Field(
        default=30,
        description="Seconds to wait for connection from pool",
    )
    DB_POOL_RECYCLE: int = Field(
        default=1800,
        description="Recycle connections after N seconds (30 min default)",
    )

    # Safety: avoid creating DB schema automatically unless explicitly enabled.
    AUTO_CREATE_DB: bool = Field(
        default=False,
        description="When true (development only), call Base.metadata.create_all on startup",
    )

    SLOW_REQUEST_THRESHOLD: float = Field(
        default=1.0,
        description="Log warning for requests slower than this (seconds)",
    )
    LOG_DIR: str = Field(
        default="logs",
        description="Directory for the rotating log file (empty string disables it)",
    )

    # Spatial query configuration
    SPATIAL_BACKEND: str | None = Field(
        default=None,
        description="Spatial backend: 'sqlite' or 'postgis'. Auto-detect if None.",
    )
    SPATIAL_QUERY_TIMEOUT_MS: int = Field(
        default=2000,
        description="Statement timeout applied to radius queries (PostGIS only)",
    )
    SPATIAL_FALLBACK_CANDIDATE_LIMIT: int = Field(
        default=10,
        description="Maximum bounding-box candidates checked with exact distance",
    )

    # Deduplication and priority tuning
    CLUSTER_RADIUS_METERS: float = Field(
        default=100.0,
        description="Radius used for duplicate matching and cluster counting",
    )
    CLUSTER_MIN_OTHERS: int = Field(
        default=2,
        description="Other nearby issues of the same category required for a priority bump",
    )
    PRIORITY_VOTES_HIGH: int = Field(
        default=7,
        description="Votes needed for a 'high' baseline priority",
    )
    PRIORITY_VOTES_MEDIUM: int = Field(
        default=2,
        description="Votes needed for a 'medium' baseline priority",
    )
    MERGE_MAX_RETRIES: int = Field(
        default=3,
        description="Attempts for a canonical read-modify-write before giving up",
    )

    # Retroactive clustering
    RETRO_CLUSTER_MAX_ISSUES: int = Field(
        default=500,
        description="Safety cap on canonical issues loaded by one retroactive scan",
    )
    RETRO_CLUSTER_LOOKBACK_HOURS: int = Field(
        default=720,
        description="Default lookback window for retroactive clustering",
    )
    RETRO_CLUSTER_SCHEDULE_ENABLED: bool = Field(
        default=False,
        description="Run the retroactive clusterer nightly via the background scheduler",
    )
    RETRO_CLUSTER_HOUR: int = Field(
        default=3,
        description="Hour of day (server time) for the nightly retroactive scan",
    )

    # Ntfy Push Notification Settings
    NTFY_URL: str = Field(
        default="",
        description="Ntfy server URL (internal Docker: http://ntfy:80)",
    )
    NTFY_TOPIC_PREFIX: str = Field(
        default="civicpulse-gov",
        description="Prefix for notification topics",
    )
    NTFY_AUTH_TOKEN: str = Field(
        default="",
        description="Optional auth token for publishing (if ntfy requires auth)",
    )
    NTFY_ENABLED: bool = Field(
        default=True,
        description="Enable/disable notifications globally",
    )
    APP_URL: str = Field(
        default="http://localhost:5173",
        description="Frontend URL for notification deep links",
    )
    PROJECT_NAME: str = Field(
        default="CivicPulse",
        description="Project name for notifications and branding",
    )

    def get_spatial_backend(self) -> str:
        """Determine spatial backend from config or DATABASE_URL."""
        if self.SPATIAL_BACKEND:
            return self.SPATIAL_BACKEND
        if self.DATABASE_URL.startswith("postgresql"):
            return "postgis"
        return "sqlite"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | List[str]) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    model_config = SettingsConfigDict(
        env_file=_should_load_env_file(),
        env_file_encoding="utf-8",
        extra="ignore",  # Allow extra env vars (e.g., SENTRY_DSN) without validation errors
    )


# Instantiating Settings() will raise pydantic.ValidationError if SECRET_KEY isn't set.
settings = Settings()  # type: ignore[call-arg]


def get_settings() -> Settings:
    """Get the settings instance (for dependency injection)."""
    return settings
