"""Application configuration using Pydantic Settings"""

import logging
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=3000, description="Server port")
    allowed_origins: str = Field(
        default="*", description="Comma-separated CORS origins, '*' for any"
    )

    # Database (empty URL keeps channel state in process memory)
    database_url: str = Field(default="", description="PostgreSQL database URL")
    database_ssl: str = Field(default="prefer", description="asyncpg ssl mode")

    # Timer synchronization
    sync_interval_ms: int = Field(
        default=1000, ge=10, description="Broadcast cadence for running channels"
    )

    # Stale channel cleanup
    room_max_age_days: int = Field(
        default=30, ge=1, description="Days an idle channel is kept before deletion"
    )
    cleanup_interval_seconds: int = Field(
        default=24 * 60 * 60, ge=60, description="Seconds between stale channel sweeps"
    )

    # Per-session rate limiting
    rate_limit_window_ms: int = Field(default=1000, ge=1, description="Rate limit window")
    rate_limit_max_events: int = Field(
        default=10, ge=1, description="Max events of one kind per window"
    )

    # Keep-Alive
    enable_keep_alive: bool = Field(default=True, description="Enable heartbeat log task")
    keep_alive_interval: int = Field(default=300, description="Heartbeat interval in seconds")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid logging level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            logger.warning(f"Invalid log level '{v}', defaulting to INFO")
            return "INFO"
        return v_upper

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS allowed origins"""
        origins = [o.strip() for o in self.allowed_origins.split(",") if o.strip()]
        return origins or ["*"]

    @property
    def uses_database(self) -> bool:
        """Whether channel state is persisted in PostgreSQL"""
        return bool(self.database_url)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment"""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment"""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
