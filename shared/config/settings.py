"""
Application settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.
"""

from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class TierSettings(BaseModel):
    """Buffering tier override for a single stream id."""

    capacity: int = Field(ge=1)
    max_age_ms: int = Field(ge=1)
    priority: int = 3


class Settings(BaseSettings):
    """Application settings with defaults for development."""

    # Server
    host: str = "0.0.0.0"
    port: int = 5000

    # Environment
    environment: str = "development"
    debug: bool = True

    # Comma-separated list of allowed origins (empty allows any origin)
    allowed_origins: str = ""

    # Health monitor cadence in seconds
    monitor_interval: float = 1.0

    # Largest inbound message accepted from a client (4 MiB)
    max_frame_size: int = 4 * 1024 * 1024

    # Prepended to relayed frame bytes, e.g. "data:image/jpeg;base64,"
    frame_content_prefix: str = ""

    # Per-stream tier overrides, JSON in the environment:
    # STREAM_TIERS='{"cam1": {"capacity": 4, "max_age_ms": 150}}'
    stream_tiers: dict[str, TierSettings] = {}

    # Send streamStatus events to publishers when viewer counts change
    status_events_enabled: bool = True

    # Connections idle longer than this are reported (never disconnected)
    heartbeat_idle_seconds: int = 60

    ws_accept_timeout: float = 5.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    def get_allowed_origins(self) -> list[str]:
        """Parse ALLOWED_ORIGINS into a list, defaulting to any origin."""
        origins = [o.strip() for o in self.allowed_origins.split(",") if o.strip()]
        return origins or ["*"]

    def validate_production_settings(self) -> list[str]:
        """
        Validate settings that must be set explicitly in production.
        Returns a list of validation errors. Empty list means all checks pass.
        """
        errors = []

        if self.environment == "production":
            if self.debug:
                errors.append("DEBUG must be False in production")

            if not self.allowed_origins:
                errors.append(
                    "ALLOWED_ORIGINS must be set in production (comma-separated list of allowed domains)"
                )

        if self.monitor_interval <= 0:
            errors.append("MONITOR_INTERVAL must be positive")

        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export
settings = get_settings()
