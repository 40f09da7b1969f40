"""Application settings using Pydantic Settings for environment-based configuration."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the RegIQ ingestion core.

    All settings can be overridden via environment variables.
    Prefix is not used to allow standard env var names (e.g., FDA_API_KEY).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "staging", "production", "testing"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False

    # Outbound requests
    user_agent: str = "RegIQ/1.0"
    batch_concurrency: int = Field(default=5, ge=1, le=50)
    http_timeout_override_ms: int | None = Field(
        default=None,
        ge=100,
        description="Replaces every adapter's declared timeout_ms when set",
    )

    # Source credentials (comma-separated for multiple keys with rotation)
    fda_api_key: str | None = None
    usda_api_key: str | None = None
    fsis_api_key: str | None = None
    who_api_key: str | None = None

    # HTTP API
    api_host: str = "0.0.0.0"
    api_port: int = 8001
    api_keys: str | None = None
    cors_origins: str = "http://localhost:3000,http://localhost:5173"
    cors_allow_credentials: bool = False
    request_timeout_seconds: float = Field(default=120.0, ge=0.0)
    rate_limit_enabled: bool = False
    rate_limit_default: str = "60/minute"
    # Endpoints that call agency APIs spend upstream quota, so they get less
    rate_limit_query: str = "20/minute"

    # Observability
    metrics_port: int = 8000
    tracing_enabled: bool = False
    otel_exporter_otlp_endpoint: str | None = None
    otel_service_name: str = "regiq-ingestion"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def api_key_list(self) -> list[str]:
        """Inbound API keys from API_KEYS (comma-separated)."""
        if not self.api_keys:
            return []
        return [k.strip() for k in self.api_keys.split(",") if k.strip()]

    @property
    def source_credentials(self) -> dict[str, str | None]:
        """Raw credential values keyed by source type."""
        return {
            "FDA": self.fda_api_key,
            "USDA": self.usda_api_key,
            "FSIS": self.fsis_api_key,
            "WHO": self.who_api_key,
        }


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    Clear cache with get_settings.cache_clear() if needed.
    """
    return Settings()
