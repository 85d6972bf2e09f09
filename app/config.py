"""
Configuration management for the X-ray analysis relay.

Uses Pydantic Settings for type-safe environment variable handling.
All configuration is loaded from environment variables or .env file.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ==========================================================================
    # Application
    # ==========================================================================
    app_name: str = "DiagnosIA X-ray Relay"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # ==========================================================================
    # Server
    # ==========================================================================
    host: str = "0.0.0.0"
    port: int = 8000

    # ==========================================================================
    # Upstream model provider
    # ==========================================================================
    openai_api_key: str = ""
    openai_model: str = "gpt-4.1-2025-04-14"
    openai_base_url: str = "https://api.openai.com/v1"
    openai_max_tokens: int = 1000
    openai_temperature: float = 0.2
    openai_timeout_seconds: float = 60.0

    # ==========================================================================
    # Rate Limiting
    # ==========================================================================
    rate_limit_enabled: bool = True
    rate_limit_per_minute: int = 30

    # ==========================================================================
    # File Upload
    # ==========================================================================
    max_file_size_mb: int = 10

    # ==========================================================================
    # CORS
    # ==========================================================================
    cors_allow_headers: str = "authorization,x-client-info,apikey,content-type"

    # ==========================================================================
    # Computed Properties
    # ==========================================================================
    @property
    def max_file_size_bytes(self) -> int:
        """Maximum file size in bytes."""
        return self.max_file_size_mb * 1024 * 1024

    @property
    def allowed_headers(self) -> list[str]:
        """List of headers accepted on cross-origin requests."""
        return [h.strip() for h in self.cors_allow_headers.split(",") if h.strip()]

    @property
    def model_configured(self) -> bool:
        """Whether a credential for the upstream provider is present."""
        return bool(self.openai_api_key.strip())


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Convenience access
settings = get_settings()
