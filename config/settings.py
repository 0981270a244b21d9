"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # RECORD STORE
    # ===================
    record_store_backend: str = Field(
        default="memory",
        pattern="^(memory|supabase)$",
        description="Where committed rows are written"
    )
    supabase_url: Optional[str] = Field(
        None,
        description="Supabase project URL (supabase backend only)"
    )
    supabase_key: Optional[str] = Field(
        None,
        description="Supabase service key (supabase backend only)"
    )

    # ===================
    # FORMAT DETECTION
    # ===================
    detection_sample_lines: int = Field(
        default=20,
        ge=2,
        le=500,
        description="Non-empty lines inspected for row-width consistency"
    )
    detection_min_confidence: float = Field(
        default=0.3,
        ge=0,
        le=1,
        description="Below this, detection falls back to the caller's format"
    )
    collection_match_threshold: float = Field(
        default=0.4,
        ge=0,
        le=1,
        description="Minimum header/signature overlap to propose a collection"
    )

    # ===================
    # FIELD AUTO-MATCH
    # ===================
    auto_match_min_confidence: float = Field(
        default=0.3,
        ge=0,
        le=1,
        description="Candidates scoring below this are not proposed"
    )
    auto_match_sample_rows: int = Field(
        default=20,
        ge=1,
        le=1000,
        description="Rows sampled to suggest value transforms"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def supabase_configured(self) -> bool:
        """Check if Supabase credentials are present."""
        return bool(self.supabase_url and self.supabase_key)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If env vars are invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
