"""
PayDesk - Configuration Settings

This module handles all application configuration using Pydantic Settings.
Environment variables are loaded from .env file.
"""

from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PAYDESK_",
        case_sensitive=False,
        extra="ignore"
    )

    # ===========================================
    # APPLICATION CONFIGURATION
    # ===========================================
    app_name: str = "PayDesk"
    app_env: str = "development"
    debug: bool = False
    api_version: str = "v1"

    # ===========================================
    # DATABASE CONFIGURATION
    # ===========================================
    database_url_async: str = "sqlite+aiosqlite:///./paydesk.db"
    db_pool_size: int = 5
    db_max_overflow: int = 10

    # Retries for transient connection failures during a write batch
    db_max_retries: int = 3
    db_retry_delay_seconds: float = 1.0

    # ===========================================
    # DOCUMENT GENERATION
    # ===========================================
    document_currency: str = "IDR"  # Salary slips
    invoice_currency: str = "USD"
    render_concurrency: int = 4

    # ===========================================
    # IMPORT LIMITS
    # ===========================================
    max_upload_bytes: int = 5 * 1024 * 1024

    # ===========================================
    # CORS SETTINGS
    # ===========================================
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string into list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env.lower() == "development"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url_async.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every call.
    """
    return Settings()


# Export settings instance
settings = get_settings()
