"""
Configuration Management

Uses Pydantic Settings for environment-based configuration.
Loads from .env file automatically.
"""

import logging
from typing import Optional
from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Application Settings
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Context health
    CONTEXT_FRESHNESS_DAYS: int = 90

    # Competition Gap
    COMPETITION_CACHE_DAYS: int = 30
    COMPETITION_RUN_MAX_AGE_DAYS: int = 30

    # Timeouts (seconds)
    LAB_ENGINE_TIMEOUT: float = 300.0
    GAP_ENGINE_TIMEOUT: float = 600.0

    # Storage
    STORAGE_PATH: Optional[str] = None
    DIAGNOSTIC_RUNS_PATH: Optional[str] = None

    # Run history (GAP plan runs table)
    DATABASE_URL: Optional[str] = None
    SQLITE_PATH: str = "gap_engine.db"
    SQL_DEBUG: bool = False
    RUN_LOG_RAW_PAYLOAD_LIMIT: int = 50000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra fields in .env file
        case_sensitive = False  # Allow both UPPERCASE and lowercase


@lru_cache
def get_settings() -> Settings:
    """Get or create cached settings instance."""
    return Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging for hosts that embed the orchestrator."""
    logging.basicConfig(
        level=getattr(logging, (level or get_settings().LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
