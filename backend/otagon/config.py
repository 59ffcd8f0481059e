"""
Configuration management for the Otagon companion API.
Loads settings from environment variables with sensible defaults.
"""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Otagon Companion API"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # Logging
    LOG_LEVEL: str = "info"
    LOG_JSON: bool = True

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./otagon.db"

    # Redis (unset = in-process cache)
    REDIS_URL: Optional[str] = None
    CACHE_TTL_SECONDS: int = 300
    CACHE_MAX_ENTRIES: int = 10000

    # Supabase auth
    SUPABASE_JWT_SECRET: str = "dev-insecure-jwt-secret-change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = "authenticated"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Gemini
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_PRO_MODEL: str = "gemini-2.5-pro"
    TEMPERATURE: float = 0.7
    AI_MAX_RETRIES: int = 3
    AI_RETRY_BASE_DELAY: float = 1.0

    # Trials
    TRIAL_DURATION_DAYS: int = 14
    TRIAL_WARNING_HOURS: int = 24

    # PC client pairing
    PAIRING_CODE_PATTERN: str = r"^\d{4}$"

    # CORS
    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "https://otagon.app",
    ]

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
