"""Application configuration module."""

from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Database settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./gradebook.db"
    SQL_ECHO: bool = False
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    STORAGE_BACKEND: str = "sql"

    # Logging settings
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False
    LOG_FILE: Optional[str] = None

    # API settings
    API_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "Gradebook Assessments"

    # Identity settings; with no secret the bearer token is taken as the user id
    JWT_SECRET: Optional[str] = None
    JWT_ALGORITHM: str = "HS256"

    # Attempt engine settings
    ATTEMPT_START_RETRIES: int = 3

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()

    @field_validator("STORAGE_BACKEND")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        if v.lower() not in ("sql", "memory"):
            raise ValueError(f"Invalid storage backend: {v}. Must be 'sql' or 'memory'")
        return v.lower()

    @field_validator("ATTEMPT_START_RETRIES")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"ATTEMPT_START_RETRIES must be >= 0, got {v}")
        return v


# Create global settings instance
settings = Settings()
