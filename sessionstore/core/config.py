"""
Application configuration using Pydantic Settings.

Configuration values can be set via environment variables (prefixed with
``SESSIONSTORE_``) or a .env file.
"""

from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="SESSIONSTORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = "sessionstore"
    debug: bool = False

    # Database
    database_url: str = "sqlite:///./data/sessions.db"

    # Store behaviour
    # Max rows reaped per set() call; None or 0 disables cleanup
    cleanup_limit: Optional[int] = None
    limit_subquery: bool = True
    # Fixed TTL in seconds; None derives it from the session cookie
    ttl: Optional[int] = None

    # Logging
    log_level: str = "INFO"
    json_logging: bool = False
    log_file: Optional[str] = None

    # Session cookie
    cookie_name: str = "session"
    cookie_max_age: int = 14 * 24 * 60 * 60
    secret_key: str = "change-me"
    https_only: bool = False

    @field_validator("cleanup_limit", "ttl")
    @classmethod
    def non_negative(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 0:
            raise ValueError("must not be negative")
        return value

    @field_validator("log_level")
    @classmethod
    def upper_log_level(cls, value: str) -> str:
        return value.upper()


# Global settings instance
settings = Settings()
