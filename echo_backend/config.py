"""
Configuration and settings for the Echo backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.constants import STARTING_COINS


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # Storage: "sql" needs DATABASE_URL, "firestore" needs Firebase credentials.
    store_backend: Literal["memory", "sql", "firestore"] = Field(default="sql")
    database_url: Optional[str] = Field(default=None)
    firebase_project_id: Optional[str] = Field(default=None)
    firebase_credentials_path: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # Auth
    auth_mode: Literal["jwt", "firebase"] = Field(default="jwt")
    jwt_secret: str = Field(default="change-me-in-production")
    jwt_algorithm: str = Field(default="HS256")
    jwt_expires_days: int = Field(default=7)
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    # Per-user locks (Redis)
    redis_url: Optional[str] = Field(default=None)
    lock_key_prefix: str = Field(default="echo:lock:user")
    lock_timeout_seconds: float = Field(default=30.0)
    lock_blocking_timeout_seconds: float = Field(default=10.0)

    starting_coins: int = Field(default=STARTING_COINS, ge=0)

    log_level: str = Field(default="INFO")
    frontend_url: str = Field(default="http://localhost:3000")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
