"""Application settings."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration, read from ``STORE_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    database_url: str = "sqlite:///./store.db"

    jwt_secret: str = Field(default="change-me-store-api-secret-key-32b", min_length=32)
    jwt_issuer: str = "store-api"
    jwt_algorithm: str = "HS256"
    jwt_expiration_seconds: int = Field(default=3600, gt=0)

    log_level: str = "info"
    log_json: bool = False

    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    seed_users: bool = True
    admin_password: str = "admin123"
    user_password: str = "user123"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Provide application settings."""

    return Settings()
