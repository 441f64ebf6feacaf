"""
Configuration for the ledger API.

Settings are read from environment variables prefixed with ``LEDGER_`` and
from a local ``.env`` file.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = Field(
        default="sqlite:///./ledger.db",
        description="SQLAlchemy database URL",
    )

    # Tokens
    secret_key: str = Field(
        default="change-me",
        description="Key used to sign access tokens",
    )
    algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=30, ge=1)

    # Logging
    log_level: str = Field(default="INFO")
    log_json: bool = Field(
        default=True,
        description="Render log lines as JSON instead of console output",
    )

    # Domain defaults
    default_payment_method: str = Field(default="PIX")
    personal_group_name: str = Field(default="Personal")
    personal_group_description: str = Field(default="Personal financial group")


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload.
    """
    return Settings()
