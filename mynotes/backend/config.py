"""
Application settings.

Values come from ``MYNOTES_*`` environment variables or a ``.env`` file.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .domain import NOTES_DB_NAME

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Runtime configuration for the notes application."""

    model_config = SettingsConfigDict(
        env_prefix="MYNOTES_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="Notes API")
    app_version: str = Field(default="1.0.0")

    # Storage
    data_dir: Optional[Path] = Field(default=None, description="Directory for SQLite files; defaults to ~/.mynotes")
    notes_db_name: str = Field(default=NOTES_DB_NAME)
    identity_db_name: str = Field(default="users.db")
    cascade_user_delete: bool = Field(default=True)

    # Identity backend
    min_password_length: int = Field(default=6, ge=1)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="simple")


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    settings = Settings()
    logger.debug("Loaded settings: data_dir=%s", settings.data_dir)
    return settings
