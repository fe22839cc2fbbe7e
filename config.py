"""
Configuration settings for the contact reconciliation service.
"""
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Storage
    db_path: Path = Field(
        default=Path("contacts.db"),
        alias="BITESPEED_DB_PATH",
        description="SQLite database file holding the Contact table"
    )

    # Server
    host: str = Field(default="0.0.0.0", alias="BITESPEED_HOST")
    port: int = Field(default=8000, alias="BITESPEED_PORT")

    log_level: str = Field(default="INFO", alias="BITESPEED_LOG_LEVEL")

    # Run an integrity repair pass when the app starts
    repair_on_startup: bool = Field(default=False, alias="BITESPEED_REPAIR_ON_STARTUP")

    # Seed and purge endpoints for local development
    dev_routes: bool = Field(default=False, alias="BITESPEED_DEV_ROUTES")


settings = Settings()
