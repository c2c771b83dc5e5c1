"""Application configuration."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven settings validated at startup."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    addon_key: str = Field(..., alias="ADDON_KEY")
    addon_name: str = Field(..., alias="ADDON_NAME")
    # Public URL the platform uses to reach this add-on.
    base_url: str = Field(..., alias="ADDON_BASE_URL")
    description: str | None = Field(default=None, alias="ADDON_DESCRIPTION")
    vendor_name: str | None = Field(default=None, alias="ADDON_VENDOR_NAME")
    vendor_url: str | None = Field(default=None, alias="ADDON_VENDOR_URL")
    sender_name: str | None = Field(default=None, alias="ADDON_SENDER_NAME")
    # Regular expression; only matching room messages are forwarded.
    message_filter: str | None = Field(default=None, alias="ADDON_MESSAGE_FILTER")
    allow_global: bool = Field(default=True, alias="ADDON_ALLOW_GLOBAL")
    allow_room: bool = Field(default=True, alias="ADDON_ALLOW_ROOM")
    capability_path: str = Field(default="/capability", alias="ADDON_CAPABILITY_PATH")
    webhook_path: str = Field(default="/event", alias="ADDON_WEBHOOK_PATH")
    installed_path: str = Field(default="/install", alias="ADDON_INSTALLED_PATH")
    # Unset keeps credentials in memory only.
    database_path: Path | None = Field(default=None, alias="DATABASE_PATH")
    request_timeout_seconds: float = Field(default=30.0, alias="REQUEST_TIMEOUT_SECONDS")


def load_settings() -> Settings:
    """Load and validate settings."""

    return Settings()


def addon_url(settings: Settings, path: str) -> str:
    """Absolute URL of one of the add-on's routes."""

    return settings.base_url.rstrip("/") + "/" + path.lstrip("/")
