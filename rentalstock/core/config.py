"""Environment-driven configuration for the rental stock service.

Every tunable the service relies on lives on ``Settings``. Values are read
once at import time from the process environment (and ``.env`` files during
development), so importing ``settings`` anywhere gives the same object.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: Any, name: str) -> list[str]:
    if value in (None, "", []):
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, Iterable):
        return [str(item).strip() for item in value if str(item).strip()]
    raise TypeError(f"{name} must be a comma separated string or list")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "RentalStock"
    APP_ENV: str = "dev"

    # Base folders keep file-path building consistent.
    BASE_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[2])
    DATA_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[2] / "data")
    TZ: str = "UTC"

    # ---- Identity boundary
    API_KEY: str = Field(default="", validation_alias=AliasChoices("API_KEY", "API_TOKEN"))
    JWT_SECRET: str = "change-me"
    JWT_ACCESS_TTL_MIN: int = 15
    JWT_REFRESH_TTL_DAYS: int = 7
    # Comma separated; read through the properties below.
    ALLOWED_ORIGINS: str = ""

    # Empty means "SQLite file under DATA_DIR", resolved in get_settings().
    DB_URL: str = Field(default="", validation_alias=AliasChoices("DB_URL", "DATABASE_URL"))

    HOST: str = "0.0.0.0"
    PORT: int = 8089
    LOG_LEVEL: str = "INFO"
    # "json" for shipping to a log pipeline, "text" for a terminal.
    LOG_FORMAT: str = "json"

    # ---- Stock monitor
    STOCK_MONITOR_ENABLED: bool = True
    STOCK_CHECK_INTERVAL_MINUTES: int = 60
    STOCK_CHECK_STARTUP_DELAY_SECONDS: int = 5
    DEFAULT_REORDER_THRESHOLD: int = 5
    DEFAULT_REORDER_QUANTITY: int = 10

    # Scheduling a maintenance job this close to "now" takes the item out of service.
    MAINTENANCE_IMMEDIATE_WINDOW_HOURS: int = 24

    # ---- Notification fan-out (admin hook first, then subscribed parties)
    ALERT_WEBHOOK_URLS: str = ""
    ALERT_WEBHOOK_TIMEOUT_SECONDS: float = 5.0

    @property
    def allowed_origins(self) -> list[str]:
        return _split_csv(self.ALLOWED_ORIGINS, "ALLOWED_ORIGINS")

    @property
    def alert_webhook_urls(self) -> list[str]:
        return _split_csv(self.ALERT_WEBHOOK_URLS, "ALERT_WEBHOOK_URLS")

    @field_validator("DEFAULT_REORDER_THRESHOLD", "DEFAULT_REORDER_QUANTITY")
    @classmethod
    def positive_defaults(cls, value: int) -> int:
        if value < 1:
            raise ValueError("reorder defaults must be at least 1")
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = Settings()
    settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    if not settings.DB_URL:
        settings.DB_URL = f"sqlite:///{settings.DATA_DIR / 'rentalstock.db'}"
    return settings


settings = get_settings()
