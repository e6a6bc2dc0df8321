"""
Crawler configuration loaded from the environment.

Uses pydantic-settings for type-safe config with .env file support.
All values have sensible defaults; the default crawl area covers mainland
Australia.

Usage:
    from alertcrawler.core.config import get_settings
    print(get_settings().MAX_ALERTS)
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings loaded from environment variables or .env file.

    Precedence: env var > .env file > default value
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Application ──
    APP_NAME: str = "Alert Crawler"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development | production
    LOG_LEVEL: str = "INFO"  # DEBUG | INFO | WARNING | ERROR | CRITICAL

    # ── Storage ──
    DB_PATH: str = "./cache/database.db"
    SOURCE_PATH: str = "./cache"  # export output directory

    # ── Crawl area (degrees, north bound numerically greater) ──
    AREA_TOP: float = Field(default=-10.683, ge=-90, le=90)
    AREA_BOTTOM: float = Field(default=-43.633, ge=-90, le=90)
    AREA_LEFT: float = Field(default=113.15, ge=-180, le=180)
    AREA_RIGHT: float = Field(default=153.633, ge=-180, le=180)

    # ── Crawl behaviour ──
    MAX_ALERTS: int = Field(default=200, ge=1)  # feed's per-response cap
    QUERY_COOLDOWN: float = Field(default=600, ge=0)  # seconds between cycle starts
    QUERY_DELAY: float = Field(default=0, ge=0)  # milliseconds after each region
    MAX_SUBDIVISION_DEPTH: int = Field(default=16, ge=0)

    # ── Feed ──
    FEED_URL: str = "https://www.waze.com/live-map/api/georss"
    FEED_ENV: str = "row"
    FEED_TYPES: str = "alerts"
    FEED_TIMEOUT: float = Field(default=30.0, gt=0)  # seconds

    @model_validator(mode="after")
    def _check_area(self) -> "Settings":
        if not self.AREA_TOP > self.AREA_BOTTOM:
            raise ValueError(
                f"AREA_TOP ({self.AREA_TOP}) must be greater than "
                f"AREA_BOTTOM ({self.AREA_BOTTOM})"
            )
        if not self.AREA_RIGHT > self.AREA_LEFT:
            raise ValueError(
                f"AREA_RIGHT ({self.AREA_RIGHT}) must be greater than "
                f"AREA_LEFT ({self.AREA_LEFT})"
            )
        return self

    @property
    def database_url(self) -> str:
        return f"sqlite+aiosqlite:///{Path(self.DB_PATH).as_posix()}"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    def defaulted_keys(self) -> List[str]:
        """Crawler keys that were not supplied by the environment or .env."""
        return [key for key in CRAWLER_KEYS if key not in self.model_fields_set]


# Keys whose absence is worth a startup warning
CRAWLER_KEYS = (
    "DB_PATH",
    "MAX_ALERTS",
    "AREA_TOP",
    "AREA_BOTTOM",
    "AREA_LEFT",
    "AREA_RIGHT",
    "QUERY_COOLDOWN",
    "QUERY_DELAY",
    "SOURCE_PATH",
)


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
