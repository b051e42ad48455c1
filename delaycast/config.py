from __future__ import annotations

import logging
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=Path(__file__).resolve().parent.parent / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Upstream credentials; adapters refuse to start without them
    aviationstack_api_key: str = ""
    weatherstack_api_key: str = ""
    telegram_bot_token: str = ""

    database_url: str = "sqlite:///delaycast.db"
    cache_backend: str = "memory"   # "memory" | "database"

    prediction_cache_ttl_seconds: int = 300
    weather_cache_ttl_seconds: int = 1800
    prediction_deadline_seconds: float = 20.0

    weather_retry_attempts: int = 3
    weather_retry_backoff_seconds: float = 1.0

    # Client-side quotas (Weatherstack free tier is 250 calls / month)
    weather_quota_calls: int = 240
    weather_quota_period_seconds: int = 30 * 24 * 3600
    flight_quota_calls: int = 100
    flight_quota_period_seconds: int = 15 * 60

    log_level: str = "INFO"


def get_settings() -> Settings:
    return Settings()


def setup_logging(level: str = "INFO") -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(levelname)-8s | %(name)-25s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
