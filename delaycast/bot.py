from __future__ import annotations

import logging

from sqlalchemy.engine import Engine
from telegram.ext import Application, CommandHandler, MessageHandler, filters

from delaycast.config import Settings
from delaycast.db import create_all, create_db_engine, create_session_factory
from delaycast.handlers.commands import (
    cmd_help,
    cmd_predict,
    cmd_start,
    cmd_status,
    handle_text,
)
from delaycast.services.confidence import ConfidenceScorer
from delaycast.services.flights import FlightDataSource
from delaycast.services.history import SqlHistoricalStore
from delaycast.services.patterns import HistoricalPatternAnalyzer
from delaycast.services.prediction import PredictionEngine
from delaycast.services.weather import WeatherDataSource
from delaycast.utils.cache import build_cache
from delaycast.utils.http import close_session
from delaycast.utils.ratelimit import RateLimiter

logger = logging.getLogger(__name__)


def build_engine(settings: Settings, db: Engine) -> PredictionEngine:
    """Wire one shared set of collaborators for the whole process."""
    sessions = create_session_factory(db)
    cache = build_cache(settings, sessions)

    flights = FlightDataSource(
        settings.aviationstack_api_key,
        limiter=RateLimiter(
            "aviationstack", settings.flight_quota_calls, settings.flight_quota_period_seconds,
        ),
    )
    weather = WeatherDataSource(
        settings.weatherstack_api_key,
        cache,
        limiter=RateLimiter(
            "weatherstack", settings.weather_quota_calls, settings.weather_quota_period_seconds,
        ),
        cache_ttl=settings.weather_cache_ttl_seconds,
        retries=settings.weather_retry_attempts,
        backoff=settings.weather_retry_backoff_seconds,
    )
    analyzer = HistoricalPatternAnalyzer(SqlHistoricalStore(sessions))

    return PredictionEngine(
        flights,
        weather,
        analyzer,
        ConfidenceScorer(),
        cache,
        cache_ttl=settings.prediction_cache_ttl_seconds,
        deadline=settings.prediction_deadline_seconds,
    )


def create_application(settings: Settings) -> Application:
    db = create_db_engine(settings.database_url)
    create_all(db)
    engine = build_engine(settings, db)

    async def on_shutdown(_: Application) -> None:
        await close_session()
        db.dispose()
        logger.info("HTTP session and database closed.")

    app = (
        Application.builder()
        .token(settings.telegram_bot_token)
        .post_shutdown(on_shutdown)
        .build()
    )
    app.bot_data["engine"] = engine

    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("predict", cmd_predict))
    app.add_handler(CommandHandler("status", cmd_status))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text))

    logger.info("Bot ready — cache=%s, db=%s", settings.cache_backend, db.url)
    return app
