from __future__ import annotations

import logging

from telegram import Update
from telegram.ext import ContextTypes

from delaycast.services.base import DataSourceError
from delaycast.services.flights import normalize_flight_number
from delaycast.services.formatter import format_error, format_prediction
from delaycast.services.prediction import PredictionUnavailable
from delaycast.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text(
        "✈️ <b>DelayCast</b>\n\n"
        "Will your flight be late? Send a flight number, e.g. <code>UA123</code>,\n"
        "and get a delay probability built from:\n"
        "  🛰 live flight state\n"
        "  🌦 weather at both airports\n"
        "  📊 route, airline and seasonal history",
        parse_mode="HTML",
    )


async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text(
        "✈️ <b>DelayCast Commands</b>\n\n"
        "/predict UA123 — delay forecast for a flight\n"
        "UA123 — same, just send the number\n"
        "/status — bot health check\n\n"
        "Forecasts are cached for 5 minutes.",
        parse_mode="HTML",
    )


async def cmd_status(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    now = utcnow()
    await update.message.reply_text(
        f"✅ <b>DelayCast is running</b>\n"
        f"🕐 {now.strftime('%Y-%m-%d %H:%M:%S %Z')}\n"
        f"📡 Flights: AviationStack\n"
        f"📡 Weather: Weatherstack\n"
        f"📡 History: BTS on-time records",
        parse_mode="HTML",
    )


async def cmd_predict(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = " ".join(context.args or [])
    if not query:
        await update.message.reply_text("Usage: /predict UA123")
        return
    await _handle_predict(update, context, query)


async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    text = (update.message.text or "").strip()
    if normalize_flight_number(text):
        await _handle_predict(update, context, text)
    else:
        await update.message.reply_text("Send a flight number like UA123, or /help.")


async def _handle_predict(
    update: Update, context: ContextTypes.DEFAULT_TYPE, query: str,
) -> None:
    engine = context.bot_data.get("engine")
    if not engine:
        await update.message.reply_text("⚠️ Bot not ready yet.")
        return
    number = normalize_flight_number(query) or query.strip().upper()
    await update.message.reply_text(f"⏳ Checking {number}…")
    try:
        result = await engine.get_prediction(number)
    except (DataSourceError, PredictionUnavailable) as exc:
        logger.warning("prediction for %s failed: %s", number, exc)
        await update.message.reply_text(format_error(exc, number), parse_mode="HTML")
        return
    except Exception as exc:
        logger.exception("prediction for %s failed", number)
        await update.message.reply_text(format_error(exc, number), parse_mode="HTML")
        return
    await update.message.reply_text(format_prediction(result), parse_mode="HTML")
