from __future__ import annotations

import html

from delaycast.models import PredictionResult, ResultSource
from delaycast.services.base import (
    AuthenticationFailed,
    ConfigurationError,
    FlightNotFound,
    RateLimited,
)
from delaycast.services.prediction import PredictionUnavailable

_CONDITION_EMOJI = {
    "Clear": "☀️",
    "Cloudy": "☁️",
    "Rain": "🌧",
    "Snow": "❄️",
    "Thunderstorm": "⛈",
    "Fog": "🌫",
}


def escape(value: object) -> str:
    """HTML-escape a dynamic value before embedding in a Telegram HTML message."""
    return html.escape(str(value))


def format_prediction(r: PredictionResult) -> str:
    d = r.details
    lines = [
        f"✈️ <b>{escape(r.flight_number)}</b> — delay forecast",
        f"🕐 Updated {r.updated_at.strftime('%d %b %Y, %H:%M UTC')}"
        + (" (cached)" if r.source == ResultSource.CACHE else ""),
        "",
        f"{_risk_icon(r.probability)} <b>Delay probability:</b> {r.probability}%",
        f"⏱ <b>Expected delay:</b> {_fmt_delay(r.delay)}",
        f"🎯 <b>Confidence:</b> {r.confidence}%",
        "",
        "<b>Why</b>",
        _fmt_weather(d.departure_condition, d.arrival_condition, r.factors.weather),
        _fmt_time(d.scheduled_hour, d.peak_window, r.factors.time_of_day),
        _fmt_history(d.route_reliability, d.route_flights),
        f"  🛫 Congestion: {r.factors.congestion:.2f} (no live feed, average assumed)",
    ]

    warnings = r.confidence_detail.get("warnings") or []
    if r.confidence_detail.get("warning"):
        warnings = [r.confidence_detail["warning"], *warnings]
    if warnings:
        lines.append("")
        lines.append("<b>Confidence notes</b>")
        lines.extend(f"  ⚠️ {escape(w)}" for w in warnings)

    if d.degraded:
        lines.append("")
        lines.append("<i>Partial data — neutral defaults used for:</i>")
        lines.extend(f"  • {escape(reason)}" for reason in d.degraded)

    return "\n".join(lines)


def format_error(exc: BaseException, flight_number: str = "") -> str:
    label = escape(flight_number or "that flight")
    if isinstance(exc, FlightNotFound):
        return f"🔍 No live flight found for <b>{label}</b>. Check the flight number."
    if isinstance(exc, RateLimited):
        return "⏳ Flight data provider is rate limiting us. Try again in a few minutes."
    if isinstance(exc, (AuthenticationFailed, ConfigurationError)):
        return "⚙️ Flight data provider is not configured correctly. Check logs."
    if isinstance(exc, PredictionUnavailable):
        return f"⚠️ Could not get live data for <b>{label}</b> right now. Try again shortly."
    return "❌ Prediction failed. Check logs."


def _risk_icon(probability: int) -> str:
    if probability >= 70:
        return "🔴"
    if probability >= 50:
        return "🟡"
    return "🟢"


def _fmt_delay(minutes: int) -> str:
    return "none expected" if minutes <= 0 else f"~{minutes} min"


def _fmt_weather(departure: str, arrival: str, score: float) -> str:
    dep = f"{_CONDITION_EMOJI.get(departure, '❔')} {escape(departure)}"
    arr = f"{_CONDITION_EMOJI.get(arrival, '❔')} {escape(arrival)}"
    return f"  🌦 Weather: {dep} → {arr} (impact {score:.2f})"


def _fmt_time(hour: int, window: str | None, score: float) -> str:
    when = f"{window} peak" if window else "off-peak"
    return f"  🕒 Departure {hour:02d}:00, {when} (impact {score:.2f})"


def _fmt_history(reliability: float, flights: int) -> str:
    if not flights:
        return f"  📊 Route history: no records, neutral {reliability:.2f}"
    return f"  📊 Route reliability: {reliability:.0%} on time over {flights} records"
