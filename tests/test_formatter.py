from __future__ import annotations

from dataclasses import replace

from conftest import NOW
from delaycast.models import (
    PredictionDetails,
    PredictionFactors,
    PredictionResult,
    PredictionState,
    ResultSource,
)
from delaycast.services.base import (
    AuthenticationFailed,
    FlightNotFound,
    RateLimited,
    UpstreamUnavailable,
)
from delaycast.services.formatter import escape, format_error, format_prediction
from delaycast.services.prediction import PredictionUnavailable


def result(**overrides) -> PredictionResult:
    values = dict(
        flight_number="UA123",
        probability=52,
        delay=30,
        confidence=71,
        factors=PredictionFactors(weather=0.3, historical=0.6, time_of_day=0.8, congestion=0.5),
        details=PredictionDetails(
            departure_condition="Clear",
            arrival_condition="Rain",
            scheduled_hour=8,
            peak_window="morning",
            route_reliability=0.6,
            route_flights=120,
            historical_confidence=89,
        ),
        updated_at=NOW,
        confidence_detail={"warnings": [], "strengths": []},
    )
    values.update(overrides)
    return PredictionResult(**values)


def test_escape():
    assert escape("<b>&") == "&lt;b&gt;&amp;"


def test_prediction_message():
    text = format_prediction(result())
    assert "<b>UA123</b>" in text
    assert "Delay probability:</b> 52%" in text
    assert "~30 min" in text
    assert "Confidence:</b> 71%" in text
    assert "Clear" in text and "Rain" in text
    assert "morning peak" in text
    assert "60% on time over 120 records" in text
    assert "(cached)" not in text
    assert "Partial data" not in text


def test_cached_and_no_delay():
    text = format_prediction(result(probability=20, delay=0, source=ResultSource.CACHE))
    assert "(cached)" in text
    assert "none expected" in text


def test_degraded_and_warnings_listed():
    details = result().details
    degraded = replace(details, degraded=("arrival weather: <timeout>",), route_flights=0)
    text = format_prediction(result(
        details=degraded,
        state=PredictionState.DEGRADED,
        confidence_detail={
            "warnings": ["Low dataQuality score: 12%"],
            "warning": "Confidence calculation error, returning conservative estimate",
        },
    ))
    assert "Partial data" in text
    assert "arrival weather: &lt;timeout&gt;" in text
    assert "Low dataQuality score: 12%" in text
    assert "conservative estimate" in text
    assert "no records" in text


def test_errors_are_distinguishable():
    messages = {
        format_error(FlightNotFound("ZZ999"), "ZZ999"),
        format_error(RateLimited("aviationstack"), "UA123"),
        format_error(AuthenticationFailed("bad key"), "UA123"),
        format_error(PredictionUnavailable("timed out"), "UA123"),
        format_error(UpstreamUnavailable("boom"), "UA123"),
    }
    assert len(messages) == 5
    assert "ZZ999" in format_error(FlightNotFound("ZZ999"), "ZZ999")
