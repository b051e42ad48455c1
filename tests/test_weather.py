"""Weatherstack adapter: classification, caching and retry."""

from __future__ import annotations

import asyncio
from datetime import datetime

import pytest
import pytz

from delaycast.models import WeatherCondition
from delaycast.services import weather
from delaycast.services.base import AuthenticationFailed, RateLimited, UpstreamUnavailable
from delaycast.services.weather import (
    WeatherDataSource,
    _observation_time,
    classify_condition,
)
from delaycast.utils.cache import MemoryCache

PAYLOAD = {
    "request": {"type": "IATA", "query": "JFK"},
    "current": {
        "observation_time": "11:50 AM",
        "temperature": 13,
        "weather_descriptions": ["Light rain"],
        "wind_speed": 11,
        "wind_dir": "NW",
        "precip": 0.3,
        "visibility": 9,
    },
}


@pytest.fixture
def respond(monkeypatch):
    """Queue of answers served one per request; returns the list of queries."""
    queries: list[str] = []

    def install(*answers):
        queue = list(answers)

        async def fake_fetch_json(url, *, params=None, headers=None, source="upstream"):
            queries.append(params["query"])
            answer = queue.pop(0) if len(queue) > 1 else queue[0]
            if isinstance(answer, Exception):
                raise answer
            return answer

        monkeypatch.setattr(weather, "fetch_json", fake_fetch_json)
        return queries

    return install


def source(**kwargs):
    kwargs.setdefault("backoff", 0)
    return WeatherDataSource("key", MemoryCache(), **kwargs)


@pytest.mark.parametrize(
    "description, expected",
    [
        ("Sunny", WeatherCondition.CLEAR),
        ("Clear", WeatherCondition.CLEAR),
        ("Partly cloudy", WeatherCondition.CLOUDY),
        ("Overcast", WeatherCondition.CLOUDY),
        ("Light rain shower", WeatherCondition.RAIN),
        ("Patchy light drizzle", WeatherCondition.RAIN),
        ("Moderate snow", WeatherCondition.SNOW),
        ("Light rain and snow", WeatherCondition.SNOW),
        ("Thundery outbreaks possible", WeatherCondition.THUNDERSTORM),
        ("Mist", WeatherCondition.FOG),
        ("Freezing fog", WeatherCondition.FOG),
        ("Dust", WeatherCondition.UNKNOWN),
        ("", WeatherCondition.UNKNOWN),
    ],
)
def test_classify_condition(description, expected):
    assert classify_condition(description) == expected


def test_observation_time_today_or_yesterday():
    now = pytz.UTC.localize(datetime(2026, 10, 19, 12, 0))
    assert _observation_time("11:50 AM", now) == now.replace(minute=50, hour=11)
    late = _observation_time("11:50 PM", now)
    assert (late.day, late.hour) == (18, 23)
    assert _observation_time(None, now) == now


def test_parses_current_conditions(respond):
    queries = respond(PAYLOAD)
    obs = asyncio.run(source().get_weather("jfk"))
    assert queries == ["JFK"]
    assert obs.airport == "JFK"
    assert obs.condition == WeatherCondition.RAIN
    assert obs.description == "Light rain"
    assert obs.temperature == 13.0
    assert obs.wind_direction == "NW"
    assert obs.observed_at.tzinfo is not None


def test_second_lookup_served_from_cache(respond):
    queries = respond(PAYLOAD)
    src = source()

    async def run():
        first = await src.get_weather("JFK")
        second = await src.get_weather("JFK")
        return first, second

    first, second = asyncio.run(run())
    assert queries == ["JFK"]
    assert second == first


def test_transient_failure_is_retried(respond):
    queries = respond(UpstreamUnavailable("weatherstack: 502"), PAYLOAD)
    obs = asyncio.run(source().get_weather("JFK"))
    assert obs.condition == WeatherCondition.RAIN
    assert len(queries) == 2


def test_gives_up_after_retries(respond):
    queries = respond(UpstreamUnavailable("weatherstack: timeout"))
    with pytest.raises(UpstreamUnavailable):
        asyncio.run(source(retries=3).get_weather("JFK"))
    assert len(queries) == 4


def test_usage_limit_not_retried(respond):
    queries = respond({"success": False, "error": {"code": 104, "type": "usage_limit_reached"}})
    with pytest.raises(RateLimited):
        asyncio.run(source().get_weather("JFK"))
    assert len(queries) == 1


def test_bad_key(respond):
    respond({"success": False, "error": {"code": 101, "type": "invalid_access_key"}})
    with pytest.raises(AuthenticationFailed):
        asyncio.run(source().get_weather("JFK"))


def test_missing_current_block(respond):
    respond({"request": {}})
    with pytest.raises(UpstreamUnavailable):
        asyncio.run(source(retries=0).get_weather("JFK"))
