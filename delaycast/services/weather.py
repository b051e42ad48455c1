"""Current airport weather — Weatherstack current-conditions API.

  GET http://api.weatherstack.com/current?access_key=…&query=JFK

Response shape:
  { "current": { "observation_time": "12:14 PM", "temperature": 13,
                 "weather_descriptions": ["Light rain"], "wind_speed": 11,
                 "wind_dir": "NW", "precip": 0.3, "visibility": 9 } }
or, on failure (still HTTP 200):
  { "success": false, "error": { "code": 104, "type": "usage_limit_reached" } }

observation_time is UTC, clock time only. Observations are cached per
location; transient failures are retried with linear back-off.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from delaycast.models import WeatherCondition, WeatherObservation
from delaycast.services.base import (
    AuthenticationFailed,
    BaseDataSource,
    ConfigurationError,
    RateLimited,
    UpstreamUnavailable,
)
from delaycast.utils.cache import Cache
from delaycast.utils.http import fetch_json
from delaycast.utils.ratelimit import RateLimiter
from delaycast.utils.retry import DEFAULT_BACKOFF, DEFAULT_RETRIES, with_retry
from delaycast.utils.timeutils import UTC, utcnow

WEATHERSTACK_URL = "http://api.weatherstack.com/current"

_AUTH_TYPES = frozenset({
    "invalid_access_key",
    "missing_access_key",
    "inactive_user",
    "function_access_restricted",
})
_LIMIT_TYPES = frozenset({"usage_limit_reached", "rate_limit_reached"})

# First match wins: "rain and snow" is snow, "thundery showers" is a storm
_CONDITION_KEYWORDS: tuple[tuple[WeatherCondition, tuple[str, ...]], ...] = (
    (WeatherCondition.THUNDERSTORM, ("thunder", "storm")),
    (WeatherCondition.SNOW, ("snow", "sleet", "blizzard", "ice", "hail")),
    (WeatherCondition.RAIN, ("rain", "drizzle", "shower")),
    (WeatherCondition.FOG, ("fog", "mist", "haze")),
    (WeatherCondition.CLOUDY, ("cloud", "overcast")),
    (WeatherCondition.CLEAR, ("clear", "sunny", "fair")),
)


def classify_condition(description: str) -> WeatherCondition:
    text = (description or "").lower()
    for condition, keywords in _CONDITION_KEYWORDS:
        if any(k in text for k in keywords):
            return condition
    return WeatherCondition.UNKNOWN


class WeatherDataSource(BaseDataSource[WeatherObservation]):

    def __init__(
        self,
        api_key: str,
        cache: Cache,
        *,
        limiter: RateLimiter | None = None,
        cache_ttl: float = 1800,
        retries: int = DEFAULT_RETRIES,
        backoff: float = DEFAULT_BACKOFF,
        url: str = WEATHERSTACK_URL,
    ) -> None:
        super().__init__("weather")
        if not api_key:
            raise ConfigurationError("WEATHERSTACK_API_KEY is not configured")
        self._api_key = api_key
        self._cache = cache
        self._limiter = limiter
        self._cache_ttl = cache_ttl
        self._fetch = with_retry(retries=retries, backoff=backoff)(self.get)
        self._url = url

    async def get_weather(self, location: str) -> WeatherObservation:
        """Observation for an airport code, served from cache when fresh."""
        query = location.strip().upper()
        key = f"weather:{query}"
        cached = await self._cache.get(key)
        if cached is not None:
            return WeatherObservation.from_dict(cached)

        observation = await self._fetch(query)
        await self._cache.set(key, observation.to_dict(), self._cache_ttl)
        return observation

    async def fetch_raw(self, query: str) -> Any:
        if self._limiter is not None:
            await self._limiter.acquire()
        data = await fetch_json(
            self._url,
            params={"access_key": self._api_key, "query": query},
            source="weatherstack",
        )
        if not isinstance(data, dict):
            raise UpstreamUnavailable(f"Weatherstack returned {type(data).__name__}")
        _raise_for_provider_error(data)
        return data

    def parse(self, raw: Any, query: str) -> WeatherObservation:
        current = raw.get("current")
        if not isinstance(current, dict):
            raise UpstreamUnavailable(f"Weatherstack: no current conditions for {query}")

        descriptions = current.get("weather_descriptions") or []
        description = str(descriptions[0]).strip() if descriptions else ""

        return WeatherObservation(
            airport=query,
            condition=classify_condition(description),
            description=description or "Unknown",
            observed_at=_observation_time(current.get("observation_time")),
            temperature=_float(current.get("temperature")),
            wind_speed=_float(current.get("wind_speed")),
            wind_direction=current.get("wind_dir") or None,
            precipitation=_float(current.get("precip")),
            visibility=_float(current.get("visibility")),
        )


def _raise_for_provider_error(data: dict) -> None:
    if data.get("success", True) is not False and "error" not in data:
        return
    error = data.get("error") or {}
    kind = str(error.get("type", "")) if isinstance(error, dict) else str(error)
    info = error.get("info", kind) if isinstance(error, dict) else kind
    if kind in _AUTH_TYPES:
        raise AuthenticationFailed(f"Weatherstack: {info}")
    if kind in _LIMIT_TYPES:
        raise RateLimited("weatherstack")
    raise UpstreamUnavailable(f"Weatherstack error {kind}: {info}")


def _observation_time(value: Any, now: datetime | None = None) -> datetime:
    """'12:14 PM' (UTC, today) → tz-aware datetime; falls back to *now*."""
    now = now or utcnow()
    try:
        clock = datetime.strptime(str(value).strip(), "%I:%M %p").time()
    except (TypeError, ValueError):
        return now
    observed = UTC.localize(datetime.combine(now.date(), clock))
    if observed > now:
        observed -= timedelta(days=1)
    return observed


def _float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
