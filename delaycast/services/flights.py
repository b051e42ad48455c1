"""Live flight state — AviationStack real-time flights API.

  GET http://api.aviationstack.com/v1/flights?access_key=…&flight_iata=UA123

Response shape: { "data": [ {...}, ... ] } or { "error": { "code": …, "message": … } }

Key fields per entry:
  flight_status   — "scheduled" | "active" | "landed" | "cancelled" | "incident" | "diverted"
  departure/arrival — { iata, scheduled, estimated, actual, delay }
  airline         — { name, iata }
  flight          — { number, iata }
  live            — { updated, altitude, speed_horizontal, speed_vertical, is_ground } or null

A flight lookup is never retried: an empty answer is authoritative.
"""

from __future__ import annotations

import re
from typing import Any

from delaycast.models import FlightPhase, FlightSnapshot
from delaycast.services.base import (
    AuthenticationFailed,
    BaseDataSource,
    ConfigurationError,
    FlightNotFound,
    NotFound,
    RateLimited,
    UpstreamUnavailable,
)
from delaycast.utils.http import fetch_json
from delaycast.utils.ratelimit import RateLimiter
from delaycast.utils.timeutils import to_utc, utcnow

AVIATIONSTACK_URL = "http://api.aviationstack.com/v1/flights"

_AUTH_CODES = frozenset({
    "invalid_access_key",
    "missing_access_key",
    "inactive_user",
    "function_access_restricted",
})
_LIMIT_CODES = frozenset({"usage_limit_reached", "rate_limit_reached"})

_STATUS_PHASE = {
    "scheduled": FlightPhase.SCHEDULED,
    "active": FlightPhase.AIRBORNE,
    "landed": FlightPhase.LANDED,
    "cancelled": FlightPhase.CANCELLED,
}

# Designator is two characters with at least one letter: "UA", "U2", "9W"
_FLIGHT_NUMBER = re.compile(r"^(?:[A-Z]{2}|[A-Z]\d|\d[A-Z])[A-Z]?\d{1,4}[A-Z]?$")


def normalize_flight_number(value: str) -> str:
    """'ua 123' → 'UA123'. Returns '' for anything that is not a flight number."""
    compact = re.sub(r"\s+", "", value or "").upper()
    return compact if _FLIGHT_NUMBER.match(compact) else ""


class FlightDataSource(BaseDataSource[FlightSnapshot]):
    """Resolve a flight number to a point-in-time FlightSnapshot."""

    def __init__(
        self,
        api_key: str,
        *,
        limiter: RateLimiter | None = None,
        url: str = AVIATIONSTACK_URL,
    ) -> None:
        super().__init__("flights")
        if not api_key:
            raise ConfigurationError("AVIATIONSTACK_API_KEY is not configured")
        self._api_key = api_key
        self._limiter = limiter
        self._url = url

    async def get_flight(self, flight_number: str) -> FlightSnapshot:
        number = normalize_flight_number(flight_number)
        if not number:
            raise FlightNotFound(flight_number)
        try:
            return await self.get(number)
        except FlightNotFound:
            raise
        except NotFound as exc:
            raise FlightNotFound(number) from exc

    async def fetch_raw(self, query: str) -> Any:
        if self._limiter is not None:
            await self._limiter.acquire()
        data = await fetch_json(
            self._url,
            params={"access_key": self._api_key, "flight_iata": query},
            source="aviationstack",
        )
        if not isinstance(data, dict):
            raise UpstreamUnavailable(f"AviationStack returned {type(data).__name__}")
        _raise_for_provider_error(data)
        return data

    def parse(self, raw: Any, query: str) -> FlightSnapshot:
        entries = raw.get("data")
        if not isinstance(entries, list):
            raise UpstreamUnavailable("AviationStack 'data' key is not a list")
        candidates = [e for e in entries if isinstance(e, dict)]
        if not candidates:
            raise FlightNotFound(query)
        # Several legs/days may match; the latest scheduled departure is the live one
        entry = max(candidates, key=_scheduled_key)
        return _parse_entry(entry, query)


def _raise_for_provider_error(data: dict) -> None:
    error = data.get("error")
    if not error:
        return
    code = str(error.get("code", "")) if isinstance(error, dict) else str(error)
    message = error.get("message", code) if isinstance(error, dict) else code
    if code in _AUTH_CODES:
        raise AuthenticationFailed(f"AviationStack: {message}")
    if code in _LIMIT_CODES:
        raise RateLimited("aviationstack")
    raise UpstreamUnavailable(f"AviationStack error {code}: {message}")


def _scheduled_key(entry: dict) -> str:
    return str((entry.get("departure") or {}).get("scheduled") or "")


def _parse_entry(entry: dict, query: str) -> FlightSnapshot:
    dep = entry.get("departure") or {}
    arr = entry.get("arrival") or {}
    live = entry.get("live") or {}

    scheduled = to_utc(dep.get("scheduled"))
    if scheduled is None:
        raise ValueError(f"{query}: missing scheduled departure")
    dep_code = (dep.get("iata") or "").strip().upper()
    arr_code = (arr.get("iata") or "").strip().upper()
    if not dep_code or not arr_code:
        raise ValueError(f"{query}: missing airport codes")

    airline = ((entry.get("airline") or {}).get("iata") or query[:2]).strip().upper()
    number = ((entry.get("flight") or {}).get("iata") or query).strip().upper()

    phase = _STATUS_PHASE.get((entry.get("flight_status") or "").lower(), FlightPhase.UNKNOWN)
    if live and live.get("is_ground"):
        phase = FlightPhase.GROUND

    delay = max(_int(dep.get("delay")), _int(arr.get("delay")))

    return FlightSnapshot(
        flight_number=number,
        airline=airline,
        departure_airport=dep_code,
        arrival_airport=arr_code,
        scheduled_departure=scheduled,
        scheduled_arrival=to_utc(arr.get("scheduled")),
        estimated_departure=to_utc(dep.get("estimated")),
        estimated_arrival=to_utc(arr.get("estimated")),
        phase=phase,
        altitude=_float(live.get("altitude")),
        vertical_rate=_float(live.get("speed_vertical")),
        velocity=_float(live.get("speed_horizontal")),
        delay_minutes=max(delay, 0),
        observed_at=to_utc(live.get("updated")) or utcnow(),
    )


def _int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
