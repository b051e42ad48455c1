"""Prediction pipeline — orchestrates fetch → analyse → score → cache.

One public coroutine:
  get_prediction(flight_number) → PredictionResult

The flight lookup is mandatory. Weather at both airports and the historical
analysis run concurrently afterwards; any of them failing, or still running
at the deadline, is replaced by a neutral default and recorded in
``details.degraded``.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable

from delaycast.models import (
    ConfidenceResult,
    FlightSnapshot,
    HistoricalQuality,
    PatternAnalysis,
    PredictionDetails,
    PredictionFactors,
    PredictionResult,
    PredictionState,
    ResultSource,
    WeatherCondition,
    WeatherObservation,
    WeatherQuality,
)
from delaycast.services.base import (
    AuthenticationFailed,
    ConfigurationError,
    DataSourceError,
    FlightNotFound,
    RateLimited,
)
from delaycast.services.confidence import ConfidenceScorer
from delaycast.services.flights import FlightDataSource, normalize_flight_number
from delaycast.services.patterns import HistoricalPatternAnalyzer
from delaycast.services.weather import WeatherDataSource
from delaycast.utils.cache import Cache
from delaycast.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

WEIGHTS = {
    "weather": 0.35,
    "historical": 0.30,
    "time_of_day": 0.20,
    "congestion": 0.15,
}

CONDITION_SCORES = {
    WeatherCondition.CLEAR: 0.0,
    WeatherCondition.CLOUDY: 0.2,
    WeatherCondition.RAIN: 0.5,
    WeatherCondition.SNOW: 0.8,
    WeatherCondition.THUNDERSTORM: 0.9,
    WeatherCondition.FOG: 0.7,
}
UNKNOWN_CONDITION_SCORE = 0.5
DEPARTURE_WEATHER_WEIGHT = 0.4
ARRIVAL_WEATHER_WEIGHT = 0.6

PEAK_WINDOWS = {
    "morning": (7, 9),
    "evening": (16, 19),
}
PEAK_SCORE = 0.8
OFF_PEAK_SCORE = 0.2

# No real-time congestion feed yet; every airport is treated as average
CONGESTION_PLACEHOLDER = 0.5

# (probability below, delay minutes); anything higher gets MAX_DELAY_MINUTES
DELAY_BUCKETS = ((30, 0), (50, 15), (70, 30), (85, 45))
MAX_DELAY_MINUTES = 60

CACHE_KEY = "prediction:{}"
STALE_WEATHER_SECONDS = 3600.0


class PredictionUnavailable(Exception):
    """The mandatory flight lookup failed for a reason other than not-found."""


# ---------------------------------------------------------------------------
# Scoring rules
# ---------------------------------------------------------------------------


def condition_score(condition: WeatherCondition | str | None) -> float:
    try:
        key = WeatherCondition(condition) if condition is not None else None
    except ValueError:
        return UNKNOWN_CONDITION_SCORE
    return CONDITION_SCORES.get(key, UNKNOWN_CONDITION_SCORE)


def weather_impact(
    departure: WeatherCondition | str | None,
    arrival: WeatherCondition | str | None,
) -> float:
    """Arrival weather dominates gate and runway delay, so it weighs more."""
    return (
        condition_score(departure) * DEPARTURE_WEATHER_WEIGHT
        + condition_score(arrival) * ARRIVAL_WEATHER_WEIGHT
    )


def peak_window(hour: int) -> str | None:
    for name, (start, end) in PEAK_WINDOWS.items():
        if start <= hour <= end:
            return name
    return None


def time_impact(hour: int) -> float:
    return PEAK_SCORE if peak_window(hour) else OFF_PEAK_SCORE


def combine_probability(factors: PredictionFactors) -> int:
    # The ×100 applies to the whole weighted sum, not just the last term
    weighted = (
        factors.weather * WEIGHTS["weather"]
        + factors.historical * WEIGHTS["historical"]
        + factors.time_of_day * WEIGHTS["time_of_day"]
        + factors.congestion * WEIGHTS["congestion"]
    )
    return max(0, min(100, round(weighted * 100)))


def estimate_delay(probability: int) -> int:
    for upper, minutes in DELAY_BUCKETS:
        if probability < upper:
            return minutes
    return MAX_DELAY_MINUTES


def weather_quality(
    departure: WeatherObservation | None,
    arrival: WeatherObservation | None,
    now: datetime,
) -> WeatherQuality:
    observed = [w for w in (departure, arrival) if w is not None]
    if not observed:
        return WeatherQuality(
            forecast_age_seconds=STALE_WEATHER_SECONDS, stability=0.5, stations=0, trend="unknown",
        )

    severities = [condition_score(w.condition) for w in observed]
    if len(observed) < 2:
        trend = "unknown"
    elif departure.condition == arrival.condition:
        trend = "stable"
    else:
        trend = "changing"

    return WeatherQuality(
        forecast_age_seconds=max(w.age_seconds(now) for w in observed),
        stability=1 - sum(severities) / len(severities),
        stations=len(observed),
        trend=trend,
    )


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class PredictionEngine:

    def __init__(
        self,
        flights: FlightDataSource,
        weather: WeatherDataSource,
        analyzer: HistoricalPatternAnalyzer,
        scorer: ConfidenceScorer,
        cache: Cache,
        *,
        cache_ttl: float = 300,
        deadline: float = 20.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._flights = flights
        self._weather = weather
        self._analyzer = analyzer
        self._scorer = scorer
        self._cache = cache
        self._cache_ttl = cache_ttl
        self._deadline = deadline
        self._clock = clock

    async def get_prediction(self, flight_number: str) -> PredictionResult:
        number = normalize_flight_number(flight_number) or flight_number.strip().upper()
        self._trace(number, PredictionState.PENDING)
        key = CACHE_KEY.format(number)

        cached = await self._cache.get(key)
        if cached is not None:
            logger.info("%s: served from cache", number)
            return PredictionResult.from_dict(cached, source=ResultSource.CACHE)

        loop = asyncio.get_running_loop()
        started = loop.time()

        self._trace(number, PredictionState.FETCHING_FLIGHT)
        flight = await self._fetch_flight(number)

        self._trace(number, PredictionState.FETCHING_WEATHER_AND_HISTORY)
        remaining = self._deadline - (loop.time() - started)
        departure, arrival, analysis, degraded = await self._gather_inputs(flight, remaining)

        self._trace(number, PredictionState.SCORING)
        result = self._score(flight, departure, arrival, analysis, degraded)

        await self._cache.set(key, result.to_dict(), self._cache_ttl)
        self._trace(number, PredictionState.CACHED)

        if degraded:
            logger.warning("%s: degraded prediction (%s)", number, "; ".join(degraded))
        self._trace(number, result.state)
        return result

    # ── Stages ───────────────────────────────────────────────────────────────

    async def _fetch_flight(self, number: str) -> FlightSnapshot:
        try:
            return await asyncio.wait_for(self._flights.get_flight(number), self._deadline)
        except FlightNotFound:
            self._trace(number, PredictionState.FAILED)
            logger.info("%s: flight not found", number)
            raise
        except (RateLimited, AuthenticationFailed, ConfigurationError):
            self._trace(number, PredictionState.FAILED)
            raise
        except asyncio.TimeoutError as exc:
            self._trace(number, PredictionState.FAILED)
            raise PredictionUnavailable(f"{number}: flight lookup timed out") from exc
        except DataSourceError as exc:
            self._trace(number, PredictionState.FAILED)
            raise PredictionUnavailable(f"{number}: flight lookup failed ({exc})") from exc

    async def _gather_inputs(
        self, flight: FlightSnapshot, timeout: float,
    ) -> tuple[WeatherObservation | None, WeatherObservation | None, PatternAnalysis, list[str]]:
        tasks = {
            "departure weather": asyncio.create_task(
                self._weather.get_weather(flight.departure_airport)
            ),
            "arrival weather": asyncio.create_task(
                self._weather.get_weather(flight.arrival_airport)
            ),
            "history": asyncio.create_task(
                self._analyzer.analyze_patterns(
                    flight.departure_airport,
                    flight.arrival_airport,
                    flight.scheduled_departure,
                    flight.airline,
                )
            ),
        }
        _, pending = await asyncio.wait(tasks.values(), timeout=max(timeout, 0))
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        degraded: list[str] = []
        departure = _unpack(tasks["departure weather"], "departure weather", degraded)
        arrival = _unpack(tasks["arrival weather"], "arrival weather", degraded)
        analysis = _unpack(tasks["history"], "history", degraded) or PatternAnalysis.neutral()
        return departure, arrival, analysis, degraded

    def _score(
        self,
        flight: FlightSnapshot,
        departure: WeatherObservation | None,
        arrival: WeatherObservation | None,
        analysis: PatternAnalysis,
        degraded: list[str],
    ) -> PredictionResult:
        now = self._clock()
        dep_condition = departure.condition if departure else WeatherCondition.UNKNOWN
        arr_condition = arrival.condition if arrival else WeatherCondition.UNKNOWN
        hour = flight.scheduled_departure.hour

        factors = PredictionFactors(
            weather=weather_impact(dep_condition, arr_condition),
            historical=analysis.scores.route,
            time_of_day=time_impact(hour),
            congestion=CONGESTION_PLACEHOLDER,
        )
        probability = combine_probability(factors)

        scored = self._scorer.calculate_confidence(
            historical_data=HistoricalQuality.from_analysis(analysis),
            weather_data=weather_quality(departure, arrival, now),
            prediction_factors=factors,
            flight_data=flight,
        )

        return PredictionResult(
            flight_number=flight.flight_number,
            probability=probability,
            delay=estimate_delay(probability),
            confidence=max(0, min(100, scored.confidence)),
            factors=factors,
            details=PredictionDetails(
                departure_condition=dep_condition.value,
                arrival_condition=arr_condition.value,
                scheduled_hour=hour,
                peak_window=peak_window(hour),
                route_reliability=analysis.scores.route,
                route_flights=analysis.route.total_flights,
                historical_confidence=analysis.confidence,
                degraded=tuple(degraded),
            ),
            updated_at=now,
            confidence_detail=_confidence_detail(scored),
            state=PredictionState.DEGRADED if degraded else PredictionState.RETURNED,
            source=ResultSource.API,
        )

    @staticmethod
    def _trace(number: str, state: PredictionState) -> None:
        logger.debug("%s → %s", number, state.value)


def _unpack(task: asyncio.Task, label: str, degraded: list[str]) -> Any:
    """Unwrap a finished or cancelled task. Returns None and notes why on failure."""
    if task.cancelled():
        logger.warning("%s: deadline exceeded", label)
        degraded.append(f"{label}: deadline exceeded")
        return None
    exc = task.exception()
    if exc is not None:
        logger.error("%s failed: %s", label, exc)
        degraded.append(f"{label}: {exc}")
        return None
    return task.result()


def _confidence_detail(scored: ConfidenceResult) -> dict[str, Any]:
    meta = scored.metadata
    detail: dict[str, Any] = {
        "warnings": list(meta.warnings),
        "strengths": list(meta.strengths),
        "factors": (
            {k: round(v, 1) for k, v in scored.factors.as_dict().items()}
            if scored.factors else None
        ),
    }
    if meta.warning:
        detail["warning"] = meta.warning
    if meta.error:
        detail["error"] = meta.error
    return detail
