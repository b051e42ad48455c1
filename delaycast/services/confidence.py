"""Confidence scoring: how far the available data supports a prediction.

Four sub-scores are computed in [0, 1], scaled to 0–100, and only then
combined with the fixed weights below. Every value that leaves this module
is on the 0–100 scale.

Confidence is advisory. Any fault while scoring yields a conservative 50
with a warning instead of an exception.
"""

from __future__ import annotations

import logging
import math
import statistics
from datetime import datetime
from typing import Callable, Mapping

from delaycast.models import (
    ConfidenceFactors,
    ConfidenceMetadata,
    ConfidenceResult,
    FlightSnapshot,
    HistoricalQuality,
    PredictionFactors,
    WeatherQuality,
)
from delaycast.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_WEIGHTS: Mapping[str, float] = {
    "dataQuality": 0.35,
    "predictionStability": 0.25,
    "weatherConfidence": 0.25,
    "seasonalConfidence": 0.15,
}

MINIMUM_DATA_POINTS = {
    "route": 50,
    "airline": 100,
    "seasonal": 90,
}

FALLBACK_CONFIDENCE = 50
WARNING_BELOW = 60
STRENGTH_ABOVE = 80

FRESHNESS_DAYS = 90
FORECAST_FRESHNESS_SECONDS = 3600
FULL_STATION_COVERAGE = 3
TREND_SCORES = {"stable": 1.0, "changing": 0.7}
UNKNOWN_TREND_SCORE = 0.4
NEUTRAL = 0.5


class ScoringError(Exception):
    """Internal arithmetic or logic fault while scoring."""


class ConfidenceScorer:

    def __init__(
        self,
        weights: Mapping[str, float] | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.weights = dict(weights or DEFAULT_WEIGHTS)
        if set(self.weights) != set(DEFAULT_WEIGHTS):
            raise ValueError(f"confidence weights must be exactly {sorted(DEFAULT_WEIGHTS)}")
        total = sum(self.weights.values())
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"confidence weights must sum to 1.0, got {total}")
        self._clock = clock

    def calculate_confidence(
        self,
        *,
        historical_data: HistoricalQuality,
        weather_data: WeatherQuality,
        prediction_factors: PredictionFactors,
        flight_data: FlightSnapshot | None = None,
    ) -> ConfidenceResult:
        now = self._clock()
        try:
            factors = ConfidenceFactors(
                data_quality=self.assess_data_quality(historical_data, now),
                prediction_stability=self.assess_prediction_stability(prediction_factors),
                weather_confidence=self.assess_weather_confidence(weather_data),
                seasonal_confidence=self.assess_seasonal_confidence(historical_data),
            )
            scores = factors.as_dict()
            for name, value in scores.items():
                if not math.isfinite(value):
                    raise ScoringError(f"{name} is not a finite number: {value!r}")

            total = sum(self.weights[name] * value for name, value in scores.items())
            confidence = max(0, min(100, round(total)))
            metadata = self.generate_metadata(scores, now)
        except Exception as exc:
            label = flight_data.flight_number if flight_data else "-"
            logger.exception("confidence calculation failed for %s", label)
            return ConfidenceResult(
                confidence=FALLBACK_CONFIDENCE,
                metadata=ConfidenceMetadata(
                    timestamp=now,
                    warning="Confidence calculation error, returning conservative estimate",
                    error=str(exc),
                ),
            )

        return ConfidenceResult(confidence=confidence, metadata=metadata, factors=factors)

    # ── Sub-scores (each returns 0–100) ──────────────────────────────────────

    def assess_data_quality(self, data: HistoricalQuality, now: datetime) -> float:
        route = min(data.route_points / MINIMUM_DATA_POINTS["route"], 1)
        airline = min(data.airline_points / MINIMUM_DATA_POINTS["airline"], 1)
        seasonal = min(data.seasonal_points / MINIMUM_DATA_POINTS["seasonal"], 1)

        if data.last_updated is None:
            freshness = 0.0
        else:
            age_days = (now - data.last_updated).total_seconds() / 86400
            freshness = max(0.0, 1 - age_days / FRESHNESS_DAYS)
        freshness = min(freshness, 1.0)

        return (route * 0.4 + airline * 0.3 + seasonal * 0.2 + freshness * 0.1) * 100

    def assess_prediction_stability(self, factors: PredictionFactors) -> float:
        values = [factors.weather, factors.historical, factors.time_of_day, factors.congestion]

        extremes = sum(1 for v in values if v > 0.9 or v < 0.1)
        extreme_penalty = extremes * 0.1
        variance_penalty = min(statistics.pvariance(values) * 2, 0.3)

        return max(0.0, 1 - extreme_penalty - variance_penalty) * 100

    def assess_weather_confidence(self, data: WeatherQuality) -> float:
        freshness = max(0.0, 1 - data.forecast_age_seconds / FORECAST_FRESHNESS_SECONDS)
        stability = min(max(data.stability, 0.0), 1.0)
        coverage = min(data.stations / FULL_STATION_COVERAGE, 1)
        trend = TREND_SCORES.get(data.trend, UNKNOWN_TREND_SCORE)

        return (freshness * 0.4 + stability * 0.3 + coverage * 0.2 + trend * 0.1) * 100

    def assess_seasonal_confidence(self, data: HistoricalQuality) -> float:
        if data.seasonal_correlations:
            strength = statistics.fmean(data.seasonal_correlations)
        else:
            strength = NEUTRAL
        variability = NEUTRAL if data.seasonal_variability is None else data.seasonal_variability
        yoy = NEUTRAL if data.year_over_year_stability is None else data.year_over_year_stability

        return (strength * 0.4 + (1 - variability) * 0.3 + yoy * 0.3) * 100

    # ── Metadata ─────────────────────────────────────────────────────────────

    @staticmethod
    def generate_metadata(scores: Mapping[str, float], now: datetime) -> ConfidenceMetadata:
        metadata = ConfidenceMetadata(timestamp=now)
        for name, score in scores.items():
            if score < WARNING_BELOW:
                metadata.warnings.append(f"Low {name} score: {round(score)}%")
            elif score > STRENGTH_ABOVE:
                metadata.strengths.append(f"Strong {name}: {round(score)}%")
        return metadata
