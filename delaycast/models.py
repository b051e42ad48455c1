"""Domain models — pure dataclasses, no framework dependencies."""

from __future__ import annotations

import copy
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any


class FlightPhase(str, Enum):
    SCHEDULED = "scheduled"
    GROUND = "ground"
    AIRBORNE = "airborne"
    LANDED = "landed"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class WeatherCondition(str, Enum):
    CLEAR = "Clear"
    CLOUDY = "Cloudy"
    RAIN = "Rain"
    SNOW = "Snow"
    THUNDERSTORM = "Thunderstorm"
    FOG = "Fog"
    UNKNOWN = "Unknown"


class ResultSource(str, Enum):
    API = "api"
    CACHE = "cache"


class PredictionState(str, Enum):
    PENDING = "pending"
    FETCHING_FLIGHT = "fetching_flight"
    FETCHING_WEATHER_AND_HISTORY = "fetching_weather_and_history"
    SCORING = "scoring"
    CACHED = "cached"
    RETURNED = "returned"
    DEGRADED = "degraded"
    FAILED = "failed"


# ── Upstream records ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class FlightSnapshot:
    flight_number: str               # carrier + number, e.g. "UA123"
    airline: str                     # carrier IATA code
    departure_airport: str
    arrival_airport: str
    scheduled_departure: datetime    # tz-aware, UTC
    scheduled_arrival: datetime | None = None
    estimated_departure: datetime | None = None
    estimated_arrival: datetime | None = None
    phase: FlightPhase = FlightPhase.UNKNOWN
    altitude: float | None = None        # metres
    vertical_rate: float | None = None   # m/s
    velocity: float | None = None        # km/h
    delay_minutes: int = 0
    observed_at: datetime | None = None

    @property
    def route(self) -> str:
        return f"{self.departure_airport}-{self.arrival_airport}"

    @property
    def is_airborne(self) -> bool:
        return self.phase == FlightPhase.AIRBORNE


@dataclass(frozen=True)
class WeatherObservation:
    airport: str
    condition: WeatherCondition
    description: str                 # provider's short-form text, e.g. "Light rain"
    observed_at: datetime            # tz-aware, UTC
    temperature: float | None = None
    wind_speed: float | None = None
    wind_direction: str | None = None
    precipitation: float | None = None
    visibility: float | None = None

    def age_seconds(self, now: datetime) -> float:
        return max(0.0, (now - self.observed_at).total_seconds())

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["condition"] = self.condition.value
        data["observed_at"] = self.observed_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WeatherObservation:
        values = dict(data)
        values["condition"] = WeatherCondition(values["condition"])
        values["observed_at"] = datetime.fromisoformat(values["observed_at"])
        return cls(**values)


@dataclass(frozen=True)
class DelayCauses:
    """Minutes of delay attributed to each BTS cause category."""

    weather: float = 0.0
    carrier: float = 0.0
    nas: float = 0.0
    security: float = 0.0
    late_aircraft: float = 0.0


@dataclass(frozen=True)
class HistoricalRecord:
    route: str                       # "JFK-LAX"
    airline: str
    flight_date: date
    departure_hour: int
    avg_delay: float                 # minutes
    on_time_frequency: float         # percent of flights on time
    total_flights: int
    last_updated: datetime
    causes: DelayCauses = field(default_factory=DelayCauses)
    # Window-specific secondary signals; absent means "no signal" (factor 1)
    congestion: float | None = None
    equipment_issues: float | None = None
    peak_factor: float | None = None
    weather_impact: float | None = None

    @property
    def month(self) -> int:
        return self.flight_date.month

    @property
    def year(self) -> int:
        return self.flight_date.year


# ── Historical pattern analysis ──────────────────────────────────────────────

@dataclass(frozen=True)
class PatternPoint:
    date: date
    delay: float
    factor: float


@dataclass(frozen=True)
class PatternWindow:
    pattern: tuple[PatternPoint, ...] = ()
    total_flights: int = 0
    last_updated: datetime | None = None
    reliability: float = 0.0


@dataclass(frozen=True)
class PatternScores:
    route: float = 0.5
    airline: float = 0.5
    time: float = 0.5
    seasonal: float = 0.5


@dataclass(frozen=True)
class PatternAnalysis:
    scores: PatternScores
    confidence: int
    route: PatternWindow
    airline: PatternWindow
    time: PatternWindow
    seasonal: PatternWindow
    # Seasonal trust signals; None when there is too little data to judge
    seasonal_correlations: tuple[float, ...] | None = None
    seasonal_variability: float | None = None
    year_over_year_stability: float | None = None

    @classmethod
    def neutral(cls) -> PatternAnalysis:
        empty = PatternWindow()
        return cls(
            scores=PatternScores(),
            confidence=0,
            route=empty,
            airline=empty,
            time=empty,
            seasonal=empty,
        )

    @property
    def last_updated(self) -> datetime | None:
        stamps = [
            w.last_updated
            for w in (self.route, self.airline, self.time)
            if w.last_updated is not None
        ]
        return max(stamps) if stamps else None


# ── Confidence scoring ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class HistoricalQuality:
    route_points: int
    airline_points: int
    seasonal_points: int
    last_updated: datetime | None
    seasonal_correlations: tuple[float, ...] | None = None
    seasonal_variability: float | None = None
    year_over_year_stability: float | None = None

    @classmethod
    def from_analysis(cls, analysis: PatternAnalysis) -> HistoricalQuality:
        return cls(
            route_points=analysis.route.total_flights,
            airline_points=analysis.airline.total_flights,
            seasonal_points=analysis.seasonal.total_flights,
            last_updated=analysis.last_updated,
            seasonal_correlations=analysis.seasonal_correlations,
            seasonal_variability=analysis.seasonal_variability,
            year_over_year_stability=analysis.year_over_year_stability,
        )


@dataclass(frozen=True)
class WeatherQuality:
    forecast_age_seconds: float
    stability: float                 # 0..1
    stations: int
    trend: str                       # "stable" | "changing" | anything else


@dataclass(frozen=True)
class ConfidenceFactors:
    data_quality: float
    prediction_stability: float
    weather_confidence: float
    seasonal_confidence: float

    def as_dict(self) -> dict[str, float]:
        return {
            "dataQuality": self.data_quality,
            "predictionStability": self.prediction_stability,
            "weatherConfidence": self.weather_confidence,
            "seasonalConfidence": self.seasonal_confidence,
        }


@dataclass
class ConfidenceMetadata:
    timestamp: datetime
    warnings: list[str] = field(default_factory=list)
    strengths: list[str] = field(default_factory=list)
    warning: str | None = None
    error: str | None = None


@dataclass
class ConfidenceResult:
    confidence: int
    metadata: ConfidenceMetadata
    factors: ConfidenceFactors | None = None

    @property
    def is_fallback(self) -> bool:
        return self.factors is None


# ── Prediction output ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PredictionFactors:
    weather: float
    historical: float
    time_of_day: float
    congestion: float


@dataclass(frozen=True)
class PredictionDetails:
    departure_condition: str
    arrival_condition: str
    scheduled_hour: int
    peak_window: str | None          # "morning" | "evening" | None
    route_reliability: float
    route_flights: int
    historical_confidence: int
    degraded: tuple[str, ...] = ()


@dataclass
class PredictionResult:
    flight_number: str
    probability: int                 # 0..100
    delay: int                       # minutes, >= 0
    confidence: int                  # 0..100
    factors: PredictionFactors
    details: PredictionDetails
    updated_at: datetime
    confidence_detail: dict[str, Any] = field(default_factory=dict)
    state: PredictionState = PredictionState.RETURNED
    source: ResultSource = ResultSource.API

    @property
    def is_degraded(self) -> bool:
        return bool(self.details.degraded)

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible form, as stored in the cache (no ``source``)."""
        return {
            "flight_number": self.flight_number,
            "probability": self.probability,
            "delay": self.delay,
            "confidence": self.confidence,
            "factors": asdict(self.factors),
            "details": {**asdict(self.details), "degraded": list(self.details.degraded)},
            "confidence_detail": copy.deepcopy(self.confidence_detail),
            "updated_at": self.updated_at.isoformat(),
            "state": self.state.value,
        }

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], source: ResultSource = ResultSource.CACHE
    ) -> PredictionResult:
        details = dict(data["details"])
        details["degraded"] = tuple(details.get("degraded") or ())
        return cls(
            flight_number=data["flight_number"],
            probability=int(data["probability"]),
            delay=int(data["delay"]),
            confidence=int(data["confidence"]),
            factors=PredictionFactors(**data["factors"]),
            details=PredictionDetails(**details),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            confidence_detail=copy.deepcopy(data.get("confidence_detail") or {}),
            state=PredictionState(data.get("state", PredictionState.RETURNED.value)),
            source=source,
        )
