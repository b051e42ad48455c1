"""
Shared pytest fixtures for DelayCast tests.

Upstream collaborators are replaced by small in-memory fakes; coroutines are
driven with asyncio.run so no async plugin is needed.
"""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta

import pytest
import pytz

from delaycast.db import create_all, create_db_engine, create_session_factory
from delaycast.models import (
    FlightPhase,
    FlightSnapshot,
    HistoricalRecord,
    WeatherCondition,
    WeatherObservation,
)
from delaycast.services.base import FlightNotFound
from delaycast.services.confidence import ConfidenceScorer
from delaycast.services.history import HistoricalStore, HistoryQuery
from delaycast.services.patterns import HistoricalPatternAnalyzer
from delaycast.services.prediction import PredictionEngine
from delaycast.utils.cache import MemoryCache

NOW = pytz.UTC.localize(datetime(2026, 10, 19, 12, 0))


def fixed_clock() -> datetime:
    return NOW


class FakeClock:
    """Monotonic-style clock the test moves by hand."""

    def __init__(self, start: float = 0.0) -> None:
        self.t = start

    def __call__(self) -> float:
        return self.t


class FakeFlights:
    def __init__(self, snapshots: dict[str, FlightSnapshot] | None = None,
                 error: Exception | None = None) -> None:
        self.snapshots = snapshots or {}
        self.error = error
        self.calls: list[str] = []

    async def get_flight(self, flight_number: str) -> FlightSnapshot:
        self.calls.append(flight_number)
        if self.error is not None:
            raise self.error
        if flight_number not in self.snapshots:
            raise FlightNotFound(flight_number)
        return self.snapshots[flight_number]


class FakeWeather:
    """Per-airport observation, exception, or (delay, observation) pair."""

    def __init__(self, by_airport: dict[str, object]) -> None:
        self.by_airport = by_airport
        self.calls: list[str] = []

    async def get_weather(self, location: str) -> WeatherObservation:
        self.calls.append(location)
        value = self.by_airport.get(location)
        if isinstance(value, tuple):
            delay, value = value
            await asyncio.sleep(delay)
        if isinstance(value, Exception):
            raise value
        if value is None:
            raise KeyError(location)
        return value


class FakeStore(HistoricalStore):
    def __init__(self, records: list[HistoricalRecord] | None = None,
                 error: Exception | None = None) -> None:
        self.records = records or []
        self.error = error
        self.queries: list[HistoryQuery] = []

    async def find(self, query: HistoryQuery) -> list[HistoricalRecord]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return [r for r in self.records if _matches(r, query)]


def _matches(r: HistoricalRecord, q: HistoryQuery) -> bool:
    if q.route is not None and r.route != q.route:
        return False
    if q.airline is not None and r.airline != q.airline:
        return False
    if q.months and r.month not in q.months:
        return False
    if q.year is not None and r.year != q.year:
        return False
    if q.since is not None and r.flight_date < q.since:
        return False
    if q.until is not None and r.flight_date > q.until:
        return False
    if q.hours and r.departure_hour not in q.hours:
        return False
    return True


def make_record(
    flight_date: date,
    delay: float,
    *,
    route: str = "ORD-JFK",
    airline: str = "UA",
    hour: int = 8,
    weather_impact: float | None = None,
    last_updated: datetime | None = None,
) -> HistoricalRecord:
    return HistoricalRecord(
        route=route,
        airline=airline,
        flight_date=flight_date,
        departure_hour=hour,
        avg_delay=delay,
        on_time_frequency=0.0 if delay > 15 else 100.0,
        total_flights=1,
        last_updated=last_updated or NOW - timedelta(days=1),
        weather_impact=weather_impact,
    )


def route_history(count: int = 120, delayed_per_five: int = 2) -> list[HistoricalRecord]:
    """*count* daily ORD-JFK records; *delayed_per_five* of every five run late."""
    today = NOW.date()
    return [
        make_record(today - timedelta(days=1 + i % 60), 30.0 if i % 5 < delayed_per_five else 5.0)
        for i in range(count)
    ]


def observation(airport: str, condition: WeatherCondition, age_minutes: int = 10) -> WeatherObservation:
    return WeatherObservation(
        airport=airport,
        condition=condition,
        description=condition.value,
        observed_at=NOW - timedelta(minutes=age_minutes),
        temperature=12.0,
        wind_speed=9.0,
        wind_direction="NW",
        precipitation=0.0,
        visibility=10.0,
    )


@pytest.fixture
def ua123() -> FlightSnapshot:
    return FlightSnapshot(
        flight_number="UA123",
        airline="UA",
        departure_airport="ORD",
        arrival_airport="JFK",
        scheduled_departure=NOW.replace(hour=8, minute=30),
        phase=FlightPhase.SCHEDULED,
        observed_at=NOW,
    )


@pytest.fixture
def store() -> FakeStore:
    return FakeStore(route_history())


@pytest.fixture
def weather() -> FakeWeather:
    return FakeWeather({
        "ORD": observation("ORD", WeatherCondition.CLEAR),
        "JFK": observation("JFK", WeatherCondition.RAIN),
    })


@pytest.fixture
def make_engine(ua123, store, weather):
    """Factory so individual tests can swap one collaborator."""
    def build(*, flights=None, weather_source=None, history=None, cache=None, deadline=20.0):
        return PredictionEngine(
            flights if flights is not None else FakeFlights({"UA123": ua123}),
            weather_source if weather_source is not None else weather,
            HistoricalPatternAnalyzer(history if history is not None else store, clock=fixed_clock),
            ConfidenceScorer(clock=fixed_clock),
            cache if cache is not None else MemoryCache(),
            cache_ttl=300,
            deadline=deadline,
            clock=fixed_clock,
        )
    return build


@pytest.fixture
def sessions(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'delaycast.db'}")
    create_all(engine)
    yield create_session_factory(engine)
    engine.dispose()
