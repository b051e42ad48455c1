"""Historical pattern analysis across four overlapping windows.

  route     — same route, last 90 days              factor: congestion
  airline   — same carrier, last 30 days            factor: equipment issues
  time      — same route, departure hour ±1, 30 days factor: peak-hour factor
  seasonal  — same route, adjacent months, any year factor: weather impact

Each window is reduced to a reliability in [0, 1] (share of records at most
15 minutes late). A window with no records scores a neutral 0.5.
"""

from __future__ import annotations

import asyncio
import logging
import statistics
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Callable, Iterable

from delaycast.models import (
    HistoricalRecord,
    PatternAnalysis,
    PatternPoint,
    PatternScores,
    PatternWindow,
)
from delaycast.services.history import HistoricalStore, HistoryQuery
from delaycast.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

DELAY_THRESHOLD_MINUTES = 15
NEUTRAL_SCORE = 0.5

ROUTE_WINDOW_DAYS = 90
AIRLINE_WINDOW_DAYS = 30
TIME_WINDOW_DAYS = 30
HOUR_SPREAD = 1
SEASONAL_RECENT_RECORDS = 30

# Sample sizes at which a dimension stops limiting confidence
ROUTE_FULL_SAMPLE = 100
AIRLINE_FULL_SAMPLE = 50
TIME_FULL_SAMPLE = 30
MAX_CONFIDENCE = 90
STALE_AFTER_DAYS = 90
MIN_AGE_WEIGHT = 0.5

_FACTOR_FIELD = {
    "route": "congestion",
    "airline": "equipment_issues",
    "time": "peak_factor",
    "seasonal": "weather_impact",
}


class HistoricalAnalysisError(Exception):
    def __init__(self) -> None:
        super().__init__("Unable to analyze historical patterns")


class HistoricalPatternAnalyzer:

    def __init__(
        self,
        store: HistoricalStore,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._clock = clock

    async def analyze_patterns(
        self,
        departure_airport: str,
        arrival_airport: str,
        scheduled_time: datetime,
        airline: str,
    ) -> PatternAnalysis:
        """Query all four windows concurrently and score them.

        Raises HistoricalAnalysisError if any query fails; a partial set of
        windows is never scored.
        """
        route = f"{departure_airport}-{arrival_airport}"
        today = self._clock().date()
        hour = scheduled_time.hour

        queries = (
            HistoryQuery(route=route, since=today - timedelta(days=ROUTE_WINDOW_DAYS)),
            HistoryQuery(airline=airline, since=today - timedelta(days=AIRLINE_WINDOW_DAYS)),
            HistoryQuery(
                route=route,
                since=today - timedelta(days=TIME_WINDOW_DAYS),
                hours=adjacent_hours(hour),
            ),
            HistoryQuery(route=route, months=adjacent_months(scheduled_time.month)),
        )

        try:
            route_rows, airline_rows, time_rows, seasonal_rows = await asyncio.gather(
                *(self._store.find(q) for q in queries)
            )
        except Exception as exc:
            logger.exception("pattern analysis for %s/%s failed", route, airline)
            raise HistoricalAnalysisError() from exc

        route_w = summarize(route_rows, "route")
        airline_w = summarize(airline_rows, "airline")
        time_w = summarize(time_rows, "time")
        seasonal_w = summarize(seasonal_rows, "seasonal")

        scores = PatternScores(
            route=window_score(route_w),
            airline=window_score(airline_w),
            time=window_score(time_w),
            seasonal=seasonal_score(seasonal_w),
        )
        newest = [w.last_updated for w in (route_w, airline_w, time_w) if w.last_updated]
        confidence = pattern_confidence(
            route_points=route_w.total_flights,
            airline_points=airline_w.total_flights,
            time_points=time_w.total_flights,
            last_updated=max(newest) if newest else None,
            now=self._clock(),
        )

        logger.info(
            "%s/%s patterns: route=%.2f(%d) airline=%.2f(%d) time=%.2f(%d) seasonal=%.2f(%d) conf=%d",
            route, airline,
            scores.route, route_w.total_flights,
            scores.airline, airline_w.total_flights,
            scores.time, time_w.total_flights,
            scores.seasonal, seasonal_w.total_flights,
            confidence,
        )

        return PatternAnalysis(
            scores=scores,
            confidence=confidence,
            route=route_w,
            airline=airline_w,
            time=time_w,
            seasonal=seasonal_w,
            seasonal_correlations=seasonal_correlations(seasonal_rows),
            seasonal_variability=seasonal_variability(seasonal_rows),
            year_over_year_stability=year_over_year_stability(seasonal_rows),
        )


# ---------------------------------------------------------------------------
# Window reduction
# ---------------------------------------------------------------------------


def adjacent_months(month: int) -> tuple[int, ...]:
    """Calendar neighbours, wrapping December ↔ January."""
    return ((month - 2) % 12 + 1, month, month % 12 + 1)


def adjacent_hours(hour: int) -> tuple[int, ...]:
    """Departure hour ±HOUR_SPREAD, wrapping across midnight."""
    return tuple((hour + offset) % 24 for offset in range(-HOUR_SPREAD, HOUR_SPREAD + 1))


def summarize(records: Iterable[HistoricalRecord], kind: str) -> PatternWindow:
    rows = sorted(records, key=lambda r: (r.flight_date, r.departure_hour))
    if not rows:
        return PatternWindow()
    pattern = tuple(
        PatternPoint(date=r.flight_date, delay=r.avg_delay, factor=_factor(r, kind))
        for r in rows
    )
    return PatternWindow(
        pattern=pattern,
        total_flights=len(rows),
        last_updated=max(r.last_updated for r in rows),
        reliability=reliability(pattern),
    )


def reliability(pattern: tuple[PatternPoint, ...]) -> float:
    if not pattern:
        return 0.0
    delayed = sum(1 for p in pattern if p.delay > DELAY_THRESHOLD_MINUTES)
    return 1 - delayed / len(pattern)


def window_score(window: PatternWindow) -> float:
    if not window.total_flights:
        return NEUTRAL_SCORE
    return window.reliability


def seasonal_score(window: PatternWindow) -> float:
    """Reliability over the most recent records only; seasons drift."""
    if not window.pattern:
        return NEUTRAL_SCORE
    return reliability(window.pattern[-SEASONAL_RECENT_RECORDS:])


def pattern_confidence(
    *,
    route_points: int,
    airline_points: int,
    time_points: int,
    last_updated: datetime | None,
    now: datetime,
) -> int:
    """Multiplicative penalty model: any starved dimension caps the result."""
    confidence = float(MAX_CONFIDENCE)
    confidence *= min(route_points / ROUTE_FULL_SAMPLE, 1)
    confidence *= min(airline_points / AIRLINE_FULL_SAMPLE, 1)
    confidence *= min(time_points / TIME_FULL_SAMPLE, 1)

    if last_updated is None:
        age_weight = MIN_AGE_WEIGHT
    else:
        age_days = (now - last_updated).total_seconds() / 86400
        age_weight = max(MIN_AGE_WEIGHT, 1 - age_days / STALE_AFTER_DAYS)
    confidence *= min(age_weight, 1.0)

    return max(0, min(100, round(confidence)))


def _factor(record: HistoricalRecord, kind: str) -> float:
    value = getattr(record, _FACTOR_FIELD[kind])
    return float(value) if value is not None else 1.0


# ---------------------------------------------------------------------------
# Seasonal trust signals
# ---------------------------------------------------------------------------


def _delay_rate(records: list[HistoricalRecord]) -> float:
    return sum(1 for r in records if r.avg_delay > DELAY_THRESHOLD_MINUTES) / len(records)


def seasonal_correlations(records: list[HistoricalRecord]) -> tuple[float, ...] | None:
    """|Pearson r| between weather impact and delay, one value per year."""
    by_year: dict[int, list[HistoricalRecord]] = defaultdict(list)
    for r in records:
        if r.weather_impact is not None:
            by_year[r.year].append(r)

    strengths: list[float] = []
    for year in sorted(by_year):
        rows = by_year[year]
        if len(rows) < 3:
            continue
        try:
            r = statistics.correlation(
                [x.weather_impact for x in rows], [x.avg_delay for x in rows]
            )
        except statistics.StatisticsError:
            continue   # constant series
        strengths.append(abs(r))
    return tuple(strengths) or None


def seasonal_variability(records: list[HistoricalRecord]) -> float | None:
    """Spread of month-by-month delay rates, scaled to [0, 1]."""
    by_month: dict[tuple[int, int], list[HistoricalRecord]] = defaultdict(list)
    for r in records:
        by_month[(r.year, r.month)].append(r)
    if len(by_month) < 2:
        return None
    rates = [_delay_rate(rows) for rows in by_month.values()]
    # a rate's population stdev cannot exceed 0.5
    return min(1.0, 2 * statistics.pstdev(rates))


def year_over_year_stability(records: list[HistoricalRecord]) -> float | None:
    by_year: dict[int, list[HistoricalRecord]] = defaultdict(list)
    for r in records:
        by_year[r.year].append(r)
    if len(by_year) < 2:
        return None
    latest, previous = sorted(by_year)[-1], sorted(by_year)[-2]
    return 1 - abs(_delay_rate(by_year[latest]) - _delay_rate(by_year[previous]))
