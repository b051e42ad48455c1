"""Historical delay records — read side for the pattern analyzer.

Rows live in ``historical_delays`` and are upserted by the BTS batch loader.
Queries run on a worker thread so several can be in flight at once.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from delaycast.db import HistoricalDelay
from delaycast.models import DelayCauses, HistoricalRecord
from delaycast.services.base import UpstreamUnavailable
from delaycast.utils.timeutils import to_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoryQuery:
    """Any combination of filters; unset fields do not constrain the result.

    Supported shapes:
      route + months + year       (monthly statistics)
      route + since/until [+ hours]
      airline + since/until
    """

    route: str | None = None
    airline: str | None = None
    months: tuple[int, ...] | None = None
    year: int | None = None
    since: date | None = None
    until: date | None = None
    hours: tuple[int, ...] | None = None


class HistoricalStore(ABC):

    @abstractmethod
    async def find(self, query: HistoryQuery) -> list[HistoricalRecord]:
        ...


class SqlHistoricalStore(HistoricalStore):

    def __init__(self, session_factory: sessionmaker) -> None:
        self._sessions = session_factory

    async def find(self, query: HistoryQuery) -> list[HistoricalRecord]:
        return await asyncio.to_thread(self._find, query)

    async def upsert(self, records: Iterable[HistoricalRecord]) -> int:
        return await asyncio.to_thread(self._upsert, list(records))

    def _find(self, query: HistoryQuery) -> list[HistoricalRecord]:
        stmt = select(HistoricalDelay)
        if query.route is not None:
            stmt = stmt.where(HistoricalDelay.route == query.route)
        if query.airline is not None:
            stmt = stmt.where(HistoricalDelay.airline == query.airline)
        if query.months:
            stmt = stmt.where(HistoricalDelay.month.in_(query.months))
        if query.year is not None:
            stmt = stmt.where(HistoricalDelay.year == query.year)
        if query.since is not None:
            stmt = stmt.where(HistoricalDelay.flight_date >= query.since)
        if query.until is not None:
            stmt = stmt.where(HistoricalDelay.flight_date <= query.until)
        if query.hours:
            stmt = stmt.where(HistoricalDelay.departure_hour.in_(query.hours))
        stmt = stmt.order_by(HistoricalDelay.flight_date, HistoricalDelay.departure_hour)

        try:
            with self._sessions() as session:
                rows = session.execute(stmt).scalars().all()
        except SQLAlchemyError as exc:
            logger.error("historical query %s failed: %s", query, exc)
            raise UpstreamUnavailable(f"historical store: {exc}") from exc
        return [_to_record(r) for r in rows]

    def _upsert(self, records: list[HistoricalRecord]) -> int:
        written = 0
        try:
            with self._sessions() as session:
                for rec in records:
                    existing = session.execute(
                        select(HistoricalDelay).where(
                            HistoricalDelay.route == rec.route,
                            HistoricalDelay.airline == rec.airline,
                            HistoricalDelay.flight_date == rec.flight_date,
                            HistoricalDelay.departure_hour == rec.departure_hour,
                        )
                    ).scalar_one_or_none()
                    row = existing or HistoricalDelay()
                    _fill_row(row, rec)
                    if existing is None:
                        session.add(row)
                    written += 1
                    # batch commits to keep the unit of work small
                    if written % 500 == 0:
                        session.commit()
                session.commit()
        except SQLAlchemyError as exc:
            logger.error("historical upsert failed after %d rows: %s", written, exc)
            raise UpstreamUnavailable(f"historical store: {exc}") from exc
        logger.info("historical upsert: %d rows", written)
        return written


def _fill_row(row: HistoricalDelay, rec: HistoricalRecord) -> None:
    row.route = rec.route
    row.airline = rec.airline
    row.flight_date = rec.flight_date
    row.departure_hour = rec.departure_hour
    row.month = rec.month
    row.year = rec.year
    row.avg_delay = rec.avg_delay
    row.on_time_frequency = rec.on_time_frequency
    row.total_flights = rec.total_flights
    row.weather_delay = rec.causes.weather
    row.carrier_delay = rec.causes.carrier
    row.nas_delay = rec.causes.nas
    row.security_delay = rec.causes.security
    row.late_aircraft_delay = rec.causes.late_aircraft
    row.congestion = rec.congestion
    row.equipment_issues = rec.equipment_issues
    row.peak_factor = rec.peak_factor
    row.weather_impact = rec.weather_impact
    row.last_updated = rec.last_updated


def _to_record(row: HistoricalDelay) -> HistoricalRecord:
    return HistoricalRecord(
        route=row.route,
        airline=row.airline,
        flight_date=row.flight_date,
        departure_hour=row.departure_hour,
        avg_delay=float(row.avg_delay or 0.0),
        on_time_frequency=float(row.on_time_frequency or 0.0),
        total_flights=int(row.total_flights or 0),
        last_updated=to_utc(row.last_updated),
        causes=DelayCauses(
            weather=float(row.weather_delay or 0.0),
            carrier=float(row.carrier_delay or 0.0),
            nas=float(row.nas_delay or 0.0),
            security=float(row.security_delay or 0.0),
            late_aircraft=float(row.late_aircraft_delay or 0.0),
        ),
        congestion=row.congestion,
        equipment_issues=row.equipment_issues,
        peak_factor=row.peak_factor,
        weather_impact=row.weather_impact,
    )
