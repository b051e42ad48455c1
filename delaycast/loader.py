"""BTS on-time performance loader.

Reads a monthly Reporting Carrier On-Time Performance export (the ``.zip``
from transtats or its extracted ``.csv``), rolls individual flights up to one
row per route, carrier, date and scheduled departure hour, and upserts the
rows into ``historical_delays``.

    delaycast-load On_Time_Reporting_2026_9.zip --database-url sqlite:///delaycast.db
"""

from __future__ import annotations

import argparse
import asyncio
import csv
import io
import logging
import zipfile
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, Iterator

from delaycast.config import get_settings, setup_logging
from delaycast.db import create_all, create_db_engine, create_session_factory
from delaycast.models import DelayCauses, HistoricalRecord
from delaycast.services.history import SqlHistoricalStore
from delaycast.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

# Arrival within this many minutes of schedule counts as on time
ON_TIME_MINUTES = 15.0

CAUSE_COLUMNS = {
    "weather": "WEATHER_DELAY",
    "carrier": "CARRIER_DELAY",
    "nas": "NAS_DELAY",
    "security": "SECURITY_DELAY",
    "late_aircraft": "LATE_AIRCRAFT_DELAY",
}


@dataclass
class _Bucket:
    flights: int = 0
    on_time: int = 0
    delays: list[float] = field(default_factory=list)
    causes: dict[str, float] = field(default_factory=lambda: dict.fromkeys(CAUSE_COLUMNS, 0.0))


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------


def read_rows(path: str | Path) -> Iterator[dict[str, str]]:
    """Rows of the first CSV inside *path*, or of *path* itself."""
    path = Path(path)
    if zipfile.is_zipfile(path):
        with zipfile.ZipFile(path) as zf:
            members = [n for n in zf.namelist() if n.lower().endswith(".csv")]
            if not members:
                raise ValueError(f"{path.name}: no CSV inside archive")
            if len(members) > 1:
                logger.warning("%s: %d CSV files, reading %s", path.name, len(members), members[0])
            with zf.open(members[0]) as f:
                yield from csv.DictReader(io.TextIOWrapper(f, encoding="utf-8-sig"))
        return

    with path.open(newline="", encoding="utf-8-sig") as f:
        yield from csv.DictReader(f)


def _number(value: str | None) -> float | None:
    try:
        return float(value) if value not in (None, "") else None
    except ValueError:
        return None


def _code(row: dict[str, str], column: str) -> str:
    value = (row[column] or "").strip().upper()
    if not value:
        raise ValueError(f"empty {column}")
    return value


def _flight_date(value: str) -> date:
    # Older exports use 2026-09-01, newer ones 9/1/2026 12:00:00 AM
    value = value.strip()
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return datetime.strptime(value.split()[0], "%m/%d/%Y").date()


def _departure_hour(value: str) -> int:
    # CRS_DEP_TIME is local hhmm without padding; 2400 is midnight
    return (int(float(value)) // 100) % 24


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def aggregate(rows: Iterable[dict[str, str]], loaded_at: datetime) -> list[HistoricalRecord]:
    """Collapse per-flight rows into hourly route/carrier records.

    Cancelled and diverted flights count towards ``total_flights`` but never
    as on time. Average delay and cause minutes are over flights that arrived.
    """
    buckets: dict[tuple[str, str, date, int], _Bucket] = {}
    skipped = 0

    for row in rows:
        try:
            key = (
                f"{_code(row, 'ORIGIN')}-{_code(row, 'DEST')}",
                _code(row, "OP_CARRIER"),
                _flight_date(row["FL_DATE"]),
                _departure_hour(row["CRS_DEP_TIME"]),
            )
        except (KeyError, ValueError, TypeError, AttributeError):
            skipped += 1
            continue

        bucket = buckets.setdefault(key, _Bucket())
        bucket.flights += 1
        if _number(row.get("CANCELLED")) or _number(row.get("DIVERTED")):
            continue
        delay = _number(row.get("ARR_DELAY"))
        if delay is None:
            continue
        bucket.delays.append(delay)
        if delay <= ON_TIME_MINUTES:
            bucket.on_time += 1
        for name, column in CAUSE_COLUMNS.items():
            bucket.causes[name] += _number(row.get(column)) or 0.0

    if skipped:
        logger.warning("skipped %d rows with missing route, carrier, date or hour", skipped)

    records = [
        _to_record(key, bucket, loaded_at)
        for key, bucket in sorted(buckets.items())
    ]
    logger.info("aggregated %d flights into %d records",
                sum(b.flights for b in buckets.values()), len(records))
    return records


def _to_record(
    key: tuple[str, str, date, int], bucket: _Bucket, loaded_at: datetime,
) -> HistoricalRecord:
    route, airline, flight_date, hour = key
    arrived = len(bucket.delays)
    causes = {
        name: (minutes / arrived if arrived else 0.0)
        for name, minutes in bucket.causes.items()
    }
    cause_total = sum(bucket.causes.values())
    return HistoricalRecord(
        route=route,
        airline=airline,
        flight_date=flight_date,
        departure_hour=hour,
        avg_delay=sum(bucket.delays) / arrived if arrived else 0.0,
        on_time_frequency=100.0 * bucket.on_time / bucket.flights,
        total_flights=bucket.flights,
        last_updated=loaded_at,
        causes=DelayCauses(**causes),
        weather_impact=bucket.causes["weather"] / cause_total if cause_total else None,
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def load(path: str | Path, database_url: str) -> int:
    engine = create_db_engine(database_url)
    try:
        create_all(engine)
        store = SqlHistoricalStore(create_session_factory(engine))
        records = aggregate(read_rows(path), utcnow())
        return await store.upsert(records)
    finally:
        engine.dispose()


def main(argv: list[str] | None = None) -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        description="Load a BTS on-time performance export into historical_delays",
    )
    parser.add_argument("path", type=Path, help="Monthly .zip from transtats or its .csv")
    parser.add_argument(
        "--database-url", default=settings.database_url,
        help=f"SQLAlchemy URL (default: {settings.database_url})",
    )
    args = parser.parse_args(argv)

    setup_logging(settings.log_level)
    written = asyncio.run(load(args.path, args.database_url))
    logger.info("%s: %d historical records written", args.path.name, written)


if __name__ == "__main__":
    main()
