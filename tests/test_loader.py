"""BTS export loader: reading, hourly roll-up and the upsert into SQLite."""

from __future__ import annotations

import asyncio
import zipfile
from datetime import date

import pytest

from conftest import NOW
from delaycast.db import create_db_engine, create_session_factory
from delaycast.loader import aggregate, load, main, read_rows
from delaycast.services.history import HistoryQuery, SqlHistoricalStore

HEADER = (
    "FL_DATE,OP_CARRIER,ORIGIN,DEST,CRS_DEP_TIME,ARR_DELAY,CANCELLED,DIVERTED,"
    "CARRIER_DELAY,WEATHER_DELAY,NAS_DELAY,SECURITY_DELAY,LATE_AIRCRAFT_DELAY\n"
)
ROWS = (
    "2026-09-01,UA,ORD,JFK,0830,-4.00,0.00,0.00,,,,,\n"
    "2026-09-01,UA,ORD,JFK,0855,44.00,0.00,0.00,4.00,30.00,10.00,0.00,0.00\n"
    "2026-09-01,UA,ORD,JFK,0810,,1.00,0.00,,,,,\n"
    "2026-09-01,UA,ORD,JFK,2359,12.00,0.00,0.00,,,,,\n"
    "9/2/2026 12:00:00 AM,AA,ORD,JFK,2400,20.00,0.00,0.00,0.00,0.00,20.00,0.00,0.00\n"
    "2026-09-02,AA,,JFK,0900,5.00,0.00,0.00,,,,,\n"
)


@pytest.fixture
def export_csv(tmp_path):
    path = tmp_path / "On_Time_Reporting_2026_9.csv"
    path.write_text(HEADER + ROWS, encoding="utf-8")
    return path


@pytest.fixture
def export_zip(tmp_path, export_csv):
    path = tmp_path / "On_Time_Reporting_2026_9.zip"
    with zipfile.ZipFile(path, "w") as zf:
        zf.write(export_csv, arcname="On_Time_Reporting_2026_9.csv")
        zf.writestr("readme.html", "<html></html>")
    return path


def by_key(records):
    return {(r.route, r.airline, r.flight_date, r.departure_hour): r for r in records}


def test_reads_csv_and_zip_alike(export_csv, export_zip):
    assert list(read_rows(export_zip)) == list(read_rows(export_csv))
    assert len(list(read_rows(export_csv))) == 6


def test_zip_without_csv(tmp_path):
    path = tmp_path / "empty.zip"
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr("readme.html", "")
    with pytest.raises(ValueError, match="no CSV"):
        list(read_rows(path))


def test_rolls_flights_up_by_hour(export_csv):
    records = by_key(aggregate(read_rows(export_csv), NOW))
    assert len(records) == 3

    morning = records[("ORD-JFK", "UA", date(2026, 9, 1), 8)]
    assert morning.total_flights == 3
    # cancelled flight counts but never as on time
    assert morning.on_time_frequency == pytest.approx(100 / 3)
    assert morning.avg_delay == pytest.approx(20.0)
    assert morning.causes.weather == pytest.approx(15.0)
    assert morning.causes.nas == pytest.approx(5.0)
    assert morning.weather_impact == pytest.approx(30 / 44)
    assert morning.last_updated == NOW


def test_late_departures_and_us_dates(export_csv):
    records = by_key(aggregate(read_rows(export_csv), NOW))
    assert records[("ORD-JFK", "UA", date(2026, 9, 1), 23)].weather_impact is None
    midnight = records[("ORD-JFK", "AA", date(2026, 9, 2), 0)]
    assert midnight.on_time_frequency == 0.0
    assert midnight.weather_impact == 0.0


def test_incomplete_rows_are_skipped(export_csv, caplog):
    records = aggregate(read_rows(export_csv), NOW)
    assert all(r.route == "ORD-JFK" for r in records)
    assert "skipped 1 rows" in caplog.text


def test_load_upserts_into_database(tmp_path, export_zip):
    url = f"sqlite:///{tmp_path / 'history.db'}"
    assert asyncio.run(load(export_zip, url)) == 3
    # reloading the same month replaces rather than duplicates
    assert asyncio.run(load(export_zip, url)) == 3

    engine = create_db_engine(url)
    try:
        store = SqlHistoricalStore(create_session_factory(engine))
        rows = asyncio.run(store.find(HistoryQuery(route="ORD-JFK", hours=(23, 0, 1))))
    finally:
        engine.dispose()
    assert [(r.airline, r.departure_hour) for r in rows] == [("UA", 23), ("AA", 0)]


def test_command_line(tmp_path, export_csv, caplog):
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    caplog.set_level("INFO", logger="delaycast.loader")
    main([str(export_csv), "--database-url", url])
    assert "3 historical records written" in caplog.text
