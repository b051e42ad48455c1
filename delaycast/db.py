from __future__ import annotations

from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


class HistoricalDelay(Base):
    __tablename__ = "historical_delays"
    __table_args__ = (
        UniqueConstraint("route", "airline", "flight_date", "departure_hour"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    route = Column(Text, nullable=False, index=True)
    airline = Column(Text, nullable=False, index=True)
    flight_date = Column(Date, nullable=False, index=True)
    departure_hour = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)

    avg_delay = Column(Float, nullable=False, default=0.0)
    on_time_frequency = Column(Float, nullable=False, default=0.0)
    total_flights = Column(Integer, nullable=False, default=1)

    weather_delay = Column(Float, nullable=False, default=0.0)
    carrier_delay = Column(Float, nullable=False, default=0.0)
    nas_delay = Column(Float, nullable=False, default=0.0)
    security_delay = Column(Float, nullable=False, default=0.0)
    late_aircraft_delay = Column(Float, nullable=False, default=0.0)

    congestion = Column(Float, nullable=True)
    equipment_issues = Column(Float, nullable=True)
    peak_factor = Column(Float, nullable=True)
    weather_impact = Column(Float, nullable=True)

    last_updated = Column(DateTime(timezone=True), nullable=False)


class PredictionCacheRow(Base):
    __tablename__ = "prediction_cache"

    key = Column(Text, primary_key=True)
    data = Column(JSON, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)


def create_db_engine(url: str) -> Engine:
    # SQLite connections are handed to worker threads by asyncio.to_thread
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, future=True)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False, future=True)


def create_all(engine: Engine) -> None:
    Base.metadata.create_all(engine)
