"""Key/value cache with per-entry expiry.

Two interchangeable stores behind one interface:
  MemoryCache   — in-process, cachetools TLRUCache
  DatabaseCache — SQLAlchemy table {key, data, expires_at}

Expiry is checked lazily on read: a lookup that finds an expired entry
removes it and reports a miss. Values must be JSON-compatible.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable

from cachetools import TLRUCache
from sqlalchemy import delete
from sqlalchemy.orm import sessionmaker

from delaycast.config import Settings
from delaycast.db import PredictionCacheRow
from delaycast.services.base import ConfigurationError
from delaycast.utils.timeutils import to_utc, utcnow

logger = logging.getLogger(__name__)


class Cache(ABC):

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...


@dataclass(frozen=True)
class _Entry:
    value: Any
    ttl_seconds: float


class MemoryCache(Cache):
    """In-process store. No method awaits, so each call is atomic on the event loop."""

    def __init__(
        self,
        maxsize: int = 1024,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store: TLRUCache = TLRUCache(
            maxsize=maxsize,
            ttu=lambda _key, entry, now: now + entry.ttl_seconds,
            timer=clock,
        )

    def __len__(self) -> int:
        return len(self._store)

    async def get(self, key: str) -> Any | None:
        entry = self._store.get(key)
        if entry is None:
            # drops the stale entry for this key along with any others
            self._store.expire()
            return None
        logger.debug("Cache hit: %s", key)
        return entry.value

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        self._store[key] = _Entry(value=value, ttl_seconds=ttl_seconds)
        logger.debug("Cache set: %s (ttl=%ss)", key, ttl_seconds)

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)


class DatabaseCache(Cache):
    """Cache rows in the ``prediction_cache`` table.

    Blocking session work runs in a worker thread. Concurrent writers to the
    same key race; the last write wins.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._sessions = session_factory
        self._now = now

    async def get(self, key: str) -> Any | None:
        return await asyncio.to_thread(self._get, key)

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        await asyncio.to_thread(self._set, key, value, ttl_seconds)
        logger.debug("Cache set: %s (ttl=%ss)", key, ttl_seconds)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete, key)

    def _get(self, key: str) -> Any | None:
        with self._sessions() as session:
            row = session.get(PredictionCacheRow, key)
            if row is None:
                return None
            # SQLite hands back naive datetimes even for timezone=True columns
            if to_utc(row.expires_at) <= self._now():
                session.delete(row)
                session.commit()
                return None
            logger.debug("Cache hit: %s", key)
            return row.data

    def _set(self, key: str, value: Any, ttl_seconds: float) -> None:
        expires_at = self._now() + timedelta(seconds=ttl_seconds)
        with self._sessions() as session:
            session.merge(PredictionCacheRow(key=key, data=value, expires_at=expires_at))
            session.commit()

    def _delete(self, key: str) -> None:
        with self._sessions() as session:
            session.execute(delete(PredictionCacheRow).where(PredictionCacheRow.key == key))
            session.commit()


def build_cache(settings: Settings, session_factory: sessionmaker | None = None) -> Cache:
    backend = settings.cache_backend.lower()
    if backend == "memory":
        return MemoryCache()
    if backend == "database":
        if session_factory is None:
            raise ConfigurationError("database cache backend needs a session factory")
        return DatabaseCache(session_factory)
    raise ConfigurationError(f"unknown cache backend: {settings.cache_backend!r}")
