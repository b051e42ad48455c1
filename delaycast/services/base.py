from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ConfigurationError(Exception):
    """Missing credentials or settings. Never a data error."""


class DataSourceError(Exception):
    """No real data could be obtained from an upstream source."""


class UpstreamUnavailable(DataSourceError):
    """Transport failure, server error, or a payload we cannot parse."""


class NotFound(DataSourceError):
    """The upstream answered authoritatively that the item does not exist."""


class FlightNotFound(NotFound):
    def __init__(self, flight_number: str) -> None:
        super().__init__(f"Flight {flight_number} not found")
        self.flight_number = flight_number


class RateLimited(DataSourceError):
    def __init__(self, source: str, retry_after: float | None = None) -> None:
        msg = f"{source}: rate limit reached"
        if retry_after is not None:
            msg += f" (retry after {retry_after:.0f}s)"
        super().__init__(msg)
        self.source = source
        self.retry_after = retry_after


class AuthenticationFailed(DataSourceError):
    """The upstream rejected our credentials."""


class BaseDataSource(ABC, Generic[T]):
    """Contract for every upstream adapter.

    Rules:
    - Return ONLY real, validated data from the live API.
    - NEVER generate placeholder records.
    - On failure raise a DataSourceError subclass; degrading to defaults is
      the caller's decision, not the adapter's.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self.logger = logging.getLogger(f"source.{name}")

    @abstractmethod
    async def fetch_raw(self, query: str) -> Any:
        ...

    @abstractmethod
    def parse(self, raw: Any, query: str) -> T:
        ...

    async def get(self, query: str) -> T:
        try:
            raw = await self.fetch_raw(query)
            item = self.parse(raw, query)
        except DataSourceError as exc:
            self.logger.warning("'%s' %s: %s", self.name, query, exc)
            raise
        except (KeyError, TypeError, ValueError) as exc:
            self.logger.error("'%s' %s: unexpected payload: %s", self.name, query, exc)
            raise UpstreamUnavailable(f"{self.name}: unexpected payload ({exc})") from exc
        self.logger.info("'%s' %s: ok", self.name, query)
        return item
