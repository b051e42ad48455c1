"""Shared aiohttp session — one instance for the whole process lifetime.

fetch_json makes a single attempt and translates failures into the
DataSourceError taxonomy. Retrying is the caller's choice (see utils.retry).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from delaycast.services.base import (
    AuthenticationFailed,
    NotFound,
    RateLimited,
    UpstreamUnavailable,
)

logger = logging.getLogger(__name__)

_session: aiohttp.ClientSession | None = None

_TIMEOUT = aiohttp.ClientTimeout(total=30, connect=10)
_HEADERS = {"User-Agent": "DelayCast/1.0 (flight delay forecast)"}


async def get_session() -> aiohttp.ClientSession:
    global _session
    if _session is None or _session.closed:
        _session = aiohttp.ClientSession(timeout=_TIMEOUT, headers=_HEADERS)
    return _session


async def close_session() -> None:
    global _session
    if _session and not _session.closed:
        await _session.close()
    _session = None


async def fetch_json(
    url: str,
    *,
    params: dict[str, str] | None = None,
    headers: dict[str, str] | None = None,
    source: str = "upstream",
) -> Any:
    """GET *url* and return parsed JSON."""
    session = await get_session()
    try:
        async with session.get(url, params=params, headers=headers) as resp:
            if resp.status in (401, 403):
                raise AuthenticationFailed(f"{source}: HTTP {resp.status}")
            if resp.status == 404:
                raise NotFound(f"{source}: HTTP 404 for {url}")
            if resp.status == 429:
                raise RateLimited(source, _retry_after(resp.headers.get("Retry-After")))
            resp.raise_for_status()
            return await resp.json(content_type=None)
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
        logger.error("fetch_json %s failed: %s", url, exc)
        raise UpstreamUnavailable(f"{source}: {exc or type(exc).__name__}") from exc


def _retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None
