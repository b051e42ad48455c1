"""Retry with linearly increasing back-off for any upstream coroutine."""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, TypeVar

from delaycast.services.base import UpstreamUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRIES = 3
DEFAULT_BACKOFF = 1.0   # seconds: 1, 2, 3 between attempts


async def call_with_retry(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    retries: int = DEFAULT_RETRIES,
    backoff: float = DEFAULT_BACKOFF,
    retry_on: tuple[type[BaseException], ...] = (UpstreamUnavailable,),
    **kwargs: Any,
) -> T:
    """Await ``func`` up to ``retries + 1`` times.

    Only exceptions in *retry_on* trigger another attempt; anything else
    (rate limits, auth failures, not-found) propagates immediately. Before
    retry n the coroutine sleeps ``backoff * n`` seconds.
    """
    attempt = 0
    while True:
        try:
            return await func(*args, **kwargs)
        except retry_on as exc:
            attempt += 1
            if attempt > retries:
                logger.error(
                    "%s failed after %d attempts: %s",
                    getattr(func, "__qualname__", func), attempt, exc,
                )
                raise
            wait = backoff * attempt
            logger.warning(
                "%s attempt %d/%d failed (%s), retry in %.0fs",
                getattr(func, "__qualname__", func), attempt, retries + 1, exc, wait,
            )
            await asyncio.sleep(wait)


def with_retry(
    retries: int = DEFAULT_RETRIES,
    backoff: float = DEFAULT_BACKOFF,
    retry_on: tuple[type[BaseException], ...] = (UpstreamUnavailable,),
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator form of :func:`call_with_retry`."""
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await call_with_retry(
                func, *args, retries=retries, backoff=backoff, retry_on=retry_on, **kwargs
            )
        return wrapper
    return decorator
