from __future__ import annotations

from datetime import datetime

import pytz

UTC = pytz.UTC


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


def to_utc(value: str | datetime | None) -> datetime | None:
    """Parse an ISO datetime (or accept a datetime) → tz-aware UTC datetime.

    Naive values are taken to be UTC already. Returns None for empty or
    unparseable input rather than raising.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except (ValueError, TypeError):
            return None
    if dt.tzinfo is None:
        return UTC.localize(dt)
    return dt.astimezone(UTC)
