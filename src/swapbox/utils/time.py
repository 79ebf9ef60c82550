"""Time-related helpers."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""

    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Normalize a datetime to UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_utc(value: datetime | str | None) -> datetime | None:
    """Coerce ISO strings and naive datetimes to aware UTC datetimes."""

    if value is None:
        return value
    if isinstance(value, str):
        # Support ISO strings persisted in storage
        if value.endswith("Z"):
            value = value.replace("Z", "+00:00")
        value = datetime.fromisoformat(value)
    return ensure_utc(value)
