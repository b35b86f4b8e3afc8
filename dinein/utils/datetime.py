"""Datetime helpers.

Records store UTC timestamps as naive datetimes; the auth cookie carries
epoch milliseconds. These helpers convert between the two.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime, timedelta

_EPOCH = datetime(1970, 1, 1)


def utcnow() -> datetime:
    """Return current UTC time as a naive datetime."""
    return datetime.now(UTC).replace(tzinfo=None)


def now_ms() -> int:
    """Return current time as integer epoch milliseconds."""
    return time.time_ns() // 1_000_000


def to_epoch_ms(value: datetime) -> int:
    """Convert a naive-UTC (or aware) datetime to epoch milliseconds.

    Integer arithmetic, so values from ``from_epoch_ms`` round-trip exactly.
    """
    delta = to_naive_utc(value) - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000


def from_epoch_ms(value: int) -> datetime:
    """Convert epoch milliseconds to a naive UTC datetime."""
    return _EPOCH + timedelta(milliseconds=value)


def to_naive_utc(value: datetime) -> datetime:
    """Normalise an aware datetime to naive UTC; naive values are assumed UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)
