"""Rounding and time-of-day helpers shared across the pipeline."""

import math
from datetime import UTC, datetime

MINUTES_PER_DAY = 1440


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves toward positive infinity."""
    return math.floor(value + 0.5)


def round_to(value: float, places: int) -> float:
    scale = 10**places
    return round_half_up(value * scale) / scale


def minutes_to_time_str(minutes: int) -> str:
    """Format minutes from midnight as HH:MM:00, wrapping into one day."""
    m = minutes % MINUTES_PER_DAY
    return f"{m // 60:02d}:{m % 60:02d}:00"


def time_str_to_minutes(value: str) -> int:
    """Parse HH:MM or HH:MM:SS into minutes from midnight."""
    parts = value.strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid time of day: {value!r}")
    hours, minutes = int(parts[0]), int(parts[1])
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError(f"Invalid time of day: {value!r}")
    return hours * 60 + minutes


def utcnow() -> datetime:
    """Current time as a naive UTC datetime (the storage convention)."""
    return datetime.now(UTC).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)
