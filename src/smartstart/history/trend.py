"""Record thermostat readings and derive the short-window temperature trend."""

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

import structlog

from smartstart.models import TemperatureReading
from smartstart.units import as_naive_utc, round_to

if TYPE_CHECKING:
    from smartstart.storage import Storage

log = structlog.get_logger()

TREND_WINDOW = timedelta(minutes=5)
MIN_ELAPSED_MINUTES = 0.5


def record_reading(
    storage: "Storage",
    reading: TemperatureReading,
) -> tuple[float | None, float | None]:
    """Store a reading and return (trend, acceleration) over the last ~5 minutes.

    The trend (degrees/min) compares against the newest reading between 10 and
    5 minutes before this one. Acceleration is the change from the trend that
    reading itself had against the newest reading at least 10 minutes old.
    When a trend exists both values are rounded and written to the site's
    thermal state.
    """
    storage.save_reading(reading)

    now = as_naive_utc(reading.recorded_at)
    window = storage.get_readings(
        reading.device_id,
        since=now - 2 * TREND_WINDOW,
        until=now - TREND_WINDOW,
    )
    if not window:
        log.debug("trend_skipped", device_id=reading.device_id, reason="no_prior_reading")
        return None, None

    prev = window[-1]
    trend = compute_trend(prev, reading)
    if trend is None:
        return None, None

    accel: float | None = None
    earlier = storage.latest_reading(reading.device_id, before=now - 2 * TREND_WINDOW)
    if earlier is not None:
        prev_trend = compute_trend(earlier, prev)
        if prev_trend is not None:
            accel = trend - prev_trend

    rounded_accel = round_to(accel, 3) if accel is not None else None
    updated = storage.update_temp_trend(reading.site_id, round_to(trend, 3), rounded_accel)
    log.info(
        "temp_trend_recorded",
        device_id=reading.device_id,
        site_id=reading.site_id,
        trend=round_to(trend, 3),
        accel=rounded_accel,
        state_updated=updated,
    )
    return trend, accel


def compute_trend(prev: TemperatureReading, curr: TemperatureReading) -> float | None:
    elapsed = _minutes_between(prev.recorded_at, curr.recorded_at)
    if elapsed < MIN_ELAPSED_MINUTES:
        return None
    return (curr.temperature - prev.temperature) / elapsed


def _minutes_between(start: datetime, end: datetime) -> float:
    return (as_naive_utc(end) - as_naive_utc(start)).total_seconds() / 60
