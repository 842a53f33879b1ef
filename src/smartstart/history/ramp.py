"""Average heating/cooling ramp rates from temperature history."""

import math
from collections.abc import Sequence

from smartstart.models import RampRateSample, TemperatureReading

MIN_READINGS = 10
MIN_RATES = 5
# Pairs further apart than this span a data gap; closer ones are noise
MIN_GAP_MINUTES = 1.0
MAX_GAP_MINUTES = 15.0
# Slower changes are drift, not active heating or cooling
RAMP_THRESHOLD = 0.05


def ramp_rate_sample(
    readings: Sequence[TemperatureReading], mode: str
) -> RampRateSample | None:
    """Trimmed mean rate (degrees/min) of ramp segments in ``mode``.

    Args:
        readings: Readings in ascending time order
        mode: "heating" or "cooling"

    Returns:
        Sample holding the mean of the 10th-90th percentile rates and the
        number of ramp segments found, or None without enough history
    """
    if mode not in ("heating", "cooling"):
        raise ValueError(f"Unknown ramp mode: {mode}")
    if len(readings) < MIN_READINGS:
        return None

    rates: list[float] = []
    for prev, curr in zip(readings, readings[1:]):
        dt = (curr.recorded_at - prev.recorded_at).total_seconds() / 60
        if dt < MIN_GAP_MINUTES or dt > MAX_GAP_MINUTES:
            continue

        rate = (curr.temperature - prev.temperature) / dt
        if mode == "heating" and rate > RAMP_THRESHOLD:
            rates.append(rate)
        elif mode == "cooling" and rate < -RAMP_THRESHOLD:
            rates.append(abs(rate))

    if len(rates) < MIN_RATES:
        return None

    rates.sort()
    lo = int(len(rates) * 0.1)
    hi = math.ceil(len(rates) * 0.9)
    trimmed = rates[lo:hi]
    return RampRateSample(
        device_id=readings[0].device_id,
        mode=mode,
        rate=sum(trimmed) / len(trimmed),
        sample_count=len(rates),
    )


def average_ramp_rate(readings: Sequence[TemperatureReading], mode: str) -> float | None:
    sample = ramp_rate_sample(readings, mode)
    return sample.rate if sample is not None else None
