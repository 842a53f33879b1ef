"""Sun elevation and ambient illuminance estimates."""

import math
from datetime import UTC, datetime

from smartstart.units import round_half_up

# Civil twilight ends when the sun's upper limb clears the horizon
CIVIL_TWILIGHT_DEG = -6.0
HORIZON_DEG = -0.833

TWILIGHT_LUX = 400
LOW_SUN_LUX = 10_000
MID_SUN_LUX = 50_000
HIGH_SUN_LUX = 120_000


def sun_elevation(latitude: float, longitude: float, when: datetime | None = None) -> float:
    """Sun elevation in degrees (negative below the horizon), rounded to 0.1.

    Uses the annual cosine approximation for declination and a longitude-only
    solar time (no equation of time), which is accurate to a degree or two.
    """
    if when is None:
        when = datetime.now(UTC)
    elif when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    else:
        when = when.astimezone(UTC)

    day_of_year = when.timetuple().tm_yday
    declination = math.radians(-23.45 * math.cos(math.radians((360 / 365) * (day_of_year + 10))))

    utc_hours = when.hour + when.minute / 60
    solar_time = utc_hours + longitude / 15
    hour_angle = math.radians((solar_time - 12) * 15)

    lat = math.radians(latitude)
    elevation = math.degrees(
        math.asin(
            math.sin(lat) * math.sin(declination)
            + math.cos(lat) * math.cos(declination) * math.cos(hour_angle)
        )
    )
    return round(elevation, 1)


def estimate_illuminance(cloud_cover: float, uv_index: float, sun_elevation: float) -> int:
    """Estimate ambient illuminance (lux) from sky conditions.

    Clear-sky lux is interpolated across elevation bands, then reduced by cloud
    cover (full overcast keeps 10%). A daytime UV reading of exactly zero means
    the UV sensor is saturated by heavy overcast, so only 5% of the clear-sky
    value is returned in that case.
    """
    if sun_elevation < CIVIL_TWILIGHT_DEG:
        return 0
    if sun_elevation < HORIZON_DEG:
        t = (sun_elevation - CIVIL_TWILIGHT_DEG) / (HORIZON_DEG - CIVIL_TWILIGHT_DEG)
        return round_half_up(t * TWILIGHT_LUX)

    if sun_elevation < 10:
        # Between the horizon and 0 degrees the band holds at its twilight value
        base_lux = TWILIGHT_LUX + (max(sun_elevation, 0.0) / 10) * (LOW_SUN_LUX - TWILIGHT_LUX)
    elif sun_elevation < 30:
        base_lux = LOW_SUN_LUX + ((sun_elevation - 10) / 20) * (MID_SUN_LUX - LOW_SUN_LUX)
    else:
        base_lux = MID_SUN_LUX + ((sun_elevation - 30) / 60) * (HIGH_SUN_LUX - MID_SUN_LUX)

    if sun_elevation > 5 and uv_index == 0:
        return round_half_up(base_lux * 0.05)

    cloud_factor = 1.0 - (cloud_cover / 100) * 0.9
    return round_half_up(base_lux * cloud_factor)
