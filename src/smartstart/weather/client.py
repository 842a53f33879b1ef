"""Current conditions from the Open-Meteo API (free, no key required)."""

from datetime import datetime, timedelta
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from smartstart.config import get_settings
from smartstart.errors import WeatherUnavailable
from smartstart.models import WeatherCondition, WeatherSnapshot
from smartstart.units import as_naive_utc, utcnow
from smartstart.weather.solar import estimate_illuminance, sun_elevation

log = structlog.get_logger()

CURRENT_FIELDS = (
    "temperature_2m,relative_humidity_2m,apparent_temperature,cloud_cover,precipitation,"
    "uv_index,wind_speed_10m,wind_direction_10m,visibility,weather_code"
)
HOURLY_FIELDS = "temperature_2m,cloud_cover,uv_index"

DEFAULT_VISIBILITY_M = 10_000

# WMO weather code upper bounds, checked in order
_CONDITION_BUCKETS: tuple[tuple[int, WeatherCondition], ...] = (
    (0, WeatherCondition.CLEAR),
    (3, WeatherCondition.PARTLY_CLOUDY),
    (49, WeatherCondition.FOGGY),
    (59, WeatherCondition.DRIZZLE),
    (69, WeatherCondition.RAIN),
    (79, WeatherCondition.SNOW),
    (82, WeatherCondition.RAIN_HEAVY),
    (86, WeatherCondition.SNOW_HEAVY),
    (99, WeatherCondition.THUNDERSTORM),
)


def classify_condition(code: int | None) -> WeatherCondition:
    """Map a numeric weather code to a condition class."""
    if code is None or code < 0:
        return WeatherCondition.UNKNOWN
    for upper, condition in _CONDITION_BUCKETS:
        if code <= upper:
            return condition
    return WeatherCondition.UNKNOWN


def is_stale(
    captured_at: datetime | None,
    max_age_minutes: int = 30,
    now: datetime | None = None,
) -> bool:
    """True when a snapshot is older than ``max_age_minutes`` (or missing)."""
    if captured_at is None:
        return True
    now = as_naive_utc(now) if now is not None else utcnow()
    return now - as_naive_utc(captured_at) > timedelta(minutes=max_age_minutes)


class WeatherClient:
    """Client for fetching current site conditions from Open-Meteo."""

    def __init__(
        self,
        timeout: float | None = None,
        base_url: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self._url = base_url or settings.weather_api_url
        self._client = httpx.Client(
            timeout=timeout if timeout is not None else settings.weather_timeout_seconds,
            transport=transport,
        )

    def fetch_snapshot(
        self,
        site_id: str,
        latitude: float,
        longitude: float,
        now: datetime | None = None,
    ) -> WeatherSnapshot:
        """Fetch current conditions for a site and derive sun/lux estimates.

        Raises:
            WeatherUnavailable: on transport errors, timeouts, non-2xx
                responses, or a payload missing required fields.
        """
        params: dict[str, str | float | int] = {
            "latitude": latitude,
            "longitude": longitude,
            "current": CURRENT_FIELDS,
            "hourly": HOURLY_FIELDS,
            "temperature_unit": "fahrenheit",
            "wind_speed_unit": "mph",
            "forecast_days": 1,
        }
        log.info("fetching_weather", site_id=site_id, lat=latitude, lon=longitude)

        try:
            response = self._client.get(self._url, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            log.warning("weather_fetch_failed", site_id=site_id, error=str(e))
            raise WeatherUnavailable(f"Weather API request failed: {e}") from e
        except ValueError as e:
            log.warning("weather_payload_invalid", site_id=site_id, error=str(e))
            raise WeatherUnavailable("Weather API returned invalid JSON") from e

        captured_at = as_naive_utc(now) if now is not None else utcnow()
        snapshot = self._parse_response(data, site_id, latitude, longitude, captured_at)
        log.info(
            "weather_fetched",
            site_id=site_id,
            condition=snapshot.condition.value,
            temperature=snapshot.temperature,
            illuminance=snapshot.illuminance,
        )
        return snapshot

    def _parse_response(
        self,
        data: dict[str, Any],
        site_id: str,
        latitude: float,
        longitude: float,
        captured_at: datetime,
    ) -> WeatherSnapshot:
        """Parse an Open-Meteo response into a WeatherSnapshot."""
        current = data.get("current") if isinstance(data, dict) else None
        if not current:
            raise WeatherUnavailable("Weather API response has no current conditions")

        try:
            uv_index = current.get("uv_index") or 0
            visibility = current.get("visibility")
            cloud_cover = current["cloud_cover"]
            elevation = sun_elevation(latitude, longitude, captured_at)
            return WeatherSnapshot(
                site_id=site_id,
                captured_at=captured_at,
                temperature=current["temperature_2m"],
                feels_like=current["apparent_temperature"],
                humidity=current["relative_humidity_2m"],
                cloud_cover=cloud_cover,
                precipitation=current["precipitation"],
                uv_index=uv_index,
                wind_speed=current["wind_speed_10m"],
                wind_direction=current["wind_direction_10m"],
                condition=classify_condition(current.get("weather_code")),
                illuminance=estimate_illuminance(cloud_cover, uv_index, elevation),
                sun_elevation=elevation,
                visibility=visibility if visibility is not None else DEFAULT_VISIBILITY_M,
                forecast=data.get("hourly"),
            )
        except (KeyError, TypeError, ValidationError) as e:
            log.warning("weather_parse_error", site_id=site_id, error=str(e))
            raise WeatherUnavailable(f"Malformed weather payload: {e}") from e

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "WeatherClient":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
