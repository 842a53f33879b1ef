"""Weather snapshots: provider fetch, sun position and illuminance."""

from smartstart.weather.client import WeatherClient, classify_condition, is_stale
from smartstart.weather.solar import estimate_illuminance, sun_elevation
from smartstart.weather.sync import sync_weather

__all__ = [
    "WeatherClient",
    "classify_condition",
    "estimate_illuminance",
    "is_stale",
    "sun_elevation",
    "sync_weather",
]
