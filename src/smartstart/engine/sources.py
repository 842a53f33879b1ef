"""Read/write interfaces the scheduling engine depends on.

``Storage`` implements all of them; tests pass in-memory fakes. Lookups
return None (or raise the matching ``Missing*`` error) when nothing exists.
"""

from typing import Protocol

from smartstart.models import (
    SmartStartRecord,
    WeatherSnapshot,
    ZoneScheduleSettings,
    ZoneThermalState,
)


class SettingsSource(Protocol):
    def zone_settings(self, zone_id: str) -> ZoneScheduleSettings | None: ...


class ThermalStateSource(Protocol):
    def latest_thermal_state(self, site_id: str) -> ZoneThermalState | None: ...


class RampRateSource(Protocol):
    def average_ramp_rate(self, device_id: str, mode: str) -> float | None: ...


class WeatherSource(Protocol):
    def latest_weather_snapshot(self, site_id: str) -> WeatherSnapshot | None: ...


class CalculationSink(Protocol):
    def save_calculation(self, record: SmartStartRecord) -> None: ...
