"""Data models for the smart-start pipeline."""

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from smartstart.units import utcnow


class WeatherCondition(str, Enum):
    """Condition class derived from the provider's numeric weather code."""

    CLEAR = "clear"
    PARTLY_CLOUDY = "partly_cloudy"
    FOGGY = "foggy"
    DRIZZLE = "drizzle"
    RAIN = "rain"
    RAIN_HEAVY = "rain_heavy"
    SNOW = "snow"
    SNOW_HEAVY = "snow_heavy"
    THUNDERSTORM = "thunderstorm"
    UNKNOWN = "unknown"


class ThermalMode(str, Enum):
    HEAT = "heat"
    COOL = "cool"

    @property
    def ramp_mode(self) -> str:
        """Name used for ramp-rate history lookups."""
        return "heating" if self is ThermalMode.HEAT else "cooling"


class RateSource(str, Enum):
    HISTORICAL = "historical"
    CURRENT = "current"
    DEFAULT = "default"


class Confidence(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class WeatherSnapshot(BaseModel):
    """Point-in-time environmental reading for a site (never mutated)."""

    model_config = ConfigDict(frozen=True)

    site_id: str
    captured_at: datetime
    temperature: float = Field(ge=-80, le=140)
    feels_like: float
    humidity: float = Field(ge=0, le=100)
    cloud_cover: float = Field(ge=0, le=100)
    precipitation: float = Field(ge=0)
    uv_index: float = Field(ge=0)
    wind_speed: float = Field(ge=0)
    wind_direction: float = Field(ge=0, le=360)
    condition: WeatherCondition
    illuminance: int = Field(ge=0)
    sun_elevation: float = Field(ge=-90, le=90)
    visibility: float = Field(ge=0)
    forecast: dict[str, Any] | None = None
    source: str = "open-meteo"


class ZoneScheduleSettings(BaseModel):
    """Per-zone tunable smart-start policy."""

    buffer_degrees: float = Field(default=1.0, ge=0)
    humidity_multiplier: float = Field(default=1.0, ge=0)
    min_lead_minutes: int = Field(default=10, ge=0)
    max_lead_minutes: int = Field(default=90, ge=0)
    rate_override: float | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _check_bounds(self) -> "ZoneScheduleSettings":
        if self.min_lead_minutes > self.max_lead_minutes:
            raise ValueError(
                f"min_lead_minutes ({self.min_lead_minutes}) exceeds "
                f"max_lead_minutes ({self.max_lead_minutes})"
            )
        return self


class ZoneThermalState(BaseModel):
    """Most recent thermostat/zone state for a site."""

    site_id: str
    indoor_temp: float | None = None
    indoor_humidity: float | None = Field(default=None, ge=0, le=100)
    outdoor_temp: float | None = None
    feels_like_indoor: float | None = None
    temp_trend: float | None = None  # degrees per minute, short window
    temp_accel: float | None = None  # change in trend, degrees per minute squared
    occupancy_status: str | None = None
    no_motion_minutes: float | None = Field(default=None, ge=0)
    synced_at: datetime = Field(default_factory=utcnow)


class RampRateSample(BaseModel):
    """Historical average ramp rate for a device in one mode."""

    device_id: str
    mode: str = Field(pattern="^(heating|cooling)$")
    rate: float = Field(gt=0)
    sample_count: int = Field(ge=0)


class TemperatureReading(BaseModel):
    """Single thermostat temperature sample."""

    device_id: str
    site_id: str
    temperature: float
    humidity: float | None = Field(default=None, ge=0, le=100)
    outdoor_temp: float | None = None
    recorded_at: datetime = Field(default_factory=utcnow)


class SmartStartCalculation(BaseModel):
    """Full breakdown of one lead-time decision."""

    # Inputs
    indoor_temp: float
    outdoor_temp: float | None
    indoor_humidity: float | None
    feels_like_indoor: float | None
    occupied_heat_setpoint: float
    occupied_cool_setpoint: float

    # Targets
    target_temp: float
    target_mode: ThermalMode
    delta_needed: float = Field(ge=0)

    # Rate
    avg_ramp_rate: float | None
    current_trend: float | None
    rate_used: float = Field(gt=0)
    rate_source: RateSource
    outdoor_rate_factor: float = 1.0

    # Humidity
    humidity_feels_offset: int
    humidity_time_adjustment: int

    # Occupancy
    zone_occupancy_status: str | None
    zone_no_motion_minutes: float | None
    occupancy_override: bool

    # Result
    base_lead_minutes: int
    adjusted_lead_minutes: int
    final_lead_minutes: int
    min_lead_minutes: int
    max_lead_minutes: int
    start_time_minutes: int
    confidence: Confidence


class SmartStartRecord(BaseModel):
    """Persisted decision, one per device per calendar day."""

    device_id: str
    site_id: str
    zone_id: str | None
    date: date
    scheduled_open_time: str
    hvac_start_time: str
    offset_used_minutes: int
    target_setpoint: float
    indoor_temp_at_calc: float
    outdoor_temp_at_calc: float | None
    indoor_humidity_at_calc: float | None
    feels_like_indoor_at_calc: float | None
    temp_trend_at_calc: float | None
    heating_rate_avg: float | None
    humidity_adjustment_minutes: int
    occupancy_override: bool
    next_recommended_offset: int
    confidence: Confidence
    algorithm_version: int = 2
    calculation_detail: SmartStartCalculation
    hit_guardrail: bool
    computed_at: datetime = Field(default_factory=utcnow)
