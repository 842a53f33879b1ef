"""Smart-start lead time calculation.

Decides how many minutes before a zone's opening time conditioning has to
start so the occupied setpoint is reached on time. Every factor that feeds
the decision is kept on the returned ``SmartStartCalculation``:

1. Heat vs cool from the indoor temperature against the setpoint midpoint
2. Target = setpoint plus/minus the zone's comfort buffer
3. Ramp rate: settings override, historical average, live trend, or default
4. Outdoor correction for default heating rates in cold weather
5. Humidity time correction scaled by the zone multiplier
6. Clamp to the zone's min/max lead minutes
"""

from datetime import date
from typing import TYPE_CHECKING

import structlog

from smartstart.config import get_settings
from smartstart.engine.sources import (
    CalculationSink,
    RampRateSource,
    SettingsSource,
    ThermalStateSource,
    WeatherSource,
)
from smartstart.errors import MissingSettings, MissingThermalState, PersistenceError
from smartstart.models import (
    Confidence,
    RateSource,
    SmartStartCalculation,
    SmartStartRecord,
    ThermalMode,
    ZoneScheduleSettings,
    ZoneThermalState,
)
from smartstart.units import (
    minutes_to_time_str,
    round_half_up,
    round_to,
    time_str_to_minutes,
    utcnow,
)
from smartstart.weather.client import is_stale

if TYPE_CHECKING:
    from smartstart.storage import Storage

log = structlog.get_logger()

ALGORITHM_VERSION = 2

DEFAULT_INDOOR_TEMP = 65.0
# Conservative rates when no history is available (degrees/min)
DEFAULT_HEAT_RATE = 0.15
DEFAULT_COOL_RATE = 0.10
# Rates at or below this are treated as no measurable change
MIN_USABLE_RATE = 0.01

# Outdoor baseline considered "mild" for heat-loss corrections
MILD_OUTDOOR_TEMP = 65.0
OUTDOOR_SEVERE_DELTA = 40.0
OUTDOOR_COLD_DELTA = 20.0
OUTDOOR_SEVERE_FACTOR = 0.6
OUTDOOR_COLD_FACTOR = 0.8

HUMID_HEAT_THRESHOLD = 55.0
HUMID_COOL_THRESHOLD = 60.0
DRY_HEAT_THRESHOLD = 30.0

RECENT_MOTION_MINUTES = 10


class SmartStartEngine:
    """Computes and records one smart-start decision per device per day."""

    def __init__(
        self,
        settings_source: SettingsSource,
        state_source: ThermalStateSource,
        ramp_rates: RampRateSource,
        sink: CalculationSink,
        weather_source: WeatherSource | None = None,
        weather_stale_minutes: int | None = None,
    ) -> None:
        self._settings_source = settings_source
        self._state_source = state_source
        self._ramp_rates = ramp_rates
        self._sink = sink
        self._weather_source = weather_source
        if weather_stale_minutes is None:
            weather_stale_minutes = get_settings().weather_stale_minutes
        self._weather_stale_minutes = weather_stale_minutes

    @classmethod
    def from_storage(cls, storage: "Storage") -> "SmartStartEngine":
        """Engine reading from and writing to one Storage."""
        return cls(storage, storage, storage, storage, weather_source=storage)

    def calculate(
        self,
        site_id: str,
        device_id: str,
        zone_id: str | None,
        open_minutes: int,
        occupied_heat: float,
        occupied_cool: float,
    ) -> SmartStartCalculation:
        """Compute the lead time for one opening (minutes from midnight)."""
        settings = self._load_settings(zone_id)
        state = self._load_state(site_id)

        indoor = state.indoor_temp if state.indoor_temp is not None else DEFAULT_INDOOR_TEMP
        humidity = state.indoor_humidity
        outdoor = state.outdoor_temp
        if outdoor is None:
            outdoor = self._outdoor_from_weather(site_id)
        trend = state.temp_trend

        midpoint = (occupied_heat + occupied_cool) / 2
        mode = ThermalMode.HEAT if indoor < midpoint else ThermalMode.COOL
        if mode is ThermalMode.HEAT:
            target = occupied_heat + settings.buffer_degrees
        else:
            target = occupied_cool - settings.buffer_degrees
        delta = abs(target - indoor)

        historical: float | None = None
        if settings.rate_override:
            # An operator-set rate counts as known data
            rate, source = settings.rate_override, RateSource.HISTORICAL
        else:
            historical = self._historical_rate(device_id, mode)
            if historical is not None and abs(historical) > MIN_USABLE_RATE:
                rate, source = abs(historical), RateSource.HISTORICAL
            elif trend is not None and abs(trend) > MIN_USABLE_RATE:
                rate, source = abs(trend), RateSource.CURRENT
            else:
                rate = DEFAULT_HEAT_RATE if mode is ThermalMode.HEAT else DEFAULT_COOL_RATE
                source = RateSource.DEFAULT

        outdoor_factor = 1.0
        if source is RateSource.DEFAULT and mode is ThermalMode.HEAT and outdoor is not None:
            outdoor_factor = outdoor_rate_factor(outdoor)
            rate *= outdoor_factor

        base_lead = delta / rate

        feels_offset, humidity_adj = humidity_correction(mode, humidity)
        humidity_adj = round_half_up(humidity_adj * settings.humidity_multiplier)

        occupancy_override = (
            state.occupancy_status == "occupied"
            and state.no_motion_minutes is not None
            and state.no_motion_minutes < RECENT_MOTION_MINUTES
        )

        adjusted_lead = base_lead + humidity_adj
        final_lead = clamp_lead(round_half_up(adjusted_lead), settings)
        start_minutes = open_minutes - final_lead

        calc = SmartStartCalculation(
            indoor_temp=indoor,
            outdoor_temp=outdoor,
            indoor_humidity=humidity,
            feels_like_indoor=state.feels_like_indoor,
            occupied_heat_setpoint=occupied_heat,
            occupied_cool_setpoint=occupied_cool,
            target_temp=target,
            target_mode=mode,
            delta_needed=round_to(delta, 1),
            avg_ramp_rate=historical,
            current_trend=trend,
            rate_used=round_to(rate, 3) or rate,
            rate_source=source,
            outdoor_rate_factor=outdoor_factor,
            humidity_feels_offset=feels_offset,
            humidity_time_adjustment=humidity_adj,
            zone_occupancy_status=state.occupancy_status,
            zone_no_motion_minutes=state.no_motion_minutes,
            occupancy_override=occupancy_override,
            base_lead_minutes=round_half_up(base_lead),
            adjusted_lead_minutes=round_half_up(adjusted_lead),
            final_lead_minutes=final_lead,
            min_lead_minutes=settings.min_lead_minutes,
            max_lead_minutes=settings.max_lead_minutes,
            start_time_minutes=start_minutes,
            confidence=classify_confidence(source, humidity, outdoor),
        )
        log.info(
            "smart_start_calculated",
            site_id=site_id,
            device_id=device_id,
            mode=mode.value,
            rate_source=source.value,
            final_lead_minutes=final_lead,
            confidence=calc.confidence.value,
        )
        return calc

    def run(
        self,
        site_id: str,
        device_id: str,
        zone_id: str | None,
        scheduled_open_time: str,
        occupied_heat: float,
        occupied_cool: float,
        on_date: date | None = None,
    ) -> SmartStartRecord:
        """Calculate and upsert the decision for ``device_id`` on ``on_date``.

        Raises:
            PersistenceError: if the decision record could not be written.
        """
        open_minutes = time_str_to_minutes(scheduled_open_time)
        calc = self.calculate(
            site_id, device_id, zone_id, open_minutes, occupied_heat, occupied_cool
        )
        record = build_record(
            calc,
            site_id=site_id,
            device_id=device_id,
            zone_id=zone_id,
            open_minutes=open_minutes,
            on_date=on_date or utcnow().date(),
        )

        try:
            self._sink.save_calculation(record)
        except Exception as e:
            log.error("smart_start_persist_failed", device_id=device_id, error=str(e))
            raise PersistenceError(
                f"Failed to save smart-start decision for {device_id} on {record.date}"
            ) from e

        log.info(
            "smart_start_persisted",
            device_id=device_id,
            date=str(record.date),
            hvac_start_time=record.hvac_start_time,
            hit_guardrail=record.hit_guardrail,
        )
        return record

    def _load_settings(self, zone_id: str | None) -> ZoneScheduleSettings:
        if zone_id is None:
            return ZoneScheduleSettings()
        try:
            settings = self._settings_source.zone_settings(zone_id)
        except MissingSettings:
            settings = None
        if settings is None:
            log.info("zone_settings_defaulted", zone_id=zone_id)
            return ZoneScheduleSettings()
        return settings

    def _load_state(self, site_id: str) -> ZoneThermalState:
        try:
            state = self._state_source.latest_thermal_state(site_id)
        except MissingThermalState:
            state = None
        if state is None:
            log.info("thermal_state_defaulted", site_id=site_id, indoor_temp=DEFAULT_INDOOR_TEMP)
            return ZoneThermalState(site_id=site_id)
        return state

    def _historical_rate(self, device_id: str, mode: ThermalMode) -> float | None:
        try:
            return self._ramp_rates.average_ramp_rate(device_id, mode.ramp_mode)
        except Exception as e:
            log.warning("ramp_rate_unavailable", device_id=device_id, error=str(e))
            return None

    def _outdoor_from_weather(self, site_id: str) -> float | None:
        """Outdoor temperature from a fresh weather snapshot, if there is one."""
        if self._weather_source is None:
            return None
        try:
            snapshot = self._weather_source.latest_weather_snapshot(site_id)
        except Exception as e:
            log.warning("weather_lookup_failed", site_id=site_id, error=str(e))
            return None
        if snapshot is None or is_stale(snapshot.captured_at, self._weather_stale_minutes):
            return None
        return snapshot.temperature


def outdoor_rate_factor(outdoor_temp: float) -> float:
    """Slow-down applied to default heating rates when it is cold outside."""
    outdoor_delta = MILD_OUTDOOR_TEMP - outdoor_temp
    if outdoor_delta > OUTDOOR_SEVERE_DELTA:
        return OUTDOOR_SEVERE_FACTOR
    if outdoor_delta > OUTDOOR_COLD_DELTA:
        return OUTDOOR_COLD_FACTOR
    return 1.0


def humidity_correction(mode: ThermalMode, humidity: float | None) -> tuple[int, int]:
    """Return (feels-like offset in degrees, lead time adjustment in minutes).

    Humid air slows both heating and cooling; dry air heats faster.
    """
    if humidity is None:
        return 0, 0
    if mode is ThermalMode.HEAT and humidity > HUMID_HEAT_THRESHOLD:
        excess = humidity - HUMID_HEAT_THRESHOLD
        return round_half_up(excess * 0.1), round_half_up((excess / 10) * 5)
    if mode is ThermalMode.COOL and humidity > HUMID_COOL_THRESHOLD:
        excess = humidity - HUMID_COOL_THRESHOLD
        return round_half_up(excess * 0.15), round_half_up((excess / 10) * 5)
    if mode is ThermalMode.HEAT and humidity < DRY_HEAT_THRESHOLD:
        return 0, -round_half_up(((DRY_HEAT_THRESHOLD - humidity) / 10) * 3)
    return 0, 0


def clamp_lead(minutes: int, settings: ZoneScheduleSettings) -> int:
    return max(settings.min_lead_minutes, min(settings.max_lead_minutes, minutes))


def classify_confidence(
    source: RateSource, humidity: float | None, outdoor: float | None
) -> Confidence:
    if source is RateSource.HISTORICAL and humidity is not None and outdoor is not None:
        return Confidence.HIGH
    if source is not RateSource.DEFAULT or humidity is not None:
        return Confidence.MEDIUM
    return Confidence.LOW


def build_record(
    calc: SmartStartCalculation,
    site_id: str,
    device_id: str,
    zone_id: str | None,
    open_minutes: int,
    on_date: date,
) -> SmartStartRecord:
    """Flatten a calculation into the persisted per-day record."""
    hit_guardrail = (
        calc.final_lead_minutes == calc.min_lead_minutes
        or calc.final_lead_minutes == calc.max_lead_minutes
        or calc.final_lead_minutes == calc.start_time_minutes
    )
    return SmartStartRecord(
        device_id=device_id,
        site_id=site_id,
        zone_id=zone_id,
        date=on_date,
        scheduled_open_time=minutes_to_time_str(open_minutes),
        hvac_start_time=minutes_to_time_str(calc.start_time_minutes),
        offset_used_minutes=calc.final_lead_minutes,
        target_setpoint=calc.target_temp,
        indoor_temp_at_calc=calc.indoor_temp,
        outdoor_temp_at_calc=calc.outdoor_temp,
        indoor_humidity_at_calc=calc.indoor_humidity,
        feels_like_indoor_at_calc=calc.feels_like_indoor,
        temp_trend_at_calc=calc.current_trend,
        heating_rate_avg=calc.avg_ramp_rate,
        humidity_adjustment_minutes=calc.humidity_time_adjustment,
        occupancy_override=calc.occupancy_override,
        next_recommended_offset=calc.final_lead_minutes,
        confidence=calc.confidence,
        algorithm_version=ALGORITHM_VERSION,
        calculation_detail=calc,
        hit_guardrail=hit_guardrail,
    )
