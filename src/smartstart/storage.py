"""DuckDB storage layer for snapshots, zone state and smart-start decisions."""

import json
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any

import duckdb
import structlog

from smartstart.config import get_settings
from smartstart.history.ramp import ramp_rate_sample
from smartstart.models import (
    RampRateSample,
    SmartStartCalculation,
    SmartStartRecord,
    TemperatureReading,
    WeatherSnapshot,
    ZoneScheduleSettings,
    ZoneThermalState,
)
from smartstart.units import as_naive_utc, utcnow

log = structlog.get_logger()

MEMORY = ":memory:"

_SNAPSHOT_COLUMNS = (
    "site_id, captured_at, temperature, feels_like, humidity, cloud_cover, precipitation, "
    "uv_index, wind_speed, wind_direction, condition, illuminance, sun_elevation, "
    "visibility, forecast, source"
)
_STATE_COLUMNS = (
    "site_id, indoor_temp, indoor_humidity, outdoor_temp, feels_like_indoor, temp_trend, "
    "temp_accel, occupancy_status, no_motion_minutes, synced_at"
)
_SETTINGS_COLUMNS = (
    "buffer_degrees, humidity_multiplier, min_lead_minutes, max_lead_minutes, rate_override"
)
_LOG_COLUMNS = (
    "device_id, site_id, zone_id, date, scheduled_open_time, hvac_start_time, "
    "offset_used_minutes, target_setpoint, indoor_temp_at_calc, outdoor_temp_at_calc, "
    "indoor_humidity_at_calc, feels_like_indoor_at_calc, temp_trend_at_calc, "
    "heating_rate_avg, humidity_adjustment_minutes, occupancy_override, "
    "next_recommended_offset, confidence, algorithm_version, calculation_detail, "
    "hit_guardrail, computed_at"
)
_LOG_FIELDS = [c.strip() for c in _LOG_COLUMNS.split(",")]


class Storage:
    """DuckDB-based storage for all smart-start data."""

    def __init__(self, db_path: Path | str | None = None) -> None:
        settings = get_settings()
        if db_path is None:
            db_path = settings.db_path
        self._ramp_days_back = settings.ramp_rate_days_back
        if str(db_path) == MEMORY:
            self._db_path: Path | None = None
            self._con = duckdb.connect(MEMORY)
        else:
            self._db_path = Path(db_path)
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._con = duckdb.connect(str(self._db_path))
        self._init_schema()

    def _init_schema(self) -> None:
        """Create tables if they don't exist."""
        self._con.execute("""
            CREATE TABLE IF NOT EXISTS weather_snapshots (
                site_id VARCHAR,
                captured_at TIMESTAMP,
                temperature DOUBLE,
                feels_like DOUBLE,
                humidity DOUBLE,
                cloud_cover DOUBLE,
                precipitation DOUBLE,
                uv_index DOUBLE,
                wind_speed DOUBLE,
                wind_direction DOUBLE,
                condition VARCHAR,
                illuminance INTEGER,
                sun_elevation DOUBLE,
                visibility DOUBLE,
                forecast VARCHAR,
                source VARCHAR,
                PRIMARY KEY (site_id, captured_at)
            )
        """)

        self._con.execute("""
            CREATE TABLE IF NOT EXISTS zone_settings (
                zone_id VARCHAR PRIMARY KEY,
                buffer_degrees DOUBLE,
                humidity_multiplier DOUBLE,
                min_lead_minutes INTEGER,
                max_lead_minutes INTEGER,
                rate_override DOUBLE,
                updated_at TIMESTAMP
            )
        """)

        self._con.execute("""
            CREATE TABLE IF NOT EXISTS thermal_state (
                site_id VARCHAR PRIMARY KEY,
                indoor_temp DOUBLE,
                indoor_humidity DOUBLE,
                outdoor_temp DOUBLE,
                feels_like_indoor DOUBLE,
                temp_trend DOUBLE,
                temp_accel DOUBLE,
                occupancy_status VARCHAR,
                no_motion_minutes DOUBLE,
                synced_at TIMESTAMP
            )
        """)

        self._con.execute("""
            CREATE TABLE IF NOT EXISTS temperature_history (
                device_id VARCHAR,
                site_id VARCHAR,
                temperature DOUBLE,
                humidity DOUBLE,
                outdoor_temp DOUBLE,
                recorded_at TIMESTAMP,
                PRIMARY KEY (device_id, recorded_at)
            )
        """)

        self._con.execute("""
            CREATE TABLE IF NOT EXISTS smart_start_log (
                device_id VARCHAR,
                site_id VARCHAR,
                zone_id VARCHAR,
                date DATE,
                scheduled_open_time VARCHAR,
                hvac_start_time VARCHAR,
                offset_used_minutes INTEGER,
                target_setpoint DOUBLE,
                indoor_temp_at_calc DOUBLE,
                outdoor_temp_at_calc DOUBLE,
                indoor_humidity_at_calc DOUBLE,
                feels_like_indoor_at_calc DOUBLE,
                temp_trend_at_calc DOUBLE,
                heating_rate_avg DOUBLE,
                humidity_adjustment_minutes INTEGER,
                occupancy_override BOOLEAN,
                next_recommended_offset INTEGER,
                confidence VARCHAR,
                algorithm_version INTEGER,
                calculation_detail VARCHAR,
                hit_guardrail BOOLEAN,
                computed_at TIMESTAMP,
                PRIMARY KEY (device_id, date)
            )
        """)

        log.info("schema_initialized", db_path=str(self._db_path or MEMORY))

    # Weather snapshots (append-only)

    def save_weather_snapshot(self, snapshot: WeatherSnapshot) -> None:
        """Append a snapshot; an existing (site, captured_at) row is an error."""
        self._con.execute(
            f"INSERT INTO weather_snapshots ({_SNAPSHOT_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [
                snapshot.site_id,
                as_naive_utc(snapshot.captured_at),
                snapshot.temperature,
                snapshot.feels_like,
                snapshot.humidity,
                snapshot.cloud_cover,
                snapshot.precipitation,
                snapshot.uv_index,
                snapshot.wind_speed,
                snapshot.wind_direction,
                snapshot.condition.value,
                snapshot.illuminance,
                snapshot.sun_elevation,
                snapshot.visibility,
                json.dumps(snapshot.forecast) if snapshot.forecast is not None else None,
                snapshot.source,
            ],
        )
        log.info("weather_snapshot_saved", site_id=snapshot.site_id)

    def latest_weather_snapshot(self, site_id: str) -> WeatherSnapshot | None:
        rows = self.get_weather_snapshots(site_id, limit=1)
        return rows[0] if rows else None

    def get_weather_snapshots(self, site_id: str, limit: int = 100) -> list[WeatherSnapshot]:
        result = self._con.execute(
            f"SELECT {_SNAPSHOT_COLUMNS} FROM weather_snapshots "
            "WHERE site_id = ? ORDER BY captured_at DESC LIMIT ?",
            [site_id, limit],
        ).fetchall()
        return [
            WeatherSnapshot(
                site_id=row[0],
                captured_at=row[1],
                temperature=row[2],
                feels_like=row[3],
                humidity=row[4],
                cloud_cover=row[5],
                precipitation=row[6],
                uv_index=row[7],
                wind_speed=row[8],
                wind_direction=row[9],
                condition=row[10],
                illuminance=row[11],
                sun_elevation=row[12],
                visibility=row[13],
                forecast=json.loads(row[14]) if row[14] is not None else None,
                source=row[15],
            )
            for row in result
        ]

    # Zone settings

    def zone_settings(self, zone_id: str) -> ZoneScheduleSettings | None:
        row = self._con.execute(
            f"SELECT {_SETTINGS_COLUMNS} FROM zone_settings WHERE zone_id = ?", [zone_id]
        ).fetchone()
        if row is None:
            return None
        defaults = ZoneScheduleSettings()
        return ZoneScheduleSettings(
            buffer_degrees=row[0] if row[0] is not None else defaults.buffer_degrees,
            humidity_multiplier=row[1] if row[1] is not None else defaults.humidity_multiplier,
            min_lead_minutes=row[2] if row[2] is not None else defaults.min_lead_minutes,
            max_lead_minutes=row[3] if row[3] is not None else defaults.max_lead_minutes,
            rate_override=row[4],
        )

    def upsert_zone_settings(self, zone_id: str, **fields: Any) -> ZoneScheduleSettings:
        """Update only the given settings fields for a zone.

        Unknown field names or an empty update raise ValueError.
        """
        if not fields:
            raise ValueError("No fields to update")
        unknown = set(fields) - set(ZoneScheduleSettings.model_fields)
        if unknown:
            raise ValueError(f"Unknown settings fields: {sorted(unknown)}")

        current = self.zone_settings(zone_id) or ZoneScheduleSettings()
        merged = ZoneScheduleSettings.model_validate({**current.model_dump(), **fields})
        self._con.execute(
            f"INSERT OR REPLACE INTO zone_settings (zone_id, {_SETTINGS_COLUMNS}, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            [
                zone_id,
                merged.buffer_degrees,
                merged.humidity_multiplier,
                merged.min_lead_minutes,
                merged.max_lead_minutes,
                merged.rate_override,
                utcnow(),
            ],
        )
        log.info("zone_settings_saved", zone_id=zone_id, fields=sorted(fields))
        return merged

    # Thermal state

    def save_thermal_state(self, state: ZoneThermalState) -> None:
        self._con.execute(
            f"INSERT OR REPLACE INTO thermal_state ({_STATE_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [
                state.site_id,
                state.indoor_temp,
                state.indoor_humidity,
                state.outdoor_temp,
                state.feels_like_indoor,
                state.temp_trend,
                state.temp_accel,
                state.occupancy_status,
                state.no_motion_minutes,
                as_naive_utc(state.synced_at),
            ],
        )
        log.info("thermal_state_saved", site_id=state.site_id)

    def latest_thermal_state(self, site_id: str) -> ZoneThermalState | None:
        row = self._con.execute(
            f"SELECT {_STATE_COLUMNS} FROM thermal_state WHERE site_id = ? "
            "ORDER BY synced_at DESC LIMIT 1",
            [site_id],
        ).fetchone()
        if row is None:
            return None
        return ZoneThermalState(
            site_id=row[0],
            indoor_temp=row[1],
            indoor_humidity=row[2],
            outdoor_temp=row[3],
            feels_like_indoor=row[4],
            temp_trend=row[5],
            temp_accel=row[6],
            occupancy_status=row[7],
            no_motion_minutes=row[8],
            synced_at=row[9],
        )

    def update_outdoor_temp(self, site_id: str, outdoor_temp: float) -> bool:
        """Copy the outdoor reading onto the site's state row, if one exists."""
        return self._update_state_fields(site_id, outdoor_temp=outdoor_temp)

    def update_temp_trend(self, site_id: str, trend: float, accel: float | None = None) -> bool:
        return self._update_state_fields(site_id, temp_trend=trend, temp_accel=accel)

    def _update_state_fields(self, site_id: str, **values: float | None) -> bool:
        exists = self._con.execute(
            "SELECT 1 FROM thermal_state WHERE site_id = ?", [site_id]
        ).fetchone()
        if exists is None:
            return False
        assignments = ", ".join(f"{column} = ?" for column in values)
        self._con.execute(
            f"UPDATE thermal_state SET {assignments} WHERE site_id = ?",
            [*values.values(), site_id],
        )
        return True

    # Temperature history

    def save_reading(self, reading: TemperatureReading) -> None:
        self._con.execute(
            """
            INSERT OR REPLACE INTO temperature_history
            (device_id, site_id, temperature, humidity, outdoor_temp, recorded_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                reading.device_id,
                reading.site_id,
                reading.temperature,
                reading.humidity,
                reading.outdoor_temp,
                as_naive_utc(reading.recorded_at),
            ],
        )

    def get_readings(
        self,
        device_id: str,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[TemperatureReading]:
        """Readings for a device in ascending time order."""
        query = (
            "SELECT device_id, site_id, temperature, humidity, outdoor_temp, recorded_at "
            "FROM temperature_history WHERE device_id = ?"
        )
        params: list[object] = [device_id]
        if since is not None:
            query += " AND recorded_at >= ?"
            params.append(as_naive_utc(since))
        if until is not None:
            query += " AND recorded_at <= ?"
            params.append(as_naive_utc(until))
        query += " ORDER BY recorded_at ASC"

        result = self._con.execute(query, params).fetchall()
        return [
            TemperatureReading(
                device_id=row[0],
                site_id=row[1],
                temperature=row[2],
                humidity=row[3],
                outdoor_temp=row[4],
                recorded_at=row[5],
            )
            for row in result
        ]

    def latest_reading(self, device_id: str, before: datetime) -> TemperatureReading | None:
        """Newest reading recorded at or before ``before``."""
        row = self._con.execute(
            "SELECT device_id, site_id, temperature, humidity, outdoor_temp, recorded_at "
            "FROM temperature_history WHERE device_id = ? AND recorded_at <= ? "
            "ORDER BY recorded_at DESC LIMIT 1",
            [device_id, as_naive_utc(before)],
        ).fetchone()
        if row is None:
            return None
        return TemperatureReading(
            device_id=row[0],
            site_id=row[1],
            temperature=row[2],
            humidity=row[3],
            outdoor_temp=row[4],
            recorded_at=row[5],
        )

    def ramp_rate_sample(self, device_id: str, mode: str) -> RampRateSample | None:
        """Trimmed mean ramp rate over the device's recent history."""
        since = utcnow() - timedelta(days=self._ramp_days_back)
        return ramp_rate_sample(self.get_readings(device_id, since=since), mode)

    def average_ramp_rate(self, device_id: str, mode: str) -> float | None:
        sample = self.ramp_rate_sample(device_id, mode)
        return sample.rate if sample is not None else None

    # Smart-start decisions (one per device per day)

    def save_calculation(self, record: SmartStartRecord) -> None:
        """Upsert the decision for (device_id, date); the latest write wins."""
        values = record.model_dump(mode="python")
        values["confidence"] = record.confidence.value
        values["calculation_detail"] = record.calculation_detail.model_dump_json()
        values["computed_at"] = as_naive_utc(record.computed_at)
        placeholders = ", ".join("?" for _ in _LOG_FIELDS)
        self._con.execute(
            f"INSERT OR REPLACE INTO smart_start_log ({_LOG_COLUMNS}) VALUES ({placeholders})",
            [values[name] for name in _LOG_FIELDS],
        )
        log.info("smart_start_saved", device_id=record.device_id, date=str(record.date))

    def get_calculation(self, device_id: str, on_date: date) -> SmartStartRecord | None:
        row = self._con.execute(
            f"SELECT {_LOG_COLUMNS} FROM smart_start_log WHERE device_id = ? AND date = ?",
            [device_id, on_date],
        ).fetchone()
        return self._record_from_row(row) if row is not None else None

    def get_recent_calculations(self, limit: int = 20) -> list[SmartStartRecord]:
        result = self._con.execute(
            f"SELECT {_LOG_COLUMNS} FROM smart_start_log ORDER BY computed_at DESC LIMIT ?",
            [limit],
        ).fetchall()
        return [self._record_from_row(row) for row in result]

    def _record_from_row(self, row: tuple[Any, ...]) -> SmartStartRecord:
        values = dict(zip(_LOG_FIELDS, row, strict=True))
        values["calculation_detail"] = SmartStartCalculation.model_validate_json(
            values["calculation_detail"]
        )
        return SmartStartRecord.model_validate(values)

    def count_rows(self, table: str) -> int:
        if table not in {
            "weather_snapshots",
            "zone_settings",
            "thermal_state",
            "temperature_history",
            "smart_start_log",
        }:
            raise ValueError(f"Unknown table: {table}")
        row = self._con.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
        return int(row[0]) if row else 0

    def close(self) -> None:
        """Close database connection."""
        self._con.close()

    def __enter__(self) -> "Storage":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
