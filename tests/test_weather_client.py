"""Tests for the weather snapshot service."""

from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

import httpx
import pytest

from smartstart.errors import WeatherUnavailable
from smartstart.models import WeatherCondition, ZoneThermalState
from smartstart.storage import Storage
from smartstart.weather import WeatherClient, classify_condition, is_stale, sync_weather

CAPTURED_AT = datetime(2024, 6, 1, 16, 0)


@pytest.fixture
def payload() -> dict[str, Any]:
    """Open-Meteo style current + hourly response."""
    return {
        "latitude": 40.71,
        "longitude": -74.01,
        "current": {
            "time": "2024-06-01T16:00",
            "temperature_2m": 78.4,
            "relative_humidity_2m": 58,
            "apparent_temperature": 80.1,
            "cloud_cover": 25,
            "precipitation": 0.0,
            "uv_index": 7.2,
            "wind_speed_10m": 9.3,
            "wind_direction_10m": 210,
            "visibility": 24_140,
            "weather_code": 2,
        },
        "hourly": {
            "time": ["2024-06-01T00:00", "2024-06-01T01:00"],
            "temperature_2m": [70.2, 69.5],
            "cloud_cover": [10, 15],
            "uv_index": [0.0, 0.0],
        },
    }


def make_client(handler: Callable[[httpx.Request], httpx.Response]) -> WeatherClient:
    return WeatherClient(
        base_url="https://weather.test/v1/forecast",
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture
def storage() -> Storage:
    return Storage(":memory:")


class TestClassifyCondition:
    @pytest.mark.parametrize(
        ("code", "expected"),
        [
            (0, WeatherCondition.CLEAR),
            (1, WeatherCondition.PARTLY_CLOUDY),
            (3, WeatherCondition.PARTLY_CLOUDY),
            (45, WeatherCondition.FOGGY),
            (53, WeatherCondition.DRIZZLE),
            (63, WeatherCondition.RAIN),
            (75, WeatherCondition.SNOW),
            (81, WeatherCondition.RAIN_HEAVY),
            (86, WeatherCondition.SNOW_HEAVY),
            (95, WeatherCondition.THUNDERSTORM),
            (99, WeatherCondition.THUNDERSTORM),
            (100, WeatherCondition.UNKNOWN),
            (-1, WeatherCondition.UNKNOWN),
            (None, WeatherCondition.UNKNOWN),
        ],
    )
    def test_buckets(self, code: int | None, expected: WeatherCondition) -> None:
        assert classify_condition(code) is expected


class TestIsStale:
    def test_missing_timestamp_is_stale(self) -> None:
        assert is_stale(None)

    def test_fresh_snapshot(self) -> None:
        now = datetime(2024, 6, 1, 12, 0)
        assert not is_stale(now - timedelta(minutes=29), now=now)

    def test_exactly_at_threshold_is_not_stale(self) -> None:
        now = datetime(2024, 6, 1, 12, 0)
        assert not is_stale(now - timedelta(minutes=30), now=now)

    def test_old_snapshot(self) -> None:
        now = datetime(2024, 6, 1, 12, 0)
        assert is_stale(now - timedelta(minutes=31), now=now)

    def test_custom_threshold(self) -> None:
        now = datetime(2024, 6, 1, 12, 0)
        assert is_stale(now - timedelta(minutes=10), max_age_minutes=5, now=now)


class TestWeatherClient:
    def test_fetch_snapshot(self, payload: dict[str, Any]) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=payload)

        with make_client(handler) as client:
            snapshot = client.fetch_snapshot("site-1", 40.71, -74.01, now=CAPTURED_AT)

        assert snapshot.site_id == "site-1"
        assert snapshot.captured_at == CAPTURED_AT
        assert snapshot.temperature == 78.4
        assert snapshot.feels_like == 80.1
        assert snapshot.humidity == 58
        assert snapshot.condition is WeatherCondition.PARTLY_CLOUDY
        assert snapshot.visibility == 24_140
        assert snapshot.forecast == payload["hourly"]
        assert snapshot.sun_elevation > 0
        assert snapshot.illuminance > 0

        params = seen[0].url.params
        assert params["temperature_unit"] == "fahrenheit"
        assert params["wind_speed_unit"] == "mph"
        assert "weather_code" in params["current"]

    def test_missing_uv_and_visibility_use_defaults(self, payload: dict[str, Any]) -> None:
        del payload["current"]["uv_index"]
        payload["current"]["visibility"] = None

        with make_client(lambda request: httpx.Response(200, json=payload)) as client:
            snapshot = client.fetch_snapshot("site-1", 40.71, -74.01, now=CAPTURED_AT)

        assert snapshot.uv_index == 0
        assert snapshot.visibility == 10_000

    def test_zero_visibility_is_kept(self, payload: dict[str, Any]) -> None:
        payload["current"]["visibility"] = 0
        payload["current"]["weather_code"] = 45

        with make_client(lambda request: httpx.Response(200, json=payload)) as client:
            snapshot = client.fetch_snapshot("site-1", 40.71, -74.01, now=CAPTURED_AT)

        assert snapshot.visibility == 0
        assert snapshot.condition is WeatherCondition.FOGGY

    def test_sun_just_below_horizon(
        self, payload: dict[str, Any], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(
            "smartstart.weather.client.sun_elevation", lambda lat, lon, when=None: -0.5
        )

        with make_client(lambda request: httpx.Response(200, json=payload)) as client:
            snapshot = client.fetch_snapshot("site-1", 40.71, -74.01, now=CAPTURED_AT)

        assert snapshot.sun_elevation == -0.5
        # 400 lux twilight value at 25% cloud
        assert snapshot.illuminance == 310

    def test_server_error_raises_weather_unavailable(self) -> None:
        with make_client(lambda request: httpx.Response(503)) as client:
            with pytest.raises(WeatherUnavailable):
                client.fetch_snapshot("site-1", 40.71, -74.01)

    def test_transport_error_raises_weather_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with make_client(handler) as client:
            with pytest.raises(WeatherUnavailable):
                client.fetch_snapshot("site-1", 40.71, -74.01)

    def test_timeout_raises_weather_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with make_client(handler) as client:
            with pytest.raises(WeatherUnavailable):
                client.fetch_snapshot("site-1", 40.71, -74.01)

    def test_missing_current_block_raises(self, payload: dict[str, Any]) -> None:
        del payload["current"]
        with make_client(lambda request: httpx.Response(200, json=payload)) as client:
            with pytest.raises(WeatherUnavailable):
                client.fetch_snapshot("site-1", 40.71, -74.01)

    def test_missing_required_field_raises(self, payload: dict[str, Any]) -> None:
        del payload["current"]["temperature_2m"]
        with make_client(lambda request: httpx.Response(200, json=payload)) as client:
            with pytest.raises(WeatherUnavailable):
                client.fetch_snapshot("site-1", 40.71, -74.01)

    def test_invalid_json_raises(self) -> None:
        with make_client(lambda request: httpx.Response(200, text="<html>oops</html>")) as client:
            with pytest.raises(WeatherUnavailable):
                client.fetch_snapshot("site-1", 40.71, -74.01)


class TestSyncWeather:
    def test_persists_snapshot_and_updates_outdoor_temp(
        self, storage: Storage, payload: dict[str, Any]
    ) -> None:
        storage.save_thermal_state(ZoneThermalState(site_id="site-1", indoor_temp=70.0))

        with make_client(lambda request: httpx.Response(200, json=payload)) as client:
            snapshot = sync_weather(client, storage, "site-1", 40.71, -74.01)

        latest = storage.latest_weather_snapshot("site-1")
        assert latest is not None
        assert latest.temperature == snapshot.temperature
        assert latest.forecast == payload["hourly"]

        state = storage.latest_thermal_state("site-1")
        assert state is not None
        assert state.outdoor_temp == 78.4
        assert state.indoor_temp == 70.0

    def test_failed_fetch_writes_nothing(self, storage: Storage) -> None:
        with make_client(lambda request: httpx.Response(500)) as client:
            with pytest.raises(WeatherUnavailable):
                sync_weather(client, storage, "site-1", 40.71, -74.01)

        assert storage.count_rows("weather_snapshots") == 0

    def test_site_without_state_row_still_persists(
        self, storage: Storage, payload: dict[str, Any]
    ) -> None:
        with make_client(lambda request: httpx.Response(200, json=payload)) as client:
            sync_weather(client, storage, "site-2", 40.71, -74.01)

        assert storage.count_rows("weather_snapshots") == 1
        assert storage.latest_thermal_state("site-2") is None
