"""Tests for temperature trend and ramp rate derivation."""

from datetime import datetime, timedelta

import pytest

from smartstart.history import (
    average_ramp_rate,
    compute_trend,
    ramp_rate_sample,
    record_reading,
)
from smartstart.models import TemperatureReading, ZoneThermalState
from smartstart.storage import Storage
from smartstart.units import utcnow

BASE_TIME = datetime(2024, 1, 15, 5, 0)


def readings(
    temps: list[float], step_minutes: float = 5.0, start: datetime = BASE_TIME
) -> list[TemperatureReading]:
    return [
        TemperatureReading(
            device_id="tstat-1",
            site_id="site-1",
            temperature=t,
            recorded_at=start + timedelta(minutes=step_minutes * i),
        )
        for i, t in enumerate(temps)
    ]


@pytest.fixture
def storage() -> Storage:
    return Storage(":memory:")


class TestAverageRampRate:
    def test_steady_heating(self) -> None:
        history = readings([60.0 + i for i in range(12)])
        assert average_ramp_rate(history, "heating") == pytest.approx(0.2)

    def test_no_cooling_segments_while_heating(self) -> None:
        history = readings([60.0 + i for i in range(12)])
        assert average_ramp_rate(history, "cooling") is None

    def test_steady_cooling(self) -> None:
        history = readings([80.0 - 0.5 * i for i in range(12)])
        assert average_ramp_rate(history, "cooling") == pytest.approx(0.1)

    def test_too_few_readings(self) -> None:
        history = readings([60.0 + i for i in range(9)])
        assert average_ramp_rate(history, "heating") is None

    def test_gaps_are_skipped(self) -> None:
        history = readings([60.0 + i for i in range(12)], step_minutes=20)
        assert average_ramp_rate(history, "heating") is None

    def test_drift_below_threshold_ignored(self) -> None:
        # 0.1 degree per 5 minutes is 0.02/min
        history = readings([60.0 + 0.1 * i for i in range(12)])
        assert average_ramp_rate(history, "heating") is None

    def test_outliers_trimmed(self) -> None:
        # Ten 0.2/min segments plus one 2.0/min spike
        temps = [60.0 + i for i in range(11)]
        temps.append(temps[-1] + 10.0)
        history = readings(temps)
        assert average_ramp_rate(history, "heating") == pytest.approx(0.2)

    def test_unknown_mode_rejected(self) -> None:
        with pytest.raises(ValueError):
            average_ramp_rate(readings([60.0] * 12), "heat")


class TestTrend:
    def test_compute_trend(self) -> None:
        prev, curr = readings([60.0, 61.4], step_minutes=7)
        assert compute_trend(prev, curr) == pytest.approx(0.2)

    def test_compute_trend_needs_elapsed_time(self) -> None:
        prev, curr = readings([60.0, 61.0], step_minutes=0.25)
        assert compute_trend(prev, curr) is None

    def test_record_reading_updates_state(self, storage: Storage) -> None:
        storage.save_thermal_state(ZoneThermalState(site_id="site-1", indoor_temp=60.0))
        earlier, latest = readings([60.0, 61.4], step_minutes=7)
        assert record_reading(storage, earlier) == (None, None)

        trend, accel = record_reading(storage, latest)

        assert trend == pytest.approx(0.2)
        assert accel is None
        state = storage.latest_thermal_state("site-1")
        assert state is not None
        assert state.temp_trend == 0.2
        assert state.temp_accel is None

    def test_reading_outside_window_gives_no_trend(self, storage: Storage) -> None:
        # 12 minutes apart is older than the comparison window
        earlier, latest = readings([60.0, 61.0], step_minutes=12)
        record_reading(storage, earlier)
        assert record_reading(storage, latest) == (None, None)
        assert storage.count_rows("temperature_history") == 2

    def test_uses_newest_reading_in_window(self, storage: Storage) -> None:
        history = readings([60.0, 60.5, 61.0], step_minutes=3)
        now = TemperatureReading(
            device_id="tstat-1",
            site_id="site-1",
            temperature=62.0,
            recorded_at=BASE_TIME + timedelta(minutes=12),
        )
        for r in history:
            record_reading(storage, r)
        # Window is minutes 2-7: readings at 3 and 6, newest is 61.0 at minute 6
        trend, _ = record_reading(storage, now)
        assert trend == pytest.approx(1.0 / 6)


class TestAcceleration:
    def make_reading(self, minute: int, temperature: float) -> TemperatureReading:
        return TemperatureReading(
            device_id="tstat-1",
            site_id="site-1",
            temperature=temperature,
            recorded_at=BASE_TIME + timedelta(minutes=minute),
        )

    def test_accelerating_ramp(self, storage: Storage) -> None:
        storage.save_thermal_state(ZoneThermalState(site_id="site-1", indoor_temp=60.0))
        record_reading(storage, self.make_reading(0, 60.0))
        # 0.1/min over minutes 0-6, no reading old enough for acceleration yet
        assert record_reading(storage, self.make_reading(6, 60.6)) == (
            pytest.approx(0.1),
            None,
        )

        # 0.2/min over minutes 6-13
        trend, accel = record_reading(storage, self.make_reading(13, 62.0))

        assert trend == pytest.approx(0.2)
        assert accel == pytest.approx(0.1)
        state = storage.latest_thermal_state("site-1")
        assert state is not None
        assert state.temp_trend == 0.2
        assert state.temp_accel == 0.1

    def test_decelerating_ramp(self, storage: Storage) -> None:
        record_reading(storage, self.make_reading(0, 60.0))
        record_reading(storage, self.make_reading(6, 61.2))
        trend, accel = record_reading(storage, self.make_reading(13, 61.9))

        assert trend == pytest.approx(0.1)
        assert accel == pytest.approx(-0.1)


class TestRampRateSample:
    def test_sample_counts_ramp_segments(self) -> None:
        history = readings([60.0 + i for i in range(12)])
        sample = ramp_rate_sample(history, "heating")

        assert sample is not None
        assert sample.device_id == "tstat-1"
        assert sample.mode == "heating"
        assert sample.rate == pytest.approx(0.2)
        assert sample.sample_count == 11

    def test_not_enough_history(self) -> None:
        assert ramp_rate_sample(readings([60.0] * 12), "cooling") is None

    def test_storage_lookup(self, storage: Storage) -> None:
        start = utcnow() - timedelta(hours=1)
        for r in readings([75.0 - 0.5 * i for i in range(12)], start=start):
            storage.save_reading(r)

        sample = storage.ramp_rate_sample("tstat-1", "cooling")

        assert sample is not None
        assert sample.rate == pytest.approx(0.1)
        assert sample.sample_count == 11
        assert storage.average_ramp_rate("tstat-1", "cooling") == sample.rate
