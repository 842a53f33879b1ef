"""Fetch-and-persist step for a site's weather snapshot."""

import duckdb
import structlog

from smartstart.models import WeatherSnapshot
from smartstart.storage import Storage
from smartstart.weather.client import WeatherClient

log = structlog.get_logger()


def sync_weather(
    client: WeatherClient,
    storage: Storage,
    site_id: str,
    latitude: float,
    longitude: float,
) -> WeatherSnapshot:
    """Fetch a snapshot, append it to the log and refresh the site's outdoor temp.

    A fetch failure raises WeatherUnavailable before anything is written. The
    outdoor-temperature copy onto the thermal state is best effort.
    """
    snapshot = client.fetch_snapshot(site_id, latitude, longitude)
    storage.save_weather_snapshot(snapshot)

    try:
        updated = storage.update_outdoor_temp(site_id, snapshot.temperature)
    except duckdb.Error as e:
        log.warning("outdoor_temp_update_failed", site_id=site_id, error=str(e))
    else:
        log.info("outdoor_temp_updated", site_id=site_id, state_updated=updated)

    return snapshot
