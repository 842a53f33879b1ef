"""Runtime settings loaded from environment variables."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SMARTSTART_", env_file=".env", extra="ignore")

    db_path: Path = Path("data/smartstart.duckdb")
    weather_api_url: str = "https://api.open-meteo.com/v1/forecast"
    weather_timeout_seconds: float = 10.0
    weather_stale_minutes: int = 30
    ramp_rate_days_back: int = 7


@lru_cache
def get_settings() -> Settings:
    return Settings()
