"""Command-line interface for the smart-start pipeline."""

from pathlib import Path

import duckdb
import structlog
import typer
from rich.console import Console
from rich.table import Table

from smartstart.config import get_settings
from smartstart.engine import SmartStartEngine
from smartstart.errors import PersistenceError, WeatherUnavailable
from smartstart.history import record_reading
from smartstart.models import SmartStartCalculation, TemperatureReading, ZoneThermalState
from smartstart.storage import Storage
from smartstart.units import minutes_to_time_str
from smartstart.weather import WeatherClient, is_stale, sync_weather

# Configure structured logging
structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ]
)

app = typer.Typer(
    name="smartstart",
    help="Predictive HVAC pre-conditioning: weather snapshots and smart-start lead times",
    no_args_is_help=True,
)
console = Console()

DB_OPTION = typer.Option(None, help="Database path (default: SMARTSTART_DB_PATH)")


@app.command()
def weather(
    site_id: str = typer.Option(..., help="Site identifier"),
    lat: float = typer.Option(..., help="Site latitude"),
    lon: float = typer.Option(..., help="Site longitude"),
    db_path: Path | None = DB_OPTION,
) -> None:
    """Fetch current conditions for a site and append a snapshot."""
    console.print(f"[bold blue]Fetching weather for {site_id}...[/bold blue]")

    try:
        with WeatherClient() as client, Storage(db_path) as storage:
            snapshot = sync_weather(client, storage, site_id, lat, lon)
    except WeatherUnavailable as e:
        console.print(f"[bold red]Weather unavailable:[/bold red] {e}")
        raise typer.Exit(code=1) from e
    except duckdb.Error as e:
        console.print(f"[bold red]Snapshot not saved:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    table = Table(title=f"Weather Snapshot ({snapshot.captured_at:%Y-%m-%d %H:%M} UTC)")
    table.add_column("Field", style="cyan")
    table.add_column("Value", justify="right", style="bold")
    table.add_row("Condition", snapshot.condition.value)
    table.add_row("Temperature", f"{snapshot.temperature:.1f}°F")
    table.add_row("Feels like", f"{snapshot.feels_like:.1f}°F")
    table.add_row("Humidity", f"{snapshot.humidity:.0f}%")
    table.add_row("Cloud cover", f"{snapshot.cloud_cover:.0f}%")
    table.add_row("UV index", f"{snapshot.uv_index:.1f}")
    table.add_row("Wind", f"{snapshot.wind_speed:.1f} mph @ {snapshot.wind_direction:.0f}°")
    table.add_row("Sun elevation", f"{snapshot.sun_elevation:.1f}°")
    table.add_row("Illuminance", f"{snapshot.illuminance:,} lux")
    console.print(table)


@app.command()
def reading(
    site_id: str = typer.Option(..., help="Site identifier"),
    device_id: str = typer.Option(..., help="Thermostat device identifier"),
    temp: float = typer.Option(..., help="Indoor temperature (°F)"),
    humidity: float | None = typer.Option(None, help="Indoor relative humidity (%)"),
    outdoor: float | None = typer.Option(None, help="Outdoor temperature (°F)"),
    db_path: Path | None = DB_OPTION,
) -> None:
    """Record a thermostat reading and show the short-window trend."""
    sample = TemperatureReading(
        device_id=device_id,
        site_id=site_id,
        temperature=temp,
        humidity=humidity,
        outdoor_temp=outdoor,
    )
    with Storage(db_path) as storage:
        trend, accel = record_reading(storage, sample)
        ramps = [storage.ramp_rate_sample(device_id, mode) for mode in ("heating", "cooling")]

    if trend is None:
        console.print("Reading recorded (not enough recent history for a trend)")
    else:
        line = f"Reading recorded, trend [bold]{trend:+.3f}°F/min[/bold]"
        if accel is not None:
            line += f", accel {accel:+.3f}°F/min²"
        console.print(line)

    for ramp in ramps:
        if ramp is not None:
            console.print(
                f"Average {ramp.mode} rate {ramp.rate:.3f}°F/min "
                f"({ramp.sample_count} ramp segments)"
            )


@app.command()
def state(
    site_id: str = typer.Option(..., help="Site identifier"),
    indoor: float | None = typer.Option(None, help="Indoor temperature (°F)"),
    humidity: float | None = typer.Option(None, help="Indoor relative humidity (%)"),
    outdoor: float | None = typer.Option(None, help="Outdoor temperature (°F)"),
    feels_like: float | None = typer.Option(None, help="Feels-like indoor temperature (°F)"),
    trend: float | None = typer.Option(None, help="Temperature trend (°F/min)"),
    occupancy: str | None = typer.Option(None, help="Occupancy status, e.g. 'occupied'"),
    no_motion: float | None = typer.Option(None, help="Minutes since last motion"),
    db_path: Path | None = DB_OPTION,
) -> None:
    """Write the current thermal state for a site."""
    zone_state = ZoneThermalState(
        site_id=site_id,
        indoor_temp=indoor,
        indoor_humidity=humidity,
        outdoor_temp=outdoor,
        feels_like_indoor=feels_like,
        temp_trend=trend,
        occupancy_status=occupancy,
        no_motion_minutes=no_motion,
    )
    with Storage(db_path) as storage:
        storage.save_thermal_state(zone_state)
    console.print(f"[bold green]Thermal state saved for {site_id}[/bold green]")


@app.command()
def settings(
    zone_id: str = typer.Option(..., help="HVAC zone identifier"),
    buffer: float | None = typer.Option(None, help="Comfort buffer (°F)"),
    humidity_multiplier: float | None = typer.Option(None, help="Humidity sensitivity"),
    min_lead: int | None = typer.Option(None, help="Minimum lead minutes"),
    max_lead: int | None = typer.Option(None, help="Maximum lead minutes"),
    rate_override: float | None = typer.Option(None, help="Manual ramp rate (°F/min)"),
    db_path: Path | None = DB_OPTION,
) -> None:
    """Update smart-start settings for a zone (only the options given)."""
    fields = {
        "buffer_degrees": buffer,
        "humidity_multiplier": humidity_multiplier,
        "min_lead_minutes": min_lead,
        "max_lead_minutes": max_lead,
        "rate_override": rate_override,
    }
    fields = {k: v for k, v in fields.items() if v is not None}
    if not fields:
        console.print("[yellow]No fields to update.[/yellow]")
        raise typer.Exit(code=1)

    try:
        with Storage(db_path) as storage:
            updated = storage.upsert_zone_settings(zone_id, **fields)
    except ValueError as e:
        console.print(f"[bold red]Invalid settings:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    table = Table(title=f"Zone {zone_id} Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", justify="right", style="bold")
    for name, value in updated.model_dump().items():
        table.add_row(name, "auto" if value is None else str(value))
    console.print(table)


@app.command()
def schedule(
    site_id: str = typer.Option(..., help="Site identifier"),
    device_id: str = typer.Option(..., help="Thermostat device identifier"),
    zone_id: str | None = typer.Option(None, help="HVAC zone identifier"),
    open_time: str = typer.Option("06:00", "--open", help="Scheduled opening time (HH:MM)"),
    heat: float = typer.Option(68.0, help="Occupied heating setpoint (°F)"),
    cool: float = typer.Option(76.0, help="Occupied cooling setpoint (°F)"),
    db_path: Path | None = DB_OPTION,
) -> None:
    """Compute and record today's smart-start decision for a zone."""
    console.print(f"[bold blue]Scheduling {device_id} for {open_time}...[/bold blue]")

    try:
        with Storage(db_path) as storage:
            engine = SmartStartEngine.from_storage(storage)
            record = engine.run(site_id, device_id, zone_id, open_time, heat, cool)
    except PersistenceError as e:
        console.print(f"[bold red]Decision not saved:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    console.print(_breakdown_table(record.calculation_detail))
    style = "yellow" if record.hit_guardrail else "green"
    console.print(
        f"\n[bold {style}]Start HVAC at {record.hvac_start_time} "
        f"({record.offset_used_minutes} min lead, {record.confidence.value} confidence)"
        f"[/bold {style}]"
    )


@app.command()
def status(db_path: Path | None = DB_OPTION) -> None:
    """Show stored data counts and the latest decisions."""
    path = db_path or get_settings().db_path
    if not Path(path).exists():
        console.print("[yellow]No database found. Run 'smartstart state' first.[/yellow]")
        return

    with Storage(path) as storage:
        counts = {
            table: storage.count_rows(table)
            for table in (
                "weather_snapshots",
                "thermal_state",
                "temperature_history",
                "zone_settings",
                "smart_start_log",
            )
        }
        recent = storage.get_recent_calculations(limit=10)
        sites = {r.site_id for r in recent}
        snapshots = {site: storage.latest_weather_snapshot(site) for site in sites}

    console.print("[bold]Pipeline Status[/bold]\n")
    for table_name, count in counts.items():
        console.print(f"{table_name + ':':<22}{count:,}")
    console.print()

    if not recent:
        return

    table = Table(title="Latest Decisions")
    table.add_column("Date")
    table.add_column("Device", style="cyan")
    table.add_column("Open")
    table.add_column("Start", style="bold")
    table.add_column("Lead", justify="right")
    table.add_column("Confidence")
    table.add_column("Weather")
    for r in recent:
        snapshot = snapshots.get(r.site_id)
        if snapshot is None:
            weather_note = "[dim]none[/dim]"
        elif is_stale(snapshot.captured_at, get_settings().weather_stale_minutes):
            weather_note = "[yellow]stale[/yellow]"
        else:
            weather_note = "[green]fresh[/green]"
        lead = f"{r.offset_used_minutes}" + (" [yellow]![/yellow]" if r.hit_guardrail else "")
        table.add_row(
            str(r.date),
            r.device_id,
            r.scheduled_open_time[:5],
            r.hvac_start_time[:5],
            lead,
            r.confidence.value,
            weather_note,
        )
    console.print(table)


def _breakdown_table(calc: SmartStartCalculation) -> Table:
    table = Table(title="Smart Start Breakdown")
    table.add_column("Factor", style="cyan")
    table.add_column("Value", justify="right", style="bold")

    def fmt(value: float | None, suffix: str = "") -> str:
        return "-" if value is None else f"{value:g}{suffix}"

    table.add_row("Mode", calc.target_mode.value)
    table.add_row("Indoor", fmt(calc.indoor_temp, "°F"))
    table.add_row("Outdoor", fmt(calc.outdoor_temp, "°F"))
    table.add_row("Humidity", fmt(calc.indoor_humidity, "%"))
    table.add_row("Target", fmt(calc.target_temp, "°F"))
    table.add_row("Delta needed", fmt(calc.delta_needed, "°F"))
    table.add_row("Rate used", f"{calc.rate_used:g}°F/min ({calc.rate_source.value})")
    table.add_row("Outdoor rate factor", fmt(calc.outdoor_rate_factor))
    table.add_row("Base lead", f"{calc.base_lead_minutes} min")
    table.add_row("Humidity adjustment", f"{calc.humidity_time_adjustment:+d} min")
    table.add_row("Final lead", f"{calc.final_lead_minutes} min")
    table.add_row("Start time", minutes_to_time_str(calc.start_time_minutes)[:5])
    table.add_row("Occupancy override", "yes" if calc.occupancy_override else "no")
    return table


if __name__ == "__main__":
    app()
