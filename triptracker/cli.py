"""CLI entry point for the trip tracker."""

from __future__ import annotations

import itertools
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from triptracker.config import DEFAULT_DB_PATH, MONITOR_INTERVAL_SECONDS, TrackerConfig
from triptracker.errors import TripTrackerError
from triptracker.ingest.itinerary import load_itinerary_file
from triptracker.ingest.traces import load_trace_csv
from triptracker.models import RiderProfile, TrackedJourney
from triptracker.monitor.fleet import FleetAnalysisScheduler
from triptracker.monitor.trip_check import CheckMonitoredTrip
from triptracker.output.cli_formatter import (
    add_replay_row,
    build_replay_table,
    print_cycle_report,
    print_itinerary_header,
)
from triptracker.store.sqlite_store import SqliteTripStore
from triptracker.tracking.analysis import analyze_position
from triptracker.tracking.position import resolve_position

app = typer.Typer(help="Trip tracker: follow travelers along planned itineraries.")
console = Console()


def _setup_logging(verbose: bool) -> None:
    level = logging.INFO if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )


@app.command()
def replay(
    itinerary_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Itinerary JSON file"),
    trace_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="GPS trace CSV (lat,lon,timestamp)"),
    mobility_mode: Optional[str] = typer.Option(None, "--mobility-mode", help="Rider mobility mode"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Replay a recorded trace against an itinerary, one sample at a time."""
    _setup_logging(verbose)
    config = TrackerConfig.from_env()

    try:
        itinerary = load_itinerary_file(itinerary_path)
        locations = load_trace_csv(trace_path)
    except (ValueError, ValidationError) as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    if not locations:
        console.print("[yellow]Trace has no usable samples.[/yellow]")
        raise typer.Exit(0)

    print_itinerary_header(itinerary, len(locations))
    rider = RiderProfile(mobility_mode=mobility_mode)
    table = build_replay_table()
    for i in range(len(locations)):
        journey = TrackedJourney(trip_id="replay", locations=locations[: i + 1])
        try:
            position = resolve_position(journey, itinerary, rider)
            analysis = analyze_position(position, config)
        except TripTrackerError as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            raise typer.Exit(1)
        add_replay_row(table, i + 1, analysis)
    console.print(table)


@app.command("import-trip")
def import_trip(
    trip_id: str = typer.Argument(..., help="Id for the monitored trip"),
    itinerary_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Itinerary JSON file"),
    db: Path = typer.Option(DEFAULT_DB_PATH, "--db", help="SQLite trip store"),
    trace: Optional[Path] = typer.Option(None, "--trace", exists=True, dir_okay=False, help="GPS trace CSV to attach"),
    mobility_mode: Optional[str] = typer.Option(None, "--mobility-mode", help="Rider mobility mode"),
    locale: str = typer.Option("en", "--locale", help="Rider locale"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Store an itinerary (and optionally a trace) as a monitored trip."""
    _setup_logging(verbose)
    store = SqliteTripStore(db)
    try:
        with open(itinerary_path, encoding="utf-8") as f:
            store.add_trip(trip_id, json.load(f), RiderProfile(mobility_mode=mobility_mode, locale=locale))
        n = store.add_locations(trip_id, load_trace_csv(trace)) if trace else 0
    except (ValueError, ValidationError) as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)
    console.print(f"Stored trip [bold]{trip_id}[/bold] with {n} tracking locations in {db}")


@app.command()
def monitor(
    db: Path = typer.Option(DEFAULT_DB_PATH, "--db", help="SQLite trip store"),
    every: float = typer.Option(MONITOR_INTERVAL_SECONDS, "--every", help="Seconds between cycles"),
    cycles: Optional[int] = typer.Option(None, "--cycles", "-n", help="Stop after this many cycles"),
    workers: Optional[int] = typer.Option(None, "--workers", help="Number of trip analyzers"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Analyze every monitored trip in the store on a fixed cadence."""
    _setup_logging(verbose)
    config = TrackerConfig.from_env()
    if workers is not None:
        if workers < 1:
            raise typer.BadParameter("--workers must be at least 1")
        config = config.with_overrides(worker_count=workers)

    store = SqliteTripStore(db)
    check = CheckMonitoredTrip(store, store, config)
    counter = itertools.count(1)
    with FleetAnalysisScheduler(store, check, config) as scheduler:
        try:
            reports = scheduler.run_forever(
                every,
                max_cycles=cycles,
                on_report=lambda r: print_cycle_report(r, next(counter)),
            )
        except KeyboardInterrupt:
            console.print("Stopped.")
            raise typer.Exit(0)
    if any(r.aborted for r in reports):
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
