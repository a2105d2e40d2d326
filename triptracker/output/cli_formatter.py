"""Rich CLI output for trip replays and fleet cycles."""

from __future__ import annotations

from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from triptracker.models import Itinerary, TripStatus
from triptracker.monitor.fleet import CycleReport
from triptracker.tracking.analysis import TripAnalysis
from triptracker.tracking.instructions import NO_INSTRUCTION, render_instruction

console = Console()

_STATUS_STYLES = {
    TripStatus.ON_SCHEDULE: "green",
    TripStatus.AHEAD_OF_SCHEDULE: "cyan",
    TripStatus.BEHIND_SCHEDULE: "yellow",
    TripStatus.DEVIATED: "bold red",
    TripStatus.NO_STATUS: "dim",
    TripStatus.ENDED: "magenta",
}


def _styled_status(status: TripStatus) -> str:
    style = _STATUS_STYLES.get(status, "white")
    return f"[{style}]{status.value}[/{style}]"


def print_itinerary_header(itinerary: Itinerary, n_samples: int) -> None:
    """Summary panel of the itinerary being replayed."""
    lines = [
        f"Start:   {itinerary.start_time:%Y-%m-%d %H:%M:%S %Z}",
        f"End:     {itinerary.end_time:%Y-%m-%d %H:%M:%S %Z}",
        "Legs:    " + ", ".join(f"{leg.mode} ({leg.distance:.0f} m)" for leg in itinerary.legs),
        f"Samples: {n_samples}",
    ]
    destination = itinerary.destination
    if destination is not None and destination.name:
        lines.append(f"To:      {destination.name}")
    console.print(Panel("\n".join(lines), title="Trip replay", border_style="blue"))


def build_replay_table() -> Table:
    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Time")
    table.add_column("Position")
    table.add_column("Leg")
    table.add_column("Status")
    table.add_column("Instruction")
    return table


def add_replay_row(table: Table, idx: int, analysis: TripAnalysis) -> None:
    position = analysis.position
    if position is None:
        table.add_row(str(idx), "", "", "", _styled_status(analysis.status), NO_INSTRUCTION)
        return
    leg = position.expected_leg
    text = render_instruction(analysis.instruction)
    table.add_row(
        str(idx),
        f"{position.current_time:%H:%M:%S}",
        f"{position.current_position.lat:.5f}, {position.current_position.lon:.5f}",
        leg.mode if leg is not None else "-",
        _styled_status(analysis.status),
        text if analysis.instruction is not None else f"[dim]{text}[/dim]",
    )


def print_cycle_report(report: CycleReport, cycle_no: Optional[int] = None) -> None:
    """One line per fleet cycle."""
    label = f"Cycle {cycle_no}" if cycle_no is not None else "Cycle"
    if report.aborted:
        console.print(
            f"[red]{label} aborted[/red] after {report.elapsed_seconds:.1f}s: {report.error}"
        )
        return
    failed = f", [red]{report.failed} failed[/red]" if report.failed else ""
    console.print(
        f"[bold]{label}[/bold]: {report.processed}/{report.enumerated} trips analyzed"
        f"{failed} in {report.elapsed_seconds:.1f}s"
    )
