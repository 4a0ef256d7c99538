from __future__ import annotations

from typing import Dict, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from cascade.statistics import StatsSnapshot, TierEta, format_duration


def _wait_cell(seconds: float) -> str:
    return format_duration(seconds) if seconds > 0 else "ready"


def build_statistics_table(
    snapshot: StatsSnapshot, eta: Optional[Dict[str, TierEta]] = None
) -> Table:
    """
    Render a statistics snapshot as one row per tier.

    The caption carries the cache sizes and the number of composites built.
    """
    cache = snapshot.cache
    table = Table(
        title=f"Cascade Statistics\n[dim]{snapshot.generated_at.isoformat(timespec='seconds')}[/dim]",
        box=box.ROUNDED,
        caption=(
            f"Cache: {cache.vehicles} vehicle(s), {cache.plates} plate(s), "
            f"{cache.persons} person(s) │ Composites: {cache.composites}"
        ),
    )

    table.add_column("Tier", style="cyan", no_wrap=True)
    table.add_column("Total", justify="right", style="magenta")
    table.add_column("Pending", justify="right")
    table.add_column("Processing", justify="right", style="blue")
    table.add_column("Done", justify="right", style="green")
    table.add_column("Error", justify="right", style="red")
    table.add_column("In flight", justify="center")
    table.add_column("Next dispatch", justify="right", style="yellow")
    if eta is not None:
        table.add_column("ETA", justify="right", style="bold green")

    for name, stats in snapshot.tiers.items():
        row = [
            name,
            str(stats.total),
            str(stats.pending),
            str(stats.processing),
            str(stats.done),
            str(stats.error),
            "●" if stats.in_flight else "-",
            _wait_cell(stats.remaining_wait_seconds),
        ]
        if eta is not None:
            estimate = eta.get(name)
            row.append(estimate["eta_formatted"] if estimate else "N/A")
        table.add_row(*row)

    return table


def print_statistics(
    snapshot: StatsSnapshot,
    eta: Optional[Dict[str, TierEta]] = None,
    console: Optional[Console] = None,
) -> None:
    (console or Console()).print(build_statistics_table(snapshot, eta))


__all__ = ["build_statistics_table", "print_statistics"]
