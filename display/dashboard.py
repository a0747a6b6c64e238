"""
Terminal presentation for fast-meter, built on ``rich``.

Numbers are formatted by ``meter.stats``; nothing here measures anything.
"""
from __future__ import annotations

import time
from typing import Optional, Sequence

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from meter.bandwidth import SpeedTestResult
from meter.stats import PERCENTILES, NetworkStats, format_latency, format_speed
from meter.units import SpeedMeasurement

console = Console()

_SPARK = "▁▂▃▄▅▆▇█"


def create_histogram(values: Sequence[float]) -> str:
    """Sparkline of *values*, one glyph per sample, scaled to their range."""
    if not values:
        return "No data"
    lo, hi = min(values), max(values)
    if hi == lo:
        return _SPARK[len(_SPARK) // 2] * len(values)
    top = len(_SPARK) - 1
    return "".join(_SPARK[round((v - lo) / (hi - lo) * top)] for v in values)


def _metrics_table(title: str) -> Table:
    table = Table(title=title, box=box.SIMPLE_HEAVY, show_header=False)
    table.add_column(style="bold")
    table.add_column(justify="right")
    return table


def print_header() -> None:
    console.print(
        Panel.fit(
            "[bold cyan]fast-meter[/bold cyan]  "
            "[dim]speed estimate against fast.com[/dim]",
            border_style="cyan",
        )
    )
    console.print()


def print_failure(message: str) -> None:
    console.print(f"[bold red]✗ {message}[/bold red]")


def print_latency_details(stats: NetworkStats) -> None:
    table = _metrics_table("Latency")
    table.add_row("Mean / Min / Max", " / ".join(
        format_latency(v)
        for v in (stats.mean_latency(), stats.min_latency(), stats.max_latency())
    ))
    table.add_row("Jitter", f"{stats.jitter():.1f} ms")
    table.add_row(
        "Loss",
        f"{stats.packet_loss_rate():.1f}% "
        f"[dim]({stats.successful_packets}/{stats.packet_count} answered)[/dim]",
    )
    for p, value in zip(PERCENTILES, stats.latency_distribution()):
        table.add_row(f"p{p}", format_latency(value))
    if stats.latencies:
        table.add_row("Samples", f"[cyan]{create_histogram(stats.latencies)}[/cyan]")
    console.print(table)


def print_speed_result(result: SpeedTestResult, title: str, color: str = "green") -> None:
    """Summary of one bandwidth phase, with a sparkline of its samples."""
    table = _metrics_table(title)
    table.add_row("Speed", f"[bold {color}]{format_speed(result.speed_mbps)}[/bold {color}]")
    table.add_row(
        "Stopped",
        f"{'stable' if result.converged else 'time limit'} after {result.elapsed_seconds:.1f} s",
    )
    table.add_row("Transferred", f"{result.bytes_total / 1_000_000:.1f} MB")
    dropped = sum(1 for c in result.connections if c.dropped)
    table.add_row(
        "Connections",
        f"{len(result.connections)}" + (f" [red]({dropped} dropped)[/red]" if dropped else ""),
    )
    if result.samples:
        mbps = [s / 1_000_000 for s in result.samples]
        table.add_row(
            "Samples",
            f"[{color}]{create_histogram(mbps)}[/{color}] "
            f"[dim]{min(mbps):.1f}-{max(mbps):.1f} Mbps[/dim]",
        )
    console.print(table)


def print_final_results(
    latency: Optional[NetworkStats],
    download: SpeedTestResult,
    upload: Optional[SpeedTestResult] = None,
) -> None:
    rows = []
    if latency is not None:
        rows.append(
            f"Latency   [bold yellow]{format_latency(latency.mean_latency())}[/bold yellow]"
            f" [dim](min {format_latency(latency.min_latency())},"
            f" max {format_latency(latency.max_latency())})[/dim]"
        )
        rows.append(
            f"Jitter    {latency.jitter():.1f} ms   Loss {latency.packet_loss_rate():.1f}%"
        )
    speeds = f"Download  [bold green]{download.speed}[/bold green]"
    if upload is not None:
        speeds += f"   Upload [bold blue]{upload.speed}[/bold blue]"
    rows.append(speeds)

    console.print()
    console.print(Panel.fit("\n".join(rows), title="Results", border_style="cyan"))


class ProgressDisplay:
    """Live spinner for one bandwidth phase.

    The bar fills against ``max_duration``; a phase that becomes stable
    finishes before it is full.
    """

    def __init__(self, max_duration: float) -> None:
        self.max_duration = max_duration
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold]{task.description}"),
            BarColumn(bar_width=24),
            TextColumn("[bold cyan]{task.fields[speed]}[/bold cyan]"),
            TimeElapsedColumn(),
            console=console,
            transient=True,
        )
        self._task_id = None
        self._started = 0.0

    def start(self, description: str) -> None:
        self._started = time.perf_counter()
        self._task_id = self.progress.add_task(description, total=self.max_duration, speed="--")
        self.progress.start()

    def update(self, measurement: SpeedMeasurement) -> None:
        if self._task_id is None:
            return
        elapsed = min(time.perf_counter() - self._started, self.max_duration)
        self.progress.update(self._task_id, completed=elapsed, speed=str(measurement))

    def stop(self) -> None:
        self.progress.stop()
        self._task_id = None
