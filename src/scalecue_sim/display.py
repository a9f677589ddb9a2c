"""Rich-based display for scalecue-sim.

This module provides visual output for the simulator using Rich library.
It's decoupled from the simulation logic - it just renders data.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text


@dataclass
class WorkerStatus:
    """Status of a worker for display."""

    id: int
    state: str
    claimed: int = 0
    capacity: int = 1
    waiting: int = 0  # Items reserved while the worker cold-starts


@dataclass
class EventRecord:
    """A recent event for display."""

    tick: float
    event_type: str
    subject: str
    details: str = ""


@dataclass
class SimulationView:
    """Current state of the simulation for display.

    This is the data contract between the runner and display.
    The runner updates this; the display renders it.
    """

    # Item stats
    submitted: int = 0
    queued: int = 0
    waiting: int = 0
    processing: int = 0
    delivering: int = 0
    completed: int = 0
    failed: int = 0
    expired: int = 0

    # Pool
    workers: list[WorkerStatus] = field(default_factory=list)
    target_workers: int = 0
    active_workers: int = 0
    ready_workers: int = 0

    # Timing (logical milliseconds)
    tick: float = 0.0

    # Recent events (most recent first)
    events: list[EventRecord] = field(default_factory=list)
    max_events: int = 10

    # Config display
    scenario_name: str = "steady"
    target_count: int = 0
    speed: float = 1.0
    max_queue_size: int = 0
    cold_start_ms: float = 0.0
    processing_ms: float = 0.0
    concurrency_target: int = 1
    min_workers: int = 0
    max_workers: int = 0

    # Status flags
    paused: bool = False

    @property
    def backpressure(self) -> bool:
        """Queue at or past its advisory size."""
        return self.max_queue_size > 0 and self.queued >= self.max_queue_size

    @property
    def throughput(self) -> float:
        """Items completed per logical second."""
        if self.tick > 0:
            return self.completed / (self.tick / 1000.0)
        return 0.0

    @property
    def progress(self) -> float:
        """Fraction settled (0.0 to 1.0)."""
        if self.target_count > 0:
            return min(1.0, (self.completed + self.failed + self.expired) / self.target_count)
        return 0.0

    def add_event(self, event_type: str, subject: str, details: str = "") -> None:
        """Add an event to the display log."""
        self.events.insert(0, EventRecord(
            tick=self.tick,
            event_type=event_type,
            subject=subject,
            details=details,
        ))
        if len(self.events) > self.max_events:
            self.events = self.events[:self.max_events]


WORKER_STYLES = {
    "starting": "yellow",
    "ready": "green",
    "busy": "red",
    "stopping": "dim",
    "stopped": "dim",
}

EVENT_STYLES = {
    "completed": "green",
    "expired": "red",
    "failed": "red",
    "processing": "yellow",
    "waiting_for_model": "magenta",
    "queued": "dim",
    "scale": "cyan",
    "worker": "blue",
}


class SimulatorDisplay:
    """Rich-based TUI display for the simulator.

    Panels:
    - Queue stats
    - Worker pool with slot bars
    - Recent events log
    - Config footer
    """

    def __init__(self, view: SimulationView, console: Console | None = None):
        self.view = view
        self.console = console or Console()
        self._live: Live | None = None

    def __enter__(self) -> SimulatorDisplay:
        self._live = Live(
            self._build_layout(),
            console=self.console,
            refresh_per_second=10,
            screen=False,
        )
        self._live.__enter__()
        return self

    def __exit__(self, *args) -> None:
        if self._live:
            self._live.__exit__(*args)
            self._live = None

    def refresh(self) -> None:
        """Update the display with current state."""
        if self._live:
            self._live.update(self._build_layout())

    def _build_layout(self) -> Panel:
        v = self.view
        shown = [w for w in v.workers if w.state != "stopped"]

        layout = Layout()
        layout.split_column(
            Layout(name="queue", size=4),
            Layout(name="workers", size=3 + max(1, len(shown))),
            Layout(name="events", size=7),
            Layout(name="controls", size=3),
        )
        layout["queue"].update(self._build_queue_section())
        layout["workers"].update(self._build_workers_section(shown))
        layout["events"].update(self._build_events_section())
        layout["controls"].update(self._build_controls_section())

        title = "[bold cyan]scalecue-sim[/bold cyan]"
        if v.paused:
            title += " [yellow](paused)[/yellow]"
        return Panel(layout, title=title, border_style="cyan")

    def _build_queue_section(self) -> Panel:
        v = self.view

        stats = Table.grid(expand=True, padding=(0, 2))
        for _ in range(5):
            stats.add_column(justify="left")
        stats.add_row(
            f"[dim]Queued:[/dim] [bold]{v.queued:,}[/bold]",
            f"[dim]Processing:[/dim] [bold yellow]{v.processing}[/bold yellow]",
            f"[dim]Completed:[/dim] [bold green]{v.completed:,}[/bold green]",
            f"[dim]Expired:[/dim] [bold red]{v.expired}[/bold red]",
            f"[dim]Failed:[/dim] [bold red]{v.failed}[/bold red]",
        )

        stats2 = Table.grid(expand=True, padding=(0, 2))
        for _ in range(4):
            stats2.add_column(justify="left")
        bp_status = "[red]ON[/red]" if v.backpressure else "[green]OFF[/green]"
        stats2.add_row(
            f"[dim]Backpressure:[/dim] {bp_status}",
            f"[dim]Progress:[/dim] [bold]{v.progress * 100:.0f}%[/bold]",
            f"[dim]Throughput:[/dim] [bold]{v.throughput:.2f}/s[/bold]",
            f"[dim]Clock:[/dim] [bold]{v.tick / 1000:.1f}s[/bold]",
        )

        content = Table.grid(expand=True)
        content.add_row(stats)
        content.add_row(stats2)
        return Panel(content, title="[bold]Queue[/bold]", border_style="blue")

    def _build_workers_section(self, shown: list[WorkerStatus]) -> Panel:
        v = self.view

        table = Table(box=None, expand=True, padding=(0, 1), show_header=False)
        table.add_column("Worker", width=10)
        table.add_column("State", width=10)
        table.add_column("Slots", width=22)
        table.add_column("Waiting", justify="right")

        for worker in shown:
            style = WORKER_STYLES.get(worker.state, "white")
            pct = worker.claimed / worker.capacity if worker.capacity else 0.0
            bar = self._progress_bar(pct, 8)
            waiting = f"[magenta]{worker.waiting}[/magenta]" if worker.waiting else ""
            table.add_row(
                f"[bold]w{worker.id}[/bold]",
                f"[{style}]{worker.state}[/{style}]",
                f"{bar} {worker.claimed}/{worker.capacity}",
                waiting,
            )

        if not shown:
            table.add_row("[dim]Scaled to zero[/dim]", "", "", "")

        title = (
            f"[bold]Workers[/bold] [dim]{v.active_workers} up, "
            f"{v.ready_workers} ready, target {v.target_workers}[/dim]"
        )
        return Panel(table, title=title, border_style="blue")

    def _build_events_section(self) -> Panel:
        v = self.view

        table = Table(box=None, expand=True, padding=(0, 1), show_header=False)
        table.add_column("Time", width=9, style="dim")
        table.add_column("Event", width=18)
        table.add_column("Subject", width=10)
        table.add_column("Details")

        for event in v.events[:5]:
            style = EVENT_STYLES.get(event.event_type, "white")
            table.add_row(
                f"{event.tick / 1000:>7.2f}s",
                f"[{style}]{event.event_type}[/{style}]",
                event.subject[:10],
                event.details[:30],
            )

        if not v.events:
            table.add_row("[dim]No events yet[/dim]", "", "", "")

        return Panel(table, title="[bold]Recent Events[/bold]", border_style="blue")

    def _build_controls_section(self) -> Panel:
        v = self.view

        text = Text()
        text.append("Scenario: ", style="dim")
        text.append(v.scenario_name, style="bold")
        text.append("  Cold start: ", style="dim")
        text.append(f"{v.cold_start_ms:.0f}ms", style="bold")
        text.append("  Processing: ", style="dim")
        text.append(f"{v.processing_ms:.0f}ms", style="bold")
        text.append("  Target/worker: ", style="dim")
        text.append(str(v.concurrency_target), style="bold")
        text.append("  Workers: ", style="dim")
        text.append(f"{v.min_workers}-{v.max_workers}", style="bold")
        text.append("  Speed: ", style="dim")
        text.append(f"{v.speed:g}x", style="bold")
        text.append("    Ctrl+C to stop", style="dim")

        return Panel(text, title="[bold]Config[/bold]", border_style="dim")

    @staticmethod
    def _progress_bar(pct: float, width: int = 10) -> str:
        """Create a mini progress bar."""
        pct = min(1.0, max(0.0, pct))
        filled = int(pct * width)
        empty = width - filled

        if pct >= 0.9:
            color = "red"
        elif pct >= 0.7:
            color = "yellow"
        else:
            color = "green"

        return f"[{color}]{'█' * filled}{'░' * empty}[/{color}]"


def print_simple_stats(view: SimulationView) -> None:
    """Print a single status line without the TUI."""
    v = view
    print(
        f"\r[{v.tick / 1000:7.1f}s] "
        f"Q:{v.queued} P:{v.processing} ✓:{v.completed} ⌛:{v.expired} "
        f"W:{v.active_workers}/{v.target_workers} ({v.progress * 100:.0f}%)",
        end="",
        flush=True,
    )
