#!/usr/bin/env python3
"""
scalecue-sim: Interactive simulator for scalecue.

Usage:
    scalecue-sim --count 20 --rate 2
    scalecue-sim --scenario burst --count 30 --max-workers 4
    scalecue-sim --scenario priority_mix --fast --no-tui
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from typing import Callable

from rich.console import Console
from rich.table import Table

from scalecue_sim.display import SimulationView, SimulatorDisplay, print_simple_stats
from scalecue_sim.runner import SimConfig, SimulationRunner


def configure_logging(verbose: bool = False) -> None:
    """Configure logging for the simulator."""
    scalecue_logger = logging.getLogger("scalecue")
    if verbose:
        scalecue_logger.setLevel(logging.DEBUG)
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        scalecue_logger.addHandler(handler)
    else:
        # Silence library logs - simulator handles its own display
        scalecue_logger.setLevel(logging.CRITICAL)


async def _drive(
    runner: SimulationRunner,
    refresh: Callable[[], None] | None = None,
    interval: float = 0.1,
) -> None:
    """Run to completion, calling refresh every interval seconds meanwhile.

    Interrupts stop the runner; the recording is always closed.
    """

    async def refresher() -> None:
        while True:
            refresh()
            await asyncio.sleep(interval)

    ticker = asyncio.create_task(refresher()) if refresh else None
    try:
        await runner.run()
    except (KeyboardInterrupt, asyncio.CancelledError):
        runner.stop()
    finally:
        if ticker is not None:
            ticker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await ticker
        await runner.cleanup()


def _print_header(config: SimConfig, mode: str = "") -> None:
    print(f"\nscalecue-sim{f' [{mode}]' if mode else ''}")
    print(f"   Scenario: {config.scenario}, Count: {config.count}, Rate: {config.rate}/s")
    print()


async def run_with_display(config: SimConfig, use_tui: bool = True, verbose: bool = False) -> SimulationView:
    """Run a scenario and render it.

    Args:
        config: Simulation configuration
        use_tui: Live Rich display; otherwise a status line every half second
        verbose: Print every event as it happens (takes precedence over use_tui)

    Returns:
        The final view, for callers that want the numbers.
    """
    view = SimulationView()

    if verbose:
        record_event = view.add_event

        def print_event(event_type: str, subject: str, details: str = "") -> None:
            # The runner sets view.tick before it emits a step's events
            print(f"{view.tick / 1000:>9.2f}s  {event_type:<18} {subject:<10} {details}")
            record_event(event_type, subject, details)

        view.add_event = print_event  # type: ignore

    runner = SimulationRunner(config, view)

    if verbose:
        _print_header(config, "verbose")
        print(f"{'CLOCK':>10}  {'EVENT':<18} {'SUBJECT':<10} DETAILS")
        print("-" * 72)
        await _drive(runner)
        print("-" * 72)
    elif use_tui:
        display = SimulatorDisplay(view)
        with display:
            await _drive(runner, display.refresh, 0.1)
            display.refresh()
    else:
        _print_header(config)
        await _drive(runner, lambda: print_simple_stats(view), 0.5)
        print_simple_stats(view)
        print()

    print_final_summary(view)
    if config.record_path and runner.run_id is not None:
        print(f"Recorded run {runner.run_id} to {config.record_path}")
    return view


def print_final_summary(view: SimulationView) -> None:
    """Print final summary after simulation."""
    console = Console()
    console.print()

    table = Table(title="Simulation Results", show_header=False, border_style="green")
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold")

    table.add_row("Submitted", str(view.submitted))
    table.add_row("Completed", f"[green]{view.completed}[/green]")
    table.add_row("Expired", f"[red]{view.expired}[/red]" if view.expired else "0")
    table.add_row("Failed", f"[red]{view.failed}[/red]" if view.failed else "0")
    table.add_row("Logical time", f"{view.tick / 1000:.2f}s")
    table.add_row("Throughput", f"{view.throughput:.2f}/s")
    table.add_row("Workers up", str(view.active_workers))

    console.print(table)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scalecue-sim",
        description="scalecue simulator - watch an autoscaling worker pool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  scalecue-sim --count 20 --rate 2
  scalecue-sim --scenario burst --count 30 --max-workers 4
  scalecue-sim --scenario scale_to_zero --speed 4
  scalecue-sim --scenario priority_mix --fast --no-tui
  scalecue-sim --list-scenarios
        """,
    )

    # Scenario options
    parser.add_argument(
        "--scenario",
        type=str,
        default="steady",
        help="Scenario to run (default: steady)",
    )
    parser.add_argument(
        "--list-scenarios",
        action="store_true",
        help="List available scenarios and exit",
    )

    # Workload
    parser.add_argument("--count", "-n", type=int, default=20,
                        help="Number of items to submit (default: 20)")
    parser.add_argument("--rate", "-r", type=float, default=1.0,
                        help="Arrivals per logical second (default: 1.0)")
    parser.add_argument("--jitter", "-j", type=float, default=0.0,
                        help="Arrival gap variance as fraction, e.g. 0.2 = ±20%% (default: 0)")
    parser.add_argument("--high", type=float, default=0.1,
                        help="Share of high-priority items in mixed scenarios (default: 0.1)")
    parser.add_argument("--low", type=float, default=0.2,
                        help="Share of low-priority items in mixed scenarios (default: 0.2)")

    # Engine
    parser.add_argument("--processing", type=float, default=None,
                        help="Processing time in ms (default: 2000)")
    parser.add_argument("--cold-start", type=float, default=None,
                        help="Cold start time in ms (default: 3000)")
    parser.add_argument("--delivery", type=float, default=None,
                        help="Delivery time in ms (default: 500)")
    parser.add_argument("--concurrency", "-c", type=int, default=None,
                        help="Slots per worker (default: same as --target)")
    parser.add_argument("--target", type=int, default=None,
                        help="Concurrency target per worker for scaling (default: 1)")
    parser.add_argument("--min-workers", type=int, default=None,
                        help="Minimum workers (default: 0)")
    parser.add_argument("--max-workers", type=int, default=None,
                        help="Maximum workers (default: 10)")
    parser.add_argument("--scale-down-delay", type=float, default=None,
                        help="Idle time in ms before scaling down (default: 15000)")
    parser.add_argument("--queue-ttl", type=float, default=None,
                        help="Max queue wait in ms before expiry (default: 10000)")

    # Run control
    parser.add_argument("--step", type=float, default=50.0,
                        help="Logical ms per step (default: 50)")
    parser.add_argument("--speed", type=float, default=1.0,
                        help="Speed multiplier, 0.1-10 (default: 1)")
    parser.add_argument("--duration", "-d", type=float, default=None,
                        help="Stop after this many logical seconds (default: run until drained)")
    parser.add_argument("--fast", action="store_true",
                        help="Do not sleep between steps")
    parser.add_argument("--record", type=str, default=None,
                        help="Record samples and events to this SQLite file")
    parser.add_argument("--no-tui", action="store_true",
                        help="Disable TUI, use simple text output")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Print event log and engine debug logs (no-tui)")
    parser.add_argument("--seed", type=int, default=None,
                        help="Random seed for reproducible workloads (default: random)")
    return parser


ENGINE_FLAGS = {
    "processing": "processing_time_ms",
    "cold_start": "cold_start_time_ms",
    "delivery": "delivery_time_ms",
    "concurrency": "per_worker_concurrency",
    "target": "concurrency_target",
    "min_workers": "min_workers",
    "max_workers": "max_workers",
    "scale_down_delay": "scale_down_delay_ms",
    "queue_ttl": "max_queue_wait_ms",
}


def config_from_args(args: argparse.Namespace) -> SimConfig:
    """Build a SimConfig from parsed arguments."""
    engine = {
        field_name: getattr(args, flag)
        for flag, field_name in ENGINE_FLAGS.items()
        if getattr(args, flag) is not None
    }
    return SimConfig(
        scenario=args.scenario,
        count=args.count,
        rate=args.rate,
        jitter=args.jitter,
        high_priority=args.high,
        low_priority=args.low,
        seed=args.seed,
        step_ms=args.step,
        speed=args.speed,
        duration_ms=args.duration * 1000 if args.duration is not None else None,
        realtime=not args.fast,
        record_path=args.record,
        engine=engine,
    )


def main(argv: list[str] | None = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.list_scenarios:
        from scalecue_sim.scenarios import list_scenarios
        print("\nAvailable scenarios:\n")
        for info in list_scenarios():
            print(f"  {info.name:<15} {info.description}")
        print()
        sys.exit(0)

    configure_logging(verbose=args.verbose)

    from scalecue_sim.scenarios import SCENARIOS
    if args.scenario not in SCENARIOS:
        parser.error(f"Unknown scenario: {args.scenario}. Available: {', '.join(SCENARIOS)}")
    if args.min_workers is not None and args.max_workers is not None and args.min_workers > args.max_workers:
        parser.error("--min-workers cannot exceed --max-workers")

    config = config_from_args(args)
    pinned = SCENARIOS[args.scenario].PINNED_SETTINGS
    for flag, field_name in ENGINE_FLAGS.items():
        if field_name in pinned and config.engine.get(field_name, pinned[field_name]) != pinned[field_name]:
            option = "--" + flag.replace("_", "-")
            parser.error(f"{option} conflicts with scenario {args.scenario} (pinned to {pinned[field_name]})")

    use_tui = not args.no_tui
    interrupted = False

    async def run_until_signal() -> None:
        """Run the simulation, cancelling it on SIGINT or SIGTERM."""
        loop = asyncio.get_running_loop()
        sim = asyncio.create_task(run_with_display(config, use_tui=use_tui, verbose=args.verbose))

        def on_signal() -> None:
            nonlocal interrupted
            interrupted = True
            sim.cancel()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, on_signal)

        with contextlib.suppress(asyncio.CancelledError):
            await sim

    try:
        asyncio.run(run_until_signal())
    except KeyboardInterrupt:
        interrupted = True

    if interrupted:
        print("\nInterrupted.")
        sys.exit(130)


if __name__ == "__main__":
    main()
