"""
main.py — bgtasks Composition Root and Developer CLI

Wires the scheduler stack from settings and exposes a small CLI for
inspecting retry behaviour without a real platform wake-up layer.

Usage:
    bgtasks backoff --strategy exponential --base-delay 3 --max-delay 300 --attempts 8
    bgtasks simulate --strategy fixed --base-delay 1 --max-attempts 2
    bgtasks simulate --strategy jittered --max-attempts 4 --succeed-on 3 --seed 7
    bgtasks --config path/to/config.yaml --log-level DEBUG simulate
"""

from __future__ import annotations

import argparse
import asyncio
import random
import sys
from dataclasses import dataclass
from typing import Optional, Sequence

from rich.console import Console
from rich.table import Table

from bgtasks.scheduler.backoff import compute_backoff
from bgtasks.scheduler.clock import Clock, ManualClock
from bgtasks.scheduler.driver import LocalWakeupDriver
from bgtasks.scheduler.events import EventChannel
from bgtasks.scheduler.handlers import HandlerRegistry
from bgtasks.scheduler.scheduler import BackgroundScheduler
from bgtasks.scheduler.sync_queue import SyncQueue
from bgtasks.scheduler.types import BackoffStrategy, RetryPolicy, SchedulerEvent, Task


# ─────────────────────────────────────────────────────────────────────────────
# Composition root
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class Runtime:
    """All wired components returned by build_runtime()."""
    settings: object
    events: EventChannel
    handlers: HandlerRegistry
    scheduler: BackgroundScheduler
    sync_queue: SyncQueue
    driver: LocalWakeupDriver

    async def close(self) -> None:
        await self.driver.stop()
        await self.scheduler.close()
        self.sync_queue.clear()
        self.events.close()


def build_runtime(
    settings,
    *,
    clock: Optional[Clock] = None,
    handlers: Optional[HandlerRegistry] = None,
    rng: Optional[random.Random] = None,
) -> Runtime:
    """
    Wire the event channel, scheduler, sync queue and wake-up driver.

    The scheduler and sync queue share one EventChannel and one Clock.
    """
    events = EventChannel.from_settings(settings)
    handlers = handlers or HandlerRegistry()
    scheduler = BackgroundScheduler.from_settings(
        settings, events=events, clock=clock, handlers=handlers, rng=rng,
    )
    sync_queue = SyncQueue(events, clock=scheduler.clock)
    return Runtime(
        settings=settings,
        events=events,
        handlers=handlers,
        scheduler=scheduler,
        sync_queue=sync_queue,
        driver=LocalWakeupDriver(scheduler),
    )


# ─────────────────────────────────────────────────────────────────────────────
# CLI
# ─────────────────────────────────────────────────────────────────────────────

def _add_policy_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--strategy",
        choices=[s.value for s in BackoffStrategy],
        default=None,
        help="Backoff strategy (default: scheduler.default_retry.strategy)",
    )
    p.add_argument("--base-delay", type=float, default=None, help="Base delay in seconds")
    p.add_argument("--max-delay", type=float, default=None, help="Delay cap in seconds")
    p.add_argument("--seed", type=int, default=None, help="Seed for jittered delays")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="bgtasks",
        description="bgtasks — background task scheduler and retry orchestration",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: $BGTASKS_CONFIG or config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override log level from config",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    backoff = sub.add_parser("backoff", help="Print the delay for each retry attempt")
    _add_policy_args(backoff)
    backoff.add_argument("--attempts", type=int, default=8, help="Number of attempts to show")

    simulate = sub.add_parser(
        "simulate",
        help="Run one failing task on a virtual clock and print its events",
    )
    _add_policy_args(simulate)
    simulate.add_argument("--max-attempts", type=int, default=None, help="Retries per failure streak")
    simulate.add_argument(
        "--succeed-on",
        type=int,
        default=None,
        help="Run number (1-based) on which the task stops failing",
    )
    simulate.add_argument("--task-id", default="t1")
    return parser.parse_args(argv)


def bootstrap(args: argparse.Namespace):
    """
    Load config, validate it fully, and set up logging.
    Returns settings ready for use.

    Exits with code 1 (after printing a clear message) on invalid config.
    """
    from pydantic import ValidationError

    from bgtasks.config.settings import ConfigError, load_settings
    from bgtasks.observability.logger import setup_logging

    try:
        settings = load_settings(args.config)
    except ValidationError as exc:
        problems = "\n".join(
            f"  • {'.'.join(str(p) for p in e['loc']) or '?'}: {e['msg']}"
            for e in exc.errors()
        )
        print(f"\nConfig validation failed:\n\n{problems}\n", file=sys.stderr)
        sys.exit(1)
    except (ConfigError, OSError) as exc:
        print(f"\nFailed to load config: {type(exc).__name__}: {exc}\n", file=sys.stderr)
        sys.exit(1)

    try:
        settings.validate_all()
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)

    setup_logging(
        level=args.log_level or settings.log_level,
        log_dir=settings.log_dir,
        json_format=settings.log_json_format,
        console_output=settings.log_console_output,
        max_bytes=settings.log_max_bytes,
        backup_count=settings.logging.backup_count,
    )
    return settings


def _policy_from_args(args: argparse.Namespace, settings) -> RetryPolicy:
    default = settings.default_retry_policy
    return RetryPolicy(
        strategy=BackoffStrategy(args.strategy) if args.strategy else default.strategy,
        base_delay=args.base_delay if args.base_delay is not None else default.base_delay,
        max_delay=args.max_delay if args.max_delay is not None else default.max_delay,
        max_attempts=(
            args.max_attempts
            if getattr(args, "max_attempts", None) is not None
            else default.max_attempts
        ),
    )


def run_backoff(args: argparse.Namespace, settings, console: Console) -> int:
    policy = _policy_from_args(args, settings)
    rng = random.Random(args.seed)
    table = Table(title=f"{policy.strategy.value} backoff")
    table.add_column("attempt", justify="right")
    table.add_column("delay (s)", justify="right")
    for attempt in range(1, max(1, args.attempts) + 1):
        table.add_row(str(attempt), f"{compute_backoff(policy, attempt, rng):.3f}")
    console.print(table)
    return 0


async def simulate(
    settings,
    policy: RetryPolicy,
    *,
    task_id: str = "t1",
    succeed_on: Optional[int] = None,
    seed: Optional[int] = None,
) -> list[SchedulerEvent]:
    """
    Run ``task_id`` on a ManualClock until no retry is pending.

    The task fails on every run unless ``succeed_on`` names the run number
    that succeeds. Returns every event published, in order.
    """
    clock = ManualClock()
    runtime = build_runtime(settings, clock=clock, rng=random.Random(seed))
    subscription = runtime.events.subscribe(maxsize=10_000)
    runs = 0

    async def action() -> None:
        nonlocal runs
        runs += 1
        if succeed_on is None or runs < succeed_on:
            raise RuntimeError(f"simulated failure on run {runs}")

    try:
        await runtime.scheduler.initialize()
        await runtime.scheduler.register_task(Task(id=task_id, action=action, retry_policy=policy))
        await runtime.scheduler.execute_now(task_id)
        await clock.run_until_idle()
        return subscription.drain()
    finally:
        await runtime.close()


def _render_events(events: list[SchedulerEvent], console: Console) -> None:
    table = Table(title="scheduler events")
    table.add_column("#", justify="right")
    table.add_column("t (s)", justify="right")
    table.add_column("event")
    table.add_column("task")
    table.add_column("detail")
    for i, event in enumerate(events, start=1):
        detail = event.error or ""
        if event.metadata:
            meta = ", ".join(f"{k}={v}" for k, v in event.metadata.items())
            detail = f"{detail} {meta}".strip()
        table.add_row(str(i), f"{event.timestamp:.3f}", event.type.value, event.task_id or "", detail)
    console.print(table)


async def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    settings = bootstrap(args)
    console = Console()

    if args.command == "backoff":
        return run_backoff(args, settings, console)

    if args.command == "simulate":
        events = await simulate(
            settings,
            _policy_from_args(args, settings),
            task_id=args.task_id,
            succeed_on=args.succeed_on,
            seed=args.seed,
        )
        _render_events(events, console)
        return 0

    return 1


def run() -> None:
    """Console-script entry point."""
    sys.exit(asyncio.run(main()))
