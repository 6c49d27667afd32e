"""
main.py — SlotKeeper Entry Point

Usage:
    python main.py                          # run the scheduler with the live console view
    python main.py status                   # print persisted counters + next fire times
    python main.py --log-level DEBUG        # verbose logging
    python main.py --config path/to/config.yaml
    python main.py --ephemeral              # keep counters in memory only
"""

from __future__ import annotations
# ─────────────────────────────────────────────────────────────────────────────
# Load environment variables FIRST so REFRESH_API_URL / DATA_API_URL from
# .env are visible to Settings.
# ─────────────────────────────────────────────────────────────────────────────

from dotenv import load_dotenv
from pathlib import Path

ENV_PATH = Path(__file__).parent / ".env"
load_dotenv(dotenv_path=ENV_PATH)

# ─────────────────────────────────────────────────────────────────────────────
import argparse
import asyncio
import signal
import sys


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="slotkeeper",
        description="SlotKeeper — fixed-interval and daily wall-clock API trigger scheduler",
    )
    parser.add_argument(
        "subcommand",
        nargs="?",
        choices=["run", "status"],
        default="run",
        help="'run' (default) — start the scheduler. 'status' — show persisted counters.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: $SLOTKEEPER_CONFIG or config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override log level from config",
    )
    parser.add_argument(
        "--ephemeral",
        action="store_true",
        default=False,
        help="Keep counters in memory only; nothing is read from or written to disk",
    )
    parser.add_argument(
        "--no-cycle",
        action="store_true",
        default=False,
        help="Disable the fixed-interval cycle for this run",
    )
    return parser.parse_args(argv)


def bootstrap(args: argparse.Namespace):
    """
    Load config, validate it fully, and set up logging.
    Returns (settings, log) ready for use.

    Exits with code 1 (after printing a clear message) if:
      - config.yaml has invalid values (Pydantic ValidationError)
      - cross-field problems are found (ConfigError from validate_all())
    """
    import yaml
    from config.settings import load_settings, ConfigError
    from observability.logger import setup_logging, get_logger
    from pydantic import ValidationError

    # -- Load and parse -------------------------------------------------------
    try:
        settings = load_settings(args.config)
    except ValidationError as exc:
        problems = "\n".join(
            f"  • {'.'.join(str(p) for p in e['loc']) or '?'}: {e['msg']}"
            for e in exc.errors()
        )
        print(
            f"\n❌  Config validation failed:\n\n{problems}\n\n"
            f"    Fix config/config.yaml or your .env file and restart.\n",
            file=sys.stderr,
        )
        sys.exit(1)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        print(
            f"\n❌  Failed to load config: {type(exc).__name__}: {exc}\n",
            file=sys.stderr,
        )
        sys.exit(1)

    if args.no_cycle:
        settings.cycle.enabled = False

    # -- Cross-field validation -----------------------------------------------
    try:
        settings.validate_all()
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)

    # -- Logging --------------------------------------------------------------
    # CLI --log-level flag overrides config.yaml
    log_level = args.log_level or settings.log_level

    setup_logging(
        level=log_level,
        log_dir=settings.log_dir,
        json_format=settings.logging.json_format,
        console_output=settings.logging.console_output,
        max_bytes=settings.logging.max_file_size_mb * 1024 * 1024,
        backup_count=settings.logging.backup_count,
    )

    log = get_logger("slotkeeper.main")
    return settings, log


def build_counters(settings, ephemeral: bool = False):
    from store import CounterStore, JsonFileStore, MemoryStore

    kv = MemoryStore() if ephemeral else JsonFileStore(settings.store_path)
    return CounterStore(kv)


async def run_scheduler(settings, log, counters) -> int:
    """Run both policies with the live console view until SIGINT/SIGTERM."""
    from actions import actions_from_settings
    from interfaces.console import ConsoleSink
    from scheduler.scheduler import SlotScheduler, specs_from_settings

    specs = specs_from_settings(settings)
    action_map = actions_from_settings(settings)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Windows: fall back to KeyboardInterrupt
            pass

    interval_label = f"{settings.cycle.interval_minutes:g}-minute"
    with ConsoleSink(zone_label=settings.clock.zone_label, interval_label=interval_label) as sink:
        scheduler = SlotScheduler.from_settings(settings, counters, sink=sink)
        scheduler.start(specs, action_map.__getitem__)
        try:
            await stop_event.wait()
        finally:
            await scheduler.shutdown()

    log.info("slotkeeper.stopped")
    return 0


def show_status(settings, counters) -> int:
    from rich.console import Console

    from interfaces.console import render_status
    from scheduler.scheduler import SlotScheduler, specs_from_settings

    scheduler = SlotScheduler.from_settings(settings, counters)
    snapshot = scheduler.preview(specs_from_settings(settings))
    render_status(Console(), snapshot, zone_label=settings.clock.zone_label)
    return 0


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings, log = bootstrap(args)

    log.info(
        "slotkeeper.starting",
        subcommand=args.subcommand,
        utc_offset=settings.clock.utc_offset,
        cycle_enabled=settings.cycle.enabled,
        interval_minutes=settings.cycle.interval_minutes,
        slots=[s.id for s in settings.daily.slots] if settings.daily.enabled else [],
        store=("memory" if args.ephemeral else str(settings.store_path)),
    )

    counters = build_counters(settings, ephemeral=args.ephemeral)

    if args.subcommand == "status":
        return show_status(settings, counters)

    return await run_scheduler(settings, log, counters)


def cli() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    cli()
