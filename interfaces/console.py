"""
interfaces/console.py — Rich terminal render sink

Draws the scheduler snapshot as two panels side by side:

  Left:  fixed-interval cycle — MM:SS countdown, hit counter, last hit
  Right: local clock + one row per daily slot (count, last hit, next fire)
         and the total across slots

ConsoleSink is a RenderSink: SlotScheduler calls publish() on every tick.
It only reads the snapshot. render_status() prints a one-shot table for the
`status` command.
"""

from __future__ import annotations

from typing import Optional

from rich import box
from rich.columns import Columns
from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from scheduler.types import CyclePhase, SchedulerSnapshot


def _cycle_panel(snapshot: SchedulerSnapshot, interval_label: str) -> Panel:
    cycle = snapshot.cycle
    if cycle.enabled:
        countdown = Text(cycle.countdown, style="bold white")
        if cycle.phase is CyclePhase.FIRING:
            countdown = Text(f"{cycle.countdown}  firing…", style="bold yellow")
    else:
        countdown = Text("disabled", style="dim")

    table = Table.grid(padding=(0, 2))
    table.add_column(style="dim")
    table.add_column(style="bold")
    table.add_row("Counter", str(cycle.hits))
    table.add_row("Last hit", cycle.last_hit_local)

    return Panel(
        Group(countdown, Text(""), table),
        title=f"{interval_label} cycle (refresh API)",
        box=box.ROUNDED,
        border_style="cyan",
    )


def _slots_panel(snapshot: SchedulerSnapshot, zone_label: str) -> Panel:
    table = Table(box=box.SIMPLE_HEAD, border_style="dim", expand=True)
    table.add_column("Slot", style="cyan bold", no_wrap=True)
    table.add_column("Counter", justify="right", no_wrap=True)
    table.add_column(f"Last hit / Next ({zone_label})")

    for slot in snapshot.slots:
        next_line = f"[dim]Next: {slot.next_fire_local}[/]"
        if slot.firing:
            next_line = "[yellow]firing…[/]"
        table.add_row(slot.label, str(slot.count), f"{slot.last_fired_local}\n{next_line}")

    total = Text.assemble(("Total (all slots)  ", "dim"), (str(snapshot.total_slot_count), "bold"))
    clock = Text(snapshot.clock_local_time, style="bold white")

    return Panel(
        Group(clock, table, total),
        title=f"{zone_label} clock + daily data API slots",
        box=box.ROUNDED,
        border_style="magenta",
    )


def render_snapshot(
    snapshot: SchedulerSnapshot,
    zone_label: str = "IST",
    interval_label: str = "13-minute",
) -> RenderableType:
    return Columns(
        [_cycle_panel(snapshot, interval_label), _slots_panel(snapshot, zone_label)],
        equal=True,
        expand=True,
    )


class ConsoleSink:
    """Live-updating terminal view of a running scheduler."""

    def __init__(
        self,
        console: Optional[Console] = None,
        zone_label: str = "IST",
        interval_label: str = "13-minute",
        refresh_per_second: float = 4,
    ) -> None:
        self.console = console or Console()
        self.zone_label = zone_label
        self.interval_label = interval_label
        self._refresh = refresh_per_second
        self._live: Optional[Live] = None
        self.last_snapshot: Optional[SchedulerSnapshot] = None

    def __enter__(self) -> "ConsoleSink":
        self._live = Live(
            Text("starting…", style="dim"),
            console=self.console,
            refresh_per_second=self._refresh,
            transient=False,
        )
        self._live.__enter__()
        return self

    def __exit__(self, *exc) -> None:
        if self._live is not None:
            self._live.__exit__(*exc)
            self._live = None

    def publish(self, snapshot: SchedulerSnapshot) -> None:
        self.last_snapshot = snapshot
        renderable = render_snapshot(snapshot, self.zone_label, self.interval_label)
        if self._live is not None:
            self._live.update(renderable)


def render_status(console: Console, snapshot: SchedulerSnapshot, zone_label: str = "IST") -> None:
    """Print persisted counters and next fire times once."""
    table = Table(
        title="SlotKeeper status",
        box=box.ROUNDED,
        border_style="dim",
    )
    table.add_column("Trigger", style="cyan bold", no_wrap=True)
    table.add_column("Count", justify="right", no_wrap=True)
    table.add_column(f"Last hit ({zone_label})")
    table.add_column(f"Next ({zone_label})")

    cycle = snapshot.cycle
    table.add_row(
        "cycle" if cycle.enabled else "[dim]cycle (off)[/]",
        str(cycle.hits),
        cycle.last_hit_local,
        "[dim]on start + interval[/]" if cycle.enabled else "[dim]—[/]",
    )
    for slot in snapshot.slots:
        table.add_row(slot.label, str(slot.count), slot.last_fired_local, slot.next_fire_local)

    console.print(table)
    console.print(
        f"[dim]{zone_label} now {snapshot.clock_local_time} · "
        f"total slot hits {snapshot.total_slot_count}[/]"
    )
