"""
scheduler/scheduler.py — SlotScheduler facade

Owns one run of both policies:
  - CycleTrigger       fixed-interval refresh cycle (ticked every 250 ms)
  - DailyTriggerSet    wall-clock slots (one call_later wait per slot)

and exposes their state read-only, as a SchedulerSnapshot, to an optional
render sink published on every tick.

Lifecycle:
    scheduler = SlotScheduler.from_settings(settings, counters, sink=console)
    handle = scheduler.start(specs, action_map.__getitem__)
    ...
    scheduler.stop(handle)          # synchronous; nothing fires afterwards
    await scheduler.shutdown()      # stop + await cancelled tasks

All transient arm state (timer handles, the tick task, in-flight firings)
belongs to the instance. start() on a running scheduler stops the previous
run first, so repeated start/stop never stacks timers. Persisted counters
live in the CounterStore and are untouched by stop().
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from typing import Iterable, Optional

from exceptions import SchedulerError
from observability.logger import get_logger
from scheduler.clock import NEVER, FixedOffsetClock
from scheduler.cycle import CycleTrigger
from scheduler.daily import DailyTriggerSet
from scheduler.types import (
    CYCLE_ID,
    ActionFor,
    CycleView,
    CyclePhase,
    RenderSink,
    SchedulerSnapshot,
    SlotView,
    TriggerSpec,
)
from store.counters import CounterStore

log = get_logger(__name__)

DEFAULT_INTERVAL_MS = 13 * 60 * 1000
DEFAULT_TICK_MS = 250


@dataclass(frozen=True)
class SchedulerHandle:
    run_id: str
    started_at_ms: int


class SlotScheduler:
    """
    Lifecycle facade over the cycle and the daily slots.

    Args:
        clock:            Fixed-offset clock shared by both policies.
        counters:         Persistent counter store (sole durable writer).
        interval_ms:      Cycle length.
        tick_interval_ms: Period of the internal tick loop.
        cycle_enabled:    Run the fixed-interval cycle at all.
        sink:             Optional render sink; receives a snapshot every tick.
        autotick:         Run the internal tick loop. Tests drive tick() by hand.
        loop:             Timing facility for daily waits (defaults to the
                          running event loop).
    """

    def __init__(
        self,
        clock: FixedOffsetClock,
        counters: CounterStore,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        tick_interval_ms: int = DEFAULT_TICK_MS,
        cycle_enabled: bool = True,
        sink: Optional[RenderSink] = None,
        autotick: bool = True,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self.clock = clock
        self.counters = counters
        self.interval_ms = interval_ms
        self.tick_interval_ms = tick_interval_ms
        self.cycle_enabled = cycle_enabled
        self.sink = sink
        self._autotick = autotick
        self._loop = loop

        self._handle: Optional[SchedulerHandle] = None
        self._cycle: Optional[CycleTrigger] = None
        self._daily: Optional[DailyTriggerSet] = None
        self._specs: list[TriggerSpec] = []
        self._ticker: Optional[asyncio.Task] = None
        self._cancelled: list[asyncio.Task] = []

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def start(self, specs: Iterable[TriggerSpec], action_for: ActionFor) -> SchedulerHandle:
        """
        Arm every slot and the cycle. Returns the handle that stop() needs.

        `action_for(trigger_id)` supplies each slot's action and
        `action_for(CYCLE_ID)` the cycle's. Must be called from inside a
        running event loop.
        """
        if self._handle is not None:
            log.info("scheduler.restarting", previous_run=self._handle.run_id)
            self.stop(self._handle)

        self._specs = list(specs)
        self.counters.preload(s.id for s in self._specs)

        daily = DailyTriggerSet(self.clock, self.counters, self._specs, action_for, loop=self._loop)
        cycle = None
        if self.cycle_enabled:
            cycle = CycleTrigger(self.clock, self.counters, action_for(CYCLE_ID), self.interval_ms)

        daily.start()
        self._daily = daily
        self._cycle = cycle

        if self._autotick:
            try:
                self._ticker = asyncio.get_running_loop().create_task(
                    self._tick_loop(), name="scheduler-tick",
                )
            except RuntimeError as e:
                daily.stop()
                self._daily = self._cycle = None
                raise SchedulerError("SlotScheduler.start() needs a running event loop") from e

        self._handle = SchedulerHandle(
            run_id=f"run_{uuid.uuid4().hex[:8]}",
            started_at_ms=self.clock.now_ms(),
        )
        log.info("scheduler.started", run_id=self._handle.run_id,
                 slots=[s.id for s in self._specs], cycle=self.cycle_enabled,
                 interval_ms=self.interval_ms)
        self._publish()
        return self._handle

    def stop(self, handle: SchedulerHandle) -> None:
        """
        Tear down every timer and in-flight firing of the run `handle` names.

        Synchronous: no scheduler callback runs after this returns. A handle
        from an earlier run is ignored.
        """
        if handle is None or handle != self._handle:
            log.warning("scheduler.stop.stale_handle",
                        run_id=getattr(handle, "run_id", None))
            return

        self._cancelled = [t for t in self._cancelled if not t.done()]
        if self._ticker is not None:
            self._ticker.cancel()
            self._cancelled.append(self._ticker)
            self._ticker = None

        if self._daily is not None:
            self._cancelled.extend(self._daily.stop())
        if self._cycle is not None:
            task = self._cycle.cancel()
            if task is not None:
                self._cancelled.append(task)

        self._handle = None
        log.info("scheduler.stopped", run_id=handle.run_id)
        self._publish()

    async def shutdown(self) -> None:
        """stop() the current run, then wait for the cancelled tasks to unwind."""
        if self._handle is not None:
            self.stop(self._handle)
        pending, self._cancelled = self._cancelled, []
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    @property
    def running(self) -> bool:
        return self._handle is not None

    @property
    def handle(self) -> Optional[SchedulerHandle]:
        return self._handle

    @property
    def daily(self) -> Optional[DailyTriggerSet]:
        return self._daily

    @property
    def cycle(self) -> Optional[CycleTrigger]:
        return self._cycle

    # ── Tick ──────────────────────────────────────────────────────────────────

    def tick(self) -> Optional[asyncio.Task]:
        """Advance the cycle and publish a snapshot. Returns a started firing task."""
        task = None
        if self._cycle is not None and self.running:
            task = self._cycle.tick()
        self._publish()
        return task

    async def _tick_loop(self) -> None:
        log.info("scheduler.tick_loop.started", tick_interval_ms=self.tick_interval_ms)
        while True:
            try:
                self.tick()
                await asyncio.sleep(self.tick_interval_ms / 1000)
            except asyncio.CancelledError:
                break
            except Exception as e:
                log.error("scheduler.tick_loop.error", error=str(e))
                await asyncio.sleep(self.tick_interval_ms / 1000)

    def _publish(self) -> None:
        if self.sink is None:
            return
        try:
            self.sink.publish(self.snapshot())
        except Exception as e:
            log.warning("scheduler.sink.error", error=str(e), error_type=type(e).__name__)

    # ── Read-only accessors ───────────────────────────────────────────────────

    @property
    def remaining_ms(self) -> int:
        """Cycle time left as of the last tick (0 when the cycle is off)."""
        return self._cycle.remaining_ms if self._cycle is not None else 0

    @property
    def clock_display(self) -> str:
        return self.clock.format_local_time()

    def cycle_view(self) -> CycleView:
        if self._cycle is not None and self.running:
            return self._cycle.view()
        stats = self.counters.cycle()
        return CycleView(
            enabled=self.cycle_enabled,
            phase=CyclePhase.COUNTING,
            remaining_ms=0,
            countdown="--:--",
            hits=stats.hits,
            last_hit_local=stats.last_hit_local,
        )

    def slot_views(self) -> list[SlotView]:
        if self._daily is not None and self.running:
            return self._daily.views()
        views = []
        for spec in self._specs:
            stats = self.counters.slot(spec.id)
            views.append(SlotView(
                id=spec.id,
                label=spec.display_label,
                count=stats.count,
                last_fired_local=stats.last_fired_local,
                next_fire_local=NEVER,
            ))
        return views

    def total_slot_count(self) -> int:
        return sum(v.count for v in self.slot_views())

    def snapshot(self) -> SchedulerSnapshot:
        return SchedulerSnapshot(
            running=self.running,
            clock_local_time=self.clock_display,
            cycle=self.cycle_view(),
            slots=self.slot_views(),
        )

    def preview(self, specs: Iterable[TriggerSpec]) -> SchedulerSnapshot:
        """Snapshot of persisted state with next fire times computed, without arming anything."""
        now = self.clock.now_ms()
        slots = []
        for spec in specs:
            stats = self.counters.slot(spec.id)
            slots.append(SlotView(
                id=spec.id,
                label=spec.display_label,
                count=stats.count,
                last_fired_local=stats.last_fired_local,
                next_fire_local=self.clock.format_local(
                    self.clock.next_fire_ms(spec.hour, spec.minute, now)
                ),
            ))
        return SchedulerSnapshot(
            running=self.running,
            clock_local_time=self.clock.format_local_time(now),
            cycle=self.cycle_view(),
            slots=slots,
        )

    # ── Factory ───────────────────────────────────────────────────────────────

    @classmethod
    def from_settings(
        cls,
        settings,
        counters: CounterStore,
        sink: Optional[RenderSink] = None,
        clock: Optional[FixedOffsetClock] = None,
        **kwargs,
    ) -> "SlotScheduler":
        """Create a SlotScheduler from SlotKeeper Settings."""
        return cls(
            clock=clock or FixedOffsetClock.from_offset(settings.clock.utc_offset),
            counters=counters,
            interval_ms=settings.cycle.interval_ms,
            tick_interval_ms=settings.cycle.tick_interval_ms,
            cycle_enabled=settings.cycle.enabled,
            sink=sink,
            **kwargs,
        )


def specs_from_settings(settings) -> list[TriggerSpec]:
    """TriggerSpecs for every configured daily slot (empty when daily is off)."""
    if not settings.daily.enabled:
        return []
    return [
        TriggerSpec(id=s.id, hour=s.hour, minute=s.minute, label=settings.slot_label(s))
        for s in settings.daily.slots
    ]
