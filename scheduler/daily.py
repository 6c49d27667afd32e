"""
scheduler/daily.py — Daily wall-clock triggers

Each TriggerSpec runs its own cycle, independent of every other slot:

    arm()  ──▶ Armed(next_fire_ms) ──(call_later elapses)──▶ fire()
     ▲                                                          │
     └─────────────(action settled, stats recorded)─────────────┘

  - arm() cancels any pending wait for the same id before registering a new
    one, so calling it repeatedly (config reload, restart) never leaves two
    live waits for one slot.
  - fire() invokes the action once, records count/last-fired whether the
    action succeeded or failed, then re-arms for the next day.
  - A slot never has two firings in flight; the next wait is only
    registered after the previous action settled.
  - call_later runs on the monotonic clock and can deliver a wait a few ms
    before the wall-clock target. The re-arm is computed from the target
    just served, so the next target is always the following day's.
  - Slots share nothing but the CounterStore, where each writes its own key.
"""

from __future__ import annotations

import asyncio
from typing import Iterable, Optional

from exceptions import SchedulerError
from observability.logger import get_logger, trigger_context
from scheduler.clock import NEVER, FixedOffsetClock
from scheduler.types import ActionFor, SlotView, TriggerArmState, TriggerSpec, TriggerStats
from store.counters import CounterStore

log = get_logger(__name__)


class DailyTriggerSet:
    """
    The set of daily slots owned by one scheduler run.

    `loop` is the timing facility: anything with asyncio's
    call_later(delay, callback, *args) → handle-with-cancel() signature.
    Defaults to the running event loop.
    """

    def __init__(
        self,
        clock: FixedOffsetClock,
        counters: CounterStore,
        specs: Iterable[TriggerSpec],
        action_for: ActionFor,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._clock = clock
        self._counters = counters
        self._action_for = action_for
        self._loop = loop

        self._specs: dict[str, TriggerSpec] = {}
        for spec in specs:
            if spec.id in self._specs:
                raise ValueError(f"duplicate trigger id: {spec.id!r}")
            self._specs[spec.id] = spec

        self._armed: dict[str, TriggerArmState] = {}
        self._next_display: dict[str, str] = {}
        self._inflight: dict[str, asyncio.Task] = {}
        self._active = False

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Arm every slot."""
        self._active = True
        for trigger_id in self._specs:
            self.arm(trigger_id)
        log.info("daily.started", slots=list(self._specs))

    def stop(self) -> list[asyncio.Task]:
        """
        Cancel every pending wait and in-flight firing.

        Synchronous: once this returns no wait callback will run and no
        firing will record or re-arm. Returns the cancelled tasks so the
        caller may await them.
        """
        self._active = False
        for state in self._armed.values():
            state.cancel()
        self._armed.clear()

        cancelled = [t for t in self._inflight.values() if not t.done()]
        for task in cancelled:
            task.cancel()
        self._inflight.clear()
        log.info("daily.stopped", cancelled_firings=len(cancelled))
        return cancelled

    @property
    def active(self) -> bool:
        return self._active

    # ── Arm ───────────────────────────────────────────────────────────────────

    def arm(self, trigger_id: str, not_before_ms: Optional[int] = None) -> TriggerArmState:
        """
        Compute the next fire instant for one slot and register its wait.

        `not_before_ms` is the slot instant that just fired: the next target
        is strictly after it even when the wait was delivered a few ms early.
        """
        spec = self._specs[trigger_id]

        previous = self._armed.pop(trigger_id, None)
        if previous is not None:
            previous.cancel()

        now = self._clock.now_ms()
        ref = now if not_before_ms is None else max(now, not_before_ms)
        next_fire_ms = self._clock.next_fire_ms(spec.hour, spec.minute, ref)
        delay_s = max(0, next_fire_ms - now) / 1000

        handle = self._timing_facility().call_later(delay_s, self._on_wait_elapsed, trigger_id)
        state = TriggerArmState(next_fire_ms=next_fire_ms, handle=handle)
        self._armed[trigger_id] = state
        self._next_display[trigger_id] = self._clock.format_local(next_fire_ms)

        log.info("daily.trigger.armed", trigger_id=trigger_id,
                 next_fire=self._next_display[trigger_id], delay_s=round(delay_s, 3))
        return state

    def _timing_facility(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        try:
            return asyncio.get_running_loop()
        except RuntimeError as e:
            raise SchedulerError(
                "daily triggers must be armed from inside a running event loop"
            ) from e

    def _on_wait_elapsed(self, trigger_id: str) -> None:
        state = self._armed.get(trigger_id)
        scheduled_ms = None
        if state is not None:
            state.handle = None
            scheduled_ms = state.next_fire_ms

        if not self._active:
            return
        if trigger_id in self._inflight:
            log.warning("daily.fire.overlap_skipped", trigger_id=trigger_id)
            return

        task = asyncio.create_task(
            self.fire(trigger_id, scheduled_ms=scheduled_ms), name=f"daily-fire-{trigger_id}",
        )
        self._inflight[trigger_id] = task
        task.add_done_callback(
            lambda fut, tid=trigger_id: self._forget(tid, fut)
        )

    def _forget(self, trigger_id: str, task: asyncio.Task) -> None:
        if self._inflight.get(trigger_id) is task:
            del self._inflight[trigger_id]

    # ── Fire ──────────────────────────────────────────────────────────────────

    async def fire(self, trigger_id: str, scheduled_ms: Optional[int] = None) -> TriggerStats:
        """
        Run one slot's action, record the firing, re-arm if still active.

        `scheduled_ms` is the slot instant this firing serves; the re-arm
        targets the first slot instant after it. Action failures are logged
        and counted; they never propagate.
        """
        spec = self._specs[trigger_id]
        with trigger_context(trigger_id, policy="daily"):
            log.info("daily.fire.start", label=spec.display_label)
            try:
                await self._action_for(trigger_id)()
                log.info("daily.fire.success")
            except asyncio.CancelledError:
                log.info("daily.fire.cancelled")
                raise
            except Exception as e:
                log.error("daily.fire.error", label=spec.display_label,
                          error=str(e), error_type=type(e).__name__)

            fired_local = self._clock.format_local(self._clock.now_ms())
            stats = self._counters.record_slot_fire(trigger_id, fired_local)
            log.info("daily.fire.recorded", count=stats.count, last_fired=fired_local)

            if self._active:
                self.arm(trigger_id, not_before_ms=scheduled_ms)
            return stats

    # ── Views ─────────────────────────────────────────────────────────────────

    @property
    def specs(self) -> list[TriggerSpec]:
        return list(self._specs.values())

    def arm_state(self, trigger_id: str) -> Optional[TriggerArmState]:
        return self._armed.get(trigger_id)

    def live_waits(self) -> int:
        """Number of registered, not-yet-elapsed waits."""
        return sum(1 for s in self._armed.values() if s.handle is not None)

    def next_fire_local(self, trigger_id: str) -> str:
        return self._next_display.get(trigger_id, NEVER)

    def is_firing(self, trigger_id: str) -> bool:
        return trigger_id in self._inflight

    def stats(self, trigger_id: str) -> TriggerStats:
        return self._counters.slot(trigger_id)

    def total_count(self) -> int:
        return sum(self._counters.slot(tid).count for tid in self._specs)

    def views(self) -> list[SlotView]:
        views = []
        for spec in self._specs.values():
            stats = self._counters.slot(spec.id)
            views.append(SlotView(
                id=spec.id,
                label=spec.display_label,
                count=stats.count,
                last_fired_local=stats.last_fired_local,
                next_fire_local=self.next_fire_local(spec.id),
                firing=self.is_firing(spec.id),
            ))
        return views
