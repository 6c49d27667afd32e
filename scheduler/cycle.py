"""
scheduler/cycle.py — Self-renewing fixed-interval cycle

State machine:

    COUNTING ──(tick sees remaining == 0)──▶ FIRING
        ▲                                      │
        └──────(action settles, re-arm)────────┘

The cycle does not own a timer. Something else calls tick() on a short
period (SlotScheduler does it every 250 ms); tick() recomputes the remaining
time and, on expiry, starts exactly one firing task. The next interval is
measured from the moment the action settled, so a process that was
suspended across several intervals fires once on resume, not once per
missed interval.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from observability.logger import get_logger, trigger_context
from scheduler.clock import FixedOffsetClock, format_countdown
from scheduler.types import CYCLE_ID, Action, CycleView, CyclePhase
from store.counters import CounterStore

log = get_logger(__name__)


class CycleTrigger:
    """Fixed-interval trigger armed for `interval_ms` from construction."""

    def __init__(
        self,
        clock: FixedOffsetClock,
        counters: CounterStore,
        action: Action,
        interval_ms: int,
    ) -> None:
        if interval_ms <= 0:
            raise ValueError("interval_ms must be > 0")
        self._clock = clock
        self._counters = counters
        self._action = action
        self.interval_ms = interval_ms

        self._phase = CyclePhase.COUNTING
        self._end_ms = clock.now_ms() + interval_ms
        self._remaining_ms = interval_ms
        self._task: Optional[asyncio.Task] = None

        log.info("cycle.armed", interval_ms=interval_ms,
                 ends=clock.format_local(self._end_ms))

    # ── Observable state ──────────────────────────────────────────────────────

    @property
    def phase(self) -> CyclePhase:
        return self._phase

    @property
    def end_ms(self) -> int:
        return self._end_ms

    @property
    def remaining_ms(self) -> int:
        """Remaining time as of the last tick()."""
        return self._remaining_ms

    def view(self) -> CycleView:
        stats = self._counters.cycle()
        return CycleView(
            enabled=True,
            phase=self._phase,
            remaining_ms=self._remaining_ms,
            countdown=format_countdown(self._remaining_ms),
            hits=stats.hits,
            last_hit_local=stats.last_hit_local,
        )

    # ── Tick ──────────────────────────────────────────────────────────────────

    def tick(self) -> Optional[asyncio.Task]:
        """
        Recompute remaining time; start a firing if the cycle has expired.

        Returns the firing task when this tick started one, else None.
        Must be called from inside a running event loop.
        """
        now = self._clock.now_ms()
        self._remaining_ms = max(0, self._end_ms - now)

        if self._remaining_ms > 0:
            return None

        if self._phase is CyclePhase.FIRING:
            # Previous firing still in flight
            return None

        self._phase = CyclePhase.FIRING
        self._task = asyncio.create_task(self._fire(), name="cycle-fire")
        return self._task

    async def _fire(self) -> None:
        with trigger_context(CYCLE_ID, policy="cycle"):
            log.info("cycle.fire.start")
            try:
                await self._action()
                log.info("cycle.fire.success")
            except asyncio.CancelledError:
                log.info("cycle.fire.cancelled")
                raise
            except Exception as e:
                log.error("cycle.fire.error", error=str(e), error_type=type(e).__name__)

            self._settle()

    def _settle(self) -> None:
        """Record the hit and re-arm from now. Runs for success and failure alike."""
        now = self._clock.now_ms()
        stats = self._counters.record_cycle_hit(self._clock.format_local(now))
        self._end_ms = now + self.interval_ms
        self._remaining_ms = self.interval_ms
        self._phase = CyclePhase.COUNTING
        self._task = None
        log.info("cycle.rearmed", hits=stats.hits,
                 ends=self._clock.format_local(self._end_ms))

    # ── Teardown ──────────────────────────────────────────────────────────────

    def cancel(self) -> Optional[asyncio.Task]:
        """Cancel an in-flight firing. Returns the cancelled task, if any."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            return task
        return None
