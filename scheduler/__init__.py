"""
scheduler/ — SlotKeeper trigger engine

  clock.py      — FixedOffsetClock: epoch ms ↔ fixed-offset local time, next fire
  types.py      — TriggerSpec, TriggerStats, CyclePhase, SchedulerSnapshot, ...
  cycle.py      — CycleTrigger: self-renewing fixed-interval cycle
  daily.py      — DailyTriggerSet: wall-clock anchored daily slots
  scheduler.py  — SlotScheduler: lifecycle facade over both

Import from the submodules directly:
    from scheduler.scheduler import SlotScheduler
    from scheduler.types import TriggerSpec

This package keeps no import-time side effects; store/ depends on
scheduler.clock and scheduler.types, and scheduler.scheduler depends on store/.
"""
