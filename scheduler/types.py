"""
scheduler/types.py — Scheduler data model

Public types:
- TriggerSpec:      immutable daily wall-clock slot (id, hour, minute, label)
- TriggerStats:     persisted per-slot firing statistics
- CycleStats:       persisted fixed-interval cycle statistics
- TriggerArmState:  transient per-slot arm state (next fire + pending handle)
- CyclePhase:       tagged state of the interval cycle
- SchedulerSnapshot and friends: read-only view handed to render sinks
- Action / ActionFor: async callables fired by the scheduler
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol

from scheduler.clock import NEVER

# Async operation fired by a trigger. Any return value is ignored.
Action = Callable[[], Awaitable[Any]]

# Maps a trigger id (or CYCLE_ID) to its action.
ActionFor = Callable[[str], Action]

CYCLE_ID = "cycle"


@dataclass(frozen=True)
class TriggerSpec:
    id: str
    hour: int
    minute: int
    label: str = ""

    def __post_init__(self) -> None:
        if not (0 <= self.hour <= 23):
            raise ValueError(f"TriggerSpec {self.id!r}: hour must be 0-23, got {self.hour}")
        if not (0 <= self.minute <= 59):
            raise ValueError(f"TriggerSpec {self.id!r}: minute must be 0-59, got {self.minute}")
        if self.id == CYCLE_ID:
            raise ValueError(f"TriggerSpec id {CYCLE_ID!r} is reserved for the cycle")

    @property
    def display_label(self) -> str:
        return self.label or f"{self.hour:02d}:{self.minute:02d}"


@dataclass
class TriggerStats:
    count: int = 0
    last_fired_local: str = NEVER

    def to_dict(self) -> dict[str, Any]:
        return {"count": self.count, "last_hit": self.last_fired_local}

    @classmethod
    def from_dict(cls, data: Any) -> "TriggerStats":
        """Raises ValueError/TypeError if `data` is not a valid stats record."""
        if not isinstance(data, dict):
            raise TypeError(f"expected a mapping, got {type(data).__name__}")
        count = data.get("count", 0)
        last = data.get("last_hit", NEVER)
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise ValueError(f"invalid count: {count!r}")
        if not isinstance(last, str):
            raise ValueError(f"invalid last_hit: {last!r}")
        return cls(count=count, last_fired_local=last)


@dataclass
class CycleStats:
    hits: int = 0
    last_hit_local: str = NEVER


@dataclass
class TriggerArmState:
    next_fire_ms: int
    handle: Optional[asyncio.TimerHandle] = None

    def cancel(self) -> None:
        if self.handle is not None:
            self.handle.cancel()
            self.handle = None


class CyclePhase(str, Enum):
    COUNTING = "counting"
    FIRING = "firing"


# ─────────────────────────────────────────────────────────────────────────────
# Render snapshot
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CycleView:
    enabled: bool
    phase: CyclePhase
    remaining_ms: int
    countdown: str                  # "MM:SS"
    hits: int
    last_hit_local: str


@dataclass(frozen=True)
class SlotView:
    id: str
    label: str
    count: int
    last_fired_local: str
    next_fire_local: str
    firing: bool = False


@dataclass(frozen=True)
class SchedulerSnapshot:
    running: bool
    clock_local_time: str
    cycle: CycleView
    slots: list[SlotView] = field(default_factory=list)

    @property
    def total_slot_count(self) -> int:
        return sum(s.count for s in self.slots)


class RenderSink(Protocol):
    """Observer of scheduler state. Must not mutate anything it is given."""

    def publish(self, snapshot: SchedulerSnapshot) -> None: ...
