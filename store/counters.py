"""
store/counters.py — Persistent Counter Store

Durable firing statistics for the cycle and every daily slot.

Layout in the backing KeyValueStore (stable across releases):
    cycle.hits       → int
    cycle.last_hit   → str  (formatted local timestamp or "—")
    slot.<id>        → {"count": int, "last_hit": str}

Design:
  - Every key is read once, lazily on first access, then cached; every
    mutation writes through to the backing store.
  - One threading.Lock guards each read-modify-write, so increments are
    atomic even on a threaded host. Contention is rare and short.
  - A stored value that does not decode is treated exactly like a missing
    key (count 0, sentinel timestamp).
  - This class is the only writer of durable state.
"""

from __future__ import annotations

import threading
from typing import Iterable

from observability.logger import get_logger
from scheduler.clock import NEVER
from scheduler.types import CycleStats, TriggerStats
from store.kv import KeyValueStore

log = get_logger(__name__)

CYCLE_HITS_KEY = "cycle.hits"
CYCLE_LAST_HIT_KEY = "cycle.last_hit"
SLOT_KEY_PREFIX = "slot."


def slot_key(trigger_id: str) -> str:
    return f"{SLOT_KEY_PREFIX}{trigger_id}"


class CounterStore:
    """Cached, write-through view of persisted scheduler counters."""

    def __init__(self, kv: KeyValueStore) -> None:
        self._kv = kv
        self._lock = threading.Lock()
        self._cycle: CycleStats | None = None
        self._slots: dict[str, TriggerStats] = {}

    # ── Loading ───────────────────────────────────────────────────────────────

    def preload(self, trigger_ids: Iterable[str] = ()) -> None:
        """Read the cycle and the given slots now instead of on first access."""
        with self._lock:
            self._load_cycle()
            for trigger_id in trigger_ids:
                self._load_slot(trigger_id)

    def _load_cycle(self) -> CycleStats:
        if self._cycle is None:
            hits = self._kv.get(CYCLE_HITS_KEY, 0)
            last = self._kv.get(CYCLE_LAST_HIT_KEY, NEVER)
            if isinstance(hits, bool) or not isinstance(hits, int) or hits < 0:
                log.warning("counters.cycle.invalid_hits", value=repr(hits))
                hits = 0
            if not isinstance(last, str):
                log.warning("counters.cycle.invalid_last_hit", value=repr(last))
                last = NEVER
            self._cycle = CycleStats(hits=hits, last_hit_local=last)
        return self._cycle

    def _load_slot(self, trigger_id: str) -> TriggerStats:
        stats = self._slots.get(trigger_id)
        if stats is None:
            raw = self._kv.get(slot_key(trigger_id))
            if raw is None:
                stats = TriggerStats()
            else:
                try:
                    stats = TriggerStats.from_dict(raw)
                except (TypeError, ValueError) as e:
                    log.warning("counters.slot.invalid", trigger_id=trigger_id, error=str(e))
                    stats = TriggerStats()
            self._slots[trigger_id] = stats
        return stats

    # ── Reads (copies, never the cached objects) ──────────────────────────────

    def cycle(self) -> CycleStats:
        with self._lock:
            c = self._load_cycle()
            return CycleStats(hits=c.hits, last_hit_local=c.last_hit_local)

    def slot(self, trigger_id: str) -> TriggerStats:
        with self._lock:
            s = self._load_slot(trigger_id)
            return TriggerStats(count=s.count, last_fired_local=s.last_fired_local)

    # ── Mutations ─────────────────────────────────────────────────────────────

    def record_cycle_hit(self, fired_local: str) -> CycleStats:
        """hits += 1, last_hit = fired_local. Returns the new stats."""
        with self._lock:
            c = self._load_cycle()
            c.hits += 1
            c.last_hit_local = fired_local
            self._kv.set(CYCLE_HITS_KEY, c.hits)
            self._kv.set(CYCLE_LAST_HIT_KEY, c.last_hit_local)
            log.debug("counters.cycle.recorded", hits=c.hits)
            return CycleStats(hits=c.hits, last_hit_local=c.last_hit_local)

    def record_slot_fire(self, trigger_id: str, fired_local: str) -> TriggerStats:
        """count += 1, last_fired = fired_local for one slot. Returns the new stats."""
        with self._lock:
            s = self._load_slot(trigger_id)
            s.count += 1
            s.last_fired_local = fired_local
            self._kv.set(slot_key(trigger_id), s.to_dict())
            log.debug("counters.slot.recorded", trigger_id=trigger_id, count=s.count)
            return TriggerStats(count=s.count, last_fired_local=s.last_fired_local)
