"""
store/ — SlotKeeper persistence

  kv.py        — JsonFileStore / MemoryStore (get/set that never raise)
  counters.py  — CounterStore: cycle and per-slot firing statistics
"""

from store.counters import CounterStore, slot_key
from store.kv import JsonFileStore, KeyValueStore, MemoryStore

__all__ = [
    "CounterStore",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "slot_key",
]
