"""
tests/unit/test_console.py — Rich render sink and status table
"""

from __future__ import annotations

from rich.console import Console

from interfaces.console import ConsoleSink, render_snapshot, render_status
from scheduler.clock import NEVER
from scheduler.types import CycleView, CyclePhase, SchedulerSnapshot, SlotView


def _snapshot(phase=CyclePhase.COUNTING, enabled=True, firing=False) -> SchedulerSnapshot:
    return SchedulerSnapshot(
        running=True,
        clock_local_time="03:44:12",
        cycle=CycleView(
            enabled=enabled,
            phase=phase,
            remaining_ms=7 * 60 * 1000 + 5000,
            countdown="07:05",
            hits=42,
            last_hit_local="18 Oct 2026, 03:37:07",
        ),
        slots=[
            SlotView("t0345", "03:45 IST", 3, "17 Oct 2026, 03:45:00", "18 Oct 2026, 03:45:00", firing=firing),
            SlotView("t0355", "03:55 IST", 0, NEVER, "18 Oct 2026, 03:55:00"),
        ],
    )


def _record() -> Console:
    return Console(record=True, width=140, color_system=None)


def test_render_snapshot_shows_cycle_and_slots():
    console = _record()
    console.print(render_snapshot(_snapshot(), zone_label="IST", interval_label="13-minute"))
    text = console.export_text()
    assert "07:05" in text
    assert "42" in text
    assert "18 Oct 2026, 03:37:07" in text
    assert "03:45 IST" in text
    assert "Next: 18 Oct 2026, 03:55:00" in text
    assert "03:44:12" in text
    assert "13-minute cycle" in text


def test_firing_states_are_shown():
    console = _record()
    console.print(render_snapshot(_snapshot(phase=CyclePhase.FIRING, firing=True)))
    text = console.export_text()
    assert "firing…" in text


def test_disabled_cycle_is_shown():
    console = _record()
    console.print(render_snapshot(_snapshot(enabled=False)))
    assert "disabled" in console.export_text()


def test_publish_without_live_keeps_last_snapshot():
    sink = ConsoleSink(console=_record())
    snap = _snapshot()
    sink.publish(snap)
    assert sink.last_snapshot is snap


def test_sink_as_context_manager():
    console = _record()
    with ConsoleSink(console=console) as sink:
        sink.publish(_snapshot())
    assert sink.last_snapshot is not None
    assert "03:45 IST" in console.export_text()


def test_render_status():
    console = _record()
    render_status(console, _snapshot(), zone_label="IST")
    text = console.export_text()
    assert "SlotKeeper status" in text
    assert "cycle" in text
    assert "17 Oct 2026, 03:45:00" in text
    assert "total slot hits 3" in text
