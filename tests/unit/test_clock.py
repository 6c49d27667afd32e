"""
tests/unit/test_clock.py — Fixed-offset clock and next-fire arithmetic

Covers:
  - next_fire_ms: strict-forward rule at the exact boundary instant
  - next_fire_ms: same-day fire just before the boundary
  - Local day derived from the offset, not from the UTC date
  - Month / year rollover
  - Property sweep: next > ref, next - ref <= 24h, lands on hh:mm:00.000 local
  - Negative offsets
  - Formatting: date+time, time-only, MM:SS countdown
  - parse_utc_offset accepted and rejected forms
"""

from __future__ import annotations

import random

import pytest

from conftest import local_ms
from scheduler.clock import (
    DAY_MS,
    FixedOffsetClock,
    format_countdown,
    parse_utc_offset,
)


def _ist() -> FixedOffsetClock:
    return FixedOffsetClock(offset_minutes=330, time_source=lambda: 0.0)


# ─────────────────────────────────────────────────────────────────────────────
# next_fire_ms
# ─────────────────────────────────────────────────────────────────────────────

class TestNextFire:

    def test_just_before_target_fires_same_day(self):
        clock = _ist()
        ref = local_ms(clock, 2026, 10, 18, 3, 44, 59, 900)
        nxt = clock.next_fire_ms(3, 45, ref)
        assert nxt == local_ms(clock, 2026, 10, 18, 3, 45, 0, 0)
        assert nxt - ref == 100

    def test_exact_target_rolls_to_next_day(self):
        clock = _ist()
        ref = local_ms(clock, 2026, 10, 18, 3, 45, 0, 0)
        nxt = clock.next_fire_ms(3, 45, ref)
        assert nxt == local_ms(clock, 2026, 10, 19, 3, 45, 0, 0)
        assert nxt - ref == DAY_MS

    def test_one_ms_after_target_rolls_to_next_day(self):
        clock = _ist()
        ref = local_ms(clock, 2026, 10, 18, 3, 45, 0, 1)
        assert clock.next_fire_ms(3, 45, ref) == local_ms(clock, 2026, 10, 19, 3, 45)

    def test_local_day_comes_from_offset_not_utc(self):
        clock = _ist()
        # 2026-10-17 20:00 UTC is already 01:30 on the 18th in +05:30
        ref = local_ms(clock, 2026, 10, 18, 1, 30)
        assert clock.to_local(ref).day == 18
        nxt = clock.next_fire_ms(3, 45, ref)
        assert nxt == local_ms(clock, 2026, 10, 18, 3, 45)

    def test_late_evening_targets_tomorrow(self):
        clock = _ist()
        ref = local_ms(clock, 2026, 10, 17, 23, 30)
        assert clock.next_fire_ms(3, 45, ref) == local_ms(clock, 2026, 10, 18, 3, 45)

    def test_year_rollover(self):
        clock = _ist()
        ref = local_ms(clock, 2026, 12, 31, 23, 59, 30)
        nxt = clock.next_fire_ms(0, 0, ref)
        local = clock.to_local(nxt)
        assert (local.year, local.month, local.day, local.hour, local.minute) == (2027, 1, 1, 0, 0)

    def test_leap_day(self):
        clock = _ist()
        ref = local_ms(clock, 2028, 2, 28, 12, 0)
        nxt = clock.next_fire_ms(4, 5, ref)
        assert clock.to_local(nxt).day == 29

    def test_negative_offset(self):
        clock = FixedOffsetClock(offset_minutes=-8 * 60, time_source=lambda: 0.0)
        ref = local_ms(clock, 2026, 10, 17, 22, 0)
        nxt = clock.next_fire_ms(21, 0, ref)
        local = clock.to_local(nxt)
        assert (local.day, local.hour, local.minute) == (18, 21, 0)

    def test_defaults_to_now(self):
        clock = FixedOffsetClock(offset_minutes=330, time_source=lambda: 1_792_260_000.0)
        assert clock.next_fire_ms(3, 45) == clock.next_fire_ms(3, 45, clock.now_ms())

    @pytest.mark.parametrize("hour,minute", [(24, 0), (-1, 0), (3, 60), (3, -1)])
    def test_invalid_target_rejected(self, hour, minute):
        with pytest.raises(ValueError):
            _ist().next_fire_ms(hour, minute, 0)

    @pytest.mark.parametrize("offset_minutes", [330, 0, -480, 345, 840, -720])
    def test_property_sweep(self, offset_minutes):
        clock = FixedOffsetClock(offset_minutes=offset_minutes, time_source=lambda: 0.0)
        rng = random.Random(offset_minutes)
        base = local_ms(clock, 2026, 1, 1)
        for _ in range(400):
            ref = base + rng.randrange(0, 400 * DAY_MS)
            hour, minute = rng.randrange(24), rng.randrange(60)
            nxt = clock.next_fire_ms(hour, minute, ref)
            assert nxt > ref
            assert nxt - ref <= DAY_MS
            local = clock.to_local(nxt)
            assert (local.hour, local.minute, local.second, local.microsecond) == (hour, minute, 0, 0)


# ─────────────────────────────────────────────────────────────────────────────
# Formatting
# ─────────────────────────────────────────────────────────────────────────────

class TestFormatting:

    def test_format_local(self):
        clock = _ist()
        assert clock.format_local(local_ms(clock, 2026, 10, 18, 3, 5, 9)) == "18 Oct 2026, 03:05:09"

    def test_format_local_time(self):
        clock = _ist()
        assert clock.format_local_time(local_ms(clock, 2026, 10, 18, 23, 0, 7)) == "23:00:07"

    def test_format_uses_now_by_default(self):
        clock = FixedOffsetClock(offset_minutes=330, time_source=lambda: 1_792_260_000.0)
        assert clock.format_local_time() == "23:30:00"

    def test_to_local_keeps_milliseconds(self):
        clock = _ist()
        local = clock.to_local(local_ms(clock, 2026, 10, 18, 3, 44, 59, 900))
        assert local.microsecond == 900_000

    @pytest.mark.parametrize("ms,expected", [
        (13 * 60 * 1000, "13:00"),
        (0, "00:00"),
        (59_999, "00:59"),
        (61_000, "01:01"),
        (-5, "00:00"),
        (120 * 60 * 1000, "120:00"),
    ])
    def test_format_countdown(self, ms, expected):
        assert format_countdown(ms) == expected


# ─────────────────────────────────────────────────────────────────────────────
# parse_utc_offset
# ─────────────────────────────────────────────────────────────────────────────

class TestParseOffset:

    @pytest.mark.parametrize("text,minutes", [
        ("+05:30", 330),
        ("+0530", 330),
        ("UTC+05:30", 330),
        ("-08:00", -480),
        ("+5:45", 345),
        ("Z", 0),
        ("utc", 0),
        ("+14:00", 840),
    ])
    def test_accepted(self, text, minutes):
        assert parse_utc_offset(text) == minutes

    @pytest.mark.parametrize("text", ["05:30", "+05:75", "+15:00", "Asia/Kolkata", ""])
    def test_rejected(self, text):
        with pytest.raises(ValueError):
            parse_utc_offset(text)

    def test_from_offset(self):
        clock = FixedOffsetClock.from_offset("+05:30")
        assert clock.offset_minutes == 330
