"""
scheduler/clock.py — Fixed-offset wall clock

All scheduler time is epoch milliseconds (int). "Local" time is UTC plus a
single fixed offset (default +05:30, IST). The offset never changes, so
day-rollover math is plain integer arithmetic on 86_400_000 ms days and is
exact for every instant. Zones with daylight saving are not supported.

Usage:
    clock = FixedOffsetClock(offset_minutes=330)
    nxt = clock.next_fire_ms(3, 45, clock.now_ms())
    clock.format_local(nxt)        # "19 Oct 2026, 03:45:00"
    clock.format_local_time()      # "22:10:07"
"""

from __future__ import annotations

import re
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS

NEVER = "—"

_OFFSET_RE = re.compile(r"^(?:UTC)?([+-])(\d{1,2}):?(\d{2})$")
_MAX_OFFSET_MINUTES = 14 * 60


def parse_utc_offset(value: str) -> int:
    """
    Parse "+05:30", "-0800", "UTC+05:30" or "Z" into signed minutes.

    Raises ValueError for anything else or offsets beyond ±14:00.
    """
    text = value.strip().upper()
    if text in ("Z", "UTC", "+00:00", "-00:00"):
        return 0
    m = _OFFSET_RE.match(text)
    if not m:
        raise ValueError(f"UTC offset must look like '+05:30', got '{value}'")
    sign, hours, minutes = m.group(1), int(m.group(2)), int(m.group(3))
    if minutes >= 60:
        raise ValueError(f"UTC offset minutes must be < 60, got '{value}'")
    total = hours * 60 + minutes
    if total > _MAX_OFFSET_MINUTES:
        raise ValueError(f"UTC offset must be within ±14:00, got '{value}'")
    return -total if sign == "-" else total


def format_countdown(remaining_ms: int) -> str:
    """Render a remaining duration as zero-padded MM:SS (minutes may exceed 59)."""
    remaining_ms = max(0, int(remaining_ms))
    minutes = remaining_ms // MINUTE_MS
    seconds = (remaining_ms % MINUTE_MS) // 1000
    return f"{minutes:02d}:{seconds:02d}"


class FixedOffsetClock:
    """
    Wall clock pinned to one UTC offset.

    `time_source` returns epoch seconds (float) and defaults to time.time;
    tests inject a controllable source.
    """

    def __init__(
        self,
        offset_minutes: int = 330,
        time_source: Optional[Callable[[], float]] = None,
    ) -> None:
        self.offset_minutes = offset_minutes
        self.offset_ms = offset_minutes * MINUTE_MS
        self._tz = timezone(timedelta(minutes=offset_minutes))
        self._time_source = time_source or time.time

    @classmethod
    def from_offset(cls, offset: str, time_source: Optional[Callable[[], float]] = None) -> "FixedOffsetClock":
        return cls(parse_utc_offset(offset), time_source=time_source)

    def now_ms(self) -> int:
        return int(round(self._time_source() * 1000))

    # ── Conversions ───────────────────────────────────────────────────────────

    def to_local(self, epoch_ms: Optional[int] = None) -> datetime:
        """Aware datetime in the fixed offset for an epoch-ms instant (default now)."""
        if epoch_ms is None:
            epoch_ms = self.now_ms()
        seconds, millis = divmod(int(epoch_ms), 1000)
        local = datetime.fromtimestamp(seconds, tz=self._tz)
        return local + timedelta(milliseconds=millis)

    def format_local(self, epoch_ms: Optional[int] = None) -> str:
        """Date + 24h time, e.g. '18 Oct 2026, 03:45:00'."""
        return self.to_local(epoch_ms).strftime("%d %b %Y, %H:%M:%S")

    def format_local_time(self, epoch_ms: Optional[int] = None) -> str:
        """Time of day only, e.g. '03:45:00'."""
        return self.to_local(epoch_ms).strftime("%H:%M:%S")

    # ── Next fire ─────────────────────────────────────────────────────────────

    def next_fire_ms(self, hour: int, minute: int, ref_ms: Optional[int] = None) -> int:
        """
        First epoch ms strictly after `ref_ms` at which local time is hour:minute:00.000.

        The candidate is built on the local calendar day of `ref_ms`; if it is
        at or before `ref_ms` it moves to the next day, so a target equal to
        the reference rolls forward instead of firing immediately.
        """
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            raise ValueError(f"invalid wall-clock target {hour}:{minute}")
        if ref_ms is None:
            ref_ms = self.now_ms()

        local_ms = ref_ms + self.offset_ms
        local_midnight = local_ms - (local_ms % DAY_MS)
        candidate = local_midnight + hour * HOUR_MS + minute * MINUTE_MS - self.offset_ms
        if candidate <= ref_ms:
            candidate += DAY_MS
        return candidate
