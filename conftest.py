"""
Test conftest — isolate endpoint/config environment variables so Settings()
behaves the same on every machine, and provide a controllable clock and
timer loop for the scheduler tests.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

_ENV_VARS = [
    "REFRESH_API_URL",
    "DATA_API_URL",
    "SLOTKEEPER_CONFIG",
]


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch):
    """Remove SlotKeeper env vars for every test and disable .env loading so
    a developer's local .env never leaks into test runs."""
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)

    import config.settings as settings_module
    from pydantic_settings import SettingsConfigDict
    patched_config = SettingsConfigDict(
        env_file=None,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )
    monkeypatch.setattr(settings_module.Settings, "model_config", patched_config)
    yield


# ─────────────────────────────────────────────────────────────────────────────
# Fake time + timing facility
# ─────────────────────────────────────────────────────────────────────────────

class FakeTime:
    """Epoch source in milliseconds; call it to get epoch seconds."""

    def __init__(self, start_ms: int = 0) -> None:
        self.ms = start_ms

    def __call__(self) -> float:
        return self.ms / 1000

    def set(self, ms: int) -> None:
        self.ms = ms

    def advance(self, ms: int) -> None:
        self.ms += ms


class FakeHandle:
    def __init__(self, loop: "FakeLoop", when_ms: int, callback, args) -> None:
        self.loop = loop
        self.when_ms = when_ms
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.ran = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def live(self) -> bool:
        return not self.cancelled and not self.ran

    def run(self) -> None:
        self.ran = True
        self.callback(*self.args)


class FakeLoop:
    """
    Stand-in for asyncio's call_later. Nothing runs until the test calls
    run_due(); handles are due when the fake clock reaches them.
    """

    def __init__(self, time: FakeTime) -> None:
        self.time = time
        self.handles: list[FakeHandle] = []

    def call_later(self, delay: float, callback, *args) -> FakeHandle:
        handle = FakeHandle(self, self.time.ms + int(round(delay * 1000)), callback, args)
        self.handles.append(handle)
        return handle

    def live_handles(self) -> list[FakeHandle]:
        return [h for h in self.handles if h.live]

    def run_due(self) -> int:
        """Run every live handle whose time has come. Returns how many ran."""
        due = sorted(
            (h for h in self.live_handles() if h.when_ms <= self.time.ms),
            key=lambda h: h.when_ms,
        )
        for handle in due:
            if handle.live:
                handle.run()
        return len(due)


def local_ms(clock, year: int, month: int, day: int, hour: int = 0,
             minute: int = 0, second: int = 0, millisecond: int = 0) -> int:
    """Epoch ms for a calendar date/time in `clock`'s fixed offset."""
    tz = timezone(timedelta(minutes=clock.offset_minutes))
    local = datetime(year, month, day, hour, minute, second, tzinfo=tz)
    return int(local.timestamp()) * 1000 + millisecond


@pytest.fixture
def fake_time() -> FakeTime:
    # 2026-10-17 18:00:00 UTC == 2026-10-17 23:30:00 +05:30
    return FakeTime(1_792_260_000_000)


@pytest.fixture
def fake_loop(fake_time) -> FakeLoop:
    return FakeLoop(fake_time)


@pytest.fixture
def clock(fake_time):
    from scheduler.clock import FixedOffsetClock
    return FixedOffsetClock(offset_minutes=330, time_source=fake_time)


@pytest.fixture
def counters():
    from store import CounterStore, MemoryStore
    return CounterStore(MemoryStore())
