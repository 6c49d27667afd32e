"""
exceptions.py — SlotKeeper Unified Error Hierarchy

All SlotKeeper-specific exceptions live here. Every layer raises typed
subclasses of SlotKeeperError — never bare Exception.

Import from here, not from individual modules:
    from exceptions import ActionFailedError, StoreReadError

Hierarchy:
    SlotKeeperError
    ├── ActionError
    │   └── ActionFailedError
    ├── StoreError
    │   ├── StoreReadError
    │   └── StoreWriteError
    └── SchedulerError

Configuration problems are reported by config.settings.ConfigError.
"""

from __future__ import annotations


# ─────────────────────────────────────────────────────────────────────────────
# Root
# ─────────────────────────────────────────────────────────────────────────────

class SlotKeeperError(Exception):
    """Base class for all SlotKeeper exceptions."""


# ─────────────────────────────────────────────────────────────────────────────
# Action layer
# ─────────────────────────────────────────────────────────────────────────────

class ActionError(SlotKeeperError):
    """Base for errors raised by scheduled actions."""


class ActionFailedError(ActionError):
    """An HTTP action got a non-success status from its endpoint."""

    def __init__(self, url: str, status: int, reason: str = "", body: str = "") -> None:
        self.url = url
        self.status = status
        self.reason = reason
        self.body = body
        super().__init__(f"GET {url} failed: {status} {reason} {body}".strip())


# ─────────────────────────────────────────────────────────────────────────────
# Store layer
# ─────────────────────────────────────────────────────────────────────────────

class StoreError(SlotKeeperError):
    """Base for key-value store errors."""


class StoreReadError(StoreError):
    """The backing store could not be read or its contents did not decode."""


class StoreWriteError(StoreError):
    """The backing store could not be written."""


# ─────────────────────────────────────────────────────────────────────────────
# Scheduler layer
# ─────────────────────────────────────────────────────────────────────────────

class SchedulerError(SlotKeeperError):
    """Misuse of the scheduler facade (e.g. starting without a running loop)."""
