"""
observability/logger.py — SlotKeeper Structured Logger

Two sinks, both fed by structlog through stdlib logging:
  - slotkeeper.log   rotating file, always one JSON object per line
  - stderr           optional; JSON or coloured key=value (json_format)

The live console view owns stdout, so the stderr sink is off by default.
Every line carries timestamp, level, logger and event, plus trigger_id /
policy / fire_id while inside trigger_context().

Usage:
    from observability.logger import get_logger, setup_logging

    setup_logging(level="INFO", log_dir="./data/logs")   # call once at startup
    log = get_logger(__name__)
    log.info("daily.trigger.armed", trigger_id="t0345", next_fire="19 Oct 2026, 03:45:00")
    log.error("cycle.fire.error", error="GET /api/refresh failed: 502")
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import structlog

LOG_FILE_NAME = "slotkeeper.log"

# Held at WARNING or above.
_QUIET_LOGGERS = ("httpx", "httpcore")

_PRE_CHAIN: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.format_exc_info,
]


def _formatter(renderer: Any) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=_PRE_CHAIN,
    )


def _file_handler(log_dir: Path, max_bytes: int, backup_count: int) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        filename=log_dir / LOG_FILE_NAME,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
    return handler


def _console_handler(json_format: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    if json_format:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    handler.setFormatter(_formatter(renderer))
    return handler


# ─────────────────────────────────────────────────────────────────────────────
# Public API
# ─────────────────────────────────────────────────────────────────────────────


def setup_logging(
    level: str = "INFO",
    log_dir: str | Path = "./data/logs",
    json_format: bool = True,
    console_output: bool = False,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """
    Configure structlog and stdlib logging. Call once at startup.

    Args:
        level:          DEBUG | INFO | WARNING | ERROR | CRITICAL
        log_dir:        Directory holding slotkeeper.log and its rotations.
        json_format:    Format of the stderr sink only; the file is always JSON.
        console_output: Also log to stderr.
        max_bytes:      Size at which slotkeeper.log rotates.
        backup_count:   Rotated files kept.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handlers = [_file_handler(Path(log_dir), max_bytes, backup_count)]
    if console_output:
        handlers.append(_console_handler(json_format))

    logging.basicConfig(level=numeric_level, handlers=handlers, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    structlog.configure(
        processors=_PRE_CHAIN + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "slotkeeper", **initial_values: Any) -> structlog.stdlib.BoundLogger:
    """Bound logger for `name` (usually __name__), with `initial_values` bound."""
    logger = structlog.get_logger(name)
    if initial_values:
        logger = logger.bind(**initial_values)
    return logger


@contextmanager
def trigger_context(trigger_id: str, policy: str) -> Iterator[str]:
    """
    Bind trigger context to every log call made inside the `with` block.

    Wrap the body of a firing coroutine in this. A fresh fire_id is
    generated per firing so one firing's lines can be grepped together.
    The previous context is restored on exit.

    Example:
        with trigger_context("t0345", policy="daily") as fire_id:
            log.info("daily.fire.start")
            # → includes trigger_id, policy and fire_id automatically
    """
    fire_id = f"fire_{uuid.uuid4().hex[:8]}"
    with structlog.contextvars.bound_contextvars(
        trigger_id=trigger_id, policy=policy, fire_id=fire_id,
    ):
        yield fire_id
