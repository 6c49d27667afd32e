"""
config/settings.py — SlotKeeper Runtime Settings

Merges config.yaml (defaults/structure) with environment variables and .env
(endpoint URLs). Pydantic-powered — all fields are validated and typed.

  - ClockConfig parses the fixed UTC offset ("+05:30") at load time
  - SlotConfig rejects out-of-range hours/minutes
  - DailyConfig rejects duplicate slot ids
  - validate_all() performs full startup validation and raises ConfigError
    with a clear, human-readable message listing every problem found
  - load_settings() respects SLOTKEEPER_CONFIG env var as a fallback
    when no explicit config_path argument is given
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from scheduler.clock import parse_utc_offset


# ─────────────────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────────────────

class ConfigError(Exception):
    """Raised by validate_all() when one or more config problems are found."""


_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


# ─────────────────────────────────────────────────────────────────────────────
# Sub-models
# ─────────────────────────────────────────────────────────────────────────────

class ClockConfig(BaseModel):
    utc_offset: str = "+05:30"
    zone_label: str = "IST"

    @field_validator("utc_offset")
    @classmethod
    def _valid_offset(cls, v: str) -> str:
        parse_utc_offset(v)  # raises ValueError with a readable message
        return v.strip()


class CycleConfig(BaseModel):
    enabled: bool = True
    interval_minutes: float = 13
    tick_interval_ms: int = 250

    @field_validator("interval_minutes")
    @classmethod
    def _positive_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("cycle.interval_minutes must be > 0")
        return v

    @field_validator("tick_interval_ms")
    @classmethod
    def _positive_tick(cls, v: int) -> int:
        if v < 10:
            raise ValueError("cycle.tick_interval_ms must be >= 10")
        return v

    @property
    def interval_ms(self) -> int:
        return int(self.interval_minutes * 60 * 1000)


class SlotConfig(BaseModel):
    id: str
    hour: int
    minute: int
    label: Optional[str] = None
    url: Optional[str] = None       # overrides the shared data API URL

    @field_validator("hour")
    @classmethod
    def _valid_hour(cls, v: int) -> int:
        if not (0 <= v <= 23):
            raise ValueError(f"slot hour must be between 0 and 23, got {v}")
        return v

    @field_validator("minute")
    @classmethod
    def _valid_minute(cls, v: int) -> int:
        if not (0 <= v <= 59):
            raise ValueError(f"slot minute must be between 0 and 59, got {v}")
        return v

    @field_validator("id")
    @classmethod
    def _non_empty_id(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("slot id must not be empty")
        return v.strip()


def _default_slots() -> list[SlotConfig]:
    return [
        SlotConfig(id="t0345", hour=3, minute=45),
        SlotConfig(id="t0355", hour=3, minute=55),
        SlotConfig(id="t0405", hour=4, minute=5),
    ]


class DailyConfig(BaseModel):
    enabled: bool = True
    slots: List[SlotConfig] = Field(default_factory=_default_slots)

    @model_validator(mode="after")
    def _unique_ids(self) -> "DailyConfig":
        ids = [s.id for s in self.slots]
        dupes = sorted({i for i in ids if ids.count(i) > 1})
        if dupes:
            raise ValueError(f"daily.slots has duplicate ids: {dupes}")
        return self


class ActionsConfig(BaseModel):
    timeout_seconds: float = 20.0

    @field_validator("timeout_seconds")
    @classmethod
    def _positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("actions.timeout_seconds must be > 0")
        return v


class StoreConfig(BaseModel):
    path: str = "./data/state.json"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_dir: str = "./data/logs"
    max_file_size_mb: int = 10
    backup_count: int = 5
    console_output: bool = False
    json_format: bool = True

    @field_validator("level")
    @classmethod
    def _valid_log_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in _VALID_LOG_LEVELS:
            raise ValueError(
                f"logging.level '{v}' is not valid. "
                f"Must be one of: {sorted(_VALID_LOG_LEVELS)}"
            )
        return upper


# ─────────────────────────────────────────────────────────────────────────────
# Root Settings
# ─────────────────────────────────────────────────────────────────────────────

class Settings(BaseSettings):
    """
    SlotKeeper runtime settings.

    Priority (highest to lowest):
      1. Environment variables
      2. .env file
      3. config.yaml
      4. Field defaults
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    # -- Endpoints from env / .env -------------------------------------------
    refresh_api_url: str = Field(
        default="http://localhost:8000/api/refresh", alias="REFRESH_API_URL",
    )
    data_api_url: str = Field(
        default="http://localhost:8000/api/data", alias="DATA_API_URL",
    )

    # -- Structured config (from config.yaml) --------------------------------
    clock: ClockConfig = Field(default_factory=ClockConfig)
    cycle: CycleConfig = Field(default_factory=CycleConfig)
    daily: DailyConfig = Field(default_factory=DailyConfig)
    actions: ActionsConfig = Field(default_factory=ActionsConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("clock", mode="before")
    @classmethod
    def _coerce_clock(cls, v: Any) -> Any:
        return ClockConfig(**v) if isinstance(v, dict) else v

    @field_validator("cycle", mode="before")
    @classmethod
    def _coerce_cycle(cls, v: Any) -> Any:
        return CycleConfig(**v) if isinstance(v, dict) else v

    @field_validator("daily", mode="before")
    @classmethod
    def _coerce_daily(cls, v: Any) -> Any:
        return DailyConfig(**v) if isinstance(v, dict) else v

    @field_validator("actions", mode="before")
    @classmethod
    def _coerce_actions(cls, v: Any) -> Any:
        return ActionsConfig(**v) if isinstance(v, dict) else v

    @field_validator("store", mode="before")
    @classmethod
    def _coerce_store(cls, v: Any) -> Any:
        return StoreConfig(**v) if isinstance(v, dict) else v

    @field_validator("logging", mode="before")
    @classmethod
    def _coerce_logging(cls, v: Any) -> Any:
        return LoggingConfig(**v) if isinstance(v, dict) else v

    # -- Convenience properties ----------------------------------------------

    @property
    def log_level(self) -> str:
        return self.logging.level.upper()

    @property
    def log_dir(self) -> Path:
        return Path(self.logging.log_dir)

    @property
    def store_path(self) -> Path:
        return Path(self.store.path)

    def slot_label(self, slot: SlotConfig) -> str:
        """Display label for a slot, e.g. '03:45 IST'."""
        if slot.label:
            return slot.label
        return f"{slot.hour:02d}:{slot.minute:02d} {self.clock.zone_label}".strip()

    def url_for_slot(self, slot_id: str) -> str:
        for slot in self.daily.slots:
            if slot.id == slot_id and slot.url:
                return slot.url
        return self.data_api_url

    def validate_all(self) -> None:
        """
        Full startup validation. Raises ConfigError listing every problem found.

        Called once at startup in main.py bootstrap() before the scheduler
        starts. Pydantic field validators catch type/value errors at parse
        time; this method catches cross-field problems.
        """
        errors: list[str] = []

        # ── Endpoints must be absolute http(s) URLs ─────────────────────────
        urls = {"REFRESH_API_URL": self.refresh_api_url, "DATA_API_URL": self.data_api_url}
        for slot in self.daily.slots:
            if slot.url:
                urls[f"daily.slots[{slot.id}].url"] = slot.url
        for name, url in urls.items():
            if not url.startswith(("http://", "https://")):
                errors.append(
                    f"{name} must be an absolute http:// or https:// URL, got '{url}'."
                )

        # ── Something must be scheduled ─────────────────────────────────────
        if not self.cycle.enabled and not (self.daily.enabled and self.daily.slots):
            errors.append(
                "Both cycle and daily scheduling are disabled; nothing would run. "
                "Enable cycle.enabled or add daily.slots."
            )

        # ── Tick must be shorter than the cycle ─────────────────────────────
        if self.cycle.enabled and self.cycle.tick_interval_ms >= self.cycle.interval_ms:
            errors.append(
                "cycle.tick_interval_ms must be shorter than cycle.interval_minutes."
            )

        # ── Store path is not a directory ───────────────────────────────────
        if self.store_path.is_dir():
            errors.append(
                f"store.path '{self.store.path}' is a directory; point it at a file."
            )

        # ── Report all errors together ───────────────────────────────────────
        if errors:
            numbered = "\n".join(f"  {i+1}. {e}" for i, e in enumerate(errors))
            raise ConfigError(
                f"\n\nSlotKeeper startup failed — {len(errors)} configuration "
                f"problem(s) found:\n\n{numbered}\n\n"
                f"Fix the issues above in config/config.yaml or your .env file "
                f"and restart.\n"
            )


# ─────────────────────────────────────────────────────────────────────────────
# Loader
# ─────────────────────────────────────────────────────────────────────────────

_KNOWN_SECTIONS = {"clock", "cycle", "daily", "actions", "store", "logging"}


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _resolve_config_path(config_path: str | Path | None) -> Path:
    """
    Resolve the config file path with this priority:
      1. Explicit config_path argument (from --config CLI flag)
      2. SLOTKEEPER_CONFIG environment variable
      3. Default: config/config.yaml
    """
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get("SLOTKEEPER_CONFIG")
    if env_path:
        return Path(env_path)
    return Path("config/config.yaml")


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings by merging config.yaml with environment variables."""
    resolved_path = _resolve_config_path(config_path)
    yaml_data = _load_yaml(resolved_path)

    init_kwargs = {k: v for k, v in yaml_data.items() if k in _KNOWN_SECTIONS}

    return Settings(**init_kwargs)
