"""
store/kv.py — Key-value persistence

Two interchangeable backends behind the same get/set contract:

  JsonFileStore  — one JSON object on disk, rewritten atomically
                   (temp file + os.replace) on every set().
  MemoryStore    — plain dict, lost on exit.

Contract:
  get(key, default) never raises: a missing file, an unreadable file or
  undecodable JSON all read as "key absent" and return `default`.
  set(key, value) never raises: a write failure is logged and dropped.

Faults are surfaced internally as StoreReadError / StoreWriteError and
caught at the public boundary, so callers never see them.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Optional, Protocol

from exceptions import StoreError, StoreReadError, StoreWriteError
from observability.logger import get_logger

log = get_logger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class MemoryStore:
    """In-process store. Values are JSON round-tripped so they behave like disk."""

    def __init__(self, initial: Optional[dict[str, Any]] = None) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            raw = self._data.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            return default

    def set(self, key: str, value: Any) -> None:
        try:
            raw = json.dumps(value)
        except (TypeError, ValueError) as e:
            log.warning("store.memory.encode_failed", key=key, error=str(e))
            return
        with self._lock:
            self._data[key] = raw


class JsonFileStore:
    """File-backed store. Safe to share between coroutines and threads."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    # ── Public contract ───────────────────────────────────────────────────────

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            try:
                data = self._read()
            except StoreError as e:
                log.warning("store.read_failed", path=str(self.path), key=key, error=str(e))
                return default
        return data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            try:
                try:
                    data = self._read()
                except StoreReadError as e:
                    # A corrupt file must not block new writes; start over.
                    log.warning("store.read_failed.overwriting",
                                path=str(self.path), error=str(e))
                    data = {}
                data[key] = value
                self._write(data)
            except StoreError as e:
                log.warning("store.write_failed", path=str(self.path), key=key, error=str(e))

    # ── Internals ─────────────────────────────────────────────────────────────

    def _read(self) -> dict[str, Any]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except (FileNotFoundError, NotADirectoryError):
            return {}
        except OSError as e:
            raise StoreReadError(f"cannot read {self.path}: {e}") from e
        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except ValueError as e:
            raise StoreReadError(f"corrupt JSON in {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StoreReadError(f"{self.path} does not hold a JSON object")
        return data

    def _write(self, data: dict[str, Any]) -> None:
        try:
            payload = json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StoreWriteError(f"value not JSON-serialisable: {e}") from e
        tmp_name: Optional[str] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp",
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            raise StoreWriteError(f"cannot write {self.path}: {e}") from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
