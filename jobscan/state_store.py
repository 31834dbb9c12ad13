"""Durable rotation cursor.

The cursor is a single integer (index of the next keyword to scan) stored with
the time it was written. Consumers always take it modulo the current keyword
list length, so a stale index after the list shrinks is harmless.

File format (overwritten wholesale on every save)::

    {"lastKeywordIndex": 2, "savedAt": "2025-01-01T12:00:00+00:00"}

Reads never raise: a missing, unreadable or malformed file yields 0. Write
failures are logged and swallowed so a scan never fails on persistence.
"""
from __future__ import annotations

import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Protocol

import structlog
from filelock import FileLock, Timeout

from .errors import StatePersistenceFailure

logger = structlog.get_logger(__name__)


class StateStore(Protocol):
    def load(self) -> int: ...

    def save(self, index: int) -> None: ...


def _coerce_index(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return 0
    return value


class JsonFileStateStore:
    """JSON file backend, guarded by a sidecar lock file for cross-process writers."""

    LOCK_TIMEOUT_SECONDS = 5.0

    def __init__(self, path: str | os.PathLike[str]):
        self.path = Path(path)
        self._lock = FileLock(str(self.path) + ".lock", timeout=self.LOCK_TIMEOUT_SECONDS)

    def read_raw(self) -> Optional[dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StatePersistenceFailure(f"unreadable state file {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StatePersistenceFailure(f"state file {self.path} does not hold an object")
        return data

    def load(self) -> int:
        try:
            data = self.read_raw()
        except StatePersistenceFailure as exc:
            logger.warning("keyword_state_load_failed", path=str(self.path), error=str(exc))
            return 0
        if data is None:
            return 0
        return _coerce_index(data.get("lastKeywordIndex"))

    def _write(self, payload: dict[str, Any]) -> None:
        fd, tmp = tempfile.mkstemp(prefix=self.path.name, suffix=".tmp", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh)
            os.replace(tmp, self.path)
        except BaseException:
            _unlink_quietly(tmp)
            raise

    def save(self, index: int) -> None:
        payload = {
            "lastKeywordIndex": int(index),
            "savedAt": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self._lock:
                self._write(payload)
        except (OSError, Timeout) as exc:
            logger.warning("keyword_state_save_failed", path=str(self.path), index=index, error=str(exc))
            return
        logger.debug("keyword_state_saved", path=str(self.path), index=index)


def _unlink_quietly(path: str) -> None:
    try:
        os.unlink(path)
    except OSError:
        pass


class MemoryStateStore:
    """In-process backend (tests, ephemeral deployments)."""

    def __init__(self, index: int = 0):
        self.index = index
        self.saved_at: Optional[str] = None
        self.saves: list[int] = []

    def load(self) -> int:
        return _coerce_index(self.index)

    def save(self, index: int) -> None:
        self.index = int(index)
        self.saved_at = datetime.now(timezone.utc).isoformat()
        self.saves.append(self.index)
