from __future__ import annotations

import asyncio
import copy
import hashlib
import json
import os
import tempfile
import weakref
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict

import structlog

from agentloop.errors import SerializationError, StorageError

logger = structlog.get_logger(__name__)

_MISSING = object()


class StorageDriver(ABC):
    """Persistence backend behind scoped memory and thread bookkeeping.

    Keys arrive fully namespaced; a driver never interprets them. Each driver
    defines its own consistency guarantee for concurrent writers.
    """

    @abstractmethod
    async def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value, or ``default`` when the key is absent."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key``. Deleting an absent key is not an error."""


class InMemoryDriver(StorageDriver):
    """Process-local dictionary storage; contents die with the process.

    A single lock serializes every operation, so concurrent writers of the
    same key see last-writer-wins.
    """

    def __init__(self) -> None:
        self._store: Dict[str, Any] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str, default: Any = None) -> Any:
        async with self._lock:
            value = self._store.get(key, _MISSING)
        if value is _MISSING:
            return default
        return copy.deepcopy(value)

    async def set(self, key: str, value: Any) -> None:
        value = copy.deepcopy(value)
        async with self._lock:
            self._store[key] = value

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._store.pop(key, None)


class FileDriver(StorageDriver):
    """One JSON record per key under ``root``, replaced atomically on write.

    Writers of the same key are serialized by a per-key lock; a write goes to
    a temp file in the same directory which is fsynced and then renamed over
    the target, so a crash mid-write leaves the previous record intact.
    A key's lock lives only while some operation holds or awaits it.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def path_for(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.root / f"{digest}.json"

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def get(self, key: str, default: Any = None) -> Any:
        async with self._lock_for(key):
            value = await asyncio.to_thread(self._read, key)
        return default if value is _MISSING else value

    async def set(self, key: str, value: Any) -> None:
        try:
            payload = json.dumps({"key": key, "value": value}, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise SerializationError(key, f"value is not JSON serializable ({exc})") from exc
        async with self._lock_for(key):
            await asyncio.to_thread(self._write, key, payload)
        logger.debug("record_written", key=key, bytes=len(payload))

    async def delete(self, key: str) -> None:
        async with self._lock_for(key):
            try:
                await asyncio.to_thread(self.path_for(key).unlink, missing_ok=True)
            except OSError as exc:
                raise StorageError(key, str(exc)) from exc

    def _read(self, key: str) -> Any:
        path = self.path_for(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return _MISSING
        except OSError as exc:
            raise StorageError(key, str(exc)) from exc
        try:
            record = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StorageError(key, f"corrupt record at {path.name} ({exc})") from exc
        if record.get("key") != key:
            raise StorageError(key, f"record at {path.name} belongs to {record.get('key')!r}")
        return record.get("value")

    def _write(self, key: str, payload: str) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.path_for(key))
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(key, str(exc)) from exc
