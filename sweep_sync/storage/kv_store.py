"""
Durable string-keyed stores that every other component persists through.

Values are JSON documents read and written whole; there are no partial or
field-level updates. Each component owns a disjoint set of keys.
"""

import asyncio
import hashlib
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import aiofiles

from sweep_sync.exceptions import StorageError

log = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Async get/set/remove over JSON values."""

    @abstractmethod
    async def get(self, key: str, default: Any = None) -> Any:
        """Returns the stored value, or `default` if absent or unreadable."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Stores a value, replacing any previous one."""

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Deletes a key. Removing a missing key is not an error."""

    @abstractmethod
    async def keys(self, prefix: str = "") -> list[str]:
        """Lists stored keys starting with `prefix`."""


class MemoryStore(KeyValueStore):
    """
    In-process store. Values are kept JSON-encoded so that callers never share
    mutable state with the store, matching the file-backed behavior.
    """

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, str] = {}
        for key, value in (initial or {}).items():
            self._data[key] = json.dumps(value)

    async def get(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key)
        if raw is None:
            return default
        return json.loads(raw)

    async def set(self, key: str, value: Any) -> None:
        try:
            self._data[key] = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Value for '{key}' is not JSON serializable: {e}") from e

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self, prefix: str = "") -> list[str]:
        return [k for k in self._data if k.startswith(prefix)]


class JsonFileStore(KeyValueStore):
    """
    Stores each key as its own JSON file inside a directory.

    Writes go to a temporary file that is then renamed over the target, so a
    crash mid-write leaves the previous value intact.
    """

    def __init__(self, base_dir: Path):
        """
        Initializes the store.

        Args:
            base_dir: The directory where the store's files live. Created if missing.
        """
        self.base_dir = base_dir / "store"
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

    def _path_for(self, key: str) -> Path:
        """Generates a safe filename for a given key."""
        hashed_key = hashlib.md5(key.encode("utf-8")).hexdigest()  # noqa: S324
        return self.base_dir / f"{hashed_key}.json"

    async def _read_document(self, path: Path) -> dict[str, Any] | None:
        try:
            async with aiofiles.open(path, encoding="utf-8") as f:
                document = json.loads(await f.read())
        except FileNotFoundError:
            return None
        except (ValueError, OSError) as e:
            log.debug(f"Store read failed for '{path.name}': {e}")
            return None
        return document if isinstance(document, dict) else None

    async def get(self, key: str, default: Any = None) -> Any:
        document = await self._read_document(self._path_for(key))
        if document is None or document.get("key") != key:
            return default
        return document.get("value", default)

    async def set(self, key: str, value: Any) -> None:
        path = self._path_for(key)
        try:
            serialized = json.dumps({"key": key, "value": value})
        except (TypeError, ValueError) as e:
            raise StorageError(f"Value for '{key}' is not JSON serializable: {e}") from e

        tmp_path = path.with_suffix(".tmp")
        async with self._lock:
            try:
                async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                    await f.write(serialized)
                os.replace(tmp_path, path)
            except OSError as e:
                raise StorageError(f"Failed to write '{key}' to the store: {e}") from e

    async def remove(self, key: str) -> None:
        async with self._lock:
            try:
                self._path_for(key).unlink(missing_ok=True)
            except OSError as e:
                raise StorageError(f"Failed to remove '{key}' from the store: {e}") from e

    async def keys(self, prefix: str = "") -> list[str]:
        found = []
        for path in self.base_dir.glob("*.json"):
            document = await self._read_document(path)
            if document and str(document.get("key", "")).startswith(prefix):
                found.append(document["key"])
        return found
