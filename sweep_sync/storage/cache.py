"""
A time-bounded read cache for remote query results, kept in the durable store.
"""

import logging
import time
from collections.abc import Callable
from typing import Any

from .kv_store import KeyValueStore

log = logging.getLogger(__name__)

CACHE_PREFIX = "cache:"
DEFAULT_MAX_AGE_MS = 10 * 60 * 1000


class CacheManager:
    """
    Manages TTL-checked cache records of the form `{"t": <epoch ms>, "v": <value>}`.

    An expired record and a missing record are treated the same way. Records
    are never evicted; they are only judged stale when read.
    """

    def __init__(
        self,
        store: KeyValueStore,
        default_max_age_ms: int = DEFAULT_MAX_AGE_MS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initializes the cache manager.

        Args:
            store: The durable store the records are kept in.
            default_max_age_ms: Age after which a record counts as a miss.
            clock: Returns the current time in epoch seconds.
        """
        self._store = store
        self.default_max_age_ms = default_max_age_ms
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def _record(self, key: str) -> dict[str, Any] | None:
        record = await self._store.get(f"{CACHE_PREFIX}{key}")
        if not isinstance(record, dict) or "v" not in record:
            return None
        return record

    async def get(self, key: str, max_age_ms: int | None = None) -> Any | None:
        """
        Retrieves a value from the cache. Returns None if the key is not found or
        the record is older than `max_age_ms` (the bound itself is still valid).
        """
        record = await self._record(key)
        if record is None:
            return None

        max_age = self.default_max_age_ms if max_age_ms is None else max_age_ms
        stamped = record.get("t")
        if stamped is not None and self._now_ms() - stamped > max_age:
            log.debug(f"Cache record for '{key}' expired.")
            return None
        return record["v"]

    async def get_stale(self, key: str) -> Any | None:
        """Retrieves a value regardless of its age, for offline fallback reads."""
        record = await self._record(key)
        return None if record is None else record["v"]

    async def set(self, key: str, value: Any) -> None:
        """Saves a value, stamping it with the current time."""
        await self._store.set(f"{CACHE_PREFIX}{key}", {"t": self._now_ms(), "v": value})

    async def clear(self) -> int:
        """Removes all cache records and returns how many were removed."""
        log.info("Clearing all cache entries...")
        keys = await self._store.keys(CACHE_PREFIX)
        for key in keys:
            await self._store.remove(key)
        return len(keys)
