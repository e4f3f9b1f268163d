"""
The single gateway for every remote call, with cache fallback for reads.
"""

import asyncio
import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp

from sweep_sync.core.connectivity import ConnectivityMonitor
from sweep_sync.core.events import SyncEvents
from sweep_sync.exceptions import LogicalError, NetworkError, RemoteError
from sweep_sync.models.config import SyncConfig
from sweep_sync.storage.cache import CacheManager
from sweep_sync.storage.credentials import CredentialVault
from sweep_sync.storage.kv_store import KeyValueStore
from sweep_sync.utils.formatting import iso_timestamp
from sweep_sync.utils.structured_logger import APILogger

log = logging.getLogger(__name__)

LAST_SYNC_KEY = "lastSyncAt"

TRANSPORT_ERRORS = (
    aiohttp.ClientConnectionError,
    aiohttp.ClientPayloadError,
    asyncio.TimeoutError,
    OSError,
)
NETWORK_MESSAGE_PATTERN = re.compile(
    r"failed to fetch|networkerror|load failed|network", re.IGNORECASE
)


def classify_error(error: BaseException, online: bool) -> NetworkError | LogicalError:
    """
    Decides whether a failed call is worth retrying later.

    A failure is a NetworkError when connectivity is absent, when the transport
    itself failed, or when the message reads like a transport failure. Anything
    else is a LogicalError.
    """
    message = str(error) or type(error).__name__
    if (
        not online
        or isinstance(error, (NetworkError, *TRANSPORT_ERRORS))
        or NETWORK_MESSAGE_PATTERN.search(message)
    ):
        return error if isinstance(error, NetworkError) else NetworkError(message)
    return error if isinstance(error, LogicalError) else LogicalError(message)


@dataclass
class CallResult:
    """The parsed response body, and whether it came from the cache."""

    value: Any
    from_cache: bool = False
    stale: bool = False


class NetworkGateway:
    """
    Async client for the report-tracking JSON API.

    Features:
    - Bearer token from the credential vault on every request
    - Cache-busting for GET requests
    - Read-through caching, with stale cache served when the network is unavailable
    - Progress hooks around every call
    """

    def __init__(
        self,
        config: SyncConfig,
        cache: CacheManager,
        vault: CredentialVault,
        monitor: ConnectivityMonitor,
        store: KeyValueStore,
        events: Optional[SyncEvents] = None,
        api_logger: Optional[APILogger] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initializes the gateway.

        Args:
            config: Validated settings; provides the API base URL and timeouts.
            cache: Read cache used for GET requests that pass a cache key.
            vault: Source of the current bearer token.
            monitor: Current connectivity state.
            store: Durable store holding the last-successful-sync timestamp.
            events: Hooks for the global progress indicator.
            api_logger: Optional structured event logger.
            clock: Returns the current time in epoch seconds.
        """
        self.config = config
        self.base_url = config.api_base
        self._cache = cache
        self._vault = vault
        self._monitor = monitor
        self._store = store
        self._events = events or SyncEvents()
        self._api_logger = api_logger
        self._clock = clock

        self._session: Optional[aiohttp.ClientSession] = None

    async def _initialize_session(self) -> None:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"Accept": "application/json"},
                timeout=aiohttp.ClientTimeout(
                    total=self.config.request_timeout_s,
                    connect=self.config.connect_timeout_s,
                ),
            )

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    def _build_url(self, path: str, method: str) -> str:
        url = f"{self.base_url}{path}"
        if method == "GET":
            separator = "&" if "?" in url else "?"
            url = f"{url}{separator}t={int(self._clock() * 1000)}"
        return url

    def _build_headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Cache-Control": "no-cache",
            "Pragma": "no-cache",
        }
        if self._vault.token:
            headers["Authorization"] = f"Bearer {self._vault.token}"
        return headers

    async def _send(
        self, method: str, url: str, headers: dict[str, str], body: Any
    ) -> tuple[int, Any]:
        """
        Performs one HTTP exchange.

        Returns:
            The status code and the JSON body, or None when the body is not JSON.
        """
        await self._initialize_session()
        async with self._session.request(
            method, url, headers=headers, json=body
        ) as r:
            try:
                data = await r.json(content_type=None)
            except ValueError:
                data = None
            return r.status, data

    async def _cache_fallback(
        self, method: str, cache_key: Optional[str], max_age_ms: Optional[int]
    ) -> Optional[CallResult]:
        """Serves any cached record for a keyed GET, marking it stale past its max age."""
        if method != "GET" or not cache_key:
            return None
        cached = await self._cache.get_stale(cache_key)
        if cached is None:
            return None
        fresh = await self._cache.get(cache_key, max_age_ms)
        return CallResult(cached, from_cache=True, stale=fresh is None)

    async def call(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        *,
        cache_key: Optional[str] = None,
        cache_max_age_ms: Optional[int] = None,
    ) -> CallResult:
        """
        Makes an API call, consulting and populating the cache for keyed GETs.

        While offline, or when the request never gets a response, a keyed GET is
        answered from any cached record regardless of its age; records older than
        `cache_max_age_ms` come back flagged as stale. Successful keyed GETs
        overwrite the cache.

        Raises:
            NetworkError: The request never got a response and no cached value exists.
            RemoteError: The service answered with a failure status.
        """
        method = method.upper()

        if not self._monitor.is_online:
            fallback = await self._cache_fallback(method, cache_key, cache_max_age_ms)
            if fallback is not None:
                log.debug(f"Offline: serving {path} from cache '{cache_key}'.")
                if self._api_logger:
                    self._api_logger.served_from_cache(path, cache_key, offline=True)
                return fallback

        url = self._build_url(path, method)
        if self._api_logger:
            self._api_logger.request_started(method, path)

        start_time = time.monotonic()
        await self._events.progress_start()
        try:
            status, data = await self._send(method, url, self._build_headers(), body)
        except TRANSPORT_ERRORS as e:
            duration_ms = (time.monotonic() - start_time) * 1000
            if self._api_logger:
                self._api_logger.request_failed(method, path, None, str(e), duration_ms)
            fallback = await self._cache_fallback(method, cache_key, cache_max_age_ms)
            if fallback is not None:
                log.debug(f"Network failure on {path}; serving cache '{cache_key}'.")
                if self._api_logger:
                    self._api_logger.served_from_cache(path, cache_key, offline=False)
                return fallback
            raise NetworkError(f"Network request to {path} failed: {e}") from e
        except aiohttp.ClientError as e:
            # Bad URLs, redirect loops and the like will not heal on retry.
            duration_ms = (time.monotonic() - start_time) * 1000
            if self._api_logger:
                self._api_logger.request_failed(method, path, None, str(e), duration_ms)
            raise LogicalError(f"Request to {path} failed: {e}") from e
        finally:
            await self._events.progress_stop()

        duration_ms = (time.monotonic() - start_time) * 1000

        if not 200 <= status < 300:
            message = None
            if isinstance(data, dict):
                message = data.get("error") or data.get("message")
            message = str(message) if message else f"HTTP {status}"
            log.debug(f"API {method} {path} -> {status} {message}")
            if self._api_logger:
                self._api_logger.request_failed(method, path, status, message, duration_ms)
            raise RemoteError(message, status)

        if self._api_logger:
            self._api_logger.request_completed(method, path, status, duration_ms)

        if self._monitor.is_online:
            await self._store.set(LAST_SYNC_KEY, iso_timestamp(self._clock()))
        if method == "GET" and cache_key:
            await self._cache.set(cache_key, data)
        return CallResult(data)

    async def last_sync_at(self) -> Optional[str]:
        """Returns when a call last succeeded while online, as an ISO timestamp."""
        return await self._store.get(LAST_SYNC_KEY)

    # Public API methods

    async def get(
        self,
        path: str,
        cache_key: Optional[str] = None,
        cache_max_age_ms: Optional[int] = None,
    ) -> CallResult:
        return await self.call(
            path, "GET", cache_key=cache_key, cache_max_age_ms=cache_max_age_ms
        )

    async def post(self, path: str, body: Any = None) -> CallResult:
        return await self.call(path, "POST", body)
