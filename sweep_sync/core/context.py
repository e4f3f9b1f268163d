"""
Composition root: builds every sync component once, at startup, and hands
the same instances to whoever needs them.
"""

import logging
import random
import time
from collections.abc import Callable
from pathlib import Path
from typing import Optional

from sweep_sync.api.auth import Authenticator
from sweep_sync.api.client import NetworkGateway
from sweep_sync.models.config import SyncConfig
from sweep_sync.storage.cache import CacheManager
from sweep_sync.storage.credentials import CredentialVault
from sweep_sync.storage.kv_store import JsonFileStore, KeyValueStore
from sweep_sync.utils.structured_logger import StructuredLogger, create_structured_logger

from .actions import ReportActions
from .connectivity import ConnectivityMonitor
from .events import NoticeThrottle, SyncEvents
from .retry_queue import RetryQueue

log = logging.getLogger(__name__)


class SyncContext:
    """
    Holds the store, cache, vault, gateway, queue and their collaborators.

    Prefer `SyncContext.create`, which also restores persisted state. The
    context is an async context manager that releases the HTTP session and
    the retry timer on exit.
    """

    def __init__(
        self,
        config: SyncConfig,
        store: KeyValueStore,
        events: Optional[SyncEvents] = None,
        monitor: Optional[ConnectivityMonitor] = None,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
        log_dir: Optional[Path] = None,
    ):
        self.config = config
        self.store = store
        self.events = events or SyncEvents()
        self.clock = clock

        self.structured_logger: Optional[StructuredLogger] = None
        queue_logger = api_logger = None
        if config.structured_log:
            self.structured_logger, queue_logger, api_logger = create_structured_logger(
                log_dir=log_dir, enable_json=log_dir is not None
            )

        self.monitor = monitor or ConnectivityMonitor(probe_url=config.api_base)
        self.throttle = NoticeThrottle(self.events, config.offline_notice_interval_s, clock)
        self.cache = CacheManager(store, config.cache_max_age_ms, clock)
        self.vault = CredentialVault(
            store, config.max_offline_accounts, config.token_skew_s, clock
        )
        self.gateway = NetworkGateway(
            config,
            self.cache,
            self.vault,
            self.monitor,
            store,
            events=self.events,
            api_logger=api_logger,
            clock=clock,
        )
        self.queue = RetryQueue(
            self.gateway,
            store,
            self.monitor,
            self.vault,
            events=self.events,
            throttle=self.throttle,
            config=config,
            clock=clock,
            queue_logger=queue_logger,
            rng=rng,
        )
        self.auth = Authenticator(self.gateway, self.vault, self.monitor, self.events)
        self.actions = ReportActions(
            self.gateway, self.queue, self.monitor, self.vault, self.throttle, self.events
        )
        self.monitor.add_listener(self.queue.on_connectivity_change)

    @classmethod
    async def create(
        cls,
        config: SyncConfig,
        data_dir: Optional[Path] = None,
        store: Optional[KeyValueStore] = None,
        events: Optional[SyncEvents] = None,
        monitor: Optional[ConnectivityMonitor] = None,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
        probe: bool = False,
        flush_on_start: bool = False,
    ) -> "SyncContext":
        """
        Builds the context and restores the persisted session and queue.

        Args:
            config: Validated settings.
            data_dir: Where the file-backed store and structured logs live.
                Required unless `store` is given.
            store: Use this store instead of a file-backed one.
            events: Presentation hooks.
            monitor: Use this monitor instead of one probing the API base.
            clock: Returns the current time in epoch seconds.
            rng: Source of backoff jitter and queue ids.
            probe: Probe connectivity once before returning.
            flush_on_start: Deliver restored pending changes right away when online.
        """
        if store is None:
            if data_dir is None:
                raise ValueError("Either data_dir or store is required.")
            store = JsonFileStore(data_dir)
        log_dir = data_dir / "logs" if data_dir is not None else None

        ctx = cls(config, store, events, monitor, clock, rng, log_dir)
        await ctx.vault.load()
        await ctx.queue.load()
        if probe:
            await ctx.monitor.set_online(await ctx.monitor.probe())
        if flush_on_start and ctx.monitor.is_online and ctx.queue.count:
            await ctx.queue.flush()
        log.debug(
            f"Sync context ready ({ctx.queue.count} pending, "
            f"{'online' if ctx.monitor.is_online else 'offline'})."
        )
        return ctx

    async def close(self) -> None:
        """Stops background work and releases network resources."""
        self.monitor.remove_listener(self.queue.on_connectivity_change)
        await self.monitor.stop_watching()
        await self.queue.close()
        await self.gateway.close()
        if self.structured_logger:
            self.structured_logger.close()

    async def __aenter__(self) -> "SyncContext":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
