"""
The durable FIFO of mutating actions that could not be delivered yet.

Items leave the queue only after the remote service has accepted them. A
transport failure leaves the whole remainder untouched for a later retry with
exponential backoff; a rejection by the service annotates the head item and
blocks everything behind it until the next forced or reconnect-triggered flush.
"""

import asyncio
import logging
import random
import string
import time
from collections.abc import Callable
from typing import Any, Optional

from sweep_sync.api.client import NetworkGateway, classify_error
from sweep_sync.exceptions import NetworkError
from sweep_sync.models.config import SyncConfig
from sweep_sync.models.queue import (
    QueueItem,
    QueueKind,
    ReportCreateItem,
    build_queue_item,
    load_queue_items,
)
from sweep_sync.models.status import QueueStatus
from sweep_sync.storage.credentials import CredentialVault
from sweep_sync.storage.kv_store import KeyValueStore
from sweep_sync.utils.formatting import iso_timestamp
from sweep_sync.utils.structured_logger import QueueLogger

from .connectivity import ConnectivityMonitor
from .events import NoticeThrottle, SyncEvents

log = logging.getLogger(__name__)

QUEUE_KEY = "offlineQueue"
UNREADABLE_KEY = "offlineQueueUnreadable"

OFFLINE_NOTICE = "Offline. Sync will retry automatically."
SYNCED_NOTICE = "Offline changes synced"
QUEUED_NOTE = "Queued offline. Will sync when online."

_ID_ALPHABET = string.ascii_lowercase + string.digits


class RetryQueue:
    """
    Owns the pending action list and its retry timer.

    At most one flush runs at a time; a flush requested while another is in
    progress is dropped. At most one retry timer is armed at a time.
    """

    def __init__(
        self,
        gateway: NetworkGateway,
        store: KeyValueStore,
        monitor: ConnectivityMonitor,
        vault: CredentialVault,
        events: Optional[SyncEvents] = None,
        throttle: Optional[NoticeThrottle] = None,
        config: Optional[SyncConfig] = None,
        clock: Callable[[], float] = time.time,
        queue_logger: Optional[QueueLogger] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initializes the queue. Call `load` before use to pick up persisted items.

        Args:
            gateway: Delivers each queued action.
            store: Durable store holding the queue under `offlineQueue`.
            monitor: Current connectivity state.
            vault: Consulted to decide whether a view refresh is useful.
            events: Hooks for notices, status updates and view refreshes.
            throttle: Rate limiter for offline advisories.
            config: Backoff settings.
            clock: Returns the current time in epoch seconds.
            queue_logger: Optional structured event logger.
            rng: Source of jitter and id suffixes.
        """
        self._gateway = gateway
        self._store = store
        self._monitor = monitor
        self._vault = vault
        self._events = events or SyncEvents()
        self.config = config or SyncConfig()
        self._throttle = throttle or NoticeThrottle(
            self._events, self.config.offline_notice_interval_s, clock
        )
        self._clock = clock
        self._queue_logger = queue_logger
        self._rng = rng or random.Random()

        self._items: list[QueueItem] = []
        self._flushing = False
        self._retry_count = 0
        self._next_retry_at_ms: int | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # State

    @property
    def items(self) -> list[QueueItem]:
        return list(self._items)

    @property
    def count(self) -> int:
        return len(self._items)

    @property
    def retry_count(self) -> int:
        return self._retry_count

    @property
    def flushing(self) -> bool:
        return self._flushing

    @property
    def next_retry_at_ms(self) -> int | None:
        return self._next_retry_at_ms

    @property
    def has_timer(self) -> bool:
        return self._timer is not None

    def pending_reports(self) -> list[ReportCreateItem]:
        return [i for i in self._items if i.kind == QueueKind.REPORT_CREATE.value]

    def retry_in_ms(self) -> int:
        """Milliseconds until the armed retry fires, or 0 when none is armed."""
        if not self._next_retry_at_ms:
            return 0
        return max(0, self._next_retry_at_ms - self._now_ms())

    async def status(self) -> QueueStatus:
        head = self._items[0] if self._items else None
        return QueueStatus(
            online=self._monitor.is_online,
            pending=len(self._items),
            flushing=self._flushing,
            retry_count=self._retry_count,
            next_retry_at_ms=self._next_retry_at_ms,
            retry_in_ms=self.retry_in_ms(),
            blocked_error=head.error if head else None,
            last_sync_at=await self._gateway.last_sync_at(),
        )

    async def publish_status(self) -> None:
        await self._events.status_changed(await self.status())

    # Persistence

    async def load(self) -> None:
        """
        Replaces the in-memory list with the persisted one.

        Entries that no longer validate are moved to `offlineQueueUnreadable`
        so they are never silently overwritten.
        """
        items, unreadable = load_queue_items(await self._store.get(QUEUE_KEY))
        self._items = items
        if unreadable:
            kept = await self._store.get(UNREADABLE_KEY) or []
            if not isinstance(kept, list):
                kept = [kept]
            await self._store.set(UNREADABLE_KEY, kept + unreadable)
            await self._store.set(QUEUE_KEY, [i.to_storage() for i in items])
            log.warning(
                f"[yellow]Set aside {len(unreadable)} unreadable queued change(s) "
                f"under '{UNREADABLE_KEY}'.[/yellow]"
            )
        if self._items:
            log.info(f"Loaded {len(self._items)} pending offline change(s).")

    async def unreadable_entries(self) -> list[Any]:
        """Returns stored queue entries that could not be read back."""
        kept = await self._store.get(UNREADABLE_KEY) or []
        return kept if isinstance(kept, list) else [kept]

    async def _save(self) -> None:
        await self._store.set(QUEUE_KEY, [i.to_storage() for i in self._items])
        await self.publish_status()

    # Mutations

    def _new_id(self) -> str:
        suffix = "".join(self._rng.choice(_ID_ALPHABET) for _ in range(6))
        return f"q_{self._now_ms()}_{suffix}"

    async def enqueue(self, kind: QueueKind | str, payload: Any) -> QueueItem:
        """
        Appends a validated action and persists the queue.

        Raises:
            PayloadValidationError: If the payload does not fit the kind.
        """
        item = build_queue_item(
            kind, payload, item_id=self._new_id(), created_at=iso_timestamp(self._clock())
        )
        self._items.append(item)
        await self._save()
        log.info(f"Queued '{item.kind}' ({len(self._items)} pending).")
        if self._queue_logger:
            self._queue_logger.item_enqueued(item.id, item.kind, len(self._items))
        if self._monitor.is_online:
            self.schedule_flush()
        return item

    async def clear(self) -> int:
        """Drops every pending item and returns how many were dropped."""
        dropped = len(self._items)
        self._items = []
        self._retry_count = 0
        self.clear_schedule()
        await self._save()
        return dropped

    # Scheduling

    def backoff_delay_ms(self) -> int:
        """Computes the next retry delay from the current retry count."""
        cfg = self.config
        delay = min(cfg.backoff_cap_ms, cfg.backoff_base_ms * 2**self._retry_count)
        jitter = self._rng.randint(0, cfg.backoff_jitter_ms - 1) if cfg.backoff_jitter_ms else 0
        return delay + jitter

    def schedule_flush(self) -> None:
        """Arms the retry timer, unless one is armed already or nothing is pending."""
        if self._timer is not None or not self._items:
            return
        delay_ms = self.backoff_delay_ms()
        self._next_retry_at_ms = self._now_ms() + delay_ms
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay_ms / 1000, self._on_timer)
        log.debug(f"Next sync attempt in {delay_ms} ms (retry {self._retry_count}).")
        if self._queue_logger:
            self._queue_logger.retry_scheduled(self._retry_count, delay_ms)

    def clear_schedule(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._next_retry_at_ms = None

    def _on_timer(self) -> None:
        self._timer = None
        task = asyncio.create_task(self.flush())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # Flushing

    async def flush(self, force: bool = False) -> None:
        """
        Delivers pending items in order until one fails.

        Args:
            force: Reset the backoff and cancel the armed timer first. Offline,
                a forced flush also raises a (rate limited) advisory.
        """
        if self._flushing:
            log.debug("Flush already in progress; request dropped.")
            return
        if force:
            self._retry_count = 0
            self.clear_schedule()

        if not self._monitor.is_online:
            if force:
                await self._throttle.notify_offline(OFFLINE_NOTICE)
            self.schedule_flush()
            return

        if not self._items:
            await self.publish_status()
            return

        self._flushing = True
        synced = 0
        network_failure = False
        try:
            await self.publish_status()
            if self._queue_logger:
                self._queue_logger.flush_started(len(self._items), force)
            while self._items:
                head = self._items[0]
                try:
                    await self._gateway.call(
                        head.path, head.method, head.payload.to_wire()
                    )
                except Exception as e:
                    failure = classify_error(e, self._monitor.is_online)
                    network_failure = isinstance(failure, NetworkError)
                    self._record_failure(head, failure, network_failure)
                    await self._save()
                    break
                self._remove_delivered(head)
                synced += 1
                if self._queue_logger:
                    self._queue_logger.item_synced(head.id, head.kind)
                await self._save()
            else:
                log.info(f"[green]Synced {synced} offline change(s).[/green]")
        finally:
            self._flushing = False

        if self._queue_logger:
            self._queue_logger.flush_completed(synced, len(self._items))
        await self.publish_status()

        if not self._items:
            self._retry_count = 0
            self.clear_schedule()
            await self._events.notice(SYNCED_NOTICE)
            session = self._vault.session
            if session is not None and session.role:
                await self._events.refresh_view()
            return

        if self._monitor.is_online and network_failure:
            self._retry_count = min(self._retry_count + 1, self.config.max_retry_exponent)
            self.schedule_flush()

    def _is_head(self, item: QueueItem) -> bool:
        return bool(self._items) and self._items[0] is item

    def _remove_delivered(self, item: QueueItem) -> None:
        """Drops a delivered item, unless the queue was cleared while it was in flight."""
        if self._is_head(item):
            self._items.pop(0)
        else:
            log.debug(f"Delivered '{item.kind}' was no longer queued.")

    def _record_failure(
        self, head: QueueItem, failure: Exception, network_failure: bool
    ) -> None:
        if self._queue_logger:
            self._queue_logger.item_failed(head.id, head.kind, str(failure), network_failure)
        if network_failure:
            log.info(
                f"[yellow]Sync paused: {failure}. "
                f"{len(self._items)} change(s) still pending.[/yellow]"
            )
            return
        if self._is_head(head):
            self._items[0] = head.model_copy(
                update={
                    "error": str(failure) or "Failed",
                    "failed_at": iso_timestamp(self._clock()),
                }
            )
        log.warning(f"[red]Queued '{head.kind}' was rejected: {failure}[/red]")

    async def on_connectivity_change(self, online: bool) -> None:
        """Connectivity listener: flush on reconnect, otherwise just refresh status."""
        if online:
            await self.flush()
        else:
            await self.publish_status()

    def to_report_stub(self, item: ReportCreateItem) -> dict[str, Any]:
        """Renders a pending report as a report row for listings."""
        p = item.payload
        waste_type = p.waste_type_override
        return {
            "id": item.id,
            "title": p.title or "Untitled report",
            "desc": p.desc or "",
            "lat": p.lat,
            "lng": p.lng,
            "address": p.address or "",
            "photoBase64": p.photo_base64,
            "wasteType": waste_type if waste_type and waste_type != "auto" else None,
            "wasteConfidence": None,
            "status": "QUEUED",
            "autoAssigned": False,
            "autoAssignNote": QUEUED_NOTE,
            "createdAt": item.created_at,
            "updatedAt": item.created_at,
            "offline": True,
        }

    def report_stubs(self) -> list[dict[str, Any]]:
        return [self.to_report_stub(i) for i in self.pending_reports()]

    async def close(self) -> None:
        """Cancels the retry timer and waits for timer-started flushes to finish."""
        self.clear_schedule()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
