"""
Hooks through which the sync engine talks to the presentation layer.

The engine only publishes; how a progress indicator, a notice, or the status
line is rendered is up to whoever registers the callbacks.
"""

import inspect
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from sweep_sync.models.status import QueueStatus

log = logging.getLogger(__name__)


@dataclass
class SyncEvents:
    """Optional callbacks; any left as None is skipped."""

    on_progress_start: Callable[[], Any] | None = None
    on_progress_stop: Callable[[], Any] | None = None
    on_notice: Callable[[str], Any] | None = None
    on_status_changed: Callable[[QueueStatus], Any] | None = None
    on_refresh_view: Callable[[], Any] | None = None
    on_session_expired: Callable[[str], Any] | None = None

    async def _emit(self, name: str, callback: Callable | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            log.warning(f"Event hook '{name}' raised", exc_info=True)

    async def progress_start(self) -> None:
        await self._emit("progress_start", self.on_progress_start)

    async def progress_stop(self) -> None:
        await self._emit("progress_stop", self.on_progress_stop)

    async def notice(self, message: str) -> None:
        await self._emit("notice", self.on_notice, message)

    async def status_changed(self, status: QueueStatus) -> None:
        await self._emit("status_changed", self.on_status_changed, status)

    async def refresh_view(self) -> None:
        await self._emit("refresh_view", self.on_refresh_view)

    async def session_expired(self, message: str) -> None:
        await self._emit("session_expired", self.on_session_expired, message)


@dataclass
class NoticeThrottle:
    """
    Lets at most one offline advisory through per interval, so that repeated
    failures while offline do not turn into a stream of notifications.
    """

    events: SyncEvents
    interval_s: float = 15.0
    clock: Callable[[], float] = time.time
    _last_notice: float | None = field(default=None, repr=False)

    async def notify_offline(self, message: str) -> bool:
        """Publishes `message` unless another advisory went out recently."""
        now = self.clock()
        if self._last_notice is not None and now - self._last_notice < self.interval_s:
            log.debug(f"Offline notice suppressed: {message}")
            return False
        self._last_notice = now
        await self.events.notice(message)
        return True
