"""
Tracks whether the remote service is reachable and announces transitions.
"""

import asyncio
import inspect
import logging
from collections.abc import Callable
from contextlib import suppress
from typing import Any

import aiohttp

log = logging.getLogger(__name__)

Listener = Callable[[bool], Any]


class ConnectivityMonitor:
    """
    Holds the current online/offline state.

    Listeners are called only on transitions (edge-triggered), never when the
    state is re-asserted. State can be pushed in by the host platform through
    `set_online`, or discovered by polling with `watch`.
    """

    def __init__(
        self,
        initially_online: bool = True,
        probe_url: str | None = None,
        probe_timeout_s: float = 5.0,
    ):
        """
        Initializes the monitor.

        Args:
            initially_online: Assumed state before the first report or probe.
            probe_url: URL requested by `probe`. Any HTTP response counts as online.
            probe_timeout_s: Total timeout for a single probe request.
        """
        self._online = initially_online
        self.probe_url = probe_url
        self.probe_timeout_s = probe_timeout_s
        self._listeners: list[Listener] = []
        self._watch_task: asyncio.Task | None = None

    @property
    def is_online(self) -> bool:
        return self._online

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        with suppress(ValueError):
            self._listeners.remove(listener)

    async def set_online(self, online: bool) -> bool:
        """
        Records the current state.

        Returns:
            True if this was a transition and listeners were notified.
        """
        if online == self._online:
            return False
        self._online = online
        log.info(
            "[green]Connection restored.[/green]"
            if online
            else "[yellow]Connection lost. Working offline.[/yellow]"
        )
        for listener in list(self._listeners):
            try:
                result = listener(online)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                log.warning("Connectivity listener raised", exc_info=True)
        return True

    async def probe(self) -> bool:
        """Checks reachability of `probe_url` without changing the recorded state."""
        if not self.probe_url:
            return self._online
        try:
            timeout = aiohttp.ClientTimeout(total=self.probe_timeout_s)
            async with (
                aiohttp.ClientSession(timeout=timeout) as session,
                session.head(self.probe_url, allow_redirects=False),
            ):
                return True
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            log.debug(f"Connectivity probe failed: {e}")
            return False

    async def watch(self, interval_s: float) -> None:
        """Probes forever, feeding each result into `set_online`."""
        while True:
            await self.set_online(await self.probe())
            await asyncio.sleep(interval_s)

    def start_watching(self, interval_s: float) -> None:
        """Starts `watch` as a background task if it is not already running."""
        if self._watch_task is None or self._watch_task.done():
            self._watch_task = asyncio.create_task(self.watch(interval_s))
            log.debug(f"Started connectivity watch every {interval_s:.0f}s.")

    async def stop_watching(self) -> None:
        """Stops the background watch task gracefully."""
        if self._watch_task and not self._watch_task.done():
            self._watch_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._watch_task
            log.debug("Stopped connectivity watch.")
        self._watch_task = None
