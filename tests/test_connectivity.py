"""Tests for the connectivity monitor and the offline notice throttle."""

import logging

import pytest
from helpers import FakeClock

from sweep_sync.core.connectivity import ConnectivityMonitor
from sweep_sync.core.events import NoticeThrottle, SyncEvents


@pytest.mark.asyncio
class TestConnectivityMonitor:
    async def test_listeners_fire_only_on_transitions(self):
        monitor = ConnectivityMonitor(initially_online=True)
        seen = []
        monitor.add_listener(seen.append)

        assert await monitor.set_online(True) is False
        assert await monitor.set_online(False) is True
        assert await monitor.set_online(False) is False
        assert await monitor.set_online(True) is True

        assert seen == [False, True]
        assert monitor.is_online

    async def test_async_listeners_are_awaited(self):
        monitor = ConnectivityMonitor(initially_online=False)
        seen = []

        async def listener(online):
            seen.append(online)

        monitor.add_listener(listener)
        await monitor.set_online(True)
        assert seen == [True]

    async def test_failing_listener_does_not_stop_others(self, caplog):
        monitor = ConnectivityMonitor()
        seen = []

        def broken(online):
            raise RuntimeError("listener bug")

        monitor.add_listener(broken)
        monitor.add_listener(seen.append)

        with caplog.at_level(logging.WARNING):
            assert await monitor.set_online(False)

        assert seen == [False]
        assert "Connectivity listener raised" in caplog.text

    async def test_remove_listener(self):
        monitor = ConnectivityMonitor()
        seen = []
        monitor.add_listener(seen.append)
        monitor.remove_listener(seen.append)
        monitor.remove_listener(seen.append)

        await monitor.set_online(False)
        assert seen == []

    async def test_probe_without_url_reports_current_state(self):
        monitor = ConnectivityMonitor(initially_online=False)
        assert await monitor.probe() is False
        await monitor.set_online(True)
        assert await monitor.probe() is True

    async def test_stop_watching_without_watch(self):
        monitor = ConnectivityMonitor()
        await monitor.stop_watching()


@pytest.mark.asyncio
class TestNoticeThrottle:
    async def test_one_notice_per_interval(self):
        clock = FakeClock()
        notices = []
        throttle = NoticeThrottle(SyncEvents(on_notice=notices.append), 15.0, clock)

        assert await throttle.notify_offline("Offline.")
        clock.advance(10)
        assert not await throttle.notify_offline("Offline.")
        clock.advance(5)
        assert await throttle.notify_offline("Offline again.")

        assert notices == ["Offline.", "Offline again."]

    async def test_failing_hook_is_logged(self, caplog):
        def broken(message):
            raise ValueError("render failed")

        events = SyncEvents(on_notice=broken)
        with caplog.at_level(logging.WARNING):
            await events.notice("hello")
        assert "Event hook 'notice' raised" in caplog.text
