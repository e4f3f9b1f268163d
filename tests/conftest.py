"""
Shared test configuration and fixtures.

Nothing here touches the network: the gateway's single HTTP exchange is
replaced with a scripted transport, and every store is in memory.
"""

import random

import pytest
from helpers import EventRecorder, FakeClock, FakeTransport

from sweep_sync.core.connectivity import ConnectivityMonitor
from sweep_sync.core.context import SyncContext
from sweep_sync.models.config import SyncConfig
from sweep_sync.storage.kv_store import MemoryStore


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def config() -> SyncConfig:
    return SyncConfig(api_base="https://api.example.test")


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def make_context(config, store, clock, recorder, transport):
    """Factory for a fully wired context on the in-memory store and fake transport."""

    async def _make(
        online: bool = True, seed: int = 7, settings: SyncConfig | None = None
    ) -> SyncContext:
        ctx = await SyncContext.create(
            settings or config,
            store=store,
            events=recorder.events(),
            monitor=ConnectivityMonitor(initially_online=online),
            clock=clock,
            rng=random.Random(seed),
        )
        transport.install(ctx.gateway)
        return ctx

    return _make
