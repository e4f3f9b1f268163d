"""Tests for the network gateway and error classification."""

import asyncio

import aiohttp
import pytest
from helpers import make_token

from sweep_sync.api.client import classify_error
from sweep_sync.exceptions import LogicalError, NetworkError, RemoteError


@pytest.mark.asyncio
class TestRequests:
    async def test_headers_with_token(self, make_context, transport, clock):
        ctx = await make_context()
        token = make_token(clock() + 3600)
        await ctx.vault.set_token(token)

        await ctx.gateway.post("/reports/assign", {"reportId": "r1", "vendorId": "v1"})

        request = transport.requests[0]
        assert request["method"] == "POST"
        assert request["url"] == "https://api.example.test/reports/assign"
        assert request["body"] == {"reportId": "r1", "vendorId": "v1"}
        assert request["headers"]["Authorization"] == f"Bearer {token}"
        assert request["headers"]["Content-Type"] == "application/json"

    async def test_no_authorization_without_token(self, make_context, transport):
        ctx = await make_context()
        await ctx.gateway.get("/vendors")
        assert "Authorization" not in transport.requests[0]["headers"]

    async def test_get_is_cache_busted(self, make_context, transport):
        ctx = await make_context()
        await ctx.gateway.get("/reports/me")
        await ctx.gateway.get("/reports?status=all&q=")

        first, second = (r["url"] for r in transport.requests)
        assert first == "https://api.example.test/reports/me?t=1700000000000"
        assert second == "https://api.example.test/reports?status=all&q=&t=1700000000000"
        headers = transport.requests[0]["headers"]
        assert headers["Cache-Control"] == "no-cache"
        assert headers["Pragma"] == "no-cache"

    async def test_success_updates_cache_and_last_sync(self, make_context, transport, store):
        ctx = await make_context()
        transport.queue((200, [{"id": "r1"}]))

        result = await ctx.gateway.get("/reports/me", cache_key="reports.me")

        assert result.value == [{"id": "r1"}]
        assert not result.from_cache
        assert await ctx.cache.get("reports.me") == [{"id": "r1"}]
        assert await ctx.gateway.last_sync_at() == "2023-11-14T22:13:20.000Z"

    async def test_post_is_never_cached(self, make_context, transport, store):
        ctx = await make_context()
        await ctx.gateway.post("/reports", {"title": "x"})
        assert await store.keys("cache:") == []


@pytest.mark.asyncio
class TestRemoteErrors:
    @pytest.mark.parametrize(
        "status, body, message",
        [
            (400, {"error": "Invalid vendor"}, "Invalid vendor"),
            (403, {"message": "Forbidden for role"}, "Forbidden for role"),
            (500, None, "HTTP 500"),
            (502, "Bad gateway", "HTTP 502"),
        ],
    )
    async def test_message_and_status(self, make_context, transport, status, body, message):
        ctx = await make_context()
        transport.queue((status, body))

        with pytest.raises(RemoteError) as excinfo:
            await ctx.gateway.post("/reports/status", {})

        assert str(excinfo.value) == message
        assert excinfo.value.status == status
        assert isinstance(excinfo.value, LogicalError)

    async def test_failure_does_not_touch_cache_or_last_sync(self, make_context, transport):
        ctx = await make_context()
        transport.queue((500, None))

        with pytest.raises(RemoteError):
            await ctx.gateway.get("/reports/me", cache_key="reports.me")
        assert await ctx.cache.get_stale("reports.me") is None
        assert await ctx.gateway.last_sync_at() is None


@pytest.mark.asyncio
class TestCacheFallback:
    async def test_offline_serves_cache_without_request(self, make_context, transport):
        ctx = await make_context(online=False)
        await ctx.cache.set("reports.me", [{"id": "r1"}])

        result = await ctx.gateway.get("/reports/me", cache_key="reports.me")

        assert result.value == [{"id": "r1"}]
        assert result.from_cache
        assert transport.requests == []

    async def test_offline_without_cache_still_tries_network(self, make_context, transport):
        ctx = await make_context(online=False)
        transport.queue((200, []))

        result = await ctx.gateway.get("/reports/me", cache_key="reports.me")

        assert result.value == []
        assert len(transport.requests) == 1
        # Connectivity is down, so this does not count as a sync.
        assert await ctx.gateway.last_sync_at() is None

    async def test_offline_serves_expired_cache_marked_stale(self, make_context, clock):
        ctx = await make_context(online=False)
        await ctx.cache.set("reports.me", ["old"])
        clock.advance(3600)

        result = await ctx.gateway.get(
            "/reports/me", cache_key="reports.me", cache_max_age_ms=5 * 60 * 1000
        )
        assert result.value == ["old"]
        assert result.from_cache
        assert result.stale

    async def test_transport_failure_falls_back_to_cache(self, make_context, transport):
        ctx = await make_context()
        await ctx.cache.set("vendors", [{"id": "v1"}])
        transport.queue(aiohttp.ClientConnectionError("Connection refused"))

        result = await ctx.gateway.get("/vendors", cache_key="vendors")

        assert result.value == [{"id": "v1"}]
        assert result.from_cache
        assert not result.stale

    async def test_transport_failure_without_cache_raises(self, make_context, transport):
        ctx = await make_context()
        transport.queue(asyncio.TimeoutError())

        with pytest.raises(NetworkError):
            await ctx.gateway.get("/vendors", cache_key="vendors")

    async def test_transport_failure_on_post_raises(self, make_context, transport):
        ctx = await make_context()
        transport.queue(aiohttp.ClientConnectionError("reset"))

        with pytest.raises(NetworkError, match="/reports"):
            await ctx.gateway.post("/reports", {"title": "x"})

    async def test_other_client_errors_are_logical(self, make_context, transport, recorder):
        ctx = await make_context()
        await ctx.cache.set("vendors", ["v1"])
        transport.queue(aiohttp.InvalidURL("http://bad host/vendors"))

        with pytest.raises(LogicalError, match="/vendors") as excinfo:
            await ctx.gateway.get("/vendors", cache_key="vendors")

        assert not isinstance(excinfo.value, NetworkError)
        assert recorder.progress_starts == recorder.progress_stops == 1

    async def test_remote_error_is_not_hidden_by_cache(self, make_context, transport):
        ctx = await make_context()
        await ctx.cache.set("vendors", ["v1"])
        transport.queue((401, {"error": "Token expired"}))

        with pytest.raises(RemoteError, match="Token expired"):
            await ctx.gateway.get("/vendors", cache_key="vendors")


@pytest.mark.asyncio
class TestProgressHooks:
    async def test_balanced_on_success_and_failure(self, make_context, transport, recorder):
        ctx = await make_context()
        transport.queue((200, {}), (500, None), aiohttp.ClientConnectionError("down"))

        await ctx.gateway.get("/vendors")
        with pytest.raises(RemoteError):
            await ctx.gateway.get("/vendors")
        with pytest.raises(NetworkError):
            await ctx.gateway.get("/vendors")

        assert recorder.progress_starts == 3
        assert recorder.progress_stops == 3

    async def test_cached_offline_read_skips_progress(self, make_context, recorder):
        ctx = await make_context(online=False)
        await ctx.cache.set("vendors", [])

        await ctx.gateway.get("/vendors", cache_key="vendors")
        assert recorder.progress_starts == 0


class TestClassifyError:
    def test_everything_is_network_while_offline(self):
        error = RemoteError("Bad request", 400)
        assert isinstance(classify_error(error, online=False), NetworkError)

    def test_transport_faults(self):
        assert isinstance(
            classify_error(aiohttp.ClientConnectionError("x"), online=True), NetworkError
        )
        assert isinstance(classify_error(asyncio.TimeoutError(), online=True), NetworkError)

    @pytest.mark.parametrize(
        "message", ["Failed to fetch", "NetworkError when attempting", "Load failed", "network down"]
    )
    def test_network_looking_messages(self, message):
        assert isinstance(classify_error(Exception(message), online=True), NetworkError)

    def test_logical_errors(self):
        remote = RemoteError("Invalid vendor", 400)
        assert classify_error(remote, online=True) is remote

        other = classify_error(ValueError("boom"), online=True)
        assert isinstance(other, LogicalError)
        assert str(other) == "boom"

    def test_network_error_passes_through(self):
        error = NetworkError("gone")
        assert classify_error(error, online=True) is error
