"""Tests for report actions: online delivery, queue fallback and cached listings."""

import aiohttp
import pytest

from sweep_sync.core.retry_queue import SYNCED_NOTICE
from sweep_sync.exceptions import PayloadValidationError, RemoteError
from sweep_sync.models.account import Session

REPORT = {"title": "Overflowing bin", "desc": "Near the park", "lat": 12.97, "lng": 77.59}


@pytest.mark.asyncio
class TestSubmitReport:
    async def test_online_posts_directly(self, make_context, transport):
        ctx = await make_context()
        transport.queue((201, {"id": "r1", "status": "OPEN"}))

        outcome = await ctx.actions.submit_report(REPORT)

        assert not outcome.queued
        assert outcome.value == {"id": "r1", "status": "OPEN"}
        assert transport.paths == ["/reports"]
        assert transport.requests[0]["body"]["wasteTypeOverride"] == "auto"
        assert ctx.queue.count == 0

    async def test_offline_is_queued_with_stub(self, make_context, transport, recorder):
        ctx = await make_context(online=False)

        outcome = await ctx.actions.submit_report(REPORT)

        assert outcome.queued
        assert outcome.value["status"] == "QUEUED"
        assert outcome.value["id"] == outcome.item.id
        assert ctx.queue.count == 1
        assert transport.requests == []
        assert recorder.notices == ["Report saved and will sync automatically."]

    async def test_unreachable_service_queues(self, make_context, transport, recorder):
        ctx = await make_context()
        transport.queue(aiohttp.ClientConnectionError("Connection refused"))

        outcome = await ctx.actions.submit_report(REPORT)

        assert outcome.queued
        assert ctx.queue.count == 1
        assert recorder.notices == ["Network issue. Report queued for sync."]
        ctx.queue.clear_schedule()

    async def test_rejection_is_not_queued(self, make_context, transport):
        ctx = await make_context()
        transport.queue((422, {"error": "Photo too large"}))

        with pytest.raises(RemoteError, match="Photo too large"):
            await ctx.actions.submit_report(REPORT)
        assert ctx.queue.count == 0

    async def test_invalid_payload(self, make_context, transport):
        ctx = await make_context()
        with pytest.raises(PayloadValidationError, match="report.create"):
            await ctx.actions.submit_report({**REPORT, "title": ""})
        assert transport.requests == []
        assert ctx.queue.count == 0


@pytest.mark.asyncio
class TestOtherActions:
    async def test_assign_offline_is_queued(self, make_context):
        ctx = await make_context(online=False)

        outcome = await ctx.actions.assign("r1", "v1")

        assert outcome.queued
        assert outcome.item.kind == "admin.assign"
        assert outcome.value is None

    async def test_update_status_online(self, make_context, transport):
        ctx = await make_context()
        await ctx.actions.update_status("r1", "RESOLVED")

        assert transport.paths == ["/reports/status"]
        assert transport.requests[0]["body"] == {"reportId": "r1", "status": "RESOLVED"}

    async def test_vendor_complete_online(self, make_context, transport):
        ctx = await make_context()
        await ctx.actions.vendor_complete("r1", "aGk=")

        assert transport.paths == ["/reports/vendor/complete"]
        assert transport.requests[0]["body"] == {"reportId": "r1", "proofBase64": "aGk="}

    async def test_vendor_complete_requires_proof(self, make_context):
        ctx = await make_context(online=False)
        with pytest.raises(PayloadValidationError):
            await ctx.actions.vendor_complete("r1", "")


@pytest.mark.asyncio
class TestListings:
    async def test_my_reports_lists_queued_first(self, make_context, recorder):
        ctx = await make_context(online=False)
        await ctx.cache.set("reports.me", [{"id": "r1"}])
        outcome = await ctx.actions.submit_report(REPORT)

        rows = await ctx.actions.my_reports()

        assert [r["id"] for r in rows] == [outcome.item.id, "r1"]
        assert recorder.notices[-1] == "Offline. Showing last saved reports."

    async def test_no_cache_and_no_network(self, make_context, transport, recorder):
        ctx = await make_context(online=False)
        transport.queue(aiohttp.ClientConnectionError("Connection refused"))

        assert await ctx.actions.vendor_tasks() == []
        assert recorder.notices == ["Offline. No cached vendor tasks yet."]

    async def test_online_listing_refreshes_cache(self, make_context, transport):
        ctx = await make_context()
        transport.queue((200, [{"id": "r1"}]))

        assert await ctx.actions.vendor_tasks() == [{"id": "r1"}]
        assert await ctx.cache.get("reports.vendor") == [{"id": "r1"}]

    async def test_admin_filters_and_cache_key(self, make_context, transport):
        ctx = await make_context()
        transport.queue((200, [{"id": "r1"}]))

        await ctx.actions.admin_reports("PENDING", "park bench")

        assert transport.paths == ["/reports?status=PENDING&q=park%20bench"]
        assert await ctx.cache.get("reports.admin.PENDING.park bench") == [{"id": "r1"}]

    async def test_admin_defaults(self, make_context, transport):
        ctx = await make_context()
        await ctx.actions.admin_reports()

        assert transport.paths == ["/reports?status=all&q="]

    async def test_cached_vendor_list_offline(self, make_context, transport, recorder):
        ctx = await make_context(online=False)
        await ctx.cache.set("vendors", [{"id": "v1"}])

        assert await ctx.actions.vendors() == [{"id": "v1"}]
        assert transport.requests == []
        assert recorder.notices == ["Offline. Using last saved vendor list."]

    async def test_events_of_queued_report(self, make_context, transport):
        ctx = await make_context()
        assert await ctx.actions.report_events("q_1700000000000_abc123") == []
        assert await ctx.actions.report_events("local_7") == []
        assert transport.requests == []

    async def test_events_of_remote_report(self, make_context, transport):
        ctx = await make_context()
        transport.queue((200, [{"type": "CREATED"}]))

        assert await ctx.actions.report_events("r1") == [{"type": "CREATED"}]
        assert transport.paths == ["/reports/r1/events"]


@pytest.mark.asyncio
class TestRefresh:
    async def test_without_session(self, make_context, transport):
        ctx = await make_context()
        assert await ctx.actions.refresh() == []
        assert transport.requests == []

    async def test_sync_now_flushes_then_reloads(self, make_context, transport, recorder):
        ctx = await make_context()
        await ctx.vault.set_session(Session(role="user", user_id="u1"))
        await ctx.queue.enqueue("report.create", REPORT)
        transport.queue((201, {"id": "r9"}), (200, [{"id": "r9"}]))

        rows = await ctx.actions.sync_now()

        assert transport.paths == ["/reports", "/reports/me"]
        assert rows == [{"id": "r9"}]
        assert SYNCED_NOTICE in recorder.notices
        assert recorder.refreshes == 1
        assert not ctx.queue.has_timer
