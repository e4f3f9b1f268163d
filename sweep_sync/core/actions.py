"""
Report operations that keep working without connectivity.

Mutations go straight to the remote service while online and fall back to the
retry queue when offline or when the request cannot reach the service. Reads
go through the gateway's cache so that the last known listings stay visible.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote

from pydantic import ValidationError

from sweep_sync.api.client import CallResult, NetworkGateway
from sweep_sync.exceptions import NetworkError, PayloadValidationError
from sweep_sync.models.queue import (
    ACTION_ROUTES,
    AdminAssignPayload,
    AdminStatusPayload,
    QueueItem,
    QueueKind,
    ReportCreatePayload,
    VendorCompletePayload,
)
from sweep_sync.storage.credentials import CredentialVault

from .connectivity import ConnectivityMonitor
from .events import NoticeThrottle, SyncEvents
from .retry_queue import RetryQueue

log = logging.getLogger(__name__)

REPORT_LIST_MAX_AGE_MS = 5 * 60 * 1000
VENDOR_LIST_MAX_AGE_MS = 60 * 60 * 1000

_PAYLOAD_MODELS = {
    QueueKind.REPORT_CREATE: ReportCreatePayload,
    QueueKind.VENDOR_COMPLETE: VendorCompletePayload,
    QueueKind.ADMIN_ASSIGN: AdminAssignPayload,
    QueueKind.ADMIN_STATUS: AdminStatusPayload,
}

# Notices shown when a listing comes from the cache, or is unavailable offline.
_CACHED_NOTICES = {
    "reports.me": "Offline. Showing last saved reports.",
    "reports.vendor": "Offline. Showing last saved tasks.",
    "reports.admin": "Offline. Showing last saved admin view.",
    "vendors": "Offline. Using last saved vendor list.",
    "report.events": "Offline. Showing cached audit trail.",
}
_MISSING_NOTICES = {
    "reports.me": "Offline. No cached reports yet.",
    "reports.vendor": "Offline. No cached vendor tasks yet.",
    "reports.admin": "Offline. No cached admin data yet.",
}


@dataclass
class ActionOutcome:
    """
    Result of a mutating action.

    `queued` tells whether the action was deferred to the retry queue; `value`
    is the service response, or for a queued report its local stub row.
    """

    queued: bool
    value: Any = None
    item: Optional[QueueItem] = None


def _validate(kind: QueueKind, payload: Any):
    model = _PAYLOAD_MODELS[kind]
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise PayloadValidationError(
            f"Invalid payload for '{kind.value}': {e.error_count()} error(s)\n{e}"
        ) from e


class ReportActions:
    """Facade used by the application to act on reports online or offline."""

    def __init__(
        self,
        gateway: NetworkGateway,
        queue: RetryQueue,
        monitor: ConnectivityMonitor,
        vault: CredentialVault,
        throttle: NoticeThrottle,
        events: Optional[SyncEvents] = None,
    ):
        self._gateway = gateway
        self._queue = queue
        self._monitor = monitor
        self._vault = vault
        self._throttle = throttle
        self._events = events or SyncEvents()

    # Mutations

    async def _perform(self, kind: QueueKind, payload: Any) -> ActionOutcome:
        model = _validate(kind, payload)
        if self._monitor.is_online:
            _, path = ACTION_ROUTES[kind]
            try:
                result = await self._gateway.post(path, model.to_wire())
                return ActionOutcome(queued=False, value=result.value)
            except NetworkError as e:
                log.info(f"[yellow]Network issue ({e}). Queuing '{kind.value}'.[/yellow]")
        item = await self._queue.enqueue(kind, model)
        return ActionOutcome(queued=True, item=item)

    async def submit_report(self, payload: dict[str, Any] | ReportCreatePayload) -> ActionOutcome:
        """
        Files a new report.

        A queued report comes back with a stub row (status `QUEUED`) so it can
        be shown right away.

        Raises:
            PayloadValidationError: If the payload is malformed.
            RemoteError: If the service rejects the report.
        """
        outcome = await self._perform(QueueKind.REPORT_CREATE, payload)
        if outcome.queued:
            outcome.value = self._queue.to_report_stub(outcome.item)
            await self._events.notice(
                "Report saved and will sync automatically."
                if not self._monitor.is_online
                else "Network issue. Report queued for sync."
            )
        else:
            created = outcome.value if isinstance(outcome.value, dict) else {}
            log.info(f"Report submitted: {created.get('id', 'ok')}")
        return outcome

    async def assign(self, report_id: str, vendor_id: str) -> ActionOutcome:
        """Assigns a report to a vendor (admin)."""
        return await self._perform(
            QueueKind.ADMIN_ASSIGN, {"reportId": report_id, "vendorId": vendor_id}
        )

    async def update_status(self, report_id: str, status: str) -> ActionOutcome:
        """Moves a report to another status (admin)."""
        return await self._perform(
            QueueKind.ADMIN_STATUS, {"reportId": report_id, "status": status}
        )

    async def vendor_complete(self, report_id: str, proof_base64: str) -> ActionOutcome:
        """Marks an assigned report as done, with a proof photo (vendor)."""
        return await self._perform(
            QueueKind.VENDOR_COMPLETE,
            {"reportId": report_id, "proofBase64": proof_base64},
        )

    # Reads

    async def _listing(
        self,
        path: str,
        cache_key: str,
        notice_group: str,
        max_age_ms: int,
        with_stubs: bool = False,
    ) -> list[Any]:
        stubs = self._queue.report_stubs() if with_stubs else []
        try:
            result: CallResult = await self._gateway.get(path, cache_key, max_age_ms)
        except NetworkError:
            missing = _MISSING_NOTICES.get(notice_group)
            if missing:
                await self._throttle.notify_offline(missing)
            return stubs
        if result.from_cache:
            await self._throttle.notify_offline(_CACHED_NOTICES[notice_group])
        rows = result.value if isinstance(result.value, list) else []
        return [*stubs, *rows]

    async def my_reports(self) -> list[Any]:
        """The signed-in user's reports, with queued submissions listed first."""
        return await self._listing(
            "/reports/me", "reports.me", "reports.me", REPORT_LIST_MAX_AGE_MS, with_stubs=True
        )

    async def vendor_tasks(self) -> list[Any]:
        return await self._listing(
            "/reports/vendor", "reports.vendor", "reports.vendor", REPORT_LIST_MAX_AGE_MS
        )

    async def admin_reports(self, status_filter: str = "all", query: str = "") -> list[Any]:
        """All reports, filtered by status and a free-text query (admin)."""
        status_filter = status_filter or "all"
        query = query or ""
        path = f"/reports?status={quote(status_filter, safe='')}&q={quote(query, safe='')}"
        cache_key = f"reports.admin.{status_filter}.{query or 'all'}"
        return await self._listing(path, cache_key, "reports.admin", REPORT_LIST_MAX_AGE_MS)

    async def vendors(self) -> list[Any]:
        return await self._listing("/vendors", "vendors", "vendors", VENDOR_LIST_MAX_AGE_MS)

    async def report_events(self, report_id: str) -> list[Any]:
        """
        The audit trail of a report. Reports that only exist in the local queue
        have no trail yet and yield an empty list without a request.
        """
        if not report_id or report_id.startswith(("q_", "local_")):
            return []
        return await self._listing(
            f"/reports/{quote(report_id, safe='')}/events",
            f"report.events.{report_id}",
            "report.events",
            REPORT_LIST_MAX_AGE_MS,
        )

    async def refresh(self) -> list[Any]:
        """Reloads the listing that belongs to the active session's role."""
        session = self._vault.session
        role = session.role if session else ""
        if role == "user":
            return await self.my_reports()
        if role == "vendor":
            return await self.vendor_tasks()
        if role == "admin":
            return await self.admin_reports()
        return []

    async def sync_now(self) -> list[Any]:
        """Forces a flush of the retry queue, then reloads the active view."""
        await self._queue.flush(force=True)
        return await self.refresh()
