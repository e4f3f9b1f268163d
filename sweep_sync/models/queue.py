"""
Typed queue items for the retry queue.

Each queued action kind carries its own payload model, so malformed payloads
are rejected when they are enqueued rather than when the queue is flushed.
Payload fields are serialized with the remote service's camelCase names.
"""

import logging
import math
from enum import Enum
from typing import Annotated, Any, ClassVar, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from sweep_sync.exceptions import PayloadValidationError

log = logging.getLogger(__name__)


class QueueKind(str, Enum):
    """The closed set of mutating actions that can be queued."""

    REPORT_CREATE = "report.create"
    VENDOR_COMPLETE = "vendor.complete"
    ADMIN_ASSIGN = "admin.assign"
    ADMIN_STATUS = "admin.status"


# Fixed remote endpoint for each queued action kind.
ACTION_ROUTES: dict[QueueKind, tuple[str, str]] = {
    QueueKind.REPORT_CREATE: ("POST", "/reports"),
    QueueKind.VENDOR_COMPLETE: ("POST", "/reports/vendor/complete"),
    QueueKind.ADMIN_ASSIGN: ("POST", "/reports/assign"),
    QueueKind.ADMIN_STATUS: ("POST", "/reports/status"),
}


class _Payload(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True, str_strip_whitespace=True, extra="ignore"
    )

    def to_wire(self) -> dict[str, Any]:
        """Returns the JSON body sent to the remote service."""
        return self.model_dump(by_alias=True)


class ReportCreatePayload(_Payload):
    title: str = Field(min_length=1)
    desc: str = ""
    lat: float
    lng: float
    photo_base64: str | None = Field(default=None, alias="photoBase64")
    address: str | None = None
    waste_type_override: str = Field(default="auto", alias="wasteTypeOverride")

    @field_validator("lat")
    @classmethod
    def validate_lat(cls, v: float) -> float:
        if not math.isfinite(v) or not -90 <= v <= 90:
            raise ValueError("Latitude must be a number between -90 and 90.")
        return v

    @field_validator("lng")
    @classmethod
    def validate_lng(cls, v: float) -> float:
        if not math.isfinite(v) or not -180 <= v <= 180:
            raise ValueError("Longitude must be a number between -180 and 180.")
        return v


class VendorCompletePayload(_Payload):
    report_id: str = Field(alias="reportId", min_length=1)
    proof_base64: str = Field(alias="proofBase64", min_length=1)


class AdminAssignPayload(_Payload):
    report_id: str = Field(alias="reportId", min_length=1)
    vendor_id: str = Field(alias="vendorId", min_length=1)


class AdminStatusPayload(_Payload):
    report_id: str = Field(alias="reportId", min_length=1)
    status: str = Field(min_length=1)


class _QueueItemBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    created_at: str = Field(alias="createdAt")
    error: str | None = None
    failed_at: str | None = Field(default=None, alias="failedAt")

    route: ClassVar[tuple[str, str]]

    @property
    def method(self) -> str:
        return self.route[0]

    @property
    def path(self) -> str:
        return self.route[1]

    def to_storage(self) -> dict[str, Any]:
        """Serializes the item for the durable store."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ReportCreateItem(_QueueItemBase):
    kind: Literal["report.create"] = "report.create"
    payload: ReportCreatePayload
    route: ClassVar[tuple[str, str]] = ACTION_ROUTES[QueueKind.REPORT_CREATE]


class VendorCompleteItem(_QueueItemBase):
    kind: Literal["vendor.complete"] = "vendor.complete"
    payload: VendorCompletePayload
    route: ClassVar[tuple[str, str]] = ACTION_ROUTES[QueueKind.VENDOR_COMPLETE]


class AdminAssignItem(_QueueItemBase):
    kind: Literal["admin.assign"] = "admin.assign"
    payload: AdminAssignPayload
    route: ClassVar[tuple[str, str]] = ACTION_ROUTES[QueueKind.ADMIN_ASSIGN]


class AdminStatusItem(_QueueItemBase):
    kind: Literal["admin.status"] = "admin.status"
    payload: AdminStatusPayload
    route: ClassVar[tuple[str, str]] = ACTION_ROUTES[QueueKind.ADMIN_STATUS]


QueueItem = Annotated[
    Union[ReportCreateItem, VendorCompleteItem, AdminAssignItem, AdminStatusItem],
    Field(discriminator="kind"),
]

_ITEM_ADAPTER = TypeAdapter(QueueItem)


def build_queue_item(
    kind: QueueKind | str,
    payload: dict[str, Any] | _Payload,
    item_id: str,
    created_at: str,
) -> QueueItem:
    """
    Builds a typed queue item, validating the payload against its kind.

    Raises:
        PayloadValidationError: If the kind is unknown or the payload is malformed.
    """
    try:
        kind_value = QueueKind(kind).value
    except ValueError as e:
        raise PayloadValidationError(f"Unknown queue action kind: {kind!r}") from e

    if isinstance(payload, _Payload):
        payload = payload.model_dump()

    try:
        return _ITEM_ADAPTER.validate_python(
            {
                "id": item_id,
                "kind": kind_value,
                "payload": payload or {},
                "created_at": created_at,
            }
        )
    except ValidationError as e:
        raise PayloadValidationError(
            f"Invalid payload for '{kind_value}': {e.error_count()} error(s)\n{e}"
        ) from e


def load_queue_items(raw: Any) -> tuple[list[QueueItem], list[Any]]:
    """
    Rebuilds queue items from their stored form.

    Entries written by older clients name the action kind `type` instead of
    `kind`; both are accepted.

    Returns:
        The readable items in order, and the raw entries that no longer validate.
    """
    if raw is None:
        return [], []
    if not isinstance(raw, list):
        return [], [raw]
    items, unreadable = [], []
    for entry in raw:
        candidate = entry
        if isinstance(entry, dict) and "kind" not in entry and "type" in entry:
            candidate = {k: v for k, v in entry.items() if k != "type"}
            candidate["kind"] = entry["type"]
        try:
            items.append(_ITEM_ADAPTER.validate_python(candidate))
        except ValidationError as e:
            entry_id = entry.get("id") if isinstance(entry, dict) else None
            log.warning(
                f"[yellow]Unreadable queue entry {entry_id!r} set aside: "
                f"{e.error_count()} error(s)[/yellow]"
            )
            unreadable.append(entry)
    return items, unreadable
