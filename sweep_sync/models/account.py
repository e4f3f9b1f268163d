"""
Models for authenticated sessions and the accounts remembered for offline login.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Role(str, Enum):
    """Roles a session can be signed in as."""

    USER = "user"
    VENDOR = "vendor"
    ADMIN = "admin"


def normalize_login_id(value: Any) -> str:
    """Login ids compare case-insensitively and ignore surrounding whitespace."""
    return str(value or "").strip().lower()


def account_key(role: Any, login_id: Any) -> str:
    """Builds the composite key an account is remembered under."""
    return f"{str(role or '').lower()}:{normalize_login_id(login_id)}"


class Session(BaseModel):
    """The identity the client is currently acting as."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    role: str = ""
    user_id: str | None = Field(default=None, alias="userId")
    vendor_id: str | None = Field(default=None, alias="vendorId")
    admin_email: str | None = Field(default=None, alias="adminEmail")
    name: str = ""

    @field_validator("role", mode="before")
    @classmethod
    def lower_role(cls, v: Any) -> str:
        return str(v or "").lower()

    @field_validator("user_id", "vendor_id", "admin_email", mode="before")
    @classmethod
    def stringify_ids(cls, v: Any) -> str | None:
        return None if v is None else str(v)

    @property
    def login_id(self) -> str:
        """The identifier this session signs in with, normalized."""
        return normalize_login_id(self.admin_email or self.vendor_id or self.user_id)

    @property
    def display_name(self) -> str:
        return self.name or self.vendor_id or self.admin_email or self.user_id or ""

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Account(BaseModel):
    """A previously authenticated identity that may be resumed offline."""

    model_config = ConfigDict(populate_by_name=True)

    key: str
    role: str
    login_id: str = Field(alias="loginId")
    name: str = ""
    session: Session
    token: str
    last_login_at: str = Field(alias="lastLoginAt")

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass
class OfflineLookup:
    """
    Outcome of an offline account lookup.

    `strategy` names the resolution step that produced the candidate, so the
    fallback order is visible to callers and tests.
    """

    ok: bool
    item: Account | None = None
    reason: str | None = None
    strategy: str | None = None

    @classmethod
    def found(cls, item: Account, strategy: str) -> "OfflineLookup":
        return cls(ok=True, item=item, strategy=strategy)

    @classmethod
    def rejected(cls, reason: str, strategy: str | None = None) -> "OfflineLookup":
        return cls(ok=False, reason=reason, strategy=strategy)
