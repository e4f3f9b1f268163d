"""
Data Models Layer.

This package contains Pydantic models that define the core data structures
used throughout the application, such as configuration, queued actions and
remembered accounts.
"""

from .account import Account, OfflineLookup, Role, Session
from .config import SyncConfig
from .queue import ACTION_ROUTES, QueueItem, QueueKind, build_queue_item
from .status import QueueStatus

__all__ = [
    "ACTION_ROUTES",
    "Account",
    "OfflineLookup",
    "QueueItem",
    "QueueKind",
    "QueueStatus",
    "Role",
    "Session",
    "SyncConfig",
    "build_queue_item",
]
