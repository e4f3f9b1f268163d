"""
Snapshot of the retry queue used for status display.
"""

from dataclasses import dataclass


@dataclass
class QueueStatus:
    """Point-in-time view of the retry queue and connectivity."""

    online: bool
    pending: int = 0
    flushing: bool = False
    retry_count: int = 0
    next_retry_at_ms: int | None = None
    retry_in_ms: int = 0
    blocked_error: str | None = None
    last_sync_at: str | None = None

    @property
    def label(self) -> str | None:
        """The short network status line, or None when nothing needs showing."""
        if not self.online:
            return f"Offline ({self.pending} pending)" if self.pending else "Offline"
        if self.pending > 0:
            return f"Syncing ({self.pending})"
        return None
