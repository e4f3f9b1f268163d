"""
Helper functions for formatting data into human-readable strings.
"""

from datetime import datetime, timezone


def format_duration(seconds: float) -> str:
    """
    Formats a duration in seconds into a human-readable string (e.g., '2h 34m 12s').
    """
    s = int(seconds)
    hours, remainder = divmod(s, 3600)
    minutes, secs = divmod(remainder, 60)
    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def format_timestamp(value: str | None) -> str:
    """Formats an ISO-8601 timestamp for display, or 'never' when missing or invalid."""
    if not value:
        return "never"
    try:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return "never"
    return ts.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def format_retry_hint(retry_in_ms: int, online: bool) -> str:
    """Builds the hint shown next to pending uploads."""
    if not online:
        return "Offline. Will sync when you're online."
    if retry_in_ms > 0:
        return f"Next retry in {-(-retry_in_ms // 1000)}s."
    return "Sync will retry automatically."


def iso_timestamp(epoch_seconds: float) -> str:
    """Formats epoch seconds as an ISO-8601 UTC timestamp with millisecond precision."""
    ts = datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)
    return ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")
