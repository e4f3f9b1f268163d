"""
Utilities Layer.

Shared helpers for token inspection, formatting and structured logging.
"""

from .formatting import format_duration, format_timestamp, iso_timestamp
from .tokens import decode_token_payload, is_token_expired, token_expiry, token_role

__all__ = [
    "decode_token_payload",
    "format_duration",
    "format_timestamp",
    "iso_timestamp",
    "is_token_expired",
    "token_expiry",
    "token_role",
]
