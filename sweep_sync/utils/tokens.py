"""
Helpers for reading claims out of bearer tokens issued by the remote service.

Tokens are never verified here, only inspected, so that a previously issued
token can keep being used while offline until its embedded expiry.
"""

import base64
import binascii
import json
import time
from typing import Any

DEFAULT_SKEW_SECONDS = 60


def decode_token_payload(token: str | None) -> dict[str, Any] | None:
    """
    Decodes the middle segment of a dot-delimited token as JSON.

    Returns:
        The claims dictionary, or None if the token cannot be decoded.
    """
    parts = str(token or "").split(".")
    if len(parts) < 2:
        return None

    payload_b64 = parts[1].replace("-", "+").replace("_", "/")
    padding = -len(payload_b64) % 4
    payload_b64 += "=" * padding

    try:
        claims = json.loads(base64.b64decode(payload_b64))
    except (binascii.Error, ValueError, UnicodeDecodeError):
        return None
    return claims if isinstance(claims, dict) else None


def token_expiry(token: str | None) -> int | None:
    """
    Returns the `exp` claim in epoch seconds, or None when it is missing or
    not a finite number.
    """
    claims = decode_token_payload(token)
    if not claims or not claims.get("exp"):
        return None
    try:
        return int(claims["exp"])
    except (TypeError, ValueError, OverflowError):
        return None


def is_token_expired(
    token: str | None,
    skew_seconds: int = DEFAULT_SKEW_SECONDS,
    now: float | None = None,
) -> bool:
    """
    Checks a token's `exp` claim against the current time minus a safety skew.

    A token that cannot be decoded or carries no usable `exp` counts as expired.
    """
    exp = token_expiry(token)
    if exp is None:
        return True
    now_sec = int(time.time() if now is None else now)
    return exp - skew_seconds <= now_sec


def token_role(token: str | None) -> str | None:
    """Returns the lower-cased `role` claim, if the token carries one."""
    claims = decode_token_payload(token)
    if not claims or not claims.get("role"):
        return None
    return str(claims["role"]).lower()
