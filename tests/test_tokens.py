"""Tests for token inspection and display helpers."""

import base64
import json

import pytest
from helpers import make_token

from sweep_sync.cli.formatters import _token_expiry
from sweep_sync.models.status import QueueStatus
from sweep_sync.utils.formatting import (
    format_duration,
    format_retry_hint,
    format_timestamp,
    iso_timestamp,
)
from sweep_sync.utils.tokens import (
    decode_token_payload,
    is_token_expired,
    token_expiry,
    token_role,
)


class TestDecodeTokenPayload:
    """Tests for reading claims from the middle token segment."""

    def test_decodes_claims(self):
        token = make_token(1_700_000_000, role="Admin")
        assert decode_token_payload(token) == {"exp": 1_700_000_000, "role": "Admin"}

    def test_tolerates_url_safe_alphabet_without_padding(self):
        """Segments use '-' and '_' and carry no '=' padding."""
        claims = {"exp": 5, "sub": "?>?>?>?>?>?>"}
        segment = (
            base64.urlsafe_b64encode(json.dumps(claims).encode()).decode().rstrip("=")
        )
        assert "-" in segment or "_" in segment

        assert decode_token_payload(f"h.{segment}.s") == claims

    def test_undecodable_tokens(self):
        not_json = base64.b64encode(b"not-json").decode().rstrip("=")
        assert decode_token_payload(None) is None
        assert decode_token_payload("") is None
        assert decode_token_payload("single-segment") is None
        assert decode_token_payload("a.!!!.c") is None
        assert decode_token_payload(f"a.{not_json}.c") is None

    def test_non_object_payload(self):
        segment = base64.b64encode(b"[1, 2]").decode()
        assert decode_token_payload(f"a.{segment}.c") is None


class TestIsTokenExpired:
    """Expired iff exp - skew <= now."""

    def test_skew_boundary(self):
        now = 1_000_000
        assert is_token_expired(make_token(now + 61), 60, now=now) is False
        assert is_token_expired(make_token(now + 60), 60, now=now) is True
        assert is_token_expired(make_token(now + 59), 60, now=now) is True

    def test_zero_skew(self):
        now = 1_000_000
        assert is_token_expired(make_token(now + 1), 0, now=now) is False
        assert is_token_expired(make_token(now), 0, now=now) is True

    def test_missing_or_invalid_exp_counts_as_expired(self):
        assert is_token_expired(None) is True
        assert is_token_expired("garbage") is True
        assert is_token_expired(make_token(None, role="user")) is True

    def test_non_numeric_exp(self):
        segment = base64.urlsafe_b64encode(b'{"exp": "tomorrow"}').decode()
        assert is_token_expired(f"a.{segment}.c") is True

    @pytest.mark.parametrize("exp", [b"Infinity", b"-Infinity", b"NaN", b"1e400"])
    def test_non_finite_exp(self, exp):
        """JSON decoding accepts these; they still must not grant access."""
        segment = base64.urlsafe_b64encode(b'{"exp": ' + exp + b"}").decode()
        token = f"a.{segment}.c"

        assert token_expiry(token) is None
        assert is_token_expired(token) is True
        assert _token_expiry(token) == "unknown"

    def test_expiry_beyond_displayable_range(self):
        token = make_token(10**15)
        assert token_expiry(token) == 10**15
        assert _token_expiry(token) == "unknown"


class TestTokenRole:
    def test_lower_cases_role(self):
        assert token_role(make_token(10, role="VENDOR")) == "vendor"

    def test_missing_role(self):
        assert token_role(make_token(10)) is None
        assert token_role("garbage") is None


class TestFormatting:
    def test_iso_timestamp(self):
        assert iso_timestamp(1_700_000_000.5) == "2023-11-14T22:13:20.500Z"

    def test_format_timestamp_handles_missing_values(self):
        assert format_timestamp(None) == "never"
        assert format_timestamp("not a date") == "never"
        assert format_timestamp("2023-11-14T22:13:20.500Z") != "never"

    def test_retry_hint(self):
        assert format_retry_hint(0, False) == "Offline. Will sync when you're online."
        assert format_retry_hint(1500, True) == "Next retry in 2s."
        assert format_retry_hint(0, True) == "Sync will retry automatically."

    def test_format_duration(self):
        assert format_duration(3725) == "1h 2m 5s"
        assert format_duration(0) == "0s"


class TestQueueStatusLabel:
    def test_offline_labels(self):
        assert QueueStatus(online=False, pending=3).label == "Offline (3 pending)"
        assert QueueStatus(online=False).label == "Offline"

    def test_online_labels(self):
        assert QueueStatus(online=True, pending=2).label == "Syncing (2)"
        assert QueueStatus(online=True).label is None
