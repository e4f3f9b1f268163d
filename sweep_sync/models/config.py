"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_API_BASE = "https://civicsweep-api.onrender.com"


class SyncConfig(BaseModel):
    """A validated configuration model for the sync engine."""

    model_config = ConfigDict(validate_assignment=True, str_strip_whitespace=True)

    # Remote service
    api_base: str = DEFAULT_API_BASE
    request_timeout_s: float = 30.0
    connect_timeout_s: float = 10.0

    # Read cache
    cache_max_age_ms: int = 10 * 60 * 1000

    # Retry queue backoff
    backoff_base_ms: int = 2000
    backoff_cap_ms: int = 60000
    backoff_jitter_ms: int = 400
    max_retry_exponent: int = 6
    offline_notice_interval_s: float = 15.0

    # Offline authentication
    max_offline_accounts: int = 5
    token_skew_s: int = 60

    # Connectivity probing
    probe_interval_s: float = 15.0

    # Logging
    structured_log: bool = False

    # Internal fields not loaded from INI file
    config_path: str = Field("", repr=False)

    @field_validator("api_base")
    @classmethod
    def validate_api_base(cls, v: str) -> str:
        """Requires an absolute http(s) URL and drops any trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("API base must be an absolute http(s) URL.")
        return v.rstrip("/")

    @field_validator(
        "cache_max_age_ms",
        "backoff_base_ms",
        "backoff_cap_ms",
        "max_offline_accounts",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Value must be greater than zero.")
        return v

    @field_validator("backoff_jitter_ms", "max_retry_exponent", "token_skew_s")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Value cannot be negative.")
        return v

    @field_validator(
        "request_timeout_s",
        "connect_timeout_s",
        "offline_notice_interval_s",
        "probe_interval_s",
    )
    @classmethod
    def validate_seconds(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Durations must be greater than zero.")
        return v

    @model_validator(mode="after")
    def validate_backoff_window(self) -> "SyncConfig":
        """Checks that the backoff cap is not below the base delay."""
        if self.backoff_cap_ms < self.backoff_base_ms:
            raise ValueError("backoff_cap_ms cannot be smaller than backoff_base_ms.")
        return self

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
