"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class SweepSyncError(Exception):
    """Base exception for all application-specific errors."""


class NetworkError(SweepSyncError):
    """
    Raised when a remote call fails at the transport level or connectivity is absent.
    Recoverable by retrying later.
    """


class LogicalError(SweepSyncError):
    """
    Raised when the remote service answered but rejected the request
    (validation, auth, business rules). Not retried automatically.
    """


class RemoteError(LogicalError):
    """Raised when the remote service responds with a non-success HTTP status."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.message = message
        self.status = status


class AuthExpiredError(SweepSyncError):
    """Raised when the stored token is detected as expired without contacting the API."""


class OfflineLoginError(SweepSyncError):
    """Raised when an offline login cannot be granted from the remembered accounts."""

    def __init__(self, reason: str):
        super().__init__(f"Offline login not available for this account ({reason}).")
        self.reason = reason


class PayloadValidationError(SweepSyncError):
    """Raised when a queued action's payload does not match its kind."""


class ConfigurationError(SweepSyncError):
    """Raised for issues related to configuration loading or validation."""


class StorageError(SweepSyncError):
    """Raised when the durable key-value store cannot be read or written."""


class AuthenticationError(SweepSyncError):
    """Raised when an online login is rejected or returns no usable token."""
