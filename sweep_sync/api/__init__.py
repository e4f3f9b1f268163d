"""
Remote API Layer.

This package handles all communication with the report-tracking service,
including authentication and the offline cache fallback for reads.
"""

from .auth import Authenticator
from .client import CallResult, NetworkGateway, classify_error

__all__ = ["Authenticator", "CallResult", "NetworkGateway", "classify_error"]
