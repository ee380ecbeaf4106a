"""HTTP client for submitting ledger events to the SAMES API."""

from .client import SamesAuthError, SamesClient, SamesHTTPError

__all__ = ["SamesAuthError", "SamesClient", "SamesHTTPError"]
