from __future__ import annotations


class SamesError(Exception):
    """Base error carrying the HTTP status it maps to."""

    status_code = 500


class InvalidRequestError(SamesError):
    """Raised when client input is missing or malformed."""

    status_code = 400


class AuthError(SamesError):
    """Raised when a signed request cannot be authorized."""

    status_code = 401


class StorageError(SamesError):
    """Raised when the backing store fails."""

    status_code = 500
