"""
Error taxonomy for a reconciliation pass.

"Remote has no artifact" is not an error: the store returns None for it.
Everything here means a pass could not complete.
"""

from __future__ import annotations

from typing import Optional


class SyncError(Exception):
    """Base class for failures that abort a reconciliation pass."""


class TransportError(SyncError):
    """The remote store could not be reached or refused the request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteAuthError(TransportError):
    """Missing, invalid or under-scoped API token."""


class RemoteRateLimitError(TransportError):
    """The remote API rate limit is exhausted."""


class RemoteTimeoutError(TransportError):
    """The remote call exceeded its timeout."""


class FilesystemError(SyncError):
    """Reading or writing the local artifact failed."""


class ConfigurationError(SyncError):
    """Settings are missing or invalid for the requested operation."""
