"""
Error taxonomy for state validation and remote sync.

- ValidationError: malformed or oversized state, raised before any I/O
- TransportError: network or backend failure
- SyncUnavailable: the remote reports that no storage is configured
- ShapeError: corrupt persisted or remote envelope
"""
from __future__ import annotations


class SyncError(Exception):
    """Base class for sync and state errors."""


class ValidationError(SyncError):
    """State payload rejected before any network call."""


class TransportError(SyncError):
    """Network, non-2xx, or malformed backend response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SyncUnavailable(TransportError):
    """The progress endpoint exists but has no storage configured (404/503)."""


class ShapeError(SyncError):
    """Envelope does not have the expected revision/state shape."""
