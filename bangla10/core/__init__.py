"""
Core Module - shared building blocks.

Components:
- errors: SyncError taxonomy
- dates: ISO calendar helpers
- context: TrainerContext wiring store, planner and sync together
"""

from bangla10.core.errors import (
    ShapeError,
    SyncError,
    SyncUnavailable,
    TransportError,
    ValidationError,
)

__all__ = [
    "SyncError",
    "ValidationError",
    "TransportError",
    "SyncUnavailable",
    "ShapeError",
]
