"""API routers for the bangla10 progress service."""

from bangla10.api.routers import progress_router

__all__ = [
    "progress_router",
]
