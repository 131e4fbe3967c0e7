"""
Progress API Router.

Single resource holding the learner's whole progress document:
- GET  /api/progress  current envelope
- POST /api/progress  store a new state, server bumps the revision

Errors are answered as `{"ok": false, "error": "..."}` so every client can
read them the same way as successful payloads.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, Field

from bangla10.config import get_settings
from bangla10.core.errors import SyncUnavailable, TransportError, ValidationError
from bangla10.sync.backends import resolve_backend
from bangla10.sync.progress_service import ProgressService

router = APIRouter()

NO_STORE = {"Cache-Control": "no-store"}


# ========================================
# Request/Response Models
# ========================================


class ProgressReadResponse(BaseModel):
    """Response model for reading progress."""

    ok: bool = True
    enabled: bool = True
    backend: str
    revision: int = 0
    updatedAt: str | None = None
    state: dict[str, Any] | None = None


class ProgressWriteResponse(BaseModel):
    """Response model for a stored write."""

    ok: bool = True
    backend: str
    revision: int = Field(..., ge=1)
    updatedAt: str


# ========================================
# Dependencies
# ========================================


async def get_progress_service() -> AsyncIterator[ProgressService]:
    """Per-request service bound to the first configured backend."""
    settings = get_settings()
    backend = resolve_backend(settings)
    service = ProgressService(backend, max_state_bytes=settings.max_state_bytes)
    try:
        yield service
    finally:
        if backend is not None:
            await backend.close()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": message}, headers=NO_STORE)


# ========================================
# Progress Endpoints
# ========================================


@router.get("", response_model=ProgressReadResponse, summary="Read stored progress")
async def read_progress(service: ProgressService = Depends(get_progress_service)) -> Any:
    """
    Return the stored progress envelope.

    **Response:**
    - `revision` (int): 0 when nothing is stored yet
    - `updatedAt` (str | null): when the stored revision was written
    - `state` (object | null): the progress document

    503 when no storage backend is configured, 502 when the backend fails.
    """
    try:
        payload = await service.read()
    except SyncUnavailable as e:
        return _error(503, str(e))
    except TransportError as e:
        logger.warning(f"Progress read failed: {e}")
        return _error(502, str(e) or "Failed to read progress")

    return JSONResponse(content=ProgressReadResponse(**payload).model_dump(), headers=NO_STORE)


@router.post("", response_model=ProgressWriteResponse, summary="Store progress")
async def write_progress(
    body: Any = Body(None),
    service: ProgressService = Depends(get_progress_service),
) -> Any:
    """
    Store a new progress state.

    **Request Body:**
    - `state` (object): full progress document
    - `clientRevision` (int): revision the client last saw (informational)

    The stored revision is always the current one plus one.
    400 on an invalid or oversized state, or when the backend fails.
    """
    try:
        payload = await service.write(body)
    except SyncUnavailable as e:
        return _error(503, str(e))
    except (ValidationError, TransportError) as e:
        logger.warning(f"Progress write rejected: {e}")
        return _error(400, str(e) or "Failed to save progress")

    return JSONResponse(content=ProgressWriteResponse(**payload).model_dump(), headers=NO_STORE)
