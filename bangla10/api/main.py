"""
FastAPI application for the bangla10 progress service.

Provides REST API for:
- Reading the learner's stored progress
- Storing a new progress revision
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from bangla10.config import get_settings

settings = get_settings()


def _storage_backend_name() -> str:
    if settings.has_kv_configured():
        return "kv"
    if settings.has_blob_configured():
        return "blob"
    return "not_configured"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    logger.info("Starting bangla10 progress service...")
    logger.info(f"Progress storage: {_storage_backend_name()}")

    yield

    logger.info("Shutting down bangla10 progress service...")


app = FastAPI(
    title="Bangla10 Progress",
    description="""
    Progress storage for the Bangla10 trainer.

    ## Data Flow

    ```
    Trainer (local SQLite slot)
        ↓ POST /api/progress (debounced)
    Progress service (revision bump)
        ↓
    KV (Redis REST) or Blob store
    ```
    """,
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


# ========================================
# Health & Status Endpoints
# ========================================


@app.get("/", tags=["Health"])
def root() -> dict[str, str]:
    """Root endpoint returning service info."""
    return {
        "service": "bangla10-progress",
        "version": "0.1.0",
        "status": "ok",
    }


@app.get("/health", tags=["Health"])
def health_check() -> dict[str, Any]:
    """Service health and storage configuration."""
    backend = _storage_backend_name()
    return {
        "status": "healthy" if backend != "not_configured" else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {
            "storage": backend,
        },
        "config": {
            "max_state_bytes": settings.max_state_bytes,
        },
    }


# ========================================
# Import and mount routers
# ========================================

from bangla10.api.routers import progress_router  # noqa: E402

app.include_router(progress_router.router, prefix="/api/progress", tags=["Progress"])
