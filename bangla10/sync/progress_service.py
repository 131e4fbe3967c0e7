"""
Progress Service.

Server-side handling of the progress document:
- read: current envelope as a response payload
- write: validate, read-before-write, bump the revision, stamp meta, store

The server's revision is authoritative; the client's `clientRevision` is
accepted for logging only.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from bangla10.core.errors import SyncUnavailable, ValidationError

from .backends import StorageBackend
from .envelope import encode, sanitize_state


class ProgressService:
    """Wraps a storage backend with the progress read/write protocol."""

    def __init__(self, backend: StorageBackend | None, max_state_bytes: int = 900_000):
        self.backend = backend
        self.max_state_bytes = max_state_bytes

    @property
    def enabled(self) -> bool:
        return self.backend is not None

    def _require_backend(self) -> StorageBackend:
        if self.backend is None:
            raise SyncUnavailable(
                "No server storage configured. Set KV_REST_API_URL/KV_REST_API_TOKEN "
                "or BLOB_READ_WRITE_TOKEN.",
                status_code=503,
            )
        return self.backend

    async def read(self) -> dict[str, Any]:
        """
        Current progress as a response payload.

        Raises:
            SyncUnavailable: if no backend is configured
            TransportError: if the backend read fails
        """
        backend = self._require_backend()
        envelope = await backend.read_envelope()

        if envelope is None:
            return {
                "ok": True,
                "enabled": True,
                "backend": backend.name,
                "revision": 0,
                "updatedAt": None,
                "state": None,
            }

        return {
            "ok": True,
            "enabled": True,
            "backend": backend.name,
            "revision": envelope.revision,
            "updatedAt": envelope.updated_at,
            "state": envelope.state,
        }

    async def write(self, body: Any) -> dict[str, Any]:
        """
        Store a new state with the next revision.

        Args:
            body: Request body `{"state": {...}, "clientRevision": n}`

        Raises:
            SyncUnavailable: if no backend is configured
            ValidationError: if the state is malformed or too large
            TransportError: if the backend read or write fails
        """
        backend = self._require_backend()
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object")

        next_state = sanitize_state(body.get("state"), self.max_state_bytes)

        current = await backend.read_envelope()
        next_revision = (current.revision if current else 0) + 1

        envelope = encode(next_revision, next_state)
        meta = next_state.get("meta") if isinstance(next_state.get("meta"), dict) else {}
        next_state["meta"] = {
            **meta,
            "revision": next_revision,
            "lastSyncedAt": envelope.updated_at,
            "dirty": False,
        }

        await backend.write_envelope(envelope)
        logger.info(
            f"Progress stored in {backend.name}: revision {next_revision} "
            f"(client had {body.get('clientRevision')})"
        )

        return {
            "ok": True,
            "backend": backend.name,
            "revision": next_revision,
            "updatedAt": envelope.updated_at,
        }
