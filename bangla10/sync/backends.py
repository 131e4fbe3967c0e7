"""
Progress Storage Backends.

Two interchangeable adapters persist the progress envelope:
- KvBackend: Redis over REST (GET/SET a single key)
- BlobBackend: blob store object at a fixed pathname

Both overwrite unconditionally and never retry; conflict resolution is
entirely client-side. The first configured backend wins.
"""

from __future__ import annotations

import json
from typing import Any, Protocol

import httpx
from loguru import logger

from bangla10.config import Settings
from bangla10.core.errors import TransportError

from .envelope import Envelope, decode


class StorageBackend(Protocol):
    """Read/write contract shared by every backend."""

    name: str

    async def read_envelope(self) -> Envelope | None:
        """Return the stored envelope, or None when nothing is stored yet."""
        ...

    async def write_envelope(self, envelope: Envelope) -> None:
        ...

    async def close(self) -> None:
        ...


# =============================================================================
# KV (Redis REST)
# =============================================================================


class KvBackend:
    """Envelope stored as JSON text under one Redis key."""

    name = "kv"

    def __init__(self, url: str, token: str, key: str, timeout: float = 30.0):
        self.url = url
        self.key = key
        self.client = httpx.AsyncClient(
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def run_command(self, command: list[str]) -> Any:
        """
        Execute one Redis command.

        Raises:
            TransportError: on connection failure, non-2xx, or an error payload
        """
        try:
            response = await self.client.post(self.url, json=command)
        except httpx.RequestError as e:
            raise TransportError(f"KV request failed: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        if response.status_code >= 400 or payload.get("error"):
            detail = payload.get("error") or f"KV request failed ({response.status_code})"
            raise TransportError(str(detail), status_code=response.status_code)

        return payload.get("result")

    async def read_envelope(self) -> Envelope | None:
        raw = await self.run_command(["GET", self.key])
        return decode(raw)

    async def write_envelope(self, envelope: Envelope) -> None:
        await self.run_command(["SET", self.key, envelope.to_json()])
        logger.debug(f"KV envelope written (revision={envelope.revision})")


# =============================================================================
# Blob Store
# =============================================================================


class BlobBackend:
    """Envelope stored as a public JSON object at a fixed pathname."""

    name = "blob"

    def __init__(self, api_url: str, token: str, pathname: str, timeout: float = 30.0):
        self.pathname = pathname
        self.client = httpx.AsyncClient(
            base_url=api_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
        )
        # Public object URLs are fetched without the read-write token
        self.download_client = httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self.client.aclose()
        await self.download_client.aclose()

    async def _find_url(self) -> str | None:
        try:
            response = await self.client.get("/", params={"prefix": self.pathname, "limit": 5})
        except httpx.RequestError as e:
            raise TransportError(f"Blob list failed: {e}") from e
        if response.status_code >= 400:
            raise TransportError(
                f"Blob list failed ({response.status_code})", status_code=response.status_code
            )

        try:
            blobs = response.json().get("blobs", [])
        except (ValueError, AttributeError) as e:
            raise TransportError("Blob list returned malformed JSON") from e

        for blob in blobs:
            if blob.get("pathname") == self.pathname:
                return blob.get("url")
        return None

    async def read_envelope(self) -> Envelope | None:
        url = await self._find_url()
        if not url:
            return None

        try:
            response = await self.download_client.get(url, headers={"Cache-Control": "no-store"})
        except httpx.RequestError as e:
            raise TransportError(f"Blob read failed: {e}") from e
        if response.status_code >= 400:
            raise TransportError(
                f"Blob read failed ({response.status_code})", status_code=response.status_code
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise TransportError("Blob read returned malformed JSON") from e
        return decode(payload)

    async def write_envelope(self, envelope: Envelope) -> None:
        try:
            response = await self.client.put(
                f"/{self.pathname}",
                content=json.dumps(envelope.to_dict(), ensure_ascii=False).encode("utf-8"),
                headers={
                    "x-content-type": "application/json; charset=utf-8",
                    "x-add-random-suffix": "0",
                    "x-allow-overwrite": "1",
                    "x-cache-control-max-age": "0",
                    "access": "public",
                },
            )
        except httpx.RequestError as e:
            raise TransportError(f"Blob write failed: {e}") from e
        if response.status_code >= 400:
            raise TransportError(
                f"Blob write failed ({response.status_code})", status_code=response.status_code
            )
        logger.debug(f"Blob envelope written (revision={envelope.revision})")


def resolve_backend(settings: Settings) -> StorageBackend | None:
    """
    Pick the first configured backend.

    Returns:
        KvBackend when a KV URL and token are set, else BlobBackend when a
        blob token is set, else None (remote storage is off).
    """
    if settings.has_kv_configured():
        return KvBackend(
            settings.kv_rest_api_url,
            settings.kv_rest_api_token,
            settings.progress_key,
            timeout=settings.sync_timeout_seconds,
        )
    if settings.has_blob_configured():
        return BlobBackend(
            settings.blob_api_url,
            settings.blob_read_write_token,
            settings.progress_blob_path,
            timeout=settings.sync_timeout_seconds,
        )
    logger.warning("No progress storage configured; remote sync is disabled")
    return None
