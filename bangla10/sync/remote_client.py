"""
Progress API Client

HTTP client used by the sync orchestrator to read and write the remote
progress document.

Usage:
    client = ProgressClient(settings.sync_url)
    snapshot = await client.fetch()
    result = await client.push(state, client_revision=snapshot.revision)

Every failure surfaces immediately as an exception; there are no retries
in this layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
from loguru import logger

from bangla10.core.errors import SyncUnavailable, TransportError

from .envelope import sanitize_state

PROGRESS_PATH = "/api/progress"


@dataclass
class RemoteSnapshot:
    """Result of reading the remote document."""

    revision: int
    updated_at: str | None
    state: dict[str, Any] | None
    backend: str | None = None


@dataclass
class PushResult:
    """Server-confirmed result of a write."""

    revision: int
    updated_at: str | None


def _to_revision(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


class ProgressClient:
    """HTTP client for the progress endpoint."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        max_state_bytes: int = 900_000,
        path: str = PROGRESS_PATH,
    ):
        self.base_url = base_url
        self.path = path
        self.max_state_bytes = max_state_bytes
        self.client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )

    async def __aenter__(self) -> "ProgressClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self.client.aclose()

    def _payload(self, response: httpx.Response, action: str) -> dict[str, Any]:
        if response.status_code in (404, 503):
            raise SyncUnavailable(
                f"{action} unavailable ({response.status_code})", status_code=response.status_code
            )
        if response.status_code >= 400:
            raise TransportError(
                f"{action} failed ({response.status_code})", status_code=response.status_code
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise TransportError(f"{action} returned malformed JSON") from e

        if not isinstance(payload, dict) or not payload.get("ok"):
            error = payload.get("error") if isinstance(payload, dict) else None
            raise TransportError(error or f"{action} failed")
        return payload

    async def fetch(self) -> RemoteSnapshot:
        """
        Read the remote progress document.

        Raises:
            SyncUnavailable: server has no storage configured (404/503)
            TransportError: any other failure
        """
        try:
            response = await self.client.get(self.path, headers={"Cache-Control": "no-store"})
        except httpx.RequestError as e:
            raise TransportError(f"Bootstrap failed: {e}") from e

        payload = self._payload(response, "Bootstrap")
        state = payload.get("state")

        snapshot = RemoteSnapshot(
            revision=_to_revision(payload.get("revision")),
            updated_at=payload.get("updatedAt") or None,
            state=state if isinstance(state, dict) else None,
            backend=payload.get("backend"),
        )
        logger.debug(
            f"Fetched remote progress: revision={snapshot.revision}, "
            f"updated_at={snapshot.updated_at}, has_state={snapshot.state is not None}"
        )
        return snapshot

    async def push(self, state: dict[str, Any], client_revision: int = 0) -> PushResult:
        """
        Write a new state document.

        Raises:
            ValidationError: state is malformed or too large (no request is made)
            SyncUnavailable: server has no storage configured
            TransportError: any other failure
        """
        body = {
            "state": sanitize_state(state, self.max_state_bytes),
            "clientRevision": _to_revision(client_revision),
        }

        try:
            response = await self.client.post(self.path, json=body)
        except httpx.RequestError as e:
            raise TransportError(f"Sync failed: {e}") from e

        payload = self._payload(response, "Sync")
        result = PushResult(
            revision=_to_revision(payload.get("revision")) or _to_revision(client_revision),
            updated_at=payload.get("updatedAt") or None,
        )
        logger.debug(f"Pushed progress: server revision={result.revision}")
        return result
