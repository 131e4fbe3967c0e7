"""
Sync Orchestrator.

Keeps the local document and the remote progress endpoint in step:
- bootstrap: one read at startup, adopting the remote copy when it is fresher
- schedule_sync: debounced push after every local save
- perform_sync: one push at a time, with a single follow-up for edits made
  while a push was outstanding

Runs on the asyncio event loop of the caller. Failures are recorded on the
status and never raised; the document simply stays dirty until the next save.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from loguru import logger

from bangla10.core.dates import now_iso, parse_instant
from bangla10.core.errors import SyncError, SyncUnavailable
from bangla10.delivery.state_store import (
    LocalStore,
    has_meaningful_progress,
    local_freshness,
    normalize,
)

from .envelope import snapshot
from .remote_client import ProgressClient


class SyncPhase(str, Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    IN_FLIGHT = "in_flight"
    IN_FLIGHT_QUEUED = "in_flight_queued"


@dataclass
class SyncState:
    """Process-local sync bookkeeping."""

    enabled: bool = True
    can_write: bool = False
    bootstrapped: bool = False
    in_flight: bool = False
    queued: bool = False
    pending_while_disabled: bool = False
    revision: int = 0
    last_synced_at: str | None = None
    last_error: str | None = None


class SyncOrchestrator:
    """
    Debounced, single-flight sync of a LocalStore through a ProgressClient.

    Usage:
        orchestrator = SyncOrchestrator(store, client)
        await orchestrator.bootstrap()
        store.save()                 # schedules a debounced push
        await orchestrator.drain()   # before exit
    """

    def __init__(
        self,
        store: LocalStore,
        client: ProgressClient | None,
        debounce_seconds: float = 0.7,
        bootstrap_timeout: float | None = 5.0,
    ):
        self.store = store
        self.client = client
        self.debounce_seconds = debounce_seconds
        self.bootstrap_timeout = bootstrap_timeout

        meta = store.meta
        self.state = SyncState(
            enabled=client is not None,
            revision=int(meta.get("revision") or 0),
            last_synced_at=meta.get("lastSyncedAt"),
        )

        self._debounce_task: asyncio.Task | None = None
        self._bootstrap_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

        store.add_listener(self.schedule_sync)

    # =========================================================================
    # Status
    # =========================================================================

    @property
    def phase(self) -> SyncPhase:
        if self.state.in_flight:
            return SyncPhase.IN_FLIGHT_QUEUED if self.state.queued else SyncPhase.IN_FLIGHT
        if self._debounce_task is not None and not self._debounce_task.done():
            return SyncPhase.DEBOUNCING
        return SyncPhase.IDLE

    def status(self) -> dict[str, Any]:
        return {
            **asdict(self.state),
            "phase": self.phase.value,
            "dirty": self.store.is_dirty,
            "last_modified_at": self.store.meta.get("lastModifiedAt"),
        }

    # =========================================================================
    # Scheduling
    # =========================================================================

    def _spawn(self, coro) -> asyncio.Task | None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.debug("No running event loop; sync deferred to the next save")
            return None
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _cancel_debounce(self) -> None:
        if self._debounce_task is not None:
            self._debounce_task.cancel()
            self._debounce_task = None

    async def _debounced_sync(self) -> None:
        await asyncio.sleep(self.debounce_seconds)
        self._debounce_task = None
        await self.perform_sync()

    def schedule_sync(self, immediate: bool = False) -> None:
        """Request a push, restarting the debounce window unless `immediate`."""
        if not self.state.enabled:
            return
        if not self.state.can_write:
            self.state.pending_while_disabled = True
            return

        self._cancel_debounce()

        if immediate:
            self._spawn(self.perform_sync())
            return

        self._debounce_task = self._spawn(self._debounced_sync())

    async def drain(self) -> None:
        """Flush any debounced push now and wait for every sync task to finish."""
        if self._debounce_task is not None and not self._debounce_task.done():
            self._cancel_debounce()
            self._spawn(self.perform_sync())

        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                break
            await asyncio.gather(*pending, return_exceptions=True)

    # =========================================================================
    # Push
    # =========================================================================

    async def perform_sync(self) -> None:
        """Push the current document if it is dirty and nothing is in flight."""
        state = self.state
        if not state.enabled or not state.can_write or self.client is None:
            return
        if not self.store.is_dirty:
            return

        if state.in_flight:
            state.queued = True
            return

        state.in_flight = True
        state.last_error = None

        state_snapshot = snapshot(self.store.document)
        snapshot_modified = state_snapshot.get("meta", {}).get("lastModifiedAt")

        try:
            result = await self.client.push(state_snapshot, client_revision=state.revision)

            next_revision = result.revision or state.revision
            synced_at = result.updated_at or now_iso()
            state.revision = next_revision
            state.last_synced_at = synced_at

            current_modified = self.store.meta.get("lastModifiedAt")
            has_newer_changes = current_modified != snapshot_modified

            self.store.update_meta(
                revision=next_revision,
                lastModifiedAt=current_modified or snapshot_modified or synced_at,
                lastSyncedAt=synced_at,
                dirty=has_newer_changes,
            )
            logger.info(f"Progress synced (revision {next_revision})")

            if has_newer_changes:
                state.queued = True
        except SyncError as e:
            state.last_error = str(e) or "Sync failed"
            self.store.update_meta(dirty=True)
            logger.warning(f"Sync failed: {state.last_error}")
        finally:
            state.in_flight = False
            if state.queued:
                state.queued = False
                self.schedule_sync(immediate=True)

    # =========================================================================
    # Bootstrap
    # =========================================================================

    def start_bootstrap(self) -> asyncio.Task | None:
        """Run `bootstrap` in the background; `drain` waits for it."""
        if self._bootstrap_task is None:
            self._bootstrap_task = self._spawn(self.bootstrap())
        return self._bootstrap_task

    async def bootstrap(self) -> None:
        """
        Read the remote document once and reconcile it with local state.

        Remote wins only when local is clean and remote is strictly fresher
        (or equally fresh with a higher revision). Saves made before this
        finishes are held and flushed at the end.
        """
        state = self.state
        if state.bootstrapped or not state.enabled or self.client is None:
            return

        try:
            remote = await asyncio.wait_for(self.client.fetch(), timeout=self.bootstrap_timeout)
        except SyncUnavailable as e:
            state.enabled = False
            state.can_write = False
            state.bootstrapped = True
            logger.info(f"Remote sync unavailable, running local-only: {e}")
            return
        except asyncio.TimeoutError:
            self._bootstrap_failed(f"Bootstrap timed out after {self.bootstrap_timeout:g}s")
            return
        except SyncError as e:
            self._bootstrap_failed(str(e) or "Bootstrap failed")
            return

        state.can_write = True
        state.bootstrapped = True
        state.revision = remote.revision
        state.last_synced_at = remote.updated_at

        remote_state = normalize(remote.state) if remote.state is not None else None

        if remote_state is not None:
            self._reconcile(remote_state, remote.revision, remote.updated_at)
        elif has_meaningful_progress(self.store.document):
            logger.info("Remote is empty; uploading local progress")
            self.store.update_meta(dirty=True)
            self.schedule_sync(immediate=True)

        self._release_pending()

    def _reconcile(self, remote_state: dict[str, Any], remote_revision: int, remote_updated_at: str | None) -> None:
        meta = self.store.meta
        local_dirty = bool(meta.get("dirty"))
        local_revision = int(meta.get("revision") or 0)

        local_fresh = local_freshness(self.store.document)
        remote_fresh = parse_instant(remote_updated_at) or local_freshness(remote_state)

        use_remote = not local_dirty and (
            remote_fresh > local_fresh
            or (remote_fresh == local_fresh and remote_revision > local_revision)
        )

        if use_remote:
            remote_modified = remote_state["meta"].get("lastModifiedAt")
            self.store.replace(remote_state)
            self.store.update_meta(
                revision=remote_revision,
                lastModifiedAt=remote_modified or remote_updated_at or now_iso(),
                lastSyncedAt=remote_updated_at or now_iso(),
                dirty=False,
            )
            logger.info(f"Adopted remote progress (revision {remote_revision})")
            return

        self.store.update_meta(
            revision=max(local_revision, remote_revision),
            lastSyncedAt=remote_updated_at or meta.get("lastSyncedAt"),
            dirty=local_dirty,
        )
        logger.debug(
            f"Kept local progress (dirty={local_dirty}, local={local_fresh}, remote={remote_fresh})"
        )
        if local_dirty:
            self.schedule_sync(immediate=True)

    def _release_pending(self) -> None:
        if self.state.pending_while_disabled:
            self.state.pending_while_disabled = False
            self.schedule_sync(immediate=True)

    def _bootstrap_failed(self, message: str) -> None:
        state = self.state
        state.can_write = True
        state.bootstrapped = True
        state.last_error = message
        logger.warning(f"Sync bootstrap failed: {message}")
        self._release_pending()
