"""
Unit tests for the sync orchestrator: debounce, single-flight pushes and
bootstrap reconciliation.
"""

import asyncio

import pytest

from bangla10.core.errors import SyncUnavailable, TransportError
from bangla10.delivery.state_store import normalize
from bangla10.sync.envelope import sanitize_state
from bangla10.sync.orchestrator import SyncOrchestrator, SyncPhase
from bangla10.sync.remote_client import PushResult, RemoteSnapshot

T1 = "2026-05-01T10:00:00.000Z"
T2 = "2026-05-02T10:00:00.000Z"
DEBOUNCE = 0.01


class FakeClient:
    """Stands in for ProgressClient; optionally holds pushes until released."""

    def __init__(self, remote=None, fetch_error=None, push_error=None, max_state_bytes=900_000):
        self.remote = remote or RemoteSnapshot(revision=0, updated_at=None, state=None)
        self.fetch_error = fetch_error
        self.push_error = push_error
        self.max_state_bytes = max_state_bytes
        self.revision = self.remote.revision
        self.fetches = 0
        self.pushes = []
        self.client_revisions = []
        self.gate: asyncio.Event | None = None
        self.fetch_gate: asyncio.Event | None = None

    async def fetch(self):
        self.fetches += 1
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        if self.fetch_error:
            raise self.fetch_error
        return self.remote

    async def push(self, state, client_revision=0):
        state = sanitize_state(state, self.max_state_bytes)
        self.pushes.append(state)
        self.client_revisions.append(client_revision)
        if self.gate is not None:
            await self.gate.wait()
        if self.push_error:
            raise self.push_error
        self.revision += 1
        return PushResult(revision=self.revision, updated_at=f"2026-05-10T00:00:{self.revision:02d}.000Z")

    async def close(self):
        pass


def _seed(store, **meta):
    store.replace({"meta": meta, "stats": {"totalSessions": 1}})


async def _settle(seconds=DEBOUNCE * 5):
    await asyncio.sleep(seconds)


class TestPerformSync:
    """Tests for pushing local changes."""

    @pytest.mark.asyncio
    async def test_clean_store_makes_no_request(self, store):
        client = FakeClient()
        orchestrator = SyncOrchestrator(store, client, DEBOUNCE)
        await orchestrator.bootstrap()

        await orchestrator.perform_sync()
        await orchestrator.perform_sync()

        assert client.pushes == []

    @pytest.mark.asyncio
    async def test_save_pushes_after_debounce(self, store):
        client = FakeClient()
        orchestrator = SyncOrchestrator(store, client, DEBOUNCE)
        await orchestrator.bootstrap()

        store.stats["totalSessions"] = 1
        store.save()
        assert orchestrator.phase == SyncPhase.DEBOUNCING

        await _settle()

        assert len(client.pushes) == 1
        assert store.is_dirty is False
        assert store.meta["revision"] == 1
        assert store.meta["lastSyncedAt"] == "2026-05-10T00:00:01.000Z"
        assert orchestrator.state.revision == 1
        assert orchestrator.phase == SyncPhase.IDLE

    @pytest.mark.asyncio
    async def test_rapid_saves_coalesce_into_one_push(self, store):
        client = FakeClient()
        orchestrator = SyncOrchestrator(store, client, DEBOUNCE)
        await orchestrator.bootstrap()

        for n in range(5):
            store.stats["totalMinutes"] = n
            store.save()

        await _settle()
        await orchestrator.drain()

        assert len(client.pushes) == 1
        assert client.pushes[0]["stats"]["totalMinutes"] == 4

    @pytest.mark.asyncio
    async def test_edits_during_push_get_one_follow_up(self, store):
        """N saves while a push is outstanding lead to exactly one more push."""
        client = FakeClient()
        orchestrator = SyncOrchestrator(store, client, DEBOUNCE)
        await orchestrator.bootstrap()

        client.gate = asyncio.Event()
        store.stats["totalSessions"] = 1
        store.save()
        await _settle()
        assert orchestrator.phase == SyncPhase.IN_FLIGHT

        for n in range(2, 7):
            store.stats["totalSessions"] = n
            store.save()
        await _settle()
        assert orchestrator.phase == SyncPhase.IN_FLIGHT_QUEUED

        client.gate.set()
        await orchestrator.drain()

        assert len(client.pushes) == 2
        assert client.pushes[0]["stats"]["totalSessions"] == 1
        assert client.pushes[1]["stats"]["totalSessions"] == 6
        assert client.client_revisions == [0, 1]
        assert store.is_dirty is False
        assert store.meta["revision"] == 2

    @pytest.mark.asyncio
    async def test_pushed_snapshot_is_isolated(self, store):
        client = FakeClient()
        orchestrator = SyncOrchestrator(store, client, DEBOUNCE)
        await orchestrator.bootstrap()

        client.gate = asyncio.Event()
        store.phrases["p01"] = {"box": 1}
        store.save()
        await _settle()

        store.phrases["p01"]["box"] = 5

        assert client.pushes[0]["phrases"]["p01"]["box"] == 1
        client.gate.set()
        await orchestrator.drain()

    @pytest.mark.asyncio
    async def test_failure_records_error_and_stays_dirty(self, store):
        client = FakeClient(push_error=TransportError("Sync failed (500)", status_code=500))
        orchestrator = SyncOrchestrator(store, client, DEBOUNCE)
        await orchestrator.bootstrap()

        store.save()
        await _settle()
        await orchestrator.drain()

        assert len(client.pushes) == 1
        assert orchestrator.state.last_error == "Sync failed (500)"
        assert orchestrator.state.in_flight is False
        assert store.is_dirty is True
        assert store.load()["meta"]["dirty"] is True

    @pytest.mark.asyncio
    async def test_next_save_rearms_after_failure(self, store):
        client = FakeClient(push_error=TransportError("down"))
        orchestrator = SyncOrchestrator(store, client, DEBOUNCE)
        await orchestrator.bootstrap()

        store.save()
        await orchestrator.drain()
        client.push_error = None
        store.save()
        await orchestrator.drain()

        assert len(client.pushes) == 2
        assert orchestrator.state.last_error is None
        assert store.is_dirty is False

    @pytest.mark.asyncio
    async def test_oversized_state_is_rejected_before_write(self, store):
        client = FakeClient(max_state_bytes=200)
        orchestrator = SyncOrchestrator(store, client, DEBOUNCE)
        await orchestrator.bootstrap()

        store.phrases.update({f"p{i:03d}": {"box": 1} for i in range(50)})
        store.save()
        await orchestrator.drain()

        assert client.pushes == []
        assert "too large" in orchestrator.state.last_error
        assert store.is_dirty is True


class TestBootstrap:
    """Tests for startup reconciliation."""

    @pytest.mark.asyncio
    async def test_fresher_remote_is_adopted(self, store):
        _seed(store, revision=3, lastModifiedAt=T1, dirty=False)
        remote_state = normalize({"stats": {"totalSessions": 9}, "meta": {"lastModifiedAt": T2}})
        client = FakeClient(RemoteSnapshot(revision=5, updated_at=T2, state=remote_state))
        orchestrator = SyncOrchestrator(store, client, DEBOUNCE)

        await orchestrator.bootstrap()
        await orchestrator.drain()

        assert store.stats["totalSessions"] == 9
        assert store.meta["revision"] == 5
        assert store.meta["lastSyncedAt"] == T2
        assert store.is_dirty is False
        assert client.pushes == []
        assert store.load()["stats"]["totalSessions"] == 9

    @pytest.mark.asyncio
    async def test_dirty_local_is_kept_and_flushed(self, store):
        _seed(store, revision=3, lastModifiedAt=T1, dirty=True)
        remote_state = normalize({"stats": {"totalSessions": 9}})
        client = FakeClient(RemoteSnapshot(revision=5, updated_at=T2, state=remote_state))
        orchestrator = SyncOrchestrator(store, client, DEBOUNCE)

        await orchestrator.bootstrap()
        assert store.stats["totalSessions"] == 1
        assert store.meta["revision"] == 5

        await orchestrator.drain()

        assert len(client.pushes) == 1
        assert client.pushes[0]["stats"]["totalSessions"] == 1
        assert store.is_dirty is False
        assert store.meta["revision"] == 6

    @pytest.mark.asyncio
    async def test_fresher_local_is_kept(self, store):
        _seed(store, revision=2, lastModifiedAt=T2, dirty=False)
        client = FakeClient(RemoteSnapshot(revision=4, updated_at=T1, state=normalize({})))
        orchestrator = SyncOrchestrator(store, client, DEBOUNCE)

        await orchestrator.bootstrap()
        await orchestrator.drain()

        assert store.stats["totalSessions"] == 1
        assert store.meta["revision"] == 4
        assert store.meta["lastSyncedAt"] == T1
        assert client.pushes == []

    @pytest.mark.asyncio
    async def test_equal_freshness_higher_remote_revision_wins(self, store):
        _seed(store, revision=2, lastModifiedAt=T1, dirty=False)
        remote_state = normalize({"stats": {"totalSessions": 4}})
        client = FakeClient(RemoteSnapshot(revision=3, updated_at=T1, state=remote_state))
        orchestrator = SyncOrchestrator(store, client, DEBOUNCE)

        await orchestrator.bootstrap()

        assert store.stats["totalSessions"] == 4
        assert store.meta["revision"] == 3

    @pytest.mark.asyncio
    async def test_remote_freshness_falls_back_to_document(self, store):
        """Without updatedAt the remote document's own timestamps are used."""
        _seed(store, revision=1, lastModifiedAt=T1, dirty=False)
        remote_state = normalize({"stats": {"totalSessions": 7}, "meta": {"lastModifiedAt": T2}})
        client = FakeClient(RemoteSnapshot(revision=2, updated_at=None, state=remote_state))
        orchestrator = SyncOrchestrator(store, client, DEBOUNCE)

        await orchestrator.bootstrap()

        assert store.stats["totalSessions"] == 7
        assert store.meta["lastModifiedAt"] == T2

    @pytest.mark.asyncio
    async def test_empty_remote_receives_local_progress(self, store):
        _seed(store, revision=0, lastModifiedAt=T1, dirty=False)
        client = FakeClient()
        orchestrator = SyncOrchestrator(store, client, DEBOUNCE)

        await orchestrator.bootstrap()
        await orchestrator.drain()

        assert len(client.pushes) == 1
        assert store.meta["revision"] == 1
        assert store.is_dirty is False

    @pytest.mark.asyncio
    async def test_empty_remote_and_empty_local_does_nothing(self, store):
        client = FakeClient()
        orchestrator = SyncOrchestrator(store, client, DEBOUNCE)

        await orchestrator.bootstrap()
        await orchestrator.drain()

        assert client.pushes == []
        assert orchestrator.state.can_write is True

    @pytest.mark.asyncio
    async def test_unavailable_server_disables_sync(self, store):
        client = FakeClient(fetch_error=SyncUnavailable("Bootstrap unavailable (503)", status_code=503))
        orchestrator = SyncOrchestrator(store, client, DEBOUNCE)

        await orchestrator.bootstrap()
        store.save()
        await orchestrator.drain()

        status = orchestrator.status()
        assert status["enabled"] is False
        assert status["can_write"] is False
        assert status["bootstrapped"] is True
        assert client.pushes == []

    @pytest.mark.asyncio
    async def test_bootstrap_failure_still_allows_writes(self, store):
        client = FakeClient(fetch_error=TransportError("Bootstrap failed (500)"))
        orchestrator = SyncOrchestrator(store, client, DEBOUNCE)

        await orchestrator.bootstrap()
        assert orchestrator.state.can_write is True
        assert orchestrator.state.last_error == "Bootstrap failed (500)"

        store.save()
        await orchestrator.drain()

        assert len(client.pushes) == 1

    @pytest.mark.asyncio
    async def test_saves_before_bootstrap_are_flushed_after(self, store):
        client = FakeClient()
        orchestrator = SyncOrchestrator(store, client, DEBOUNCE)

        store.stats["totalSessions"] = 3
        store.save()
        assert orchestrator.state.pending_while_disabled is True
        assert client.pushes == []

        await orchestrator.bootstrap()
        await orchestrator.drain()

        assert orchestrator.state.pending_while_disabled is False
        assert len(client.pushes) == 1

    @pytest.mark.asyncio
    async def test_bootstrap_runs_once(self, store):
        client = FakeClient()
        orchestrator = SyncOrchestrator(store, client, DEBOUNCE)

        await orchestrator.bootstrap()
        await orchestrator.bootstrap()

        assert client.fetches == 1

    @pytest.mark.asyncio
    async def test_without_client_sync_is_off(self, store):
        orchestrator = SyncOrchestrator(store, None, DEBOUNCE)

        await orchestrator.bootstrap()
        store.save()
        await orchestrator.drain()

        assert orchestrator.status()["enabled"] is False
        assert orchestrator.phase == SyncPhase.IDLE


class TestBackgroundBootstrap:
    """Tests for bootstrap running alongside local work."""

    @pytest.mark.asyncio
    async def test_local_work_proceeds_while_fetch_is_pending(self, store):
        client = FakeClient()
        client.fetch_gate = asyncio.Event()
        orchestrator = SyncOrchestrator(store, client, DEBOUNCE)

        task = orchestrator.start_bootstrap()
        await asyncio.sleep(0)

        store.stats["totalSessions"] = 1
        store.save()
        assert task is not None and not task.done()
        assert orchestrator.state.pending_while_disabled is True
        assert client.pushes == []

        client.fetch_gate.set()
        await orchestrator.drain()

        assert orchestrator.state.bootstrapped is True
        assert len(client.pushes) == 1
        assert store.is_dirty is False

    @pytest.mark.asyncio
    async def test_start_bootstrap_is_single(self, store):
        client = FakeClient()
        orchestrator = SyncOrchestrator(store, client, DEBOUNCE)

        first = orchestrator.start_bootstrap()
        second = orchestrator.start_bootstrap()
        await orchestrator.drain()

        assert first is second
        assert client.fetches == 1

    @pytest.mark.asyncio
    async def test_hanging_fetch_times_out(self, store):
        client = FakeClient()
        client.fetch_gate = asyncio.Event()
        orchestrator = SyncOrchestrator(store, client, DEBOUNCE, bootstrap_timeout=0.05)

        orchestrator.start_bootstrap()
        await orchestrator.drain()

        assert orchestrator.state.bootstrapped is True
        assert orchestrator.state.can_write is True
        assert "timed out" in orchestrator.state.last_error

        store.save()
        await orchestrator.drain()

        assert len(client.pushes) == 1
