"""
Unit tests for the progress API client.
"""

import pytest
import pytest_asyncio
from httpx import ConnectError, Request, Response

from bangla10.core.errors import SyncUnavailable, TransportError, ValidationError
from bangla10.sync.remote_client import ProgressClient

BASE_URL = "http://progress.test"


@pytest_asyncio.fixture
async def client():
    """Progress client instance."""
    client = ProgressClient(BASE_URL, timeout=5, max_state_bytes=500)
    yield client
    await client.close()


class TestFetch:
    """Tests for reading remote progress."""

    @pytest.mark.asyncio
    async def test_fetch_success(self, client, monkeypatch):
        async def mock_get(url, **kwargs):
            payload = {
                "ok": True,
                "backend": "kv",
                "revision": 5,
                "updatedAt": "2026-05-01T10:00:00.000Z",
                "state": {"stats": {"totalSessions": 2}},
            }
            return Response(200, json=payload, request=Request("GET", url))

        monkeypatch.setattr(client.client, "get", mock_get)

        snapshot = await client.fetch()

        assert snapshot.revision == 5
        assert snapshot.updated_at == "2026-05-01T10:00:00.000Z"
        assert snapshot.state == {"stats": {"totalSessions": 2}}
        assert snapshot.backend == "kv"

    @pytest.mark.asyncio
    async def test_fetch_empty_remote(self, client, monkeypatch):
        async def mock_get(url, **kwargs):
            payload = {"ok": True, "revision": 0, "updatedAt": None, "state": None}
            return Response(200, json=payload, request=Request("GET", url))

        monkeypatch.setattr(client.client, "get", mock_get)

        snapshot = await client.fetch()

        assert snapshot.revision == 0
        assert snapshot.state is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [404, 503])
    async def test_unconfigured_server_is_unavailable(self, client, monkeypatch, status):
        async def mock_get(url, **kwargs):
            return Response(status, json={"ok": False, "error": "no storage"}, request=Request("GET", url))

        monkeypatch.setattr(client.client, "get", mock_get)

        with pytest.raises(SyncUnavailable):
            await client.fetch()

    @pytest.mark.asyncio
    async def test_server_error_is_transport_error(self, client, monkeypatch):
        async def mock_get(url, **kwargs):
            return Response(502, json={"ok": False}, request=Request("GET", url))

        monkeypatch.setattr(client.client, "get", mock_get)

        with pytest.raises(TransportError) as exc_info:
            await client.fetch()
        assert not isinstance(exc_info.value, SyncUnavailable)
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_not_ok_payload(self, client, monkeypatch):
        async def mock_get(url, **kwargs):
            return Response(200, json={"ok": False, "error": "broken"}, request=Request("GET", url))

        monkeypatch.setattr(client.client, "get", mock_get)

        with pytest.raises(TransportError, match="broken"):
            await client.fetch()

    @pytest.mark.asyncio
    async def test_malformed_json(self, client, monkeypatch):
        async def mock_get(url, **kwargs):
            return Response(200, text="<html>", request=Request("GET", url))

        monkeypatch.setattr(client.client, "get", mock_get)

        with pytest.raises(TransportError):
            await client.fetch()

    @pytest.mark.asyncio
    async def test_network_failure(self, client, monkeypatch):
        async def mock_get(url, **kwargs):
            raise ConnectError("refused")

        monkeypatch.setattr(client.client, "get", mock_get)

        with pytest.raises(TransportError):
            await client.fetch()


class TestPush:
    """Tests for writing progress."""

    @pytest.mark.asyncio
    async def test_push_success(self, client, monkeypatch):
        sent = {}

        async def mock_post(url, **kwargs):
            sent.update(kwargs["json"])
            payload = {"ok": True, "backend": "kv", "revision": 8, "updatedAt": "T8"}
            return Response(200, json=payload, request=Request("POST", url))

        monkeypatch.setattr(client.client, "post", mock_post)

        result = await client.push({"meta": {"dirty": True}}, client_revision=7)

        assert sent == {"state": {"meta": {"dirty": True}}, "clientRevision": 7}
        assert result.revision == 8
        assert result.updated_at == "T8"

    @pytest.mark.asyncio
    async def test_oversized_state_makes_no_request(self, client, monkeypatch):
        calls = []

        async def mock_post(url, **kwargs):
            calls.append(url)
            return Response(200, json={"ok": True, "revision": 1}, request=Request("POST", url))

        monkeypatch.setattr(client.client, "post", mock_post)

        with pytest.raises(ValidationError):
            await client.push({"blob": "x" * 1000})
        assert calls == []

    @pytest.mark.asyncio
    async def test_rejected_write(self, client, monkeypatch):
        async def mock_post(url, **kwargs):
            return Response(400, json={"ok": False, "error": "Invalid state payload"}, request=Request("POST", url))

        monkeypatch.setattr(client.client, "post", mock_post)

        with pytest.raises(TransportError):
            await client.push({})
