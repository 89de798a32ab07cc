"""Tests for /api/health, /api/providers, and /api/events."""

from httpx import AsyncClient

from tests.fixtures import create_node_json


class TestHealth:
    async def test_health(self, client: AsyncClient):
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"


class TestProviders:
    async def test_lists_registered(self, client: AsyncClient):
        resp = await client.get("/api/providers")
        assert resp.status_code == 200
        assert resp.json() == [{"name": "fake", "available": True, "models": ["fake-model"]}]

    async def test_listing_failure_reported_unavailable(
        self, client: AsyncClient, fake_provider, monkeypatch
    ):
        async def broken() -> list[str]:
            raise RuntimeError("models endpoint down")

        monkeypatch.setattr(fake_provider, "list_models", broken)
        resp = await client.get("/api/providers")
        assert resp.json() == [{"name": "fake", "available": False, "models": ["fake-model"]}]


class TestEventLog:
    async def test_after_cursor(self, client: AsyncClient):
        first = await create_node_json(client, "One")
        resp = await client.get("/api/events")
        assert resp.status_code == 200
        events = resp.json()
        assert [e["subject_id"] for e in events] == [first["node_id"]] * 2

        second = await create_node_json(client, "Two")
        resp = await client.get("/api/events", params={"after": events[-1]["sequence_num"]})
        assert [e["subject_id"] for e in resp.json()] == [second["node_id"]] * 2

    async def test_scoped_by_owner(self, client: AsyncClient):
        await create_node_json(client)
        resp = await client.get("/api/events", headers={"X-Owner-Id": "someone-else"})
        assert resp.json() == []
