"""HTTP surface tests using FastAPI's TestClient."""

import sys
import os

import httpx
import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", "server", "agentmemory_server"))

import server
from agentmemory.adapter.cache import InMemoryCache
from agentmemory.runtime import AgentRuntime
from agentmemory.services.request_queue import RequestQueue
from agentmemory.services.sync_service import PeriodicSyncService


class KeywordEmbedder:
    async def embed(self, text):
        words = text.split()
        return [float(words.count("cat")), float(words.count("dog")), 0.1]


class StaticService(PeriodicSyncService):
    integration_id = "prices"

    def __init__(self, *args, fail=False, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail = fail

    async def fetch_snapshot(self):
        if self.fail:
            raise RuntimeError("upstream down")
        return {"price": 3}


@pytest.fixture
def runtime(monkeypatch):
    rt = AgentRuntime(agent_id="agent-test", embedder=KeywordEmbedder())
    monkeypatch.setattr(server, "runtime", rt)
    monkeypatch.setattr(server.memory_config, "MEMORY_ENABLED", True)
    return rt


@pytest.fixture
def client(runtime):
    with TestClient(server.app) as test_client:
        yield test_client


def _serve(monkeypatch, handler):
    """Route every endpoint the server builds to *handler*."""
    requests = []
    real_endpoint = server.HttpEndpoint

    def recording(request):
        requests.append(request)
        return handler(request)

    def endpoint(base_url, **kwargs):
        client = httpx.AsyncClient(base_url=base_url, transport=httpx.MockTransport(recording))
        return real_endpoint(base_url, queue=RequestQueue(jitter=(0.0, 0.0)), client=client, **kwargs)

    monkeypatch.setattr(server, "HttpEndpoint", endpoint)
    return requests


def test_root_reports_status(client):
    body = client.get("/").json()
    assert body["agent_id"] == "agent-test"
    assert body["services"] == 0
    assert "metrics" in body


def test_add_and_query_knowledge(client):
    added = client.post("/knowledge", json={"text": "The cat sat. cat cat", "source": "notes"})
    assert added.status_code == 200
    assert added.json()["fragments"] == 1

    client.post("/knowledge", json={"text": "dog dog dog"})
    found = client.post("/knowledge/query", json={"query": "cat", "count": 3}).json()
    assert [doc["text"] for doc in found["documents"]] == ["The cat sat. cat cat"]
    assert found["documents"][0]["source"] == "notes"


def test_query_count_is_validated(client):
    assert client.post("/knowledge/query", json={"query": "cat", "count": 0}).status_code == 422


def test_disabled_memory_returns_503(client, monkeypatch):
    monkeypatch.setattr(server.memory_config, "MEMORY_ENABLED", False)
    assert client.post("/knowledge", json={"text": "cat"}).status_code == 503


def test_reconcile_timeline(client):
    payload = {
        "source": "twitter",
        "self_user_id": "me",
        "items": [
            {"id": "1", "userId": "u1", "text": "hi"},
            {"id": "2", "userId": "me", "text": "mine"},
            {"text": "no id"},
        ],
    }
    body = client.post("/timeline/reconcile", json=payload).json()
    assert body["parsed"] == 2
    assert len(body["created"]) == 1
    assert body["skipped"] == 1

    again = client.post("/timeline/reconcile", json=payload).json()
    assert again["created"] == []


def test_relationships_without_edges(client):
    assert client.get("/relationships/nobody").json() == {"message": "No relationships found."}


def test_unknown_service_is_404(client):
    assert client.get("/services/missing/snapshot").status_code == 404
    assert client.post("/services/missing/refresh").status_code == 404
    assert client.delete("/services/missing").status_code == 404


def test_service_refresh_and_listing(client, runtime):
    service = StaticService(runtime.agent_id, cache=InMemoryCache(), registry=runtime.registry)
    runtime.registry.register(service)

    listed = client.get("/services").json()["services"]
    assert [s["integration_id"] for s in listed] == ["prices"]

    refreshed = client.post("/services/prices/refresh").json()
    assert refreshed["snapshot"]["price"] == 3
    assert client.get("/services/prices/snapshot").json()["snapshot"]["price"] == 3


def test_failed_refresh_is_502(client, runtime):
    service = StaticService(runtime.agent_id, cache=InMemoryCache(), registry=runtime.registry, fail=True)
    runtime.registry.register(service)
    assert client.post("/services/prices/refresh").status_code == 502


def test_start_snapshot_service(client, runtime, monkeypatch):
    requests = _serve(monkeypatch, lambda request: httpx.Response(200, json={"eth": 2.5}))
    body = {"base_url": "https://wallet.test", "path": "/portfolio", "params": {"owner": "me"}}

    started = client.post("/services/wallet", json=body)
    assert started.status_code == 200
    assert started.json()["started"] is True
    assert started.json()["service"]["state"] == "running"
    assert requests[0].url.path == "/portfolio"
    assert requests[0].url.params["owner"] == "me"

    assert [s["integration_id"] for s in client.get("/services").json()["services"]] == ["wallet"]
    assert client.get("/services/wallet/snapshot").json()["snapshot"]["data"] == {"eth": 2.5}

    again = client.post("/services/wallet", json=body).json()
    assert again["started"] is False
    assert len(requests) == 1

    assert client.delete("/services/wallet").json() == {"stopped": "wallet"}
    assert len(runtime.registry) == 0


def test_start_timeline_service_stores_posts(client, runtime, monkeypatch):
    posts = [
        {"id": "1", "userId": "u1", "text": "hello"},
        {"id": "2", "userId": "u2", "text": "again"},
        {"id": "3", "userId": "me", "text": "my own post"},
    ]
    requests = _serve(monkeypatch, lambda request: httpx.Response(200, json={"items": posts}))
    body = {"kind": "timeline", "base_url": "https://feed.test", "path": "/home", "self_user_id": "me"}

    started = client.post("/services/twitter", json=body)
    assert started.status_code == 200
    assert started.json()["started"] is True
    assert "count" in requests[0].url.params

    snapshot = client.get("/services/twitter/snapshot").json()["snapshot"]
    assert snapshot["item_ids"] == ["1", "2", "3"]
    assert len(snapshot["created"]) == 2
    assert snapshot["skipped"] == 1


def test_timeline_service_requires_self_user_id(client, runtime, monkeypatch):
    requests = _serve(monkeypatch, lambda request: httpx.Response(200, json=[]))
    body = {"kind": "timeline", "base_url": "https://feed.test"}

    assert client.post("/services/twitter", json=body).status_code == 422
    assert requests == []
    assert len(runtime.registry) == 0


def test_failed_initial_refresh_is_502_but_service_keeps_running(client, runtime, monkeypatch):
    _serve(monkeypatch, lambda request: httpx.Response(401, text="denied"))

    response = client.post("/services/wallet", json={"base_url": "https://wallet.test"})
    assert response.status_code == 502
    assert runtime.registry.get(runtime.agent_id, "wallet") is not None
