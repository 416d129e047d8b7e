"""Unit tests for the queued HTTP endpoint and the JSON snapshot sync."""

import sys
import os
import asyncio

import httpx
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", "server", "agentmemory_server"))

from agentmemory.adapter.cache import InMemoryCache
from agentmemory.errors import ExternalServiceError, NotFound, TransientExternalError
from agentmemory.services.http_endpoint import HttpEndpoint, raise_for_status
from agentmemory.services.registry import ServiceRegistry
from agentmemory.services.request_queue import RequestQueue
from agentmemory.services.snapshot_sync import JsonSnapshotSyncService


async def _no_sleep(delay):
    return None


def _endpoint(handler, timeout=1.0):
    client = httpx.AsyncClient(base_url="https://api.test", transport=httpx.MockTransport(handler))
    queue = RequestQueue("api.test", jitter=(0.0, 0.0), sleep=_no_sleep)
    return HttpEndpoint("https://api.test", queue=queue, timeout=timeout, client=client)


def _response(status):
    return httpx.Response(status, request=httpx.Request("GET", "https://api.test/x"))


def test_raise_for_status_maps_statuses():
    raise_for_status(_response(200))
    with pytest.raises(TransientExternalError):
        raise_for_status(_response(429))
    with pytest.raises(TransientExternalError):
        raise_for_status(_response(503))
    with pytest.raises(NotFound):
        raise_for_status(_response(404))
    with pytest.raises(ExternalServiceError) as excinfo:
        raise_for_status(_response(400))
    assert excinfo.value.status_code == 400


def test_get_json_returns_payload():
    def handler(request):
        assert request.url.params["wallet"] == "abc"
        return httpx.Response(200, json={"balance": 3})

    endpoint = _endpoint(handler)
    assert asyncio.run(endpoint.get_json("/portfolio", {"wallet": "abc"})) == {"balance": 3}


def test_rate_limited_request_is_retried():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(429, text="slow down")
        return httpx.Response(200, json={"ok": True})

    endpoint = _endpoint(handler)
    assert asyncio.run(endpoint.get_json("/prices")) == {"ok": True}
    assert len(calls) == 2


def test_not_found_is_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(404, text="missing")

    endpoint = _endpoint(handler)
    with pytest.raises(NotFound):
        asyncio.run(endpoint.get_json("/missing"))
    assert len(calls) == 1


def test_timeout_resolves_to_default():
    async def handler(request):
        await asyncio.sleep(1)
        return httpx.Response(200, json={})

    endpoint = _endpoint(handler, timeout=0.01)
    assert asyncio.run(endpoint.get_json("/slow", default=[])) == []


def test_json_snapshot_service_caches_transformed_payload():
    def handler(request):
        return httpx.Response(200, json={"tokens": [{"symbol": "SOL", "amount": 2}]})

    endpoint = _endpoint(handler)
    cache = InMemoryCache()
    service = JsonSnapshotSyncService(
        "agent",
        endpoint=endpoint,
        path="/portfolio",
        cache=cache,
        registry=ServiceRegistry(),
        integration_id="wallet",
        transform=lambda payload: {"symbols": [t["symbol"] for t in payload["tokens"]]},
    )

    async def scenario():
        await service.start()
        cached = await cache.get("wallet/agent/snapshot")
        await service.stop()
        return cached

    cached = asyncio.run(scenario())
    assert cached["symbols"] == ["SOL"]
    assert "last_updated" in cached
    assert endpoint._client.is_closed


def test_json_snapshot_service_timeout_keeps_previous_snapshot():
    payloads = [{"price": 1}]

    async def handler(request):
        if not payloads:
            await asyncio.sleep(1)
        return httpx.Response(200, json=payloads.pop(0) if payloads else {})

    endpoint = _endpoint(handler, timeout=0.05)
    cache = InMemoryCache()
    service = JsonSnapshotSyncService(
        "agent",
        endpoint=endpoint,
        path="/prices",
        cache=cache,
        registry=ServiceRegistry(),
        integration_id="prices",
    )

    async def scenario():
        await service.start()
        with pytest.raises(TransientExternalError):
            await service.force_update()
        cached = await service.get_cached_snapshot()
        await service.stop()
        return cached

    assert asyncio.run(scenario())["data"] == {"price": 1}
