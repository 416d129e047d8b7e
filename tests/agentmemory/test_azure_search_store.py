"""Unit tests for the Azure AI Search memory store (with a fake SearchClient)."""

import sys
import os
import asyncio
import json

import pytest
from azure.core.exceptions import ResourceNotFoundError

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", "server", "agentmemory_server"))

from agentmemory.adapter.azure_search_store import (
    AzureSearchMemoryStore,
    cosine_from_score,
    document_to_memory,
    memory_to_document,
)
from agentmemory.adapter.index_schemas import INDEX_FIELDS, get_index_definition
from agentmemory.errors import DuplicateIdentifier
from agentmemory.models import Content, Memory


class _Result:
    def __init__(self, key, succeeded=True):
        self.key = key
        self.succeeded = succeeded


class FakeSearchClient:
    """Keeps documents in a dict; ``search`` returns ``search_results`` when set.

    Otherwise ``search`` pages through every stored document with ``top``
    and ``skip``.
    """

    def __init__(self):
        self.docs = {}
        self.search_calls = []
        self.search_results = None

    def get_document(self, key):
        if key not in self.docs:
            raise ResourceNotFoundError("not found")
        return dict(self.docs[key])

    def merge_or_upload_documents(self, documents):
        for doc in documents:
            self.docs.setdefault(doc["id"], {}).update(doc)
        return [_Result(doc["id"]) for doc in documents]

    def delete_documents(self, documents):
        for doc in documents:
            self.docs.pop(doc["id"], None)
        return [_Result(doc["id"]) for doc in documents]

    def search(self, search_text=None, **kwargs):
        self.search_calls.append({"search_text": search_text, **kwargs})
        if self.search_results is not None:
            return list(self.search_results)
        docs = [dict(doc) for doc in self.docs.values()]
        skip = kwargs.get("skip") or 0
        top = kwargs.get("top")
        return docs[skip:] if top is None else docs[skip:skip + top]


def _memory(memory_id, text="hello", room="room", embedding=None):
    return Memory(
        id=memory_id,
        agent_id="agent",
        room_id=room,
        entity_id="user",
        content=Content(text=text, source="feed"),
        created_at=1000.0,
        embedding=embedding,
        metadata={"type": "message"},
    )


def test_cosine_from_score_inverts_service_score():
    for cos in (1.0, 0.9, 0.25, 0.0, -0.5):
        score = 1.0 / (1.0 + (1.0 - cos))
        assert cosine_from_score(score) == pytest.approx(cos)


def test_document_mapping_round_trip():
    memory = _memory("m1", embedding=[0.1, 0.2])
    doc = memory_to_document("messages", memory)
    assert doc["table"] == "messages"
    assert json.loads(doc["content_json"])["source"] == "feed"
    back = document_to_memory(doc)
    assert back.same_payload(memory)
    assert back.embedding == [0.1, 0.2]


def test_create_then_duplicate():
    client = FakeSearchClient()
    store = AzureSearchMemoryStore("messages", search_client=client)

    async def scenario():
        first = await store.create_memory(_memory("m1"))
        second = await store.create_memory(_memory("m1"))
        return first, second

    assert asyncio.run(scenario()) == (True, False)

    with pytest.raises(DuplicateIdentifier):
        asyncio.run(store.create_memory(_memory("m1", text="different")))


def test_get_memory_from_another_table_is_none():
    client = FakeSearchClient()
    documents = AzureSearchMemoryStore("documents", search_client=client)
    messages = AzureSearchMemoryStore("messages", search_client=client)

    async def scenario():
        await documents.upsert_memory(_memory("shared"))
        return await messages.get_memory_by_id("shared"), await messages.get_memory_by_id("missing")

    assert asyncio.run(scenario()) == (None, None)


def test_room_query_filters_by_table_and_rooms():
    client = FakeSearchClient()
    store = AzureSearchMemoryStore("messages", search_client=client)

    async def scenario():
        await store.upsert_memory(_memory("m1", room="r1"))
        return await store.get_memories_by_room_ids(["r2", "r1", "r1"])

    found = asyncio.run(scenario())
    assert [m.id for m in found] == ["m1"]
    odata = client.search_calls[-1]["filter"]
    assert "table eq 'messages'" in odata
    assert "search.in(room_id, 'r1|r2', '|')" in odata



def test_room_query_reads_every_page():
    client = FakeSearchClient()
    store = AzureSearchMemoryStore("messages", search_client=client)
    store.page_size = 2

    async def scenario():
        for i in range(5):
            await store.upsert_memory(_memory(f"m{i}", room="r1"))
        return await store.get_memories_by_room_ids(["r1"])

    found = asyncio.run(scenario())
    assert sorted(m.id for m in found) == ["m0", "m1", "m2", "m3", "m4"]
    assert [call["skip"] for call in client.search_calls] == [0, 2, 4]
    assert all(call["top"] == 2 for call in client.search_calls)


def test_vector_search_converts_scores_and_applies_threshold():
    client = FakeSearchClient()
    store = AzureSearchMemoryStore("fragments", search_client=client)
    good = memory_to_document("fragments", _memory("good", embedding=[1.0, 0.0]))
    weak = memory_to_document("fragments", _memory("weak", embedding=[0.0, 1.0]))
    good["@search.score"] = 1.0 / (1.0 + (1.0 - 0.9))
    weak["@search.score"] = 1.0 / (1.0 + (1.0 - 0.05))
    client.search_results = [weak, good]

    hits = asyncio.run(
        store.search_by_embedding([1.0, 0.0], room_id="room", count=5, match_threshold=0.1)
    )
    assert [h.id for h in hits] == ["good"]
    assert hits[0].similarity == pytest.approx(0.9)
    assert "room_id eq 'room'" in client.search_calls[-1]["filter"]


def test_remove_memory():
    client = FakeSearchClient()
    store = AzureSearchMemoryStore("messages", search_client=client)

    async def scenario():
        await store.create_memory(_memory("m1"))
        return await store.remove_memory("m1"), await store.remove_memory("m1")

    assert asyncio.run(scenario()) == (True, False)


def test_index_definition_has_vector_field():
    names = [f["name"] for f in INDEX_FIELDS]
    assert {"id", "table", "room_id", "vector"} <= set(names)
    definition = get_index_definition()
    vector = next(f for f in definition["fields"] if f["name"] == "vector")
    assert vector["dimensions"] > 0
