"""Unit tests for data models and deterministic identifiers."""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", "server", "agentmemory_server"))

from agentmemory.models import (
    DOCUMENT,
    FRAGMENT,
    MESSAGE,
    Content,
    Document,
    Fragment,
    Memory,
    Relationship,
    create_unique_id,
)


def test_create_unique_id_deterministic():
    id1 = create_unique_id("agent", "tweet-1")
    id2 = create_unique_id("agent", "tweet-1")
    assert id1 == id2
    assert len(id1) == 64  # sha256 hex


def test_create_unique_id_scoped():
    assert create_unique_id("agent-a", "x") != create_unique_id("agent-b", "x")
    assert create_unique_id("agent", "x") != create_unique_id("agent", "y")


def test_document_create_is_content_addressed():
    d1 = Document.create("agent", "some text", "notes")
    d2 = Document.create("agent", "some text", "notes")
    d3 = Document.create("agent", "some text", "other")
    assert d1.id == d2.id
    assert d1.id != d3.id


def test_document_memory_round_trip_keeps_text():
    doc = Document.create("agent", "Raw **markdown** text", "notes")
    memory = doc.to_memory()
    assert memory.type == DOCUMENT
    assert memory.room_id == "agent"
    back = Document.from_memory(memory)
    assert back.text == "Raw **markdown** text"
    assert back.source == "notes"


def test_fragment_ids_follow_position():
    assert Fragment.generate_id("doc", 0) == Fragment.generate_id("doc", 0)
    assert Fragment.generate_id("doc", 0) != Fragment.generate_id("doc", 1)


def test_fragment_memory_points_at_document():
    fragment = Fragment(
        id=Fragment.generate_id("doc", 3),
        document_id="doc",
        agent_id="agent",
        position=3,
        text="chunk",
        embedding=[0.1, 0.2],
    )
    memory = fragment.to_memory()
    assert memory.type == FRAGMENT
    assert memory.metadata["document_id"] == "doc"
    assert memory.metadata["position"] == 3
    assert memory.content.source == "doc"


def test_memory_type_defaults_to_message():
    memory = Memory(id="m", agent_id="a", room_id="r", entity_id="e", content=Content(text="hi"))
    assert memory.type == MESSAGE


def test_same_payload_ignores_embedding_and_metadata():
    a = Memory(id="m", agent_id="a", room_id="r", entity_id="e", content=Content(text="hi"))
    b = Memory(
        id="m", agent_id="a", room_id="r", entity_id="e",
        content=Content(text="hi"), embedding=[1.0], metadata={"x": 1},
    )
    c = Memory(id="m", agent_id="a", room_id="r", entity_id="e", content=Content(text="bye"))
    assert a.same_payload(b)
    assert not a.same_payload(c)


def test_content_to_dict_drops_none():
    assert Content(text="hi", source="feed").to_dict() == {"text": "hi", "source": "feed"}


def test_relationship_interactions():
    assert Relationship("a", "b", metadata={"interactions": 4}).interactions == 4
    assert Relationship("a", "b").interactions == 0
    assert Relationship("a", "b", metadata={"interactions": "oops"}).interactions == 0
