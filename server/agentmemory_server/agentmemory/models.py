"""Data models for the agent memory core."""

from __future__ import annotations

import hashlib
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

DOCUMENT = "document"
FRAGMENT = "fragment"
MESSAGE = "message"


def create_unique_id(scope_id: str, base_id: str) -> str:
    """Deterministic identifier: sha256(scope_id|base_id).

    The same external identifier always maps to the same id within one
    scope, which is what makes re-ingestion idempotent.
    """
    raw = f"{scope_id}|{base_id}"
    return hashlib.sha256(raw.encode()).hexdigest()


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode()).hexdigest()


@dataclass
class Content:
    text: str = ""
    source: Optional[str] = None
    url: Optional[str] = None
    in_reply_to: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> "Content":
        data = data or {}
        return cls(
            text=data.get("text", ""),
            source=data.get("source"),
            url=data.get("url"),
            in_reply_to=data.get("in_reply_to"),
        )


@dataclass
class Memory:
    """A durable record: a document, a fragment or an observed event."""

    id: str
    agent_id: str
    room_id: str
    entity_id: str
    content: Content
    created_at: float = field(default_factory=time.time)
    embedding: Optional[List[float]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    # Populated on search results only, never stored.
    similarity: Optional[float] = None

    @property
    def type(self) -> str:
        return self.metadata.get("type", MESSAGE)

    def same_payload(self, other: "Memory") -> bool:
        """True when *other* would store the same logical record."""
        return (
            self.id == other.id
            and self.agent_id == other.agent_id
            and self.room_id == other.room_id
            and self.entity_id == other.entity_id
            and self.content == other.content
        )


@dataclass
class Document:
    """A whole unit of knowledge, as supplied by the caller."""

    id: str
    agent_id: str
    text: str
    source: str = "knowledge"
    created_at: float = field(default_factory=time.time)
    # Number of fragment positions written by the last ingest.
    fragment_count: int = 0

    @classmethod
    def create(cls, agent_id: str, text: str, source: str = "knowledge") -> "Document":
        doc_id = create_unique_id(agent_id, f"{source}:{content_hash(text)}")
        return cls(id=doc_id, agent_id=agent_id, text=text, source=source)

    def to_memory(self) -> Memory:
        return Memory(
            id=self.id,
            agent_id=self.agent_id,
            room_id=self.agent_id,
            entity_id=self.agent_id,
            content=Content(text=self.text, source=self.source),
            created_at=self.created_at,
            metadata={
                "type": DOCUMENT,
                "timestamp": self.created_at,
                "fragment_count": self.fragment_count,
            },
        )

    @classmethod
    def from_memory(cls, memory: Memory) -> "Document":
        return cls(
            id=memory.id,
            agent_id=memory.agent_id,
            text=memory.content.text,
            source=memory.content.source or "knowledge",
            created_at=memory.created_at,
            fragment_count=int(memory.metadata.get("fragment_count") or 0),
        )


@dataclass
class Fragment:
    """A bounded, embedded slice of a document."""

    id: str
    document_id: str
    agent_id: str
    position: int
    text: str
    embedding: List[float]
    created_at: float = field(default_factory=time.time)

    @staticmethod
    def generate_id(document_id: str, position: int) -> str:
        return create_unique_id(document_id, f"fragment-{position}")

    def to_memory(self) -> Memory:
        return Memory(
            id=self.id,
            agent_id=self.agent_id,
            room_id=self.agent_id,
            entity_id=self.agent_id,
            content=Content(text=self.text, source=self.document_id),
            created_at=self.created_at,
            embedding=self.embedding,
            metadata={
                "type": FRAGMENT,
                "document_id": self.document_id,
                "position": self.position,
                "timestamp": self.created_at,
            },
        )


@dataclass
class Entity:
    id: str
    names: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Relationship:
    """Directed edge between two entities."""

    source_entity_id: str
    target_entity_id: str
    tags: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def interactions(self) -> int:
        try:
            return int(self.metadata.get("interactions") or 0)
        except (TypeError, ValueError):
            return 0


@dataclass
class FeedItem:
    """A post observed on an external feed, normalised from its raw payload."""

    id: str
    conversation_id: str
    user_id: str
    text: str = ""
    username: Optional[str] = None
    name: Optional[str] = None
    permanent_url: Optional[str] = None
    in_reply_to_id: Optional[str] = None
    timestamp: Optional[float] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class ReconcileResult:
    created: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
