"""Azure AI Search implementation of ``MemoryStore``.

Durable backend for the ``documents``, ``fragments`` and ``messages``
tables. Every table lives in the same index and is scoped by its ``table``
field. Vector search runs on the HNSW profile from ``index_schemas``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from agentmemory import config as cfg
from agentmemory.adapter.memory_store import rank_by_similarity
from agentmemory.errors import DuplicateIdentifier
from agentmemory.models import Content, Memory

logger = logging.getLogger(__name__)

_SELECT = [
    "id",
    "table",
    "agent_id",
    "room_id",
    "entity_id",
    "created_at",
    "content_json",
    "metadata_json",
]


def _quote(value: str) -> str:
    return value.replace("'", "''")


def cosine_from_score(score: float) -> float:
    """Invert the service's cosine score, ``1 / (1 + (1 - cos))``."""
    if score <= 0:
        return -1.0
    return 2.0 - 1.0 / score


def memory_to_document(table: str, memory: Memory) -> Dict[str, Any]:
    doc: Dict[str, Any] = {
        "id": memory.id,
        "table": table,
        "agent_id": memory.agent_id,
        "room_id": memory.room_id,
        "entity_id": memory.entity_id,
        "created_at": memory.created_at,
        "text": memory.content.text,
        "content_json": json.dumps(memory.content.to_dict()),
        "metadata_json": json.dumps(memory.metadata),
    }
    if memory.embedding:
        doc["vector"] = list(memory.embedding)
    return doc


def document_to_memory(doc: Dict[str, Any]) -> Memory:
    return Memory(
        id=doc["id"],
        agent_id=doc.get("agent_id", ""),
        room_id=doc.get("room_id", ""),
        entity_id=doc.get("entity_id", ""),
        content=Content.from_dict(json.loads(doc.get("content_json") or "{}")),
        created_at=float(doc.get("created_at") or 0.0),
        embedding=doc.get("vector"),
        metadata=json.loads(doc.get("metadata_json") or "{}"),
    )


class AzureSearchMemoryStore:
    """Production store backed by Azure AI Search."""

    # Largest page the service returns for one query.
    page_size = 1000

    def __init__(self, table_name: str, *, search_client: Any | None = None) -> None:
        self.table_name = table_name
        self._search_client = search_client
        self._init_lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()

    # -- Lazy initialisation (connection pooling) ----------------------

    async def _client(self) -> Any:
        if self._search_client is not None:
            return self._search_client
        async with self._init_lock:
            if self._search_client is None:
                if not cfg.AZURE_SEARCH_ENDPOINT or not cfg.AZURE_SEARCH_API_KEY:
                    raise RuntimeError("AZURE_SEARCH_ENDPOINT and AZURE_SEARCH_API_KEY must be set")
                from azure.core.credentials import AzureKeyCredential
                from azure.search.documents import SearchClient

                self._search_client = SearchClient(
                    endpoint=cfg.AZURE_SEARCH_ENDPOINT,
                    index_name=cfg.MEMORY_INDEX_NAME,
                    credential=AzureKeyCredential(cfg.AZURE_SEARCH_API_KEY),
                )
        return self._search_client

    # -- Writes --------------------------------------------------------

    async def create_memory(self, memory: Memory) -> bool:
        async with self._write_lock:
            existing = await self.get_memory_by_id(memory.id)
            if existing is not None:
                if existing.same_payload(memory):
                    return False
                raise DuplicateIdentifier(memory.id)
            await self._upload(memory)
            return True

    async def upsert_memory(self, memory: Memory) -> None:
        async with self._write_lock:
            await self._upload(memory)

    async def _upload(self, memory: Memory) -> None:
        client = await self._client()
        # merge_or_upload is idempotent: creates if absent, merges if present.
        results = client.merge_or_upload_documents(
            documents=[memory_to_document(self.table_name, memory)]
        )
        for result in results:
            if not result.succeeded:
                raise RuntimeError(f"upsert failed for memory {result.key}")
        logger.debug("%s: stored memory %s", self.table_name, memory.id)

    async def remove_memory(self, memory_id: str) -> bool:
        if await self.get_memory_by_id(memory_id) is None:
            return False
        client = await self._client()
        client.delete_documents(documents=[{"id": memory_id}])
        return True

    # -- Reads ---------------------------------------------------------

    async def get_memory_by_id(self, memory_id: str) -> Optional[Memory]:
        from azure.core.exceptions import ResourceNotFoundError

        client = await self._client()
        try:
            doc = client.get_document(key=memory_id)
        except ResourceNotFoundError:
            return None
        if doc.get("table") != self.table_name:
            return None
        return document_to_memory(doc)

    async def get_memories_by_room_ids(self, room_ids: Iterable[str]) -> List[Memory]:
        rooms = sorted(set(room_ids))
        if not rooms:
            return []
        client = await self._client()
        odata_filter = (
            f"table eq '{_quote(self.table_name)}' and "
            f"search.in(room_id, '{_quote('|'.join(rooms))}', '|')"
        )
        memories: List[Memory] = []
        skip = 0
        while True:
            page = list(client.search(
                search_text="*",
                filter=odata_filter,
                select=_SELECT,
                order_by=["created_at asc", "id asc"],
                top=self.page_size,
                skip=skip,
            ))
            memories.extend(document_to_memory(doc) for doc in page)
            if len(page) < self.page_size:
                return memories
            skip += len(page)

    async def search_by_embedding(
        self,
        embedding: Sequence[float],
        *,
        room_id: str,
        count: int,
        match_threshold: float,
    ) -> List[Memory]:
        if not embedding:
            return []
        from azure.search.documents.models import VectorizedQuery

        client = await self._client()
        vec_query = VectorizedQuery(
            vector=list(embedding),
            k_nearest_neighbors=count,
            fields="vector",
        )
        odata_filter = (
            f"table eq '{_quote(self.table_name)}' and room_id eq '{_quote(room_id)}'"
        )
        results = client.search(
            search_text=None,
            vector_queries=[vec_query],
            filter=odata_filter,
            top=count,
            select=_SELECT,
        )
        candidates: List[Memory] = []
        scores: List[float] = []
        for doc in results:
            candidates.append(document_to_memory(doc))
            scores.append(cosine_from_score(doc.get("@search.score", 0.0)))
        return rank_by_similarity(candidates, scores, count, match_threshold)
