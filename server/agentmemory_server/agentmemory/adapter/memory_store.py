"""Memory store interface and the in-process backend.

One store instance holds one logical table (``documents``, ``fragments``,
``messages``). Records are keyed by deterministic identifiers, so
concurrent writers of the same logical item converge instead of conflicting.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

import numpy as np

from agentmemory.errors import DuplicateIdentifier
from agentmemory.models import Memory

logger = logging.getLogger(__name__)


# ── Interface (structural typing) ────────────────────────────────────

class MemoryStore(Protocol):
    """Shared memory store interface."""

    table_name: str

    async def create_memory(self, memory: Memory) -> bool: ...

    async def upsert_memory(self, memory: Memory) -> None: ...

    async def get_memory_by_id(self, memory_id: str) -> Optional[Memory]: ...

    async def get_memories_by_room_ids(self, room_ids: Iterable[str]) -> List[Memory]: ...

    async def search_by_embedding(
        self,
        embedding: Sequence[float],
        *,
        room_id: str,
        count: int,
        match_threshold: float,
    ) -> List[Memory]: ...

    async def remove_memory(self, memory_id: str) -> bool: ...


def cosine_similarity(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of *query* against every row of *matrix*.

    Rows with a zero norm score 0.0 rather than NaN.
    """
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(norms > 0, dots / norms, 0.0)
    return scores


def rank_by_similarity(
    candidates: List[Memory], scores: Sequence[float], count: int, match_threshold: float
) -> List[Memory]:
    """Annotate, filter and order candidates: similarity desc, then newest first."""
    ranked: List[Memory] = []
    for memory, score in zip(candidates, scores):
        if score < match_threshold:
            continue
        hit = copy.copy(memory)
        hit.similarity = float(score)
        ranked.append(hit)
    ranked.sort(key=lambda m: (m.similarity, m.created_at), reverse=True)
    return ranked[:count]


# ── Implementation ───────────────────────────────────────────────────

class InMemoryMemoryStore:
    """Process-local backend. Not durable; used for tests and single-node runs."""

    def __init__(self, table_name: str) -> None:
        self.table_name = table_name
        self._records: Dict[str, Memory] = {}
        self._lock = asyncio.Lock()

    async def create_memory(self, memory: Memory) -> bool:
        """Insert *memory*; returns ``False`` if an identical record already exists.

        Raises ``DuplicateIdentifier`` when the id is taken by different content.
        """
        async with self._lock:
            existing = self._records.get(memory.id)
            if existing is not None:
                if existing.same_payload(memory):
                    logger.debug("%s: memory %s already stored", self.table_name, memory.id)
                    return False
                raise DuplicateIdentifier(memory.id)
            self._records[memory.id] = self._stored_copy(memory)
            return True

    async def upsert_memory(self, memory: Memory) -> None:
        async with self._lock:
            self._records[memory.id] = self._stored_copy(memory)

    async def get_memory_by_id(self, memory_id: str) -> Optional[Memory]:
        record = self._records.get(memory_id)
        return copy.deepcopy(record) if record is not None else None

    async def get_memories_by_room_ids(self, room_ids: Iterable[str]) -> List[Memory]:
        wanted = set(room_ids)
        if not wanted:
            return []
        return [copy.deepcopy(m) for m in self._records.values() if m.room_id in wanted]

    async def search_by_embedding(
        self,
        embedding: Sequence[float],
        *,
        room_id: str,
        count: int,
        match_threshold: float,
    ) -> List[Memory]:
        candidates = [
            m
            for m in self._records.values()
            if m.room_id == room_id and m.embedding and len(m.embedding) == len(embedding)
        ]
        if not candidates or not len(embedding):
            return []
        matrix = np.asarray([m.embedding for m in candidates], dtype=float)
        scores = cosine_similarity(np.asarray(embedding, dtype=float), matrix)
        return rank_by_similarity(candidates, scores.tolist(), count, match_threshold)

    async def remove_memory(self, memory_id: str) -> bool:
        async with self._lock:
            return self._records.pop(memory_id, None) is not None

    def count(self) -> int:
        return len(self._records)

    @staticmethod
    def _stored_copy(memory: Memory) -> Memory:
        stored = copy.deepcopy(memory)
        stored.similarity = None
        return stored
