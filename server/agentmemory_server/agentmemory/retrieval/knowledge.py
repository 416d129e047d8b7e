"""Knowledge retrieval: query → fragment similarity → parent documents.

Embeddings live at fragment granularity for precision, but callers get
whole documents back for context. Documents are returned in the order of
their best-matching fragment.

On any failure the function returns an empty list; a conversation must
never fail because knowledge retrieval is unavailable.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Dict, List

from agentmemory import config as cfg
from agentmemory.ingestion.normalizer import normalize
from agentmemory.models import Document
from agentmemory.observability.tracing import record_metric
from agentmemory.runtime import AgentRuntime

logger = logging.getLogger(__name__)


async def retrieve(
    runtime: AgentRuntime,
    query_text: str,
    *,
    count: int | None = None,
    match_threshold: float | None = None,
) -> List[Document]:
    count = cfg.KNOWLEDGE_MATCH_COUNT if count is None else count
    match_threshold = cfg.KNOWLEDGE_MATCH_THRESHOLD if match_threshold is None else match_threshold
    record_metric("knowledge_retrieve_count")
    if count <= 0:
        return []

    processed = normalize(query_text)
    if not processed:
        logger.warning("Empty processed text for knowledge query")
        record_metric("knowledge_retrieve_empty")
        return []

    start = time.monotonic()
    try:
        embedding = await runtime.embedder.embed(processed)
        fragments = await runtime.fragments.search_by_embedding(
            embedding,
            room_id=runtime.agent_id,
            count=count,
            match_threshold=match_threshold,
        )
    except Exception:
        logger.exception("knowledge.retrieve failed; returning empty context")
        return []

    # Fragments arrive best-first; keep the first occurrence of each document.
    best_score: Dict[str, float] = {}
    for fragment in fragments:
        document_id = fragment.metadata.get("document_id") or fragment.content.source
        if not document_id or document_id in best_score:
            continue
        logger.debug(
            "Matched fragment %s of %s with similarity %.3f",
            fragment.id, document_id, fragment.similarity or 0.0,
        )
        best_score[document_id] = fragment.similarity or 0.0

    document_ids = list(best_score)
    lookups = await asyncio.gather(
        *(runtime.documents.get_memory_by_id(doc_id) for doc_id in document_ids),
        return_exceptions=True,
    )

    documents: List[Document] = []
    for doc_id, memory in zip(document_ids, lookups):
        if isinstance(memory, BaseException):
            logger.warning("Document %s could not be loaded: %s", doc_id, memory)
            continue
        if memory is None:
            logger.warning("Document %s referenced by a fragment is missing", doc_id)
            continue
        documents.append(Document.from_memory(memory))

    elapsed_ms = (time.monotonic() - start) * 1000
    logger.info(
        "knowledge.retrieve k=%d fragments=%d documents=%d elapsed_ms=%.1f",
        count, len(fragments), len(documents), elapsed_ms,
    )
    if not documents:
        record_metric("knowledge_retrieve_empty")
    return documents
