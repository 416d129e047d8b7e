"""Knowledge ingestion: document → normalised text → fragments → embeddings.

The document record is written first and verbatim; a failure there aborts
the ingest. Each fragment is embedded and stored independently, so one
failed embedding costs one fragment, not the document.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from typing import List

from agentmemory.ingestion.normalizer import normalize
from agentmemory.ingestion.splitter import split_chunks
from agentmemory.models import Document, Fragment
from agentmemory.observability.tracing import log_with_context, record_metric
from agentmemory.runtime import AgentRuntime

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    document_id: str
    chunk_count: int = 0
    fragment_ids: List[str] = field(default_factory=list)
    failed_positions: List[int] = field(default_factory=list)


async def _previous_fragment_count(runtime: AgentRuntime, document_id: str) -> int:
    previous = await runtime.documents.get_memory_by_id(document_id)
    if previous is None:
        return 0
    return Document.from_memory(previous).fragment_count


async def _remove_fragments_beyond(runtime: AgentRuntime, document_id: str, start: int, stop: int) -> int:
    """Drop positions ``start..stop-1`` left over from a longer earlier version."""
    removed = 0
    for position in range(start, stop):
        if await runtime.fragments.remove_memory(Fragment.generate_id(document_id, position)):
            removed += 1
    return removed


async def ingest(
    runtime: AgentRuntime,
    document: Document,
    *,
    chunk_size: int | None = None,
    chunk_overlap: int | None = None,
) -> IngestResult:
    """Store *document* and its embedded fragments.

    Fragment ids are a function of ``(document id, position)``, so
    re-ingesting overwrites positions in place. A position whose embedding
    fails keeps its previous fragment; only positions past the new end are
    removed.
    """
    start = time.monotonic()
    result = IngestResult(document_id=document.id)

    previous_count = await _previous_fragment_count(runtime, document.id)
    text = normalize(document.text)
    chunks = split_chunks(text, chunk_size, chunk_overlap) if text else []
    result.chunk_count = len(chunks)

    await runtime.documents.upsert_memory(replace(document, fragment_count=len(chunks)).to_memory())
    record_metric("knowledge_ingest_count")

    if not chunks:
        logger.warning("Document %s is empty after normalisation; no fragments stored", document.id)
    for position, chunk in enumerate(chunks):
        fragment_id = Fragment.generate_id(document.id, position)
        try:
            embedding = await runtime.embedder.embed(chunk)
            fragment = Fragment(
                id=fragment_id,
                document_id=document.id,
                agent_id=runtime.agent_id,
                position=position,
                text=chunk,
                embedding=embedding,
            )
            await runtime.fragments.upsert_memory(fragment.to_memory())
        except Exception:
            logger.exception(
                "Fragment %d of document %s failed; skipping", position, document.id
            )
            record_metric("knowledge_fragment_failure")
            result.failed_positions.append(position)
            continue
        result.fragment_ids.append(fragment_id)
        record_metric("knowledge_fragment_count")

    removed = await _remove_fragments_beyond(runtime, document.id, len(chunks), previous_count)

    elapsed_ms = (time.monotonic() - start) * 1000
    log_with_context(
        logging.INFO,
        "knowledge.ingest",
        agent_id=runtime.agent_id,
        item_id=document.id,
        chunks=len(chunks),
        stored=len(result.fragment_ids),
        failed=len(result.failed_positions),
        removed=removed,
        elapsed_ms=round(elapsed_ms, 1),
    )
    return result
