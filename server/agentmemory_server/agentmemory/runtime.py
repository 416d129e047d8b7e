"""Per-agent composition of the memory core."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from agentmemory import config as cfg
from agentmemory.adapter.cache import CacheStore, InMemoryCache
from agentmemory.adapter.entity_store import EntityStore, InMemoryEntityStore
from agentmemory.adapter.memory_store import InMemoryMemoryStore, MemoryStore
from agentmemory.ingestion.embedder import Embedder, create_embedder_from_env
from agentmemory.services.registry import ServiceRegistry

logger = logging.getLogger(__name__)

DOCUMENTS_TABLE = "documents"
FRAGMENTS_TABLE = "fragments"
MESSAGES_TABLE = "messages"


@dataclass
class AgentRuntime:
    """Everything an agent's integrations share: stores, cache, embedder, registry."""

    agent_id: str
    embedder: Embedder
    documents: MemoryStore = field(default_factory=lambda: InMemoryMemoryStore(DOCUMENTS_TABLE))
    fragments: MemoryStore = field(default_factory=lambda: InMemoryMemoryStore(FRAGMENTS_TABLE))
    messages: MemoryStore = field(default_factory=lambda: InMemoryMemoryStore(MESSAGES_TABLE))
    entities: EntityStore = field(default_factory=InMemoryEntityStore)
    cache: CacheStore = field(default_factory=InMemoryCache)
    registry: ServiceRegistry = field(default_factory=ServiceRegistry)


def _create_store(table: str) -> MemoryStore:
    if cfg.MEMORY_BACKEND == "azure_search":
        from agentmemory.adapter.azure_search_store import AzureSearchMemoryStore

        return AzureSearchMemoryStore(table)
    return InMemoryMemoryStore(table)


def build_runtime_from_env(agent_id: str | None = None) -> AgentRuntime:
    agent_id = agent_id or cfg.AGENT_ID
    logger.info("Building runtime for agent %s (backend=%s)", agent_id, cfg.MEMORY_BACKEND)
    return AgentRuntime(
        agent_id=agent_id,
        embedder=create_embedder_from_env(),
        documents=_create_store(DOCUMENTS_TABLE),
        fragments=_create_store(FRAGMENTS_TABLE),
        messages=_create_store(MESSAGES_TABLE),
    )
