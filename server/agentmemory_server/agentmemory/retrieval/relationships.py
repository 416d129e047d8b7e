"""Relationship summaries for prompt context."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from agentmemory import config as cfg
from agentmemory.models import Entity, Relationship
from agentmemory.runtime import AgentRuntime

logger = logging.getLogger(__name__)

NO_RELATIONSHIPS = "No relationships found."
ALIAS_SEPARATOR = " aka "


def format_metadata(metadata: Dict[str, Any]) -> str:
    lines = []
    for key, value in metadata.items():
        if isinstance(value, (dict, list)):
            value = json.dumps(value, sort_keys=True)
        lines.append(f"{key}: {value}")
    return "\n".join(lines)


def rank_relationships(relationships: Sequence[Relationship], limit: int | None = None) -> List[Relationship]:
    """Edges with an interaction count, strongest first, truncated to *limit*."""
    limit = cfg.RELATIONSHIP_LIMIT if limit is None else limit
    counted = [rel for rel in relationships if rel.interactions]
    # sorted() is stable, so equal counts keep their input order.
    return sorted(counted, key=lambda rel: rel.interactions, reverse=True)[:limit]


async def format_relationships(
    runtime: AgentRuntime,
    relationships: Sequence[Relationship],
    *,
    limit: int | None = None,
) -> str:
    ranked = rank_relationships(relationships, limit)
    if not ranked:
        return ""

    # One lookup per distinct target.
    unique_ids = list(dict.fromkeys(rel.target_entity_id for rel in ranked))
    lookups = await asyncio.gather(
        *(runtime.entities.get_entity_by_id(entity_id) for entity_id in unique_ids),
        return_exceptions=True,
    )
    entity_map: Dict[str, Entity] = {}
    for entity_id, entity in zip(unique_ids, lookups):
        if isinstance(entity, BaseException):
            logger.warning("Entity %s could not be loaded: %s", entity_id, entity)
        elif entity is not None:
            entity_map[entity_id] = entity

    formatted: List[str] = []
    for rel in ranked:
        entity = entity_map.get(rel.target_entity_id)
        if entity is None:
            continue
        names = ALIAS_SEPARATOR.join(entity.names) or entity.id
        tags = ", ".join(rel.tags)
        formatted.append(f"{names}\n{tags}\n{format_metadata(rel.metadata)}\n")

    return "\n".join(formatted)


async def get_relationships_context(
    runtime: AgentRuntime,
    entity_id: str,
    *,
    agent_name: Optional[str] = None,
    sender_name: Optional[str] = None,
) -> str:
    """Render the relationship block injected into a conversation prompt."""
    try:
        relationships = await runtime.entities.get_relationships(entity_id)
        formatted = await format_relationships(runtime, relationships)
    except Exception:
        logger.exception("Relationship lookup failed for %s", entity_id)
        return NO_RELATIONSHIPS

    if not formatted:
        return NO_RELATIONSHIPS
    return (
        f"# {agent_name or runtime.agent_id} has observed {sender_name or entity_id} "
        f"interacting with these people:\n{formatted}"
    )
