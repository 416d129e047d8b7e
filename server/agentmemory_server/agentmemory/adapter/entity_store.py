"""Entities, rooms and relationship edges observed by an agent."""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Set, Tuple

from agentmemory.models import Entity, Relationship

logger = logging.getLogger(__name__)


@dataclass
class Room:
    id: str
    source: str
    channel_type: str = "FEED"
    participants: Set[str] = field(default_factory=set)


class EntityStore(Protocol):
    async def ensure_connection(
        self,
        *,
        entity_id: str,
        room_id: str,
        source: str,
        user_name: Optional[str] = None,
        name: Optional[str] = None,
        channel_type: str = "FEED",
    ) -> None: ...

    async def get_entity_by_id(self, entity_id: str) -> Optional[Entity]: ...

    async def get_relationships(self, entity_id: str) -> List[Relationship]: ...

    async def record_interaction(
        self, source_entity_id: str, target_entity_id: str, tags: List[str] | None = None
    ) -> Relationship: ...


class InMemoryEntityStore:
    def __init__(self) -> None:
        self._entities: Dict[str, Entity] = {}
        self._rooms: Dict[str, Room] = {}
        self._edges: Dict[Tuple[str, str], Relationship] = {}
        self._lock = asyncio.Lock()

    async def ensure_connection(
        self,
        *,
        entity_id: str,
        room_id: str,
        source: str,
        user_name: Optional[str] = None,
        name: Optional[str] = None,
        channel_type: str = "FEED",
    ) -> None:
        """Create the entity, the room and the membership if any is missing."""
        async with self._lock:
            entity = self._entities.get(entity_id)
            if entity is None:
                entity = Entity(id=entity_id, metadata={source: {}})
                self._entities[entity_id] = entity
            for candidate in (name, user_name):
                if candidate and candidate not in entity.names:
                    entity.names.append(candidate)
            if user_name:
                entity.metadata.setdefault(source, {})["username"] = user_name

            room = self._rooms.get(room_id)
            if room is None:
                room = Room(id=room_id, source=source, channel_type=channel_type)
                self._rooms[room_id] = room
            room.participants.add(entity_id)

    async def upsert_entity(self, entity: Entity) -> None:
        async with self._lock:
            self._entities[entity.id] = copy.deepcopy(entity)

    async def get_entity_by_id(self, entity_id: str) -> Optional[Entity]:
        entity = self._entities.get(entity_id)
        return copy.deepcopy(entity) if entity is not None else None

    async def get_room(self, room_id: str) -> Optional[Room]:
        room = self._rooms.get(room_id)
        return copy.deepcopy(room) if room is not None else None

    async def get_relationships(self, entity_id: str) -> List[Relationship]:
        return [
            copy.deepcopy(rel)
            for (source, _target), rel in self._edges.items()
            if source == entity_id
        ]

    async def record_interaction(
        self, source_entity_id: str, target_entity_id: str, tags: List[str] | None = None
    ) -> Relationship:
        """Create the edge or bump its ``interactions`` counter."""
        async with self._lock:
            key = (source_entity_id, target_entity_id)
            rel = self._edges.get(key)
            if rel is None:
                rel = Relationship(
                    source_entity_id=source_entity_id,
                    target_entity_id=target_entity_id,
                    metadata={"interactions": 0},
                )
                self._edges[key] = rel
            for tag in tags or []:
                if tag not in rel.tags:
                    rel.tags.append(tag)
            rel.metadata["interactions"] = rel.interactions + 1
            return copy.deepcopy(rel)
