"""Merge freshly fetched feed items into the agent's message memory.

Identifiers are derived from the external ids, so running ``reconcile``
twice on the same batch stores nothing the second time. A failure on one
item is logged and counted; it never stops the rest of the batch.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple, TypeVar

from agentmemory.models import Content, FeedItem, Memory, ReconcileResult, create_unique_id
from agentmemory.observability.tracing import log_with_context, record_metric
from agentmemory.runtime import AgentRuntime

logger = logging.getLogger(__name__)

T = TypeVar("T")


def diff_by_identifier(
    previous: Iterable[T], current: Iterable[T], key: Callable[[T], Any]
) -> Tuple[List[T], List[T]]:
    """Return ``(added, removed)`` between two snapshots, compared by *key*."""
    previous = list(previous)
    current = list(current)
    previous_ids = {key(item) for item in previous}
    current_ids = {key(item) for item in current}
    added = [item for item in current if key(item) not in previous_ids]
    removed = [item for item in previous if key(item) not in current_ids]
    return added, removed


class TimelineReconciler:
    def __init__(self, runtime: AgentRuntime, *, source: str, self_user_id: str) -> None:
        self.runtime = runtime
        self.source = source
        self.self_user_id = self_user_id

    # -- Deterministic identifiers --------------------------------------

    def memory_id(self, external_id: str) -> str:
        return create_unique_id(self.runtime.agent_id, external_id)

    def room_id(self, item: FeedItem) -> str:
        return create_unique_id(self.runtime.agent_id, item.conversation_id)

    def entity_id(self, item: FeedItem) -> str:
        if item.user_id == self.self_user_id:
            return self.runtime.agent_id
        return create_unique_id(self.runtime.agent_id, item.user_id)

    def item_cache_key(self, item_id: str) -> str:
        return f"{self.source}/items/{item_id}"

    # -- Reconciliation --------------------------------------------------

    async def existing_ids(self, items: Sequence[FeedItem]) -> Set[str]:
        room_ids = {self.room_id(item) for item in items}
        existing = await self.runtime.messages.get_memories_by_room_ids(room_ids)
        return {memory.id for memory in existing}

    async def reconcile(self, items: Sequence[FeedItem]) -> ReconcileResult:
        result = ReconcileResult()
        if not items:
            return result

        existing = await self.existing_ids(items)
        for item in items:
            memory_id = self.memory_id(item.id)
            if item.user_id == self.self_user_id or memory_id in existing:
                result.skipped.append(memory_id)
                continue
            existing.add(memory_id)
            try:
                created = await self._save_item(item, memory_id)
            except Exception:
                logger.exception("Failed to save %s item %s", self.source, item.id)
                result.failed.append(memory_id)
                continue
            if created:
                result.created.append(memory_id)
            else:
                result.skipped.append(memory_id)

        record_metric("reconcile_created", len(result.created))
        record_metric("reconcile_skipped", len(result.skipped))
        record_metric("reconcile_failed", len(result.failed))
        log_with_context(
            logging.INFO,
            "timeline.reconcile",
            agent_id=self.runtime.agent_id,
            integration_id=self.source,
            created=len(result.created),
            skipped=len(result.skipped),
            failed=len(result.failed),
        )
        return result

    async def _save_item(self, item: FeedItem, memory_id: str) -> bool:
        room_id = self.room_id(item)
        entity_id = self.entity_id(item)
        await self.runtime.entities.ensure_connection(
            entity_id=entity_id,
            room_id=room_id,
            source=self.source,
            user_name=item.username,
            name=item.name,
        )

        in_reply_to = self.memory_id(item.in_reply_to_id) if item.in_reply_to_id else None
        memory = Memory(
            id=memory_id,
            agent_id=self.runtime.agent_id,
            room_id=room_id,
            entity_id=entity_id,
            content=Content(
                text=item.text,
                source=self.source,
                url=item.permanent_url,
                in_reply_to=in_reply_to,
            ),
            created_at=item.timestamp if item.timestamp is not None else time.time(),
            metadata={"type": "message", "external_id": item.id},
        )
        created = await self.runtime.messages.create_memory(memory)
        await self.runtime.cache.set(self.item_cache_key(item.id), item.raw or {"id": item.id})

        if created and in_reply_to:
            await self._record_reply(entity_id, in_reply_to)
        return created

    async def _record_reply(self, entity_id: str, parent_memory_id: str) -> None:
        parent = await self.runtime.messages.get_memory_by_id(parent_memory_id)
        if parent is None or parent.entity_id == entity_id:
            return
        await self.runtime.entities.record_interaction(
            entity_id, parent.entity_id, [self.source, "reply"]
        )

    # -- Followers -------------------------------------------------------

    def followers_cache_key(self) -> str:
        return f"{self.source}/{self.self_user_id}/followers"

    async def follower_changes(self, current: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Diff *current* followers against the cached list, then cache *current*."""
        cached: Optional[List[Dict[str, Any]]] = await self.runtime.cache.get(self.followers_cache_key())
        added, removed = diff_by_identifier(cached or [], current, key=lambda user: str(user.get("id_str")))

        changes: List[Dict[str, Any]] = []
        for change_type, users in (("followed", added), ("unfollowed", removed)):
            for user in users:
                changes.append(
                    {
                        "type": change_type,
                        "user_id": str(user.get("id_str")),
                        "username": user.get("screen_name"),
                        "name": user.get("name"),
                    }
                )
        await self.runtime.cache.set(self.followers_cache_key(), list(current))
        return changes
