"""Periodic timeline sync: fetch → parse → reconcile → cache."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from agentmemory import config as cfg
from agentmemory.runtime import AgentRuntime
from agentmemory.services.http_endpoint import HttpEndpoint
from agentmemory.services.request_queue import call_with_timeout
from agentmemory.services.sync_service import PeriodicSyncService, Snapshot
from agentmemory.timeline.feed import parse_feed_items
from agentmemory.timeline.reconcile import TimelineReconciler

logger = logging.getLogger(__name__)

FetchTimeline = Callable[[int], Awaitable[Sequence[Mapping[str, Any]]]]

# Once a timeline is cached only the newest posts need fetching.
INCREMENTAL_FETCH_COUNT = 10


class TimelineSyncService(PeriodicSyncService):
    """Keeps an agent's view of one feed account in memory.

    *fetch_timeline* is the integration's call to the feed API; it receives
    the number of posts wanted and returns raw payloads.
    """

    def __init__(
        self,
        runtime: AgentRuntime,
        *,
        source: str,
        self_user_id: str,
        fetch_timeline: FetchTimeline,
        fetch_count: int | None = None,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("integration_id", source)
        super().__init__(runtime.agent_id, cache=runtime.cache, registry=runtime.registry, **kwargs)
        self.runtime = runtime
        self.source = source
        self.fetch_timeline = fetch_timeline
        self.fetch_count = fetch_count or cfg.TIMELINE_FETCH_COUNT
        self.timeout = timeout
        self.reconciler = TimelineReconciler(runtime, source=source, self_user_id=self_user_id)
        self.endpoint: Optional[HttpEndpoint] = None

    @classmethod
    def from_endpoint(
        cls,
        runtime: AgentRuntime,
        endpoint: HttpEndpoint,
        *,
        path: str,
        source: str,
        self_user_id: str,
        params: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> "TimelineSyncService":
        """Build a service that reads the timeline from a JSON API.

        The API answers with a list of posts or an object holding one under
        ``items``. The service owns *endpoint* and closes it on stop.
        """

        async def fetch_timeline(count: int) -> Sequence[Mapping[str, Any]]:
            payload = await endpoint.request_json(path, {**(params or {}), "count": count})
            if isinstance(payload, Mapping):
                payload = payload.get("items")
            return payload or []

        kwargs.setdefault("queue", endpoint.queue)
        kwargs.setdefault("timeout", endpoint.timeout)
        service = cls(
            runtime,
            source=source,
            self_user_id=self_user_id,
            fetch_timeline=fetch_timeline,
            **kwargs,
        )
        service.endpoint = endpoint
        return service

    @property
    def timeline_cache_key(self) -> str:
        return f"{self.source}/{self.reconciler.self_user_id}/timeline"

    async def on_start(self) -> None:
        """Replay the cached timeline so items missed before a restart are stored."""
        cached = await self.cache.get(self.timeline_cache_key)
        if not cached:
            return
        result = await self.reconciler.reconcile(parse_feed_items(cached))
        if result.created:
            logger.info("Populated %d missing %s items from the cache", len(result.created), self.source)

    async def fetch_snapshot(self) -> Snapshot:
        cached = await self.cache.get(self.timeline_cache_key)
        count = min(INCREMENTAL_FETCH_COUNT, self.fetch_count) if cached else self.fetch_count

        raws: List[Mapping[str, Any]] = await self.queue.add(
            lambda: call_with_timeout(self.fetch_timeline(count), self.timeout, [])
        )
        items = parse_feed_items(raws or [])
        result = await self.reconciler.reconcile(items)
        if items:
            await self.cache.set(self.timeline_cache_key, [item.raw for item in items])

        return {
            "source": self.source,
            "item_ids": [item.id for item in items],
            "created": result.created,
            "skipped": len(result.skipped),
            "failed": len(result.failed),
        }

    async def on_stop(self) -> None:
        if self.endpoint is not None:
            await self.endpoint.close()
