"""Periodic refresh of external state into the cache.

A ``PeriodicSyncService`` is one running integration for one agent. On
``start()`` it refreshes once, then wakes up every ``interval`` seconds.
A refresh inside the interval returns the cached snapshot unchanged unless
forced. A failed refresh leaves the previous snapshot in the cache and the
timer keeps running.

Subclasses implement ``fetch_snapshot()`` and make their external calls
through ``self.queue``.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from agentmemory import config as cfg
from agentmemory.adapter.cache import CacheStore
from agentmemory.observability.tracing import log_with_context, record_metric
from agentmemory.services.registry import ServiceKey, ServiceRegistry
from agentmemory.services.request_queue import RequestQueue

logger = logging.getLogger(__name__)

Snapshot = Dict[str, Any]


class ServiceState(str, enum.Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"


class PeriodicSyncService:
    integration_id: str = "integration"

    def __init__(
        self,
        agent_id: str,
        *,
        cache: CacheStore,
        registry: ServiceRegistry,
        integration_id: str | None = None,
        interval: float | None = None,
        queue: RequestQueue | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.agent_id = agent_id
        if integration_id is not None:
            self.integration_id = integration_id
        self.cache = cache
        self.registry = registry
        self.interval = cfg.SYNC_INTERVAL_SECONDS if interval is None else interval
        self.queue = queue or RequestQueue(name=f"{agent_id}/{self.integration_id}")
        self.state = ServiceState.STOPPED
        self._clock = clock
        self._sleep = sleep
        self._last_update: Optional[float] = None
        self._timer: Optional[asyncio.Task] = None
        self._refresh_lock = asyncio.Lock()

    @property
    def key(self) -> ServiceKey:
        return (self.agent_id, self.integration_id)

    @property
    def cache_key(self) -> str:
        return f"{self.integration_id}/{self.agent_id}/snapshot"

    @property
    def last_update(self) -> Optional[float]:
        return self._last_update

    # -- Lifecycle -----------------------------------------------------

    async def start(self) -> "PeriodicSyncService":
        """Register, refresh once, then arm the timer.

        Returns the already-registered instance when one exists for this key.
        An error from the initial refresh propagates to the caller; the timer
        is armed regardless and retries on its next tick.
        """
        instance = self.registry.register(self)
        if instance is not self:
            logger.info("Service %s already running; reusing existing instance", self.key)
            return instance
        if self.state is not ServiceState.STOPPED:
            return self

        self.state = ServiceState.STARTING
        self.queue.open()
        log_with_context(
            logging.INFO, "sync.start",
            agent_id=self.agent_id, integration_id=self.integration_id,
        )
        try:
            await self.on_start()
            await self.refresh(force=True)
        finally:
            if self.state is ServiceState.STARTING:
                self._timer = asyncio.get_running_loop().create_task(self._run_timer())
                self.state = ServiceState.RUNNING
        return self

    async def stop(self) -> None:
        if self.state is ServiceState.STOPPED:
            return
        self.state = ServiceState.STOPPED
        if self._timer is not None:
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
            self._timer = None
        await self.queue.close()
        self.registry.unregister(self)
        await self.on_stop()
        log_with_context(
            logging.INFO, "sync.stop",
            agent_id=self.agent_id, integration_id=self.integration_id,
        )

    async def _run_timer(self) -> None:
        while True:
            await self._sleep(self.interval)
            try:
                await self.refresh()
            except Exception:
                logger.exception("Scheduled refresh failed for %s", self.key)

    # -- Refresh -------------------------------------------------------

    async def refresh(self, force: bool = False) -> Snapshot:
        async with self._refresh_lock:
            # Interval is measured from the start of the previous refresh.
            now = self._clock()
            if not force and self._last_update is not None and now - self._last_update < self.interval:
                cached = await self.get_cached_snapshot()
                if cached is not None:
                    record_metric("sync_refresh_skipped")
                    return cached

            try:
                snapshot = await self.fetch_snapshot()
            except Exception:
                record_metric("sync_refresh_failure")
                raise

            snapshot = {**snapshot, "last_updated": time.time()}
            await self.cache.set(self.cache_key, snapshot)
            self._last_update = now
            record_metric("sync_refresh_count")
            return snapshot

    async def force_update(self) -> Snapshot:
        return await self.refresh(force=True)

    async def get_cached_snapshot(self) -> Optional[Snapshot]:
        return await self.cache.get(self.cache_key)

    # -- Hooks ---------------------------------------------------------

    async def fetch_snapshot(self) -> Snapshot:
        raise NotImplementedError("fetch_snapshot must be implemented by the integration")

    async def on_start(self) -> None:
        pass

    async def on_stop(self) -> None:
        pass

    def describe(self) -> Dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "integration_id": self.integration_id,
            "state": self.state.value,
            "interval": self.interval,
            "last_update": self._last_update,
            "queued_requests": len(self.queue),
        }
