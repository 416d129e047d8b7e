"""A periodic sync that mirrors one JSON endpoint into the cache.

Used for integrations whose state is a single document that changes over
time, such as a wallet portfolio or a price table.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from agentmemory.errors import TransientExternalError
from agentmemory.services.http_endpoint import HttpEndpoint
from agentmemory.services.sync_service import PeriodicSyncService, Snapshot

logger = logging.getLogger(__name__)


class JsonSnapshotSyncService(PeriodicSyncService):
    def __init__(
        self,
        agent_id: str,
        *,
        endpoint: HttpEndpoint,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        transform: Callable[[Any], Snapshot] | None = None,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("queue", endpoint.queue)
        super().__init__(agent_id, **kwargs)
        self.endpoint = endpoint
        self.path = path
        self.params = params
        self.transform = transform or (lambda payload: {"data": payload})

    async def fetch_snapshot(self) -> Snapshot:
        payload = await self.endpoint.get_json(self.path, self.params, default=None)
        if payload is None:
            # Timed out or empty; keep whatever is cached.
            raise TransientExternalError(f"no data from {self.endpoint.base_url}{self.path}")
        return self.transform(payload)

    async def on_stop(self) -> None:
        await self.endpoint.close()
