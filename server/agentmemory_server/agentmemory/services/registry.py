"""Registry of running sync services, keyed by (agent id, integration id).

The registry is an explicit object handed to the services that need it.
Check-and-insert happens under a lock, so two concurrent ``start()`` calls
for the same key end up sharing one instance.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

if TYPE_CHECKING:
    from agentmemory.services.sync_service import PeriodicSyncService

logger = logging.getLogger(__name__)

ServiceKey = Tuple[str, str]


class ServiceRegistry:
    def __init__(self) -> None:
        self._services: Dict[ServiceKey, "PeriodicSyncService"] = {}
        self._lock = threading.Lock()

    def register(self, service: "PeriodicSyncService") -> "PeriodicSyncService":
        """Insert *service* unless its key is taken; return the registered instance."""
        with self._lock:
            existing = self._services.get(service.key)
            if existing is not None:
                return existing
            self._services[service.key] = service
            return service

    def unregister(self, service: "PeriodicSyncService") -> bool:
        with self._lock:
            if self._services.get(service.key) is service:
                del self._services[service.key]
                return True
            return False

    def get(self, agent_id: str, integration_id: str) -> Optional["PeriodicSyncService"]:
        return self._services.get((agent_id, integration_id))

    def services(self) -> List["PeriodicSyncService"]:
        with self._lock:
            return list(self._services.values())

    def __len__(self) -> int:
        return len(self._services)

    async def stop_all(self) -> None:
        for service in self.services():
            try:
                await service.stop()
            except Exception:
                logger.exception("Failed to stop service %s", service.key)
