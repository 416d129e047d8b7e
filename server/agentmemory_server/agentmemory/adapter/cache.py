"""Key-value cache used by integrations.

The cache has no expiry of its own. Callers that care about staleness embed
a ``last_updated`` timestamp in the cached payload and compare it against
their own interval. A read failure raises; only a genuine miss returns
``None``.
"""

from __future__ import annotations

import asyncio
import copy
from typing import Any, Dict, Optional, Protocol


class CacheStore(Protocol):
    async def get(self, key: str) -> Optional[Any]: ...

    async def set(self, key: str, value: Any) -> bool: ...

    async def delete(self, key: str) -> bool: ...


class InMemoryCache:
    """Process-local cache. Values are copied on write and on read."""

    def __init__(self) -> None:
        self._data: Dict[str, Any] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        if key not in self._data:
            return None
        return copy.deepcopy(self._data[key])

    async def set(self, key: str, value: Any) -> bool:
        async with self._lock:
            self._data[key] = copy.deepcopy(value)
        return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self) -> list[str]:
        return list(self._data)
