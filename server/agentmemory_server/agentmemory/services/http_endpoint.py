"""HTTP access to a rate-limited JSON API through a ``RequestQueue``."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from agentmemory import config as cfg
from agentmemory.errors import ExternalServiceError, NotFound, TransientExternalError
from agentmemory.services.request_queue import RequestQueue, call_with_timeout

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = {408, 425, 429, 500, 502, 503, 504}


def raise_for_status(response: httpx.Response) -> None:
    """Map an HTTP error status onto the error taxonomy."""
    status = response.status_code
    if status < 400:
        return
    message = f"{response.request.method} {response.request.url} -> {status}: {response.text[:200]}"
    if status in _RETRYABLE_STATUS:
        raise TransientExternalError(message)
    if status == 404:
        raise NotFound(message)
    raise ExternalServiceError(message, status_code=status)


class HttpEndpoint:
    """One upstream API, one queue, one connection pool."""

    def __init__(
        self,
        base_url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        queue: RequestQueue | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.queue = queue or RequestQueue(name=self.base_url)
        self.timeout = cfg.EXTERNAL_CALL_TIMEOUT_SECONDS if timeout is None else timeout
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Accept": "application/json", **(headers or {})},
        )

    async def request_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET *path* directly, bypassing the queue.

        For callers that already run inside a queued task.
        """
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as exc:
            raise TransientExternalError(f"GET {path} failed: {exc}") from exc
        raise_for_status(response)
        return response.json()

    async def get_json(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        *,
        default: Any = None,
    ) -> Any:
        """GET *path* through the queue.

        Each attempt is raced against the endpoint timeout; a timed-out
        attempt resolves to *default* instead of holding up the queue.
        """
        return await self.queue.add(
            lambda: call_with_timeout(self.request_json(path, params), self.timeout, default)
        )

    async def close(self) -> None:
        await self.queue.close()
        await self._client.aclose()
