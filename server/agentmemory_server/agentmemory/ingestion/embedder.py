"""Embedding capability used by knowledge ingestion and retrieval.

Uses Azure OpenAI (or the public OpenAI API) to generate vector embeddings.
Calls can be serialised through a ``RequestQueue`` so that the queue's
backoff policy applies to rate-limited embedding endpoints.
Identical content hashes are cached to avoid redundant API calls.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any, Dict, List, Protocol

from agentmemory import config as cfg
from agentmemory.errors import EmbeddingUnavailable, ExternalServiceError, TransientExternalError
from agentmemory.services.request_queue import RequestQueue

logger = logging.getLogger(__name__)

# ── In-memory embedding cache (content_hash → vector) ────────────────
_cache: Dict[str, List[float]] = {}
_MAX_CACHE = 10_000


class Embedder(Protocol):
    async def embed(self, text: str) -> List[float]: ...


class OpenAIEmbedder:
    """Embedder backed by the ``openai`` SDK."""

    def __init__(
        self,
        *,
        provider: str | None = None,
        model: str | None = None,
        client: Any | None = None,
        queue: RequestQueue | None = None,
    ) -> None:
        self.provider = provider or cfg.EMBEDDINGS_PROVIDER
        self.model = model or cfg.EMBED_MODEL
        self.queue = queue
        self._client = client

    def _ensure_client(self) -> Any:
        if self._client is not None:
            return self._client
        if self.provider == "azure_openai":
            from openai import AsyncAzureOpenAI

            self._client = AsyncAzureOpenAI(
                api_key=cfg.AZURE_OPENAI_API_KEY,
                azure_endpoint=cfg.AZURE_OPENAI_ENDPOINT,
                api_version=cfg.AZURE_OPENAI_API_VERSION,
            )
        else:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(api_key=cfg.OPENAI_API_KEY)
        return self._client

    async def _call(self, text: str) -> List[float]:
        import openai

        client = self._ensure_client()
        try:
            response = await client.embeddings.create(input=[text], model=self.model)
        except (openai.APIConnectionError, openai.RateLimitError, openai.InternalServerError) as exc:
            raise TransientExternalError(f"embedding request failed: {exc}") from exc
        except openai.APIStatusError as exc:
            raise ExternalServiceError(str(exc), status_code=exc.status_code) from exc
        return list(response.data[0].embedding)

    async def embed(self, text: str) -> List[float]:
        h = hashlib.sha256(f"{self.model}|{text}".encode()).hexdigest()
        if h in _cache:
            return list(_cache[h])

        if self.queue is not None:
            vector = await self.queue.add(lambda: self._call(text))
        else:
            vector = await self._call(text)

        if len(_cache) < _MAX_CACHE:
            _cache[h] = vector
        return list(vector)


class UnconfiguredEmbedder:
    """Stand-in used when no provider credentials are present."""

    async def embed(self, text: str) -> List[float]:
        raise EmbeddingUnavailable("Embedding credentials not configured")


def create_embedder_from_env(queue: RequestQueue | None = None) -> Embedder:
    provider = cfg.EMBEDDINGS_PROVIDER
    if provider == "azure_openai" and cfg.AZURE_OPENAI_ENDPOINT and cfg.AZURE_OPENAI_API_KEY:
        return OpenAIEmbedder(provider=provider, queue=queue)
    if provider == "openai" and cfg.OPENAI_API_KEY:
        return OpenAIEmbedder(provider=provider, queue=queue)
    logger.warning("Embedding credentials not configured for provider %s; embedding disabled.", provider)
    return UnconfiguredEmbedder()


def clear_cache() -> None:
    """Clear the embedding cache (testing helper)."""
    _cache.clear()
