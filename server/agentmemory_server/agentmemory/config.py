"""Centralised configuration for the agent memory core.

All values are read from environment variables with sensible defaults.
Integrations that need a different policy pass explicit arguments instead
of mutating these module-level values.
"""

from __future__ import annotations

import os


def _bool_env(name: str, default: bool = False) -> bool:
    return os.getenv(name, str(default)).lower() in ("true", "1", "yes")


def _int_env(name: str, default: int = 0) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _float_env(name: str, default: float = 0.0) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


# ── Core ─────────────────────────────────────────────────────────────
MEMORY_ENABLED: bool = _bool_env("MEMORY_ENABLED", True)
MEMORY_BACKEND: str = os.getenv("MEMORY_BACKEND", "memory")  # memory|azure_search
MEMORY_INDEX_NAME: str = os.getenv(
    "MEMORY_INDEX_NAME",
    f"{os.getenv('APP_NAME', 'agentmemory')}-{os.getenv('ENV', 'dev')}-memory",
)
AGENT_ID: str = os.getenv("AGENT_ID", "default-agent")

# ── Knowledge ────────────────────────────────────────────────────────
KNOWLEDGE_CHUNK_SIZE: int = _int_env("KNOWLEDGE_CHUNK_SIZE", 512)
KNOWLEDGE_CHUNK_OVERLAP: int = _int_env("KNOWLEDGE_CHUNK_OVERLAP", 20)
KNOWLEDGE_MATCH_COUNT: int = _int_env("KNOWLEDGE_MATCH_COUNT", 5)
KNOWLEDGE_MATCH_THRESHOLD: float = _float_env("KNOWLEDGE_MATCH_THRESHOLD", 0.1)

# ── Relationships ────────────────────────────────────────────────────
RELATIONSHIP_LIMIT: int = _int_env("RELATIONSHIP_LIMIT", 30)

# ── Request queue ────────────────────────────────────────────────────
REQUEST_BACKOFF_BASE_SECONDS: float = _float_env("REQUEST_BACKOFF_BASE_SECONDS", 1.0)
REQUEST_BACKOFF_CAP_SECONDS: float = _float_env("REQUEST_BACKOFF_CAP_SECONDS", 60.0)
REQUEST_JITTER_MIN_SECONDS: float = _float_env("REQUEST_JITTER_MIN_SECONDS", 1.5)
REQUEST_JITTER_MAX_SECONDS: float = _float_env("REQUEST_JITTER_MAX_SECONDS", 3.5)
REQUEST_MAX_ATTEMPTS: int = _int_env("REQUEST_MAX_ATTEMPTS", 5)
EXTERNAL_CALL_TIMEOUT_SECONDS: float = _float_env("EXTERNAL_CALL_TIMEOUT_SECONDS", 15.0)

# ── Periodic sync ────────────────────────────────────────────────────
SYNC_INTERVAL_SECONDS: float = _float_env("SYNC_INTERVAL_SECONDS", 120.0)
TIMELINE_FETCH_COUNT: int = _int_env("TIMELINE_FETCH_COUNT", 50)

# ── Azure AI Search ──────────────────────────────────────────────────
AZURE_SEARCH_ENDPOINT: str = os.getenv("AZURE_SEARCH_ENDPOINT", "")
AZURE_SEARCH_API_KEY: str = os.getenv("AZURE_SEARCH_API_KEY", "")
AZURE_SEARCH_VECTOR_DIM: int = _int_env("AZURE_SEARCH_VECTOR_DIM", 1536)

# ── Embeddings ───────────────────────────────────────────────────────
EMBEDDINGS_PROVIDER: str = os.getenv("EMBEDDINGS_PROVIDER", "azure_openai")  # azure_openai|openai
AZURE_OPENAI_ENDPOINT: str = os.getenv("AZURE_OPENAI_ENDPOINT", "")
AZURE_OPENAI_API_KEY: str = os.getenv("AZURE_OPENAI_API_KEY", "")
AZURE_OPENAI_API_VERSION: str = os.getenv("AZURE_OPENAI_API_VERSION", "2024-02-01")
OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
EMBED_MODEL: str = os.getenv("EMBED_MODEL", "text-embedding-3-large")

# ── Observability ────────────────────────────────────────────────────
OTEL_EXPORTER_OTLP_ENDPOINT: str = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "")
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "info")
