"""Shared memory and external-service core for autonomous agents.

Memory path: knowledge documents are normalised, split into fragments,
embedded and stored; queries are matched against fragments and answered
with their parent documents.
Service path: each integration polls its upstream through a serialised
request queue with backoff, caches what it fetched, and reconciles new
feed items into message memory.
"""

from agentmemory.models import Document, Entity, FeedItem, Fragment, Memory, Relationship
from agentmemory.runtime import AgentRuntime, build_runtime_from_env

__all__ = [
    "AgentRuntime",
    "Document",
    "Entity",
    "FeedItem",
    "Fragment",
    "Memory",
    "Relationship",
    "build_runtime_from_env",
]
