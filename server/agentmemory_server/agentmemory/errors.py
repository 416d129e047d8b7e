"""Error taxonomy shared by the memory core and its integrations."""

from __future__ import annotations


class AgentMemoryError(Exception):
    """Base class for all errors raised by the memory core."""


class TransientExternalError(AgentMemoryError):
    """Network failure, timeout or rate limit. Safe to retry."""


class EmbeddingUnavailable(TransientExternalError):
    """No embedding provider is configured or reachable."""


class ExternalServiceError(AgentMemoryError):
    """Upstream rejected the request; retrying will not help."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFound(AgentMemoryError):
    """A referenced entity, document or remote resource does not exist."""


class InvalidInput(AgentMemoryError):
    """Empty or malformed input that cannot be processed."""


class DuplicateIdentifier(AgentMemoryError):
    """A record with the same identifier but different content already exists."""

    def __init__(self, identifier: str) -> None:
        super().__init__(f"memory {identifier} already exists with different content")
        self.identifier = identifier


class QueueClosed(AgentMemoryError):
    """The request queue was closed before the request could run."""
