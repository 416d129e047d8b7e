"""Observability setup for the memory core.

Provides logging configuration, structured log lines with correlation IDs,
in-process counters for the ingest/retrieve/queue/sync paths, and optional
OpenTelemetry tracing.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

from agentmemory import config as cfg

logger = logging.getLogger(__name__)

# ── Metrics counters (simple in-process; replace with OTel SDK) ──────

_metrics: dict[str, float] = {
    "knowledge_ingest_count": 0,
    "knowledge_fragment_count": 0,
    "knowledge_fragment_failure": 0,
    "knowledge_retrieve_count": 0,
    "knowledge_retrieve_empty": 0,
    "queue_request_count": 0,
    "queue_retry_count": 0,
    "queue_failure_count": 0,
    "sync_refresh_count": 0,
    "sync_refresh_skipped": 0,
    "sync_refresh_failure": 0,
    "reconcile_created": 0,
    "reconcile_skipped": 0,
    "reconcile_failed": 0,
}


def record_metric(name: str, value: float = 1.0) -> None:
    """Increment / accumulate a named metric."""
    _metrics[name] = _metrics.get(name, 0) + value


def get_metrics() -> dict[str, float]:
    """Return a snapshot of current metrics."""
    return dict(_metrics)


def reset_metrics() -> None:
    """Reset all metric counters (testing helper)."""
    for key in _metrics:
        _metrics[key] = 0


# ── Logging ──────────────────────────────────────────────────────────

def configure_logging(level: str | None = None) -> None:
    """Configure the root logger from ``LOG_LEVEL``."""
    logging.basicConfig(
        level=getattr(logging, (level or cfg.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def log_with_context(
    level: int,
    message: str,
    *,
    agent_id: str = "",
    integration_id: str = "",
    item_id: str = "",
    **extra: Any,
) -> None:
    """Emit a structured log line with correlation IDs."""
    fields = {
        "agent_id": agent_id,
        "integration_id": integration_id,
        "item_id": item_id,
        **extra,
    }
    logger.log(level, "%s | %s", message, fields)


# ── Optional OpenTelemetry bootstrap ─────────────────────────────────

def init_otel() -> None:
    """Initialise OpenTelemetry tracing if ``OTEL_EXPORTER_OTLP_ENDPOINT`` is set."""
    endpoint = cfg.OTEL_EXPORTER_OTLP_ENDPOINT
    if not endpoint:
        logger.info("OTEL endpoint not configured; tracing disabled.")
        return

    try:
        from opentelemetry import trace
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor

        resource = Resource.create({"service.name": "agentmemory"})
        provider = TracerProvider(resource=resource)
        exporter = OTLPSpanExporter(endpoint=endpoint)
        provider.add_span_processor(BatchSpanProcessor(exporter))
        trace.set_tracer_provider(provider)
        logger.info("OpenTelemetry tracing initialised (endpoint=%s)", endpoint)
    except ImportError:
        logger.warning("OpenTelemetry SDK not installed; tracing disabled.")
    except Exception:
        logger.exception("OpenTelemetry initialisation failed")
