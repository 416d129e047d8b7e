import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Literal, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from agentmemory import config as memory_config
from agentmemory.ingestion.knowledge import ingest
from agentmemory.models import Document
from agentmemory.observability.tracing import configure_logging, get_metrics, init_otel
from agentmemory.retrieval.knowledge import retrieve
from agentmemory.retrieval.relationships import get_relationships_context
from agentmemory.runtime import AgentRuntime, build_runtime_from_env
from agentmemory.services.http_endpoint import HttpEndpoint
from agentmemory.services.snapshot_sync import JsonSnapshotSyncService
from agentmemory.timeline.feed import parse_feed_items
from agentmemory.timeline.reconcile import TimelineReconciler
from agentmemory.timeline.timeline_sync import TimelineSyncService

# --- Configuration & Initialization ---
load_dotenv()
configure_logging()
init_otel()

logger = logging.getLogger(__name__)

runtime: AgentRuntime = build_runtime_from_env()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup/shutdown lifecycle."""
    yield
    # Shutdown: stop every running sync loop so no timer outlives the app
    await runtime.registry.stop_all()


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Data Models ---

class KnowledgeRequest(BaseModel):
    text: str
    source: str = "knowledge"
    id: Optional[str] = None


class QueryRequest(BaseModel):
    query: str
    count: Optional[int] = Field(default=None, ge=1, le=50)


class ReconcileRequest(BaseModel):
    source: str
    self_user_id: str
    items: List[Dict[str, Any]] = Field(default_factory=list)


class ServiceRequest(BaseModel):
    kind: Literal["snapshot", "timeline"] = "snapshot"
    base_url: str
    path: str = "/"
    params: Dict[str, Any] = Field(default_factory=dict)
    headers: Dict[str, str] = Field(default_factory=dict)
    interval: Optional[float] = Field(default=None, gt=0)
    self_user_id: Optional[str] = None

# --- Helper Functions ---

def _ensure_enabled() -> None:
    if not memory_config.MEMORY_ENABLED:
        raise HTTPException(status_code=503, detail="Memory layer disabled (MEMORY_ENABLED=false)")


def _get_service(integration_id: str):
    service = runtime.registry.get(runtime.agent_id, integration_id)
    if service is None:
        raise HTTPException(status_code=404, detail=f"No running service '{integration_id}'")
    return service

# --- Endpoints: Health ---

@app.get("/")
async def read_root():
    return {
        "agent_id": runtime.agent_id,
        "memory_enabled": memory_config.MEMORY_ENABLED,
        "backend": memory_config.MEMORY_BACKEND,
        "services": len(runtime.registry),
        "metrics": get_metrics(),
    }

# --- Endpoints: Knowledge ---

@app.post("/knowledge")
async def add_knowledge(request: KnowledgeRequest):
    _ensure_enabled()
    document = Document.create(runtime.agent_id, request.text, request.source)
    if request.id:
        document.id = request.id
    result = await ingest(runtime, document)
    return {
        "document_id": result.document_id,
        "chunks": result.chunk_count,
        "fragments": len(result.fragment_ids),
        "failed_positions": result.failed_positions,
    }


@app.post("/knowledge/query")
async def query_knowledge(request: QueryRequest):
    _ensure_enabled()
    documents = await retrieve(runtime, request.query, count=request.count)
    return {
        "documents": [
            {"id": doc.id, "text": doc.text, "source": doc.source} for doc in documents
        ]
    }

# --- Endpoints: Relationships ---

@app.get("/relationships/{entity_id}")
async def relationships(entity_id: str, sender_name: Optional[str] = None):
    text = await get_relationships_context(runtime, entity_id, sender_name=sender_name)
    return {"message": text}

# --- Endpoints: Timeline ---

@app.post("/timeline/reconcile")
async def reconcile_timeline(request: ReconcileRequest):
    _ensure_enabled()
    reconciler = TimelineReconciler(runtime, source=request.source, self_user_id=request.self_user_id)
    items = parse_feed_items(request.items)
    result = await reconciler.reconcile(items)
    return {
        "parsed": len(items),
        "created": result.created,
        "skipped": len(result.skipped),
        "failed": len(result.failed),
    }

# --- Endpoints: Services ---

@app.get("/services")
async def list_services():
    return {"services": [service.describe() for service in runtime.registry.services()]}


@app.get("/services/{integration_id}/snapshot")
async def service_snapshot(integration_id: str):
    service = _get_service(integration_id)
    return {"snapshot": await service.get_cached_snapshot()}


@app.post("/services/{integration_id}/refresh")
async def refresh_service(integration_id: str):
    service = _get_service(integration_id)
    try:
        snapshot = await service.force_update()
    except Exception as e:
        logger.exception("Forced refresh of %s failed", integration_id)
        raise HTTPException(status_code=502, detail=f"Refresh failed: {type(e).__name__}: {e}")
    return {"snapshot": snapshot}


@app.delete("/services/{integration_id}")
async def stop_service(integration_id: str):
    service = _get_service(integration_id)
    await service.stop()
    return {"stopped": integration_id}


@app.post("/services/{integration_id}")
async def start_service(integration_id: str, request: ServiceRequest):
    _ensure_enabled()
    existing = runtime.registry.get(runtime.agent_id, integration_id)
    if existing is not None:
        return {"service": existing.describe(), "started": False}
    if request.kind == "timeline" and not request.self_user_id:
        raise HTTPException(status_code=422, detail="self_user_id is required for a timeline service")

    endpoint = HttpEndpoint(request.base_url, headers=request.headers)
    if request.kind == "timeline":
        service = TimelineSyncService.from_endpoint(
            runtime,
            endpoint,
            path=request.path,
            params=request.params,
            source=integration_id,
            self_user_id=request.self_user_id,
            interval=request.interval,
        )
    else:
        service = JsonSnapshotSyncService(
            runtime.agent_id,
            endpoint=endpoint,
            path=request.path,
            params=request.params,
            cache=runtime.cache,
            registry=runtime.registry,
            integration_id=integration_id,
            interval=request.interval,
        )

    try:
        running = await service.start()
    except Exception as e:
        # The timer is armed and keeps retrying; report the failed first refresh.
        logger.exception("Initial refresh of %s failed", integration_id)
        raise HTTPException(status_code=502, detail=f"Initial refresh failed: {type(e).__name__}: {e}")
    if running is not service:
        await endpoint.close()
        return {"service": running.describe(), "started": False}
    return {"service": service.describe(), "started": True}
