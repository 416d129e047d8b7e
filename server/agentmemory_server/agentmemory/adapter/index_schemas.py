"""Azure AI Search index schema definition.

Provides the index schema as a plain dict for SDK-based index creation.
All logical tables share one index; the ``table`` field scopes queries.
"""

from __future__ import annotations

from agentmemory.config import AZURE_SEARCH_VECTOR_DIM, MEMORY_INDEX_NAME

VECTOR_PROFILE_NAME = "default-vector-profile"

INDEX_FIELDS = [
    {"name": "id", "type": "Edm.String", "key": True, "filterable": True, "sortable": True},
    {"name": "table", "type": "Edm.String", "filterable": True},
    {"name": "agent_id", "type": "Edm.String", "filterable": True},
    {"name": "room_id", "type": "Edm.String", "filterable": True},
    {"name": "entity_id", "type": "Edm.String", "filterable": True},
    {
        "name": "created_at",
        "type": "Edm.Double",
        "sortable": True,
        "filterable": True,
    },
    {"name": "text", "type": "Edm.String", "searchable": True},
    {"name": "content_json", "type": "Edm.String", "retrievable": True},
    {"name": "metadata_json", "type": "Edm.String", "retrievable": True},
    {
        "name": "vector",
        "type": "Collection(Edm.Single)",
        "searchable": True,
        "dimensions": AZURE_SEARCH_VECTOR_DIM,
        "vectorSearchProfile": VECTOR_PROFILE_NAME,
    },
]


def get_index_definition() -> dict:
    """Return the full JSON-serialisable index definition."""
    return {
        "name": MEMORY_INDEX_NAME,
        "fields": INDEX_FIELDS,
        "vectorSearch": {
            "algorithms": [
                {
                    "name": "hnsw-algo",
                    "kind": "hnsw",
                    "hnswParameters": {
                        "m": 4,
                        "efConstruction": 400,
                        "efSearch": 500,
                        "metric": "cosine",
                    },
                }
            ],
            "profiles": [
                {
                    "name": VECTOR_PROFILE_NAME,
                    "algorithm": "hnsw-algo",
                }
            ],
        },
    }
