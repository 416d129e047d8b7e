#!/usr/bin/env python3
"""Create (or update) the Azure AI Search index for the memory store.

Usage:
    python create_index.py

Requires AZURE_SEARCH_ENDPOINT and AZURE_SEARCH_API_KEY in the environment.
"""

from __future__ import annotations

import os
import sys

# Allow running from repo root or scripts/memory/.
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", "server", "agentmemory_server"))

from dotenv import load_dotenv

load_dotenv()

from agentmemory.adapter.index_schemas import VECTOR_PROFILE_NAME, get_index_definition
from agentmemory.config import AZURE_SEARCH_API_KEY, AZURE_SEARCH_ENDPOINT, MEMORY_INDEX_NAME


def create_or_update_index() -> None:
    if not AZURE_SEARCH_ENDPOINT or not AZURE_SEARCH_API_KEY:
        print("ERROR: AZURE_SEARCH_ENDPOINT and AZURE_SEARCH_API_KEY must be set.")
        sys.exit(1)

    from azure.core.credentials import AzureKeyCredential
    from azure.search.documents.indexes import SearchIndexClient
    from azure.search.documents.indexes.models import (
        HnswAlgorithmConfiguration,
        HnswParameters,
        SearchableField,
        SearchField,
        SearchFieldDataType,
        SearchIndex,
        SimpleField,
        VectorSearch,
        VectorSearchProfile,
    )

    credential = AzureKeyCredential(AZURE_SEARCH_API_KEY)
    client = SearchIndexClient(endpoint=AZURE_SEARCH_ENDPOINT, credential=credential)

    index_def = get_index_definition()
    vector_field = next(f for f in index_def["fields"] if f["name"] == "vector")
    hnsw = index_def["vectorSearch"]["algorithms"][0]["hnswParameters"]

    fields = [
        SimpleField(name="id", type=SearchFieldDataType.String, key=True, filterable=True, sortable=True),
        SimpleField(name="table", type=SearchFieldDataType.String, filterable=True),
        SimpleField(name="agent_id", type=SearchFieldDataType.String, filterable=True),
        SimpleField(name="room_id", type=SearchFieldDataType.String, filterable=True),
        SimpleField(name="entity_id", type=SearchFieldDataType.String, filterable=True),
        SimpleField(name="created_at", type=SearchFieldDataType.Double, sortable=True, filterable=True),
        SearchableField(name="text", type=SearchFieldDataType.String),
        SimpleField(name="content_json", type=SearchFieldDataType.String, retrievable=True),
        SimpleField(name="metadata_json", type=SearchFieldDataType.String, retrievable=True),
        SearchField(
            name="vector",
            type=SearchFieldDataType.Collection(SearchFieldDataType.Single),
            searchable=True,
            vector_search_dimensions=vector_field["dimensions"],
            vector_search_profile_name=VECTOR_PROFILE_NAME,
        ),
    ]

    vector_search = VectorSearch(
        algorithms=[
            HnswAlgorithmConfiguration(
                name="hnsw-algo",
                parameters=HnswParameters(
                    m=hnsw["m"],
                    ef_construction=hnsw["efConstruction"],
                    ef_search=hnsw["efSearch"],
                    metric=hnsw["metric"],
                ),
            )
        ],
        profiles=[
            VectorSearchProfile(name=VECTOR_PROFILE_NAME, algorithm_configuration_name="hnsw-algo"),
        ],
    )

    index = SearchIndex(name=MEMORY_INDEX_NAME, fields=fields, vector_search=vector_search)

    print(f"Creating/updating index '{MEMORY_INDEX_NAME}' at {AZURE_SEARCH_ENDPOINT}...")

    try:
        client.create_or_update_index(index)
        print(f"✓ Index '{MEMORY_INDEX_NAME}' is ready.")
    except Exception as e:
        print(f"✗ Index operation failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    create_or_update_index()
