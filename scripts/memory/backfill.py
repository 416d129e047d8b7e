#!/usr/bin/env python3
"""Backfill knowledge documents into the memory store.

Usage:
    python backfill.py [--dry-run]

Reads documents from stdin (one JSON object per line, ``{"text": ..., "source": ...}``)
and runs each through knowledge ingestion (normalise → split → embed → store).
"""

from __future__ import annotations

import asyncio
import json
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", "server", "agentmemory_server"))

from dotenv import load_dotenv

load_dotenv()

from agentmemory.ingestion.knowledge import ingest
from agentmemory.models import Document
from agentmemory.runtime import build_runtime_from_env


async def backfill(dry_run: bool = False) -> None:
    runtime = build_runtime_from_env()
    print(f"Reading documents for agent {runtime.agent_id} from stdin (one JSON per line)...")
    stored = 0
    fragments = 0
    errors = 0

    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue
        try:
            data = json.loads(line)
            document = Document.create(runtime.agent_id, data["text"], data.get("source", "knowledge"))
            if data.get("id"):
                document.id = data["id"]
            if dry_run:
                print(f"  [dry-run] Would ingest document: {document.id}")
                continue
            result = await ingest(runtime, document)
            stored += 1
            fragments += len(result.fragment_ids)
        except Exception as e:
            print(f"  Error: {e}")
            errors += 1

    print(f"\nBackfill complete: documents={stored} fragments={fragments} errors={errors}")


if __name__ == "__main__":
    dr = "--dry-run" in sys.argv
    asyncio.run(backfill(dry_run=dr))
