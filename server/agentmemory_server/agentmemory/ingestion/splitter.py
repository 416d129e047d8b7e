"""Split normalised text into bounded, overlapping fragments."""

from __future__ import annotations

from typing import List

from langchain_text_splitters import RecursiveCharacterTextSplitter

from agentmemory import config as cfg

# Paragraphs first, then sentences, then words; characters only as a last resort.
SEPARATORS = [
    "\n\n",
    "\n",
    ". ",
    "! ",
    "? ",
    "; ",
    ", ",
    " ",
    "",
]


def split_chunks(
    text: str,
    chunk_size: int | None = None,
    chunk_overlap: int | None = None,
) -> List[str]:
    """Split *text* into chunks of at most *chunk_size* characters.

    Consecutive chunks share up to *chunk_overlap* characters so context
    at a split point is not lost.
    """
    chunk_size = chunk_size or cfg.KNOWLEDGE_CHUNK_SIZE
    chunk_overlap = cfg.KNOWLEDGE_CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap

    text = text.strip()
    if not text:
        return []
    if len(text) <= chunk_size:
        return [text]

    splitter = RecursiveCharacterTextSplitter(
        chunk_size=chunk_size,
        chunk_overlap=min(chunk_overlap, chunk_size // 2),
        length_function=len,
        is_separator_regex=False,
        separators=SEPARATORS,
    )
    return [chunk for chunk in splitter.split_text(text) if chunk.strip()]
