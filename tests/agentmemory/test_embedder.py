"""Unit tests for the embedding capability."""

import sys
import os
import asyncio
from types import SimpleNamespace

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", "server", "agentmemory_server"))

from agentmemory.errors import EmbeddingUnavailable, TransientExternalError
from agentmemory.ingestion.embedder import OpenAIEmbedder, UnconfiguredEmbedder, clear_cache


class FakeEmbeddings:
    def __init__(self):
        self.calls = []

    async def create(self, input, model):
        self.calls.append((input, model))
        return SimpleNamespace(data=[SimpleNamespace(embedding=[float(len(input[0])), 1.0])])


def setup_function():
    clear_cache()


def test_embed_uses_client_and_caches():
    embeddings = FakeEmbeddings()
    embedder = OpenAIEmbedder(provider="openai", model="m", client=SimpleNamespace(embeddings=embeddings))

    async def scenario():
        return await embedder.embed("hello"), await embedder.embed("hello")

    first, second = asyncio.run(scenario())
    assert first == second == [5.0, 1.0]
    assert embeddings.calls == [(["hello"], "m")]


def test_returned_vectors_are_copies():
    embedder = OpenAIEmbedder(provider="openai", model="m", client=SimpleNamespace(embeddings=FakeEmbeddings()))

    async def scenario():
        vector = await embedder.embed("abc")
        vector.append(99.0)
        return await embedder.embed("abc")

    assert asyncio.run(scenario()) == [3.0, 1.0]


def test_unconfigured_embedder_is_transient():
    with pytest.raises(EmbeddingUnavailable):
        asyncio.run(UnconfiguredEmbedder().embed("text"))
    assert issubclass(EmbeddingUnavailable, TransientExternalError)


def test_cache_is_scoped_to_model():
    small, large = FakeEmbeddings(), FakeEmbeddings()
    first = OpenAIEmbedder(provider="openai", model="small", client=SimpleNamespace(embeddings=small))
    second = OpenAIEmbedder(provider="openai", model="large", client=SimpleNamespace(embeddings=large))

    async def scenario():
        await first.embed("hello")
        await second.embed("hello")

    asyncio.run(scenario())
    assert small.calls == [(["hello"], "small")]
    assert large.calls == [(["hello"], "large")]
