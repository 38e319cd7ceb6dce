"""Tests for embedding providers and vector math."""

import math
from types import SimpleNamespace

import pytest

from mnemo.core.config import MemorySearchConfig
from mnemo.index import embeddings as embeddings_module
from mnemo.index.embeddings import (
    LiteLLMEmbeddingProvider,
    cosine_similarity,
    create_embedding_provider,
    parse_embedding,
)


@pytest.mark.parametrize(
    "vector",
    [[1.0, 0.0, 0.0], [0.3, -2.5, 7.1], [1e-3, 1e-3], [42.0]],
)
def test_cosine_self_similarity_is_one(vector):
    assert math.isclose(cosine_similarity(vector, vector), 1.0, rel_tol=1e-9)


def test_cosine_zero_vector_scores_zero():
    zero = [0.0, 0.0, 0.0]
    assert cosine_similarity(zero, [1.0, 2.0, 3.0]) == 0.0
    assert cosine_similarity([1.0, 2.0, 3.0], zero) == 0.0
    assert cosine_similarity(zero, zero) == 0.0


def test_cosine_degenerate_inputs():
    assert cosine_similarity([], [1.0]) == 0.0
    assert cosine_similarity([1.0, 2.0], [1.0]) == 0.0
    assert math.isclose(cosine_similarity([1.0, 0.0], [0.0, 1.0]), 0.0, abs_tol=1e-12)
    assert math.isclose(cosine_similarity([1.0, 0.0], [-1.0, 0.0]), -1.0)


def test_parse_embedding():
    assert parse_embedding("[0.5, 1, -2]") == [0.5, 1.0, -2.0]
    assert parse_embedding(None) == []
    assert parse_embedding("") == []
    assert parse_embedding("not json") == []
    assert parse_embedding('{"a": 1}') == []
    assert parse_embedding('["x"]') == []


def test_create_embedding_provider():
    assert create_embedding_provider(MemorySearchConfig(provider="none")) is None
    provider = create_embedding_provider(MemorySearchConfig(model="text-embedding-3-large"))
    assert isinstance(provider, LiteLLMEmbeddingProvider)
    assert provider.model == "text-embedding-3-large"


@pytest.mark.asyncio
async def test_litellm_provider_batches_and_orders(monkeypatch):
    calls = []

    async def fake_aembedding(**params):
        calls.append(params["input"])
        # Out of order on purpose; mix dict and object items
        data = [
            {"index": i, "embedding": [float(len(text))]} if i % 2 else
            SimpleNamespace(index=i, embedding=[float(len(text))])
            for i, text in enumerate(params["input"])
        ]
        return SimpleNamespace(data=list(reversed(data)))

    monkeypatch.setattr(embeddings_module, "aembedding", fake_aembedding)

    provider = LiteLLMEmbeddingProvider(model="m", batch_size=2)
    vectors = await provider.get_embeddings(["a", "bb", "ccc"])

    assert calls == [["a", "bb"], ["ccc"]]
    assert vectors == [[1.0], [2.0], [3.0]]
    assert await provider.get_embedding("dddd") == [4.0]
