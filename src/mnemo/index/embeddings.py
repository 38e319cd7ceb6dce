"""Embedding providers and vector helpers."""

import json
import math
from typing import Protocol, runtime_checkable

import litellm
from litellm import aembedding

from mnemo.core.config import MemorySearchConfig
from mnemo.core.logging import get_logger
from mnemo.core.typing import Embedding

logger = get_logger("index.embeddings")

litellm.suppress_debug_info = True


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Anything that can turn text into vectors. Calls may raise."""

    id: str
    model: str

    async def get_embedding(self, text: str) -> Embedding:
        ...

    async def get_embeddings(self, texts: list[str]) -> list[Embedding]:
        ...


def _field(item, name: str):
    # Providers return either plain dicts or pydantic objects
    return item[name] if isinstance(item, dict) else getattr(item, name)


class LiteLLMEmbeddingProvider:
    """Embeddings through LiteLLM (OpenAI, Azure, Ollama, Voyage, ...)."""

    id = "litellm"

    def __init__(
        self,
        model: str,
        batch_size: int = 64,
        api_key: str | None = None,
        api_base: str | None = None,
    ):
        self.model = model
        self.batch_size = batch_size
        self.api_key = api_key
        self.api_base = api_base

    async def _embed(self, texts: list[str]) -> list[Embedding]:
        params: dict = {"model": self.model, "input": texts}
        if self.api_key:
            params["api_key"] = self.api_key
        if self.api_base:
            params["api_base"] = self.api_base
        response = await aembedding(**params)
        items = sorted(response.data, key=lambda item: _field(item, "index"))
        return [list(_field(item, "embedding")) for item in items]

    async def get_embedding(self, text: str) -> Embedding:
        vectors = await self._embed([text])
        return vectors[0] if vectors else []

    async def get_embeddings(self, texts: list[str]) -> list[Embedding]:
        vectors: list[Embedding] = []
        for start in range(0, len(texts), self.batch_size):
            vectors.extend(await self._embed(texts[start : start + self.batch_size]))
        return vectors


def create_embedding_provider(config: MemorySearchConfig) -> EmbeddingProvider | None:
    if config.provider == "none":
        return None
    return LiteLLMEmbeddingProvider(model=config.model)


def parse_embedding(raw: str | None) -> Embedding:
    """Decode a stored JSON vector; anything unusable becomes []."""
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return []
    if not isinstance(value, list):
        return []
    try:
        return [float(x) for x in value]
    except (TypeError, ValueError):
        return []


def cosine_similarity(a: Embedding, b: Embedding) -> float:
    """Cosine similarity; empty, mismatched or zero-norm vectors score 0."""
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))
