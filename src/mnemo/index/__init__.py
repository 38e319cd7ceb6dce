"""Retrieval index over memory Markdown files."""

from mnemo.index.chunking import MemoryChunk, chunk_markdown
from mnemo.index.embeddings import EmbeddingProvider, cosine_similarity
from mnemo.index.registry import IndexRegistry
from mnemo.index.search import IndexStatus, MemoryIndex, MemorySearchResult, SyncStats

__all__ = [
    "EmbeddingProvider",
    "IndexRegistry",
    "IndexStatus",
    "MemoryChunk",
    "MemoryIndex",
    "MemorySearchResult",
    "SyncStats",
    "chunk_markdown",
    "cosine_similarity",
]
