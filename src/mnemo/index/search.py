"""Hybrid retrieval index over memory Markdown files.

Chunks live in SQLite with their embeddings stored as JSON text. Search
combines cosine similarity over those embeddings with BM25 ranking from an
FTS5 mirror, and falls back to word-overlap scoring when no embedding
provider is configured.
"""

import asyncio
import json
import os
import re
import sqlite3
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import aiosqlite

from mnemo.core.config import MemorySearchConfig, MemorySource
from mnemo.core.logging import get_logger
from mnemo.core.typing import Embedding
from mnemo.index.chunking import MemoryChunk, chunk_markdown
from mnemo.index.embeddings import EmbeddingProvider, cosine_similarity, parse_embedding
from mnemo.index.files import (
    CONVERSATIONS_DIRNAME,
    MemoryFileEntry,
    build_file_entry,
    list_conversation_files,
    list_memory_files,
    normalize_extra_paths,
    relative_memory_path,
)
from mnemo.index.schema import FTS_TABLE, ensure_memory_index_schema

logger = get_logger("index.search")

SNIPPET_CONTEXT = 50
SNIPPET_FALLBACK = 200
MTIME_TOLERANCE_MS = 1.0

_WORD_RE = re.compile(r"\w+", re.UNICODE)


@dataclass
class MemorySearchResult:
    path: str
    start_line: int
    end_line: int
    score: float
    snippet: str
    source: MemorySource = "memory"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SyncStats:
    reason: str
    indexed: int = 0
    skipped: int = 0
    removed: int = 0
    failed: int = 0
    cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class IndexStatus:
    files: int
    chunks: int
    dirty: bool
    workspace_dir: str
    db_path: str
    provider: str
    model: str
    sources: list[str] = field(default_factory=list)
    fts_available: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def extract_snippet(text: str, query: str) -> str:
    """Text around the first occurrence of the query, else the head of the chunk."""
    position = text.lower().find(query.lower()) if query else -1
    if position >= 0:
        start = max(0, position - SNIPPET_CONTEXT)
        end = min(len(text), position + len(query) + SNIPPET_CONTEXT)
        return text[start:end]
    if len(text) <= SNIPPET_FALLBACK:
        return text
    return text[:SNIPPET_FALLBACK] + "..."


def text_match_score(text: str, query: str) -> float:
    """Fraction of query words present in the text, case-insensitive."""
    words = [w for w in query.lower().split() if w]
    if not words:
        return 0.0
    lowered = text.lower()
    return sum(1 for w in words if w in lowered) / len(words)


def build_fts_query(query: str) -> str | None:
    """Quote each term so user input can't hit FTS5 query syntax."""
    terms = _WORD_RE.findall(query)
    if not terms:
        return None
    return " OR ".join(f'"{term}"' for term in terms)


class MemoryIndex:
    """SQLite-backed chunk index for one workspace."""

    def __init__(
        self,
        workspace_dir: Path,
        config: MemorySearchConfig | None = None,
        db_path: Path | None = None,
        provider: EmbeddingProvider | None = None,
    ):
        self.workspace_dir = Path(workspace_dir)
        self.config = config or MemorySearchConfig()
        self.db_path = db_path or self.config.store.path or self.workspace_dir / "memory-index.db"
        self.provider = provider
        self.fts_available = False
        self.dirty = False
        self._full_resync = False
        self._conn: aiosqlite.Connection | None = None

    @property
    def provider_id(self) -> str:
        return self.provider.id if self.provider else "none"

    @property
    def model(self) -> str:
        return self.provider.model if self.provider else "none"

    @property
    def initialized(self) -> bool:
        return self._conn is not None

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Memory index not initialized. Call initialize() first.")
        return self._conn

    def _provenance(self) -> dict[str, str]:
        return {
            "provider": self.provider_id,
            "model": self.model,
            "chunk_tokens": str(self.config.chunking.tokens),
            "chunk_overlap": str(self.config.chunking.overlap),
        }

    async def initialize(self) -> None:
        """Open the database and ensure the schema. Safe to call repeatedly."""
        if self._conn is not None:
            return
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self.db_path)
        self.fts_available = await ensure_memory_index_schema(
            self._conn, fts_enabled=self.config.store.fts_enabled
        )

        stored: dict[str, str] = {}
        async with self._conn.execute("SELECT key, value FROM meta") as cursor:
            async for row in cursor:
                stored[row[0]] = row[1]
        if stored != self._provenance():
            if stored:
                logger.info(f"Index provenance changed for {self.db_path}, full resync pending")
            self.dirty = True
            self._full_resync = True

        logger.info(f"Opened memory index: {self.db_path} (fts={self.fts_available})")

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    def mark_dirty(self) -> None:
        """Flag pending work; unchanged files are still skipped on the next sync."""
        self.dirty = True

    # Sync

    def _discover(self) -> list[tuple[Path, MemorySource]]:
        found: list[tuple[Path, MemorySource]] = []
        if "memory" in self.config.sources:
            found.extend(
                (p, "memory") for p in list_memory_files(self.workspace_dir, self.config.extra_paths)
            )
        if "conversations" in self.config.sources:
            found.extend((p, "conversations") for p in list_conversation_files(self.workspace_dir))
        return found

    async def sync(
        self,
        reason: str = "manual",
        force: bool = False,
        cancel_event: asyncio.Event | None = None,
    ) -> SyncStats:
        """Bring the index in line with the files on disk.

        Unchanged files (same hash and mtime) are skipped unless forced or the
        index provenance changed. Cancellation is honoured between files only.
        """
        await self.initialize()
        stats = SyncStats(reason=reason)
        force = force or self._full_resync

        async with self.conn.execute("SELECT path, hash, mtime FROM files") as cursor:
            known = {row[0]: (row[1], row[2]) async for row in cursor}

        seen: set[str] = set()
        for abs_path, source in self._discover():
            if cancel_event is not None and cancel_event.is_set():
                stats.cancelled = True
                logger.info(f"Sync ({reason}) cancelled after {stats.indexed} files")
                return stats

            try:
                entry = build_file_entry(abs_path, self.workspace_dir)
            except (OSError, UnicodeDecodeError) as e:
                # Read failures keep the existing rows
                seen.add(relative_memory_path(abs_path, self.workspace_dir))
                logger.warning(f"Skipping unreadable memory file {abs_path}: {e}")
                stats.failed += 1
                continue

            seen.add(entry.path)
            previous = known.get(entry.path)
            if (
                not force
                and previous is not None
                and previous[0] == entry.hash
                and abs(previous[1] - entry.mtime_ms) < MTIME_TOLERANCE_MS
            ):
                stats.skipped += 1
                continue

            try:
                await self._index_file(entry, source)
                stats.indexed += 1
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Failed to index {entry.path}: {e}")
                stats.failed += 1

        for stale in sorted(set(known) - seen):
            await self._remove_path(stale)
            stats.removed += 1
        await self.conn.commit()

        await self._write_provenance()
        self.dirty = False
        self._full_resync = False
        logger.info(
            f"Sync ({reason}) done: {stats.indexed} indexed, {stats.skipped} unchanged, "
            f"{stats.removed} removed"
        )
        return stats

    async def _write_provenance(self) -> None:
        await self.conn.execute("DELETE FROM meta")
        await self.conn.executemany(
            "INSERT INTO meta (key, value) VALUES (?, ?)", list(self._provenance().items())
        )
        await self.conn.commit()

    async def _remove_path(self, path: str) -> None:
        await self.conn.execute("DELETE FROM chunks WHERE path = ?", (path,))
        await self.conn.execute("DELETE FROM files WHERE path = ?", (path,))
        if self.fts_available:
            try:
                await self.conn.execute(f"DELETE FROM {FTS_TABLE} WHERE path = ?", (path,))
            except sqlite3.Error as e:
                logger.warning(f"FTS delete failed for {path}: {e}")

    async def _embed_chunks(self, chunks: list[MemoryChunk], path: str) -> list[Embedding]:
        """Embeddings for each chunk, reusing cached vectors by content hash."""
        if self.provider is None or not chunks:
            return [[] for _ in chunks]

        cached: dict[str, Embedding] = {}
        hashes = sorted({c.hash for c in chunks})
        placeholders = ",".join("?" for _ in hashes)
        async with self.conn.execute(
            f"SELECT hash, embedding FROM embedding_cache "
            f"WHERE provider = ? AND model = ? AND hash IN ({placeholders})",
            (self.provider_id, self.model, *hashes),
        ) as cursor:
            async for row in cursor:
                vector = parse_embedding(row[1])
                if vector:
                    cached[row[0]] = vector

        missing: dict[str, str] = {}
        for chunk in chunks:
            if chunk.hash not in cached and chunk.hash not in missing:
                missing[chunk.hash] = chunk.text

        if missing:
            try:
                vectors = await self.provider.get_embeddings(list(missing.values()))
            except Exception as e:
                logger.warning(f"Embedding failed for {path}, indexing without vectors: {e}")
                vectors = []
            if len(vectors) != len(missing):
                if vectors:
                    logger.warning(f"Embedding count mismatch for {path}, indexing without vectors")
                vectors = []

            now = int(time.time() * 1000)
            for chunk_hash, vector in zip(missing, vectors):
                if not vector:
                    continue
                cached[chunk_hash] = list(vector)
                await self.conn.execute(
                    """INSERT OR REPLACE INTO embedding_cache
                       (provider, model, hash, embedding, updated_at)
                       VALUES (?, ?, ?, ?, ?)""",
                    (self.provider_id, self.model, chunk_hash, json.dumps(vector), now),
                )

        return [cached.get(c.hash, []) for c in chunks]

    async def _index_file(self, entry: MemoryFileEntry, source: MemorySource) -> None:
        content = entry.abs_path.read_text(encoding="utf-8")
        chunks = chunk_markdown(content, self.config.chunking)

        await self._remove_path(entry.path)
        embeddings = await self._embed_chunks(chunks, entry.path)

        now = int(time.time() * 1000)
        for chunk, embedding in zip(chunks, embeddings):
            chunk_id = f"{entry.path}:{chunk.start_line}:{chunk.end_line}"
            await self.conn.execute(
                """INSERT OR REPLACE INTO chunks
                   (id, path, source, start_line, end_line, hash, model, text, embedding, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    chunk_id,
                    entry.path,
                    source,
                    chunk.start_line,
                    chunk.end_line,
                    chunk.hash,
                    self.model,
                    chunk.text,
                    json.dumps(embedding),
                    now,
                ),
            )
            if self.fts_available:
                try:
                    await self.conn.execute(
                        f"""INSERT INTO {FTS_TABLE}
                            (id, path, source, start_line, end_line, model, text)
                            VALUES (?, ?, ?, ?, ?, ?, ?)""",
                        (
                            chunk_id,
                            entry.path,
                            source,
                            chunk.start_line,
                            chunk.end_line,
                            self.model,
                            chunk.text,
                        ),
                    )
                except sqlite3.Error as e:
                    logger.warning(f"FTS insert failed for {chunk_id}: {e}")

        await self.conn.execute(
            """INSERT INTO files (path, source, hash, mtime, size)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(path) DO UPDATE SET
                   source = excluded.source, hash = excluded.hash,
                   mtime = excluded.mtime, size = excluded.size""",
            (entry.path, source, entry.hash, entry.mtime_ms, entry.size),
        )
        await self.conn.commit()
        logger.debug(f"Indexed {entry.path}: {len(chunks)} chunks")

    # Search

    def _source_filter(self, conversation_key: str | None) -> tuple[str, list[Any]]:
        sources = list(self.config.sources) or ["memory"]
        clause = f"source IN ({','.join('?' for _ in sources)})"
        params: list[Any] = list(sources)
        if conversation_key:
            clause += " AND (source != 'conversations' OR path LIKE ?)"
            params.append(f"{CONVERSATIONS_DIRNAME}/{conversation_key}%")
        return clause, params

    async def search(
        self,
        query: str,
        max_results: int | None = None,
        min_score: float | None = None,
        conversation_key: str | None = None,
    ) -> list[MemorySearchResult]:
        """Ranked chunks for a query, best first."""
        query = query.strip()
        if not query:
            return []
        await self.initialize()

        max_results = max_results if max_results is not None else self.config.query.max_results
        min_score = min_score if min_score is not None else self.config.query.min_score
        hybrid = self.config.query.hybrid
        where, params = self._source_filter(conversation_key)

        query_embedding: Embedding | None = None
        if self.provider is not None:
            try:
                query_embedding = await self.provider.get_embedding(query) or None
            except Exception as e:
                logger.warning(f"Query embedding failed, continuing without vectors: {e}")

        merged: dict[tuple[str, int, int], MemorySearchResult] = {}

        if query_embedding and hybrid.enabled:
            async with self.conn.execute(
                f"SELECT path, source, start_line, end_line, text, embedding FROM chunks WHERE {where}",
                params,
            ) as cursor:
                async for row in cursor:
                    embedding = parse_embedding(row[5])
                    if not embedding:
                        continue
                    similarity = cosine_similarity(query_embedding, embedding)
                    if similarity >= min_score:
                        merged[(row[0], row[2], row[3])] = MemorySearchResult(
                            path=row[0],
                            start_line=row[2],
                            end_line=row[3],
                            score=similarity,
                            snippet=extract_snippet(row[4], query),
                            source=row[1],
                        )

        if hybrid.enabled and self.fts_available:
            await self._merge_fts(merged, query, where, params, max_results, min_score)

        results = list(merged.values())
        if not results and not query_embedding:
            results = await self._fallback_search(query, where, params, min_score)

        results.sort(key=lambda r: r.score, reverse=True)
        logger.debug(f"Search '{query}' returned {len(results[:max_results])} results")
        return results[:max_results]

    async def _merge_fts(
        self,
        merged: dict[tuple[str, int, int], MemorySearchResult],
        query: str,
        where: str,
        params: list[Any],
        max_results: int,
        min_score: float,
    ) -> None:
        fts_query = build_fts_query(query)
        if fts_query is None:
            return
        hybrid = self.config.query.hybrid
        limit = max_results * hybrid.candidate_multiplier
        try:
            async with self.conn.execute(
                f"""SELECT path, source, start_line, end_line, text, bm25({FTS_TABLE}) AS rank
                    FROM {FTS_TABLE}
                    WHERE {FTS_TABLE} MATCH ? AND {where}
                    ORDER BY rank
                    LIMIT ?""",
                (fts_query, *params, limit),
            ) as cursor:
                rows = await cursor.fetchall()
        except sqlite3.Error as e:
            logger.warning(f"FTS search failed, skipping lexical tier: {e}")
            return
        if not rows:
            return

        # bm25() is negative with larger magnitude for better matches
        max_rank = max(abs(row[5]) for row in rows)
        for row in rows:
            fts_score = abs(row[5]) / max_rank if max_rank > 0 else 1.0
            key = (row[0], row[2], row[3])
            existing = merged.get(key)
            if existing is not None:
                existing.score = existing.score * hybrid.vector_weight + fts_score * hybrid.text_weight
            elif fts_score >= min_score:
                merged[key] = MemorySearchResult(
                    path=row[0],
                    start_line=row[2],
                    end_line=row[3],
                    score=fts_score * hybrid.text_weight,
                    snippet=extract_snippet(row[4], query),
                    source=row[1],
                )

    async def _fallback_search(
        self, query: str, where: str, params: list[Any], min_score: float
    ) -> list[MemorySearchResult]:
        results = []
        async with self.conn.execute(
            f"SELECT path, source, start_line, end_line, text FROM chunks WHERE {where}",
            params,
        ) as cursor:
            async for row in cursor:
                score = text_match_score(row[4], query)
                if score > 0 and score >= min_score:
                    results.append(
                        MemorySearchResult(
                            path=row[0],
                            start_line=row[2],
                            end_line=row[3],
                            score=score,
                            snippet=extract_snippet(row[4], query),
                            source=row[1],
                        )
                    )
        return results

    # Reads

    def _resolve_readable(self, rel_path: str) -> Path:
        if not rel_path or not rel_path.strip():
            raise ValueError("Path is required")
        candidate = Path(rel_path.strip())
        if not candidate.is_absolute():
            candidate = self.workspace_dir / candidate
        resolved = Path(os.path.realpath(candidate))

        roots = [Path(os.path.realpath(self.workspace_dir))]
        roots.extend(
            Path(os.path.realpath(p))
            for p in normalize_extra_paths(self.workspace_dir, self.config.extra_paths)
        )
        if not any(resolved == root or resolved.is_relative_to(root) for root in roots):
            raise ValueError(f"Path escapes the memory workspace: {rel_path}")
        if resolved.suffix != ".md":
            raise ValueError(f"Not a Markdown memory file: {rel_path}")
        if not resolved.is_file():
            raise FileNotFoundError(f"File not found: {rel_path}")
        return resolved

    def read_file(
        self, rel_path: str, from_line: int | None = None, lines: int | None = None
    ) -> dict[str, Any]:
        """Raw line range of a memory file, 1-indexed and clamped to the file."""
        path = self._resolve_readable(rel_path)
        all_lines = path.read_text(encoding="utf-8").split("\n")

        start = max(1, from_line) if from_line else 1
        start = min(start, max(1, len(all_lines)))
        end = min(len(all_lines), start + lines - 1) if lines and lines > 0 else len(all_lines)
        return {
            "path": rel_path,
            "from_line": start,
            "to_line": end,
            "text": "\n".join(all_lines[start - 1 : end]),
        }

    async def status(self) -> IndexStatus:
        files = chunks = 0
        if self._conn is not None:
            async with self._conn.execute("SELECT COUNT(*) FROM files") as cursor:
                files = (await cursor.fetchone())[0]
            async with self._conn.execute("SELECT COUNT(*) FROM chunks") as cursor:
                chunks = (await cursor.fetchone())[0]
        return IndexStatus(
            files=files,
            chunks=chunks,
            dirty=self.dirty,
            workspace_dir=str(self.workspace_dir),
            db_path=str(self.db_path),
            provider=self.provider_id,
            model=self.model,
            sources=list(self.config.sources),
            fts_available=self.fts_available,
        )
