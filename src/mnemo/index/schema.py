"""SQLite schema for the retrieval index."""

import sqlite3

import aiosqlite

from mnemo.core.logging import get_logger

logger = get_logger("index.schema")

FTS_TABLE = "fts_memory"

SCHEMA = """
-- Index provenance (provider, model, chunking)
CREATE TABLE IF NOT EXISTS meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

-- One row per indexed file; drives incremental sync
CREATE TABLE IF NOT EXISTS files (
    path TEXT PRIMARY KEY,
    source TEXT NOT NULL DEFAULT 'memory',
    hash TEXT NOT NULL,
    mtime REAL NOT NULL,
    size INTEGER NOT NULL
);

-- Line-ranged chunks; id = {path}:{start_line}:{end_line}
CREATE TABLE IF NOT EXISTS chunks (
    id TEXT PRIMARY KEY,
    path TEXT NOT NULL,
    source TEXT NOT NULL DEFAULT 'memory',
    start_line INTEGER NOT NULL,
    end_line INTEGER NOT NULL,
    hash TEXT NOT NULL,
    model TEXT NOT NULL,
    text TEXT NOT NULL,
    embedding TEXT NOT NULL DEFAULT '[]',  -- JSON array
    updated_at INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_chunks_path ON chunks(path);
CREATE INDEX IF NOT EXISTS idx_chunks_source ON chunks(source);

-- Embeddings keyed by chunk hash so unchanged text is never re-embedded
CREATE TABLE IF NOT EXISTS embedding_cache (
    provider TEXT NOT NULL,
    model TEXT NOT NULL,
    hash TEXT NOT NULL,
    embedding TEXT NOT NULL,
    updated_at INTEGER NOT NULL,
    PRIMARY KEY (provider, model, hash)
);
"""

FTS_SCHEMA = f"""
CREATE VIRTUAL TABLE IF NOT EXISTS {FTS_TABLE} USING fts5(
    id UNINDEXED,
    path UNINDEXED,
    source UNINDEXED,
    start_line UNINDEXED,
    end_line UNINDEXED,
    model UNINDEXED,
    text
);
"""


async def ensure_memory_index_schema(conn: aiosqlite.Connection, fts_enabled: bool = True) -> bool:
    """Create tables; returns whether the FTS5 mirror is usable."""
    await conn.executescript(SCHEMA)

    fts_available = False
    if fts_enabled:
        try:
            await conn.executescript(FTS_SCHEMA)
            fts_available = True
        except sqlite3.Error as e:
            logger.warning(f"FTS5 unavailable, lexical search disabled: {e}")

    await conn.commit()
    return fts_available
