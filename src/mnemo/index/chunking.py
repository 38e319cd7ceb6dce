"""Line-bounded Markdown chunking.

Chunks are built from whole lines up to roughly `tokens * 4` characters, with
the tail of each chunk (up to `overlap * 4` characters) repeated at the start
of the next. The same input always yields the same boundaries and hashes, so
unchanged files cause no index churn.
"""

import hashlib
from dataclasses import dataclass

from mnemo.core.config import ChunkingConfig

CHARS_PER_TOKEN = 4
MIN_CHUNK_CHARS = 32


@dataclass
class MemoryChunk:
    text: str
    start_line: int  # 1-indexed, inclusive
    end_line: int
    hash: str


def hash_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def chunk_markdown(content: str, config: ChunkingConfig | None = None) -> list[MemoryChunk]:
    config = config or ChunkingConfig()
    max_chars = max(MIN_CHUNK_CHARS, config.tokens * CHARS_PER_TOKEN)
    # Overlap above half a chunk would re-emit mostly the same text
    overlap_chars = min(max(0, config.overlap * CHARS_PER_TOKEN), max_chars // 2)

    chunks: list[MemoryChunk] = []
    current: list[tuple[str, int]] = []
    current_chars = 0
    fresh = 0  # lines added since the last flush

    def flush() -> None:
        if fresh == 0:
            return
        text = "\n".join(line for line, _ in current)
        if text.strip():
            chunks.append(
                MemoryChunk(
                    text=text,
                    start_line=current[0][1],
                    end_line=current[-1][1],
                    hash=hash_text(text),
                )
            )

    def carry_overlap() -> tuple[list[tuple[str, int]], int]:
        if overlap_chars <= 0:
            return [], 0
        kept: list[tuple[str, int]] = []
        acc = 0
        for line, line_no in reversed(current):
            size = len(line) + 1
            if acc + size > overlap_chars:
                break
            kept.insert(0, (line, line_no))
            acc += size
        return kept, acc

    for index, line in enumerate(content.split("\n")):
        size = len(line) + 1
        if current and current_chars + size > max_chars:
            flush()
            current, current_chars = carry_overlap()
            fresh = 0
            if current_chars + size > max_chars:
                # Carried lines plus this one would overflow again
                current, current_chars = [], 0
        current.append((line, index + 1))
        current_chars += size
        fresh += 1

    flush()
    return chunks
