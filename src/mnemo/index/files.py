"""Discovery of memory-bearing Markdown files."""

import os
from dataclasses import dataclass
from pathlib import Path

from mnemo.core.logging import get_logger
from mnemo.index.chunking import hash_text

logger = get_logger("index.files")

CONVERSATIONS_DIRNAME = "conversations"


@dataclass
class MemoryFileEntry:
    """Snapshot of one file used to decide whether it needs re-indexing."""

    path: str  # relative to workspace, forward slashes
    abs_path: Path
    mtime_ms: float
    size: int
    hash: str


def relative_memory_path(abs_path: Path, workspace_dir: Path) -> str:
    """Index key of a file: relative to the workspace, forward slashes."""
    return os.path.relpath(abs_path, workspace_dir).replace("\\", "/")


def normalize_extra_paths(workspace_dir: Path, extra_paths: list[str] | None) -> list[Path]:
    """Resolve extra paths against the workspace, dropping blanks and duplicates."""
    resolved: list[Path] = []
    for value in extra_paths or []:
        value = value.strip()
        if not value:
            continue
        path = Path(value)
        path = Path(os.path.abspath(path if path.is_absolute() else workspace_dir / path))
        if path not in resolved:
            resolved.append(path)
    return resolved


def _walk_markdown(directory: Path, files: list[Path]) -> None:
    """Depth-first walk in name order; symlinks are never followed."""
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as e:
        logger.warning(f"Cannot list {directory}: {e}")
        return
    for entry in entries:
        if entry.is_symlink():
            continue
        if entry.is_dir(follow_symlinks=False):
            _walk_markdown(Path(entry.path), files)
        elif entry.is_file(follow_symlinks=False) and entry.name.endswith(".md"):
            files.append(Path(entry.path))


def _is_plain(path: Path, want_dir: bool) -> bool:
    try:
        if path.is_symlink():
            return False
        return path.is_dir() if want_dir else path.is_file()
    except OSError:
        return False


def _dedupe(paths: list[Path]) -> list[Path]:
    seen: set[str] = set()
    unique: list[Path] = []
    for path in paths:
        try:
            key = os.path.realpath(path)
        except OSError:
            key = str(path)
        if key in seen:
            continue
        seen.add(key)
        unique.append(path)
    return unique


def list_memory_files(workspace_dir: Path, extra_paths: list[str] | None = None) -> list[Path]:
    """List MEMORY.md, memory.md, memory/**.md and configured extra paths.

    Order is deterministic; files reachable twice (same real path) appear once.
    """
    result: list[Path] = []

    for name in ("MEMORY.md", "memory.md"):
        candidate = workspace_dir / name
        if _is_plain(candidate, want_dir=False):
            result.append(candidate)

    memory_dir = workspace_dir / "memory"
    if _is_plain(memory_dir, want_dir=True):
        _walk_markdown(memory_dir, result)

    for extra in normalize_extra_paths(workspace_dir, extra_paths):
        if _is_plain(extra, want_dir=True):
            _walk_markdown(extra, result)
        elif _is_plain(extra, want_dir=False) and extra.name.endswith(".md"):
            result.append(extra)

    return _dedupe(result)


def list_conversation_files(workspace_dir: Path) -> list[Path]:
    """Markdown transcripts under conversations/."""
    result: list[Path] = []
    conversations_dir = workspace_dir / CONVERSATIONS_DIRNAME
    if _is_plain(conversations_dir, want_dir=True):
        _walk_markdown(conversations_dir, result)
    return _dedupe(result)


def build_file_entry(abs_path: Path, workspace_dir: Path) -> MemoryFileEntry:
    """Stat and hash a file. Raises OSError when it cannot be read."""
    stat = abs_path.stat()
    content = abs_path.read_text(encoding="utf-8")
    return MemoryFileEntry(
        path=relative_memory_path(abs_path, workspace_dir),
        abs_path=abs_path,
        mtime_ms=stat.st_mtime_ns / 1_000_000,
        size=stat.st_size,
        hash=hash_text(content),
    )
