"""Memory tools: search, read and write the agent's Markdown memory."""

from typing import Literal

from mnemo.core.logging import get_logger
from mnemo.core.types import ActionResult
from mnemo.memory.manager import MemoryManager
from mnemo.memory.persistence import (
    append_daily_memory,
    append_long_term_memory,
    update_long_term_memory,
)
from mnemo.tools.base import tool
from mnemo.tools.registry import ToolRegistry, register_tool

logger = get_logger("tools.memory")

# Global reference to the memory manager (set during initialization)
_manager: MemoryManager | None = None


def set_memory_manager(manager: MemoryManager | None) -> None:
    """Set the memory manager the tools operate on."""
    global _manager
    _manager = manager


def _get_manager() -> MemoryManager:
    if _manager is None:
        raise RuntimeError("Memory manager not initialized. Call set_memory_manager() first.")
    return _manager


def _disabled() -> ActionResult:
    return ActionResult(
        success=False,
        data={"results": [], "disabled": True},
        error="Memory search is disabled",
    )


@tool(
    "memory_search",
    "Search memory files (MEMORY.md and daily logs) for relevant notes",
    examples=['memory_search(query="coffee preference")'],
)
async def memory_search(
    query: str, max_results: int | None = None, min_score: float | None = None
) -> ActionResult:
    """
    Search indexed memory.

    Args:
        query: What to look for
        max_results: Maximum number of hits to return
        min_score: Minimum relevance score between 0 and 1

    Returns:
        ActionResult with ranked results (path, line range, score, snippet)
    """
    manager = _get_manager()
    if manager.index is None:
        return _disabled()

    results = await manager.search(query, max_results=max_results, min_score=min_score)
    return ActionResult(
        success=True,
        data={"results": [r.to_dict() for r in results], "count": len(results)},
    )


@tool(
    "memory_get",
    "Read lines from a memory file, typically after a memory_search hit",
    examples=['memory_get(path="MEMORY.md", from_line=10, lines=20)'],
)
async def memory_get(
    path: str, from_line: int | None = None, lines: int | None = None
) -> ActionResult:
    """
    Read part of a memory file.

    Args:
        path: File path relative to the memory workspace
        from_line: First line to read (1-indexed)
        lines: Number of lines to read

    Returns:
        ActionResult with the requested text
    """
    manager = _get_manager()
    if manager.index is None:
        return _disabled()

    try:
        data = manager.index.read_file(path, from_line=from_line, lines=lines)
    except (FileNotFoundError, ValueError) as e:
        return ActionResult(success=False, error=str(e))
    return ActionResult(success=True, data=data)


@tool(
    "memory_save",
    "Save a note to today's memory log",
    examples=['memory_save(content="Deployed the staging build, rollback plan in ops doc")'],
)
async def memory_save(content: str) -> ActionResult:
    """
    Append to the daily log.

    Args:
        content: Note to remember

    Returns:
        ActionResult with the file written
    """
    manager = _get_manager()
    if not content.strip():
        return ActionResult(success=False, error="Content is empty")
    if manager.memory_root is None:
        return ActionResult(success=False, error="No memory workspace configured")

    path = append_daily_memory(manager.memory_root, content.strip())
    if path is None:
        return ActionResult(success=False, error="Failed to write daily memory")
    if manager.index is not None:
        manager.index.mark_dirty()
    return ActionResult(success=True, data={"path": str(path)})


@tool(
    "memory_update",
    "Add to or rewrite long-term memory (MEMORY.md)",
    examples=[
        'memory_update(content="User prefers metric units")',
        'memory_update(content="# Memory\\n- prefers tea", mode="replace")',
    ],
)
async def memory_update(content: str, mode: Literal["append", "replace"] = "append") -> ActionResult:
    """
    Write long-term memory.

    Args:
        content: Text to store
        mode: "append" adds a timestamped entry, "replace" rewrites the whole file

    Returns:
        ActionResult with the file written
    """
    manager = _get_manager()
    if mode not in ("append", "replace"):
        return ActionResult(success=False, error=f"Invalid mode: {mode}")
    if mode == "append" and not content.strip():
        return ActionResult(success=False, error="Content is empty")
    if manager.memory_root is None:
        return ActionResult(success=False, error="No memory workspace configured")

    if mode == "replace":
        path = update_long_term_memory(manager.memory_root, content)
    else:
        path = append_long_term_memory(manager.memory_root, content.strip())
    if path is None:
        return ActionResult(success=False, error="Failed to write long-term memory")
    if manager.index is not None:
        manager.index.mark_dirty()
    return ActionResult(success=True, data={"path": str(path), "mode": mode})


def register_memory_tools(registry: ToolRegistry | None = None) -> None:
    """Register memory tools with the given (or global) registry."""
    for func in (memory_search, memory_get, memory_save, memory_update):
        register_tool(func._tool, registry)  # type: ignore[attr-defined]
    logger.debug("Registered memory tools")
