"""
CLI entry point.

Commands:
- init: Create the data directory and memory workspace
- sync: Index memory files (--force re-indexes everything)
- search: Query the memory index
- get: Print lines from a memory file
- status: Show index counts and provenance

Flags:
- --debug: Enable debug logging
- --config FILE: Load settings from a YAML file
"""

import asyncio
import json
import logging
import sys
from pathlib import Path

from mnemo.core.config import Settings, SyncConfig, load_settings
from mnemo.core.logging import get_logger, setup_logging
from mnemo.index.registry import IndexRegistry
from mnemo.index.search import MemoryIndex
from mnemo.memory.persistence import resolve_memory_dir

USAGE = """Usage: mnemo [--debug] [--config FILE] <command>
Commands:
  init                      create data directory and memory workspace
  sync [--force]            index memory files
  search <query>            search indexed memory
  get <path> [from] [lines] print lines from a memory file
  status                    show index status"""


def _pop_flag(args: list[str], flag: str) -> bool:
    if flag in args:
        args.remove(flag)
        return True
    return False


def _pop_option(args: list[str], option: str) -> str | None:
    if option not in args:
        return None
    position = args.index(option)
    if position + 1 >= len(args):
        raise ValueError(f"{option} requires a value")
    value = args[position + 1]
    del args[position : position + 2]
    return value


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = list(sys.argv[1:] if argv is None else argv)

    debug_mode = _pop_flag(args, "--debug")
    try:
        config_file = _pop_option(args, "--config")
        settings = load_settings(Path(config_file) if config_file else None)
    except (OSError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    setup_logging(level=logging.DEBUG if debug_mode else logging.WARNING)
    logger = get_logger("cli")

    if not args:
        print(USAGE)
        return 1

    command, rest = args[0], args[1:]
    logger.debug(f"Running {command} for agent {settings.agent_id}")

    if command == "init":
        return _init(settings)
    if command == "sync":
        return asyncio.run(_sync(settings, force=_pop_flag(rest, "--force")))
    if command == "search":
        if not rest:
            print("Usage: mnemo search <query>")
            return 1
        return asyncio.run(_search(settings, " ".join(rest)))
    if command == "get":
        if not rest:
            print("Usage: mnemo get <path> [from] [lines]")
            return 1
        try:
            numbers = [int(v) for v in rest[1:3]]
        except ValueError:
            print("from and lines must be integers")
            return 1
        return asyncio.run(_get(settings, rest[0], *numbers))
    if command == "status":
        return asyncio.run(_status(settings))

    print(f"Unknown command: {command}")
    print(USAGE)
    return 1


def _init(settings: Settings) -> int:
    for directory in (
        settings.data_dir,
        settings.storage_dir,
        resolve_memory_dir(settings.workspace_dir),
    ):
        directory.mkdir(parents=True, exist_ok=True)
        print(f"Created: {directory}")
    return 0


async def _open_index(settings: Settings, registry: IndexRegistry) -> MemoryIndex | None:
    # The CLI syncs explicitly, never on open
    config = settings.memory_search.model_copy(
        update={"sync": SyncConfig(on_conversation_start=False)}
    )
    index, error = await registry.get(
        settings.agent_id, settings.workspace_dir, config, db_path=settings.index_path
    )
    if error:
        print(f"Error: {error}")
    elif index is None:
        print("Memory search is disabled.")
    return index


async def _sync(settings: Settings, force: bool) -> int:
    registry = IndexRegistry()
    try:
        index = await _open_index(settings, registry)
        if index is None:
            return 1
        stats = await index.sync(reason="cli", force=force)
        print(
            f"Indexed {stats.indexed}, unchanged {stats.skipped}, "
            f"removed {stats.removed}, failed {stats.failed}"
        )
        return 0 if stats.failed == 0 else 1
    finally:
        await registry.close()


async def _search(settings: Settings, query: str) -> int:
    registry = IndexRegistry()
    try:
        index = await _open_index(settings, registry)
        if index is None:
            return 1
        results = await index.search(query)
        if not results:
            print("No results.")
            return 0
        for result in results:
            print(f"{result.path}:{result.start_line}-{result.end_line}  ({result.score:.3f})")
            print(f"  {result.snippet.strip()}")
        return 0
    finally:
        await registry.close()


async def _get(settings: Settings, path: str, from_line: int | None = None, lines: int | None = None) -> int:
    registry = IndexRegistry()
    try:
        index = await _open_index(settings, registry)
        if index is None:
            return 1
        try:
            data = index.read_file(path, from_line=from_line, lines=lines)
        except (FileNotFoundError, ValueError) as e:
            print(f"Error: {e}")
            return 1
        print(data["text"])
        return 0
    finally:
        await registry.close()


async def _status(settings: Settings) -> int:
    registry = IndexRegistry()
    try:
        index = await _open_index(settings, registry)
        if index is None:
            return 1
        status = await index.status()
        print(json.dumps(status.to_dict(), indent=2))
        return 0
    finally:
        await registry.close()


if __name__ == "__main__":
    sys.exit(main())
