"""Process-level registry of open memory indexes."""

import asyncio
from collections.abc import Callable
from pathlib import Path

import aiosqlite

from mnemo.core.config import MemorySearchConfig
from mnemo.core.logging import get_logger
from mnemo.index.embeddings import EmbeddingProvider, create_embedding_provider
from mnemo.index.search import MemoryIndex

logger = get_logger("index.registry")

ProviderFactory = Callable[[MemorySearchConfig], EmbeddingProvider | None]


def cache_key(agent_id: str, workspace_dir: Path, config: MemorySearchConfig) -> str:
    return f"{agent_id}:{workspace_dir}:{config.model_dump_json()}"


class IndexRegistry:
    """Owns MemoryIndex instances keyed by agent, workspace and config.

    Created once by the composition root; indexes stay open until evicted
    or the registry is closed.
    """

    def __init__(self, provider_factory: ProviderFactory = create_embedding_provider):
        self.provider_factory = provider_factory
        self._indexes: dict[str, MemoryIndex] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._indexes)

    async def get(
        self,
        agent_id: str,
        workspace_dir: Path,
        config: MemorySearchConfig,
        db_path: Path | None = None,
    ) -> tuple[MemoryIndex | None, str | None]:
        """Return (index, error). Disabled search yields (None, None)."""
        if not config.enabled:
            return None, None

        key = cache_key(agent_id, workspace_dir, config)
        async with self._lock:
            cached = self._indexes.get(key)
            if cached is not None:
                return cached, None

            index = MemoryIndex(
                workspace_dir,
                config=config,
                db_path=db_path,
                provider=self.provider_factory(config),
            )
            try:
                await index.initialize()
                if config.sync.on_conversation_start:
                    await index.sync(reason="conversation_start")
            except (OSError, aiosqlite.Error) as e:
                logger.error(f"Failed to open memory index for {agent_id}: {e}", exc_info=True)
                await index.close()
                return None, str(e)

            self._indexes[key] = index
            return index, None

    async def evict(self, agent_id: str, workspace_dir: Path, config: MemorySearchConfig) -> bool:
        async with self._lock:
            index = self._indexes.pop(cache_key(agent_id, workspace_dir, config), None)
        if index is None:
            return False
        await index.close()
        return True

    async def close(self) -> None:
        async with self._lock:
            indexes = list(self._indexes.values())
            self._indexes.clear()
        for index in indexes:
            await index.close()
        logger.debug(f"Closed {len(indexes)} memory indexes")
