"""Tests for the index registry."""

from pathlib import Path

import pytest

from mnemo.core.config import MemorySearchConfig
from mnemo.index.registry import IndexRegistry, cache_key


def _no_provider(config: MemorySearchConfig):
    return None


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "workspace"
    (root / "memory").mkdir(parents=True)
    (root / "MEMORY.md").write_text("User lives in Lisbon.", encoding="utf-8")
    return root


@pytest.fixture
async def registry():
    reg = IndexRegistry(provider_factory=_no_provider)
    yield reg
    await reg.close()


@pytest.mark.asyncio
async def test_disabled_search_yields_nothing(registry: IndexRegistry, workspace: Path):
    index, error = await registry.get("agent", workspace, MemorySearchConfig(enabled=False))
    assert index is None
    assert error is None
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_same_key_returns_same_instance(registry: IndexRegistry, workspace: Path, tmp_path: Path):
    config = MemorySearchConfig()
    first, error = await registry.get("agent", workspace, config, db_path=tmp_path / "a.db")
    second, _ = await registry.get("agent", workspace, config, db_path=tmp_path / "a.db")

    assert error is None
    assert first is second
    assert len(registry) == 1


@pytest.mark.asyncio
async def test_different_config_gets_new_index(registry: IndexRegistry, workspace: Path, tmp_path: Path):
    first, _ = await registry.get("agent", workspace, MemorySearchConfig(), db_path=tmp_path / "a.db")
    other = MemorySearchConfig(chunking={"tokens": 100, "overlap": 0})
    second, _ = await registry.get("agent", workspace, other, db_path=tmp_path / "b.db")

    assert first is not second
    assert len(registry) == 2


@pytest.mark.asyncio
async def test_syncs_on_conversation_start(registry: IndexRegistry, workspace: Path, tmp_path: Path):
    index, _ = await registry.get("agent", workspace, MemorySearchConfig(), db_path=tmp_path / "a.db")
    status = await index.status()
    assert status.files == 1
    assert status.dirty is False


@pytest.mark.asyncio
async def test_skips_sync_when_disabled(registry: IndexRegistry, workspace: Path, tmp_path: Path):
    config = MemorySearchConfig(sync={"on_conversation_start": False})
    index, _ = await registry.get("agent", workspace, config, db_path=tmp_path / "a.db")
    status = await index.status()
    assert status.files == 0


@pytest.mark.asyncio
async def test_open_failure_reports_error(registry: IndexRegistry, workspace: Path, tmp_path: Path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")

    index, error = await registry.get(
        "agent", workspace, MemorySearchConfig(), db_path=blocker / "index.db"
    )

    assert index is None
    assert error
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_evict_closes_index(registry: IndexRegistry, workspace: Path, tmp_path: Path):
    config = MemorySearchConfig()
    index, _ = await registry.get("agent", workspace, config, db_path=tmp_path / "a.db")

    assert await registry.evict("agent", workspace, config) is True
    assert index.initialized is False
    assert await registry.evict("agent", workspace, config) is False


@pytest.mark.asyncio
async def test_close_closes_everything(workspace: Path, tmp_path: Path):
    registry = IndexRegistry(provider_factory=_no_provider)
    index, _ = await registry.get("agent", workspace, MemorySearchConfig(), db_path=tmp_path / "a.db")

    await registry.close()

    assert len(registry) == 0
    assert index.initialized is False


def test_cache_key_includes_config(tmp_path: Path):
    a = cache_key("agent", tmp_path, MemorySearchConfig())
    b = cache_key("agent", tmp_path, MemorySearchConfig(model="other"))
    assert a != b
    assert a.startswith(f"agent:{tmp_path}:")
